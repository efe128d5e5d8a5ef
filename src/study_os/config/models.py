from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field


class AppSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    timezone: str = "America/Denver"


class FileRotationSettings(BaseModel):
    """
    Date-based rotation settings (daily).

    Maps onto TimedRotatingFileHandler(when="midnight").
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    backup_count: int


class FileLoggingSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    path: str
    rotation: FileRotationSettings


class LoggingSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    level: str
    file: FileLoggingSettings
    quiet_loggers: Sequence[str] = ("aiohttp.access",)


class StorageSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    path: str
    key_prefix: str = "study-os-"

    # Browser-style local storage quota. None disables the check.
    quota_bytes: Optional[int] = 5 * 1024 * 1024


class CanvasSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    base_url: str
    request_timeout_seconds: float = 30.0
    per_page: int = 100
    download_batch_size: int = Field(default=10, ge=1)


class CacheSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    assignment_ttl_seconds: float = 300.0


class RefreshSettingsConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    default_interval_minutes: int = Field(default=5, ge=0)


class CalendarSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    default_course_color: str = "#002E5D"
    feed_timeout_seconds: float = 30.0


class AISettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    api_key: str = ""
    base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    models: Sequence[str] = (
        "gemini-2.5-flash",
        "gemini-2.5-pro",
        "gemini-2.0-flash",
        "gemini-1.5-flash",
    )
    timeout_seconds: float = 60.0
    max_retries: int = 2

    # Retrieval context handed to the assistant
    max_context_chars_per_file: int = 20000
    max_context_files: int = 25

    persona: str = "a university student"


class AppConfig(BaseModel):
    """Effective runtime configuration after YAML, .env and environment overrides."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    app: AppSettings = AppSettings()
    logging: LoggingSettings
    storage: StorageSettings
    canvas: CanvasSettings
    cache: CacheSettings = CacheSettings()
    refresh: RefreshSettingsConfig = RefreshSettingsConfig()
    calendar: CalendarSettings = CalendarSettings()
    ai: AISettings = AISettings()


@dataclass(frozen=True, slots=True)
class ConfigLoadRequest:
    """Where the loader reads configuration from."""

    yaml_path: str = "data/config/config.yaml"
    env_prefix: str = "STUDY_OS__"
    dotenv_path: Optional[str] = "data/.env"
