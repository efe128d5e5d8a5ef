"""Configuration schema and loader."""

from study_os.config.loader import YamlConfigLoader
from study_os.config.models import AppConfig, ConfigLoadRequest

__all__ = ["AppConfig", "ConfigLoadRequest", "YamlConfigLoader"]
