from __future__ import annotations

from typing import Optional


class StudyOsError(Exception):
    """Base class for errors raised by study_os."""


class StorageQuotaExceededError(StudyOsError):
    """A write would push the persisted store past its configured quota."""

    def __init__(self, key: str, required_bytes: int, quota_bytes: int) -> None:
        super().__init__(
            "Storage quota exceeded. Please delete some uploaded or cached files to free up space."
        )
        self.key = key
        self.required_bytes = required_bytes
        self.quota_bytes = quota_bytes


class CanvasApiError(StudyOsError):
    """A Canvas request came back with a non-2xx status."""

    def __init__(self, status: int, message: Optional[str] = None) -> None:
        super().__init__(message or f"Canvas API error: {status}")
        self.status = status


class InvalidTokenError(CanvasApiError):
    def __init__(self) -> None:
        super().__init__(
            401,
            "Invalid Canvas API token. Please check your token in Canvas Sync settings.",
        )


class MissingTokenError(StudyOsError):
    def __init__(self) -> None:
        super().__init__("Canvas token not found. Please sync with a Canvas API token first.")


class ChatServiceError(StudyOsError):
    """Upstream LLM failure, already rewritten into a user-facing explanation."""


class CalendarFeedError(StudyOsError):
    """The external iCal feed could not be fetched or parsed."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


__all__ = [
    "CalendarFeedError",
    "CanvasApiError",
    "ChatServiceError",
    "InvalidTokenError",
    "MissingTokenError",
    "StorageQuotaExceededError",
    "StudyOsError",
]
