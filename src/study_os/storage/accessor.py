from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from study_os.canvas.models import CanvasAssignment
from study_os.core.utils import format_rfc3339, try_parse_rfc3339, utc_now
from study_os.storage.interfaces import StoragePort
from study_os.storage.models import (
    CachedAssignment,
    CachedAssignments,
    CachedCanvasFile,
    CachedExtractedText,
    CachedExtractedTexts,
    ChatMessage,
    UploadedFile,
    decode_cached_assignments,
    decode_cached_canvas_file,
    decode_chat_message,
    decode_extracted_texts,
    decode_list,
    decode_uploaded_file,
    encode_cached_assignments,
    encode_cached_canvas_file,
    encode_chat_message,
    encode_extracted_texts,
    encode_uploaded_file,
)

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_INTERVAL_MINUTES = 5
DEFAULT_ASSIGNMENT_TTL = timedelta(minutes=5)


class StudyStore:
    """
    Typed view over the persisted key-value store.

    Owns key naming and (de)serialization for every concern. Reads never raise:
    missing or malformed values come back as the concern's default. Writes let
    StorageQuotaExceededError propagate so callers can ask the user to free space.
    """

    def __init__(
        self,
        storage: StoragePort,
        *,
        prefix: str = "study-os-",
        assignment_ttl: timedelta = DEFAULT_ASSIGNMENT_TTL,
        clock: Callable[[], datetime] = utc_now,
        default_refresh_minutes: int = DEFAULT_REFRESH_INTERVAL_MINUTES,
    ) -> None:
        self._storage = storage
        self._prefix = prefix
        self._assignment_ttl = assignment_ttl
        self._clock = clock
        self._default_refresh_minutes = max(0, int(default_refresh_minutes))

    def _key(self, concern: str) -> str:
        return f"{self._prefix}{concern}"

    def _get(self, concern: str) -> Optional[Any]:
        return self._storage.get(self._key(concern))

    def _set(self, concern: str, value: Any) -> None:
        self._storage.set(self._key(concern), value)

    def _remove(self, concern: str) -> None:
        self._storage.remove(self._key(concern))

    # Course nicknames

    def get_course_nicknames(self) -> Dict[int, str]:
        stored = self._get("course-nicknames")
        if not isinstance(stored, dict):
            return {}
        nicknames: Dict[int, str] = {}
        for raw_id, nickname in stored.items():
            try:
                nicknames[int(raw_id)] = str(nickname)
            except ValueError:
                continue
        return nicknames

    def save_course_nickname(self, canvas_id: int, nickname: str) -> None:
        nicknames = self.get_course_nicknames()
        nicknames[canvas_id] = nickname
        self._set("course-nicknames", {str(k): v for k, v in nicknames.items()})

    # Canvas token

    def get_canvas_token(self) -> Optional[str]:
        stored = self._get("canvas-token")
        return stored if isinstance(stored, str) and stored else None

    def save_canvas_token(self, token: str) -> None:
        self._set("canvas-token", token)

    # Hidden courses

    def get_hidden_courses(self) -> List[int]:
        stored = self._get("hidden-courses")
        if not isinstance(stored, list):
            return []
        return [int(x) for x in stored if isinstance(x, int)]

    def hide_course(self, canvas_id: int) -> None:
        hidden = self.get_hidden_courses()
        if canvas_id not in hidden:
            hidden.append(canvas_id)
            self._set("hidden-courses", hidden)

    def show_course(self, canvas_id: int) -> None:
        hidden = [x for x in self.get_hidden_courses() if x != canvas_id]
        self._set("hidden-courses", hidden)

    # Chat history (course id or None for the general assistant)

    @staticmethod
    def _chat_concern(course_id: Optional[int]) -> str:
        return f"chat-{course_id if course_id is not None else 'general'}"

    def get_chat_messages(self, course_id: Optional[int]) -> List[ChatMessage]:
        return decode_list(self._get(self._chat_concern(course_id)), decode_chat_message, label="chat message")

    def save_chat_messages(self, course_id: Optional[int], messages: Iterable[ChatMessage]) -> None:
        self._set(self._chat_concern(course_id), [encode_chat_message(m) for m in messages])

    def clear_chat_messages(self, course_id: Optional[int]) -> None:
        self._remove(self._chat_concern(course_id))

    # Uploaded files (course id or None for semester documents)

    @staticmethod
    def _files_concern(course_id: Optional[int]) -> str:
        return f"files-{course_id if course_id is not None else 'semester'}"

    def get_uploaded_files(self, course_id: Optional[int]) -> List[UploadedFile]:
        return decode_list(self._get(self._files_concern(course_id)), decode_uploaded_file, label="uploaded file")

    def get_all_uploaded_files(self) -> List[UploadedFile]:
        files_prefix = self._key("files-")
        all_files: List[UploadedFile] = []
        for key in self._storage.keys():
            if key.startswith(files_prefix):
                all_files.extend(decode_list(self._storage.get(key), decode_uploaded_file, label="uploaded file"))
        return all_files

    def save_uploaded_files(self, course_id: Optional[int], files: Iterable[UploadedFile]) -> None:
        self._set(self._files_concern(course_id), [encode_uploaded_file(f) for f in files])

    def add_uploaded_file(self, course_id: Optional[int], file: UploadedFile) -> None:
        files = self.get_uploaded_files(course_id)
        files.append(file)
        self.save_uploaded_files(course_id, files)

    def delete_uploaded_file(self, course_id: Optional[int], file_id: str) -> None:
        files = [f for f in self.get_uploaded_files(course_id) if f.id != file_id]
        self.save_uploaded_files(course_id, files)

    # Cached Canvas file bytes

    def get_cached_canvas_files(self, course_id: int) -> List[CachedCanvasFile]:
        return decode_list(
            self._get(f"canvas-files-{course_id}"), decode_cached_canvas_file, label="cached Canvas file"
        )

    def save_cached_canvas_files(self, course_id: int, files: Iterable[CachedCanvasFile]) -> None:
        self._set(f"canvas-files-{course_id}", [encode_cached_canvas_file(f) for f in files])

    def cache_canvas_file(self, course_id: int, file: CachedCanvasFile) -> None:
        files = self.get_cached_canvas_files(course_id)
        for index, existing in enumerate(files):
            if existing.canvas_id == file.canvas_id:
                files[index] = file
                break
        else:
            files.append(file)
        self.save_cached_canvas_files(course_id, files)

    def get_cached_canvas_file(self, course_id: int, canvas_id: int) -> Optional[CachedCanvasFile]:
        for file in self.get_cached_canvas_files(course_id):
            if file.canvas_id == canvas_id:
                return file
        return None

    def clear_cached_canvas_files(self, course_id: int) -> None:
        self._remove(f"canvas-files-{course_id}")

    # Calendar

    def get_course_colors(self) -> Dict[int, str]:
        stored = self._get("course-colors")
        if not isinstance(stored, dict):
            return {}
        colors: Dict[int, str] = {}
        for raw_id, color in stored.items():
            try:
                colors[int(raw_id)] = str(color)
            except ValueError:
                continue
        return colors

    def save_course_colors(self, colors: Dict[int, str]) -> None:
        self._set("course-colors", {str(k): v for k, v in colors.items()})

    def get_calendar_selected_courses(self) -> Optional[Set[int]]:
        """Selected course ids, or None meaning every course is selected."""
        stored = self._get("calendar-selected-courses")
        if not isinstance(stored, list):
            return None
        return {int(x) for x in stored if isinstance(x, int)}

    def save_calendar_selected_courses(self, selected: Optional[Set[int]]) -> None:
        if selected is None:
            self._remove("calendar-selected-courses")
        else:
            self._set("calendar-selected-courses", sorted(selected))

    # Auto-refresh interval

    def get_auto_refresh_interval(self) -> int:
        stored = self._get("auto-refresh-interval")
        if stored is None:
            return self._default_refresh_minutes
        try:
            interval = int(stored)
        except (TypeError, ValueError):
            return self._default_refresh_minutes
        return interval if interval >= 0 else self._default_refresh_minutes

    def save_auto_refresh_interval(self, interval_minutes: int) -> None:
        self._set("auto-refresh-interval", max(0, int(interval_minutes)))

    # External calendar feed

    def get_calendar_feed_url(self) -> Optional[str]:
        stored = self._get("google-cal-url")
        return stored if isinstance(stored, str) and stored else None

    def save_calendar_feed_url(self, url: str) -> None:
        url = url.strip()
        if not url:
            self._remove("google-cal-url")
            self._remove("google-cal-selected")
            return
        self._set("google-cal-url", url)
        if self._get("google-cal-selected") is None:
            self._set("google-cal-selected", True)

    def get_calendar_feed_selected(self) -> bool:
        if self.get_calendar_feed_url() is None:
            return False
        stored = self._get("google-cal-selected")
        if stored is None:
            return True
        return stored is True

    def save_calendar_feed_selected(self, selected: bool) -> None:
        self._set("google-cal-selected", bool(selected))

    # Assignments (short-lived cache)

    def get_cached_assignments(self, course_id: int) -> Optional[CachedAssignments]:
        """Cached assignments, or None when absent or older than the TTL."""
        stored = self._get(f"assignments-{course_id}")
        if not isinstance(stored, dict):
            return None
        try:
            cached = decode_cached_assignments(stored)
        except (KeyError, TypeError, ValueError):
            return None
        cached_at = try_parse_rfc3339(cached.cached_at)
        if cached_at is None or self._clock() - cached_at > self._assignment_ttl:
            return None
        return cached

    def save_cached_assignments(self, course_id: int, assignments: Iterable[CanvasAssignment]) -> None:
        now = format_rfc3339(self._clock())
        cached = CachedAssignments(
            assignments=[
                CachedAssignment(
                    id=a.id,
                    name=a.name,
                    due_at=a.due_at,
                    course_id=course_id,
                    cached_at=now,
                    submission_state=a.submission_state,
                )
                for a in assignments
            ],
            cached_at=now,
        )
        self._set(f"assignments-{course_id}", encode_cached_assignments(cached))

    def clear_cached_assignments(self, course_id: int) -> None:
        self._remove(f"assignments-{course_id}")

    # Extracted text

    def get_cached_extracted_text(self, course_id: int) -> Optional[CachedExtractedTexts]:
        stored = self._get(f"extracted-text-{course_id}")
        if not isinstance(stored, dict):
            return None
        return decode_extracted_texts(stored)

    def save_cached_extracted_text(self, course_id: int, texts: Iterable[CachedExtractedText]) -> None:
        cached = CachedExtractedTexts(texts=list(texts), cached_at=format_rfc3339(self._clock()))
        self._set(f"extracted-text-{course_id}", encode_extracted_texts(cached))

    def clear_cached_extracted_text(self, course_id: int) -> None:
        self._remove(f"extracted-text-{course_id}")
