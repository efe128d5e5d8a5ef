from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Optional

_COURSE_CONTEXT_RE = re.compile(r"^course_(\d+)$")

EXTERNAL_CALENDAR_CONTEXT = "google_calendar"


@dataclass(frozen=True, slots=True)
class CanvasCourse:
    id: int
    name: str
    course_code: str
    workflow_state: str
    enrollment_term_id: Optional[int] = None
    start_at: Optional[str] = None
    end_at: Optional[str] = None


@dataclass(frozen=True, slots=True)
class CanvasAssignment:
    id: int
    name: str
    due_at: Optional[str]
    course_id: int
    html_url: str = ""
    submission_state: Optional[str] = None


@dataclass(frozen=True, slots=True)
class CanvasFile:
    id: int
    display_name: str
    filename: str
    content_type: str
    url: str
    size: int
    modified_at: str
    updated_at: str
    locked: bool = False
    hidden: bool = False
    folder_id: Optional[int] = None
    mime_class: str = ""

    @property
    def name(self) -> str:
        return self.display_name or self.filename

    @property
    def effective_modified_at(self) -> str:
        return self.modified_at or self.updated_at


@dataclass(frozen=True, slots=True)
class CanvasFolder:
    id: int
    name: str
    full_name: str
    files_count: int
    folders_count: int = 0
    hidden: bool = False
    locked: bool = False
    parent_folder_id: Optional[int] = None

    @property
    def is_browsable(self) -> bool:
        """Folders worth crawling or checking: visible, not the root, and non-empty."""
        return not self.hidden and self.name != "course files" and self.files_count > 0


@dataclass(frozen=True, slots=True)
class CalendarEvent:
    id: int
    title: str
    start_at: Optional[str]
    end_at: Optional[str]
    context_code: str
    type: str = "event"
    all_day: bool = False
    all_day_date: Optional[str] = None
    description: Optional[str] = None
    location_name: Optional[str] = None
    location_address: Optional[str] = None
    html_url: str = ""
    workflow_state: str = "active"

    @property
    def course_id(self) -> Optional[int]:
        return course_id_from_context(self.context_code)


def course_id_from_context(context_code: str) -> Optional[int]:
    match = _COURSE_CONTEXT_RE.match(context_code or "")
    return int(match.group(1)) if match else None


def course_context(course_id: int) -> str:
    return f"course_{course_id}"


def decode_course(payload: dict) -> CanvasCourse:
    return CanvasCourse(
        id=int(payload["id"]),
        name=payload.get("name") or "",
        course_code=payload.get("course_code") or "",
        workflow_state=payload.get("workflow_state") or "",
        enrollment_term_id=payload.get("enrollment_term_id"),
        start_at=payload.get("start_at"),
        end_at=payload.get("end_at"),
    )


def decode_assignment(payload: dict, course_id: int) -> CanvasAssignment:
    submission = payload.get("submission")
    submission_state = submission.get("workflow_state") if isinstance(submission, dict) else None
    return CanvasAssignment(
        id=int(payload["id"]),
        name=payload.get("name") or "",
        due_at=payload.get("due_at"),
        course_id=int(payload.get("course_id") or course_id),
        html_url=payload.get("html_url") or "",
        submission_state=submission_state,
    )


def decode_file(payload: dict) -> CanvasFile:
    return CanvasFile(
        id=int(payload["id"]),
        display_name=payload.get("display_name") or "",
        filename=payload.get("filename") or "",
        content_type=payload.get("content-type") or payload.get("content_type") or "",
        url=payload.get("url") or "",
        size=int(payload.get("size") or 0),
        modified_at=payload.get("modified_at") or "",
        updated_at=payload.get("updated_at") or "",
        locked=bool(payload.get("locked", False)),
        hidden=bool(payload.get("hidden", False)),
        folder_id=payload.get("folder_id"),
        mime_class=payload.get("mime_class") or "",
    )


def decode_folder(payload: dict) -> CanvasFolder:
    return CanvasFolder(
        id=int(payload["id"]),
        name=payload.get("name") or "",
        full_name=payload.get("full_name") or "",
        files_count=int(payload.get("files_count") or 0),
        folders_count=int(payload.get("folders_count") or 0),
        hidden=bool(payload.get("hidden", False)),
        locked=bool(payload.get("locked", False)),
        parent_folder_id=payload.get("parent_folder_id"),
    )


def decode_calendar_event(payload: dict) -> CalendarEvent:
    return CalendarEvent(
        id=int(payload["id"]),
        title=payload.get("title") or "",
        start_at=payload.get("start_at"),
        end_at=payload.get("end_at"),
        context_code=payload.get("context_code") or "",
        type=payload.get("type") or "event",
        all_day=bool(payload.get("all_day", False)),
        all_day_date=payload.get("all_day_date"),
        description=payload.get("description"),
        location_name=payload.get("location_name"),
        location_address=payload.get("location_address"),
        html_url=payload.get("html_url") or "",
        workflow_state=payload.get("workflow_state") or "active",
    )


def assignment_to_event(assignment: CanvasAssignment) -> CalendarEvent:
    return CalendarEvent(
        id=assignment.id,
        title=assignment.name,
        start_at=assignment.due_at,
        end_at=assignment.due_at,
        context_code=course_context(assignment.course_id),
        type="assignment",
        html_url=assignment.html_url,
    )


def decode_list_payload(payload: Any) -> list[dict]:
    if not isinstance(payload, list):
        return []
    return [item for item in payload if isinstance(item, dict)]
