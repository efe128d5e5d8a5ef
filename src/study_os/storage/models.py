from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Literal, Optional, TypeVar

logger = logging.getLogger(__name__)

Sender = Literal["user", "assistant"]

T = TypeVar("T")


@dataclass(slots=True)
class ChatMessage:
    id: str
    text: str
    sender: Sender


@dataclass(slots=True)
class UploadedFile:
    id: str
    name: str
    type: str
    size: int
    data: str  # base64
    upload_date: str
    course_id: Optional[int]  # None for semester documents


@dataclass(slots=True)
class CachedCanvasFile:
    canvas_id: int
    name: str
    type: str
    size: int
    data: str  # base64
    url: str
    modified_at: str
    cached_at: str
    course_id: int


@dataclass(slots=True)
class CachedAssignment:
    id: int
    name: str
    due_at: Optional[str]
    course_id: int
    cached_at: str
    submission_state: Optional[str] = None


@dataclass(slots=True)
class CachedAssignments:
    assignments: List[CachedAssignment]
    cached_at: str


@dataclass(slots=True)
class CachedExtractedText:
    file_name: str
    text: str
    extracted_at: str
    canvas_id: Optional[int] = None  # absent for user uploads
    file_modified_at: Optional[str] = None


@dataclass(slots=True)
class CachedExtractedTexts:
    texts: List[CachedExtractedText] = field(default_factory=list)
    cached_at: str = ""


def encode_chat_message(message: ChatMessage) -> dict:
    return {"id": message.id, "text": message.text, "sender": message.sender}


def decode_chat_message(payload: dict) -> ChatMessage:
    sender = payload["sender"]
    if sender not in ("user", "assistant"):
        raise ValueError(f"Unknown chat sender: {sender}")
    return ChatMessage(id=str(payload["id"]), text=str(payload["text"]), sender=sender)


def encode_uploaded_file(file: UploadedFile) -> dict:
    return {
        "id": file.id,
        "name": file.name,
        "type": file.type,
        "size": file.size,
        "data": file.data,
        "uploadDate": file.upload_date,
        "courseId": file.course_id,
    }


def decode_uploaded_file(payload: dict) -> UploadedFile:
    course_id = payload.get("courseId")
    return UploadedFile(
        id=str(payload["id"]),
        name=payload["name"],
        type=payload.get("type", ""),
        size=int(payload.get("size", 0)),
        data=payload["data"],
        upload_date=payload.get("uploadDate", ""),
        course_id=int(course_id) if course_id is not None else None,
    )


def encode_cached_canvas_file(file: CachedCanvasFile) -> dict:
    return {
        "canvasId": file.canvas_id,
        "name": file.name,
        "type": file.type,
        "size": file.size,
        "data": file.data,
        "url": file.url,
        "modifiedAt": file.modified_at,
        "cachedAt": file.cached_at,
        "courseId": file.course_id,
    }


def decode_cached_canvas_file(payload: dict) -> CachedCanvasFile:
    return CachedCanvasFile(
        canvas_id=int(payload["canvasId"]),
        name=payload["name"],
        type=payload.get("type", ""),
        size=int(payload.get("size", 0)),
        data=payload["data"],
        url=payload.get("url", ""),
        modified_at=payload["modifiedAt"],
        cached_at=payload.get("cachedAt", ""),
        course_id=int(payload["courseId"]),
    )


def encode_cached_assignments(cached: CachedAssignments) -> dict:
    return {
        "assignments": [
            {
                "id": a.id,
                "name": a.name,
                "due_at": a.due_at,
                "course_id": a.course_id,
                "cachedAt": a.cached_at,
                "submission_state": a.submission_state,
            }
            for a in cached.assignments
        ],
        "cachedAt": cached.cached_at,
    }


def decode_cached_assignments(payload: dict) -> CachedAssignments:
    assignments = decode_list(
        payload.get("assignments", []),
        lambda item: CachedAssignment(
            id=int(item["id"]),
            name=item.get("name", ""),
            due_at=item.get("due_at"),
            course_id=int(item["course_id"]),
            cached_at=item.get("cachedAt", ""),
            submission_state=item.get("submission_state"),
        ),
        label="assignment",
    )
    return CachedAssignments(assignments=assignments, cached_at=payload["cachedAt"])


def encode_extracted_texts(cached: CachedExtractedTexts) -> dict:
    texts = []
    for entry in cached.texts:
        item: dict[str, Any] = {
            "fileName": entry.file_name,
            "text": entry.text,
            "extractedAt": entry.extracted_at,
        }
        if entry.canvas_id is not None:
            item["canvasId"] = entry.canvas_id
        if entry.file_modified_at is not None:
            item["fileModifiedAt"] = entry.file_modified_at
        texts.append(item)
    return {"texts": texts, "cachedAt": cached.cached_at}


def decode_extracted_texts(payload: dict) -> CachedExtractedTexts:
    def _decode(item: dict) -> CachedExtractedText:
        canvas_id = item.get("canvasId")
        return CachedExtractedText(
            file_name=item["fileName"],
            text=item["text"],
            extracted_at=item.get("extractedAt", ""),
            canvas_id=int(canvas_id) if canvas_id is not None else None,
            file_modified_at=item.get("fileModifiedAt"),
        )

    return CachedExtractedTexts(
        texts=decode_list(payload.get("texts", []), _decode, label="extracted text"),
        cached_at=payload.get("cachedAt", ""),
    )


def decode_list(items: Any, decode: Callable[[dict], T], *, label: str) -> List[T]:
    """Decode each entry, skipping malformed ones instead of failing the whole list."""
    if not isinstance(items, list):
        return []
    decoded: List[T] = []
    for item in items:
        try:
            decoded.append(decode(item))
        except (KeyError, TypeError, ValueError):
            logger.warning("Skipping malformed stored %s entry.", label)
    return decoded
