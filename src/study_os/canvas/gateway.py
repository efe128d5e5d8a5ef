from __future__ import annotations

import asyncio
import base64
import logging
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import aiohttp

from study_os.canvas.models import (
    CalendarEvent,
    CanvasAssignment,
    CanvasCourse,
    CanvasFile,
    CanvasFolder,
    assignment_to_event,
    course_id_from_context,
    decode_assignment,
    decode_calendar_event,
    decode_course,
    decode_file,
    decode_folder,
    decode_list_payload,
)
from study_os.errors import CanvasApiError, InvalidTokenError

logger = logging.getLogger(__name__)

_EXCLUDED_COURSE_STATES = frozenset({"deleted", "unpublished"})

# Canvas rejects calendar_events requests naming more than ten contexts.
_MAX_CONTEXT_CODES = 10

Params = List[Tuple[str, Any]]


def _chunked(items: Sequence[str], size: int) -> Iterable[Sequence[str]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


class CanvasGateway:
    """
    Stateless request functions over the Canvas REST API.

    Every call takes the user's bearer token. Non-2xx responses raise
    CanvasApiError (InvalidTokenError for 401) except where noted; results past the
    first page are not followed.
    """

    def __init__(self, session: aiohttp.ClientSession, *, base_url: str, per_page: int = 100) -> None:
        self._session = session
        self._base_url = base_url.rstrip("/")
        self._per_page = per_page

    def _url(self, path: str) -> str:
        return f"{self._base_url}{path}"

    @staticmethod
    def _headers(token: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    async def _get_json(self, token: str, path: str, params: Optional[Params] = None) -> Any:
        async with self._session.get(self._url(path), headers=self._headers(token), params=params or []) as response:
            if response.status == 401:
                raise InvalidTokenError()
            if not 200 <= response.status < 300:
                raise CanvasApiError(response.status, f"Canvas API error: {response.status} {response.reason or ''}".strip())
            return await response.json(content_type=None)

    async def fetch_courses(self, token: str) -> List[CanvasCourse]:
        payload = await self._get_json(
            token,
            "/courses",
            [("enrollment_type", "student"), ("enrollment_state", "active"), ("per_page", self._per_page)],
        )
        courses = [decode_course(item) for item in decode_list_payload(payload)]
        return [c for c in courses if c.workflow_state not in _EXCLUDED_COURSE_STATES]

    async def fetch_course_assignments(self, token: str, course_id: int) -> List[CanvasAssignment]:
        payload = await self._get_json(
            token,
            f"/courses/{course_id}/assignments",
            [("include[]", "submission"), ("per_page", self._per_page)],
        )
        return [decode_assignment(item, course_id) for item in decode_list_payload(payload)]

    async def fetch_course_files(self, token: str, course_id: int) -> List[CanvasFile]:
        payload = await self._get_json(
            token,
            f"/courses/{course_id}/files",
            [("per_page", self._per_page), ("sort", "created_at"), ("order", "desc")],
        )
        return [decode_file(item) for item in decode_list_payload(payload)]

    async def fetch_course_folders(self, token: str, course_id: int) -> List[CanvasFolder]:
        payload = await self._get_json(token, f"/courses/{course_id}/folders", [("per_page", self._per_page)])
        return [decode_folder(item) for item in decode_list_payload(payload)]

    async def fetch_folder_files(self, token: str, folder_id: int) -> List[CanvasFile]:
        """Files in a folder; a forbidden or missing folder yields an empty list."""
        try:
            payload = await self._get_json(
                token,
                f"/folders/{folder_id}/files",
                [("per_page", self._per_page), ("sort", "created_at"), ("order", "desc")],
            )
        except InvalidTokenError:
            raise
        except CanvasApiError as e:
            if e.status in (403, 404):
                logger.warning("Folder is not accessible. folder_id=%s status=%s", folder_id, e.status)
                return []
            raise
        return [decode_file(item) for item in decode_list_payload(payload)]

    async def test_folder_access(self, token: str, folder_id: int) -> bool:
        """False only when Canvas answers 403; any other status or a network failure counts as accessible."""
        try:
            async with self._session.get(
                self._url(f"/folders/{folder_id}/files"),
                headers=self._headers(token),
                params=[("per_page", 1)],
            ) as response:
                return response.status != 403
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.debug("Folder access check failed, assuming accessible. folder_id=%s error=%s", folder_id, e)
            return True

    async def fetch_course_color(self, token: str, course_id: int) -> Optional[str]:
        payload = await self._get_json(token, f"/users/self/colors/course_{course_id}")
        if isinstance(payload, dict):
            hexcode = payload.get("hexcode")
            if isinstance(hexcode, str) and hexcode:
                return hexcode
        return None

    async def fetch_course_colors(self, token: str, course_ids: Sequence[int]) -> Dict[int, str]:
        results = await asyncio.gather(
            *(self.fetch_course_color(token, course_id) for course_id in course_ids),
            return_exceptions=True,
        )
        colors: Dict[int, str] = {}
        for course_id, result in zip(course_ids, results):
            if isinstance(result, InvalidTokenError):
                raise result
            if isinstance(result, BaseException):
                logger.warning("Failed to fetch course color. course_id=%s error=%s", course_id, result)
                continue
            if result:
                colors[course_id] = result
        return colors

    async def download_file_base64(self, token: str, url: str, name: str) -> Optional[str]:
        """Download a file's bytes as base64. Returns None on any failure."""
        try:
            async with self._session.get(url, headers=self._headers(token), allow_redirects=True) as response:
                if not 200 <= response.status < 300:
                    logger.warning("Canvas file download failed. name=%s status=%s", name, response.status)
                    return None
                body = await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("Canvas file download failed. name=%s error=%s", name, e)
            return None
        return base64.b64encode(body).decode("ascii")

    async def fetch_calendar_events(
        self,
        token: str,
        start_date: date,
        end_date: date,
        context_codes: Sequence[str],
    ) -> List[CalendarEvent]:
        """
        Calendar events for the given contexts between two dates (inclusive).

        Assignment due dates of every course context are merged in as events of type
        "assignment". An item present both ways is kept once, keyed by
        (id, context_code), preferring the native calendar event.
        """
        if not context_codes:
            return []

        event_batches = await asyncio.gather(
            *(self._fetch_native_events(token, start_date, end_date, chunk) for chunk in _chunked(context_codes, _MAX_CONTEXT_CODES))
        )
        course_ids = [cid for cid in (course_id_from_context(code) for code in context_codes) if cid is not None]
        assignment_batches = await asyncio.gather(
            *(self._fetch_assignment_events(token, course_id, start_date, end_date) for course_id in course_ids)
        )

        events: List[CalendarEvent] = []
        seen: set[tuple[int, str]] = set()
        for batch in [*event_batches, *assignment_batches]:
            for event in batch:
                key = (event.id, event.context_code)
                if key in seen:
                    continue
                seen.add(key)
                events.append(event)
        return events

    async def _fetch_native_events(
        self,
        token: str,
        start_date: date,
        end_date: date,
        context_codes: Sequence[str],
    ) -> List[CalendarEvent]:
        params: Params = [
            ("type", "event"),
            ("start_date", start_date.isoformat()),
            ("end_date", end_date.isoformat()),
            ("per_page", self._per_page),
        ]
        params.extend(("context_codes[]", code) for code in context_codes)
        payload = await self._get_json(token, "/calendar_events", params)
        return [decode_calendar_event(item) for item in decode_list_payload(payload)]

    async def _fetch_assignment_events(
        self,
        token: str,
        course_id: int,
        start_date: date,
        end_date: date,
    ) -> List[CalendarEvent]:
        try:
            assignments = await self.fetch_course_assignments(token, course_id)
        except InvalidTokenError:
            raise
        except (CanvasApiError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("Skipping assignment due dates for calendar. course_id=%s error=%s", course_id, e)
            return []

        events: List[CalendarEvent] = []
        for assignment in assignments:
            if not assignment.due_at:
                continue
            due_day = assignment.due_at[:10]
            if start_date.isoformat() <= due_day <= end_date.isoformat():
                events.append(assignment_to_event(assignment))
        return events
