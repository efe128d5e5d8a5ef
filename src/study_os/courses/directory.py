from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Protocol, Sequence

from study_os.canvas.models import CanvasCourse
from study_os.errors import MissingTokenError, StudyOsError
from study_os.storage.accessor import StudyStore

logger = logging.getLogger(__name__)


class CourseSource(Protocol):
    async def fetch_courses(self, token: str) -> List[CanvasCourse]:
        ...


@dataclass(frozen=True, slots=True)
class CourseWithNickname:
    canvas_id: int
    name: str
    course_code: str
    nickname: str
    href: str
    color: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.nickname or self.name


@dataclass(slots=True)
class SyncResult:
    courses: List[CourseWithNickname]
    hidden: List[CanvasCourse]


def apply_nicknames(
    courses: Iterable[CanvasCourse],
    nicknames: Dict[int, str],
    hidden: Sequence[int],
    colors: Optional[Dict[int, str]] = None,
) -> List[CourseWithNickname]:
    """Visible courses with the user's nicknames applied; hidden courses are left out."""
    hidden_ids = set(hidden)
    colors = colors or {}
    return [
        CourseWithNickname(
            canvas_id=course.id,
            name=course.name,
            course_code=course.course_code,
            nickname=nicknames.get(course.id) or course.name,
            href=f"/course/{course.id}",
            color=colors.get(course.id),
        )
        for course in courses
        if course.id not in hidden_ids
    ]


class CourseDirectory:
    """Enrolled courses as the student sees them: nicknamed, with hidden ones set aside."""

    def __init__(self, source: CourseSource, store: StudyStore) -> None:
        self._source = source
        self._store = store

    def require_token(self) -> str:
        token = self._store.get_canvas_token()
        if token is None:
            raise MissingTokenError()
        return token

    async def sync(self, token: str) -> SyncResult:
        """
        Validate a token by listing courses, then store it.

        An invalid token raises InvalidTokenError and is not stored.
        """
        token = token.strip()
        if not token:
            raise StudyOsError("Please enter a Canvas access token.")
        courses = await self._source.fetch_courses(token)
        self._store.save_canvas_token(token)
        logger.info("Canvas token verified and stored. course_count=%d", len(courses))
        return self._split(courses)

    async def list_courses(self) -> List[CourseWithNickname]:
        courses = await self._source.fetch_courses(self.require_token())
        return self._split(courses).courses

    async def hidden_courses(self) -> List[CanvasCourse]:
        courses = await self._source.fetch_courses(self.require_token())
        return self._split(courses).hidden

    def rename(self, canvas_id: int, nickname: str) -> None:
        self._store.save_course_nickname(canvas_id, nickname.strip())

    def hide(self, canvas_id: int) -> None:
        self._store.hide_course(canvas_id)

    def show(self, canvas_id: int) -> None:
        self._store.show_course(canvas_id)

    def _split(self, courses: List[CanvasCourse]) -> SyncResult:
        hidden_ids = self._store.get_hidden_courses()
        visible = apply_nicknames(
            courses,
            self._store.get_course_nicknames(),
            hidden_ids,
            self._store.get_course_colors(),
        )
        hidden = [c for c in courses if c.id in hidden_ids]
        return SyncResult(courses=visible, hidden=hidden)
