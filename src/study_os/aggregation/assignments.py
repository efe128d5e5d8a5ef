from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Sequence

import aiohttp

from study_os.canvas.models import CanvasAssignment
from study_os.core.utils import local_date, try_parse_rfc3339, utc_now
from study_os.errors import CanvasApiError
from study_os.storage.accessor import StudyStore

logger = logging.getLogger(__name__)

EXAM_KEYWORDS = ("exam", "final", "midterm", "test")
COMPLETED_SUBMISSION_STATES = frozenset({"submitted", "graded"})


class AssignmentSource(Protocol):
    async def fetch_course_assignments(self, token: str, course_id: int) -> List[CanvasAssignment]:
        ...


@dataclass(frozen=True, slots=True)
class ExamCountdown:
    assignment: CanvasAssignment
    days_until: int


def is_completed(assignment: CanvasAssignment) -> bool:
    return assignment.submission_state in COMPLETED_SUBMISSION_STATES


def is_exam_like(name: str) -> bool:
    lowered = (name or "").lower()
    return any(keyword in lowered for keyword in EXAM_KEYWORDS)


def upcoming_assignments(
    assignments: Iterable[CanvasAssignment],
    today: date,
    tz: Optional[tzinfo] = None,
) -> List[CanvasAssignment]:
    """
    Assignments still ahead of the student, earliest due first.

    Keeps those with a due date whose local calendar day is today or later and
    that Canvas has not recorded as submitted or graded.
    """
    kept = []
    for assignment in assignments:
        if is_completed(assignment):
            continue
        due = try_parse_rfc3339(assignment.due_at)
        if due is None:
            continue
        if due.astimezone(tz).date() < today:
            continue
        kept.append((due, assignment))
    kept.sort(key=lambda pair: pair[0])
    return [assignment for _, assignment in kept]


def next_deadline(upcoming: Sequence[CanvasAssignment]) -> Optional[CanvasAssignment]:
    """Earliest entry of an already-sorted upcoming list."""
    return upcoming[0] if upcoming else None


def days_until(due_at: str, today: date, tz: Optional[tzinfo] = None) -> int:
    return max(0, (local_date(due_at, tz) - today).days)


def format_due_label(due_at: str, today: date, tz: Optional[tzinfo] = None) -> str:
    days = (local_date(due_at, tz) - today).days
    if days <= 0:
        return "Today"
    if days == 1:
        return "Tomorrow"
    if days <= 7:
        return f"In {days} days"
    due_day = local_date(due_at, tz)
    return f"{due_day.strftime('%b')} {due_day.day}"


def nearest_exam(
    upcoming_by_course: Dict[int, List[CanvasAssignment]],
    today: date,
    tz: Optional[tzinfo] = None,
) -> Optional[ExamCountdown]:
    candidates = [
        a for assignments in upcoming_by_course.values() for a in assignments if is_exam_like(a.name) and a.due_at
    ]
    if not candidates:
        return None
    exam = min(candidates, key=lambda a: try_parse_rfc3339(a.due_at))
    return ExamCountdown(assignment=exam, days_until=days_until(exam.due_at, today, tz))


class AssignmentAggregator:
    """Per-course assignment loading through the short-lived assignment cache."""

    def __init__(
        self,
        source: AssignmentSource,
        store: StudyStore,
        *,
        tz: Optional[tzinfo] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._source = source
        self._store = store
        self.tz = tz
        self._clock = clock

    def today(self) -> date:
        return self._clock().astimezone(self.tz).date()

    async def load_assignments(self, token: str, course_id: int) -> List[CanvasAssignment]:
        cached = self._store.get_cached_assignments(course_id)
        if cached is not None:
            return [
                CanvasAssignment(
                    id=a.id,
                    name=a.name,
                    due_at=a.due_at,
                    course_id=a.course_id,
                    submission_state=a.submission_state,
                )
                for a in cached.assignments
            ]
        assignments = await self._source.fetch_course_assignments(token, course_id)
        self._store.save_cached_assignments(course_id, assignments)
        return assignments

    async def upcoming_by_course(self, token: str, course_ids: Sequence[int]) -> Dict[int, List[CanvasAssignment]]:
        """Upcoming assignments per course. A course whose load fails contributes an empty list."""
        results = await asyncio.gather(
            *(self._load_isolated(token, course_id) for course_id in course_ids)
        )
        today = self.today()
        return {
            course_id: upcoming_assignments(assignments, today, self.tz)
            for course_id, assignments in zip(course_ids, results)
        }

    async def _load_isolated(self, token: str, course_id: int) -> List[CanvasAssignment]:
        try:
            return await self.load_assignments(token, course_id)
        except (CanvasApiError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("Failed to load assignments, showing none. course_id=%s error=%s", course_id, e)
            return []
