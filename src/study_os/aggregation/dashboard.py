from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from study_os.aggregation.assignments import (
    AssignmentAggregator,
    ExamCountdown,
    format_due_label,
    nearest_exam,
    next_deadline,
)
from study_os.canvas.models import CanvasAssignment
from study_os.courses.directory import CourseDirectory, CourseWithNickname

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CourseCard:
    course: CourseWithNickname
    next_assignment: Optional[CanvasAssignment] = None
    due_label: Optional[str] = None


@dataclass(slots=True)
class DashboardView:
    cards: List[CourseCard] = field(default_factory=list)
    exam: Optional[ExamCountdown] = None


class DashboardService:
    """Next deadline per visible course plus the nearest exam across all of them."""

    def __init__(self, courses: CourseDirectory, assignments: AssignmentAggregator) -> None:
        self._courses = courses
        self._assignments = assignments

    async def refresh(self) -> DashboardView:
        token = self._courses.require_token()
        courses = await self._courses.list_courses()
        upcoming = await self._assignments.upcoming_by_course(token, [c.canvas_id for c in courses])
        today = self._assignments.today()
        tz = self._assignments.tz

        cards: List[CourseCard] = []
        for course in courses:
            next_assignment = next_deadline(upcoming.get(course.canvas_id, []))
            if next_assignment is not None:
                cards.append(CourseCard(course, next_assignment, format_due_label(next_assignment.due_at, today, tz)))
            else:
                cards.append(CourseCard(course))

        view = DashboardView(cards=cards, exam=nearest_exam(upcoming, today, tz))
        logger.info(
            "Dashboard refreshed. course_count=%d exam=%s",
            len(cards),
            view.exam.assignment.name if view.exam else None,
        )
        return view
