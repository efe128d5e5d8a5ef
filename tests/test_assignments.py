import unittest
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List

from study_os.aggregation.assignments import (
    AssignmentAggregator,
    format_due_label,
    is_exam_like,
    nearest_exam,
    next_deadline,
    upcoming_assignments,
)
from study_os.canvas.models import CanvasAssignment
from study_os.errors import CanvasApiError
from study_os.storage import MemoryStore, StudyStore

NOW = datetime(2024, 3, 4, 12, 0, tzinfo=timezone.utc)
TODAY = NOW.date()


def _assignment(assignment_id: int, name: str, due_at, course_id: int = 1, state=None) -> CanvasAssignment:
    return CanvasAssignment(id=assignment_id, name=name, due_at=due_at, course_id=course_id, submission_state=state)


class FakeAssignmentSource:
    def __init__(self, by_course: Dict[int, object]) -> None:
        self.by_course = by_course
        self.calls: List[int] = []

    async def fetch_course_assignments(self, token: str, course_id: int) -> List[CanvasAssignment]:
        self.calls.append(course_id)
        result = self.by_course.get(course_id, [])
        if isinstance(result, Exception):
            raise result
        return list(result)


class UpcomingAssignmentsTests(unittest.TestCase):
    def test_keeps_today_and_later_that_are_not_completed(self) -> None:
        assignments = [
            _assignment(1, "Yesterday", "2024-03-03T23:00:00Z"),
            _assignment(2, "Later today", "2024-03-04T23:00:00Z"),
            _assignment(3, "Submitted", "2024-03-05T10:00:00Z", state="submitted"),
            _assignment(4, "Graded", "2024-03-05T10:00:00Z", state="graded"),
            _assignment(5, "Next week", "2024-03-11T10:00:00Z"),
            _assignment(6, "Tomorrow", "2024-03-05T08:00:00Z", state="unsubmitted"),
            _assignment(7, "No date", None),
        ]

        upcoming = upcoming_assignments(assignments, TODAY, timezone.utc)

        self.assertEqual([a.id for a in upcoming], [2, 6, 5])

    def test_due_earlier_today_still_counts(self) -> None:
        upcoming = upcoming_assignments([_assignment(1, "Quiz", "2024-03-04T00:30:00Z")], TODAY, timezone.utc)
        self.assertEqual([a.id for a in upcoming], [1])

    def test_next_deadline_is_first_upcoming(self) -> None:
        upcoming = upcoming_assignments(
            [_assignment(1, "Later", "2024-03-09T10:00:00Z"), _assignment(2, "Sooner", "2024-03-05T10:00:00Z")],
            TODAY,
            timezone.utc,
        )
        self.assertEqual(next_deadline(upcoming).id, 2)
        self.assertIsNone(next_deadline([]))

    def test_local_day_is_used_for_the_cutoff(self) -> None:
        # 02:00 UTC on the 4th is still the 3rd in UTC-5.
        tz = timezone(timedelta(hours=-5))
        upcoming = upcoming_assignments([_assignment(1, "Late", "2024-03-04T02:00:00Z")], TODAY, tz)
        self.assertEqual(upcoming, [])


class DueLabelTests(unittest.TestCase):
    def test_labels(self) -> None:
        self.assertEqual(format_due_label("2024-03-04T20:00:00Z", TODAY, timezone.utc), "Today")
        self.assertEqual(format_due_label("2024-03-05T20:00:00Z", TODAY, timezone.utc), "Tomorrow")
        self.assertEqual(format_due_label("2024-03-08T20:00:00Z", TODAY, timezone.utc), "In 4 days")
        self.assertEqual(format_due_label("2024-03-11T20:00:00Z", TODAY, timezone.utc), "In 7 days")
        self.assertEqual(format_due_label("2024-03-20T20:00:00Z", TODAY, timezone.utc), "Mar 20")


class ExamTests(unittest.TestCase):
    def test_keywords_are_case_insensitive(self) -> None:
        self.assertTrue(is_exam_like("MIDTERM review"))
        self.assertTrue(is_exam_like("Chapter 4 Test"))
        self.assertTrue(is_exam_like("Final Project"))
        self.assertFalse(is_exam_like("Homework 3"))

    def test_nearest_exam_ignores_earlier_non_exams(self) -> None:
        upcoming = {
            1: [_assignment(1, "Homework 5", "2024-03-04T20:00:00Z")],
            2: [
                _assignment(2, "Midterm Exam", "2024-03-05T15:00:00Z", course_id=2),
                _assignment(3, "Final Exam", "2024-04-20T15:00:00Z", course_id=2),
            ],
        }

        exam = nearest_exam(upcoming, TODAY, timezone.utc)

        self.assertIsNotNone(exam)
        self.assertEqual(exam.assignment.name, "Midterm Exam")
        self.assertEqual(exam.days_until, 1)

    def test_no_exam(self) -> None:
        self.assertIsNone(nearest_exam({1: [_assignment(1, "Essay", "2024-03-05T15:00:00Z")]}, TODAY))


class AssignmentAggregatorTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.store = StudyStore(MemoryStore(), clock=lambda: NOW)

    async def test_failing_course_contributes_empty_list(self) -> None:
        source = FakeAssignmentSource(
            {
                1: [_assignment(1, "Essay", "2024-03-06T10:00:00Z")],
                2: CanvasApiError(500),
            }
        )
        aggregator = AssignmentAggregator(source, self.store, tz=timezone.utc, clock=lambda: NOW)

        upcoming = await aggregator.upcoming_by_course("token", [1, 2])

        self.assertEqual([a.id for a in upcoming[1]], [1])
        self.assertEqual(upcoming[2], [])

    async def test_fresh_cache_avoids_refetch_and_keeps_submission_state(self) -> None:
        source = FakeAssignmentSource({1: [_assignment(1, "Essay", "2024-03-06T10:00:00Z", state="submitted")]})
        aggregator = AssignmentAggregator(source, self.store, tz=timezone.utc, clock=lambda: NOW)

        await aggregator.load_assignments("token", 1)
        cached = await aggregator.load_assignments("token", 1)

        self.assertEqual(source.calls, [1])
        self.assertEqual(cached[0].submission_state, "submitted")

    async def test_expired_cache_is_refetched(self) -> None:
        clock = {"now": NOW}
        store = StudyStore(MemoryStore(), clock=lambda: clock["now"])
        source = FakeAssignmentSource({1: []})
        aggregator = AssignmentAggregator(source, store, tz=timezone.utc, clock=lambda: clock["now"])

        await aggregator.load_assignments("token", 1)
        clock["now"] = NOW + timedelta(minutes=6)
        await aggregator.load_assignments("token", 1)

        self.assertEqual(source.calls, [1, 1])

    def test_today_uses_configured_zone(self) -> None:
        late = datetime(2024, 3, 4, 2, 0, tzinfo=timezone.utc)
        aggregator = AssignmentAggregator(
            FakeAssignmentSource({}), self.store, tz=timezone(timedelta(hours=-5)), clock=lambda: late
        )
        self.assertEqual(aggregator.today(), date(2024, 3, 3))


if __name__ == "__main__":
    unittest.main()
