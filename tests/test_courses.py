import unittest
from datetime import datetime, timezone
from typing import Dict, List

from study_os.aggregation.assignments import AssignmentAggregator
from study_os.aggregation.dashboard import DashboardService
from study_os.canvas.models import CanvasAssignment, CanvasCourse
from study_os.courses import CourseDirectory
from study_os.courses.directory import apply_nicknames
from study_os.errors import InvalidTokenError, MissingTokenError, StudyOsError
from study_os.storage import MemoryStore, StudyStore

NOW = datetime(2024, 3, 4, 12, 0, tzinfo=timezone.utc)

COURSES = [
    CanvasCourse(id=1, name="Financial Accounting", course_code="ACC 200", workflow_state="available"),
    CanvasCourse(id=2, name="Business Writing", course_code="BUS 201", workflow_state="available"),
    CanvasCourse(id=3, name="Statistics", course_code="STAT 121", workflow_state="available"),
]


class FakeCourseSource:
    def __init__(self) -> None:
        self.valid_token = "good"
        self.calls = 0

    async def fetch_courses(self, token: str) -> List[CanvasCourse]:
        self.calls += 1
        if token != self.valid_token:
            raise InvalidTokenError()
        return list(COURSES)


class FakeAssignmentSource:
    def __init__(self, by_course: Dict[int, List[CanvasAssignment]]) -> None:
        self.by_course = by_course

    async def fetch_course_assignments(self, token: str, course_id: int) -> List[CanvasAssignment]:
        return list(self.by_course.get(course_id, []))


class ApplyNicknamesTests(unittest.TestCase):
    def test_nickname_falls_back_to_name_and_hidden_are_dropped(self) -> None:
        courses = apply_nicknames(COURSES, {1: "Accounting"}, [3], {2: "#00ff00"})
        self.assertEqual([(c.canvas_id, c.nickname) for c in courses], [(1, "Accounting"), (2, "Business Writing")])
        self.assertEqual(courses[0].href, "/course/1")
        self.assertEqual(courses[1].color, "#00ff00")


class CourseDirectoryTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.source = FakeCourseSource()
        self.store = StudyStore(MemoryStore())
        self.directory = CourseDirectory(self.source, self.store)

    async def test_invalid_token_is_not_saved(self) -> None:
        with self.assertRaises(InvalidTokenError):
            await self.directory.sync("bad")
        self.assertIsNone(self.store.get_canvas_token())

    async def test_blank_token_is_rejected_without_a_request(self) -> None:
        with self.assertRaises(StudyOsError):
            await self.directory.sync("   ")
        self.assertEqual(self.source.calls, 0)

    async def test_sync_stores_trimmed_token_and_splits_hidden(self) -> None:
        self.directory.hide(2)

        result = await self.directory.sync("  good ")

        self.assertEqual(self.store.get_canvas_token(), "good")
        self.assertEqual([c.canvas_id for c in result.courses], [1, 3])
        self.assertEqual([c.id for c in result.hidden], [2])

    async def test_rename_hide_and_show(self) -> None:
        await self.directory.sync("good")
        self.directory.rename(1, "  Accounting  ")
        self.directory.hide(3)

        courses = await self.directory.list_courses()
        self.assertEqual([c.display_name for c in courses], ["Accounting", "Business Writing"])
        self.assertEqual([c.id for c in await self.directory.hidden_courses()], [3])

        self.directory.show(3)
        self.assertEqual(len(await self.directory.list_courses()), 3)

    async def test_listing_requires_stored_token(self) -> None:
        with self.assertRaises(MissingTokenError):
            await self.directory.list_courses()


class DashboardServiceTests(unittest.IsolatedAsyncioTestCase):
    async def test_cards_and_exam_countdown(self) -> None:
        store = StudyStore(MemoryStore(), clock=lambda: NOW)
        store.save_canvas_token("good")
        store.hide_course(3)
        directory = CourseDirectory(FakeCourseSource(), store)
        assignments = AssignmentAggregator(
            FakeAssignmentSource(
                {
                    1: [
                        CanvasAssignment(id=10, name="Homework 5", due_at="2024-03-04T20:00:00Z", course_id=1),
                        CanvasAssignment(id=11, name="Midterm Exam", due_at="2024-03-05T15:00:00Z", course_id=1),
                    ],
                }
            ),
            store,
            tz=timezone.utc,
            clock=lambda: NOW,
        )

        view = await DashboardService(directory, assignments).refresh()

        self.assertEqual([card.course.canvas_id for card in view.cards], [1, 2])
        self.assertEqual(view.cards[0].next_assignment.id, 10)
        self.assertEqual(view.cards[0].due_label, "Today")
        self.assertIsNone(view.cards[1].next_assignment)
        self.assertEqual(view.exam.assignment.name, "Midterm Exam")
        self.assertEqual(view.exam.days_until, 1)


if __name__ == "__main__":
    unittest.main()
