import unittest
from datetime import date, timezone

import aiohttp
from aiohttp import web
from aiohttp.test_utils import TestServer

from study_os.canvas.models import EXTERNAL_CALENDAR_CONTEXT
from study_os.errors import CalendarFeedError
from study_os.ical import EVENT_TYPE, EXAM_EVENT_TYPE, USER_AGENT, fetch_ical_events, parse_ical_events
from study_os.ical.feed import event_id_base, event_type_for, split_location

WINDOW = (date(2024, 2, 1), date(2024, 4, 30))

SAMPLE_ICS = "\r\n".join(
    [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "PRODID:-//Example//Calendar//EN",
        "BEGIN:VEVENT",
        "UID:event-123456789012@google.com",
        "DTSTART:20240315T140000Z",
        "DTEND:20240315T150000Z",
        "SUMMARY:Accounting Midterm",
        "LOCATION:Room 101\\, 123 Main St\\, Provo",
        "END:VEVENT",
        "BEGIN:VEVENT",
        "UID:trip-500@google.com",
        "DTSTART;VALUE=DATE:20240310",
        "DTEND;VALUE=DATE:20240313",
        "SUMMARY:Field trip",
        "END:VEVENT",
        "BEGIN:VEVENT",
        "UID:old-1@google.com",
        "DTSTART:20231101T090000Z",
        "DTEND:20231101T100000Z",
        "SUMMARY:Long gone",
        "END:VEVENT",
        "BEGIN:VEVENT",
        "DTSTART:20240320T090000Z",
        "DURATION:PT2H",
        "SUMMARY:Study group",
        "END:VEVENT",
        "END:VCALENDAR",
        "",
    ]
)


class HelperTests(unittest.TestCase):
    def test_event_type_uses_summary_and_description(self) -> None:
        self.assertEqual(event_type_for("Quiz 2", None), EXAM_EVENT_TYPE)
        self.assertEqual(event_type_for("Review", "bring notes for the FINAL"), EXAM_EVENT_TYPE)
        self.assertEqual(event_type_for("Club meeting", "pizza"), EVENT_TYPE)

    def test_split_location_at_first_comma(self) -> None:
        self.assertEqual(split_location("Room 101, 123 Main St, Provo"), ("Room 101", "123 Main St, Provo"))
        self.assertEqual(split_location("Library"), ("Library", None))
        self.assertEqual(split_location(None), (None, None))

    def test_event_id_from_uid_digits(self) -> None:
        self.assertEqual(event_id_base("event-123456789012@google.com", "x"), 456789012)
        self.assertEqual(event_id_base("abc", "x"), event_id_base("abc", "y"))
        self.assertEqual(event_id_base(None, "fallback"), event_id_base(None, "fallback"))


class ParseIcalTests(unittest.TestCase):
    def setUp(self) -> None:
        self.events = parse_ical_events(SAMPLE_ICS, *WINDOW, tz=timezone.utc)

    def test_window_filter_drops_old_events(self) -> None:
        self.assertNotIn("Long gone", [e.title for e in self.events])

    def test_all_day_event_expands_per_day(self) -> None:
        trip = [e for e in self.events if e.title == "Field trip"]
        self.assertEqual([e.all_day_date for e in trip], ["2024-03-10", "2024-03-11", "2024-03-12"])
        self.assertTrue(all(e.all_day for e in trip))
        self.assertEqual([e.id for e in trip], [500, 501, 502])
        self.assertEqual(trip[0].start_at, "2024-03-10T00:00:00Z")

    def test_timed_event_fields(self) -> None:
        midterm = next(e for e in self.events if e.title == "Accounting Midterm")
        self.assertEqual(midterm.type, EXAM_EVENT_TYPE)
        self.assertEqual(midterm.id, 456789012)
        self.assertEqual(midterm.start_at, "2024-03-15T14:00:00Z")
        self.assertEqual(midterm.end_at, "2024-03-15T15:00:00Z")
        self.assertEqual(midterm.location_name, "Room 101")
        self.assertEqual(midterm.location_address, "123 Main St, Provo")
        self.assertEqual(midterm.context_code, EXTERNAL_CALENDAR_CONTEXT)
        self.assertFalse(midterm.all_day)

    def test_duration_sets_end(self) -> None:
        group = next(e for e in self.events if e.title == "Study group")
        self.assertEqual(group.end_at, "2024-03-20T11:00:00Z")
        self.assertEqual(group.type, EVENT_TYPE)

    def test_events_sorted_by_start(self) -> None:
        self.assertEqual(
            [e.title for e in self.events],
            ["Field trip", "Field trip", "Field trip", "Accounting Midterm", "Study group"],
        )

    def test_invalid_feed_raises(self) -> None:
        with self.assertRaises(CalendarFeedError):
            parse_ical_events("not a calendar", *WINDOW)


class FetchIcalTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.user_agents = []
        app = web.Application()
        app.router.add_get("/feed.ics", self.feed)
        app.router.add_get("/missing.ics", self.missing)
        self.server = TestServer(app)
        await self.server.start_server()
        self.session = aiohttp.ClientSession()

    async def asyncTearDown(self) -> None:
        await self.session.close()
        await self.server.close()

    async def feed(self, request: web.Request) -> web.Response:
        self.user_agents.append(request.headers.get("User-Agent"))
        return web.Response(text=SAMPLE_ICS, content_type="text/calendar")

    async def missing(self, request: web.Request) -> web.Response:
        return web.Response(status=404)

    async def test_fetch_parses_feed(self) -> None:
        url = str(self.server.make_url("/feed.ics"))
        events = await fetch_ical_events(self.session, url, *WINDOW, tz=timezone.utc, timeout_seconds=5)
        self.assertEqual(len(events), 5)
        self.assertEqual(self.user_agents, [USER_AGENT])

    async def test_non_2xx_raises_with_status(self) -> None:
        url = str(self.server.make_url("/missing.ics"))
        with self.assertRaises(CalendarFeedError) as ctx:
            await fetch_ical_events(self.session, url, *WINDOW)
        self.assertEqual(ctx.exception.status, 404)

    async def test_network_failure_raises(self) -> None:
        with self.assertRaises(CalendarFeedError):
            await fetch_ical_events(self.session, "http://127.0.0.1:1/feed.ics", *WINDOW)


if __name__ == "__main__":
    unittest.main()
