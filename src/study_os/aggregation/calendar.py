from __future__ import annotations

import asyncio
import calendar as month_calendar
import logging
from dataclasses import dataclass, field
from datetime import date, tzinfo
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Set, Tuple

import aiohttp

from study_os.canvas.models import EXTERNAL_CALENDAR_CONTEXT, CalendarEvent, course_context
from study_os.core.utils import local_date
from study_os.errors import CalendarFeedError, CanvasApiError, InvalidTokenError
from study_os.ical.feed import fetch_ical_events
from study_os.storage.accessor import StudyStore

logger = logging.getLogger(__name__)

DEFAULT_COURSE_COLOR = "#002E5D"


class CalendarSource(Protocol):
    async def fetch_calendar_events(
        self, token: str, start_date: date, end_date: date, context_codes: Sequence[str]
    ) -> List[CalendarEvent]:
        ...

    async def fetch_course_colors(self, token: str, course_ids: Sequence[int]) -> Dict[int, str]:
        ...


def calendar_window(day: date) -> Tuple[date, date]:
    """First day of the previous month through the last day of the next month."""
    if day.month == 1:
        start = date(day.year - 1, 12, 1)
    else:
        start = date(day.year, day.month - 1, 1)
    if day.month == 12:
        end_year, end_month = day.year + 1, 1
    else:
        end_year, end_month = day.year, day.month + 1
    end = date(end_year, end_month, month_calendar.monthrange(end_year, end_month)[1])
    return start, end


def event_date_key(event: CalendarEvent, tz: Optional[tzinfo] = None) -> Optional[str]:
    if event.all_day_date:
        return event.all_day_date
    if event.start_at:
        try:
            return local_date(event.start_at, tz).isoformat()
        except ValueError:
            return None
    return None


def group_events_by_date(events: Iterable[CalendarEvent], tz: Optional[tzinfo] = None) -> Dict[str, List[CalendarEvent]]:
    """Events bucketed by local calendar day, each bucket sorted by start (untimed first)."""
    grouped: Dict[str, List[CalendarEvent]] = {}
    for event in events:
        key = event_date_key(event, tz)
        if key is None:
            continue
        grouped.setdefault(key, []).append(event)
    for bucket in grouped.values():
        bucket.sort(key=lambda event: event.start_at or "")
    return grouped


def filter_events(
    events: Iterable[CalendarEvent],
    selected: Optional[Set[int]],
    *,
    include_external: bool = False,
) -> List[CalendarEvent]:
    """
    Keep events of selected courses; None selects every course.

    Events from the external feed pass only when include_external is set.
    """
    kept: List[CalendarEvent] = []
    for event in events:
        if event.context_code == EXTERNAL_CALENDAR_CONTEXT:
            if include_external:
                kept.append(event)
            continue
        if selected is None:
            kept.append(event)
            continue
        course_id = event.course_id
        if course_id is not None and course_id in selected:
            kept.append(event)
    return kept


@dataclass(slots=True)
class CalendarView:
    start: date
    end: date
    events_by_date: Dict[str, List[CalendarEvent]] = field(default_factory=dict)
    colors: Dict[int, str] = field(default_factory=dict)
    selected: Set[int] = field(default_factory=set)
    include_external: bool = False
    errors: List[str] = field(default_factory=list)

    def color_for(self, event: CalendarEvent, default: str = DEFAULT_COURSE_COLOR) -> str:
        course_id = event.course_id
        if course_id is None:
            return default
        return self.colors.get(course_id, default)


class CalendarService:
    """Three-month calendar over the selected courses plus the optional external feed."""

    def __init__(
        self,
        source: CalendarSource,
        store: StudyStore,
        session: aiohttp.ClientSession,
        *,
        tz: Optional[tzinfo] = None,
        default_color: str = DEFAULT_COURSE_COLOR,
        feed_timeout_seconds: Optional[float] = None,
    ) -> None:
        self._source = source
        self._store = store
        self._session = session
        self.tz = tz
        self.default_color = default_color
        self._feed_timeout_seconds = feed_timeout_seconds

    def selected_courses(self, course_ids: Sequence[int]) -> Set[int]:
        """Selected course ids, limited to the visible courses passed in."""
        visible = set(course_ids)
        saved = self._store.get_calendar_selected_courses()
        return visible if saved is None else saved & visible

    def toggle_course(self, course_id: int, course_ids: Sequence[int]) -> Set[int]:
        selected = self.selected_courses(course_ids)
        if course_id in selected:
            selected.discard(course_id)
        else:
            selected.add(course_id)
        self._store.save_calendar_selected_courses(selected)
        return selected

    def reset_selection(self) -> None:
        self._store.save_calendar_selected_courses(None)

    async def load_colors(self, token: Optional[str], course_ids: Sequence[int]) -> Dict[int, str]:
        stored = self._store.get_course_colors()
        missing = [course_id for course_id in course_ids if course_id not in stored]
        if token is None or not missing:
            return stored
        try:
            fetched = await self._source.fetch_course_colors(token, missing)
        except (CanvasApiError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("Failed to fetch course colors, using stored ones. error=%s", e)
            return stored
        if not fetched:
            return stored
        updated = {**stored, **fetched}
        self._store.save_course_colors(updated)
        return updated

    async def load(self, token: Optional[str], course_ids: Sequence[int], today: date) -> CalendarView:
        start, end = calendar_window(today)
        selected = self.selected_courses(course_ids)
        include_external = self._store.get_calendar_feed_selected()
        view = CalendarView(start=start, end=end, selected=selected, include_external=include_external)
        view.colors = await self.load_colors(token, course_ids)

        events: List[CalendarEvent] = []
        if token is not None and selected:
            context_codes = [course_context(course_id) for course_id in sorted(selected)]
            try:
                events.extend(await self._source.fetch_calendar_events(token, start, end, context_codes))
            except InvalidTokenError:
                raise
            except (CanvasApiError, aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.warning("Failed to load Canvas calendar events. error=%s", e)
                view.errors.append(str(e) or "Failed to load calendar events")

        feed_url = self._store.get_calendar_feed_url()
        if include_external and feed_url:
            try:
                events.extend(
                    await fetch_ical_events(
                        self._session,
                        feed_url,
                        start,
                        end,
                        tz=self.tz,
                        timeout_seconds=self._feed_timeout_seconds,
                    )
                )
            except CalendarFeedError as e:
                logger.warning("Failed to load calendar feed. error=%s", e)
                view.errors.append(str(e))

        view.events_by_date = group_events_by_date(
            filter_events(events, selected, include_external=include_external),
            self.tz,
        )
        return view
