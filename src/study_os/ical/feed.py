from __future__ import annotations

import asyncio
import logging
import re
import zlib
from datetime import date, datetime, time, timedelta, tzinfo
from typing import List, Optional, Tuple

import aiohttp
from icalendar import Calendar

from study_os.canvas.models import EXTERNAL_CALENDAR_CONTEXT, CalendarEvent
from study_os.core.utils import format_rfc3339, try_parse_rfc3339
from study_os.errors import CalendarFeedError

logger = logging.getLogger(__name__)

USER_AGENT = "study-os/1.0"

EXAM_EVENT_KEYWORDS = ("exam", "final", "midterm", "test", "quiz", "assessment", "evaluation")
EVENT_TYPE = "google-calendar"
EXAM_EVENT_TYPE = "google-calendar-exam"

_NON_DIGITS = re.compile(r"\D")


def event_type_for(summary: str, description: Optional[str]) -> str:
    text = f"{summary} {description or ''}".lower()
    if any(keyword in text for keyword in EXAM_EVENT_KEYWORDS):
        return EXAM_EVENT_TYPE
    return EVENT_TYPE


def split_location(location: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """'Room 101, 123 Main St, Provo' -> ('Room 101', '123 Main St, Provo')."""
    if not location:
        return None, None
    parts = [part.strip() for part in location.split(",")]
    if len(parts) > 1:
        return parts[0], ", ".join(parts[1:])
    return location, None


def event_id_base(uid: Optional[str], fallback: str) -> int:
    """Numeric id from the last nine digits of the UID, else a stable checksum."""
    digits = _NON_DIGITS.sub("", uid or "")[-9:]
    if digits and int(digits) != 0:
        return int(digits)
    return zlib.crc32((uid or fallback).encode("utf-8"))


def _is_all_day(value) -> bool:
    return isinstance(value, date) and not isinstance(value, datetime)


def _as_aware(value: datetime, tz: Optional[tzinfo]) -> datetime:
    if value.tzinfo is None:
        # Floating times are read in the calendar's display timezone.
        return value.replace(tzinfo=tz) if tz is not None else value.astimezone()
    return value


def _text(component, name: str) -> Optional[str]:
    value = component.get(name)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_ical_events(
    ical_text: str,
    start_date: date,
    end_date: date,
    tz: Optional[tzinfo] = None,
) -> List[CalendarEvent]:
    """
    Map VEVENTs overlapping [start_date, end_date] onto the Canvas event shape.

    All-day events emit one event per covered day (DTEND exclusive). Recurrence
    rules are not expanded; only the first occurrence is read.
    """
    try:
        calendar = Calendar.from_ical(ical_text)
    except ValueError as e:
        raise CalendarFeedError(f"Calendar feed is not valid iCal data: {e}") from e

    window_start = datetime.combine(start_date, time.min, tzinfo=tz).astimezone()
    window_end = datetime.combine(end_date, time.max, tzinfo=tz).astimezone()

    events: List[CalendarEvent] = []
    for component in calendar.walk("VEVENT"):
        dtstart = component.get("dtstart")
        if dtstart is None:
            continue
        start = dtstart.dt
        dtend = component.get("dtend")
        duration = component.get("duration")
        if dtend is not None:
            end = dtend.dt
        elif duration is not None:
            end = start + duration.dt
        else:
            end = start + timedelta(days=1) if _is_all_day(start) else None

        summary = _text(component, "summary") or "Untitled Event"
        description = _text(component, "description")
        location_name, location_address = split_location(_text(component, "location"))
        url = _text(component, "url") or ""
        uid = _text(component, "uid")
        common = dict(
            title=summary,
            context_code=EXTERNAL_CALENDAR_CONTEXT,
            type=event_type_for(summary, description),
            description=description,
            location_name=location_name,
            location_address=location_address,
            html_url=url,
        )

        if _is_all_day(start):
            end_day = end if _is_all_day(end) else start + timedelta(days=1)
            base_id = event_id_base(uid, f"{summary}|{start.isoformat()}")
            for offset in range(max(1, (end_day - start).days)):
                day = start + timedelta(days=offset)
                if day < start_date or day > end_date:
                    continue
                day_start = datetime.combine(day, time.min, tzinfo=tz)
                events.append(
                    CalendarEvent(
                        id=base_id + offset,
                        start_at=format_rfc3339(day_start),
                        end_at=format_rfc3339(day_start + timedelta(days=1)),
                        all_day=True,
                        all_day_date=day.isoformat(),
                        **common,
                    )
                )
            continue

        start_dt = _as_aware(start, tz)
        end_dt = _as_aware(end, tz) if isinstance(end, datetime) else None
        if start_dt < window_start and (end_dt is None or end_dt < window_start):
            continue
        if start_dt > window_end:
            continue
        events.append(
            CalendarEvent(
                id=event_id_base(uid, f"{summary}|{start_dt.isoformat()}"),
                start_at=format_rfc3339(start_dt),
                end_at=format_rfc3339(end_dt) if end_dt is not None else None,
                **common,
            )
        )

    events.sort(key=lambda event: try_parse_rfc3339(event.start_at) or window_start)
    return events


async def fetch_ical_events(
    session: aiohttp.ClientSession,
    feed_url: str,
    start_date: date,
    end_date: date,
    *,
    tz: Optional[tzinfo] = None,
    timeout_seconds: Optional[float] = None,
) -> List[CalendarEvent]:
    """Fetch an iCal feed and return its events inside the window, sorted by start."""
    timeout = aiohttp.ClientTimeout(total=timeout_seconds) if timeout_seconds else None
    try:
        async with session.get(feed_url, headers={"User-Agent": USER_AGENT}, timeout=timeout) as response:
            if not 200 <= response.status < 300:
                raise CalendarFeedError(
                    f"Failed to fetch calendar feed: {response.status} {response.reason or ''}".strip(),
                    status=response.status,
                )
            body = await response.text()
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise CalendarFeedError(f"Failed to fetch calendar feed: {e}") from e

    events = parse_ical_events(body, start_date, end_date, tz)
    logger.info("Calendar feed loaded. event_count=%d", len(events))
    return events
