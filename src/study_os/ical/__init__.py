"""External iCal feed support."""

from study_os.ical.feed import EVENT_TYPE, EXAM_EVENT_TYPE, USER_AGENT, fetch_ical_events, parse_ical_events

__all__ = ["EVENT_TYPE", "EXAM_EVENT_TYPE", "USER_AGENT", "fetch_ical_events", "parse_ical_events"]
