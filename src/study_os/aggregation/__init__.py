"""Derived views over Canvas data and the timers that keep them fresh."""

from study_os.aggregation.assignments import AssignmentAggregator, ExamCountdown
from study_os.aggregation.calendar import CalendarService, CalendarView, calendar_window, filter_events, group_events_by_date
from study_os.aggregation.dashboard import CourseCard, DashboardService, DashboardView
from study_os.aggregation.scheduler import AutoRefreshScheduler, IntervalChannel, RefreshSettings

__all__ = [
    "AssignmentAggregator",
    "AutoRefreshScheduler",
    "CalendarService",
    "CalendarView",
    "CourseCard",
    "DashboardService",
    "DashboardView",
    "ExamCountdown",
    "IntervalChannel",
    "RefreshSettings",
    "calendar_window",
    "filter_events",
    "group_events_by_date",
]
