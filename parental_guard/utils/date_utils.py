"""Wall-clock window utilities

All datetimes in the core are naive and interpreted as the account-local
wall clock.
"""

from datetime import datetime, timedelta

NORMAL_HOURS_START = 7
NORMAL_HOURS_END = 21


def is_normal_hours(
    moment: datetime,
    start_hour: int = NORMAL_HOURS_START,
    end_hour: int = NORMAL_HOURS_END,
) -> bool:
    """True inside [start_hour:00, end_hour:00)"""
    return start_hour <= moment.hour < end_hour


def is_night(
    moment: datetime,
    start_hour: int = NORMAL_HOURS_START,
    end_hour: int = NORMAL_HOURS_END,
) -> bool:
    return not is_normal_hours(moment, start_hour, end_hour)


def same_calendar_month(a: datetime, b: datetime) -> bool:
    return a.year == b.year and a.month == b.month


def within_trailing(moment: datetime, now: datetime, window: timedelta) -> bool:
    """True if moment falls in the half-open window (now - window, now]"""
    elapsed = now - moment
    return timedelta(0) <= elapsed < window


def whole_days_between(start: datetime, end: datetime) -> int:
    """Whole days elapsed, truncated toward zero"""
    return (end - start).days if end >= start else -((start - end).days)
