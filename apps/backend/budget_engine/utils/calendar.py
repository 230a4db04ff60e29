"""
Calendar arithmetic shared by the allocation calculator and the catalog.

All periods are inclusive on both ends and counted in whole calendar days.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime

FIRST_HALF_DAYS = 15


def to_day(value: date | datetime) -> date:
    """Drop the time component; periods are compared by calendar day."""
    if isinstance(value, datetime):
        return value.date()
    return value


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def half_of(day: date) -> int:
    """1 for days 1-15, 2 for day 16 onwards."""
    return 1 if day.day <= FIRST_HALF_DAYS else 2


def half_month_days(year: int, month: int, half: int) -> int:
    """
    Length of a half-month period.

    The first half is always 15 days; the second half is whatever remains
    (13 in a common-year February, 16 in a 31-day month).
    """
    if half == 1:
        return FIRST_HALF_DAYS
    if half != 2:
        raise ValueError(f"half must be 1 or 2, got {half!r}")
    return days_in_month(year, month) - FIRST_HALF_DAYS


def inclusive_days(start: date | datetime, end: date | datetime) -> int:
    """
    Number of calendar days covered by ``start``..``end`` inclusive.

    Example:
        >>> inclusive_days(date(2024, 2, 16), date(2024, 2, 29))
        14
    """
    start_day, end_day = to_day(start), to_day(end)
    if end_day < start_day:
        raise ValueError(f"period end {end_day} precedes start {start_day}")
    return (end_day - start_day).days + 1
