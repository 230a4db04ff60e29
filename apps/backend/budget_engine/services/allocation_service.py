"""
Period allocation calculator

Converts a budget amount denominated in one granularity into the amount
allocated to a calendar period of another granularity, based on the days the
target period actually spans.

- same granularity: the nominal amount, untouched (also for truncated periods)
- monthly source: every day carries its own month's rate (amount / days in
  that month), so weeks straddling two months mix two rates
- half-month source: amount / days in the half; weekly targets use the first
  half (15 days), monthly targets walk each day's own half
- weekly source: amount / 7 per day

Only the final allocation is rounded (half-up, 2 places).
"""

from __future__ import annotations

from collections import Counter
from datetime import timedelta
from decimal import Decimal
from typing import Any

from ..core.logging_setup import get_logger
from ..models import Granularity
from ..schemas import CalendarPeriodSchema
from ..utils.calendar import (
    FIRST_HALF_DAYS,
    days_in_month,
    half_month_days,
    half_of,
    inclusive_days,
    to_day,
)
from ..utils.money import round_money, to_money

logger = get_logger(__name__)

DAYS_IN_WEEK = 7
_ONE_DAY = timedelta(days=1)


def period_days(period: CalendarPeriodSchema) -> int:
    return inclusive_days(period.start, period.end)


def daily_rate(amount: Any, granularity: Granularity | str, period_days: int | None = None) -> Decimal:
    """
    Unrounded daily spending rate.

    Monthly and half-month rates depend on the concrete period; without
    ``period_days`` they fall back to 30 and 15 days.
    """
    value = to_money(amount)
    granularity = Granularity(granularity)
    if granularity == Granularity.WEEKLY:
        return value / DAYS_IN_WEEK
    if granularity == Granularity.HALF_MONTH:
        return value / (period_days or FIRST_HALF_DAYS)
    return value / (period_days or 30)


def allocate(amount: Any, source_granularity: Granularity | str, target_period: CalendarPeriodSchema) -> Decimal:
    """
    Allocated amount of a budget for ``target_period``.

    Args:
        amount: budget amount in its own granularity (major units)
        source_granularity: granularity the amount is denominated against
        target_period: catalog period being viewed

    Returns:
        ``amount`` unchanged for same-granularity targets, otherwise the
        day-based allocation rounded to cents.

    Example:
        >>> feb_b = CalendarPeriodSchema(id="2024BM02B", granularity="half_month",
        ...     start=date(2024, 2, 16), end=date(2024, 2, 29), year=2024, month=2, half_index=2)
        >>> allocate(100, "monthly", feb_b)
        Decimal('48.28')
    """
    value = to_money(amount)
    source = Granularity(source_granularity)

    if target_period.granularity == source:
        return value

    days = period_days(target_period)
    if source == Granularity.MONTHLY:
        raw = _monthly_to_target(value, target_period)
    elif source == Granularity.HALF_MONTH:
        raw = _half_month_to_target(value, target_period, days)
    else:
        raw = value * days / DAYS_IN_WEEK

    allocated = round_money(raw)
    logger.debug(
        "Allocated %s %s -> %s (%s, %d days): %s",
        value,
        source.value,
        target_period.id,
        target_period.granularity.value,
        days,
        allocated,
    )
    return allocated


def _walk_days(period: CalendarPeriodSchema):
    day, end = to_day(period.start), to_day(period.end)
    while day <= end:
        yield day
        day += _ONE_DAY


def _monthly_to_target(amount: Decimal, period: CalendarPeriodSchema) -> Decimal:
    # Count days per calendar month, then apply each month's own rate once
    per_month = Counter((day.year, day.month) for day in _walk_days(period))
    total = Decimal(0)
    for (year, month), count in sorted(per_month.items()):
        total += amount * count / days_in_month(year, month)
    return total


def _half_month_to_target(amount: Decimal, period: CalendarPeriodSchema, days: int) -> Decimal:
    if period.granularity == Granularity.WEEKLY:
        # Weeks carry no half metadata: first-half convention (15 days).
        # Known approximation for weeks lying in a 13/14/16-day second half.
        return amount * days / FIRST_HALF_DAYS

    per_half = Counter((day.year, day.month, half_of(day)) for day in _walk_days(period))
    total = Decimal(0)
    for (year, month, half), count in sorted(per_half.items()):
        total += amount * count / half_month_days(year, month, half)
    return total
