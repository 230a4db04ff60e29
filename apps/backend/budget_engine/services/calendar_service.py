"""
Calendar catalog access

The catalog is generated by an external job and is read-only here. Callers
receive it through ``CalendarProvider`` so tests can pass a synthetic one.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Iterable, Protocol, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from .. import models
from ..core.errors import PeriodNotFoundError
from ..models import Granularity
from ..schemas import CalendarPeriodSchema
from ..utils.calendar import FIRST_HALF_DAYS, days_in_month


class CalendarProvider(Protocol):
    def get_period(self, period_id: str) -> CalendarPeriodSchema:
        ...

    def list_periods(
        self, granularity: Granularity, start: date, end: date
    ) -> list[CalendarPeriodSchema]:
        """Periods of ``granularity`` whose start falls within ``start``..``end``."""
        ...


class InMemoryCalendar:
    """CalendarProvider over a fixed list of periods."""

    def __init__(self, periods: Iterable[CalendarPeriodSchema]) -> None:
        self._by_id = {p.id: p for p in periods}
        self._ordered = sorted(self._by_id.values(), key=lambda p: (p.start, p.id))

    @classmethod
    def for_years(cls, start_year: int, end_year: int) -> "InMemoryCalendar":
        return cls(generate_calendar_periods(start_year, end_year))

    def get_period(self, period_id: str) -> CalendarPeriodSchema:
        try:
            return self._by_id[period_id]
        except KeyError:
            raise PeriodNotFoundError(f"Calendar period {period_id} not found") from None

    def list_periods(
        self, granularity: Granularity, start: date, end: date
    ) -> list[CalendarPeriodSchema]:
        return [
            p for p in self._ordered
            if p.granularity == granularity and start <= p.start <= end
        ]


class SqlCalendarProvider:
    """CalendarProvider reading the ``calendarperiod`` table."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def get_period(self, period_id: str) -> CalendarPeriodSchema:
        row = self.db.get(models.CalendarPeriod, period_id)
        if row is None:
            raise PeriodNotFoundError(f"Calendar period {period_id} not found")
        return CalendarPeriodSchema.model_validate(row)

    def list_periods(
        self, granularity: Granularity, start: date, end: date
    ) -> list[CalendarPeriodSchema]:
        stmt = (
            select(models.CalendarPeriod)
            .where(
                models.CalendarPeriod.granularity == granularity,
                models.CalendarPeriod.start >= start,
                models.CalendarPeriod.start <= end,
            )
            .order_by(models.CalendarPeriod.start)
        )
        return [CalendarPeriodSchema.model_validate(row) for row in self.db.scalars(stmt)]


def generate_calendar_periods(start_year: int, end_year: int) -> list[CalendarPeriodSchema]:
    """
    Build a contiguous catalog for ``start_year``..``end_year`` inclusive.

    - monthly: ``2025M01``
    - half-month: ``2025BM01A`` (1-15) / ``2025BM01B`` (16-end)
    - weekly: Sunday-start weeks ``2025W01``; a week belongs to the year its
      start falls in, and the first week may begin in December of the
      previous year.
    """
    if end_year < start_year:
        raise ValueError("end_year must be >= start_year")

    periods: list[CalendarPeriodSchema] = []
    for year in range(start_year, end_year + 1):
        for month in range(1, 13):
            last = days_in_month(year, month)
            periods.append(
                CalendarPeriodSchema(
                    id=f"{year}M{month:02d}",
                    granularity=Granularity.MONTHLY,
                    start=date(year, month, 1),
                    end=date(year, month, last),
                    year=year,
                    month=month,
                )
            )
            periods.append(
                CalendarPeriodSchema(
                    id=f"{year}BM{month:02d}A",
                    granularity=Granularity.HALF_MONTH,
                    start=date(year, month, 1),
                    end=date(year, month, FIRST_HALF_DAYS),
                    year=year,
                    month=month,
                    half_index=1,
                )
            )
            periods.append(
                CalendarPeriodSchema(
                    id=f"{year}BM{month:02d}B",
                    granularity=Granularity.HALF_MONTH,
                    start=date(year, month, FIRST_HALF_DAYS + 1),
                    end=date(year, month, last),
                    year=year,
                    month=month,
                    half_index=2,
                )
            )
    periods.extend(_weekly_periods(start_year, end_year))
    return periods


def _weekly_periods(start_year: int, end_year: int) -> Sequence[CalendarPeriodSchema]:
    jan_first = date(start_year, 1, 1)
    # date.weekday(): Monday=0 .. Sunday=6
    week_start = jan_first - timedelta(days=(jan_first.weekday() + 1) % 7)
    last_day = date(end_year, 12, 31)

    weeks: list[CalendarPeriodSchema] = []
    counters: dict[int, int] = {}
    while week_start <= last_day:
        year = max(week_start.year, start_year)
        counters[year] = counters.get(year, 0) + 1
        weeks.append(
            CalendarPeriodSchema(
                id=f"{year}W{counters[year]:02d}",
                granularity=Granularity.WEEKLY,
                start=week_start,
                end=week_start + timedelta(days=6),
                year=year,
                week_number=counters[year],
            )
        )
        week_start += timedelta(days=7)
    return weeks
