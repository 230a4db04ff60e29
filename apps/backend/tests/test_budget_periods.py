from __future__ import annotations

from collections import Counter
from datetime import date
from decimal import Decimal

import pytest

from budget_engine import models
from budget_engine.core.errors import CalendarCoverageError
from budget_engine.models import Granularity
from budget_engine.schemas import BudgetSchema
from budget_engine.services import (
    BudgetPeriodService,
    InMemoryCalendar,
    SqlCalendarProvider,
    generate_calendar_periods,
)


def _budget(**kw) -> BudgetSchema:
    values = dict(
        id="b1",
        owner_id="user-1",
        amount=Decimal("100"),
        granularity="monthly",
        start_date=date(2025, 1, 1),
        end_date=date(2025, 3, 31),
    )
    values.update(kw)
    return BudgetSchema(**values)


def test_build_budget_periods_covers_every_granularity():
    service = BudgetPeriodService(InMemoryCalendar.for_years(2025, 2025))

    rows = service.build_budget_periods(_budget())

    counts = Counter(r.granularity for r in rows)
    assert counts == {Granularity.MONTHLY: 3, Granularity.HALF_MONTH: 6, Granularity.WEEKLY: 13}
    by_period = {r.period_id: r for r in rows}
    assert by_period["2025M02"].allocated_amount == Decimal("100")
    assert by_period["2025BM01A"].allocated_amount == Decimal("48.39")
    assert by_period["2025BM01A"].id == "b1_2025BM01A"
    assert by_period["2025W02"].period_start == date(2025, 1, 5)


def test_open_ended_budget_uses_until():
    service = BudgetPeriodService(InMemoryCalendar.for_years(2025, 2025))
    rows = service.build_budget_periods(_budget(end_date=None), until=date(2025, 1, 31))
    assert sorted(r.period_id for r in rows if r.granularity == Granularity.MONTHLY) == ["2025M01"]


def test_missing_calendar_raises():
    service = BudgetPeriodService(InMemoryCalendar([]))
    with pytest.raises(CalendarCoverageError):
        service.build_budget_periods(_budget())


def test_sync_replaces_stored_periods(db_session, add_budget):
    db_session.add_all(models.CalendarPeriod(**p.model_dump()) for p in generate_calendar_periods(2025, 2025))
    db_session.commit()
    row = add_budget(id="b1", end_date=date(2025, 1, 31))
    service = BudgetPeriodService(SqlCalendarProvider(db_session))

    first = service.sync_budget_periods(db_session, BudgetSchema.model_validate(row))
    row.amount = Decimal("310")
    db_session.commit()
    second = service.sync_budget_periods(db_session, BudgetSchema.model_validate(row))

    assert len(first) == len(second)
    stored = db_session.query(models.BudgetPeriod).filter_by(budget_id="b1").all()
    assert len(stored) == len(second)
    weekly = next(p for p in stored if p.period_id == "2025W02")
    assert weekly.allocated_amount == Decimal("70.00")
