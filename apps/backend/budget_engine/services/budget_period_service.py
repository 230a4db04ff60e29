"""
Budget period records

Materialises one allocated amount per (budget, catalog period) for every
granularity, so each calendar view can show the budget without recomputing.
"""

from __future__ import annotations

from datetime import date, timedelta

from sqlalchemy import delete
from sqlalchemy.orm import Session

from .. import models
from ..core.errors import CalendarCoverageError
from ..core.logging_setup import get_logger
from ..models import Granularity
from ..schemas import BudgetSchema
from .allocation_service import allocate
from .calendar_service import CalendarProvider

logger = get_logger(__name__)

# Open-ended budgets are materialised this far past their start by default
DEFAULT_HORIZON = timedelta(days=365)


class BudgetPeriodService:
    """Build and store ``BudgetPeriod`` rows for a budget."""

    def __init__(self, calendar: CalendarProvider) -> None:
        self.calendar = calendar

    def build_budget_periods(
        self, budget: BudgetSchema, until: date | None = None
    ) -> list[models.BudgetPeriod]:
        """
        Allocated periods for ``budget`` across all granularities.

        Args:
            budget: source budget
            until: last day to materialise for open-ended budgets

        Returns:
            Unsaved ``BudgetPeriod`` rows ordered by granularity and start.

        Raises:
            CalendarCoverageError: when the catalog has no period in range.
        """
        range_end = budget.end_date or until or (budget.start_date + DEFAULT_HORIZON)
        if range_end < budget.start_date:
            return []

        rows: list[models.BudgetPeriod] = []
        for granularity in Granularity:
            for period in self.calendar.list_periods(granularity, budget.start_date, range_end):
                rows.append(
                    models.BudgetPeriod(
                        id=f"{budget.id}_{period.id}",
                        budget_id=budget.id,
                        period_id=period.id,
                        granularity=period.granularity,
                        period_start=period.start,
                        period_end=period.end,
                        allocated_amount=allocate(budget.amount, budget.granularity, period),
                    )
                )
        if not rows:
            raise CalendarCoverageError(
                f"No calendar periods found between {budget.start_date} and {range_end}; "
                "generate the calendar catalog first"
            )
        return rows

    def sync_budget_periods(
        self, db: Session, budget: BudgetSchema, until: date | None = None
    ) -> list[models.BudgetPeriod]:
        """Replace the stored periods of ``budget`` (after create or amount edits)."""
        rows = self.build_budget_periods(budget, until)
        db.execute(delete(models.BudgetPeriod).where(models.BudgetPeriod.budget_id == budget.id))
        db.add_all(rows)
        db.commit()
        logger.info("Stored %d budget periods for budget %s", len(rows), budget.id)
        return rows
