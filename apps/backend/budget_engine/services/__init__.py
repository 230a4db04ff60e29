"""
Services package

Budget allocation, split consistency and reassignment logic.
"""

from .allocation_service import allocate, daily_rate, period_days
from .budget_matching import match_split_to_budget
from .budget_period_service import BudgetPeriodService
from .calendar_service import (
    CalendarProvider,
    InMemoryCalendar,
    SqlCalendarProvider,
    generate_calendar_periods,
)
from .reassignment_service import ReassignmentService
from .split_service import fix_invalid_budget_ids, validate_and_redistribute_splits

__all__ = [
    "allocate",
    "daily_rate",
    "period_days",
    "match_split_to_budget",
    "BudgetPeriodService",
    "CalendarProvider",
    "InMemoryCalendar",
    "SqlCalendarProvider",
    "generate_calendar_periods",
    "ReassignmentService",
    "fix_invalid_budget_ids",
    "validate_and_redistribute_splits",
]
