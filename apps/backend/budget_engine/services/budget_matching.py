from __future__ import annotations

from datetime import date, datetime
from typing import Iterable, Optional

from ..models import UNASSIGNED_BUDGET_ID
from ..schemas import BudgetSchema, SplitSchema

_OLDEST = datetime.min


def find_catch_all(budgets: Iterable[BudgetSchema]) -> Optional[BudgetSchema]:
    """The owner's active catch-all budget; at most one is expected."""
    return next((b for b in budgets if b.is_active and b.is_catch_all), None)


def budget_matches_split(budget: BudgetSchema, split: SplitSchema, as_of: date) -> bool:
    if not budget.is_active or budget.is_catch_all:
        return False
    if not budget.covers(as_of):
        return False
    wanted = {c.strip().casefold() for c in budget.category_ids}
    return bool(wanted & split.category_keys())


def match_split_to_budget(
    split: SplitSchema,
    owner_budgets: Iterable[BudgetSchema],
    as_of: date,
) -> str:
    """
    Budget id a split belongs to on ``as_of``.

    Active specific budgets whose categories contain the split's primary or
    detailed category and whose range contains ``as_of`` win; among several,
    the most recently created one (ties broken by the larger id). Otherwise
    the active catch-all budget, otherwise ``"unassigned"``.
    """
    budgets = list(owner_budgets)
    candidates = [b for b in budgets if budget_matches_split(b, split, as_of)]
    if candidates:
        best = max(candidates, key=lambda b: (b.created_at or _OLDEST, b.id))
        return best.id
    catch_all = find_catch_all(budgets)
    return catch_all.id if catch_all else UNASSIGNED_BUDGET_ID


def split_date(split: SplitSchema, fallback: Optional[date]) -> Optional[date]:
    """Payment date of the split, defaulting to the transaction date."""
    return split.payment_date or fallback
