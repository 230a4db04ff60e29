"""
Split validation and redistribution

Keeps a transaction's splits summing to the transaction amount.

- within tolerance (1 cent) and no dust splits: valid, nothing changes
- single split: it takes the whole amount
- overage: every split shrinks proportionally, rounding residue lands on the
  default split
- underage: the shortfall becomes a new "Unallocated" split; a shortfall
  smaller than one cent is folded into the default split instead

Pure functions only; callers persist the result.
"""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Any, Iterable, Sequence

from ..core.errors import ErrorCode, ErrorDetail
from ..core.logging_setup import get_logger
from ..models import UNASSIGNED_BUDGET_ID
from ..schemas import BudgetSchema, SplitSchema, SplitValidationResult
from ..utils.money import MINOR_UNIT, ZERO, round_money, to_money

logger = get_logger(__name__)

UNALLOCATED_DESCRIPTION = "Unallocated"
UNCATEGORIZED = "Uncategorized"


def validate_and_redistribute_splits(
    transaction_amount: Any,
    splits: Sequence[SplitSchema],
    *,
    unassigned_budget_id: str = UNASSIGNED_BUDGET_ID,
    tolerance: Decimal = MINOR_UNIT,
) -> SplitValidationResult:
    """
    Validate splits against the transaction total and rebalance when needed.

    Args:
        transaction_amount: transaction total in major units
        splits: current splits, in display order
        unassigned_budget_id: destination of a newly created shortfall split
            (the owner's catch-all budget, or the "unassigned" sentinel)
        tolerance: accepted absolute difference before rebalancing

    Returns:
        ``is_valid=True`` when nothing has to change, otherwise
        ``redistributed_splits`` summing exactly to the rounded total.
        An empty ``splits`` list yields an ``error`` with code ``NO_SPLITS``.
    """
    if not splits:
        return SplitValidationResult(
            is_valid=False,
            error=ErrorDetail(code=ErrorCode.NO_SPLITS, message="No splits provided"),
        )

    total = round_money(transaction_amount)
    current = sum((to_money(s.amount) for s in splits), ZERO)
    delta = total - current

    if abs(delta) <= tolerance and not _has_dust(total, splits):
        return SplitValidationResult(is_valid=True)

    logger.info(
        "Redistribution needed: transaction=%s, splits total=%s, diff=%s",
        total,
        current,
        delta,
    )

    if len(splits) == 1:
        redistributed = [splits[0].model_copy(update={"amount": total})]
    elif current > total and current != ZERO:
        redistributed = _redistribute_overage(splits, total, current)
    else:
        redistributed = _redistribute_underage(splits, total, unassigned_budget_id)

    return SplitValidationResult(is_valid=False, redistributed_splits=redistributed)


def _has_dust(total: Decimal, splits: Iterable[SplitSchema]) -> bool:
    if total <= ZERO:
        return False
    return any(not s.is_default and to_money(s.amount) < MINOR_UNIT for s in splits)


def _redistribute_overage(
    splits: Sequence[SplitSchema], total: Decimal, current: Decimal
) -> list[SplitSchema]:
    ratio = total / current
    amounts = [round_money(to_money(s.amount) * ratio) for s in splits]
    if total > ZERO:
        amounts = [max(a, MINOR_UNIT) for a in amounts]

    residual = total - sum(amounts, ZERO)
    if residual:
        target = _residual_target(splits, amounts, residual, total)
        amounts[target] += residual

    return [s.model_copy(update={"amount": a}) for s, a in zip(splits, amounts)]


def _redistribute_underage(
    splits: Sequence[SplitSchema], total: Decimal, unassigned_budget_id: str
) -> list[SplitSchema]:
    # Non-default splits under one cent (zero included) are dropped; their amount joins the shortfall
    kept = [s for s in splits if s.is_default or to_money(s.amount) >= MINOR_UNIT]
    amounts = [round_money(s.amount) for s in kept]
    remainder = total - sum(amounts, ZERO)

    if remainder >= MINOR_UNIT or not kept:
        return [s.model_copy(update={"amount": a}) for s, a in zip(kept, amounts)] + [
            _unallocated_split(kept or splits, remainder, unassigned_budget_id)
        ]

    if remainder:
        target = _residual_target(kept, amounts, remainder, total)
        amounts[target] += remainder
    return [s.model_copy(update={"amount": a}) for s, a in zip(kept, amounts)]


def _residual_target(
    splits: Sequence[SplitSchema], amounts: list[Decimal], residual: Decimal, total: Decimal
) -> int:
    """Index receiving a rounding residual: the default split, else the largest."""
    largest = max(range(len(amounts)), key=lambda i: (amounts[i], -i))
    for index, split in enumerate(splits):
        if split.is_default:
            if total <= ZERO or amounts[index] + residual >= MINOR_UNIT:
                return index
            break
    return largest


def _unallocated_split(
    template: Sequence[SplitSchema], amount: Decimal, budget_id: str
) -> SplitSchema:
    return SplitSchema(
        split_id=f"unallocated_{uuid.uuid4().hex}",
        budget_id=budget_id,
        amount=amount,
        description=UNALLOCATED_DESCRIPTION,
        category_primary=UNCATEGORIZED,
        category_detailed=UNCATEGORIZED,
        is_default=False,
        payment_date=template[0].payment_date if template else None,
    )


def fix_invalid_budget_ids(
    splits: Sequence[SplitSchema], active_budgets: Iterable[BudgetSchema]
) -> tuple[list[SplitSchema], int]:
    """
    Move splits that reference unknown or inactive budgets.

    They go to the active catch-all budget when there is one, otherwise to
    the "unassigned" sentinel. Returns ``(splits, fixed_count)``.
    """
    budgets = [b for b in active_budgets if b.is_active]
    valid_ids = {b.id for b in budgets}
    catch_all = next((b for b in budgets if b.is_catch_all), None)
    fallback = catch_all.id if catch_all else UNASSIGNED_BUDGET_ID

    fixed: list[SplitSchema] = []
    fixed_count = 0
    for split in splits:
        if split.budget_id == UNASSIGNED_BUDGET_ID or split.budget_id in valid_ids:
            fixed.append(split)
            continue
        logger.warning(
            "Invalid budget_id %s on split %s; moving to %s",
            split.budget_id,
            split.split_id,
            fallback,
        )
        fixed.append(split.model_copy(update={"budget_id": fallback}))
        fixed_count += 1
    return fixed, fixed_count
