"""
Split reassignment engine

Moves split-to-budget assignments after a budget's matching rules change.

Triggers:
- category change on a budget (categories added and/or removed)
- deletion (deactivation) of a budget
- creation of a budget that should pick up historical splits
- a full repair run over all of an owner's transactions

Every trigger runs in two phases: read everything, plan all mutations in
memory, then write the planned transactions through one bounded-size batch
call. Nothing is locked; a concurrent edit of the same transaction is last
writer wins.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Iterable, Optional, Sequence

from pydantic import ValidationError

from ..core.config import settings
from ..core.errors import BudgetEngineError, ErrorCode, ErrorDetail
from ..core.logging_setup import get_logger
from ..models import Granularity, UNASSIGNED_BUDGET_ID, new_id
from ..schemas import (
    BudgetSchema,
    CategoryChange,
    DeletionReassignmentResult,
    ReassignmentStats,
    SplitSchema,
    TransactionSchema,
)
from ..store.base import (
    BUDGETS,
    TRANSACTIONS,
    DocumentStore,
    QueryFilter,
    WriteOperation,
)
from .budget_matching import find_catch_all, match_split_to_budget, split_date

logger = get_logger(__name__)


@dataclass
class PlannedUpdate:
    """New split list for one transaction plus the budgets splits moved to."""

    transaction_id: str
    splits: list[SplitSchema]
    moved_to: list[str] = field(default_factory=list)


@dataclass
class ReassignmentPlan:
    updates: list[PlannedUpdate] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


# ==================== Planning (pure) ====================

def _reevaluate(
    txn: TransactionSchema,
    selector: Callable[[SplitSchema], bool],
    budgets: Sequence[BudgetSchema],
) -> Optional[PlannedUpdate]:
    new_splits: list[SplitSchema] = []
    moved_to: list[str] = []
    for split in txn.splits:
        if not selector(split):
            new_splits.append(split)
            continue
        target = match_split_to_budget(split, budgets, split_date(split, txn.occurred_at))
        if target != split.budget_id:
            moved_to.append(target)
            split = split.model_copy(update={"budget_id": target})
        new_splits.append(split)
    if not moved_to:
        return None
    return PlannedUpdate(transaction_id=txn.id, splits=new_splits, moved_to=moved_to)


def _missing_dates(txn: TransactionSchema, selector: Callable[[SplitSchema], bool]) -> bool:
    return any(selector(s) and split_date(s, txn.occurred_at) is None for s in txn.splits)


def plan_category_change(
    budget: BudgetSchema,
    change: CategoryChange,
    active_budgets: Sequence[BudgetSchema],
    transactions: Iterable[TransactionSchema],
) -> ReassignmentPlan:
    """
    Plan the moves caused by categories added to / removed from ``budget``.

    Removal: every transaction with a split on ``budget`` has *all* of its
    splits re-evaluated. Addition: transactions with a catch-all/unassigned
    split in an added category, dated inside ``budget``'s range, have their
    catch-all/unassigned splits re-evaluated; specific assignments on other
    budgets stay put.
    """
    plan = ReassignmentPlan()
    added = {c.strip().casefold() for c in change.categories_added}
    catch_all = find_catch_all(active_budgets)
    unassigned_ids = {UNASSIGNED_BUDGET_ID}
    if catch_all is not None:
        unassigned_ids.add(catch_all.id)

    def is_unassigned(split: SplitSchema) -> bool:
        return split.budget_id in unassigned_ids

    def picked_up(split: SplitSchema, txn: TransactionSchema) -> bool:
        if not is_unassigned(split) or not (split.category_keys() & added):
            return False
        day = split_date(split, txn.occurred_at)
        return day is not None and budget.covers(day)

    for txn in transactions:
        selector: Callable[[SplitSchema], bool]
        if change.categories_removed and any(s.budget_id == budget.id for s in txn.splits):
            selector = lambda s: True  # noqa: E731
        elif added and any(picked_up(s, txn) for s in txn.splits):
            selector = is_unassigned
        else:
            continue

        if _missing_dates(txn, selector):
            plan.errors.append(f"Transaction {txn.id}: Missing transaction date")
            continue
        update = _reevaluate(txn, selector, active_budgets)
        if update is not None:
            plan.updates.append(update)
    return plan


def plan_deleted_budget(
    deleted: BudgetSchema,
    active_budgets: Sequence[BudgetSchema],
    transactions: Iterable[TransactionSchema],
) -> ReassignmentPlan:
    """Plan new homes for every split still assigned to ``deleted``."""
    plan = ReassignmentPlan()
    survivors = [b for b in active_budgets if b.id != deleted.id]

    def on_deleted(split: SplitSchema) -> bool:
        return split.budget_id == deleted.id

    for txn in transactions:
        if not any(on_deleted(s) for s in txn.splits):
            continue
        if _missing_dates(txn, on_deleted):
            plan.errors.append(f"Transaction {txn.id}: Missing transaction date")
            continue
        update = _reevaluate(txn, on_deleted, survivors)
        if update is not None:
            plan.updates.append(update)
    return plan


def plan_full_reassignment(
    active_budgets: Sequence[BudgetSchema],
    transactions: Iterable[TransactionSchema],
) -> ReassignmentPlan:
    """Re-evaluate every split of every transaction against all active budgets."""
    plan = ReassignmentPlan()

    def every(split: SplitSchema) -> bool:
        return True

    for txn in transactions:
        if not txn.splits:
            continue
        if _missing_dates(txn, every):
            plan.errors.append(f"Transaction {txn.id}: Missing transaction date")
            continue
        update = _reevaluate(txn, every, active_budgets)
        if update is not None:
            plan.updates.append(update)
    return plan


# ==================== Service ====================

class ReassignmentService:
    """
    Runs reassignment triggers against a ``DocumentStore``.

    Input problems come back as ``success=False`` with a typed ``error``;
    per-transaction problems are collected in ``errors`` and never stop the
    remaining transactions.
    """

    def __init__(self, store: DocumentStore, batch_size: int | None = None) -> None:
        self.store = store
        self.batch_size = batch_size or settings.REASSIGN_BATCH_SIZE

    async def reassign_for_category_change(
        self, budget_id: str, owner_id: str, change: CategoryChange
    ) -> ReassignmentStats:
        """
        Trigger A: categories were added to and/or removed from a budget.

        Args:
            budget_id: edited budget (already persisted with its new categories)
            owner_id: owner of the budget and of the transactions to scan
            change: categories added / removed by the edit

        Returns:
            ReassignmentStats
        """
        stats = ReassignmentStats()
        logger.info(
            "Category change on budget %s (owner %s): added=%s removed=%s",
            budget_id,
            owner_id,
            change.categories_added,
            change.categories_removed,
        )
        try:
            budget = await self._load_budget(budget_id, owner_id)
            if not change.categories_added and not change.categories_removed:
                return stats
            active_budgets = await self._active_budgets(owner_id)
            transactions = await self._active_transactions(owner_id, stats.errors)
        except BudgetEngineError as exc:
            return self._failed(stats, exc)

        plan = plan_category_change(budget, change, active_budgets, transactions)
        stats.errors.extend(plan.errors)
        try:
            written, stats.batch_count = await self._write(plan, stats.errors)
        except BudgetEngineError as exc:
            return self._failed(stats, exc)

        stats.transactions_reassigned = len(written)
        stats.splits_reassigned = sum(len(u.moved_to) for u in written)
        logger.info(
            "Budget %s: %d transactions, %d splits reassigned, %d errors",
            budget_id,
            stats.transactions_reassigned,
            stats.splits_reassigned,
            len(stats.errors),
        )
        return stats

    async def reassign_from_deleted_budget(self, budget_id: str, owner_id: str) -> DeletionReassignmentResult:
        """
        Trigger B: move every split off a budget that has been deactivated.

        Each split goes to the best surviving budget, then the catch-all, then
        ``"unassigned"``. ``budget_assignments`` counts moved splits per
        destination for transactions that were actually written.
        """
        result = DeletionReassignmentResult()
        logger.info("Reassigning splits from deleted budget %s (owner %s)", budget_id, owner_id)
        try:
            budget = await self._load_budget(budget_id, owner_id)
            if budget.is_active:
                raise BudgetEngineError(
                    "Budget is not deleted (is_active must be false)",
                    ErrorCode.BUDGET_STILL_ACTIVE,
                )
            active_budgets = await self._active_budgets(owner_id)
            transactions = await self._active_transactions(owner_id, result.errors)
        except BudgetEngineError as exc:
            return self._failed(result, exc)

        plan = plan_deleted_budget(budget, active_budgets, transactions)
        result.errors.extend(plan.errors)
        try:
            written, result.batch_count = await self._write(plan, result.errors)
        except BudgetEngineError as exc:
            return self._failed(result, exc)

        histogram: Counter[str] = Counter()
        for update in written:
            histogram.update(update.moved_to)
        result.transactions_reassigned = len(written)
        result.budget_assignments = dict(histogram)
        logger.info(
            "Deleted budget %s: %d transactions reassigned, assignments=%s, %d errors",
            budget_id,
            result.transactions_reassigned,
            result.budget_assignments,
            len(result.errors),
        )
        return result

    async def assign_historical_transactions(self, budget_id: str, owner_id: str) -> ReassignmentStats:
        """A newly created budget picks up existing unassigned splits in its categories."""
        try:
            budget = await self._load_budget(budget_id, owner_id)
        except BudgetEngineError as exc:
            return self._failed(ReassignmentStats(), exc)
        change = CategoryChange(categories_added=list(budget.category_ids))
        return await self.reassign_for_category_change(budget_id, owner_id, change)

    async def reassign_all_transactions(self, owner_id: str) -> ReassignmentStats:
        """Re-evaluate every split of the owner's active transactions (repair run)."""
        stats = ReassignmentStats()
        logger.info("Full reassignment for owner %s", owner_id)
        try:
            if not owner_id:
                raise BudgetEngineError("owner_id is required", ErrorCode.OWNER_REQUIRED)
            active_budgets = await self._active_budgets(owner_id)
            transactions = await self._active_transactions(owner_id, stats.errors)
        except BudgetEngineError as exc:
            return self._failed(stats, exc)

        plan = plan_full_reassignment(active_budgets, transactions)
        stats.errors.extend(plan.errors)
        try:
            written, stats.batch_count = await self._write(plan, stats.errors)
        except BudgetEngineError as exc:
            return self._failed(stats, exc)

        stats.transactions_reassigned = len(written)
        stats.splits_reassigned = sum(len(u.moved_to) for u in written)
        logger.info(
            "Owner %s: %d transactions, %d splits reassigned, %d errors",
            owner_id,
            stats.transactions_reassigned,
            stats.splits_reassigned,
            len(stats.errors),
        )
        return stats

    async def ensure_catch_all_budget(
        self,
        owner_id: str,
        currency: str | None = None,
        start_date: date | None = None,
    ) -> str:
        """Return the owner's active catch-all budget id, creating one if missing."""
        if not owner_id:
            raise BudgetEngineError("owner_id is required", ErrorCode.OWNER_REQUIRED)
        docs = await self.store.query_documents(
            BUDGETS,
            [
                QueryFilter("owner_id", "==", owner_id),
                QueryFilter("is_catch_all", "==", True),
                QueryFilter("is_active", "==", True),
            ],
        )
        if docs:
            return docs[0]["id"]

        budget_id = new_id()
        data = {
            "owner_id": owner_id,
            "name": settings.CATCH_ALL_BUDGET_NAME,
            "category_ids": [],
            "amount": 0,
            "currency": (currency or settings.DEFAULT_CURRENCY).upper(),
            "granularity": Granularity.MONTHLY,
            "start_date": start_date or date.today(),
            "end_date": None,
            "is_active": True,
            "is_catch_all": True,
        }
        result = await self.store.batch_write(
            [WriteOperation(BUDGETS, budget_id, data, kind="set")], self.batch_size
        )
        if budget_id in result.failed:
            raise BudgetEngineError(
                f"Failed to create catch-all budget: {result.failed[budget_id]}",
                ErrorCode.PERSISTENCE_ERROR,
            )
        logger.info("Created catch-all budget %s for owner %s", budget_id, owner_id)
        return budget_id

    # ==================== Private Methods ====================

    async def _load_budget(self, budget_id: str, owner_id: str) -> BudgetSchema:
        if not owner_id:
            raise BudgetEngineError("owner_id is required", ErrorCode.OWNER_REQUIRED)
        doc = await self.store.get_document(BUDGETS, budget_id)
        if doc is None:
            raise BudgetEngineError("Budget not found", ErrorCode.BUDGET_NOT_FOUND)
        try:
            budget = BudgetSchema.model_validate(doc)
        except ValidationError as exc:
            raise BudgetEngineError(
                f"Budget {budget_id}: malformed document ({_reason(exc)})",
                ErrorCode.PERSISTENCE_ERROR,
            ) from exc
        if budget.owner_id != owner_id:
            raise BudgetEngineError(
                "Budget does not belong to this owner", ErrorCode.BUDGET_OWNER_MISMATCH
            )
        return budget

    async def _active_budgets(self, owner_id: str) -> list[BudgetSchema]:
        docs = await self.store.query_documents(
            BUDGETS,
            [QueryFilter("owner_id", "==", owner_id), QueryFilter("is_active", "==", True)],
        )
        budgets: list[BudgetSchema] = []
        for doc in docs:
            try:
                budgets.append(BudgetSchema.model_validate(doc))
            except ValidationError as exc:
                # A broken budget cannot receive splits; matching goes on without it
                logger.warning("Skipping malformed budget %s: %s", doc.get("id"), _reason(exc))
        logger.debug("Owner %s has %d active budgets", owner_id, len(budgets))
        return budgets

    async def _active_transactions(self, owner_id: str, errors: list[str]) -> list[TransactionSchema]:
        docs = await self.store.query_documents(
            TRANSACTIONS,
            [QueryFilter("owner_id", "==", owner_id), QueryFilter("is_active", "==", True)],
        )
        transactions: list[TransactionSchema] = []
        for doc in docs:
            try:
                transactions.append(TransactionSchema.model_validate(doc))
            except ValidationError as exc:
                errors.append(f"Transaction {doc.get('id')}: {_reason(exc)}")
                logger.warning("Skipping malformed transaction %s: %s", doc.get("id"), _reason(exc))
        return transactions

    async def _write(self, plan: ReassignmentPlan, errors: list[str]) -> tuple[list[PlannedUpdate], int]:
        if not plan.updates:
            return [], 0
        operations = [
            WriteOperation(
                TRANSACTIONS,
                update.transaction_id,
                {"splits": [s.model_dump() for s in update.splits]},
            )
            for update in plan.updates
        ]
        outcome = await self.store.batch_write(operations, self.batch_size)
        for doc_id, reason in outcome.failed.items():
            errors.append(f"Transaction {doc_id}: {reason}")
            logger.warning("Reassignment write failed for transaction %s: %s", doc_id, reason)
        written = [u for u in plan.updates if u.transaction_id not in outcome.failed]
        return written, outcome.batch_count

    @staticmethod
    def _failed(result, exc: BudgetEngineError):
        logger.warning("Reassignment aborted: %s (%s)", exc.message, exc.code.value)
        result.success = False
        result.error = ErrorDetail(code=exc.code, message=exc.message)
        return result


def _reason(exc: ValidationError) -> str:
    """One-line summary of a document validation failure."""
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'document'}: {err['msg']}"
        for err in exc.errors()
    )
