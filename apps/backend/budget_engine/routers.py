from __future__ import annotations

from collections import Counter
from typing import NoReturn

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from . import models
from .core.database import get_db
from .core.errors import BudgetEngineError, ErrorCode, ErrorDetail
from .schemas import (
    AllocationOut,
    AllocationRequest,
    BudgetPeriodSyncOut,
    BudgetSchema,
    CategoryChange,
    DeletedBudgetReassignRequest,
    DeletionReassignmentResult,
    ReassignmentStats,
    ReassignAllRequest,
    ReassignRequest,
    SplitValidationRequest,
    SplitValidationResult,
)
from .services import (
    BudgetPeriodService,
    ReassignmentService,
    SqlCalendarProvider,
    allocate,
    period_days,
    validate_and_redistribute_splits,
)
from .store import DocumentStore, SqlDocumentStore

router = APIRouter()

_STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.OWNER_REQUIRED: 422,
    ErrorCode.INVALID_AMOUNT: 422,
    ErrorCode.NO_SPLITS: 422,
    ErrorCode.BUDGET_NOT_FOUND: 404,
    ErrorCode.PERIOD_NOT_FOUND: 404,
    ErrorCode.BUDGET_OWNER_MISMATCH: 409,
    ErrorCode.BUDGET_STILL_ACTIVE: 409,
    ErrorCode.CALENDAR_NOT_GENERATED: 409,
    ErrorCode.PERSISTENCE_ERROR: 503,
}


def _raise(detail: ErrorDetail) -> NoReturn:
    raise HTTPException(
        status_code=_STATUS_BY_CODE.get(detail.code, 400),
        detail=detail.model_dump(mode="json"),
    )


def get_store(db: Session = Depends(get_db)) -> DocumentStore:
    return SqlDocumentStore(db)


# ===== Allocation =====
@router.post("/allocations", response_model=AllocationOut)
def create_allocation(payload: AllocationRequest, db: Session = Depends(get_db)):
    try:
        period = SqlCalendarProvider(db).get_period(payload.period_id)
        amount = allocate(payload.amount, payload.source_granularity, period)
    except BudgetEngineError as exc:
        _raise(exc.to_detail())
    return AllocationOut(
        period_id=period.id,
        source_granularity=payload.source_granularity,
        target_granularity=period.granularity,
        days=period_days(period),
        allocated_amount=amount,
    )


@router.post("/budgets/{budget_id}/periods/sync", response_model=BudgetPeriodSyncOut)
def sync_budget_periods(budget_id: str, db: Session = Depends(get_db)):
    row = db.get(models.Budget, budget_id)
    if not row:
        _raise(ErrorDetail(code=ErrorCode.BUDGET_NOT_FOUND, message="Budget not found"))
    budget = BudgetSchema.model_validate(row)
    try:
        rows = BudgetPeriodService(SqlCalendarProvider(db)).sync_budget_periods(db, budget)
    except BudgetEngineError as exc:
        _raise(exc.to_detail())
    counts = Counter(r.granularity.value for r in rows)
    return BudgetPeriodSyncOut(budget_id=budget.id, created=len(rows), counts=dict(counts))


# ===== Splits =====
@router.post("/splits/validate", response_model=SplitValidationResult)
def validate_splits(payload: SplitValidationRequest):
    try:
        return validate_and_redistribute_splits(
            payload.amount,
            payload.splits,
            unassigned_budget_id=payload.unassigned_budget_id,
        )
    except BudgetEngineError as exc:
        _raise(exc.to_detail())


# ===== Reassignment triggers =====
@router.post("/budgets/reassign-all", response_model=ReassignmentStats)
async def reassign_all_transactions(
    payload: ReassignAllRequest,
    store: DocumentStore = Depends(get_store),
):
    stats = await ReassignmentService(store).reassign_all_transactions(payload.owner_id)
    if not stats.success and stats.error is not None:
        _raise(stats.error)
    return stats


@router.post("/budgets/{budget_id}/reassign", response_model=ReassignmentStats)
async def reassign_budget_transactions(
    budget_id: str,
    payload: ReassignRequest,
    store: DocumentStore = Depends(get_store),
):
    change = CategoryChange(
        categories_added=payload.categories_added,
        categories_removed=payload.categories_removed,
    )
    stats = await ReassignmentService(store).reassign_for_category_change(
        budget_id, payload.owner_id, change
    )
    if not stats.success and stats.error is not None:
        _raise(stats.error)
    return stats


@router.post("/budgets/{budget_id}/reassign-deleted", response_model=DeletionReassignmentResult)
async def reassign_deleted_budget_transactions(
    budget_id: str,
    payload: DeletedBudgetReassignRequest,
    store: DocumentStore = Depends(get_store),
):
    result = await ReassignmentService(store).reassign_from_deleted_budget(budget_id, payload.owner_id)
    if not result.success and result.error is not None:
        _raise(result.error)
    return result
