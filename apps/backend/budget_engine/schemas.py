from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from .core.errors import ErrorDetail
from .models import Granularity, UNASSIGNED_BUDGET_ID


class CalendarPeriodSchema(BaseModel):
    id: str
    granularity: Granularity
    start: date
    end: date
    year: int
    month: Optional[int] = None
    half_index: Optional[Literal[1, 2]] = None
    week_number: Optional[int] = None

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @field_validator("start", "end", mode="before")
    def _calendar_day(cls, v):
        # Catalog entries may arrive as instants; only the calendar day matters
        if isinstance(v, datetime):
            return v.date()
        return v

    @model_validator(mode="after")
    def _check_span(self):
        if self.end < self.start:
            raise ValueError("period end must not precede start")
        if self.half_index is not None and self.granularity != Granularity.HALF_MONTH:
            raise ValueError("half_index is only valid for half_month periods")
        return self


class BudgetSchema(BaseModel):
    id: str
    owner_id: str
    name: str = ""
    category_ids: list[str] = Field(default_factory=list)
    amount: Decimal
    currency: str = "USD"
    granularity: Granularity
    start_date: date
    end_date: Optional[date] = None
    is_active: bool = True
    is_catch_all: bool = False
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("currency")
    def currency_len(cls, v: str):
        if len(v) != 3:
            raise ValueError("currency must be 3-letter code")
        return v.upper()

    def covers(self, day: date) -> bool:
        """Inclusive range check; an absent ``end_date`` means open-ended."""
        if day < self.start_date:
            return False
        return self.end_date is None or day <= self.end_date


class SplitSchema(BaseModel):
    split_id: str = Field(validation_alias=AliasChoices("split_id", "splitId"))
    budget_id: str = Field(
        default=UNASSIGNED_BUDGET_ID, validation_alias=AliasChoices("budget_id", "budgetId")
    )
    amount: Decimal
    description: Optional[str] = None
    category_primary: Optional[str] = None
    category_detailed: Optional[str] = None
    is_default: bool = False
    is_ignored: bool = False
    is_refund: bool = False
    is_tax_deductible: bool = False
    payment_date: Optional[date] = None

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    def category_keys(self) -> set[str]:
        return {
            c.strip().casefold()
            for c in (self.category_primary, self.category_detailed)
            if c and c.strip()
        }


class TransactionSchema(BaseModel):
    id: str
    owner_id: str
    occurred_at: Optional[date] = None
    amount: Decimal
    currency: str = "USD"
    is_active: bool = True
    splits: list[SplitSchema] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


# ===== Calculator =====

class AllocationRequest(BaseModel):
    amount: Decimal
    source_granularity: Granularity
    period_id: str


class AllocationOut(BaseModel):
    period_id: str
    source_granularity: Granularity
    target_granularity: Granularity
    days: int
    allocated_amount: Decimal


class BudgetPeriodSyncOut(BaseModel):
    budget_id: str
    created: int
    counts: dict[str, int]


# ===== Validator =====

class SplitValidationRequest(BaseModel):
    amount: Decimal
    splits: list[SplitSchema]
    unassigned_budget_id: str = UNASSIGNED_BUDGET_ID


class SplitValidationResult(BaseModel):
    is_valid: bool
    redistributed_splits: Optional[list[SplitSchema]] = None
    error: Optional[ErrorDetail] = None


# ===== Reassignment =====

class CategoryChange(BaseModel):
    categories_added: list[str] = Field(default_factory=list)
    categories_removed: list[str] = Field(default_factory=list)

    @field_validator("categories_added", "categories_removed")
    def _strip_blank(cls, v: list[str]):
        return [c for c in (s.strip() for s in v) if c]


class ReassignRequest(CategoryChange):
    owner_id: str


class DeletedBudgetReassignRequest(BaseModel):
    owner_id: str


class ReassignAllRequest(BaseModel):
    owner_id: str


class ReassignmentStats(BaseModel):
    success: bool = True
    transactions_reassigned: int = 0
    splits_reassigned: int = 0
    batch_count: int = 0
    errors: list[str] = Field(default_factory=list)
    error: Optional[ErrorDetail] = None


class DeletionReassignmentResult(BaseModel):
    success: bool = True
    transactions_reassigned: int = 0
    budget_assignments: dict[str, int] = Field(default_factory=dict)
    batch_count: int = 0
    errors: list[str] = Field(default_factory=list)
    error: Optional[ErrorDetail] = None
