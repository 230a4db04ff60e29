from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Boolean,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.ext.mutable import MutableList

from .core.database import Base


UNASSIGNED_BUDGET_ID = "unassigned"


def now_utc_naive() -> datetime:
    """Return a naive datetime in UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return uuid.uuid4().hex


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime, default=now_utc_naive, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=now_utc_naive, onupdate=now_utc_naive, nullable=False)


class Granularity(str, Enum):
    """Calendar unit a budget amount is denominated against."""

    WEEKLY = "weekly"
    MONTHLY = "monthly"
    HALF_MONTH = "half_month"


class CalendarPeriod(Base, TimestampMixin):
    """Pre-generated calendar catalog entry (read-only at runtime)."""

    id: Mapped[str] = mapped_column(String(16), primary_key=True)
    granularity: Mapped[Granularity] = mapped_column(SAEnum(Granularity), nullable=False)
    start: Mapped[date] = mapped_column("start_date", Date, nullable=False)
    end: Mapped[date] = mapped_column("end_date", Date, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int | None] = mapped_column(Integer)
    half_index: Mapped[int | None] = mapped_column(Integer)
    week_number: Mapped[int | None] = mapped_column(Integer)

    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="ck_calendar_period_span"),
        CheckConstraint("half_index IS NULL OR half_index IN (1, 2)", name="ck_calendar_period_half"),
        Index("ix_calendar_period_granularity_start", "granularity", "start_date"),
    )


class Budget(Base, TimestampMixin):
    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    category_ids: Mapped[list[str]] = mapped_column(MutableList.as_mutable(JSON), default=list, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    granularity: Mapped[Granularity] = mapped_column(SAEnum(Granularity), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_catch_all: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    periods: Mapped[list["BudgetPeriod"]] = relationship(
        back_populates="budget", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("end_date IS NULL OR end_date >= start_date", name="ck_budget_range"),
        Index("ix_budget_owner_active", "owner_id", "is_active"),
    )


class BudgetPeriod(Base, TimestampMixin):
    """Allocated amount of one budget for one calendar period."""

    id: Mapped[str] = mapped_column(String(96), primary_key=True)
    budget_id: Mapped[str] = mapped_column(ForeignKey("budget.id", ondelete="CASCADE"), nullable=False)
    period_id: Mapped[str] = mapped_column(ForeignKey("calendarperiod.id"), nullable=False)
    granularity: Mapped[Granularity] = mapped_column(SAEnum(Granularity), nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    allocated_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)

    budget: Mapped[Budget] = relationship(back_populates="periods")

    __table_args__ = (UniqueConstraint("budget_id", "period_id", name="uq_budget_period"),)


class Transaction(Base, TimestampMixin):
    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    occurred_at: Mapped[date | None] = mapped_column(Date)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    splits: Mapped[list["TransactionSplit"]] = relationship(
        back_populates="transaction",
        cascade="all, delete-orphan",
        order_by="TransactionSplit.position",
    )


class TransactionSplit(Base, TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    transaction_id: Mapped[str] = mapped_column(ForeignKey("transaction.id", ondelete="CASCADE"), nullable=False)
    split_id: Mapped[str] = mapped_column(String(64), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # "unassigned" is stored verbatim, so no FK to budget
    budget_id: Mapped[str] = mapped_column(String(64), nullable=False, default=UNASSIGNED_BUDGET_ID, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    description: Mapped[str | None] = mapped_column(String(255))
    category_primary: Mapped[str | None] = mapped_column(String(100))
    category_detailed: Mapped[str | None] = mapped_column(String(100))
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_ignored: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_refund: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_tax_deductible: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    payment_date: Mapped[date | None] = mapped_column(Date)

    transaction: Mapped[Transaction] = relationship(back_populates="splits")

    __table_args__ = (UniqueConstraint("transaction_id", "split_id", name="uq_transaction_split"),)
