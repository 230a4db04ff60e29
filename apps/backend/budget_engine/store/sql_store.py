"""
SQLAlchemy implementation of the document store

Documents are the pydantic wire schemas dumped to dicts. Every call runs in
FastAPI's threadpool so callers suspend at the I/O boundary.
"""

from __future__ import annotations

from typing import Any, Sequence

from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models, schemas
from ..core.logging_setup import get_logger
from .base import (
    BUDGETS,
    CALENDAR_PERIODS,
    TRANSACTIONS,
    BatchWriteResult,
    DocumentNotFoundError,
    QueryFilter,
    StoreError,
    WriteOperation,
    chunked,
)

logger = get_logger(__name__)

_MODELS: dict[str, type] = {
    BUDGETS: models.Budget,
    TRANSACTIONS: models.Transaction,
    CALENDAR_PERIODS: models.CalendarPeriod,
}

_SCHEMAS: dict[str, type[BaseModel]] = {
    BUDGETS: schemas.BudgetSchema,
    TRANSACTIONS: schemas.TransactionSchema,
    CALENDAR_PERIODS: schemas.CalendarPeriodSchema,
}

_SPLIT_FIELDS = (
    "budget_id",
    "amount",
    "description",
    "category_primary",
    "category_detailed",
    "is_default",
    "is_ignored",
    "is_refund",
    "is_tax_deductible",
    "payment_date",
)

# Fields a batch write may touch; ids and owners are immutable here
_WRITABLE: dict[str, set[str]] = {
    BUDGETS: {
        "name",
        "category_ids",
        "amount",
        "currency",
        "granularity",
        "start_date",
        "end_date",
        "is_active",
        "is_catch_all",
        "owner_id",
    },
    TRANSACTIONS: {"occurred_at", "amount", "currency", "is_active", "splits", "owner_id"},
}


class SqlDocumentStore:
    """DocumentStore backed by a SQLAlchemy session."""

    def __init__(self, db: Session) -> None:
        self.db = db

    async def get_document(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        return await run_in_threadpool(self._get_document, collection, doc_id)

    async def query_documents(
        self, collection: str, filters: Sequence[QueryFilter] = ()
    ) -> list[dict[str, Any]]:
        return await run_in_threadpool(self._query_documents, collection, list(filters))

    async def batch_write(
        self, operations: Sequence[WriteOperation], max_batch_size: int
    ) -> BatchWriteResult:
        return await run_in_threadpool(self._batch_write, list(operations), max_batch_size)

    # ==================== Reads ====================

    def _get_document(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        model = self._model(collection)
        try:
            row = self.db.get(model, doc_id)
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to read {collection}/{doc_id}: {exc}") from exc
        if row is None:
            return None
        return self._to_document(collection, row)

    def _query_documents(self, collection: str, filters: list[QueryFilter]) -> list[dict[str, Any]]:
        model = self._model(collection)
        stmt = select(model)
        for flt in filters:
            stmt = stmt.where(self._condition(model, flt))
        if collection == CALENDAR_PERIODS:
            stmt = stmt.order_by(model.start, model.id)
        else:
            stmt = stmt.order_by(model.created_at, model.id)
        try:
            rows = self.db.scalars(stmt).all()
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to query {collection}: {exc}") from exc
        return [self._to_document(collection, row) for row in rows]

    # ==================== Writes ====================

    def _batch_write(self, operations: list[WriteOperation], max_batch_size: int) -> BatchWriteResult:
        result = BatchWriteResult()
        if not operations:
            return result
        batches = chunked(operations, max_batch_size)
        result.batch_count = len(batches)
        for index, batch in enumerate(batches, start=1):
            try:
                for op in batch:
                    self._apply(op)
                self.db.commit()
                result.committed += len(batch)
                logger.info("Committed batch %d/%d (%d documents)", index, len(batches), len(batch))
                continue
            except (SQLAlchemyError, StoreError) as exc:
                self.db.rollback()
                logger.warning(
                    "Batch %d/%d rolled back (%s); retrying documents individually",
                    index,
                    len(batches),
                    exc,
                )
            # Isolate the failing documents so the rest of the batch still lands
            for op in batch:
                try:
                    self._apply(op)
                    self.db.commit()
                    result.committed += 1
                except (SQLAlchemyError, StoreError) as exc:
                    self.db.rollback()
                    result.failed[op.doc_id] = str(exc)
                    logger.warning("Write failed for %s/%s: %s", op.collection, op.doc_id, exc)
        return result

    def _apply(self, op: WriteOperation) -> None:
        model = self._model(op.collection)
        allowed = _WRITABLE.get(op.collection)
        if allowed is None:
            raise StoreError(f"Collection {op.collection} is read-only")
        unknown = set(op.data) - allowed
        if unknown:
            raise StoreError(f"Unknown fields for {op.collection}: {', '.join(sorted(unknown))}")

        row = self.db.get(model, op.doc_id)
        if row is None:
            if op.kind != "set":
                raise DocumentNotFoundError(f"{op.collection}/{op.doc_id} not found")
            row = model(id=op.doc_id)
            self.db.add(row)

        for key, value in op.data.items():
            if key == "splits":
                self._replace_splits(row, value)
            else:
                setattr(row, key, value)
        self.db.flush()

    def _replace_splits(self, txn: models.Transaction, splits: list[dict[str, Any]]) -> None:
        """Update splits in place by split_id; missing ones are orphaned and deleted."""
        existing = {s.split_id: s for s in txn.splits}
        rows: list[models.TransactionSplit] = []
        for position, data in enumerate(splits):
            split_id = data["split_id"]
            row = existing.pop(split_id, None) or models.TransactionSplit(split_id=split_id)
            row.position = position
            for key in _SPLIT_FIELDS:
                if key in data:
                    setattr(row, key, data[key])
            rows.append(row)
        txn.splits = rows

    # ==================== Helpers ====================

    @staticmethod
    def _model(collection: str) -> type:
        try:
            return _MODELS[collection]
        except KeyError:
            raise StoreError(f"Unknown collection: {collection}") from None

    @staticmethod
    def _condition(model: type, flt: QueryFilter):
        column = getattr(model, flt.field, None)
        if column is None:
            raise StoreError(f"Unknown field for filtering: {flt.field}")
        if flt.op == "==":
            return column.is_(None) if flt.value is None else column == flt.value
        if flt.op == "!=":
            return column.isnot(None) if flt.value is None else column != flt.value
        if flt.op == "in":
            return column.in_(list(flt.value))
        if flt.op == ">=":
            return column >= flt.value
        if flt.op == "<=":
            return column <= flt.value
        raise StoreError(f"Unsupported filter operator: {flt.op!r}")

    @staticmethod
    def _to_document(collection: str, row: Any) -> dict[str, Any]:
        return _SCHEMAS[collection].model_validate(row).model_dump()
