"""
Persistence collaborator contract

The engine only sees plain dict documents keyed by collection name. Reads
return everything that matches (no streaming); writes go through one
bounded-size batch call.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Protocol, Sequence

from ..core.errors import BudgetEngineError, ErrorCode

BUDGETS = "budgets"
TRANSACTIONS = "transactions"
CALENDAR_PERIODS = "calendar_periods"

FilterOp = Literal["==", "!=", "in", ">=", "<="]


class StoreError(BudgetEngineError):
    code = ErrorCode.PERSISTENCE_ERROR


class DocumentNotFoundError(StoreError, LookupError):
    pass


@dataclass(frozen=True)
class QueryFilter:
    field: str
    op: FilterOp
    value: Any


@dataclass(frozen=True)
class WriteOperation:
    collection: str
    doc_id: str
    data: dict[str, Any]
    kind: Literal["update", "set"] = "update"


@dataclass
class BatchWriteResult:
    committed: int = 0
    failed: dict[str, str] = field(default_factory=dict)
    batch_count: int = 0


class DocumentStore(Protocol):
    async def get_document(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        ...

    async def query_documents(
        self, collection: str, filters: Sequence[QueryFilter] = ()
    ) -> list[dict[str, Any]]:
        ...

    async def batch_write(
        self, operations: Sequence[WriteOperation], max_batch_size: int
    ) -> BatchWriteResult:
        ...


def chunked(items: Sequence[Any], size: int) -> list[Sequence[Any]]:
    if size <= 0:
        raise ValueError("batch size must be positive")
    return [items[i : i + size] for i in range(0, len(items), size)]

