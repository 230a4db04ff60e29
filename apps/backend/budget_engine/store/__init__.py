from .base import (
    BUDGETS,
    CALENDAR_PERIODS,
    TRANSACTIONS,
    BatchWriteResult,
    DocumentNotFoundError,
    DocumentStore,
    QueryFilter,
    StoreError,
    WriteOperation,
)
from .sql_store import SqlDocumentStore

__all__ = [
    "BUDGETS",
    "CALENDAR_PERIODS",
    "TRANSACTIONS",
    "BatchWriteResult",
    "DocumentNotFoundError",
    "DocumentStore",
    "QueryFilter",
    "StoreError",
    "WriteOperation",
    "SqlDocumentStore",
]
