from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from budget_engine import models
from budget_engine.store import (
    BUDGETS,
    CALENDAR_PERIODS,
    TRANSACTIONS,
    QueryFilter,
    SqlDocumentStore,
    StoreError,
    WriteOperation,
)
from budget_engine.store.base import chunked

pytestmark = pytest.mark.anyio


@pytest.fixture()
def store(db_session):
    return SqlDocumentStore(db_session)


async def test_get_document_returns_plain_dict(store, add_budget):
    budget = add_budget(name="Food", category_ids=["FOOD"])
    doc = await store.get_document(BUDGETS, budget.id)
    assert doc["id"] == budget.id
    assert doc["category_ids"] == ["FOOD"]
    assert doc["amount"] == Decimal("100.00")
    assert await store.get_document(BUDGETS, "missing") is None


async def test_query_filters(store, add_budget):
    add_budget(owner_id="user-1", is_active=True)
    add_budget(owner_id="user-1", is_active=False)
    add_budget(owner_id="user-2", is_active=True)

    docs = await store.query_documents(
        BUDGETS, [QueryFilter("owner_id", "==", "user-1"), QueryFilter("is_active", "==", True)]
    )
    assert len(docs) == 1
    docs = await store.query_documents(BUDGETS, [QueryFilter("owner_id", "in", ["user-1", "user-2"])])
    assert len(docs) == 3
    docs = await store.query_documents(BUDGETS, [QueryFilter("end_date", "==", None)])
    assert len(docs) == 3


async def test_unknown_collection_and_field(store):
    with pytest.raises(StoreError):
        await store.query_documents("nope")
    with pytest.raises(StoreError):
        await store.query_documents(BUDGETS, [QueryFilter("colour", "==", "red")])


async def test_calendar_periods_are_read_only(store):
    result = await store.batch_write([WriteOperation(CALENDAR_PERIODS, "2025M01", {"year": 2026})], 10)
    assert "2025M01" in result.failed
    assert result.committed == 0


async def test_batch_write_isolates_failures(store, add_transaction, stored_assignments):
    t1 = add_transaction([{"split_id": "s1", "amount": 5}])
    t2 = add_transaction([{"split_id": "s2", "amount": 5}])
    operations = [
        WriteOperation(TRANSACTIONS, t1.id, {"splits": [{"split_id": "s1", "budget_id": "b1", "amount": 5}]}),
        WriteOperation(TRANSACTIONS, "ghost", {"splits": []}),
        WriteOperation(TRANSACTIONS, t2.id, {"splits": [{"split_id": "s2", "budget_id": "b2", "amount": 5}]}),
    ]

    result = await store.batch_write(operations, max_batch_size=2)

    assert result.batch_count == 2
    assert result.committed == 2
    assert list(result.failed) == ["ghost"]
    assert stored_assignments(t1.id) == {"s1": "b1"}
    assert stored_assignments(t2.id) == {"s2": "b2"}


async def test_replace_splits_updates_in_place_and_drops_missing(store, add_transaction, db_session):
    txn = add_transaction([
        {"split_id": "keep", "amount": 5, "category_primary": "FOOD"},
        {"split_id": "drop", "amount": 5},
    ])
    keep_pk = txn.splits[0].id
    splits = [
        {"split_id": "new", "budget_id": "b2", "amount": Decimal("4")},
        {"split_id": "keep", "budget_id": "b1", "amount": Decimal("6")},
    ]

    result = await store.batch_write([WriteOperation(TRANSACTIONS, txn.id, {"splits": splits})], 10)

    assert result.failed == {}
    db_session.expire_all()
    rows = db_session.get(models.Transaction, txn.id).splits
    assert [(r.split_id, r.position, r.budget_id, r.amount) for r in rows] == [
        ("new", 0, "b2", Decimal("4.00")),
        ("keep", 1, "b1", Decimal("6.00")),
    ]
    assert rows[1].id == keep_pk
    assert rows[1].category_primary == "FOOD"
    assert db_session.query(models.TransactionSplit).count() == 2


async def test_set_creates_missing_document(store, db_session):
    data = {
        "owner_id": "user-1",
        "name": "Rest",
        "amount": 0,
        "granularity": models.Granularity.MONTHLY,
        "start_date": date(2025, 1, 1),
    }
    result = await store.batch_write([WriteOperation(BUDGETS, "b-new", data, kind="set")], 10)
    assert result.committed == 1
    assert db_session.get(models.Budget, "b-new").name == "Rest"


async def test_unknown_fields_are_rejected(store, add_budget):
    budget = add_budget()
    result = await store.batch_write([WriteOperation(BUDGETS, budget.id, {"id": "other"})], 10)
    assert budget.id in result.failed


def test_chunked():
    assert chunked([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]
    with pytest.raises(ValueError):
        chunked([1], 0)
