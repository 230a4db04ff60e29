from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from budget_engine import models
from budget_engine.services import generate_calendar_periods


@pytest.fixture()
def seeded_calendar(db_session):
    db_session.add_all(models.CalendarPeriod(**p.model_dump()) for p in generate_calendar_periods(2024, 2025))
    db_session.commit()


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_allocation_endpoint(client, seeded_calendar):
    r = client.post(
        "/api/allocations",
        json={"amount": "100", "source_granularity": "monthly", "period_id": "2024BM02B"},
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["target_granularity"] == "half_month"
    assert body["days"] == 14
    assert Decimal(str(body["allocated_amount"])) == Decimal("48.28")


def test_allocation_unknown_period(client, seeded_calendar):
    r = client.post(
        "/api/allocations",
        json={"amount": "100", "source_granularity": "monthly", "period_id": "1999M01"},
    )
    assert r.status_code == 404
    assert r.json()["detail"]["code"] == "PERIOD_NOT_FOUND"


def test_allocation_malformed_amount(client, seeded_calendar):
    r = client.post(
        "/api/allocations",
        json={"amount": "twelve", "source_granularity": "monthly", "period_id": "2025M01"},
    )
    assert r.status_code == 422


def test_split_validation_endpoint(client):
    r = client.post(
        "/api/splits/validate",
        json={
            "amount": "100",
            "splits": [
                {"splitId": "s1", "budgetId": "b1", "amount": "60", "is_default": True},
                {"splitId": "s2", "budgetId": "b2", "amount": "60"},
            ],
        },
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["is_valid"] is False
    assert [Decimal(str(s["amount"])) for s in body["redistributed_splits"]] == [Decimal("50"), Decimal("50")]


def test_split_validation_without_splits(client):
    r = client.post("/api/splits/validate", json={"amount": "10", "splits": []})
    assert r.status_code == 200
    assert r.json()["error"]["code"] == "NO_SPLITS"


def test_reassign_endpoint(client, add_budget, add_transaction, stored_assignments):
    coffee = add_budget(category_ids=["COFFEE"])
    txn = add_transaction([{"split_id": "s1", "amount": 4, "category_primary": "COFFEE"}])

    r = client.post(
        f"/api/budgets/{coffee.id}/reassign",
        json={"owner_id": "user-1", "categories_added": ["COFFEE"], "categories_removed": []},
    )

    assert r.status_code == 200, r.text
    assert r.json()["transactions_reassigned"] == 1
    assert stored_assignments(txn.id) == {"s1": coffee.id}


def test_reassign_unknown_budget(client):
    r = client.post("/api/budgets/missing/reassign", json={"owner_id": "user-1", "categories_added": ["X"]})
    assert r.status_code == 404
    assert r.json()["detail"]["code"] == "BUDGET_NOT_FOUND"


def test_reassign_deleted_endpoint(client, add_budget, add_transaction):
    deleted = add_budget(category_ids=["FOOD"], is_active=False)
    add_transaction([{"split_id": "s1", "budget_id": deleted.id, "amount": 4, "category_primary": "FOOD"}])

    r = client.post(f"/api/budgets/{deleted.id}/reassign-deleted", json={"owner_id": "user-1"})

    assert r.status_code == 200, r.text
    assert r.json()["budget_assignments"] == {"unassigned": 1}


def test_reassign_deleted_rejects_active_budget(client, add_budget):
    budget = add_budget()
    r = client.post(f"/api/budgets/{budget.id}/reassign-deleted", json={"owner_id": "user-1"})
    assert r.status_code == 409
    assert r.json()["detail"]["code"] == "BUDGET_STILL_ACTIVE"


def test_sync_periods_endpoint(client, seeded_calendar, add_budget):
    budget = add_budget(end_date=date(2025, 1, 31))
    r = client.post(f"/api/budgets/{budget.id}/periods/sync")
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["counts"]["monthly"] == 1
    assert body["counts"]["half_month"] == 2
    assert body["created"] == sum(body["counts"].values())


def test_sync_periods_unknown_budget(client):
    r = client.post("/api/budgets/missing/periods/sync")
    assert r.status_code == 404
    assert r.json()["detail"]["code"] == "BUDGET_NOT_FOUND"


def test_reassign_all_endpoint(client, add_budget, add_transaction, stored_assignments):
    food = add_budget(category_ids=["FOOD"])
    txn = add_transaction([{"split_id": "s1", "budget_id": "gone", "amount": 4, "category_primary": "FOOD"}])

    r = client.post("/api/budgets/reassign-all", json={"owner_id": "user-1"})

    assert r.status_code == 200, r.text
    assert r.json()["splits_reassigned"] == 1
    assert stored_assignments(txn.id) == {"s1": food.id}


def test_reassign_all_requires_owner(client):
    r = client.post("/api/budgets/reassign-all", json={"owner_id": ""})
    assert r.status_code == 422
    assert r.json()["detail"]["code"] == "OWNER_REQUIRED"
