from __future__ import annotations

import os
import tempfile
from datetime import date
from decimal import Decimal
from typing import Generator, Any

# The app engine (used by the lifespan hook) must never touch the developer database
os.environ.setdefault("BUDGET_ENGINE_DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from budget_engine.core.database import Base, get_db
from budget_engine.main import app
from budget_engine import models
from budget_engine.models import Granularity, new_id


@pytest.fixture(scope="session")
def test_db_url() -> Generator[str, Any, Any]:
    # Temp file SQLite so the developer database is never touched
    fd, path = tempfile.mkstemp(prefix="budget_engine_test_", suffix=".sqlite3")
    os.close(fd)
    url = f"sqlite:///{path}"
    yield url
    try:
        os.remove(path)
    except OSError:
        pass


@pytest.fixture(scope="session")
def engine(test_db_url: str):
    eng = create_engine(test_db_url, connect_args={"check_same_thread": False})
    Base.metadata.create_all(eng)
    return eng


@pytest.fixture(scope="function")
def db_session(engine) -> Generator[Any, Any, Any]:
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        # Wipe all tables between tests
        with engine.begin() as conn:
            if engine.dialect.name == "sqlite":
                conn.exec_driver_sql("PRAGMA foreign_keys=OFF")
            for tbl in reversed(Base.metadata.sorted_tables):
                conn.execute(tbl.delete())
            if engine.dialect.name == "sqlite":
                conn.exec_driver_sql("PRAGMA foreign_keys=ON")


@pytest.fixture(autouse=True)
def override_dependency(db_session):
    # FastAPI DI override
    def _get_db_override():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = _get_db_override
    yield
    app.dependency_overrides.clear()


@pytest.fixture()
def client(db_session):
    from fastapi.testclient import TestClient
    with TestClient(app) as c:
        yield c


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture()
def add_budget(db_session):
    """Insert a budget row; keyword arguments override the defaults."""

    def _add(**overrides) -> models.Budget:
        values = dict(
            id=new_id(),
            owner_id="user-1",
            name="Budget",
            category_ids=[],
            amount=Decimal("100.00"),
            currency="USD",
            granularity=Granularity.MONTHLY,
            start_date=date(2025, 1, 1),
            end_date=None,
            is_active=True,
            is_catch_all=False,
        )
        values.update(overrides)
        budget = models.Budget(**values)
        db_session.add(budget)
        db_session.commit()
        return budget

    return _add


@pytest.fixture()
def add_transaction(db_session):
    """Insert a transaction with splits given as dicts (split_id, budget_id, amount, ...)."""

    def _add(splits: list[dict], **overrides) -> models.Transaction:
        values = dict(
            id=new_id(),
            owner_id="user-1",
            occurred_at=date(2025, 3, 10),
            amount=sum((Decimal(str(s["amount"])) for s in splits), Decimal("0")),
            currency="USD",
            is_active=True,
        )
        values.update(overrides)
        txn = models.Transaction(**values)
        txn.splits = [
            models.TransactionSplit(position=i, **{**s, "amount": Decimal(str(s["amount"]))})
            for i, s in enumerate(splits)
        ]
        db_session.add(txn)
        db_session.commit()
        return txn

    return _add


@pytest.fixture()
def stored_assignments(db_session):
    """split_id -> budget_id as currently stored for a transaction."""

    def _read(txn_id: str) -> dict[str, str]:
        db_session.expire_all()
        txn = db_session.get(models.Transaction, txn_id)
        return {s.split_id: s.budget_id for s in txn.splits}

    return _read
