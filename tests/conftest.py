"""
tests/conftest.py — Shared Test Fixtures
=========================================

In-memory SQLite engine (StaticPool so worker threads share the database),
the default settings and catalog seeded into it, a loaded Catalog, a fixed
clock, and small state helpers used across the service tests.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

import pytest
from sqlalchemy import Engine, create_engine
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from gardentap.database.engine import player_transaction
from gardentap.database.models import (
    Base,
    PlayerCurrency,
    PlayerProgress,
    PlayerStorageLimit,
)
from gardentap.database.seed import seed_catalog, seed_default_settings
from gardentap.engine.catalog import Catalog
from gardentap.services import progress_service

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# ---------------------------------------------------------------------------
_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent)."""
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


NOW = datetime(2026, 3, 2, 12, 0, 0, tzinfo=UTC)
"""Frozen clock passed as ``now=`` to every operation under test."""


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all GardenTap tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by the concurrency and ``run_db`` tests).
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def engine(db_engine: Engine) -> Engine:
    """The shared engine with default settings and the default catalog seeded."""
    seed_default_settings(db_engine)
    seed_catalog(db_engine)
    return db_engine


@pytest.fixture
def catalog(engine: Engine) -> Catalog:
    cat = Catalog(engine)
    cat.load_all()
    return cat


@pytest.fixture
def db_session(engine: Engine):
    """Provide a session that rolls back after each test."""
    with Session(engine) as session:
        yield session
        session.rollback()


class RecordingSink:
    """Notification sink that keeps every notice it receives."""

    def __init__(self) -> None:
        self.notices = []

    def deliver(self, notice) -> None:
        self.notices.append(notice)

    def kinds(self) -> list[str]:
        return [n.kind.value for n in self.notices]


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


# ---------------------------------------------------------------------------
# State helpers (importable: ``from conftest import make_player``)
# ---------------------------------------------------------------------------
def make_player(engine: Engine, catalog: Catalog, user_id: str = "u1", now: datetime = NOW) -> None:
    """Create *user_id* with the starter kit at *now*."""
    with player_transaction(engine, user_id) as session:
        progress_service.load_player(session, catalog, user_id, now)


def set_progress(engine: Engine, user_id: str, **fields) -> None:
    with Session(engine) as session:
        progress = session.get(PlayerProgress, user_id)
        for name, value in fields.items():
            setattr(progress, name, value)
        session.commit()


def get_progress_row(engine: Engine, user_id: str) -> PlayerProgress:
    with Session(engine) as session:
        progress = session.get(PlayerProgress, user_id)
        session.expunge(progress)
        return progress


def set_balance(engine: Engine, user_id: str, currency_id: str, amount) -> None:
    with Session(engine) as session:
        row = session.get(PlayerCurrency, (user_id, currency_id))
        if row is None:
            session.add(PlayerCurrency(
                user_id=user_id, currency_id=currency_id, amount=Decimal(str(amount)),
            ))
        else:
            row.amount = Decimal(str(amount))
        session.commit()


def balance(engine: Engine, user_id: str, currency_id: str) -> Decimal:
    with Session(engine) as session:
        row = session.get(PlayerCurrency, (user_id, currency_id))
        return Decimal(row.amount).quantize(Decimal("0.01")) if row else Decimal("0.00")


def set_storage(
    engine: Engine, user_id: str, location_id: int, currency_id: str, capacity, level: int = 1,
) -> None:
    with Session(engine) as session:
        row = session.get(PlayerStorageLimit, (user_id, location_id, currency_id))
        if row is None:
            session.add(PlayerStorageLimit(
                user_id=user_id,
                location_id=location_id,
                currency_id=currency_id,
                storage_level=level,
                capacity=Decimal(str(capacity)),
            ))
        else:
            row.capacity = Decimal(str(capacity))
            row.storage_level = level
        session.commit()
