"""
gardentap.database.engine — Database Connection, Player Transactions & Async Helper
====================================================================================

Every operation that mutates a player's state runs inside exactly one
:func:`player_transaction`.  The helper:

    1. Takes an in-process mutex for the player's ``user_id`` so two
       requests for the same player in this process queue up instead of
       racing.
    2. Opens a :class:`Session`.  The caller then locks the player's
       ``player_progress`` row (``SELECT … FOR UPDATE``) through
       :func:`gardentap.services.progress_service.load_player`, which also
       creates the player lazily on first contact.  The row lock is what
       serializes the player across processes.
    3. Commits on success and rolls back on every exception path, so a
       failed or timed-out cascade never leaves partial credits behind.

Operations on different players never share a mutex or a row lock.

SQLAlchemy + psycopg2 is synchronous; async callers go through
:func:`run_db`, which ships the work to a thread pool.

Usage::

    from gardentap.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()          # reads DATABASE_URL from .env
    init_db(engine)                      # CREATE TABLE IF NOT EXISTS + seeds

    result = await run_db(tap, engine, catalog, "tg:42", 1)
"""

from __future__ import annotations

import asyncio
import logging
import os
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from gardentap.database.models import Base
from gardentap.errors import InvariantViolation, StorageUnavailable

if TYPE_CHECKING:
    from gardentap.config import GardenTapConfig

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine(cfg: GardenTapConfig | None = None) -> Engine:
    """Build a SQLAlchemy :class:`Engine` from the ``DATABASE_URL`` env var.

    Pool sizing comes from *cfg* when given (``pool_size`` / ``max_overflow``),
    otherwise five persistent connections plus ten overflow.  On PostgreSQL
    ``statement_timeout_ms`` is applied to every connection so a stuck query
    surfaces as :class:`~gardentap.errors.StorageUnavailable` instead of
    hanging a request.

    Raises
    ------
    RuntimeError
        If ``DATABASE_URL`` is not set.
    """
    url = os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set a valid PostgreSQL URL."
        )

    connect_args: dict[str, object] = {}
    if cfg is not None and cfg.statement_timeout_ms and url.startswith("postgresql"):
        connect_args["options"] = f"-c statement_timeout={cfg.statement_timeout_ms}"

    engine = create_engine(
        url,
        echo=False,
        pool_size=cfg.pool_size if cfg else 5,
        max_overflow=cfg.max_overflow if cfg else 10,
        pool_pre_ping=True,
        pool_timeout=10,
        pool_recycle=3600,
        connect_args=connect_args,
    )
    logger.info("Database engine created → %s", engine.url.host)
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create all tables and seed default settings and the default catalog.

    Safe to call on every startup.  In production the schema is managed by
    Alembic (``alembic upgrade head``); ``create_all`` stays as the safety
    net for dev/test databases.
    """
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")

    from gardentap.database.seed import seed_catalog, seed_default_settings

    seed_default_settings(engine)
    seed_catalog(engine)


# ---------------------------------------------------------------------------
# Session helpers
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine) -> Iterator[Session]:
    """Yield a :class:`Session` that auto-commits on success and rolls back
    on exception.  Used for catalog maintenance and read-only queries.
    """
    session = Session(engine)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


class _PlayerLock:
    """A per-player mutex plus the number of threads holding or awaiting it."""

    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


_registry_lock = threading.Lock()
_player_locks: dict[str, _PlayerLock] = {}


def _acquire_player_lock(user_id: str) -> _PlayerLock:
    with _registry_lock:
        entry = _player_locks.get(user_id)
        if entry is None:
            entry = _player_locks[user_id] = _PlayerLock()
        entry.users += 1
    entry.lock.acquire()
    return entry


def _release_player_lock(user_id: str, entry: _PlayerLock) -> None:
    entry.lock.release()
    with _registry_lock:
        entry.users -= 1
        if entry.users == 0:
            del _player_locks[user_id]


@contextmanager
def player_transaction(engine: Engine, user_id: str) -> Iterator[Session]:
    """Run one player operation as a single all-or-nothing transaction.

    ``OperationalError`` (connection lost, statement timeout, lock timeout)
    is re-raised as :class:`StorageUnavailable` after rollback; nothing is
    retried here.  :class:`InvariantViolation` is logged and re-raised.
    """
    entry = _acquire_player_lock(user_id)
    session = Session(engine)
    try:
        yield session
        session.commit()
    except OperationalError as exc:
        session.rollback()
        logger.warning("Storage failure for player %s: %s", user_id, exc)
        raise StorageUnavailable(str(exc)) from exc
    except InvariantViolation:
        session.rollback()
        logger.exception("Invariant violated for player %s — rolled back", user_id)
        raise
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
        _release_player_lock(user_id, entry)


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Run a **synchronous** engine operation on a background thread.

    Async callers (the HTTP layer, a bot) go through this wrapper so the
    event loop is never blocked by a database round-trip::

        result = await run_db(tap, engine, catalog, user_id, location_id)

    Under the hood it calls :func:`asyncio.to_thread`.
    """
    return await asyncio.to_thread(func, *args, **kwargs)
