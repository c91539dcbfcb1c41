"""
gardentap.services.progress_service — Progress Store
======================================================

Per-player level/energy/unlock/storage/stat state, and the entry point
every player operation starts with: :func:`load_player`, which locks the
player's ``player_progress`` row and creates the player on first contact.

All functions run inside the caller's session and never commit.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gardentap.constants import MAIN_CURRENCY, ZERO, as_utc, to_amount
from gardentap.database.models import (
    PlayerEquippedTool,
    PlayerHelper,
    PlayerLocation,
    PlayerLoginHistory,
    PlayerProgress,
    PlayerSeasonStanding,
    PlayerStats,
    PlayerStorageLimit,
    PlayerTool,
)
from gardentap.engine.tap import ToolStats, regenerate_energy
from gardentap.errors import InvariantViolation
from gardentap.services import ledger_service

if TYPE_CHECKING:
    from gardentap.engine.catalog import Catalog, ToolDef

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Player row
# ---------------------------------------------------------------------------
def _select_for_update(session: Session, user_id: str) -> PlayerProgress | None:
    return session.scalar(
        select(PlayerProgress)
        .where(PlayerProgress.user_id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )


def _create_player(session: Session, catalog: Catalog, user_id: str, now: datetime) -> None:
    """Insert a new player with the starter kit."""
    start_energy = catalog.get_int("energy.start", default=100)
    max_energy = catalog.get_int("energy.max_start", default=100)
    session.add(PlayerProgress(
        user_id=user_id,
        level=1,
        experience=0,
        energy=min(start_energy, max_energy),
        max_energy=max_energy,
        last_energy_refill_time=now,
        last_login=now,
        income_accrued_at=now,
    ))
    session.add(PlayerStats(user_id=user_id))
    session.flush()

    location = catalog.starter_location()
    session.add(PlayerLocation(user_id=user_id, location_id=location.id))

    tool = catalog.tool(catalog.get_int("player.starter_tool_id", default=1))
    session.add(PlayerTool(user_id=user_id, tool_id=tool.id))
    session.add(PlayerEquippedTool(
        user_id=user_id, character_id=tool.character_id, tool_id=tool.id,
    ))

    ledger_service.ensure_account(session, catalog, user_id, MAIN_CURRENCY)
    ledger_service.ensure_account(session, catalog, user_id, location.currency_id)
    session.flush()


def load_player(
    session: Session, catalog: Catalog, user_id: str, now: datetime,
) -> PlayerProgress:
    """Lock and return the player's progress row, creating the player if new.

    Two first contacts racing on different connections both try the insert;
    the loser's SAVEPOINT rolls back on the primary key and it reloads the
    winner's row.
    """
    progress = _select_for_update(session, user_id)
    if progress is not None:
        return progress

    try:
        with session.begin_nested():   # SAVEPOINT
            _create_player(session, catalog, user_id, now)
        logger.info("Created player %s", user_id)
    except IntegrityError:
        logger.warning("Concurrent creation of player %s — using existing row", user_id)

    progress = _select_for_update(session, user_id)
    if progress is None:
        raise InvariantViolation(f"player {user_id} missing after creation")
    return progress


def check_invariants(progress: PlayerProgress) -> None:
    """Raise :class:`InvariantViolation` if energy or experience is out of bounds."""
    if not 0 <= progress.energy <= progress.max_energy:
        raise InvariantViolation(
            f"energy {progress.energy} outside [0, {progress.max_energy}] "
            f"for {progress.user_id}"
        )
    if progress.experience < 0:
        raise InvariantViolation(
            f"negative experience {progress.experience} for {progress.user_id}"
        )


# ---------------------------------------------------------------------------
# Energy
# ---------------------------------------------------------------------------
def regenerate(progress: PlayerProgress, catalog: Catalog, now: datetime) -> None:
    """Apply lazy energy regeneration up to *now*."""
    state = regenerate_energy(
        progress.energy,
        progress.max_energy,
        as_utc(progress.last_energy_refill_time),
        now,
        catalog.get_int("energy.regen_seconds", default=60),
    )
    progress.energy = state.energy
    progress.last_energy_refill_time = state.last_refill


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------
def storage_row(
    session: Session, user_id: str, location_id: int, currency_id: str,
) -> PlayerStorageLimit | None:
    return session.get(PlayerStorageLimit, (user_id, location_id, currency_id))


def storage_capacity(
    session: Session, catalog: Catalog, user_id: str, location_id: int, currency_id: str,
) -> Decimal:
    """Capacity for (location, currency).

    Resolution order:
      1. the player's own storage row
      2. the location's level-1 catalog storage level
      3. the ``storage.default_capacity`` setting
    """
    row = storage_row(session, user_id, location_id, currency_id)
    if row is not None:
        return to_amount(row.capacity)
    base = catalog.storage_level(location_id, 1)
    if base is not None:
        return base.capacity
    return catalog.get_decimal("storage.default_capacity", default=1000)


def storage_level(session: Session, user_id: str, location_id: int, currency_id: str) -> int:
    row = storage_row(session, user_id, location_id, currency_id)
    return row.storage_level if row is not None else 1


def max_storage_level(session: Session, user_id: str) -> int:
    level = session.scalar(
        select(func.max(PlayerStorageLimit.storage_level))
        .where(PlayerStorageLimit.user_id == user_id)
    )
    return level or 1


def capacity_for_currency(
    session: Session, catalog: Catalog, user_id: str, currency_id: str,
) -> Decimal | None:
    """Capacity governing *currency_id*; None for global (uncapped) currencies."""
    location = catalog.location_for_currency(currency_id)
    if location is None:
        return None
    return storage_capacity(session, catalog, user_id, location.id, currency_id)


def deposit(
    session: Session, catalog: Catalog, user_id: str, currency_id: str, amount: Decimal,
) -> Decimal:
    """Credit *amount*, clamped to storage when the currency is location-scoped."""
    capacity = capacity_for_currency(session, catalog, user_id, currency_id)
    return ledger_service.credit(session, catalog, user_id, currency_id, amount, capacity)


# ---------------------------------------------------------------------------
# Unlocks & equipment
# ---------------------------------------------------------------------------
def has_tool(session: Session, user_id: str, tool_id: int) -> bool:
    return session.get(PlayerTool, (user_id, tool_id)) is not None


def has_location(session: Session, user_id: str, location_id: int) -> bool:
    return session.get(PlayerLocation, (user_id, location_id)) is not None


def unlock_tool(session: Session, catalog: Catalog, user_id: str, tool_id: int) -> bool:
    """Add *tool_id* to the player's tools.  False if it was already there."""
    catalog.tool(tool_id)
    if has_tool(session, user_id, tool_id):
        return False
    session.add(PlayerTool(user_id=user_id, tool_id=tool_id))
    session.flush()
    return True


def unlock_location(session: Session, catalog: Catalog, user_id: str, location_id: int) -> bool:
    """Add *location_id* to the player's locations.  False if already unlocked."""
    location = catalog.location(location_id)
    if has_location(session, user_id, location_id):
        return False
    session.add(PlayerLocation(user_id=user_id, location_id=location_id))
    ledger_service.ensure_account(session, catalog, user_id, location.currency_id)
    session.flush()
    return True


def equip(session: Session, user_id: str, character_id: int, tool_id: int) -> None:
    row = session.get(PlayerEquippedTool, (user_id, character_id))
    if row is None:
        session.add(PlayerEquippedTool(
            user_id=user_id, character_id=character_id, tool_id=tool_id,
        ))
    else:
        row.tool_id = tool_id
    session.flush()


def equipped_tool(
    session: Session, catalog: Catalog, user_id: str, character_id: int,
) -> ToolDef | None:
    row = session.get(PlayerEquippedTool, (user_id, character_id))
    if row is None:
        return None
    return catalog.tool(row.tool_id)


def tool_stats(tool: ToolDef | None) -> ToolStats | None:
    if tool is None:
        return None
    return ToolStats(
        power=tool.power,
        main_coins_power=tool.main_coins_power,
        location_coins_power=tool.location_coins_power,
    )


# ---------------------------------------------------------------------------
# Helpers & seasons
# ---------------------------------------------------------------------------
def owned_helpers(session: Session, user_id: str) -> list[PlayerHelper]:
    return list(session.scalars(
        select(PlayerHelper)
        .where(PlayerHelper.user_id == user_id)
        .order_by(PlayerHelper.helper_id)
    ))


def seasons_participated(session: Session, user_id: str) -> int:
    return session.scalar(
        select(func.count())
        .select_from(PlayerSeasonStanding)
        .where(PlayerSeasonStanding.user_id == user_id)
    ) or 0


# ---------------------------------------------------------------------------
# Stats & logins
# ---------------------------------------------------------------------------
def stats(session: Session, user_id: str) -> PlayerStats:
    row = session.get(PlayerStats, user_id)
    if row is None:
        row = PlayerStats(
            user_id=user_id, total_taps=0, total_resources_gained=ZERO, total_energy_spent=0,
        )
        session.add(row)
        session.flush()
    return row


def record_tap_stats(
    session: Session, user_id: str, resources_gained: Decimal, energy_spent: int,
) -> PlayerStats:
    row = stats(session, user_id)
    row.total_taps = (row.total_taps or 0) + 1
    row.total_resources_gained = to_amount(row.total_resources_gained or 0) + resources_gained
    row.total_energy_spent = (row.total_energy_spent or 0) + energy_spent
    return row


def record_login(session: Session, progress: PlayerProgress, now: datetime) -> int:
    """Stamp ``last_login`` and today's login-history row.

    Returns whole days since the previous ``last_login``.
    """
    days_inactive = 0
    if progress.last_login is not None:
        gap = now - as_utc(progress.last_login)
        days_inactive = max(0, gap // timedelta(days=1))
    progress.last_login = now

    today = now.date()
    exists = session.scalar(
        select(PlayerLoginHistory.id).where(
            PlayerLoginHistory.user_id == progress.user_id,
            PlayerLoginHistory.login_date == today,
        )
    )
    if exists is None:
        session.add(PlayerLoginHistory(user_id=progress.user_id, login_date=today))
        session.flush()
    return days_inactive


def login_streak(session: Session, user_id: str) -> int:
    """Consecutive calendar days with a login, ending at the latest login."""
    dates: list[date] = list(session.scalars(
        select(PlayerLoginHistory.login_date)
        .where(PlayerLoginHistory.user_id == user_id)
        .order_by(PlayerLoginHistory.login_date.desc())
    ))
    if not dates:
        return 0
    streak = 1
    for newer, older in zip(dates, dates[1:]):
        if newer - older == timedelta(days=1):
            streak += 1
        else:
            break
    return streak
