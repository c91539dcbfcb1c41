"""
gardentap.services.player_service — Progress Snapshot
=======================================================

:func:`get_progress` is the reconciling read: it regenerates energy,
accrues idle income, records the login (``last_login`` plus the daily
history row used for streaks), evaluates achievements such as login
streaks or comebacks, and returns everything the client needs to draw
the player.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import select

from gardentap.constants import as_utc, to_amount, utcnow
from gardentap.database.engine import player_transaction
from gardentap.database.models import (
    PlayerCurrency,
    PlayerEquippedTool,
    PlayerLocation,
    PlayerTool,
)
from gardentap.services import achievement_service, income_service, notifications, progress_service

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from gardentap.engine.catalog import Catalog
    from gardentap.services.notifications import NotificationSink

logger = logging.getLogger(__name__)


@dataclass
class ProgressSnapshot:
    user_id: str
    level: int
    experience: int
    next_level_exp: int | None
    energy: int
    max_energy: int
    last_energy_refill_time: datetime
    last_login: datetime
    current_rank_id: int | None = None
    highest_rank_id: int | None = None
    balances: dict[str, Decimal] = field(default_factory=dict)
    pending_income: dict[str, Decimal] = field(default_factory=dict)
    helpers: dict[int, int] = field(default_factory=dict)
    tools: list[int] = field(default_factory=list)
    locations: list[int] = field(default_factory=list)
    equipped_tools: dict[int, int] = field(default_factory=dict)
    daily_login_streak: int = 0
    days_inactive: int = 0
    achievements: list[int] = field(default_factory=list)
    new_achievements: list[int] = field(default_factory=list)


def get_progress(
    engine: Engine,
    catalog: Catalog,
    user_id: str,
    *,
    now: datetime | None = None,
    sink: NotificationSink | None = None,
) -> ProgressSnapshot:
    """Reconcile and return the player's full state."""
    now = now or utcnow()
    with player_transaction(engine, user_id) as session:
        progress = progress_service.load_player(session, catalog, user_id, now)
        progress_service.regenerate(progress, catalog, now)
        income_service.accrue_pending_income(session, catalog, progress, now)
        days_inactive = progress_service.record_login(session, progress, now)
        progress_service.check_invariants(progress)

        granted = achievement_service.evaluate_achievements(
            session, catalog, progress, now=now, days_inactive=days_inactive,
        )
        if days_inactive:
            logger.info("Player %s returned after %d days", user_id, days_inactive)

        snapshot = ProgressSnapshot(
            user_id=user_id,
            level=progress.level,
            experience=progress.experience,
            next_level_exp=catalog.required_exp(progress.level + 1),
            energy=progress.energy,
            max_energy=progress.max_energy,
            last_energy_refill_time=as_utc(progress.last_energy_refill_time),
            last_login=as_utc(progress.last_login),
            current_rank_id=progress.current_rank_id,
            highest_rank_id=progress.highest_rank_id,
            balances={
                row.currency_id: to_amount(row.amount)
                for row in session.scalars(
                    select(PlayerCurrency).where(PlayerCurrency.user_id == user_id)
                )
            },
            pending_income={
                row.currency_id: to_amount(row.amount)
                for row in income_service.pending_rows(session, user_id)
            },
            helpers={
                h.helper_id: h.level for h in progress_service.owned_helpers(session, user_id)
            },
            tools=sorted(session.scalars(
                select(PlayerTool.tool_id).where(PlayerTool.user_id == user_id)
            )),
            locations=sorted(session.scalars(
                select(PlayerLocation.location_id).where(PlayerLocation.user_id == user_id)
            )),
            equipped_tools={
                row.character_id: row.tool_id
                for row in session.scalars(
                    select(PlayerEquippedTool).where(PlayerEquippedTool.user_id == user_id)
                )
            },
            daily_login_streak=progress_service.login_streak(session, user_id),
            days_inactive=days_inactive,
            achievements=sorted(achievement_service.earned_achievement_ids(session, user_id)),
            new_achievements=granted,
        )
        notices = notifications.drain(session)

    notifications.deliver_all(sink, notices)
    return snapshot
