"""
gardentap.services.tap_service — The Tap
==========================================

One tap, as a single transaction:

    1. Regenerate energy lazily; refuse with ``NO_ENERGY`` if the tank is empty.
    2. Yield from the tool equipped for the location's character (or the
       bare-handed defaults).
    3. Credit the location currency clamped to storage, then main coins
       uncapped.
    4. Spend one energy.
    5. Add ``tap.experience_per_tap`` experience through the reward cascade.
    6. Record tap statistics and task progress, then evaluate achievements
       once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from gardentap.constants import MAIN_CURRENCY, ZERO, utcnow
from gardentap.database.engine import player_transaction
from gardentap.database.models import TaskType
from gardentap.engine.tap import calculate_yield
from gardentap.errors import RejectReason
from gardentap.services import (
    achievement_service,
    ledger_service,
    leveling_service,
    notifications,
    progress_service,
    task_service,
)

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from gardentap.engine.catalog import Catalog
    from gardentap.services.leveling_service import AppliedReward
    from gardentap.services.notifications import NotificationSink

logger = logging.getLogger(__name__)


@dataclass
class TapResult:
    location_gain: Decimal = ZERO
    main_gain: Decimal = ZERO
    storage_full: bool = False
    level_up: bool = False
    new_level: int = 1
    rewards: list[AppliedReward] = field(default_factory=list)
    energy_left: int = 0
    experience_gained: int = 0
    tasks_completed: list[int] = field(default_factory=list)
    achievements: list[int] = field(default_factory=list)
    rejected: RejectReason | None = None

    @property
    def ok(self) -> bool:
        return self.rejected is None


def tap(
    engine: Engine,
    catalog: Catalog,
    user_id: str,
    location_id: int,
    *,
    now: datetime | None = None,
    sink: NotificationSink | None = None,
) -> TapResult:
    """Perform one tap for *user_id* at *location_id*.

    Raises
    ------
    NotFoundError
        If *location_id* is not in the catalog.
    """
    location = catalog.location(location_id)
    now = now or utcnow()

    with player_transaction(engine, user_id) as session:
        progress = progress_service.load_player(session, catalog, user_id, now)
        progress_service.regenerate(progress, catalog, now)

        if progress.energy <= 0:
            logger.debug("Tap refused for %s: no energy", user_id)
            return TapResult(
                new_level=progress.level,
                energy_left=0,
                rejected=RejectReason.NO_ENERGY,
            )

        tool = progress_service.equipped_tool(session, catalog, user_id, location.character_id)
        gross = calculate_yield(progress_service.tool_stats(tool))

        capacity = progress_service.storage_capacity(
            session, catalog, user_id, location.id, location.currency_id,
        )
        location_gain = ledger_service.credit(
            session, catalog, user_id, location.currency_id, gross.location_gain, capacity,
        )
        main_gain = ledger_service.credit(
            session, catalog, user_id, MAIN_CURRENCY, gross.main_gain,
        )

        progress.energy -= 1

        exp = catalog.get_int("tap.experience_per_tap", default=1)
        level = leveling_service.add_experience_in_session(
            session, catalog, progress, exp,
            now=now, location_id=location.id, evaluate=False,
        )

        progress_service.record_tap_stats(session, user_id, location_gain, 1)
        completed = task_service.record_activity(
            session, catalog, progress,
            {
                TaskType.TAP: 1,
                TaskType.SPEND_ENERGY: 1,
                TaskType.COLLECT_CURRENCY: int(location_gain),
                TaskType.EARN_EXPERIENCE: exp,
            },
            now=now,
        )
        progress_service.check_invariants(progress)

        granted = achievement_service.evaluate_achievements(session, catalog, progress, now=now)

        result = TapResult(
            location_gain=location_gain,
            main_gain=main_gain,
            storage_full=location_gain < gross.location_gain,
            level_up=level.level_up,
            new_level=level.level,
            rewards=level.rewards,
            energy_left=progress.energy,
            experience_gained=exp,
            achievements=granted,
            tasks_completed=completed,
        )
        notices = notifications.drain(session)

    notifications.deliver_all(sink, notices)
    return result
