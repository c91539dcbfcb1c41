"""
gardentap.services.leveling_service — Experience Intake & Reward Cascade
==========================================================================

Adds experience to a player, runs the multi-level-up loop from
:mod:`gardentap.engine.leveling`, applies each reached level's rewards
through a handler registry (one handler per
:class:`~gardentap.database.models.RewardType`), writes the final level and
experience once, and triggers achievement evaluation after a level-up.

:func:`add_experience_in_session` is the in-transaction building block used
by the tap; :func:`add_experience` is the standalone operation.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from gardentap.constants import MAIN_CURRENCY, utcnow
from gardentap.database.engine import player_transaction
from gardentap.database.models import NoticeKind, PlayerProgress, RewardType, TaskType
from gardentap.engine.leveling import apply_experience
from gardentap.services import achievement_service, notifications, progress_service, task_service

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from gardentap.engine.catalog import Catalog, RewardDef
    from gardentap.services.notifications import NotificationSink

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AppliedReward:
    """A reward as it actually landed on the player.

    ``credited`` is the amount that fit into storage for currency rewards;
    for unlocks ``unlocked`` is False when the player already had the item.
    """
    level: int
    reward_type: RewardType
    amount: Decimal = Decimal("0")
    currency_id: str | None = None
    target_id: int | None = None
    credited: Decimal | None = None
    unlocked: bool | None = None

    def to_payload(self) -> dict:
        payload: dict = {"level": self.level, "type": self.reward_type.value}
        if self.currency_id is not None:
            payload["currency"] = self.currency_id
            payload["amount"] = str(self.amount)
            payload["credited"] = str(self.credited)
        if self.target_id is not None:
            payload["target_id"] = self.target_id
        if self.reward_type is RewardType.ENERGY:
            payload["amount"] = str(self.amount)
        return payload


@dataclass
class LevelResult:
    level_up: bool
    level: int
    experience: int
    levels_gained: int = 0
    rewards: list[AppliedReward] = field(default_factory=list)
    achievements: list[int] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Reward handlers: (session, catalog, progress, reward, location_id) → AppliedReward
# ---------------------------------------------------------------------------
def _credit(
    session: Session, catalog: Catalog, progress: PlayerProgress,
    reward: RewardDef, currency_id: str,
) -> AppliedReward:
    credited = progress_service.deposit(
        session, catalog, progress.user_id, currency_id, reward.amount,
    )
    return AppliedReward(
        level=reward.level,
        reward_type=reward.reward_type,
        amount=reward.amount,
        currency_id=currency_id,
        credited=credited,
    )


def _apply_main_currency(
    session: Session, catalog: Catalog, progress: PlayerProgress,
    reward: RewardDef, location_id: int | None,
) -> AppliedReward:
    return _credit(session, catalog, progress, reward, MAIN_CURRENCY)


def _apply_location_currency(
    session: Session, catalog: Catalog, progress: PlayerProgress,
    reward: RewardDef, location_id: int | None,
) -> AppliedReward:
    """Pays the currency of the location the cascade started from."""
    if location_id is not None:
        location = catalog.location(location_id)
    else:
        location = catalog.starter_location()
    return _credit(session, catalog, progress, reward, location.currency_id)


def _apply_currency(
    session: Session, catalog: Catalog, progress: PlayerProgress,
    reward: RewardDef, location_id: int | None,
) -> AppliedReward:
    return _credit(session, catalog, progress, reward, reward.currency_id or MAIN_CURRENCY)


def _apply_unlock_tool(
    session: Session, catalog: Catalog, progress: PlayerProgress,
    reward: RewardDef, location_id: int | None,
) -> AppliedReward:
    unlocked = progress_service.unlock_tool(session, catalog, progress.user_id, reward.target_id)
    return AppliedReward(
        level=reward.level,
        reward_type=reward.reward_type,
        target_id=reward.target_id,
        unlocked=unlocked,
    )


def _apply_unlock_location(
    session: Session, catalog: Catalog, progress: PlayerProgress,
    reward: RewardDef, location_id: int | None,
) -> AppliedReward:
    unlocked = progress_service.unlock_location(
        session, catalog, progress.user_id, reward.target_id,
    )
    return AppliedReward(
        level=reward.level,
        reward_type=reward.reward_type,
        target_id=reward.target_id,
        unlocked=unlocked,
    )


def _apply_energy(
    session: Session, catalog: Catalog, progress: PlayerProgress,
    reward: RewardDef, location_id: int | None,
) -> AppliedReward:
    """Permanently raises max energy."""
    progress.max_energy += int(reward.amount)
    return AppliedReward(level=reward.level, reward_type=reward.reward_type, amount=reward.amount)


REWARD_HANDLERS: dict[
    RewardType,
    Callable[[Session, Catalog, PlayerProgress, RewardDef, int | None], AppliedReward],
] = {
    RewardType.MAIN_CURRENCY: _apply_main_currency,
    RewardType.LOCATION_CURRENCY: _apply_location_currency,
    RewardType.CURRENCY: _apply_currency,
    RewardType.UNLOCK_TOOL: _apply_unlock_tool,
    RewardType.UNLOCK_LOCATION: _apply_unlock_location,
    RewardType.ENERGY: _apply_energy,
}

_missing = set(RewardType) - set(REWARD_HANDLERS)
if _missing:
    raise RuntimeError(f"No reward handler for reward types: {sorted(_missing)}")


# ---------------------------------------------------------------------------
# In-transaction API
# ---------------------------------------------------------------------------
def add_experience_in_session(
    session: Session,
    catalog: Catalog,
    progress: PlayerProgress,
    amount: int,
    *,
    now: datetime,
    location_id: int | None = None,
    evaluate: bool = True,
) -> LevelResult:
    """Add *amount* experience to the locked *progress* row.

    With ``evaluate=False`` the caller takes over achievement evaluation
    (the tap does it once, after its own stats are written).
    """
    old_level = progress.level
    outcome = apply_experience(catalog, progress.level, progress.experience, amount)

    applied = [
        REWARD_HANDLERS[reward.reward_type](session, catalog, progress, reward, location_id)
        for reward in outcome.rewards
    ]

    progress.level = outcome.level
    progress.experience = outcome.experience

    result = LevelResult(
        level_up=outcome.leveled_up,
        level=outcome.level,
        experience=outcome.experience,
        levels_gained=outcome.levels_gained,
        rewards=applied,
    )
    if not outcome.leveled_up:
        return result

    logger.info(
        "Player %s levelled up %d → %d (%d rewards)",
        progress.user_id, old_level, outcome.level, len(applied),
    )
    notifications.enqueue(
        session,
        progress.user_id,
        NoticeKind.LEVEL_UP,
        {
            "old_level": old_level,
            "new_level": outcome.level,
            "rewards": [r.to_payload() for r in applied],
        },
        now=now,
    )
    if evaluate:
        result.achievements = achievement_service.evaluate_achievements(
            session, catalog, progress, now=now,
        )
    return result


# ---------------------------------------------------------------------------
# Public operation
# ---------------------------------------------------------------------------
def add_experience(
    engine: Engine,
    catalog: Catalog,
    user_id: str,
    amount: int,
    *,
    now: datetime | None = None,
    sink: NotificationSink | None = None,
) -> LevelResult:
    """Grant *amount* experience to *user_id* in one transaction."""
    if amount < 0:
        raise ValueError(f"experience amount must be non-negative, got {amount}")
    now = now or utcnow()

    with player_transaction(engine, user_id) as session:
        progress = progress_service.load_player(session, catalog, user_id, now)
        result = add_experience_in_session(session, catalog, progress, amount, now=now)
        task_service.record_activity(
            session, catalog, progress, {TaskType.EARN_EXPERIENCE: amount}, now=now,
        )
        progress_service.check_invariants(progress)
        notices = notifications.drain(session)

    notifications.deliver_all(sink, notices)
    return result
