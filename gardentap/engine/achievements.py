"""
gardentap.engine.achievements — Achievement Condition Registry
================================================================

Handler-registry implementation of achievement predicates.  Each
:class:`~gardentap.database.models.ConditionType` maps to a pure handler
``(achievement, ctx) -> bool``; the registry is checked for
exhaustiveness at import time so a new condition type cannot ship
without a handler.

This module is pure calculation — no database I/O.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Collection
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING

from gardentap.database.models import ConditionType

if TYPE_CHECKING:
    from gardentap.engine.catalog import AchievementDef, Catalog

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Achievement Context — passed to every condition handler
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class AchievementContext:
    """Snapshot of player state passed to condition handlers.

    Parameters
    ----------
    level : Current player level (after any level-up).
    rank_tier : Tier of the current rank cache (0 = unranked).
    highest_rank_tier : Tier of the highest rank ever reached.
    seasons_participated : Number of seasons the player has a standing in.
    daily_login_streak : Consecutive days ending at the latest login.
    days_inactive : Whole days between the previous and current login.
    total_taps / total_resources_gained / total_energy_spent : Tap stats.
    helpers_owned : Number of helpers owned.
    max_storage_level : Highest storage level across all locations.
    main_balance : Current main-currency balance.
    """

    level: int = 1
    rank_tier: int = 0
    highest_rank_tier: int = 0
    seasons_participated: int = 0
    daily_login_streak: int = 0
    days_inactive: int = 0
    total_taps: int = 0
    total_resources_gained: Decimal = Decimal("0")
    total_energy_spent: int = 0
    helpers_owned: int = 0
    max_storage_level: int = 1
    main_balance: Decimal = Decimal("0")


# ---------------------------------------------------------------------------
# Condition handlers — pure functions (achievement, ctx) → bool
# ---------------------------------------------------------------------------
def _check_level(ach: AchievementDef, ctx: AchievementContext) -> bool:
    return ctx.level >= ach.target


def _check_rank(ach: AchievementDef, ctx: AchievementContext) -> bool:
    """Current or highest-ever rank is at or above the target tier."""
    return max(ctx.rank_tier, ctx.highest_rank_tier) >= ach.target


def _check_seasons_participated(ach: AchievementDef, ctx: AchievementContext) -> bool:
    return ctx.seasons_participated >= ach.target


def _check_daily_streak(ach: AchievementDef, ctx: AchievementContext) -> bool:
    return ctx.daily_login_streak >= ach.target


def _check_days_inactive(ach: AchievementDef, ctx: AchievementContext) -> bool:
    """Comeback badge: the player returned after at least N days away."""
    return ctx.days_inactive >= ach.target


def _check_total_taps(ach: AchievementDef, ctx: AchievementContext) -> bool:
    return ctx.total_taps >= ach.target


def _check_total_resources_gained(ach: AchievementDef, ctx: AchievementContext) -> bool:
    return ctx.total_resources_gained >= ach.target


def _check_total_energy_spent(ach: AchievementDef, ctx: AchievementContext) -> bool:
    return ctx.total_energy_spent >= ach.target


def _check_total_coins(ach: AchievementDef, ctx: AchievementContext) -> bool:
    return ctx.main_balance >= ach.target


def _check_helpers_count(ach: AchievementDef, ctx: AchievementContext) -> bool:
    return ctx.helpers_owned >= ach.target


def _check_storage_level(ach: AchievementDef, ctx: AchievementContext) -> bool:
    return ctx.max_storage_level >= ach.target


# ---------------------------------------------------------------------------
# Handler registry
# ---------------------------------------------------------------------------
CONDITION_HANDLERS: dict[ConditionType, Callable[[AchievementDef, AchievementContext], bool]] = {
    ConditionType.LEVEL: _check_level,
    ConditionType.RANK: _check_rank,
    ConditionType.SEASONS_PARTICIPATED: _check_seasons_participated,
    ConditionType.DAILY_STREAK: _check_daily_streak,
    ConditionType.DAYS_INACTIVE: _check_days_inactive,
    ConditionType.TOTAL_TAPS: _check_total_taps,
    ConditionType.TOTAL_RESOURCES_GAINED: _check_total_resources_gained,
    ConditionType.TOTAL_ENERGY_SPENT: _check_total_energy_spent,
    ConditionType.TOTAL_COINS: _check_total_coins,
    ConditionType.HELPERS_COUNT: _check_helpers_count,
    ConditionType.STORAGE_LEVEL: _check_storage_level,
}

_missing = set(ConditionType) - set(CONDITION_HANDLERS)
if _missing:
    raise RuntimeError(f"No achievement handler for condition types: {sorted(_missing)}")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def check_achievements(
    catalog: Catalog,
    ctx: AchievementContext,
    already_earned: Collection[int],
) -> list[AchievementDef]:
    """Return every active achievement that *ctx* satisfies and the player
    has not earned yet, in catalog order.
    """
    newly: list[AchievementDef] = []
    for ach in catalog.achievements():
        if ach.id in already_earned:
            continue
        handler = CONDITION_HANDLERS[ach.condition_type]
        if handler(ach, ctx):
            newly.append(ach)
    return newly
