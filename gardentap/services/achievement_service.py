"""
gardentap.services.achievement_service — Rank & Achievement Evaluator
=======================================================================

Two jobs:

* **Rank** — :func:`update_rank` stores a player's season points, derives
  the rank from them (:mod:`gardentap.engine.ranks`), raises the highest
  rank when earned, and mirrors both into the ``player_progress`` cache.
* **Achievements** — :func:`evaluate_achievements` builds an
  :class:`~gardentap.engine.achievements.AchievementContext` from the
  player's state, asks the pure registry which unearned achievements are
  satisfied, and inserts the grants.

Grants are idempotent through the ``(user_id, achievement_id)`` primary key:
each insert runs in its own SAVEPOINT, and an ``IntegrityError`` means a
concurrent scan got there first.  The achievement's reward and its
notification are only issued when the insert succeeded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gardentap.constants import MAIN_CURRENCY, as_utc, utcnow
from gardentap.database.engine import player_transaction
from gardentap.database.models import (
    NoticeKind,
    PlayerAchievement,
    PlayerProgress,
    PlayerSeasonStanding,
)
from gardentap.engine.achievements import AchievementContext, check_achievements as find_new
from gardentap.engine.ranks import higher, resolve_rank
from gardentap.errors import NotFoundError
from gardentap.services import ledger_service, notifications, progress_service

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from gardentap.engine.catalog import Catalog
    from gardentap.services.notifications import NotificationSink

logger = logging.getLogger(__name__)


@dataclass
class RankResult:
    season_id: int
    points: int
    rank_id: int
    rank_name: str
    highest_rank_id: int
    previous_rank_id: int | None = None
    rank_up: bool = False
    achievements: list[int] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Achievements (in-transaction)
# ---------------------------------------------------------------------------
def earned_achievement_ids(session: Session, user_id: str) -> set[int]:
    return set(session.scalars(
        select(PlayerAchievement.achievement_id).where(PlayerAchievement.user_id == user_id)
    ))


def build_context(
    session: Session, catalog: Catalog, progress: PlayerProgress, *, days_inactive: int = 0,
) -> AchievementContext:
    """Snapshot everything the condition handlers read."""
    user_id = progress.user_id
    stats = progress_service.stats(session, user_id)
    return AchievementContext(
        level=progress.level,
        rank_tier=catalog.rank_tier(progress.current_rank_id),
        highest_rank_tier=catalog.rank_tier(progress.highest_rank_id),
        seasons_participated=progress_service.seasons_participated(session, user_id),
        daily_login_streak=progress_service.login_streak(session, user_id),
        days_inactive=days_inactive,
        total_taps=stats.total_taps or 0,
        total_resources_gained=stats.total_resources_gained or 0,
        total_energy_spent=stats.total_energy_spent or 0,
        helpers_owned=len(progress_service.owned_helpers(session, user_id)),
        max_storage_level=progress_service.max_storage_level(session, user_id),
        main_balance=ledger_service.get_balance(session, catalog, user_id, MAIN_CURRENCY),
    )


def evaluate_achievements(
    session: Session,
    catalog: Catalog,
    progress: PlayerProgress,
    *,
    now: datetime,
    days_inactive: int = 0,
) -> list[int]:
    """Grant every newly satisfied achievement; return the granted ids."""
    user_id = progress.user_id
    ctx = build_context(session, catalog, progress, days_inactive=days_inactive)
    candidates = find_new(catalog, ctx, earned_achievement_ids(session, user_id))

    granted: list[int] = []
    for ach in candidates:
        try:
            with session.begin_nested():   # SAVEPOINT
                session.add(PlayerAchievement(
                    user_id=user_id, achievement_id=ach.id, date_unlocked=now,
                ))
                session.flush()
        except IntegrityError:
            # Another scan for this player inserted it first.
            logger.warning("Achievement %d already granted to %s", ach.id, user_id)
            continue

        if ach.reward_amount > 0:
            ledger_service.credit(session, catalog, user_id, MAIN_CURRENCY, ach.reward_amount)
        notifications.enqueue(
            session,
            user_id,
            NoticeKind.ACHIEVEMENT_UNLOCKED,
            {
                "achievement_id": ach.id,
                "name": ach.name,
                "reward": str(ach.reward_amount),
            },
            now=now,
        )
        granted.append(ach.id)
        logger.info("Achievement '%s' granted to %s", ach.name, user_id)

    return granted


# ---------------------------------------------------------------------------
# Rank (in-transaction)
# ---------------------------------------------------------------------------
def apply_rank(
    session: Session,
    catalog: Catalog,
    progress: PlayerProgress,
    season_id: int,
    points: int,
    *,
    now: datetime,
) -> RankResult:
    """Store *points* for the season and recompute the rank from them."""
    catalog.season(season_id)
    if points < 0:
        raise ValueError(f"season points must be non-negative, got {points}")

    user_id = progress.user_id
    rank = resolve_rank(points, catalog.ranks())
    standing = session.get(PlayerSeasonStanding, (user_id, season_id))

    previous_rank_id = None
    if standing is None:
        standing = PlayerSeasonStanding(
            user_id=user_id,
            season_id=season_id,
            points=points,
            rank_id=rank.id,
            highest_rank_id=rank.id,
        )
        session.add(standing)
        rank_up = rank.tier > 1
    else:
        previous_rank_id = standing.rank_id
        previous_highest = catalog.rank(standing.highest_rank_id)
        standing.points = points
        standing.rank_id = rank.id
        rank_up = rank.tier > previous_highest.tier
        if rank_up:
            standing.highest_rank_id = rank.id
    session.flush()

    # Profile cache: current rank follows the latest standing, highest only rises.
    cached_highest = (
        catalog.rank(progress.highest_rank_id) if progress.highest_rank_id is not None else None
    )
    progress.current_rank_id = rank.id
    progress.highest_rank_id = higher(cached_highest, rank).id

    if rank_up:
        logger.info(
            "Player %s ranked up to %s in season %d (%d points)",
            user_id, rank.name, season_id, points,
        )
        notifications.enqueue(
            session,
            user_id,
            NoticeKind.RANK_UP,
            {
                "season_id": season_id,
                "rank_id": rank.id,
                "rank_name": rank.name,
                "previous_rank_id": previous_rank_id,
                "points": points,
            },
            now=now,
        )

    return RankResult(
        season_id=season_id,
        points=points,
        rank_id=rank.id,
        rank_name=rank.name,
        highest_rank_id=standing.highest_rank_id,
        previous_rank_id=previous_rank_id,
        rank_up=rank_up,
    )


# ---------------------------------------------------------------------------
# Public operations
# ---------------------------------------------------------------------------
def update_rank(
    engine: Engine,
    catalog: Catalog,
    user_id: str,
    season_id: int,
    points: int,
    *,
    now: datetime | None = None,
    sink: NotificationSink | None = None,
) -> RankResult:
    """Set the player's season points and recompute rank, then scan achievements."""
    now = now or utcnow()
    with player_transaction(engine, user_id) as session:
        progress = progress_service.load_player(session, catalog, user_id, now)
        result = apply_rank(session, catalog, progress, season_id, points, now=now)
        result.achievements = evaluate_achievements(session, catalog, progress, now=now)
        notices = notifications.drain(session)

    notifications.deliver_all(sink, notices)
    return result


def check_achievements(
    engine: Engine,
    catalog: Catalog,
    user_id: str,
    *,
    now: datetime | None = None,
    sink: NotificationSink | None = None,
) -> list[int]:
    """Scan and grant achievements for *user_id*; returns newly granted ids.

    Running it again with no state change in between grants nothing.
    """
    now = now or utcnow()
    with player_transaction(engine, user_id) as session:
        progress = progress_service.load_player(session, catalog, user_id, now)
        granted = evaluate_achievements(session, catalog, progress, now=now)
        notices = notifications.drain(session)

    notifications.deliver_all(sink, notices)
    return granted


@dataclass(frozen=True, slots=True)
class EarnedAchievement:
    achievement_id: int
    name: str
    description: str | None
    date_unlocked: datetime


def list_achievements(engine: Engine, catalog: Catalog, user_id: str) -> list[EarnedAchievement]:
    """The player's grants with their catalog names, oldest first.

    Grants whose achievement is no longer in the catalog are left out.
    """
    with Session(engine) as session:
        rows = session.execute(
            select(PlayerAchievement.achievement_id, PlayerAchievement.date_unlocked)
            .where(PlayerAchievement.user_id == user_id)
            .order_by(PlayerAchievement.date_unlocked, PlayerAchievement.achievement_id)
        ).all()

    earned: list[EarnedAchievement] = []
    for achievement_id, date_unlocked in rows:
        try:
            ach = catalog.achievement(achievement_id)
        except NotFoundError:
            logger.warning("Player %s holds unknown achievement %d", user_id, achievement_id)
            continue
        earned.append(EarnedAchievement(
            achievement_id=ach.id,
            name=ach.name,
            description=ach.description,
            date_unlocked=as_utc(date_unlocked),
        ))
    return earned
