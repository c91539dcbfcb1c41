"""
gardentap.services.task_service — Daily & Season Tasks
========================================================

Tasks track player activity per period (see :mod:`gardentap.engine.tasks`)
in ``player_task_progress``.  Every operation that does something a task
counts reports it through :func:`record_activity` inside its own player
transaction, so progress commits or rolls back with the activity itself.

Claiming pays the task's main coins, experience (through the level-up
cascade) and season points (through the rank recomputation).  The payout
is guarded by a conditional ``UPDATE ... WHERE reward_claimed = false``:
only the claim that flips the flag pays, so a task is paid once per period
no matter how many claims race for it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from gardentap.constants import MAIN_CURRENCY, ZERO, as_utc, utcnow
from gardentap.database.engine import player_transaction
from gardentap.database.models import (
    NoticeKind,
    PlayerLocation,
    PlayerProgress,
    PlayerSeasonStanding,
    PlayerTaskProgress,
    PlayerTool,
    TaskCategory,
    TaskType,
)
from gardentap.engine.tasks import GAUGE_TYPES, next_progress, task_period
from gardentap.errors import RejectReason
from gardentap.services import achievement_service, ledger_service, notifications, progress_service

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from gardentap.engine.catalog import Catalog, TaskDef
    from gardentap.services.achievement_service import RankResult
    from gardentap.services.notifications import NotificationSink

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TaskView:
    task_id: int
    category: TaskCategory
    task_type: TaskType
    description: str
    target: int
    progress: int
    period: date
    experience: int
    main_coins: Decimal
    season_points: int
    completed: bool = False
    claimed: bool = False


@dataclass
class TaskClaimResult:
    success: bool
    task_id: int
    reason: RejectReason | None = None
    main_coins: Decimal = ZERO
    experience: int = 0
    season_points: int = 0
    level_up: bool = False
    new_level: int | None = None
    rank: RankResult | None = None
    tasks_completed: list[int] = field(default_factory=list)
    achievements: list[int] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.success

    @classmethod
    def reject(cls, reason: RejectReason, task_id: int) -> TaskClaimResult:
        return cls(success=False, task_id=task_id, reason=reason)


# ---------------------------------------------------------------------------
# Gauge readers: (session, progress) → current reading
# ---------------------------------------------------------------------------
def _level(session: Session, progress: PlayerProgress) -> int:
    return progress.level


def _tools_owned(session: Session, progress: PlayerProgress) -> int:
    return session.scalar(
        select(func.count()).select_from(PlayerTool)
        .where(PlayerTool.user_id == progress.user_id)
    ) or 0


def _locations_unlocked(session: Session, progress: PlayerProgress) -> int:
    return session.scalar(
        select(func.count()).select_from(PlayerLocation)
        .where(PlayerLocation.user_id == progress.user_id)
    ) or 0


GAUGE_READERS: dict[TaskType, Callable[[Session, PlayerProgress], int]] = {
    TaskType.LEVEL_UP: _level,
    TaskType.UNLOCK_TOOL: _tools_owned,
    TaskType.UNLOCK_LOCATION: _locations_unlocked,
}

_missing = GAUGE_TYPES - set(GAUGE_READERS)
if _missing:
    raise RuntimeError(f"No gauge reader for task types: {sorted(_missing)}")


def _live_tasks(catalog: Catalog, now: datetime) -> list[tuple[TaskDef, date]]:
    today = as_utc(now).date()
    season = catalog.active_season()
    live = []
    for task in catalog.tasks():
        period = task_period(task, today, season)
        if period is not None:
            live.append((task, period))
    return live


# ---------------------------------------------------------------------------
# In-transaction API
# ---------------------------------------------------------------------------
def record_activity(
    session: Session,
    catalog: Catalog,
    progress: PlayerProgress,
    counters: Mapping[TaskType, int],
    *,
    now: datetime,
) -> list[int]:
    """Advance every live task by *counters* and the current gauge readings.

    Returns the ids of tasks completed by this call.  Claimed tasks are not
    touched again in the same period.
    """
    user_id = progress.user_id
    gauges: dict[TaskType, int] = {}
    completed: list[int] = []

    for task, period in _live_tasks(catalog, now):
        if task.task_type in GAUGE_TYPES:
            if task.task_type not in gauges:
                gauges[task.task_type] = GAUGE_READERS[task.task_type](session, progress)
        elif counters.get(task.task_type, 0) <= 0:
            continue

        row = session.get(PlayerTaskProgress, (user_id, task.id, period))
        if row is not None and (row.reward_claimed or row.completed_at is not None):
            continue
        current = row.progress if row is not None else 0
        value = next_progress(task, current, counters, gauges)
        if value == current:
            continue

        if row is None:
            row = PlayerTaskProgress(
                user_id=user_id, task_id=task.id, period=period,
                progress=value, reward_claimed=False,
            )
            session.add(row)
        else:
            row.progress = value

        if value >= task.target:
            row.completed_at = now
            completed.append(task.id)
            notifications.enqueue(
                session,
                user_id,
                NoticeKind.TASK_COMPLETED,
                {
                    "task_id": task.id,
                    "category": task.category.value,
                    "description": task.description,
                },
                now=now,
            )
            logger.info("Player %s completed %s task %d", user_id, task.category, task.id)

    session.flush()
    return completed


# ---------------------------------------------------------------------------
# Public operations
# ---------------------------------------------------------------------------
def list_tasks(
    engine: Engine,
    catalog: Catalog,
    user_id: str,
    *,
    category: TaskCategory | None = None,
    now: datetime | None = None,
    sink: NotificationSink | None = None,
) -> list[TaskView]:
    """The live tasks with the player's progress, in id order.

    Gauge tasks are brought up to date first, which can complete them.
    """
    now = now or utcnow()
    with player_transaction(engine, user_id) as session:
        progress = progress_service.load_player(session, catalog, user_id, now)
        record_activity(session, catalog, progress, {}, now=now)

        views = []
        for task, period in _live_tasks(catalog, now):
            if category is not None and task.category is not category:
                continue
            row = session.get(PlayerTaskProgress, (user_id, task.id, period))
            views.append(TaskView(
                task_id=task.id,
                category=task.category,
                task_type=task.task_type,
                description=task.description,
                target=task.target,
                progress=row.progress if row is not None else 0,
                period=period,
                experience=task.experience,
                main_coins=task.main_coins,
                season_points=task.season_points,
                completed=row is not None and row.completed_at is not None,
                claimed=row is not None and row.reward_claimed,
            ))
        notices = notifications.drain(session)

    notifications.deliver_all(sink, notices)
    return views


def _mark_claimed(
    session: Session, user_id: str, task: TaskDef, period: date, now: datetime,
) -> RejectReason | None:
    row = session.get(PlayerTaskProgress, (user_id, task.id, period))
    if row is None or row.completed_at is None:
        return RejectReason.TASK_NOT_COMPLETED
    if row.reward_claimed:
        return RejectReason.ALREADY_CLAIMED

    claimed = session.execute(
        update(PlayerTaskProgress)
        .where(
            PlayerTaskProgress.user_id == user_id,
            PlayerTaskProgress.task_id == task.id,
            PlayerTaskProgress.period == period,
            PlayerTaskProgress.reward_claimed.is_(False),
        )
        .values(reward_claimed=True, claimed_at=now)
    )
    if claimed.rowcount != 1:
        logger.warning("Task %d already claimed by %s for %s", task.id, user_id, period)
        return RejectReason.ALREADY_CLAIMED
    return None


def _pay(
    session: Session,
    catalog: Catalog,
    progress: PlayerProgress,
    task: TaskDef,
    now: datetime,
) -> TaskClaimResult:
    from gardentap.services import leveling_service

    user_id = progress.user_id
    result = TaskClaimResult(
        success=True,
        task_id=task.id,
        experience=task.experience,
        season_points=task.season_points,
    )

    if task.main_coins > 0:
        result.main_coins = ledger_service.credit(
            session, catalog, user_id, MAIN_CURRENCY, task.main_coins,
        )

    level = leveling_service.add_experience_in_session(
        session, catalog, progress, task.experience, now=now, evaluate=False,
    )
    result.level_up = level.level_up
    result.new_level = level.level

    season = catalog.active_season()
    if task.season_points > 0 and season is not None:
        standing = session.get(PlayerSeasonStanding, (user_id, season.id))
        points = (standing.points if standing is not None else 0) + task.season_points
        result.rank = achievement_service.apply_rank(
            session, catalog, progress, season.id, points, now=now,
        )

    counters = {TaskType.EARN_EXPERIENCE: task.experience}
    if task.category is TaskCategory.DAILY:
        counters[TaskType.COMPLETE_DAILIES] = 1
    result.tasks_completed = record_activity(session, catalog, progress, counters, now=now)
    return result


def claim_task(
    engine: Engine,
    catalog: Catalog,
    user_id: str,
    task_id: int,
    *,
    now: datetime | None = None,
    sink: NotificationSink | None = None,
) -> TaskClaimResult:
    """Pay out a completed task once for the current period.

    Raises
    ------
    NotFoundError
        If *task_id* is not an active task in the catalog.
    """
    task = catalog.task(task_id)
    now = now or utcnow()

    with player_transaction(engine, user_id) as session:
        progress = progress_service.load_player(session, catalog, user_id, now)
        record_activity(session, catalog, progress, {}, now=now)

        period = task_period(task, as_utc(now).date(), catalog.active_season())
        if period is None:
            reason = RejectReason.TASK_NOT_ACTIVE
        else:
            reason = _mark_claimed(session, user_id, task, period, now)

        if reason is None:
            result = _pay(session, catalog, progress, task, now)
            progress_service.check_invariants(progress)
            result.achievements = achievement_service.evaluate_achievements(
                session, catalog, progress, now=now,
            )
            logger.info(
                "Player %s claimed %s task %d: %s coins, %d exp, %d season points",
                user_id, task.category, task.id,
                result.main_coins, task.experience, task.season_points,
            )
        else:
            result = TaskClaimResult.reject(reason, task_id)
        notices = notifications.drain(session)

    notifications.deliver_all(sink, notices)
    return result
