"""
gardentap.engine.tasks — Daily & Season Task Progress
=======================================================

Every :class:`~gardentap.database.models.TaskType` is measured one of two
ways:

* **counter** — activity adds to the progress (taps, energy spent,
  resources collected, helper upgrades, experience earned, dailies claimed).
* **gauge** — progress is a reading of the player's state (level, tools
  owned, locations unlocked) and only ever moves up.

Progress is capped at the task's target.  Each task counts within a
*period*: the UTC day for daily tasks, the season's start date for season
tasks.  A new period starts from zero.

This module is pure calculation — no database I/O.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from datetime import date
from typing import TYPE_CHECKING

from gardentap.constants import as_utc
from gardentap.database.models import TaskCategory, TaskType

if TYPE_CHECKING:
    from gardentap.engine.catalog import SeasonDef, TaskDef


class Measure(enum.StrEnum):
    COUNTER = "counter"
    GAUGE = "gauge"


TASK_MEASURES: dict[TaskType, Measure] = {
    TaskType.TAP: Measure.COUNTER,
    TaskType.SPEND_ENERGY: Measure.COUNTER,
    TaskType.COLLECT_CURRENCY: Measure.COUNTER,
    TaskType.UPGRADE_HELPER: Measure.COUNTER,
    TaskType.EARN_EXPERIENCE: Measure.COUNTER,
    TaskType.COMPLETE_DAILIES: Measure.COUNTER,
    TaskType.LEVEL_UP: Measure.GAUGE,
    TaskType.UNLOCK_TOOL: Measure.GAUGE,
    TaskType.UNLOCK_LOCATION: Measure.GAUGE,
}

_missing = set(TaskType) - set(TASK_MEASURES)
if _missing:
    raise RuntimeError(f"No measure for task types: {sorted(_missing)}")

GAUGE_TYPES = frozenset(t for t, m in TASK_MEASURES.items() if m is Measure.GAUGE)


def task_period(task: TaskDef, today: date, active_season: SeasonDef | None) -> date | None:
    """The period *task* counts in on *today*, or None when it is not live."""
    if task.category is TaskCategory.DAILY:
        if task.active_from is not None and today < task.active_from:
            return None
        if task.active_until is not None and today > task.active_until:
            return None
        return today

    if active_season is None or task.season_id != active_season.id:
        return None
    return as_utc(active_season.starts_at).date()


def next_progress(
    task: TaskDef,
    current: int,
    counters: Mapping[TaskType, int],
    gauges: Mapping[TaskType, int],
) -> int:
    """Progress after applying this operation's activity, capped at the target."""
    if TASK_MEASURES[task.task_type] is Measure.GAUGE:
        value = max(current, gauges.get(task.task_type, 0))
    else:
        value = current + max(0, counters.get(task.task_type, 0))
    return min(task.target, value)
