"""
gardentap.engine.catalog — In-Memory Game Catalog
===================================================

Static game configuration (currencies, locations, tools, helpers and their
level ladders, storage ladders, player levels and rewards, ranks, seasons,
achievements, daily and season tasks, gameplay settings) loaded once from
the catalog tables into immutable value objects.

The catalog is read-only at request time, so player operations never lock
or query it.  :meth:`Catalog.load_all` swaps every partition under a lock
and may be called again after an admin edit.

Usage::

    catalog = Catalog(engine)
    catalog.load_all()

    tool = catalog.tool(3)
    threshold = catalog.required_exp(level + 1)
    xp = catalog.get_int("tap.experience_per_tap", default=1)
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from gardentap.constants import to_amount
from gardentap.database.models import (
    Achievement,
    ConditionType,
    Currency,
    Helper,
    HelperLevel,
    Level,
    LevelReward,
    Location,
    Rank,
    RewardType,
    Season,
    Setting,
    StorageLevel,
    Task,
    TaskCategory,
    TaskType,
    Tool,
)
from gardentap.errors import NotFoundError

if TYPE_CHECKING:
    from datetime import date, datetime

    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class CurrencyDef:
    id: str
    name: str


@dataclass(frozen=True, slots=True)
class LocationDef:
    id: int
    name: str
    currency_id: str
    character_id: int
    unlock_level: int
    unlock_cost: Decimal


@dataclass(frozen=True, slots=True)
class ToolDef:
    id: int
    name: str
    character_id: int
    power: Decimal
    main_coins_power: Decimal
    location_coins_power: Decimal
    unlock_level: int
    unlock_cost: Decimal
    currency_id: str


@dataclass(frozen=True, slots=True)
class HelperDef:
    id: int
    name: str
    location_id: int
    currency_id: str
    unlock_level: int
    unlock_cost: Decimal
    max_level: int


@dataclass(frozen=True, slots=True)
class HelperLevelDef:
    helper_id: int
    level: int
    income_per_hour: Decimal
    upgrade_cost: Decimal


@dataclass(frozen=True, slots=True)
class StorageLevelDef:
    location_id: int
    level: int
    capacity: Decimal
    upgrade_cost: Decimal
    currency_id: str


@dataclass(frozen=True, slots=True)
class RewardDef:
    """One reward granted on reaching ``level``."""
    level: int
    reward_type: RewardType
    amount: Decimal
    currency_id: str | None = None
    target_id: int | None = None


@dataclass(frozen=True, slots=True)
class RankDef:
    id: int
    name: str
    min_points: int
    tier: int  # 1-based position in ascending min_points order


@dataclass(frozen=True, slots=True)
class SeasonDef:
    id: int
    name: str
    starts_at: datetime
    ends_at: datetime
    active: bool


@dataclass(frozen=True, slots=True)
class AchievementDef:
    """An achievement with its condition resolved to a comparable target.

    For :attr:`ConditionType.RANK` the stored ``condition_value`` is a rank
    id; ``target`` holds that rank's tier so predicates compare by
    ``min_points`` order rather than by id.
    """
    id: int
    name: str
    condition_type: ConditionType
    target: int
    reward_amount: Decimal
    description: str | None = None


@dataclass(frozen=True, slots=True)
class TaskDef:
    """A daily or season task and what claiming it pays."""
    id: int
    category: TaskCategory
    task_type: TaskType
    description: str
    target: int
    experience: int = 0
    main_coins: Decimal = Decimal("0")
    season_points: int = 0
    season_id: int | None = None
    active_from: date | None = None
    active_until: date | None = None


class Catalog:
    """Thread-safe, read-mostly view of the game's static configuration.

    Every lookup by id raises :class:`~gardentap.errors.NotFoundError` when
    the id is unknown.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._lock = threading.Lock()

        self._currencies: dict[str, CurrencyDef] = {}
        self._locations: dict[int, LocationDef] = {}
        # currency_id → location that pays it
        self._location_by_currency: dict[str, LocationDef] = {}
        self._tools: dict[int, ToolDef] = {}
        self._helpers: dict[int, HelperDef] = {}
        # (helper_id, level) → HelperLevelDef
        self._helper_levels: dict[tuple[int, int], HelperLevelDef] = {}
        # (location_id, level) → StorageLevelDef
        self._storage_levels: dict[tuple[int, int], StorageLevelDef] = {}
        # level → required experience to reach it from level - 1
        self._levels: dict[int, int] = {}
        self._rewards: dict[int, list[RewardDef]] = {}
        self._ranks: list[RankDef] = []
        self._ranks_by_id: dict[int, RankDef] = {}
        self._seasons: dict[int, SeasonDef] = {}
        self._achievements: list[AchievementDef] = []
        self._tasks: dict[int, TaskDef] = {}
        # key → parsed JSON value
        self._settings: dict[str, Any] = {}

    # -------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------
    def load_all(self) -> None:
        """Load every catalog partition from the DB.  Call on startup."""
        self._load_economy()
        self._load_helpers()
        self._load_levels()
        self._load_ranks_and_seasons()
        self._load_achievements()
        self._load_tasks()
        self._load_settings()
        logger.info(
            "Catalog loaded: %d currencies, %d locations, %d tools, %d helpers, "
            "%d levels, %d ranks, %d seasons, %d achievements, %d tasks, %d settings",
            len(self._currencies),
            len(self._locations),
            len(self._tools),
            len(self._helpers),
            len(self._levels),
            len(self._ranks),
            len(self._seasons),
            len(self._achievements),
            len(self._tasks),
            len(self._settings),
        )

    def _load_economy(self) -> None:
        with Session(self._engine) as session:
            currencies = {
                c.id: CurrencyDef(id=c.id, name=c.name)
                for c in session.scalars(select(Currency))
            }
            locations = {
                loc.id: LocationDef(
                    id=loc.id,
                    name=loc.name,
                    currency_id=loc.currency_id,
                    character_id=loc.character_id,
                    unlock_level=loc.unlock_level,
                    unlock_cost=to_amount(loc.unlock_cost),
                )
                for loc in session.scalars(select(Location).order_by(Location.id))
            }
            tools = {
                t.id: ToolDef(
                    id=t.id,
                    name=t.name,
                    character_id=t.character_id,
                    power=Decimal(t.power),
                    main_coins_power=Decimal(t.main_coins_power),
                    location_coins_power=Decimal(t.location_coins_power),
                    unlock_level=t.unlock_level,
                    unlock_cost=to_amount(t.unlock_cost),
                    currency_id=t.currency_id,
                )
                for t in session.scalars(select(Tool))
            }
            storage = {
                (s.location_id, s.level): StorageLevelDef(
                    location_id=s.location_id,
                    level=s.level,
                    capacity=to_amount(s.capacity),
                    upgrade_cost=to_amount(s.upgrade_cost),
                    currency_id=s.currency_id,
                )
                for s in session.scalars(select(StorageLevel))
            }

        by_currency: dict[str, LocationDef] = {}
        for loc in locations.values():
            by_currency.setdefault(loc.currency_id, loc)

        with self._lock:
            self._currencies = currencies
            self._locations = locations
            self._location_by_currency = by_currency
            self._tools = tools
            self._storage_levels = storage

    def _load_helpers(self) -> None:
        with Session(self._engine) as session:
            helpers = {
                h.id: HelperDef(
                    id=h.id,
                    name=h.name,
                    location_id=h.location_id,
                    currency_id=h.currency_id,
                    unlock_level=h.unlock_level,
                    unlock_cost=to_amount(h.unlock_cost),
                    max_level=h.max_level,
                )
                for h in session.scalars(select(Helper))
            }
            levels = {
                (hl.helper_id, hl.level): HelperLevelDef(
                    helper_id=hl.helper_id,
                    level=hl.level,
                    income_per_hour=to_amount(hl.income_per_hour),
                    upgrade_cost=to_amount(hl.upgrade_cost),
                )
                for hl in session.scalars(select(HelperLevel))
            }
        with self._lock:
            self._helpers = helpers
            self._helper_levels = levels

    def _load_levels(self) -> None:
        with Session(self._engine) as session:
            levels: dict[int, int] = {}
            for row in session.scalars(select(Level).order_by(Level.level)):
                if row.required_exp <= 0:
                    # A zero threshold would level a player up forever.
                    logger.warning(
                        "Level %d has non-positive required_exp %d — skipped",
                        row.level, row.required_exp,
                    )
                    continue
                levels[row.level] = row.required_exp

            rewards: dict[int, list[RewardDef]] = {}
            for r in session.scalars(select(LevelReward).order_by(LevelReward.id)):
                try:
                    reward_type = RewardType(r.reward_type)
                except ValueError:
                    logger.warning(
                        "Unknown reward type %r on level %d — skipped",
                        r.reward_type, r.level,
                    )
                    continue
                rewards.setdefault(r.level, []).append(RewardDef(
                    level=r.level,
                    reward_type=reward_type,
                    amount=to_amount(r.amount or 0),
                    currency_id=r.currency_id,
                    target_id=r.target_id,
                ))
        with self._lock:
            self._levels = levels
            self._rewards = rewards

    def _load_ranks_and_seasons(self) -> None:
        with Session(self._engine) as session:
            rows = session.scalars(select(Rank).order_by(Rank.min_points)).all()
            ranks = [
                RankDef(id=r.id, name=r.name, min_points=r.min_points, tier=i)
                for i, r in enumerate(rows, start=1)
            ]
            seasons = {
                s.id: SeasonDef(
                    id=s.id,
                    name=s.name,
                    starts_at=s.starts_at,
                    ends_at=s.ends_at,
                    active=s.active,
                )
                for s in session.scalars(select(Season))
            }
        with self._lock:
            self._ranks = ranks
            self._ranks_by_id = {r.id: r for r in ranks}
            self._seasons = seasons

    def _load_achievements(self) -> None:
        with Session(self._engine) as session:
            rows = session.scalars(
                select(Achievement)
                .where(Achievement.active.is_(True))
                .order_by(Achievement.id)
            ).all()
            raw = [
                (a.id, a.name, a.description, a.condition_type,
                 a.condition_value, a.reward_amount)
                for a in rows
            ]

        with self._lock:
            ranks_by_id = dict(self._ranks_by_id)

        achievements: list[AchievementDef] = []
        for ach_id, name, desc, ctype, value, reward in raw:
            try:
                condition = ConditionType(ctype)
            except ValueError:
                logger.warning(
                    "Achievement %d has unknown condition type %r — skipped",
                    ach_id, ctype,
                )
                continue
            target = value
            if condition is ConditionType.RANK:
                rank = ranks_by_id.get(value)
                if rank is None:
                    logger.warning(
                        "Achievement %d targets unknown rank %r — skipped", ach_id, value,
                    )
                    continue
                target = rank.tier
            achievements.append(AchievementDef(
                id=ach_id,
                name=name,
                condition_type=condition,
                target=target,
                reward_amount=to_amount(reward or 0),
                description=desc,
            ))
        with self._lock:
            self._achievements = achievements

    def _load_tasks(self) -> None:
        with Session(self._engine) as session:
            rows = session.scalars(
                select(Task).where(Task.active.is_(True)).order_by(Task.id)
            ).all()
            tasks: dict[int, TaskDef] = {}
            for t in rows:
                try:
                    category = TaskCategory(t.category)
                    task_type = TaskType(t.task_type)
                except ValueError:
                    logger.warning(
                        "Task %d has unknown category/type %r/%r — skipped",
                        t.id, t.category, t.task_type,
                    )
                    continue
                if category is TaskCategory.SEASON and t.season_id is None:
                    logger.warning("Season task %d has no season — skipped", t.id)
                    continue
                tasks[t.id] = TaskDef(
                    id=t.id,
                    category=category,
                    task_type=task_type,
                    description=t.description,
                    target=t.target_value,
                    experience=t.experience or 0,
                    main_coins=to_amount(t.main_coins or 0),
                    season_points=t.season_points or 0,
                    season_id=t.season_id,
                    active_from=t.active_from,
                    active_until=t.active_until,
                )

        with self._lock:
            self._tasks = tasks

    def _load_settings(self) -> None:
        with Session(self._engine) as session:
            rows = session.scalars(select(Setting)).all()
            parsed: dict[str, Any] = {}
            for row in rows:
                try:
                    parsed[row.key] = json.loads(row.value_json)
                except (json.JSONDecodeError, TypeError):
                    parsed[row.key] = row.value_json

        with self._lock:
            self._settings = parsed

    # -------------------------------------------------------------------
    # Economy lookups
    # -------------------------------------------------------------------
    def currency(self, currency_id: str) -> CurrencyDef:
        with self._lock:
            cur = self._currencies.get(currency_id)
        if cur is None:
            raise NotFoundError("currency", currency_id)
        return cur

    def location(self, location_id: int) -> LocationDef:
        with self._lock:
            loc = self._locations.get(location_id)
        if loc is None:
            raise NotFoundError("location", location_id)
        return loc

    def locations(self) -> list[LocationDef]:
        with self._lock:
            return list(self._locations.values())

    def location_for_currency(self, currency_id: str) -> LocationDef | None:
        """The location paying *currency_id*, or None for global currencies."""
        with self._lock:
            return self._location_by_currency.get(currency_id)

    def is_location_currency(self, currency_id: str) -> bool:
        return self.location_for_currency(currency_id) is not None

    def tool(self, tool_id: int) -> ToolDef:
        with self._lock:
            tool = self._tools.get(tool_id)
        if tool is None:
            raise NotFoundError("tool", tool_id)
        return tool

    def storage_level(self, location_id: int, level: int) -> StorageLevelDef | None:
        with self._lock:
            return self._storage_levels.get((location_id, level))

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    def helper(self, helper_id: int) -> HelperDef:
        with self._lock:
            helper = self._helpers.get(helper_id)
        if helper is None:
            raise NotFoundError("helper", helper_id)
        return helper

    def helper_level(self, helper_id: int, level: int) -> HelperLevelDef | None:
        with self._lock:
            return self._helper_levels.get((helper_id, level))

    def income_per_hour(self, helper_id: int, level: int) -> Decimal:
        """Hourly income of *helper_id* at *level*; 0 when the row is missing."""
        row = self.helper_level(helper_id, level)
        if row is None:
            logger.warning("No income row for helper %d level %d", helper_id, level)
            return Decimal("0")
        return row.income_per_hour

    # -------------------------------------------------------------------
    # Levels & rewards
    # -------------------------------------------------------------------
    def required_exp(self, level: int) -> int | None:
        """Experience needed to go from ``level - 1`` to *level*.

        None when *level* is beyond the top of the ladder.
        """
        with self._lock:
            return self._levels.get(level)

    def rewards_for_level(self, level: int) -> list[RewardDef]:
        with self._lock:
            return list(self._rewards.get(level, []))

    # -------------------------------------------------------------------
    # Ranks & seasons
    # -------------------------------------------------------------------
    def ranks(self) -> list[RankDef]:
        """All ranks in ascending ``min_points`` order."""
        with self._lock:
            return list(self._ranks)

    def rank(self, rank_id: int) -> RankDef:
        with self._lock:
            rank = self._ranks_by_id.get(rank_id)
        if rank is None:
            raise NotFoundError("rank", rank_id)
        return rank

    def rank_tier(self, rank_id: int | None) -> int:
        """Tier of *rank_id*; 0 for no rank."""
        if rank_id is None:
            return 0
        return self.rank(rank_id).tier

    def season(self, season_id: int) -> SeasonDef:
        with self._lock:
            season = self._seasons.get(season_id)
        if season is None:
            raise NotFoundError("season", season_id)
        return season

    def active_season(self) -> SeasonDef | None:
        """The active season with the lowest id, or None between seasons."""
        with self._lock:
            active = [s for s in self._seasons.values() if s.active]
        return min(active, key=lambda s: s.id, default=None)

    # -------------------------------------------------------------------
    # Achievements
    # -------------------------------------------------------------------
    def achievements(self) -> list[AchievementDef]:
        with self._lock:
            return list(self._achievements)

    def achievement(self, achievement_id: int) -> AchievementDef:
        with self._lock:
            for ach in self._achievements:
                if ach.id == achievement_id:
                    return ach
        raise NotFoundError("achievement", achievement_id)

    # -------------------------------------------------------------------
    # Tasks
    # -------------------------------------------------------------------
    def tasks(self, category: TaskCategory | None = None) -> list[TaskDef]:
        """Active tasks in id order, optionally of one category."""
        with self._lock:
            tasks = list(self._tasks.values())
        if category is None:
            return tasks
        return [t for t in tasks if t.category is category]

    def task(self, task_id: int) -> TaskDef:
        with self._lock:
            task = self._tasks.get(task_id)
        if task is None:
            raise NotFoundError("task", task_id)
        return task

    # -------------------------------------------------------------------
    # Typed setting accessors
    # -------------------------------------------------------------------
    def get_setting(self, key: str, default: Any = None) -> Any:
        """Return the parsed JSON value for *key*, or *default*."""
        with self._lock:
            return self._settings.get(key, default)

    def get_int(self, key: str, default: int = 0) -> int:
        val = self.get_setting(key)
        if val is None:
            return default
        try:
            return int(val)
        except (TypeError, ValueError):
            return default

    def get_decimal(self, key: str, default: Decimal | int = 0) -> Decimal:
        val = self.get_setting(key)
        if val is None:
            return to_amount(default)
        try:
            return to_amount(val)
        except (TypeError, ValueError, InvalidOperation):
            return to_amount(default)

    def get_bool(self, key: str, default: bool = False) -> bool:
        val = self.get_setting(key)
        if val is None:
            return default
        return bool(val)

    # -------------------------------------------------------------------
    # Convenience
    # -------------------------------------------------------------------
    def starter_location(self) -> LocationDef:
        return self.location(self.get_int("player.starter_location_id", default=1))
