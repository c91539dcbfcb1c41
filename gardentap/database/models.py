"""
gardentap.database.models — SQLAlchemy 2.0 Data Models
========================================================

Two families of tables live here.

Catalog (static game configuration, read-only at request time):
- currencies         — Main coins + one material per location
- locations          — Where the player taps; each pays one currency
- tools              — Equippable per character; drive tap yield
- helpers            — Idle earners bound to a location
- helper_levels      — Income/hour and upgrade cost per helper level
- storage_levels     — Capacity ladder per location
- levels             — Experience required to reach each player level
- level_rewards      — Rewards granted on reaching a level
- ranks              — Season rank thresholds
- seasons            — Competitive windows
- achievements       — Condition-driven badges
- tasks              — Daily and season tasks with their rewards
- settings           — Gameplay tuning knobs (JSON values)

Per-player state (owned exclusively by the engine):
- player_progress        — Level, experience, energy, timestamps, rank cache
- player_currencies      — Balances (fixed-point, never negative)
- player_storage_limits  — Capacity per (location, currency)
- player_pending_income  — Accrued helper income awaiting collection
- player_helpers         — Owned helpers and their levels
- player_tools / player_locations / player_equipped_tools
- player_season          — Points and rank per season
- player_achievements    — Append-only grants, unique per (player, achievement)
- player_stats           — Tap counters for achievement predicates
- player_login_history   — One row per player per calendar day
- player_task_progress   — Task progress per period, claimed at most once
- player_notifications   — Outbox for level-up / rank-up / achievement events
"""

from __future__ import annotations

import enum
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# Fixed-point money column: 16 integer digits, 2 decimals.
Amount = Numeric(18, 2, asdecimal=True)

# Pending idle income accrues at micro precision; cents are taken on collection.
IncomeAmount = Numeric(18, 6, asdecimal=True)


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all GardenTap ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class RewardType(enum.StrEnum):
    """Every kind of reward a level can grant."""
    MAIN_CURRENCY = "main_currency"
    LOCATION_CURRENCY = "location_currency"
    CURRENCY = "currency"
    UNLOCK_TOOL = "unlock_tool"
    UNLOCK_LOCATION = "unlock_location"
    ENERGY = "energy"


class ConditionType(enum.StrEnum):
    """What an achievement's ``condition_value`` is compared against."""
    LEVEL = "level"
    RANK = "rank"
    SEASONS_PARTICIPATED = "seasons_participated"
    DAILY_STREAK = "daily_streak"
    DAYS_INACTIVE = "days_inactive"
    TOTAL_TAPS = "total_taps"
    TOTAL_RESOURCES_GAINED = "total_resources_gained"
    TOTAL_ENERGY_SPENT = "total_energy_spent"
    TOTAL_COINS = "total_coins"
    HELPERS_COUNT = "helpers_count"
    STORAGE_LEVEL = "storage_level"


class NoticeKind(enum.StrEnum):
    """Events pushed to the Notification Sink."""
    LEVEL_UP = "LEVEL_UP"
    RANK_UP = "RANK_UP"
    ACHIEVEMENT_UNLOCKED = "ACHIEVEMENT_UNLOCKED"
    TASK_COMPLETED = "TASK_COMPLETED"


class TaskCategory(enum.StrEnum):
    """Daily tasks reset every UTC day; season tasks run for their season."""
    DAILY = "daily"
    SEASON = "season"


class TaskType(enum.StrEnum):
    """What a task's ``target_value`` is measured against."""
    TAP = "tap"
    SPEND_ENERGY = "spend_energy"
    COLLECT_CURRENCY = "collect_currency"
    UPGRADE_HELPER = "upgrade_helper"
    EARN_EXPERIENCE = "earn_experience"
    COMPLETE_DAILIES = "complete_dailies"
    LEVEL_UP = "level_up"
    UNLOCK_TOOL = "unlock_tool"
    UNLOCK_LOCATION = "unlock_location"


# ===========================================================================
# Catalog
# ===========================================================================
class Currency(Base):
    __tablename__ = "currencies"

    id: Mapped[str] = mapped_column(String(20), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    def __repr__(self) -> str:
        return f"<Currency id={self.id!r}>"


class Location(Base):
    __tablename__ = "locations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    currency_id: Mapped[str] = mapped_column(
        String(20), ForeignKey("currencies.id"), nullable=False
    )
    character_id: Mapped[int] = mapped_column(Integer, nullable=False)
    unlock_level: Mapped[int] = mapped_column(Integer, default=1)
    unlock_cost: Mapped[Decimal] = mapped_column(Amount, default=0)

    def __repr__(self) -> str:
        return f"<Location id={self.id} name={self.name!r}>"


class Tool(Base):
    __tablename__ = "tools"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    character_id: Mapped[int] = mapped_column(Integer, nullable=False)
    power: Mapped[Decimal] = mapped_column(Amount, default=1)
    main_coins_power: Mapped[Decimal] = mapped_column(Amount, default=Decimal("0.5"))
    location_coins_power: Mapped[Decimal] = mapped_column(Amount, default=1)
    unlock_level: Mapped[int] = mapped_column(Integer, default=1)
    unlock_cost: Mapped[Decimal] = mapped_column(Amount, default=0)
    currency_id: Mapped[str] = mapped_column(
        String(20), ForeignKey("currencies.id"), nullable=False
    )

    def __repr__(self) -> str:
        return f"<Tool id={self.id} name={self.name!r} power={self.power}>"


class Helper(Base):
    __tablename__ = "helpers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    location_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("locations.id"), nullable=False
    )
    currency_id: Mapped[str] = mapped_column(
        String(20), ForeignKey("currencies.id"), nullable=False
    )
    unlock_level: Mapped[int] = mapped_column(Integer, default=1)
    unlock_cost: Mapped[Decimal] = mapped_column(Amount, default=0)
    max_level: Mapped[int] = mapped_column(Integer, default=10)

    levels: Mapped[list[HelperLevel]] = relationship(
        back_populates="helper", order_by="HelperLevel.level"
    )

    def __repr__(self) -> str:
        return f"<Helper id={self.id} name={self.name!r}>"


class HelperLevel(Base):
    __tablename__ = "helper_levels"

    helper_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("helpers.id", ondelete="CASCADE"), primary_key=True
    )
    level: Mapped[int] = mapped_column(Integer, primary_key=True)
    income_per_hour: Mapped[Decimal] = mapped_column(Amount, nullable=False)
    upgrade_cost: Mapped[Decimal] = mapped_column(Amount, default=0)

    helper: Mapped[Helper] = relationship(back_populates="levels")


class StorageLevel(Base):
    __tablename__ = "storage_levels"

    location_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("locations.id", ondelete="CASCADE"), primary_key=True
    )
    level: Mapped[int] = mapped_column(Integer, primary_key=True)
    capacity: Mapped[Decimal] = mapped_column(Amount, nullable=False)
    upgrade_cost: Mapped[Decimal] = mapped_column(Amount, default=0)
    currency_id: Mapped[str] = mapped_column(
        String(20), ForeignKey("currencies.id"), nullable=False
    )


class Level(Base):
    __tablename__ = "levels"

    level: Mapped[int] = mapped_column(Integer, primary_key=True)
    required_exp: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        CheckConstraint("required_exp > 0", name="ck_levels_required_exp_positive"),
    )


class LevelReward(Base):
    __tablename__ = "level_rewards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    level: Mapped[int] = mapped_column(
        Integer, ForeignKey("levels.level", ondelete="CASCADE"), nullable=False
    )
    reward_type: Mapped[str] = mapped_column(String(30), nullable=False)
    currency_id: Mapped[str | None] = mapped_column(
        String(20), ForeignKey("currencies.id"), nullable=True
    )
    amount: Mapped[Decimal] = mapped_column(Amount, default=0)
    target_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        Index("ix_level_rewards_level", "level"),
    )

    def __repr__(self) -> str:
        return f"<LevelReward level={self.level} type={self.reward_type!r}>"


class Rank(Base):
    __tablename__ = "ranks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    min_points: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)

    def __repr__(self) -> str:
        return f"<Rank id={self.id} name={self.name!r} min={self.min_points}>"


class Season(Base):
    __tablename__ = "seasons"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ends_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=False)

    def __repr__(self) -> str:
        return f"<Season id={self.id} name={self.name!r} active={self.active}>"


class Achievement(Base):
    __tablename__ = "achievements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    condition_type: Mapped[str] = mapped_column(String(40), nullable=False)
    condition_value: Mapped[int] = mapped_column(Integer, nullable=False)
    reward_amount: Mapped[Decimal] = mapped_column(Amount, default=0)
    active: Mapped[bool] = mapped_column(Boolean, default=True)

    def __repr__(self) -> str:
        return f"<Achievement id={self.id} name={self.name!r}>"


class Task(Base):
    """A daily or season task.

    Daily tasks are live on every UTC day inside the optional
    ``active_from``..``active_until`` window; season tasks are live while
    their season is the active one.
    """
    __tablename__ = "tasks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    category: Mapped[str] = mapped_column(String(10), nullable=False)
    task_type: Mapped[str] = mapped_column(String(30), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    target_value: Mapped[int] = mapped_column(Integer, nullable=False)
    season_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("seasons.id", ondelete="CASCADE"), nullable=True
    )
    active_from: Mapped[date | None] = mapped_column(Date, nullable=True)
    active_until: Mapped[date | None] = mapped_column(Date, nullable=True)
    experience: Mapped[int] = mapped_column(Integer, default=0)
    main_coins: Mapped[Decimal] = mapped_column(Amount, default=0)
    season_points: Mapped[int] = mapped_column(Integer, default=0)
    active: Mapped[bool] = mapped_column(Boolean, default=True)

    __table_args__ = (
        CheckConstraint("target_value > 0", name="ck_tasks_target_positive"),
        Index("ix_tasks_category", "category"),
    )

    def __repr__(self) -> str:
        return f"<Task id={self.id} {self.category}/{self.task_type} target={self.target_value}>"


class Setting(Base):
    """Key-value gameplay tuning store.

    Values are stored as JSON strings; typed accessors live in
    :class:`~gardentap.engine.catalog.Catalog`.
    """
    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value_json: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="general")
    description: Mapped[str | None] = mapped_column(Text, default=None)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


# ===========================================================================
# Per-player state
# ===========================================================================
class PlayerProgress(Base):
    """One row per player; its row lock serializes that player's operations."""
    __tablename__ = "player_progress"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    level: Mapped[int] = mapped_column(Integer, default=1)
    experience: Mapped[int] = mapped_column(Integer, default=0)
    energy: Mapped[int] = mapped_column(Integer, default=100)
    max_energy: Mapped[int] = mapped_column(Integer, default=100)
    last_energy_refill_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    last_login: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    # Watermark: helper income has been accrued up to this instant.
    income_accrued_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    current_rank_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("ranks.id"), nullable=True
    )
    highest_rank_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("ranks.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("energy >= 0", name="ck_progress_energy_non_negative"),
        CheckConstraint("energy <= max_energy", name="ck_progress_energy_le_max"),
        CheckConstraint("experience >= 0", name="ck_progress_experience_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"<PlayerProgress user={self.user_id!r} lvl={self.level} "
            f"energy={self.energy}/{self.max_energy}>"
        )


class PlayerCurrency(Base):
    __tablename__ = "player_currencies"

    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("player_progress.user_id", ondelete="CASCADE"),
        primary_key=True,
    )
    currency_id: Mapped[str] = mapped_column(
        String(20), ForeignKey("currencies.id"), primary_key=True
    )
    amount: Mapped[Decimal] = mapped_column(Amount, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_player_currencies_amount_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<PlayerCurrency user={self.user_id!r} {self.currency_id}={self.amount}>"


class PlayerStorageLimit(Base):
    __tablename__ = "player_storage_limits"

    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("player_progress.user_id", ondelete="CASCADE"),
        primary_key=True,
    )
    location_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("locations.id"), primary_key=True
    )
    currency_id: Mapped[str] = mapped_column(
        String(20), ForeignKey("currencies.id"), primary_key=True
    )
    storage_level: Mapped[int] = mapped_column(Integer, default=1)
    capacity: Mapped[Decimal] = mapped_column(Amount, nullable=False)


class PlayerPendingIncome(Base):
    __tablename__ = "player_pending_income"

    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("player_progress.user_id", ondelete="CASCADE"),
        primary_key=True,
    )
    currency_id: Mapped[str] = mapped_column(
        String(20), ForeignKey("currencies.id"), primary_key=True
    )
    amount: Mapped[Decimal] = mapped_column(IncomeAmount, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_pending_income_amount_non_negative"),
    )


class PlayerHelper(Base):
    __tablename__ = "player_helpers"

    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("player_progress.user_id", ondelete="CASCADE"),
        primary_key=True,
    )
    helper_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("helpers.id"), primary_key=True
    )
    level: Mapped[int] = mapped_column(Integer, default=1)
    acquired_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("level >= 1", name="ck_player_helpers_level_positive"),
    )


class PlayerTool(Base):
    __tablename__ = "player_tools"

    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("player_progress.user_id", ondelete="CASCADE"),
        primary_key=True,
    )
    tool_id: Mapped[int] = mapped_column(Integer, ForeignKey("tools.id"), primary_key=True)
    unlocked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class PlayerLocation(Base):
    __tablename__ = "player_locations"

    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("player_progress.user_id", ondelete="CASCADE"),
        primary_key=True,
    )
    location_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("locations.id"), primary_key=True
    )
    unlocked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class PlayerEquippedTool(Base):
    __tablename__ = "player_equipped_tools"

    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("player_progress.user_id", ondelete="CASCADE"),
        primary_key=True,
    )
    character_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tool_id: Mapped[int] = mapped_column(Integer, ForeignKey("tools.id"), nullable=False)


class PlayerSeasonStanding(Base):
    __tablename__ = "player_season"

    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("player_progress.user_id", ondelete="CASCADE"),
        primary_key=True,
    )
    season_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("seasons.id", ondelete="CASCADE"), primary_key=True
    )
    points: Mapped[int] = mapped_column(Integer, default=0)
    rank_id: Mapped[int] = mapped_column(Integer, ForeignKey("ranks.id"), nullable=False)
    highest_rank_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("ranks.id"), nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<PlayerSeasonStanding user={self.user_id!r} season={self.season_id} "
            f"points={self.points} rank={self.rank_id}>"
        )


class PlayerAchievement(Base):
    """Append-only.  The composite primary key is what makes grants idempotent."""
    __tablename__ = "player_achievements"

    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("player_progress.user_id", ondelete="CASCADE"),
        primary_key=True,
    )
    achievement_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("achievements.id", ondelete="CASCADE"), primary_key=True
    )
    date_unlocked: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    def __repr__(self) -> str:
        return f"<PlayerAchievement user={self.user_id!r} achievement={self.achievement_id}>"


class PlayerStats(Base):
    __tablename__ = "player_stats"

    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("player_progress.user_id", ondelete="CASCADE"),
        primary_key=True,
    )
    total_taps: Mapped[int] = mapped_column(Integer, default=0)
    total_resources_gained: Mapped[Decimal] = mapped_column(Amount, default=0)
    total_energy_spent: Mapped[int] = mapped_column(Integer, default=0)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class PlayerLoginHistory(Base):
    __tablename__ = "player_login_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("player_progress.user_id", ondelete="CASCADE"),
        nullable=False,
    )
    login_date: Mapped[date] = mapped_column(Date, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "login_date", name="uq_login_history_user_date"),
    )


class PlayerTaskProgress(Base):
    """Progress on one task for one period (UTC day or season start).

    ``reward_claimed`` only ever flips to True, through a conditional
    UPDATE, so a task pays out once per period.
    """
    __tablename__ = "player_task_progress"

    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("player_progress.user_id", ondelete="CASCADE"),
        primary_key=True,
    )
    task_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True
    )
    period: Mapped[date] = mapped_column(Date, primary_key=True)
    progress: Mapped[int] = mapped_column(Integer, default=0)
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    reward_claimed: Mapped[bool] = mapped_column(Boolean, default=False)
    claimed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        CheckConstraint("progress >= 0", name="ck_task_progress_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"<PlayerTaskProgress user={self.user_id!r} task={self.task_id} "
            f"period={self.period} progress={self.progress} claimed={self.reward_claimed}>"
        )


class PlayerNotification(Base):
    __tablename__ = "player_notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("player_progress.user_id", ondelete="CASCADE"),
        nullable=False,
    )
    kind: Mapped[str] = mapped_column(String(30), nullable=False)
    payload: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_player_notifications_user_read", "user_id", "is_read"),
    )

    def __repr__(self) -> str:
        return f"<PlayerNotification id={self.id} user={self.user_id!r} kind={self.kind}>"
