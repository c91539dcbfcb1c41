"""Initial schema: catalog, settings and per-player tables

Revision ID: 0001
Revises:
Create Date: 2026-10-17 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

AMOUNT = sa.Numeric(18, 2)
INCOME_AMOUNT = sa.Numeric(18, 6)


def _user_fk() -> sa.Column:
    return sa.Column(
        "user_id",
        sa.String(64),
        sa.ForeignKey("player_progress.user_id", ondelete="CASCADE"),
        primary_key=True,
    )


def upgrade() -> None:
    # -- Catalog -----------------------------------------------------------
    op.create_table(
        "currencies",
        sa.Column("id", sa.String(20), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
    )
    op.create_table(
        "locations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("currency_id", sa.String(20), sa.ForeignKey("currencies.id"), nullable=False),
        sa.Column("character_id", sa.Integer(), nullable=False),
        sa.Column("unlock_level", sa.Integer(), nullable=True),
        sa.Column("unlock_cost", AMOUNT, nullable=True),
    )
    op.create_table(
        "tools",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("character_id", sa.Integer(), nullable=False),
        sa.Column("power", AMOUNT, nullable=True),
        sa.Column("main_coins_power", AMOUNT, nullable=True),
        sa.Column("location_coins_power", AMOUNT, nullable=True),
        sa.Column("unlock_level", sa.Integer(), nullable=True),
        sa.Column("unlock_cost", AMOUNT, nullable=True),
        sa.Column("currency_id", sa.String(20), sa.ForeignKey("currencies.id"), nullable=False),
    )
    op.create_table(
        "helpers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("locations.id"), nullable=False),
        sa.Column("currency_id", sa.String(20), sa.ForeignKey("currencies.id"), nullable=False),
        sa.Column("unlock_level", sa.Integer(), nullable=True),
        sa.Column("unlock_cost", AMOUNT, nullable=True),
        sa.Column("max_level", sa.Integer(), nullable=True),
    )
    op.create_table(
        "helper_levels",
        sa.Column(
            "helper_id", sa.Integer(),
            sa.ForeignKey("helpers.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("level", sa.Integer(), primary_key=True),
        sa.Column("income_per_hour", AMOUNT, nullable=False),
        sa.Column("upgrade_cost", AMOUNT, nullable=True),
    )
    op.create_table(
        "storage_levels",
        sa.Column(
            "location_id", sa.Integer(),
            sa.ForeignKey("locations.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("level", sa.Integer(), primary_key=True),
        sa.Column("capacity", AMOUNT, nullable=False),
        sa.Column("upgrade_cost", AMOUNT, nullable=True),
        sa.Column("currency_id", sa.String(20), sa.ForeignKey("currencies.id"), nullable=False),
    )
    op.create_table(
        "levels",
        sa.Column("level", sa.Integer(), primary_key=True),
        sa.Column("required_exp", sa.Integer(), nullable=False),
        sa.CheckConstraint("required_exp > 0", name="ck_levels_required_exp_positive"),
    )
    op.create_table(
        "level_rewards",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column(
            "level", sa.Integer(),
            sa.ForeignKey("levels.level", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("reward_type", sa.String(30), nullable=False),
        sa.Column("currency_id", sa.String(20), sa.ForeignKey("currencies.id"), nullable=True),
        sa.Column("amount", AMOUNT, nullable=True),
        sa.Column("target_id", sa.Integer(), nullable=True),
    )
    op.create_index("ix_level_rewards_level", "level_rewards", ["level"])
    op.create_table(
        "ranks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("min_points", sa.Integer(), nullable=False, unique=True),
    )
    op.create_table(
        "seasons",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=True),
    )
    op.create_table(
        "achievements",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("condition_type", sa.String(40), nullable=False),
        sa.Column("condition_value", sa.Integer(), nullable=False),
        sa.Column("reward_amount", AMOUNT, nullable=True),
        sa.Column("active", sa.Boolean(), nullable=True),
    )
    op.create_table(
        "settings",
        sa.Column("key", sa.String(100), primary_key=True),
        sa.Column("value_json", sa.Text(), nullable=False),
        sa.Column("category", sa.String(50), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # -- Per-player --------------------------------------------------------
    op.create_table(
        "player_progress",
        sa.Column("user_id", sa.String(64), primary_key=True),
        sa.Column("level", sa.Integer(), nullable=True),
        sa.Column("experience", sa.Integer(), nullable=True),
        sa.Column("energy", sa.Integer(), nullable=True),
        sa.Column("max_energy", sa.Integer(), nullable=True),
        sa.Column("last_energy_refill_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
        sa.Column("income_accrued_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("current_rank_id", sa.Integer(), sa.ForeignKey("ranks.id"), nullable=True),
        sa.Column("highest_rank_id", sa.Integer(), sa.ForeignKey("ranks.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("energy >= 0", name="ck_progress_energy_non_negative"),
        sa.CheckConstraint("energy <= max_energy", name="ck_progress_energy_le_max"),
        sa.CheckConstraint("experience >= 0", name="ck_progress_experience_non_negative"),
    )
    op.create_table(
        "player_currencies",
        _user_fk(),
        sa.Column("currency_id", sa.String(20), sa.ForeignKey("currencies.id"), primary_key=True),
        sa.Column("amount", AMOUNT, nullable=False),
        sa.CheckConstraint("amount >= 0", name="ck_player_currencies_amount_non_negative"),
    )
    op.create_table(
        "player_storage_limits",
        _user_fk(),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("locations.id"), primary_key=True),
        sa.Column("currency_id", sa.String(20), sa.ForeignKey("currencies.id"), primary_key=True),
        sa.Column("storage_level", sa.Integer(), nullable=True),
        sa.Column("capacity", AMOUNT, nullable=False),
    )
    op.create_table(
        "player_pending_income",
        _user_fk(),
        sa.Column("currency_id", sa.String(20), sa.ForeignKey("currencies.id"), primary_key=True),
        sa.Column("amount", INCOME_AMOUNT, nullable=False),
        sa.CheckConstraint("amount >= 0", name="ck_pending_income_amount_non_negative"),
    )
    op.create_table(
        "player_helpers",
        _user_fk(),
        sa.Column("helper_id", sa.Integer(), sa.ForeignKey("helpers.id"), primary_key=True),
        sa.Column("level", sa.Integer(), nullable=True),
        sa.Column("acquired_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("level >= 1", name="ck_player_helpers_level_positive"),
    )
    op.create_table(
        "player_tools",
        _user_fk(),
        sa.Column("tool_id", sa.Integer(), sa.ForeignKey("tools.id"), primary_key=True),
        sa.Column("unlocked_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_table(
        "player_locations",
        _user_fk(),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("locations.id"), primary_key=True),
        sa.Column("unlocked_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_table(
        "player_equipped_tools",
        _user_fk(),
        sa.Column("character_id", sa.Integer(), primary_key=True),
        sa.Column("tool_id", sa.Integer(), sa.ForeignKey("tools.id"), nullable=False),
    )
    op.create_table(
        "player_season",
        _user_fk(),
        sa.Column(
            "season_id", sa.Integer(),
            sa.ForeignKey("seasons.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("points", sa.Integer(), nullable=True),
        sa.Column("rank_id", sa.Integer(), sa.ForeignKey("ranks.id"), nullable=False),
        sa.Column("highest_rank_id", sa.Integer(), sa.ForeignKey("ranks.id"), nullable=False),
    )
    op.create_table(
        "player_achievements",
        _user_fk(),
        sa.Column(
            "achievement_id", sa.Integer(),
            sa.ForeignKey("achievements.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("date_unlocked", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_table(
        "player_stats",
        _user_fk(),
        sa.Column("total_taps", sa.Integer(), nullable=True),
        sa.Column("total_resources_gained", AMOUNT, nullable=True),
        sa.Column("total_energy_spent", sa.Integer(), nullable=True),
        sa.Column("last_updated", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_table(
        "player_login_history",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column(
            "user_id", sa.String(64),
            sa.ForeignKey("player_progress.user_id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("login_date", sa.Date(), nullable=False),
        sa.UniqueConstraint("user_id", "login_date", name="uq_login_history_user_date"),
    )
    op.create_table(
        "player_notifications",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column(
            "user_id", sa.String(64),
            sa.ForeignKey("player_progress.user_id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("kind", sa.String(30), nullable=False),
        sa.Column("payload", postgresql.JSONB(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_player_notifications_user_read", "player_notifications", ["user_id", "is_read"],
    )


def downgrade() -> None:
    op.drop_index("ix_player_notifications_user_read", table_name="player_notifications")
    for table in (
        "player_notifications",
        "player_login_history",
        "player_stats",
        "player_achievements",
        "player_season",
        "player_equipped_tools",
        "player_locations",
        "player_tools",
        "player_helpers",
        "player_pending_income",
        "player_storage_limits",
        "player_currencies",
        "player_progress",
        "settings",
        "achievements",
        "seasons",
        "ranks",
    ):
        op.drop_table(table)
    op.drop_index("ix_level_rewards_level", table_name="level_rewards")
    for table in (
        "level_rewards",
        "levels",
        "storage_levels",
        "helper_levels",
        "helpers",
        "tools",
        "locations",
        "currencies",
    ):
        op.drop_table(table)
