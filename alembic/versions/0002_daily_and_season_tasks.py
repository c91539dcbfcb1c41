"""Daily and season tasks with per-period player progress

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-17 15:30:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0002"
down_revision = "0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "tasks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("category", sa.String(10), nullable=False),
        sa.Column("task_type", sa.String(30), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("target_value", sa.Integer(), nullable=False),
        sa.Column(
            "season_id", sa.Integer(),
            sa.ForeignKey("seasons.id", ondelete="CASCADE"), nullable=True,
        ),
        sa.Column("active_from", sa.Date(), nullable=True),
        sa.Column("active_until", sa.Date(), nullable=True),
        sa.Column("experience", sa.Integer(), nullable=True),
        sa.Column("main_coins", sa.Numeric(18, 2), nullable=True),
        sa.Column("season_points", sa.Integer(), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=True),
        sa.CheckConstraint("target_value > 0", name="ck_tasks_target_positive"),
    )
    op.create_index("ix_tasks_category", "tasks", ["category"])

    op.create_table(
        "player_task_progress",
        sa.Column(
            "user_id", sa.String(64),
            sa.ForeignKey("player_progress.user_id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column(
            "task_id", sa.Integer(),
            sa.ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("period", sa.Date(), primary_key=True),
        sa.Column("progress", sa.Integer(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reward_claimed", sa.Boolean(), nullable=True),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("progress >= 0", name="ck_task_progress_non_negative"),
    )


def downgrade() -> None:
    op.drop_table("player_task_progress")
    op.drop_index("ix_tasks_category", table_name="tasks")
    op.drop_table("tasks")
