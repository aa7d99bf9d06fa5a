"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-19 12:00:00.000000
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "calendar_days",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("date", name="uq_calendar_days_date"),
    )

    op.create_table(
        "habits",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("color", sa.String(length=16), nullable=False),
        sa.Column("created_on", sa.Date(), nullable=False),
        sa.Column("end_on", sa.Date(), nullable=True),
        sa.Column("weekdays", sa.String(length=32), server_default="", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "habit_days",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("habit_id", sa.String(length=36), sa.ForeignKey("habits.id", ondelete="CASCADE"), nullable=False),
        sa.Column("calendar_day_id", sa.String(length=36), sa.ForeignKey("calendar_days.id"), nullable=False),
        sa.Column("was_executed", sa.Boolean(), server_default=sa.text("0"), nullable=False),
        sa.Column("executed_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("habit_id", "calendar_day_id", name="uq_habit_days_habit_day"),
    )
    op.create_index("ix_habit_days_habit_id", "habit_days", ["habit_id"])
    op.create_index("ix_habit_days_calendar_day_id", "habit_days", ["calendar_day_id"])

    op.create_table(
        "fire_times",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("habit_id", sa.String(length=36), sa.ForeignKey("habits.id", ondelete="CASCADE"), nullable=False),
        sa.Column("hour", sa.Integer(), nullable=False),
        sa.Column("minute", sa.Integer(), nullable=False),
        sa.Column("weekdays", sa.String(length=32), server_default="", nullable=False),
        sa.UniqueConstraint("habit_id", "hour", "minute", name="uq_fire_times_habit_time"),
    )
    op.create_index("ix_fire_times_habit_id", "fire_times", ["habit_id"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("habit_id", sa.String(length=36), sa.ForeignKey("habits.id", ondelete="CASCADE"), nullable=False),
        sa.Column("fire_at", sa.DateTime(), nullable=False),
        sa.Column("status", sa.String(length=16), server_default="scheduled", nullable=False),
        sa.Column("dispatcher_id", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("canceled_at", sa.DateTime(), nullable=True),
        sa.Column("delivered_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_notifications_habit_status", "notifications", ["habit_id", "status"])
    op.create_index(
        "uq_notifications_habit_fire_active",
        "notifications",
        ["habit_id", "fire_at"],
        unique=True,
        sqlite_where=sa.text("status != 'canceled'"),
        postgresql_where=sa.text("status != 'canceled'"),
    )


def downgrade() -> None:
    op.drop_index("uq_notifications_habit_fire_active", table_name="notifications")
    op.drop_index("ix_notifications_habit_status", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_fire_times_habit_id", table_name="fire_times")
    op.drop_table("fire_times")
    op.drop_index("ix_habit_days_calendar_day_id", table_name="habit_days")
    op.drop_index("ix_habit_days_habit_id", table_name="habit_days")
    op.drop_table("habit_days")
    op.drop_table("habits")
    op.drop_table("calendar_days")
