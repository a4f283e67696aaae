"""Create slot, booking, template and penalty tables.

Revision ID: 5a1f3c2e7b10
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "5a1f3c2e7b10"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
  """Upgrade schema."""
  op.create_table(
    "time_slots",
    sa.Column("slot_id", sa.String(), nullable=False),
    sa.Column("tutor_id", sa.String(), nullable=False),
    sa.Column("slot_date", sa.Date(), nullable=False),
    sa.Column("slot_time", sa.Time(), nullable=False),
    sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("duration_minutes", sa.Integer(), nullable=False),
    sa.Column("status", sa.String(), nullable=False),
    sa.Column("is_recurring", sa.Boolean(), nullable=False),
    sa.Column("attendance_mark", sa.String(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.CheckConstraint("status IN ('available', 'open', 'booked', 'completed', 'cancelled')", name="ck_time_slots_status"),
    sa.CheckConstraint("attendance_mark IS NULL OR attendance_mark IN ('present', 'absent')", name="ck_time_slots_attendance"),
    sa.PrimaryKeyConstraint("slot_id"),
    sa.UniqueConstraint("tutor_id", "slot_date", "slot_time", name="ux_time_slots_tutor_date_time"),
  )
  op.create_index(op.f("ix_time_slots_tutor_id"), "time_slots", ["tutor_id"], unique=False)
  op.create_index("ix_time_slots_tutor_status_starts", "time_slots", ["tutor_id", "status", "starts_at"], unique=False)

  op.create_table(
    "weekly_template_entries",
    sa.Column("template_id", sa.String(), nullable=False),
    sa.Column("tutor_id", sa.String(), nullable=False),
    sa.Column("day_of_week", sa.Integer(), nullable=False),
    sa.Column("slot_time", sa.Time(), nullable=False),
    sa.Column("is_active", sa.Boolean(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_weekly_template_day"),
    sa.PrimaryKeyConstraint("template_id"),
    sa.UniqueConstraint("tutor_id", "day_of_week", "slot_time", name="ux_weekly_template_tutor_day_time"),
  )
  op.create_index(op.f("ix_weekly_template_entries_tutor_id"), "weekly_template_entries", ["tutor_id"], unique=False)

  op.create_table(
    "bookings",
    sa.Column("booking_id", sa.String(), nullable=False),
    sa.Column("slot_id", sa.String(), nullable=False),
    sa.Column("tutor_id", sa.String(), nullable=False),
    sa.Column("student_id", sa.String(), nullable=False),
    sa.Column("slot_datetime", sa.DateTime(timezone=True), nullable=False),
    sa.Column("duration_minutes", sa.Integer(), nullable=False),
    sa.Column("status", sa.String(), nullable=False),
    sa.Column("attendance_tutor", sa.String(), nullable=True),
    sa.Column("attendance_student", sa.String(), nullable=True),
    sa.Column("penalty_code", sa.String(), nullable=True),
    sa.Column("penalty_reason", sa.Text(), nullable=True),
    sa.Column("penalty_timestamp", sa.DateTime(timezone=True), nullable=True),
    sa.Column("booked_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("cancelled_by", sa.String(), nullable=True),
    sa.Column("cancel_reason", sa.Text(), nullable=True),
    sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("reminder_15m_sent", sa.Boolean(), nullable=False),
    sa.Column("reminder_5m_sent", sa.Boolean(), nullable=False),
    sa.CheckConstraint("status IN ('confirmed', 'completed', 'cancelled', 'no_show')", name="ck_bookings_status"),
    sa.ForeignKeyConstraint(["slot_id"], ["time_slots.slot_id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("booking_id"),
  )
  op.create_index(op.f("ix_bookings_tutor_id"), "bookings", ["tutor_id"], unique=False)
  op.create_index("ix_bookings_student_datetime", "bookings", ["student_id", "slot_datetime"], unique=False)
  op.create_index("ix_bookings_reminders", "bookings", ["status", "slot_datetime"], unique=False)
  op.create_index("ux_bookings_live_slot", "bookings", ["slot_id"], unique=True, postgresql_where=sa.text("status <> 'cancelled'"))

  op.create_table(
    "penalty_records",
    sa.Column("penalty_id", sa.String(), nullable=False),
    sa.Column("tutor_id", sa.String(), nullable=False),
    sa.Column("booking_id", sa.String(), nullable=True),
    sa.Column("slot_id", sa.String(), nullable=True),
    sa.Column("code", sa.String(), nullable=False),
    sa.Column("reason", sa.Text(), nullable=False),
    sa.Column("severity", sa.String(), nullable=False),
    sa.Column("affects_compensation", sa.Boolean(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("block_until", sa.DateTime(timezone=True), nullable=True),
    sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("appeal_status", sa.String(), nullable=True),
    sa.CheckConstraint("code IN ('301', '302', '303', '401', '501', '502', '601')", name="ck_penalty_records_code"),
    sa.CheckConstraint("appeal_status IS NULL OR appeal_status IN ('pending', 'approved', 'denied')", name="ck_penalty_records_appeal"),
    sa.PrimaryKeyConstraint("penalty_id"),
  )
  op.create_index("ix_penalty_records_tutor_created", "penalty_records", ["tutor_id", "created_at"], unique=False)
  op.create_index("ix_penalty_records_tutor_code_created", "penalty_records", ["tutor_id", "code", "created_at"], unique=False)

  op.create_table(
    "tutor_compliance",
    sa.Column("tutor_id", sa.String(), nullable=False),
    sa.Column("is_blocked", sa.Boolean(), nullable=False),
    sa.Column("block_expires_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.PrimaryKeyConstraint("tutor_id"),
  )
  op.create_index("ix_tutor_compliance_blocked_expiry", "tutor_compliance", ["block_expires_at"], unique=False, postgresql_where=sa.text("is_blocked"))


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_index("ix_tutor_compliance_blocked_expiry", table_name="tutor_compliance")
  op.drop_table("tutor_compliance")
  op.drop_index("ix_penalty_records_tutor_code_created", table_name="penalty_records")
  op.drop_index("ix_penalty_records_tutor_created", table_name="penalty_records")
  op.drop_table("penalty_records")
  op.drop_index("ux_bookings_live_slot", table_name="bookings")
  op.drop_index("ix_bookings_reminders", table_name="bookings")
  op.drop_index("ix_bookings_student_datetime", table_name="bookings")
  op.drop_index(op.f("ix_bookings_tutor_id"), table_name="bookings")
  op.drop_table("bookings")
  op.drop_index(op.f("ix_weekly_template_entries_tutor_id"), table_name="weekly_template_entries")
  op.drop_table("weekly_template_entries")
  op.drop_index("ix_time_slots_tutor_status_starts", table_name="time_slots")
  op.drop_index(op.f("ix_time_slots_tutor_id"), table_name="time_slots")
  op.drop_table("time_slots")
