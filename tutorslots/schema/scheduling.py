from __future__ import annotations

import datetime

from sqlalchemy import Boolean, CheckConstraint, Date, DateTime, ForeignKey, Index, Integer, String, Text, Time, UniqueConstraint, func, text
from sqlalchemy.orm import Mapped, mapped_column

from tutorslots.core.database import Base


class TimeSlot(Base):
  __tablename__ = "time_slots"
  __table_args__ = (
    UniqueConstraint("tutor_id", "slot_date", "slot_time", name="ux_time_slots_tutor_date_time"),
    CheckConstraint("status IN ('available', 'open', 'booked', 'completed', 'cancelled')", name="ck_time_slots_status"),
    CheckConstraint("attendance_mark IS NULL OR attendance_mark IN ('present', 'absent')", name="ck_time_slots_attendance"),
    Index("ix_time_slots_tutor_status_starts", "tutor_id", "status", "starts_at"),
  )

  slot_id: Mapped[str] = mapped_column(String, primary_key=True)
  tutor_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  slot_date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
  slot_time: Mapped[datetime.time] = mapped_column(Time, nullable=False)
  starts_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
  duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=25)
  status: Mapped[str] = mapped_column(String, nullable=False)
  is_recurring: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  attendance_mark: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class WeeklyTemplateEntryRow(Base):
  __tablename__ = "weekly_template_entries"
  __table_args__ = (
    UniqueConstraint("tutor_id", "day_of_week", "slot_time", name="ux_weekly_template_tutor_day_time"),
    CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_weekly_template_day"),
  )

  template_id: Mapped[str] = mapped_column(String, primary_key=True)
  tutor_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)
  slot_time: Mapped[datetime.time] = mapped_column(Time, nullable=False)
  is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Booking(Base):
  __tablename__ = "bookings"
  __table_args__ = (
    # At most one live booking per slot; cancelled rows stay as history.
    Index("ux_bookings_live_slot", "slot_id", unique=True, postgresql_where=text("status <> 'cancelled'")),
    CheckConstraint("status IN ('confirmed', 'completed', 'cancelled', 'no_show')", name="ck_bookings_status"),
    Index("ix_bookings_student_datetime", "student_id", "slot_datetime"),
    Index("ix_bookings_reminders", "status", "slot_datetime"),
  )

  booking_id: Mapped[str] = mapped_column(String, primary_key=True)
  slot_id: Mapped[str] = mapped_column(ForeignKey("time_slots.slot_id", ondelete="CASCADE"), nullable=False)
  tutor_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  student_id: Mapped[str] = mapped_column(String, nullable=False)
  slot_datetime: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
  duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=25)
  status: Mapped[str] = mapped_column(String, nullable=False)
  attendance_tutor: Mapped[str | None] = mapped_column(String, nullable=True)
  attendance_student: Mapped[str | None] = mapped_column(String, nullable=True)
  penalty_code: Mapped[str | None] = mapped_column(String, nullable=True)
  penalty_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
  penalty_timestamp: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  booked_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
  cancelled_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  cancelled_by: Mapped[str | None] = mapped_column(String, nullable=True)
  cancel_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
  completed_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  reminder_15m_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  reminder_5m_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class PenaltyRecordRow(Base):
  __tablename__ = "penalty_records"
  __table_args__ = (
    CheckConstraint("code IN ('301', '302', '303', '401', '501', '502', '601')", name="ck_penalty_records_code"),
    CheckConstraint("appeal_status IS NULL OR appeal_status IN ('pending', 'approved', 'denied')", name="ck_penalty_records_appeal"),
    Index("ix_penalty_records_tutor_created", "tutor_id", "created_at"),
    Index("ix_penalty_records_tutor_code_created", "tutor_id", "code", "created_at"),
  )

  penalty_id: Mapped[str] = mapped_column(String, primary_key=True)
  tutor_id: Mapped[str] = mapped_column(String, nullable=False)
  booking_id: Mapped[str | None] = mapped_column(String, nullable=True)
  slot_id: Mapped[str | None] = mapped_column(String, nullable=True)
  code: Mapped[str] = mapped_column(String, nullable=False)
  reason: Mapped[str] = mapped_column(Text, nullable=False)
  severity: Mapped[str] = mapped_column(String, nullable=False)
  affects_compensation: Mapped[bool] = mapped_column(Boolean, nullable=False)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
  block_until: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  resolved_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  appeal_status: Mapped[str | None] = mapped_column(String, nullable=True)


class TutorCompliance(Base):
  __tablename__ = "tutor_compliance"
  __table_args__ = (Index("ix_tutor_compliance_blocked_expiry", "block_expires_at", postgresql_where=text("is_blocked")),)

  tutor_id: Mapped[str] = mapped_column(String, primary_key=True)
  is_blocked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  block_expires_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
