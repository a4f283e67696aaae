"""Typed records exchanged between the scheduling services and the durable store."""

from __future__ import annotations

import datetime
from typing import Literal

import msgspec

from tutorslots.scheduling.penalty_codes import PenaltyCode, Severity

SlotStatus = Literal["available", "open", "booked", "completed", "cancelled"]
BookingStatus = Literal["confirmed", "completed", "cancelled", "no_show"]
AttendanceRole = Literal["tutor", "student"]
AttendanceMark = Literal["present", "absent"]
AppealStatus = Literal["pending", "approved", "denied"]
ReminderKind = Literal["15m", "5m"]

LIVE_BOOKING_STATUSES: tuple[BookingStatus, ...] = ("confirmed", "completed", "no_show")


class SlotRequest(msgspec.Struct, frozen=True):
  """A normalized (local date, time of day) pair a tutor asks to open."""

  slot_date: datetime.date
  slot_time: datetime.time


class TimeSlotRecord(msgspec.Struct, frozen=True, rename="camel"):
  slot_id: str
  tutor_id: str
  slot_date: datetime.date
  slot_time: datetime.time
  starts_at: datetime.datetime
  duration_minutes: int
  status: SlotStatus
  is_recurring: bool
  created_at: datetime.datetime
  updated_at: datetime.datetime
  attendance_mark: AttendanceMark | None = None


class WeeklyTemplateEntry(msgspec.Struct, frozen=True, rename="camel"):
  template_id: str
  tutor_id: str
  day_of_week: int
  slot_time: datetime.time
  is_active: bool
  created_at: datetime.datetime


class BookingRecord(msgspec.Struct, frozen=True, rename="camel"):
  booking_id: str
  slot_id: str
  tutor_id: str
  student_id: str
  slot_datetime: datetime.datetime
  duration_minutes: int
  status: BookingStatus
  booked_at: datetime.datetime
  attendance_tutor: AttendanceMark | None = None
  attendance_student: AttendanceMark | None = None
  penalty_code: PenaltyCode | None = None
  penalty_reason: str | None = None
  penalty_timestamp: datetime.datetime | None = None
  cancelled_at: datetime.datetime | None = None
  cancelled_by: str | None = None
  cancel_reason: str | None = None
  completed_at: datetime.datetime | None = None
  reminder_15m_sent: bool = False
  reminder_5m_sent: bool = False

  def attendance_for(self, role: AttendanceRole) -> AttendanceMark | None:
    return self.attendance_tutor if role == "tutor" else self.attendance_student


class PenaltyRecord(msgspec.Struct, frozen=True, rename="camel"):
  penalty_id: str
  tutor_id: str
  code: PenaltyCode
  reason: str
  severity: Severity
  affects_compensation: bool
  created_at: datetime.datetime
  booking_id: str | None = None
  slot_id: str | None = None
  block_until: datetime.datetime | None = None
  resolved_at: datetime.datetime | None = None
  appeal_status: AppealStatus | None = None


class TutorComplianceRecord(msgspec.Struct, frozen=True, rename="camel"):
  tutor_id: str
  is_blocked: bool = False
  block_expires_at: datetime.datetime | None = None

  def is_active_block(self, now: datetime.datetime) -> bool:
    """A block is active until its expiry passes, even before the release sweep runs."""
    if not self.is_blocked:
      return False
    return self.block_expires_at is None or self.block_expires_at > now


class AvailableSlot(msgspec.Struct, frozen=True, rename="camel"):
  slot_id: str
  tutor_id: str
  date: datetime.date
  time: str
  starts_at: datetime.datetime
  duration_minutes: int


class WeekSlot(msgspec.Struct, frozen=True, rename="camel"):
  slot_id: str
  date: datetime.date
  time: str
  status: SlotStatus
  booking_id: str | None = None
  student_id: str | None = None
  penalty_code: PenaltyCode | None = None
  attendance_tutor: AttendanceMark | None = None
  attendance_student: AttendanceMark | None = None


class WeekSchedule(msgspec.Struct, frozen=True, rename="camel"):
  week_start: datetime.date
  week_end: datetime.date
  slots: list[WeekSlot]


class CodeCounts(msgspec.Struct, frozen=True):
  ta301: int = 0
  ta302: int = 0
  ta303: int = 0
  total: int = 0


class PenaltySummary(msgspec.Struct, frozen=True, rename="camel"):
  tutor_id: str
  this_month: CodeCounts
  last_30_days: CodeCounts
  active_block: bool
  block_expires_at: datetime.datetime | None
  recent_penalties: list[PenaltyRecord]


class AttendanceResult(msgspec.Struct, frozen=True, rename="camel"):
  """Outcome of one attendance mark; `penalty_code` is set when the mark raised a penalty."""

  target: Literal["booking", "slot"]
  target_id: str
  role: AttendanceRole
  status: AttendanceMark
  changed: bool
  penalty_code: PenaltyCode | None = None


class StudentStats(msgspec.Struct, frozen=True, rename="camel"):
  """Dashboard counters for one student; `total_hours` covers completed sessions, rounded to a tenth."""

  student_id: str
  lessons_completed: int
  upcoming_lessons: int
  total_hours: float
  next_lesson: BookingRecord | None = None
