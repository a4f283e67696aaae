"""Explicit mapping between SQLAlchemy rows and scheduling records."""

from __future__ import annotations

import logging
from typing import Any

from tutorslots.scheduling.models import BookingRecord, PenaltyRecord, TimeSlotRecord, TutorComplianceRecord, WeeklyTemplateEntry
from tutorslots.scheduling.penalty_codes import PenaltyCode, Severity
from tutorslots.schema.scheduling import Booking, PenaltyRecordRow, TimeSlot, TutorCompliance, WeeklyTemplateEntryRow

logger = logging.getLogger(__name__)

_SLOT_STATUSES = frozenset({"available", "open", "booked", "completed", "cancelled"})
_BOOKING_STATUSES = frozenset({"confirmed", "completed", "cancelled", "no_show"})
_MARKS = frozenset({"present", "absent"})
_APPEALS = frozenset({"pending", "approved", "denied"})


class RowShapeError(ValueError):
  """Raised when a stored row carries a value outside its declared domain."""


def _checked(value: Any, allowed: frozenset[str], *, table: str, column: str, key: str) -> Any:
  if value not in allowed:
    logger.error("Unexpected stored value table=%s column=%s key=%s value=%r", table, column, key, value)
    raise RowShapeError(f"{table}.{column} has unexpected value {value!r} for {key}")
  return value


def _optional(value: Any, allowed: frozenset[str], *, table: str, column: str, key: str) -> Any:
  if value is None:
    return None
  return _checked(value, allowed, table=table, column=column, key=key)


def slot_from_row(row: TimeSlot) -> TimeSlotRecord:
  return TimeSlotRecord(
    slot_id=row.slot_id,
    tutor_id=row.tutor_id,
    slot_date=row.slot_date,
    slot_time=row.slot_time,
    starts_at=row.starts_at,
    duration_minutes=row.duration_minutes,
    status=_checked(row.status, _SLOT_STATUSES, table="time_slots", column="status", key=row.slot_id),
    is_recurring=row.is_recurring,
    created_at=row.created_at,
    updated_at=row.updated_at,
    attendance_mark=_optional(row.attendance_mark, _MARKS, table="time_slots", column="attendance_mark", key=row.slot_id),
  )


def slot_values(record: TimeSlotRecord) -> dict[str, Any]:
  return {
    "slot_id": record.slot_id,
    "tutor_id": record.tutor_id,
    "slot_date": record.slot_date,
    "slot_time": record.slot_time,
    "starts_at": record.starts_at,
    "duration_minutes": record.duration_minutes,
    "status": record.status,
    "is_recurring": record.is_recurring,
    "attendance_mark": record.attendance_mark,
    "created_at": record.created_at,
    "updated_at": record.updated_at,
  }


def template_from_row(row: WeeklyTemplateEntryRow) -> WeeklyTemplateEntry:
  return WeeklyTemplateEntry(template_id=row.template_id, tutor_id=row.tutor_id, day_of_week=row.day_of_week, slot_time=row.slot_time, is_active=row.is_active, created_at=row.created_at)


def booking_from_row(row: Booking) -> BookingRecord:
  return BookingRecord(
    booking_id=row.booking_id,
    slot_id=row.slot_id,
    tutor_id=row.tutor_id,
    student_id=row.student_id,
    slot_datetime=row.slot_datetime,
    duration_minutes=row.duration_minutes,
    status=_checked(row.status, _BOOKING_STATUSES, table="bookings", column="status", key=row.booking_id),
    booked_at=row.booked_at,
    attendance_tutor=_optional(row.attendance_tutor, _MARKS, table="bookings", column="attendance_tutor", key=row.booking_id),
    attendance_student=_optional(row.attendance_student, _MARKS, table="bookings", column="attendance_student", key=row.booking_id),
    penalty_code=PenaltyCode(row.penalty_code) if row.penalty_code else None,
    penalty_reason=row.penalty_reason,
    penalty_timestamp=row.penalty_timestamp,
    cancelled_at=row.cancelled_at,
    cancelled_by=row.cancelled_by,
    cancel_reason=row.cancel_reason,
    completed_at=row.completed_at,
    reminder_15m_sent=row.reminder_15m_sent,
    reminder_5m_sent=row.reminder_5m_sent,
  )


def booking_row(record: BookingRecord) -> Booking:
  return Booking(
    booking_id=record.booking_id,
    slot_id=record.slot_id,
    tutor_id=record.tutor_id,
    student_id=record.student_id,
    slot_datetime=record.slot_datetime,
    duration_minutes=record.duration_minutes,
    status=record.status,
    booked_at=record.booked_at,
    reminder_15m_sent=record.reminder_15m_sent,
    reminder_5m_sent=record.reminder_5m_sent,
  )


def penalty_from_row(row: PenaltyRecordRow) -> PenaltyRecord:
  return PenaltyRecord(
    penalty_id=row.penalty_id,
    tutor_id=row.tutor_id,
    code=PenaltyCode(row.code),
    reason=row.reason,
    severity=Severity(row.severity),
    affects_compensation=row.affects_compensation,
    created_at=row.created_at,
    booking_id=row.booking_id,
    slot_id=row.slot_id,
    block_until=row.block_until,
    resolved_at=row.resolved_at,
    appeal_status=_optional(row.appeal_status, _APPEALS, table="penalty_records", column="appeal_status", key=row.penalty_id),
  )


def penalty_values(record: PenaltyRecord) -> dict[str, Any]:
  return {
    "penalty_id": record.penalty_id,
    "tutor_id": record.tutor_id,
    "booking_id": record.booking_id,
    "slot_id": record.slot_id,
    "code": str(record.code),
    "reason": record.reason,
    "severity": str(record.severity),
    "affects_compensation": record.affects_compensation,
    "created_at": record.created_at,
    "block_until": record.block_until,
    "resolved_at": record.resolved_at,
    "appeal_status": record.appeal_status,
  }


def compliance_from_row(row: TutorCompliance) -> TutorComplianceRecord:
  return TutorComplianceRecord(tutor_id=row.tutor_id, is_blocked=row.is_blocked, block_expires_at=row.block_expires_at)
