"""Storage interfaces for slots, templates, bookings and the penalty ledger."""

from __future__ import annotations

import datetime
from collections.abc import Sequence
from typing import Protocol

from tutorslots.scheduling.models import (
  AppealStatus,
  AttendanceMark,
  AttendanceRole,
  BookingRecord,
  BookingStatus,
  PenaltyRecord,
  ReminderKind,
  SlotStatus,
  TimeSlotRecord,
  TutorComplianceRecord,
  WeeklyTemplateEntry,
)
from tutorslots.scheduling.penalty_codes import PenaltyCode


class SlotRepository(Protocol):
  """Repository contract for tutor time slots."""

  async def get_slot(self, slot_id: str) -> TimeSlotRecord | None:
    """Fetch a slot by identifier."""

  async def find_slot(self, *, tutor_id: str, slot_date: datetime.date, slot_time: datetime.time) -> TimeSlotRecord | None:
    """Fetch the slot occupying a (tutor, date, time) position."""

  async def insert_slots(self, records: Sequence[TimeSlotRecord]) -> list[TimeSlotRecord]:
    """Insert new slots, skipping positions already taken. Returns the rows actually inserted."""

  async def transition_slot(self, slot_id: str, *, from_statuses: Sequence[SlotStatus], to_status: SlotStatus, now: datetime.datetime) -> TimeSlotRecord | None:
    """Move a slot to `to_status` only if its current status is in `from_statuses`."""

  async def mark_slot_attendance(self, slot_id: str, *, mark: AttendanceMark, now: datetime.datetime) -> bool:
    """Stamp attendance on an open slot. Returns True only when the stored mark changed."""

  async def delete_slot(self, slot_id: str, *, from_statuses: Sequence[SlotStatus]) -> bool:
    """Hard-delete a slot if its current status is in `from_statuses`."""

  async def list_slots(self, *, tutor_id: str, start_date: datetime.date, end_date: datetime.date, statuses: Sequence[SlotStatus] | None = None) -> list[TimeSlotRecord]:
    """Return a tutor's slots in an inclusive date range ordered by start."""


class TemplateRepository(Protocol):
  """Repository contract for weekly recurring templates."""

  async def replace_template(self, tutor_id: str, entries: Sequence[WeeklyTemplateEntry]) -> None:
    """Delete the tutor's entries and insert `entries` in one transaction."""

  async def list_template(self, tutor_id: str, *, active_only: bool = True) -> list[WeeklyTemplateEntry]:
    """Return template entries ordered by day then time."""


class BookingRepository(Protocol):
  """Repository contract for student bookings."""

  async def book_slot(self, booking: BookingRecord, *, now: datetime.datetime) -> bool:
    """Claim an open slot and insert the booking atomically. Returns False when the slot was not open."""

  async def get_booking(self, booking_id: str) -> BookingRecord | None:
    """Fetch a booking by identifier."""

  async def find_live_booking_for_slot(self, slot_id: str) -> BookingRecord | None:
    """Return the non-cancelled booking referencing a slot, if any."""

  async def list_live_bookings_for_slots(self, slot_ids: Sequence[str]) -> list[BookingRecord]:
    """Return non-cancelled bookings for any of the slots."""

  async def student_has_booking_at(self, *, student_id: str, slot_datetime: datetime.datetime) -> bool:
    """Return True when the student already holds a confirmed booking at that instant."""

  async def list_student_bookings(self, student_id: str, *, statuses: Sequence[BookingStatus]) -> list[BookingRecord]:
    """Return the student's bookings in the given statuses, most recent first."""

  async def cancel_booking(self, booking_id: str, *, cancelled_by: str, reason: str | None, now: datetime.datetime) -> BookingRecord | None:
    """Cancel a confirmed booking and reopen its slot atomically."""

  async def resolve_booking(self, booking_id: str, *, status: BookingStatus, now: datetime.datetime) -> BookingRecord | None:
    """Move a confirmed booking to a terminal status and complete its slot atomically."""

  async def mark_booking_attendance(self, booking_id: str, *, role: AttendanceRole, mark: AttendanceMark) -> BookingRecord | None:
    """Set one party's attendance mark. Returns the updated booking only when the mark changed."""

  async def list_due_reminders(self, *, kind: ReminderKind, window_start: datetime.datetime, window_end: datetime.datetime) -> list[BookingRecord]:
    """Return confirmed bookings starting in (window_start, window_end] whose reminder flag is unset."""

  async def claim_reminder(self, booking_id: str, *, kind: ReminderKind) -> bool:
    """Set a reminder flag if it is unset. Returns True for the single caller that flipped it."""


class PenaltyRepository(Protocol):
  """Repository contract for the penalty ledger and tutor compliance flags."""

  async def record_penalty(self, record: PenaltyRecord) -> bool:
    """Append a ledger entry and stamp its booking, if any. Returns False when the id already exists."""

  async def get_penalty(self, penalty_id: str) -> PenaltyRecord | None:
    """Fetch a ledger entry by identifier."""

  async def count_penalties(self, *, tutor_id: str, codes: Sequence[PenaltyCode], since: datetime.datetime) -> dict[PenaltyCode, int]:
    """Count the tutor's entries per code created at or after `since`."""

  async def list_recent_penalties(self, *, tutor_id: str, limit: int) -> list[PenaltyRecord]:
    """Return the newest ledger entries for a tutor."""

  async def set_appeal_status(self, penalty_id: str, *, status: AppealStatus, resolved_at: datetime.datetime | None) -> PenaltyRecord | None:
    """Update the appeal metadata of a ledger entry."""

  async def get_compliance(self, tutor_id: str) -> TutorComplianceRecord:
    """Return the tutor's compliance flags, defaulting to unblocked."""

  async def apply_auto_block(self, record: PenaltyRecord, *, expires_at: datetime.datetime) -> None:
    """Append the block entry and set the tutor's block flags in one transaction."""

  async def release_expired_blocks(self, *, now: datetime.datetime) -> list[str]:
    """Clear blocks whose expiry has passed. Returns the released tutor ids."""
