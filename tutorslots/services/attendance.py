"""Attendance marks on booked sessions and unbooked open slots."""

from __future__ import annotations

import logging

from tutorslots.scheduling.errors import AttendanceRoleError, BookingNotFoundError, BookingResolvedError, InvalidScheduleInputError, SlotNotFoundError, SlotUnavailableError
from tutorslots.scheduling.models import AttendanceMark, AttendanceResult, AttendanceRole, BookingRecord, TimeSlotRecord
from tutorslots.scheduling.penalty_codes import PenaltyCode, determine_penalty_code
from tutorslots.scheduling.time_rules import Clock, utc_now
from tutorslots.services.penalties import PenaltyService
from tutorslots.storage.scheduling_repo import BookingRepository, SlotRepository
from tutorslots.utils.ids import attendance_penalty_id

logger = logging.getLogger(__name__)

_BOOKING_ABSENCE_REASONS = {
  "tutor": "Tutor marked absent for booked session",
  "student": "Student did not attend booked session",
}


class AttendanceService:
  """Records presence or absence and raises the matching penalty.

  A penalty is raised only when a party's mark changes to `absent`, and its ledger id is
  derived from the target and code, so each party yields at most one penalty per session
  even when a mark is toggled back and forth.
  Tutors and students only mark their own side of a session; operators may mark either.
  Penalty writes never fail the mark itself.
  """

  def __init__(self, *, slots: SlotRepository, bookings: BookingRepository, penalties: PenaltyService, clock: Clock = utc_now) -> None:
    self._slots = slots
    self._bookings = bookings
    self._penalties = penalties
    self._clock = clock

  async def mark_attendance(
    self, *, actor_id: str, role: AttendanceRole, status: AttendanceMark, booking_id: str | None = None, slot_id: str | None = None, is_operator: bool = False
  ) -> AttendanceResult:
    if (booking_id is None) == (slot_id is None):
      raise InvalidScheduleInputError("Provide exactly one of bookingId or slotId")

    if booking_id is not None:
      booking = await self._bookings.get_booking(booking_id)
      if booking is None:
        raise BookingNotFoundError("Booking not found", booking_id=booking_id)
      return await self._mark_booking(booking, actor_id=actor_id, role=role, status=status, is_operator=is_operator)

    slot = await self._slots.get_slot(slot_id)
    if slot is None:
      raise SlotNotFoundError("Slot not found", slot_id=slot_id)
    if slot.status == "booked":
      # A booked slot is marked through its live booking.
      live = await self._bookings.find_live_booking_for_slot(slot.slot_id)
      if live is None:
        raise SlotUnavailableError("Slot has no live booking", slot_id=slot.slot_id)
      return await self._mark_booking(live, actor_id=actor_id, role=role, status=status, is_operator=is_operator)
    if slot.tutor_id != actor_id and not is_operator:
      raise SlotNotFoundError("Slot not found", slot_id=slot_id)
    return await self._mark_slot(slot, role=role, status=status)

  async def _mark_booking(self, booking: BookingRecord, *, actor_id: str, role: AttendanceRole, status: AttendanceMark, is_operator: bool) -> AttendanceResult:
    if not is_operator:
      if actor_id not in (booking.tutor_id, booking.student_id):
        raise BookingNotFoundError("Booking not found", booking_id=booking.booking_id)
      marked_party = booking.tutor_id if role == "tutor" else booking.student_id
      if actor_id != marked_party:
        raise AttendanceRoleError(f"Only your own attendance can be marked, not the {role}'s", booking_id=booking.booking_id, role=role)
    if booking.status == "cancelled":
      raise BookingResolvedError("Attendance cannot be marked on a cancelled booking", booking_id=booking.booking_id)

    updated = await self._bookings.mark_booking_attendance(booking.booking_id, role=role, mark=status)
    if updated is None:
      current = await self._bookings.get_booking(booking.booking_id)
      if current is None or current.status == "cancelled":
        raise BookingResolvedError("Booking was cancelled while marking attendance", booking_id=booking.booking_id)
      return AttendanceResult(target="booking", target_id=booking.booking_id, role=role, status=status, changed=False)

    logger.info("Attendance marked booking_id=%s role=%s status=%s", booking.booking_id, role, status)
    code: PenaltyCode | None = None
    if status == "absent":
      if role == "tutor":
        code = determine_penalty_code(was_booked=True, tutor_present=False)
      else:
        code = PenaltyCode.STUDENT_ABSENT
    if code is not None:
      record = await self._penalties.assign_penalty_safely(
        tutor_id=updated.tutor_id, code=code, reason=_BOOKING_ABSENCE_REASONS[role], booking_id=updated.booking_id, slot_id=updated.slot_id, penalty_id=attendance_penalty_id(updated.booking_id, code)
      )
      if record is None:
        code = None
    return AttendanceResult(target="booking", target_id=booking.booking_id, role=role, status=status, changed=True, penalty_code=code)

  async def _mark_slot(self, slot: TimeSlotRecord, *, role: AttendanceRole, status: AttendanceMark) -> AttendanceResult:
    if role != "tutor":
      raise InvalidScheduleInputError("Only tutor attendance can be marked on an unbooked slot", slot_id=slot.slot_id)
    if slot.status != "open":
      raise SlotUnavailableError(f"Attendance cannot be marked on a {slot.status} slot", slot_id=slot.slot_id, status=slot.status)

    changed = await self._slots.mark_slot_attendance(slot.slot_id, mark=status, now=self._clock())
    if not changed:
      current = await self._slots.get_slot(slot.slot_id)
      if current is None or current.status != "open":
        raise SlotUnavailableError("Slot changed while marking attendance", slot_id=slot.slot_id)
      return AttendanceResult(target="slot", target_id=slot.slot_id, role=role, status=status, changed=False)

    logger.info("Attendance marked slot_id=%s status=%s", slot.slot_id, status)
    code = determine_penalty_code(was_booked=False, tutor_present=False) if status == "absent" else None
    if code is not None:
      record = await self._penalties.assign_penalty_safely(tutor_id=slot.tutor_id, code=code, reason="Tutor marked absent for open (unbooked) slot", slot_id=slot.slot_id, penalty_id=attendance_penalty_id(slot.slot_id, code))
      if record is None:
        code = None
    return AttendanceResult(target="slot", target_id=slot.slot_id, role=role, status=status, changed=True, penalty_code=code)
