from __future__ import annotations

import datetime

import pytest

from tutorslots.scheduling.errors import AttendanceRoleError, BookingNotFoundError, BookingResolvedError, InvalidScheduleInputError, SlotNotFoundError
from tutorslots.scheduling.penalty_codes import PenaltyCode


def _codes(store) -> list[PenaltyCode]:
  return sorted(record.code for record in store.penalties.values())


@pytest.mark.anyio
async def test_tutor_absence_on_booking_records_one_301(services, booked_session, store) -> None:
  booking = booked_session()

  result = await services.attendance.mark_attendance(actor_id="tutor-1", role="tutor", status="absent", booking_id=booking.booking_id)

  assert result.changed is True
  assert result.penalty_code == PenaltyCode.TA_BOOKED
  assert _codes(store) == [PenaltyCode.TA_BOOKED]
  stored = store.bookings[booking.booking_id]
  assert stored.attendance_tutor == "absent"
  assert stored.penalty_code == PenaltyCode.TA_BOOKED
  assert stored.penalty_reason
  assert stored.penalty_timestamp is not None

  repeat = await services.attendance.mark_attendance(actor_id="tutor-1", role="tutor", status="absent", booking_id=booking.booking_id)
  assert repeat.changed is False
  assert repeat.penalty_code is None
  assert _codes(store) == [PenaltyCode.TA_BOOKED]


@pytest.mark.anyio
async def test_student_absence_adds_exactly_one_502(services, booked_session, store) -> None:
  booking = booked_session()
  await services.attendance.mark_attendance(actor_id="tutor-1", role="tutor", status="absent", booking_id=booking.booking_id)
  result = await services.attendance.mark_attendance(actor_id="student-1", role="student", status="absent", booking_id=booking.booking_id)

  assert result.penalty_code == PenaltyCode.STUDENT_ABSENT
  assert _codes(store) == [PenaltyCode.TA_BOOKED, PenaltyCode.STUDENT_ABSENT]
  student_penalty = next(record for record in store.penalties.values() if record.code == PenaltyCode.STUDENT_ABSENT)
  assert student_penalty.tutor_id == "tutor-1"
  assert student_penalty.affects_compensation is False


@pytest.mark.anyio
async def test_toggling_a_mark_never_duplicates_the_penalty(services, booked_session, store) -> None:
  booking = booked_session()
  await services.attendance.mark_attendance(actor_id="tutor-1", role="tutor", status="absent", booking_id=booking.booking_id)
  await services.attendance.mark_attendance(actor_id="tutor-1", role="tutor", status="present", booking_id=booking.booking_id)
  result = await services.attendance.mark_attendance(actor_id="tutor-1", role="tutor", status="absent", booking_id=booking.booking_id)

  assert result.changed is True
  assert result.penalty_code is None
  assert _codes(store) == [PenaltyCode.TA_BOOKED]


@pytest.mark.anyio
async def test_marks_are_order_insensitive(services, booked_session, store) -> None:
  booking = booked_session()
  await services.attendance.mark_attendance(actor_id="student-1", role="student", status="present", booking_id=booking.booking_id)
  await services.attendance.mark_attendance(actor_id="tutor-1", role="tutor", status="present", booking_id=booking.booking_id)

  stored = store.bookings[booking.booking_id]
  assert (stored.attendance_tutor, stored.attendance_student) == ("present", "present")
  assert store.penalties == {}


@pytest.mark.anyio
async def test_booked_slot_id_routes_to_its_booking(services, booked_session, store) -> None:
  booking = booked_session()
  result = await services.attendance.mark_attendance(actor_id="tutor-1", role="tutor", status="absent", slot_id=booking.slot_id)

  assert result.target == "booking"
  assert result.target_id == booking.booking_id
  assert _codes(store) == [PenaltyCode.TA_BOOKED]


@pytest.mark.anyio
async def test_unbooked_slot_absence_records_302(services, seed_slot, store, clock) -> None:
  slot = seed_slot(starts_at=clock.now + datetime.timedelta(hours=1))

  result = await services.attendance.mark_attendance(actor_id="tutor-1", role="tutor", status="absent", slot_id=slot.slot_id)
  again = await services.attendance.mark_attendance(actor_id="tutor-1", role="tutor", status="absent", slot_id=slot.slot_id)

  assert result.target == "slot"
  assert result.penalty_code == PenaltyCode.TA_UNBOOKED
  assert again.changed is False
  assert store.slots[slot.slot_id].attendance_mark == "absent"
  assert _codes(store) == [PenaltyCode.TA_UNBOOKED]


@pytest.mark.anyio
async def test_unbooked_slot_rules(services, seed_slot, clock) -> None:
  slot = seed_slot(starts_at=clock.now + datetime.timedelta(hours=1))
  with pytest.raises(InvalidScheduleInputError):
    await services.attendance.mark_attendance(actor_id="tutor-1", role="student", status="absent", slot_id=slot.slot_id)
  with pytest.raises(SlotNotFoundError):
    await services.attendance.mark_attendance(actor_id="tutor-2", role="tutor", status="absent", slot_id=slot.slot_id)
  with pytest.raises(SlotNotFoundError):
    await services.attendance.mark_attendance(actor_id="tutor-1", role="tutor", status="absent", slot_id="missing")


@pytest.mark.anyio
async def test_booking_rules(services, booked_session) -> None:
  booking = booked_session()
  with pytest.raises(InvalidScheduleInputError):
    await services.attendance.mark_attendance(actor_id="tutor-1", role="tutor", status="absent", booking_id=booking.booking_id, slot_id=booking.slot_id)
  with pytest.raises(BookingNotFoundError):
    await services.attendance.mark_attendance(actor_id="stranger", role="tutor", status="absent", booking_id=booking.booking_id)

  await services.bookings.cancel_booking(booking.booking_id, actor_id="student-1")
  with pytest.raises(BookingResolvedError):
    await services.attendance.mark_attendance(actor_id="tutor-1", role="tutor", status="absent", booking_id=booking.booking_id)


@pytest.mark.anyio
async def test_parties_only_mark_their_own_attendance(services, booked_session, store) -> None:
  booking = booked_session()

  with pytest.raises(AttendanceRoleError):
    await services.attendance.mark_attendance(actor_id="student-1", role="tutor", status="absent", booking_id=booking.booking_id)
  with pytest.raises(AttendanceRoleError):
    await services.attendance.mark_attendance(actor_id="tutor-1", role="student", status="absent", slot_id=booking.slot_id)

  stored = store.bookings[booking.booking_id]
  assert (stored.attendance_tutor, stored.attendance_student) == (None, None)
  assert store.penalties == {}
  assert store.compliance.get("tutor-1") is None


@pytest.mark.anyio
async def test_operator_may_mark_either_party(services, booked_session, seed_slot, clock, store) -> None:
  booking = booked_session()
  slot = seed_slot(starts_at=clock.now + datetime.timedelta(hours=1))

  tutor = await services.attendance.mark_attendance(actor_id="ops-1", role="tutor", status="absent", booking_id=booking.booking_id, is_operator=True)
  student = await services.attendance.mark_attendance(actor_id="ops-1", role="student", status="absent", booking_id=booking.booking_id, is_operator=True)
  unbooked = await services.attendance.mark_attendance(actor_id="ops-1", role="tutor", status="absent", slot_id=slot.slot_id, is_operator=True)

  assert (tutor.penalty_code, student.penalty_code, unbooked.penalty_code) == (PenaltyCode.TA_BOOKED, PenaltyCode.STUDENT_ABSENT, PenaltyCode.TA_UNBOOKED)


@pytest.mark.anyio
async def test_penalty_write_failure_keeps_the_mark(flaky_services, flaky_penalty_repo, booked_session, store) -> None:
  flaky_penalty_repo.failures = 1
  booking = booked_session()

  result = await flaky_services.attendance.mark_attendance(actor_id="tutor-1", role="tutor", status="absent", booking_id=booking.booking_id)

  assert result.changed is True
  assert store.bookings[booking.booking_id].attendance_tutor == "absent"
  assert store.penalties == {}
  assert flaky_services.penalties.pending_count == 1

  assert await flaky_services.penalties.replay_pending() == 1
  assert _codes(store) == [PenaltyCode.TA_BOOKED]
  assert flaky_services.penalties.pending_count == 0
