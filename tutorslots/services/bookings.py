"""Student-side booking lifecycle and the available-slots read path."""

from __future__ import annotations

import datetime
import logging

import msgspec

from tutorslots.core.ttl_cache import CacheBackend
from tutorslots.notifications.contracts import BOOKING_CANCELLED, BOOKING_COMPLETED, BOOKING_CREATED, DomainEvent, EventPublisher
from tutorslots.notifications.publisher import publish_safely
from tutorslots.scheduling.errors import BookingNotFoundError, BookingResolvedError, DoubleBookingError, InvalidScheduleInputError, LeadTimeError, SlotNotFoundError, SlotUnavailableError
from tutorslots.scheduling.models import AvailableSlot, BookingRecord, BookingStatus, StudentStats
from tutorslots.scheduling.time_rules import BOOK_LEAD_TIME, Clock, format_slot_time, local_today, meets_lead_time, utc_now
from tutorslots.services.cache_keys import available_slots_key, invalidate_tutor
from tutorslots.services.compliance import ComplianceService
from tutorslots.storage.scheduling_repo import BookingRepository, SlotRepository
from tutorslots.utils.ids import generate_booking_id

logger = logging.getLogger(__name__)

STUDENT_HISTORY_STATUSES: tuple[BookingStatus, ...] = ("confirmed", "completed")
AVAILABLE_DEFAULT_DAYS = 7


def _booking_payload(booking: BookingRecord) -> dict[str, object]:
  return {
    "bookingId": booking.booking_id,
    "slotId": booking.slot_id,
    "tutorId": booking.tutor_id,
    "studentId": booking.student_id,
    "slotDatetime": booking.slot_datetime.isoformat(),
    "status": booking.status,
  }


class BookingService:
  def __init__(
    self,
    *,
    slots: SlotRepository,
    bookings: BookingRepository,
    compliance: ComplianceService,
    publisher: EventPublisher,
    cache: CacheBackend | None = None,
    cache_ttl_seconds: float = 30.0,
    schedule_timezone: str = "UTC",
    clock: Clock = utc_now,
  ) -> None:
    self._slots = slots
    self._bookings = bookings
    self._compliance = compliance
    self._publisher = publisher
    self._cache = cache
    self._cache_ttl = cache_ttl_seconds
    self._timezone = schedule_timezone
    self._clock = clock

  def available_range(self, start_date: datetime.date | None = None, end_date: datetime.date | None = None) -> tuple[datetime.date, datetime.date]:
    """Fill an omitted range with today (schedule time zone) through a week later."""
    start = start_date or local_today(self._clock(), self._timezone)
    return start, end_date or start + datetime.timedelta(days=AVAILABLE_DEFAULT_DAYS)

  async def get_available_slots(self, tutor_id: str, start_date: datetime.date, end_date: datetime.date) -> list[AvailableSlot]:
    """Return the tutor's open slots in range that can still be booked."""
    if start_date > end_date:
      raise InvalidScheduleInputError("startDate must not be after endDate", start_date=start_date, end_date=end_date)
    now = self._clock()
    if await self._compliance.is_blocked(tutor_id, now=now):
      return []

    key = available_slots_key(tutor_id, start_date, end_date)
    cached = await self._cache.get(key) if self._cache is not None else None
    if cached is not None:
      candidates = msgspec.json.decode(cached, type=list[AvailableSlot])
    else:
      records = await self._slots.list_slots(tutor_id=tutor_id, start_date=start_date, end_date=end_date, statuses=("open",))
      candidates = [
        AvailableSlot(slot_id=slot.slot_id, tutor_id=slot.tutor_id, date=slot.slot_date, time=format_slot_time(slot.slot_time), starts_at=slot.starts_at, duration_minutes=slot.duration_minutes)
        for slot in records
      ]
      if self._cache is not None:
        await self._cache.set(key, msgspec.json.encode(candidates), self._cache_ttl)

    # Cached lists may be up to one TTL old, so the booking floor is re-applied on every read.
    return [slot for slot in candidates if meets_lead_time(slot.starts_at, now=now, lead=BOOK_LEAD_TIME)]

  async def book_slot(self, student_id: str, slot_id: str) -> BookingRecord:
    """Claim an open slot for a student.

    The claim itself is a conditional update in the store; every check before it is a
    fast path for a clear error message, not the guard against concurrent bookers.
    """
    slot = await self._slots.get_slot(slot_id)
    if slot is None:
      raise SlotNotFoundError("Slot not found", slot_id=slot_id)
    if slot.tutor_id == student_id:
      raise InvalidScheduleInputError("Tutors cannot book their own slots", slot_id=slot_id)
    if slot.status != "open":
      raise SlotUnavailableError("Slot is not open for booking", slot_id=slot_id, status=slot.status)

    now = self._clock()
    if not meets_lead_time(slot.starts_at, now=now, lead=BOOK_LEAD_TIME):
      raise LeadTimeError("Slots must be booked at least 30 minutes in advance", rule="book_lead_time", required_minutes=int(BOOK_LEAD_TIME.total_seconds() // 60), slot_id=slot_id)
    await self._compliance.ensure_not_blocked(slot.tutor_id)
    if await self._bookings.student_has_booking_at(student_id=student_id, slot_datetime=slot.starts_at):
      raise DoubleBookingError("Student already has a session at this time", slot_id=slot_id)

    booking = BookingRecord(
      booking_id=generate_booking_id(),
      slot_id=slot.slot_id,
      tutor_id=slot.tutor_id,
      student_id=student_id,
      slot_datetime=slot.starts_at,
      duration_minutes=slot.duration_minutes,
      status="confirmed",
      booked_at=now,
    )
    if not await self._bookings.book_slot(booking, now=now):
      logger.info("Booking conflict slot_id=%s student_id=%s", slot_id, student_id)
      raise SlotUnavailableError("Slot was booked by someone else", slot_id=slot_id)

    await invalidate_tutor(self._cache, slot.tutor_id)
    logger.info("Booking created booking_id=%s slot_id=%s tutor_id=%s student_id=%s", booking.booking_id, slot_id, slot.tutor_id, student_id)
    await publish_safely(self._publisher, DomainEvent(name=BOOKING_CREATED, payload=_booking_payload(booking), occurred_at=now))
    return booking

  async def _visible_booking(self, booking_id: str, *, actor_id: str, is_operator: bool, tutor_only: bool = False) -> BookingRecord:
    booking = await self._bookings.get_booking(booking_id)
    if booking is None:
      raise BookingNotFoundError("Booking not found", booking_id=booking_id)
    if is_operator:
      return booking
    parties = (booking.tutor_id,) if tutor_only else (booking.tutor_id, booking.student_id)
    if actor_id not in parties:
      raise BookingNotFoundError("Booking not found", booking_id=booking_id)
    return booking

  async def cancel_booking(self, booking_id: str, *, actor_id: str, is_operator: bool = False, reason: str | None = None) -> BookingRecord:
    """Cancel a confirmed booking and return its slot to `open`. No penalty is assigned here."""
    await self._visible_booking(booking_id, actor_id=actor_id, is_operator=is_operator)
    now = self._clock()
    cancelled = await self._bookings.cancel_booking(booking_id, cancelled_by=actor_id, reason=reason, now=now)
    if cancelled is None:
      raise BookingResolvedError("Booking is no longer confirmed", booking_id=booking_id)

    await invalidate_tutor(self._cache, cancelled.tutor_id)
    logger.info("Booking cancelled booking_id=%s cancelled_by=%s", booking_id, actor_id)
    payload = _booking_payload(cancelled) | {"cancelledBy": actor_id, "reason": reason}
    await publish_safely(self._publisher, DomainEvent(name=BOOKING_CANCELLED, payload=payload, occurred_at=now))
    return cancelled

  async def complete_session(self, booking_id: str, *, actor_id: str, is_operator: bool = False) -> BookingRecord:
    """Resolve a confirmed booking as `completed`, or `no_show` when the student was marked absent."""
    booking = await self._visible_booking(booking_id, actor_id=actor_id, is_operator=is_operator, tutor_only=True)
    status: BookingStatus = "no_show" if booking.attendance_student == "absent" else "completed"
    now = self._clock()
    resolved = await self._bookings.resolve_booking(booking_id, status=status, now=now)
    if resolved is None:
      raise BookingResolvedError("Booking is no longer confirmed", booking_id=booking_id)

    await invalidate_tutor(self._cache, resolved.tutor_id)
    logger.info("Booking resolved booking_id=%s status=%s", booking_id, status)
    await publish_safely(self._publisher, DomainEvent(name=BOOKING_COMPLETED, payload=_booking_payload(resolved), occurred_at=now))
    return resolved

  async def list_student_bookings(self, student_id: str) -> list[BookingRecord]:
    return await self._bookings.list_student_bookings(student_id, statuses=STUDENT_HISTORY_STATUSES)

  async def get_student_stats(self, student_id: str) -> StudentStats:
    """Count completed and upcoming sessions and sum completed hours for a student's dashboard."""
    now = self._clock()
    history = await self._bookings.list_student_bookings(student_id, statuses=STUDENT_HISTORY_STATUSES)
    completed = [booking for booking in history if booking.status == "completed"]
    upcoming = sorted((booking for booking in history if booking.status == "confirmed" and booking.slot_datetime > now), key=lambda booking: booking.slot_datetime)
    total_minutes = sum(booking.duration_minutes for booking in completed)
    return StudentStats(
      student_id=student_id,
      lessons_completed=len(completed),
      upcoming_lessons=len(upcoming),
      total_hours=round(total_minutes / 60, 1),
      next_lesson=upcoming[0] if upcoming else None,
    )
