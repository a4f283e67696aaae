"""Tutor-side slot lifecycle: open, close, bulk generation, templates and the week view."""

from __future__ import annotations

import datetime
import logging
from collections.abc import Sequence

from tutorslots.core.ttl_cache import CacheBackend
from tutorslots.scheduling.errors import BatchTooLargeError, InvalidScheduleInputError, LeadTimeError, ScheduleConflictError, SlotBookedError, SlotExistsError, SlotNotFoundError, SlotUnavailableError, TemplateNotFoundError
from tutorslots.scheduling.models import SlotRequest, TimeSlotRecord, WeeklyTemplateEntry, WeekSchedule, WeekSlot
from tutorslots.scheduling.penalty_codes import determine_penalty_code
from tutorslots.scheduling.time_rules import (
  MAX_BULK_SLOTS,
  OPEN_LEAD_TIME,
  SLOT_DURATION_MINUTES,
  Clock,
  day_of_week,
  format_slot_time,
  iter_dates,
  meets_lead_time,
  notice_hours,
  slot_instant,
  utc_now,
  week_bounds,
)
from tutorslots.services.cache_keys import invalidate_tutor
from tutorslots.services.compliance import ComplianceService
from tutorslots.services.penalties import PenaltyService
from tutorslots.storage.scheduling_repo import BookingRepository, SlotRepository, TemplateRepository
from tutorslots.utils.ids import generate_slot_id, generate_template_entry_id

logger = logging.getLogger(__name__)


def _validate_days(days: Sequence[int]) -> None:
  invalid = [day for day in days if not 0 <= day <= 6]
  if invalid:
    raise InvalidScheduleInputError("Days of week must be between 0 (Sunday) and 6 (Saturday)", days=invalid)


class SlotService:
  def __init__(
    self,
    *,
    slots: SlotRepository,
    templates: TemplateRepository,
    bookings: BookingRepository,
    penalties: PenaltyService,
    compliance: ComplianceService,
    cache: CacheBackend | None = None,
    schedule_timezone: str = "UTC",
    clock: Clock = utc_now,
  ) -> None:
    self._slots = slots
    self._templates = templates
    self._bookings = bookings
    self._penalties = penalties
    self._compliance = compliance
    self._cache = cache
    self._timezone = schedule_timezone
    self._clock = clock

  def _instant(self, request: SlotRequest) -> datetime.datetime:
    return slot_instant(request.slot_date, request.slot_time, self._timezone)

  async def _owned_slot(self, tutor_id: str, slot_id: str) -> TimeSlotRecord:
    slot = await self._slots.get_slot(slot_id)
    # Someone else's slot is reported exactly like a missing one.
    if slot is None or slot.tutor_id != tutor_id:
      raise SlotNotFoundError("Slot not found", slot_id=slot_id)
    return slot

  async def open_slots(self, tutor_id: str, requests: Sequence[SlotRequest], *, skip_existing: bool = False, is_recurring: bool = False) -> list[TimeSlotRecord]:
    """Create `open` slots, or reopen `available` ones, at the requested positions.

    Every request is validated before anything is written. A position already held by
    a slot that is not `available` is an error unless `skip_existing` is set, in which
    case it is silently passed over (bulk and template expansion).
    """
    await self._compliance.ensure_not_blocked(tutor_id)
    now = self._clock()

    planned: dict[tuple[datetime.date, datetime.time], datetime.datetime] = {}
    for request in requests:
      instant = self._instant(request)
      if not meets_lead_time(instant, now=now, lead=OPEN_LEAD_TIME):
        raise LeadTimeError(
          f"Slot {request.slot_date.isoformat()} {format_slot_time(request.slot_time)} must start at least 5 minutes from now",
          rule="open_lead_time",
          required_minutes=int(OPEN_LEAD_TIME.total_seconds() // 60),
          slot_date=request.slot_date,
          slot_time=format_slot_time(request.slot_time),
        )
      planned.setdefault((request.slot_date, request.slot_time), instant)

    to_insert: list[TimeSlotRecord] = []
    to_reopen: list[TimeSlotRecord] = []
    for (slot_date, slot_time), instant in planned.items():
      existing = await self._slots.find_slot(tutor_id=tutor_id, slot_date=slot_date, slot_time=slot_time)
      if existing is None:
        to_insert.append(
          TimeSlotRecord(
            slot_id=generate_slot_id(),
            tutor_id=tutor_id,
            slot_date=slot_date,
            slot_time=slot_time,
            starts_at=instant,
            duration_minutes=SLOT_DURATION_MINUTES,
            status="open",
            is_recurring=is_recurring,
            created_at=now,
            updated_at=now,
          )
        )
      elif existing.status == "available":
        to_reopen.append(existing)
      elif not skip_existing:
        raise SlotExistsError(f"A slot already exists at {slot_date.isoformat()} {format_slot_time(slot_time)}", slot_id=existing.slot_id, status=existing.status)

    opened = await self._slots.insert_slots(to_insert)
    if len(opened) != len(to_insert):
      logger.info("Skipped slots taken concurrently tutor_id=%s requested=%d inserted=%d", tutor_id, len(to_insert), len(opened))
    for slot in to_reopen:
      reopened = await self._slots.transition_slot(slot.slot_id, from_statuses=("available",), to_status="open", now=now)
      if reopened is not None:
        opened.append(reopened)

    if opened:
      await invalidate_tutor(self._cache, tutor_id)
    logger.info("Opened slots tutor_id=%s count=%d", tutor_id, len(opened))
    return sorted(opened, key=lambda slot: slot.starts_at)

  async def close_slots(self, tutor_id: str, slot_ids: Sequence[str]) -> list[TimeSlotRecord]:
    """Withdraw open slots; closing inside the notice window records a short-notice penalty."""
    targets = [await self._owned_slot(tutor_id, slot_id) for slot_id in dict.fromkeys(slot_ids)]
    for slot in targets:
      error = self._close_conflict(slot)
      if error is not None:
        raise error

    now = self._clock()
    closed: list[TimeSlotRecord] = []
    for slot in targets:
      if slot.status == "available":
        continue
      updated = await self._slots.transition_slot(slot.slot_id, from_statuses=("open",), to_status="available", now=now)
      if updated is None:
        current = await self._slots.get_slot(slot.slot_id)
        if current is None:
          raise SlotNotFoundError("Slot not found", slot_id=slot.slot_id)
        if current.status == "available":
          continue
        logger.info("Close lost a race slot_id=%s status=%s", slot.slot_id, current.status)
        raise self._close_conflict(current) or SlotUnavailableError("Slot changed while closing", slot_id=slot.slot_id, status=current.status)
      closed.append(updated)

      hours = notice_hours(slot.starts_at, now=now)
      code = determine_penalty_code(was_booked=False, tutor_present=True, cancellation_notice_hours=hours)
      if code is not None:
        reason = f"Open slot {slot.slot_date.isoformat()} {format_slot_time(slot.slot_time)} closed with {max(hours, 0):.1f} hours notice"
        await self._penalties.assign_penalty_safely(tutor_id=tutor_id, code=code, reason=reason, slot_id=slot.slot_id)

    if closed:
      await invalidate_tutor(self._cache, tutor_id)
    logger.info("Closed slots tutor_id=%s count=%d", tutor_id, len(closed))
    return closed

  @staticmethod
  def _close_conflict(slot: TimeSlotRecord) -> ScheduleConflictError | None:
    if slot.status == "booked":
      return SlotBookedError("Booked slots cannot be closed; cancel the booking instead", slot_id=slot.slot_id)
    if slot.status in ("completed", "cancelled"):
      return SlotUnavailableError(f"Slot is {slot.status} and cannot be closed", slot_id=slot.slot_id, status=slot.status)
    return None

  async def delete_open_slot(self, tutor_id: str, slot_id: str) -> None:
    slot = await self._owned_slot(tutor_id, slot_id)
    if slot.status not in ("open", "available"):
      raise SlotBookedError("Only unbooked slots can be deleted", slot_id=slot_id, status=slot.status)
    if not await self._slots.delete_slot(slot_id, from_statuses=("open", "available")):
      raise SlotUnavailableError("Slot changed while deleting", slot_id=slot_id)
    await invalidate_tutor(self._cache, tutor_id)
    logger.info("Deleted slot tutor_id=%s slot_id=%s", tutor_id, slot_id)

  def _expand(self, start_date: datetime.date, end_date: datetime.date, times: Sequence[datetime.time], days: set[int] | None, *, limit: int | None = None) -> list[SlotRequest]:
    now = self._clock()
    requests: list[SlotRequest] = []
    for day in iter_dates(start_date, end_date):
      if days is not None and day_of_week(day) not in days:
        continue
      for slot_time in times:
        request = SlotRequest(slot_date=day, slot_time=slot_time)
        if not meets_lead_time(self._instant(request), now=now, lead=OPEN_LEAD_TIME):
          continue
        requests.append(request)
        if limit is not None and len(requests) > limit:
          raise BatchTooLargeError(f"Bulk open is limited to {limit} slots per request", limit=limit)
    return requests

  async def bulk_open_slots(self, tutor_id: str, start_date: datetime.date, end_date: datetime.date, times: Sequence[datetime.time], days_of_week: Sequence[int] | None = None) -> list[TimeSlotRecord]:
    if not times:
      raise InvalidScheduleInputError("At least one time is required")
    if days_of_week:
      _validate_days(days_of_week)
    unique_times = list(dict.fromkeys(times))
    requests = self._expand(start_date, end_date, unique_times, set(days_of_week) if days_of_week else None, limit=MAX_BULK_SLOTS)
    return await self.open_slots(tutor_id, requests, skip_existing=True)

  async def save_weekly_template(self, tutor_id: str, entries: Sequence[tuple[int, datetime.time]]) -> list[WeeklyTemplateEntry]:
    """Replace the tutor's template with `entries`; an empty list clears it."""
    _validate_days([day for day, _ in entries])
    now = self._clock()
    records = [
      WeeklyTemplateEntry(template_id=generate_template_entry_id(), tutor_id=tutor_id, day_of_week=day, slot_time=slot_time, is_active=True, created_at=now)
      for day, slot_time in dict.fromkeys(entries)
    ]
    await self._templates.replace_template(tutor_id, records)
    logger.info("Saved weekly template tutor_id=%s entries=%d", tutor_id, len(records))
    return sorted(records, key=lambda entry: (entry.day_of_week, entry.slot_time))

  async def get_weekly_template(self, tutor_id: str) -> list[WeeklyTemplateEntry]:
    return await self._templates.list_template(tutor_id, active_only=True)

  async def apply_template(self, tutor_id: str, start_date: datetime.date, end_date: datetime.date) -> list[TimeSlotRecord]:
    entries = await self._templates.list_template(tutor_id, active_only=True)
    if not entries:
      raise TemplateNotFoundError("No active weekly template", tutor_id=tutor_id)

    now = self._clock()
    by_day: dict[int, list[datetime.time]] = {}
    for entry in entries:
      by_day.setdefault(entry.day_of_week, []).append(entry.slot_time)
    requests = [
      SlotRequest(slot_date=day, slot_time=slot_time)
      for day in iter_dates(start_date, end_date)
      for slot_time in by_day.get(day_of_week(day), [])
      if meets_lead_time(slot_instant(day, slot_time, self._timezone), now=now, lead=OPEN_LEAD_TIME)
    ]
    return await self.open_slots(tutor_id, requests, skip_existing=True, is_recurring=True)

  async def get_tutor_week(self, tutor_id: str, week_offset: int = 0) -> WeekSchedule:
    week_start, week_end = week_bounds(self._clock(), self._timezone, week_offset)
    slots = await self._slots.list_slots(tutor_id=tutor_id, start_date=week_start, end_date=week_end)
    bookings = {booking.slot_id: booking for booking in await self._bookings.list_live_bookings_for_slots([slot.slot_id for slot in slots])}

    week_slots: list[WeekSlot] = []
    for slot in slots:
      booking = bookings.get(slot.slot_id)
      week_slots.append(
        WeekSlot(
          slot_id=slot.slot_id,
          date=slot.slot_date,
          time=format_slot_time(slot.slot_time),
          status=slot.status,
          booking_id=booking.booking_id if booking else None,
          student_id=booking.student_id if booking else None,
          penalty_code=booking.penalty_code if booking else None,
          attendance_tutor=booking.attendance_tutor if booking else slot.attendance_mark,
          attendance_student=booking.attendance_student if booking else None,
        )
      )
    return WeekSchedule(week_start=week_start, week_end=week_end, slots=week_slots)
