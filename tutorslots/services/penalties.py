"""Penalty assignment, escalation and appeal handling."""

from __future__ import annotations

import asyncio
import datetime
import logging
from collections import deque

from tutorslots.notifications.contracts import AUTO_BLOCK_APPLIED, PENALTY_ASSIGNED, DomainEvent, EventPublisher
from tutorslots.notifications.publisher import publish_safely
from tutorslots.scheduling.errors import BookingNotFoundError, PenaltyNotFoundError, SlotNotFoundError
from tutorslots.scheduling.models import AppealStatus, PenaltyRecord
from tutorslots.scheduling.penalty_codes import BLOCK_DURATION_DAYS, PENALTY_WINDOW_DAYS, TA_BOOKED_THRESHOLD, PenaltyCode, penalty_info
from tutorslots.scheduling.time_rules import Clock, utc_now
from tutorslots.storage.scheduling_repo import BookingRepository, PenaltyRepository, SlotRepository
from tutorslots.utils.db_retry import execute_with_retry
from tutorslots.utils.ids import generate_penalty_id

logger = logging.getLogger(__name__)


class PenaltyService:
  """Appends ledger entries and applies the automatic block.

  Ledger writes carry a pre-generated id, so a retried or replayed write is a no-op
  when an earlier attempt already committed. Writes that still fail are parked in an
  in-process queue that `replay_pending` drains. Escalation is parked separately per
  tutor, so a committed absence whose block write failed is still escalated later.
  """

  def __init__(self, *, penalties: PenaltyRepository, bookings: BookingRepository, slots: SlotRepository, publisher: EventPublisher, clock: Clock = utc_now, retry_attempts: int = 3) -> None:
    self._penalties = penalties
    self._bookings = bookings
    self._slots = slots
    self._publisher = publisher
    self._clock = clock
    self._retry_attempts = retry_attempts
    self._pending: deque[PenaltyRecord] = deque()
    self._pending_escalations: dict[str, None] = {}
    self._replay_lock = asyncio.Lock()

  @property
  def pending_count(self) -> int:
    return len(self._pending) + len(self._pending_escalations)

  def _build_record(
    self, *, tutor_id: str, code: PenaltyCode, reason: str, booking_id: str | None = None, slot_id: str | None = None, block_until: datetime.datetime | None = None, penalty_id: str | None = None
  ) -> PenaltyRecord:
    info = penalty_info(code)
    return PenaltyRecord(
      penalty_id=penalty_id or generate_penalty_id(),
      tutor_id=tutor_id,
      code=info.code,
      reason=reason,
      severity=info.severity,
      affects_compensation=info.affects_compensation,
      created_at=self._clock(),
      booking_id=booking_id,
      slot_id=slot_id,
      block_until=block_until,
    )

  async def assign_penalty(self, *, tutor_id: str, code: PenaltyCode, reason: str, booking_id: str | None = None, slot_id: str | None = None) -> PenaltyRecord:
    """Append a ledger entry, escalating on tutor absences. Failures propagate."""
    await self._ensure_owned_targets(tutor_id, booking_id=booking_id, slot_id=slot_id)
    record = self._build_record(tutor_id=tutor_id, code=code, reason=reason, booking_id=booking_id, slot_id=slot_id)
    await self._commit(record)
    return record

  async def _ensure_owned_targets(self, tutor_id: str, *, booking_id: str | None, slot_id: str | None) -> None:
    if booking_id is not None:
      booking = await self._bookings.get_booking(booking_id)
      if booking is None or booking.tutor_id != tutor_id:
        raise BookingNotFoundError("Booking not found for this tutor", booking_id=booking_id, tutor_id=tutor_id)
    if slot_id is not None:
      slot = await self._slots.get_slot(slot_id)
      if slot is None or slot.tutor_id != tutor_id:
        raise SlotNotFoundError("Slot not found for this tutor", slot_id=slot_id, tutor_id=tutor_id)

  async def assign_penalty_safely(self, *, tutor_id: str, code: PenaltyCode, reason: str, booking_id: str | None = None, slot_id: str | None = None, penalty_id: str | None = None) -> PenaltyRecord | None:
    """Assign a penalty on behalf of an already-successful mutation; never raises for store failures.

    Returns the record (written, or parked for replay), or None when `penalty_id` is already in the ledger.
    """
    record = self._build_record(tutor_id=tutor_id, code=code, reason=reason, booking_id=booking_id, slot_id=slot_id, penalty_id=penalty_id)
    try:
      inserted = await self._commit(record)
    except Exception as exc:  # noqa: BLE001
      self._pending.append(record)
      logger.error("Penalty write failed; parked for replay penalty_id=%s tutor_id=%s code=%s pending=%d error=%s", record.penalty_id, tutor_id, code, len(self._pending), exc, exc_info=True)
      return record
    return record if inserted else None

  async def _commit(self, record: PenaltyRecord) -> bool:
    inserted = await execute_with_retry(operation_name=f"record_penalty_{record.code}", func=lambda: self._penalties.record_penalty(record), max_attempts=self._retry_attempts)
    if not inserted:
      logger.info("Penalty already recorded penalty_id=%s tutor_id=%s code=%s", record.penalty_id, record.tutor_id, record.code)
      return False
    logger.info("Penalty assigned penalty_id=%s tutor_id=%s code=%s booking_id=%s slot_id=%s", record.penalty_id, record.tutor_id, record.code, record.booking_id, record.slot_id)
    await publish_safely(self._publisher, DomainEvent(name=PENALTY_ASSIGNED, payload=_penalty_payload(record), occurred_at=record.created_at))
    if record.code == PenaltyCode.TA_BOOKED:
      await self._escalate_safely(record.tutor_id)
    return True

  async def _escalate_safely(self, tutor_id: str) -> bool:
    """Run the auto-block check; on failure park the tutor for the next replay instead of raising."""
    try:
      await self.check_and_apply_auto_block(tutor_id)
    except Exception as exc:  # noqa: BLE001
      self._pending_escalations[tutor_id] = None
      logger.error("Auto-block check failed; parked for replay tutor_id=%s error=%s", tutor_id, exc, exc_info=True)
      return False
    return True

  async def check_and_apply_auto_block(self, tutor_id: str) -> PenaltyRecord | None:
    """Block the tutor when the trailing window holds enough booked-slot absences.

    Runs on every qualifying absence, including while a block is already active; each
    crossing appends another block entry and pushes the expiry out.
    """
    now = self._clock()
    counts = await self._penalties.count_penalties(tutor_id=tutor_id, codes=(PenaltyCode.TA_BOOKED,), since=now - datetime.timedelta(days=PENALTY_WINDOW_DAYS))
    absences = counts.get(PenaltyCode.TA_BOOKED, 0)
    if absences < TA_BOOKED_THRESHOLD:
      return None

    expires_at = now + datetime.timedelta(days=BLOCK_DURATION_DAYS)
    reason = f"Automatic block: {absences} TA-301 absences within {PENALTY_WINDOW_DAYS} days"
    block = self._build_record(tutor_id=tutor_id, code=PenaltyCode.PENALTY_BLOCK, reason=reason, block_until=expires_at)
    await execute_with_retry(operation_name="apply_auto_block", func=lambda: self._penalties.apply_auto_block(block, expires_at=expires_at), max_attempts=self._retry_attempts)
    logger.warning("Auto-block applied tutor_id=%s absences=%d expires_at=%s", tutor_id, absences, expires_at.isoformat())
    await publish_safely(self._publisher, DomainEvent(name=AUTO_BLOCK_APPLIED, payload={"tutorId": tutor_id, "penaltyId": block.penalty_id, "blockExpiresAt": expires_at.isoformat(), "absences": absences}, occurred_at=now))
    return block

  async def set_appeal_status(self, penalty_id: str, status: AppealStatus) -> PenaltyRecord:
    resolved_at = self._clock() if status in ("approved", "denied") else None
    updated = await self._penalties.set_appeal_status(penalty_id, status=status, resolved_at=resolved_at)
    if updated is None:
      raise PenaltyNotFoundError("Penalty not found", penalty_id=penalty_id)
    logger.info("Penalty appeal updated penalty_id=%s status=%s", penalty_id, status)
    return updated

  async def replay_pending(self) -> int:
    """Retry parked ledger writes and escalation checks. Returns how many were settled."""
    async with self._replay_lock:
      batch = list(self._pending)
      self._pending.clear()
      settled = 0
      for record in batch:
        try:
          inserted = await self._commit(record)
        except Exception as exc:  # noqa: BLE001
          self._pending.append(record)
          logger.error("Penalty replay failed penalty_id=%s error=%s", record.penalty_id, exc)
          continue
        if not inserted and record.code == PenaltyCode.TA_BOOKED:
          # The insert committed on an attempt that reported failure, so its escalation never ran.
          self._pending_escalations[record.tutor_id] = None
        settled += 1

      tutors = list(self._pending_escalations)
      self._pending_escalations.clear()
      for tutor_id in tutors:
        if await self._escalate_safely(tutor_id):
          settled += 1
      if batch or tutors:
        logger.info("Penalty replay finished settled=%d still_pending=%d", settled, self.pending_count)
      return settled


def _penalty_payload(record: PenaltyRecord) -> dict[str, object]:
  return {
    "penaltyId": record.penalty_id,
    "tutorId": record.tutor_id,
    "code": str(record.code),
    "label": penalty_info(record.code).label,
    "severity": str(record.severity),
    "affectsCompensation": record.affects_compensation,
    "bookingId": record.booking_id,
    "slotId": record.slot_id,
    "reason": record.reason,
  }
