"""Periodic sweeps: block expiry, session reminders, penalty replay and cache eviction.

Each sweep is safe to run twice in the same window and alongside user requests; the
conditional updates in the store decide which run does the work.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import cast

from tutorslots.core.ttl_cache import CacheBackend
from tutorslots.notifications.contracts import BLOCK_RELEASED, SESSION_REMINDER, DomainEvent, EventPublisher
from tutorslots.notifications.publisher import publish_safely
from tutorslots.scheduling.models import ReminderKind
from tutorslots.scheduling.time_rules import REMINDER_WINDOWS, Clock, utc_now
from tutorslots.services.penalties import PenaltyService
from tutorslots.storage.scheduling_repo import BookingRepository, PenaltyRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReminderSweepResult:
  fifteen_minute: int
  five_minute: int

  @property
  def total(self) -> int:
    return self.fifteen_minute + self.five_minute


class MaintenanceService:
  def __init__(self, *, bookings: BookingRepository, penalty_store: PenaltyRepository, penalties: PenaltyService, publisher: EventPublisher, cache: CacheBackend | None = None, clock: Clock = utc_now) -> None:
    self._bookings = bookings
    self._penalty_store = penalty_store
    self._penalties = penalties
    self._publisher = publisher
    self._cache = cache
    self._clock = clock

  async def release_expired_blocks(self) -> int:
    """Clear blocks whose expiry has passed and return how many tutors were released."""
    now = self._clock()
    released = await self._penalty_store.release_expired_blocks(now=now)
    for tutor_id in released:
      logger.info("Compliance block released tutor_id=%s", tutor_id)
      await publish_safely(self._publisher, DomainEvent(name=BLOCK_RELEASED, payload={"tutorId": tutor_id}, occurred_at=now))
    if released:
      logger.info("Block release sweep finished released=%d", len(released))
    return len(released)

  async def send_due_reminders(self) -> ReminderSweepResult:
    """Emit each booking's 15-minute and 5-minute reminders at most once.

    The flag is claimed before the event is emitted, so a crash between the two loses a
    reminder rather than sending it twice.
    """
    now = self._clock()
    sent: dict[str, int] = {}
    for kind_name, window_start, window_end in REMINDER_WINDOWS:
      kind = cast(ReminderKind, kind_name)
      due = await self._bookings.list_due_reminders(kind=kind, window_start=now + window_start, window_end=now + window_end)
      count = 0
      for booking in due:
        if not await self._bookings.claim_reminder(booking.booking_id, kind=kind):
          continue
        minutes = max(int((booking.slot_datetime - now).total_seconds() // 60), 0)
        for recipient_role, recipient_id in (("tutor", booking.tutor_id), ("student", booking.student_id)):
          payload = {"bookingId": booking.booking_id, "reminder": kind, "recipientId": recipient_id, "recipientRole": recipient_role, "startsAt": booking.slot_datetime.isoformat(), "minutesUntilStart": minutes}
          await publish_safely(self._publisher, DomainEvent(name=SESSION_REMINDER, payload=payload, occurred_at=now))
        count += 1
      sent[kind] = count
    result = ReminderSweepResult(fifteen_minute=sent.get("15m", 0), five_minute=sent.get("5m", 0))
    if result.total:
      logger.info("Reminder sweep finished fifteen_minute=%d five_minute=%d", result.fifteen_minute, result.five_minute)
    return result

  async def replay_pending_penalties(self) -> int:
    return await self._penalties.replay_pending()

  async def sweep_cache(self) -> int:
    if self._cache is None:
      return 0
    evicted = await self._cache.sweep()
    if evicted:
      logger.debug("Cache sweep evicted=%d", evicted)
    return evicted
