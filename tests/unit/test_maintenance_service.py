from __future__ import annotations

import datetime

import pytest

from tutorslots.core.ttl_cache import TTLCache
from tutorslots.scheduling.models import TutorComplianceRecord
from tutorslots.services.maintenance import MaintenanceService


@pytest.mark.anyio
async def test_release_expired_blocks_is_idempotent(services, store, penalty_repo, clock, publisher) -> None:
  store.compliance["tutor-1"] = TutorComplianceRecord(tutor_id="tutor-1", is_blocked=True, block_expires_at=clock.now - datetime.timedelta(minutes=1))
  store.compliance["tutor-2"] = TutorComplianceRecord(tutor_id="tutor-2", is_blocked=True, block_expires_at=clock.now + datetime.timedelta(days=1))

  assert await services.maintenance.release_expired_blocks() == 1
  writes = penalty_repo.writes
  assert await services.maintenance.release_expired_blocks() == 0

  assert penalty_repo.writes == writes
  assert store.compliance["tutor-1"].is_blocked is False
  assert store.compliance["tutor-2"].is_blocked is True
  assert [event.payload["tutorId"] for event in publisher.named("compliance.block_released")] == ["tutor-1"]


@pytest.mark.anyio
async def test_fifteen_minute_reminder_goes_to_both_parties_once(services, booked_session, store, publisher) -> None:
  booking = booked_session(hours_ahead=10 / 60)

  first = await services.maintenance.send_due_reminders()
  second = await services.maintenance.send_due_reminders()

  assert (first.fifteen_minute, first.five_minute) == (1, 0)
  assert second.total == 0
  events = publisher.named("session.reminder")
  assert sorted(event.payload["recipientId"] for event in events) == ["student-1", "tutor-1"]
  assert {event.payload["reminder"] for event in events} == {"15m"}
  assert store.bookings[booking.booking_id].reminder_15m_sent is True


@pytest.mark.anyio
async def test_five_minute_reminder_follows_later(services, booked_session, store, clock, publisher) -> None:
  booking = booked_session(hours_ahead=10 / 60)
  await services.maintenance.send_due_reminders()

  clock.advance(minutes=6)
  result = await services.maintenance.send_due_reminders()

  assert (result.fifteen_minute, result.five_minute) == (0, 1)
  assert store.bookings[booking.booking_id].reminder_5m_sent is True
  assert [event.payload["reminder"] for event in publisher.named("session.reminder")] == ["15m", "15m", "5m", "5m"]


@pytest.mark.anyio
async def test_reminders_skip_cancelled_and_distant_bookings(services, booked_session) -> None:
  cancelled = booked_session(hours_ahead=10 / 60)
  booked_session(hours_ahead=2)
  await services.bookings.cancel_booking(cancelled.booking_id, actor_id="student-1")

  result = await services.maintenance.send_due_reminders()
  assert result.total == 0


@pytest.mark.anyio
async def test_sweep_cache_evicts_expired_entries(services, repositories, publisher, clock) -> None:
  ticks = [0.0]
  cache = TTLCache(default_ttl_seconds=30, clock=lambda: ticks[0])
  maintenance = MaintenanceService(bookings=repositories.bookings, penalty_store=repositories.penalties, penalties=services.penalties, publisher=publisher, cache=cache, clock=clock)
  await cache.set("fresh", b"1", ttl_seconds=60)
  await cache.set("stale", b"2", ttl_seconds=10)

  ticks[0] = 11.0
  assert await maintenance.sweep_cache() == 1
  assert await cache.get("fresh") == b"1"
  assert await cache.get("stale") is None
