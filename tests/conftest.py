"""Shared fixtures: an in-memory store honoring the repository contracts, a settable clock and a recording publisher."""

from __future__ import annotations

import os

os.environ.setdefault("TUTORSLOTS_ALLOWED_ORIGINS", "http://localhost:3000")
os.environ.setdefault("TUTORSLOTS_TASK_SECRET", "test-task-secret")

import asyncio  # noqa: E402
import datetime  # noqa: E402
from collections.abc import Sequence  # noqa: E402
from dataclasses import dataclass, field  # noqa: E402

import msgspec  # noqa: E402
import pytest  # noqa: E402

from tutorslots.config import Settings  # noqa: E402
from tutorslots.core.ttl_cache import TTLCache  # noqa: E402
from tutorslots.notifications.contracts import DomainEvent  # noqa: E402
from tutorslots.scheduling.models import (  # noqa: E402
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
from tutorslots.scheduling.penalty_codes import PenaltyCode  # noqa: E402
from tutorslots.services.factory import SchedulingRepositories, SchedulingServices, build_scheduling_services  # noqa: E402

replace = msgspec.structs.replace

# Monday 2026-03-02 10:00 UTC.
BASE_NOW = datetime.datetime(2026, 3, 2, 10, 0, tzinfo=datetime.UTC)


class MutableClock:
  def __init__(self, now: datetime.datetime = BASE_NOW) -> None:
    self.now = now

  def __call__(self) -> datetime.datetime:
    return self.now

  def advance(self, **kwargs: float) -> datetime.datetime:
    self.now = self.now + datetime.timedelta(**kwargs)
    return self.now


@dataclass
class InMemoryStore:
  slots: dict[str, TimeSlotRecord] = field(default_factory=dict)
  templates: dict[str, list[WeeklyTemplateEntry]] = field(default_factory=dict)
  bookings: dict[str, BookingRecord] = field(default_factory=dict)
  penalties: dict[str, PenaltyRecord] = field(default_factory=dict)
  compliance: dict[str, TutorComplianceRecord] = field(default_factory=dict)
  lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class InMemorySlotRepository:
  def __init__(self, store: InMemoryStore) -> None:
    self.store = store

  async def get_slot(self, slot_id: str) -> TimeSlotRecord | None:
    return self.store.slots.get(slot_id)

  async def find_slot(self, *, tutor_id: str, slot_date: datetime.date, slot_time: datetime.time) -> TimeSlotRecord | None:
    for slot in self.store.slots.values():
      if (slot.tutor_id, slot.slot_date, slot.slot_time) == (tutor_id, slot_date, slot_time):
        return slot
    return None

  async def insert_slots(self, records: Sequence[TimeSlotRecord]) -> list[TimeSlotRecord]:
    inserted: list[TimeSlotRecord] = []
    async with self.store.lock:
      for record in records:
        if await self.find_slot(tutor_id=record.tutor_id, slot_date=record.slot_date, slot_time=record.slot_time) is not None:
          continue
        self.store.slots[record.slot_id] = record
        inserted.append(record)
    return inserted

  async def transition_slot(self, slot_id: str, *, from_statuses: Sequence[SlotStatus], to_status: SlotStatus, now: datetime.datetime) -> TimeSlotRecord | None:
    async with self.store.lock:
      slot = self.store.slots.get(slot_id)
      if slot is None or slot.status not in from_statuses:
        return None
      updated = replace(slot, status=to_status, updated_at=now)
      self.store.slots[slot_id] = updated
      return updated

  async def mark_slot_attendance(self, slot_id: str, *, mark: AttendanceMark, now: datetime.datetime) -> bool:
    async with self.store.lock:
      slot = self.store.slots.get(slot_id)
      if slot is None or slot.status != "open" or slot.attendance_mark == mark:
        return False
      self.store.slots[slot_id] = replace(slot, attendance_mark=mark, updated_at=now)
      return True

  async def delete_slot(self, slot_id: str, *, from_statuses: Sequence[SlotStatus]) -> bool:
    async with self.store.lock:
      slot = self.store.slots.get(slot_id)
      if slot is None or slot.status not in from_statuses:
        return False
      del self.store.slots[slot_id]
      return True

  async def list_slots(self, *, tutor_id: str, start_date: datetime.date, end_date: datetime.date, statuses: Sequence[SlotStatus] | None = None) -> list[TimeSlotRecord]:
    matches = [
      slot
      for slot in self.store.slots.values()
      if slot.tutor_id == tutor_id and start_date <= slot.slot_date <= end_date and (statuses is None or slot.status in statuses)
    ]
    return sorted(matches, key=lambda slot: slot.starts_at)


class InMemoryTemplateRepository:
  def __init__(self, store: InMemoryStore) -> None:
    self.store = store

  async def replace_template(self, tutor_id: str, entries: Sequence[WeeklyTemplateEntry]) -> None:
    self.store.templates[tutor_id] = list(entries)

  async def list_template(self, tutor_id: str, *, active_only: bool = True) -> list[WeeklyTemplateEntry]:
    entries = [entry for entry in self.store.templates.get(tutor_id, []) if entry.is_active or not active_only]
    return sorted(entries, key=lambda entry: (entry.day_of_week, entry.slot_time))


class InMemoryBookingRepository:
  def __init__(self, store: InMemoryStore) -> None:
    self.store = store

  def _live_for_slot(self, slot_id: str) -> BookingRecord | None:
    for booking in self.store.bookings.values():
      if booking.slot_id == slot_id and booking.status != "cancelled":
        return booking
    return None

  async def book_slot(self, booking: BookingRecord, *, now: datetime.datetime) -> bool:
    # Yield first so concurrent callers pile up on the lock like racing transactions.
    await asyncio.sleep(0)
    async with self.store.lock:
      slot = self.store.slots.get(booking.slot_id)
      if slot is None or slot.status != "open" or self._live_for_slot(booking.slot_id) is not None:
        return False
      self.store.slots[slot.slot_id] = replace(slot, status="booked", updated_at=now)
      self.store.bookings[booking.booking_id] = booking
      return True

  async def get_booking(self, booking_id: str) -> BookingRecord | None:
    return self.store.bookings.get(booking_id)

  async def find_live_booking_for_slot(self, slot_id: str) -> BookingRecord | None:
    return self._live_for_slot(slot_id)

  async def list_live_bookings_for_slots(self, slot_ids: Sequence[str]) -> list[BookingRecord]:
    wanted = set(slot_ids)
    return [booking for booking in self.store.bookings.values() if booking.slot_id in wanted and booking.status != "cancelled"]

  async def student_has_booking_at(self, *, student_id: str, slot_datetime: datetime.datetime) -> bool:
    return any(booking.student_id == student_id and booking.slot_datetime == slot_datetime and booking.status == "confirmed" for booking in self.store.bookings.values())

  async def list_student_bookings(self, student_id: str, *, statuses: Sequence[BookingStatus]) -> list[BookingRecord]:
    matches = [booking for booking in self.store.bookings.values() if booking.student_id == student_id and booking.status in statuses]
    return sorted(matches, key=lambda booking: booking.slot_datetime, reverse=True)

  async def cancel_booking(self, booking_id: str, *, cancelled_by: str, reason: str | None, now: datetime.datetime) -> BookingRecord | None:
    async with self.store.lock:
      booking = self.store.bookings.get(booking_id)
      if booking is None or booking.status != "confirmed":
        return None
      updated = replace(booking, status="cancelled", cancelled_at=now, cancelled_by=cancelled_by, cancel_reason=reason)
      self.store.bookings[booking_id] = updated
      slot = self.store.slots.get(booking.slot_id)
      if slot is not None and slot.status == "booked":
        self.store.slots[slot.slot_id] = replace(slot, status="open", updated_at=now)
      return updated

  async def resolve_booking(self, booking_id: str, *, status: BookingStatus, now: datetime.datetime) -> BookingRecord | None:
    async with self.store.lock:
      booking = self.store.bookings.get(booking_id)
      if booking is None or booking.status != "confirmed":
        return None
      updated = replace(booking, status=status, completed_at=now)
      self.store.bookings[booking_id] = updated
      slot = self.store.slots.get(booking.slot_id)
      if slot is not None and slot.status == "booked":
        self.store.slots[slot.slot_id] = replace(slot, status="completed", updated_at=now)
      return updated

  async def mark_booking_attendance(self, booking_id: str, *, role: AttendanceRole, mark: AttendanceMark) -> BookingRecord | None:
    async with self.store.lock:
      booking = self.store.bookings.get(booking_id)
      if booking is None or booking.status == "cancelled" or booking.attendance_for(role) == mark:
        return None
      updated = replace(booking, attendance_tutor=mark) if role == "tutor" else replace(booking, attendance_student=mark)
      self.store.bookings[booking_id] = updated
      return updated

  async def list_due_reminders(self, *, kind: ReminderKind, window_start: datetime.datetime, window_end: datetime.datetime) -> list[BookingRecord]:
    flag = "reminder_15m_sent" if kind == "15m" else "reminder_5m_sent"
    matches = [
      booking
      for booking in self.store.bookings.values()
      if booking.status == "confirmed" and window_start < booking.slot_datetime <= window_end and not getattr(booking, flag)
    ]
    return sorted(matches, key=lambda booking: booking.slot_datetime)

  async def claim_reminder(self, booking_id: str, *, kind: ReminderKind) -> bool:
    flag = "reminder_15m_sent" if kind == "15m" else "reminder_5m_sent"
    async with self.store.lock:
      booking = self.store.bookings.get(booking_id)
      if booking is None or booking.status != "confirmed" or getattr(booking, flag):
        return False
      self.store.bookings[booking_id] = replace(booking, **{flag: True})
      return True


class InMemoryPenaltyRepository:
  def __init__(self, store: InMemoryStore) -> None:
    self.store = store
    self.writes = 0

  async def record_penalty(self, record: PenaltyRecord) -> bool:
    async with self.store.lock:
      if record.penalty_id in self.store.penalties:
        return False
      self.writes += 1
      self.store.penalties[record.penalty_id] = record
      booking = self.store.bookings.get(record.booking_id) if record.booking_id else None
      if booking is not None:
        self.store.bookings[booking.booking_id] = replace(booking, penalty_code=record.code, penalty_reason=record.reason, penalty_timestamp=record.created_at)
      return True

  async def get_penalty(self, penalty_id: str) -> PenaltyRecord | None:
    return self.store.penalties.get(penalty_id)

  async def count_penalties(self, *, tutor_id: str, codes: Sequence[PenaltyCode], since: datetime.datetime) -> dict[PenaltyCode, int]:
    counts = {PenaltyCode(code): 0 for code in codes}
    for record in self.store.penalties.values():
      if record.tutor_id == tutor_id and record.code in counts and record.created_at >= since:
        counts[record.code] += 1
    return counts

  async def list_recent_penalties(self, *, tutor_id: str, limit: int) -> list[PenaltyRecord]:
    records = [record for record in self.store.penalties.values() if record.tutor_id == tutor_id]
    return sorted(records, key=lambda record: record.created_at, reverse=True)[:limit]

  async def set_appeal_status(self, penalty_id: str, *, status: AppealStatus, resolved_at: datetime.datetime | None) -> PenaltyRecord | None:
    record = self.store.penalties.get(penalty_id)
    if record is None:
      return None
    updated = replace(record, appeal_status=status, resolved_at=resolved_at)
    self.store.penalties[penalty_id] = updated
    return updated

  async def get_compliance(self, tutor_id: str) -> TutorComplianceRecord:
    return self.store.compliance.get(tutor_id) or TutorComplianceRecord(tutor_id=tutor_id)

  async def apply_auto_block(self, record: PenaltyRecord, *, expires_at: datetime.datetime) -> None:
    async with self.store.lock:
      self.writes += 1
      self.store.penalties.setdefault(record.penalty_id, record)
      self.store.compliance[record.tutor_id] = TutorComplianceRecord(tutor_id=record.tutor_id, is_blocked=True, block_expires_at=expires_at)

  async def release_expired_blocks(self, *, now: datetime.datetime) -> list[str]:
    released: list[str] = []
    async with self.store.lock:
      for tutor_id, compliance in list(self.store.compliance.items()):
        if compliance.is_blocked and compliance.block_expires_at is not None and compliance.block_expires_at <= now:
          self.writes += 1
          self.store.compliance[tutor_id] = TutorComplianceRecord(tutor_id=tutor_id)
          released.append(tutor_id)
    return released


class FlakyPenaltyRepository(InMemoryPenaltyRepository):
  """Fails the next `failures` ledger writes and the next `block_failures` block writes with a non-retryable error."""

  def __init__(self, store: InMemoryStore, failures: int = 0, block_failures: int = 0) -> None:
    super().__init__(store)
    self.failures = failures
    self.block_failures = block_failures

  async def record_penalty(self, record: PenaltyRecord) -> bool:
    if self.failures > 0:
      self.failures -= 1
      raise RuntimeError("ledger unavailable")
    return await super().record_penalty(record)

  async def apply_auto_block(self, block: PenaltyRecord, *, expires_at: datetime.datetime) -> None:
    if self.block_failures > 0:
      self.block_failures -= 1
      raise RuntimeError("compliance store unavailable")
    await super().apply_auto_block(block, expires_at=expires_at)


class RecordingPublisher:
  def __init__(self) -> None:
    self.events: list[DomainEvent] = []

  async def publish(self, event: DomainEvent) -> None:
    self.events.append(event)

  def named(self, name: str) -> list[DomainEvent]:
    return [event for event in self.events if event.name == name]


def build_test_settings(**overrides: object) -> Settings:
  values: dict[str, object] = {
    "environment": "test",
    "allowed_origins": ("http://localhost:3000",),
    "debug": False,
    "log_max_bytes": 1024 * 1024,
    "log_backup_count": 1,
    "log_http_4xx": False,
    "pg_dsn": None,
    "pg_connect_timeout": 5,
    "schedule_timezone": "UTC",
    "task_secret": "test-task-secret",
    "local_sweeps_enabled": False,
    "unblock_sweep_interval_seconds": 3600,
    "reminder_sweep_interval_seconds": 60,
    "available_slots_cache_ttl_seconds": 30,
    "redis_url": None,
    "events_enabled": True,
  }
  values.update(overrides)
  return Settings(**values)  # type: ignore[arg-type]


def make_slot(*, tutor_id: str = "tutor-1", starts_at: datetime.datetime, status: SlotStatus = "open", slot_id: str | None = None) -> TimeSlotRecord:
  return TimeSlotRecord(
    slot_id=slot_id or f"slot-{starts_at:%Y%m%d%H%M}-{tutor_id}",
    tutor_id=tutor_id,
    slot_date=starts_at.date(),
    slot_time=starts_at.time().replace(tzinfo=None),
    starts_at=starts_at,
    duration_minutes=25,
    status=status,
    is_recurring=False,
    created_at=BASE_NOW,
    updated_at=BASE_NOW,
  )


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
def clock() -> MutableClock:
  return MutableClock()


@pytest.fixture
def store() -> InMemoryStore:
  return InMemoryStore()


@pytest.fixture
def penalty_repo(store: InMemoryStore) -> InMemoryPenaltyRepository:
  return InMemoryPenaltyRepository(store)


@pytest.fixture
def repositories(store: InMemoryStore, penalty_repo: InMemoryPenaltyRepository) -> SchedulingRepositories:
  return SchedulingRepositories(slots=InMemorySlotRepository(store), templates=InMemoryTemplateRepository(store), bookings=InMemoryBookingRepository(store), penalties=penalty_repo)


@pytest.fixture
def publisher() -> RecordingPublisher:
  return RecordingPublisher()


@pytest.fixture
def cache() -> TTLCache:
  return TTLCache(default_ttl_seconds=30)


@pytest.fixture
def services(repositories: SchedulingRepositories, cache: TTLCache, publisher: RecordingPublisher, clock: MutableClock) -> SchedulingServices:
  return build_scheduling_services(build_test_settings(), repositories=repositories, cache=cache, publisher=publisher, clock=clock)


@pytest.fixture
def seed_slot(store: InMemoryStore):
  def _seed(*, tutor_id: str = "tutor-1", starts_at: datetime.datetime, status: SlotStatus = "open", slot_id: str | None = None) -> TimeSlotRecord:
    slot = make_slot(tutor_id=tutor_id, starts_at=starts_at, status=status, slot_id=slot_id)
    store.slots[slot.slot_id] = slot
    return slot

  return _seed


@pytest.fixture
def settings() -> Settings:
  return build_test_settings()


@pytest.fixture
def flaky_penalty_repo(store: InMemoryStore) -> FlakyPenaltyRepository:
  return FlakyPenaltyRepository(store)


@pytest.fixture
def flaky_services(store: InMemoryStore, flaky_penalty_repo: FlakyPenaltyRepository, cache: TTLCache, publisher: RecordingPublisher, clock: MutableClock) -> SchedulingServices:
  repos = SchedulingRepositories(slots=InMemorySlotRepository(store), templates=InMemoryTemplateRepository(store), bookings=InMemoryBookingRepository(store), penalties=flaky_penalty_repo)
  return build_scheduling_services(build_test_settings(), repositories=repos, cache=cache, publisher=publisher, clock=clock)


@pytest.fixture
def booked_session(store: InMemoryStore, seed_slot, clock: MutableClock):
  """Seed a confirmed booking between tutor-1 and student-1 three hours from now."""

  def _book(*, tutor_id: str = "tutor-1", student_id: str = "student-1", hours_ahead: float = 3, booking_id: str | None = None) -> BookingRecord:
    slot = seed_slot(tutor_id=tutor_id, starts_at=clock.now + datetime.timedelta(hours=hours_ahead), status="booked")
    booking = BookingRecord(
      booking_id=booking_id or f"bk-{slot.slot_id}",
      slot_id=slot.slot_id,
      tutor_id=tutor_id,
      student_id=student_id,
      slot_datetime=slot.starts_at,
      duration_minutes=25,
      status="confirmed",
      booked_at=clock.now,
    )
    store.bookings[booking.booking_id] = booking
    return booking

  return _book
