"""Factory helpers wiring repositories, publisher and cache into the scheduling services."""

from __future__ import annotations

from dataclasses import dataclass

from tutorslots.config import Settings
from tutorslots.core.ttl_cache import CacheBackend
from tutorslots.notifications.contracts import EventPublisher
from tutorslots.notifications.publisher import LoggingEventPublisher, NullEventPublisher
from tutorslots.scheduling.time_rules import Clock, utc_now
from tutorslots.services.attendance import AttendanceService
from tutorslots.services.bookings import BookingService
from tutorslots.services.compliance import ComplianceService
from tutorslots.services.maintenance import MaintenanceService
from tutorslots.services.penalties import PenaltyService
from tutorslots.services.slots import SlotService
from tutorslots.storage.postgres_bookings_repo import PostgresBookingRepository
from tutorslots.storage.postgres_penalties_repo import PostgresPenaltyRepository
from tutorslots.storage.postgres_slots_repo import PostgresSlotRepository
from tutorslots.storage.postgres_templates_repo import PostgresTemplateRepository
from tutorslots.storage.scheduling_repo import BookingRepository, PenaltyRepository, SlotRepository, TemplateRepository


@dataclass(frozen=True)
class SchedulingRepositories:
  slots: SlotRepository
  templates: TemplateRepository
  bookings: BookingRepository
  penalties: PenaltyRepository


@dataclass(frozen=True)
class SchedulingServices:
  slots: SlotService
  bookings: BookingService
  attendance: AttendanceService
  penalties: PenaltyService
  compliance: ComplianceService
  maintenance: MaintenanceService


def build_postgres_repositories() -> SchedulingRepositories:
  """Construct Postgres repositories; raises when the database is not configured."""
  return SchedulingRepositories(slots=PostgresSlotRepository(), templates=PostgresTemplateRepository(), bookings=PostgresBookingRepository(), penalties=PostgresPenaltyRepository())


def build_event_publisher(settings: Settings) -> EventPublisher:
  if settings.events_enabled:
    return LoggingEventPublisher()
  return NullEventPublisher()


def build_scheduling_services(settings: Settings, *, repositories: SchedulingRepositories, cache: CacheBackend | None, publisher: EventPublisher | None = None, clock: Clock = utc_now) -> SchedulingServices:
  """Assemble the service graph; one instance is shared by all requests of a process."""
  effective_publisher = publisher or build_event_publisher(settings)
  compliance = ComplianceService(penalties=repositories.penalties, schedule_timezone=settings.schedule_timezone, clock=clock)
  penalties = PenaltyService(penalties=repositories.penalties, bookings=repositories.bookings, slots=repositories.slots, publisher=effective_publisher, clock=clock)
  slots = SlotService(
    slots=repositories.slots,
    templates=repositories.templates,
    bookings=repositories.bookings,
    penalties=penalties,
    compliance=compliance,
    cache=cache,
    schedule_timezone=settings.schedule_timezone,
    clock=clock,
  )
  bookings = BookingService(
    slots=repositories.slots,
    bookings=repositories.bookings,
    compliance=compliance,
    publisher=effective_publisher,
    cache=cache,
    cache_ttl_seconds=settings.available_slots_cache_ttl_seconds,
    schedule_timezone=settings.schedule_timezone,
    clock=clock,
  )
  attendance = AttendanceService(slots=repositories.slots, bookings=repositories.bookings, penalties=penalties, clock=clock)
  maintenance = MaintenanceService(bookings=repositories.bookings, penalty_store=repositories.penalties, penalties=penalties, publisher=effective_publisher, cache=cache, clock=clock)
  return SchedulingServices(slots=slots, bookings=bookings, attendance=attendance, penalties=penalties, compliance=compliance, maintenance=maintenance)
