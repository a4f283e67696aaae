"""Postgres-backed repository for bookings.

Every lifecycle change touches the booking and its slot inside one transaction, and
each side is guarded by a conditional `UPDATE` so a lost race changes nothing.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Sequence

from sqlalchemy import exists, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tutorslots.core.database import get_session_factory
from tutorslots.scheduling.models import AttendanceMark, AttendanceRole, BookingRecord, BookingStatus, ReminderKind
from tutorslots.schema.scheduling import Booking, TimeSlot
from tutorslots.storage.row_mapping import booking_from_row, booking_row
from tutorslots.storage.scheduling_repo import BookingRepository

logger = logging.getLogger(__name__)


def _reminder_column(kind: ReminderKind):  # type: ignore[no-untyped-def]
  return Booking.reminder_15m_sent if kind == "15m" else Booking.reminder_5m_sent


class PostgresBookingRepository(BookingRepository):
  def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
    self._session_factory = session_factory or get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def book_slot(self, booking: BookingRecord, *, now: datetime.datetime) -> bool:
    try:
      async with self._session_factory() as session, session.begin():
        claim = update(TimeSlot).where(TimeSlot.slot_id == booking.slot_id, TimeSlot.status == "open").values(status="booked", updated_at=now).execution_options(synchronize_session=False)
        result = await session.execute(claim)
        if result.rowcount != 1:
          return False
        session.add(booking_row(booking))
    except IntegrityError:
      # The partial unique index on live bookings rejected a concurrent winner's twin.
      logger.warning("Booking insert lost a race slot_id=%s booking_id=%s", booking.slot_id, booking.booking_id)
      return False
    return True

  async def get_booking(self, booking_id: str) -> BookingRecord | None:
    async with self._session_factory() as session:
      row = await session.get(Booking, booking_id)
      return booking_from_row(row) if row is not None else None

  async def find_live_booking_for_slot(self, slot_id: str) -> BookingRecord | None:
    async with self._session_factory() as session:
      stmt = select(Booking).where(Booking.slot_id == slot_id, Booking.status != "cancelled")
      row = (await session.execute(stmt)).scalar_one_or_none()
      return booking_from_row(row) if row is not None else None

  async def list_live_bookings_for_slots(self, slot_ids: Sequence[str]) -> list[BookingRecord]:
    if not slot_ids:
      return []
    async with self._session_factory() as session:
      stmt = select(Booking).where(Booking.slot_id.in_(tuple(slot_ids)), Booking.status != "cancelled")
      rows = (await session.execute(stmt)).scalars().all()
      return [booking_from_row(row) for row in rows]

  async def student_has_booking_at(self, *, student_id: str, slot_datetime: datetime.datetime) -> bool:
    async with self._session_factory() as session:
      stmt = select(exists().where(Booking.student_id == student_id, Booking.slot_datetime == slot_datetime, Booking.status == "confirmed"))
      return bool((await session.execute(stmt)).scalar())

  async def list_student_bookings(self, student_id: str, *, statuses: Sequence[BookingStatus]) -> list[BookingRecord]:
    async with self._session_factory() as session:
      stmt = select(Booking).where(Booking.student_id == student_id, Booking.status.in_(tuple(statuses))).order_by(Booking.slot_datetime.desc())
      rows = (await session.execute(stmt)).scalars().all()
      return [booking_from_row(row) for row in rows]

  async def cancel_booking(self, booking_id: str, *, cancelled_by: str, reason: str | None, now: datetime.datetime) -> BookingRecord | None:
    async with self._session_factory() as session, session.begin():
      stmt = (
        update(Booking)
        .where(Booking.booking_id == booking_id, Booking.status == "confirmed")
        .values(status="cancelled", cancelled_at=now, cancelled_by=cancelled_by, cancel_reason=reason)
        .returning(Booking)
        .execution_options(synchronize_session=False)
      )
      row = (await session.execute(stmt)).scalar_one_or_none()
      if row is None:
        return None
      await session.execute(update(TimeSlot).where(TimeSlot.slot_id == row.slot_id, TimeSlot.status == "booked").values(status="open", updated_at=now).execution_options(synchronize_session=False))
      return booking_from_row(row)

  async def resolve_booking(self, booking_id: str, *, status: BookingStatus, now: datetime.datetime) -> BookingRecord | None:
    async with self._session_factory() as session, session.begin():
      stmt = update(Booking).where(Booking.booking_id == booking_id, Booking.status == "confirmed").values(status=status, completed_at=now).returning(Booking).execution_options(synchronize_session=False)
      row = (await session.execute(stmt)).scalar_one_or_none()
      if row is None:
        return None
      await session.execute(update(TimeSlot).where(TimeSlot.slot_id == row.slot_id, TimeSlot.status == "booked").values(status="completed", updated_at=now).execution_options(synchronize_session=False))
      return booking_from_row(row)

  async def mark_booking_attendance(self, booking_id: str, *, role: AttendanceRole, mark: AttendanceMark) -> BookingRecord | None:
    column = Booking.attendance_tutor if role == "tutor" else Booking.attendance_student
    async with self._session_factory() as session, session.begin():
      stmt = (
        update(Booking)
        .where(Booking.booking_id == booking_id, Booking.status != "cancelled", column.is_distinct_from(mark))
        .values({column.key: mark})
        .returning(Booking)
        .execution_options(synchronize_session=False)
      )
      row = (await session.execute(stmt)).scalar_one_or_none()
      return booking_from_row(row) if row is not None else None

  async def list_due_reminders(self, *, kind: ReminderKind, window_start: datetime.datetime, window_end: datetime.datetime) -> list[BookingRecord]:
    flag = _reminder_column(kind)
    async with self._session_factory() as session:
      stmt = select(Booking).where(Booking.status == "confirmed", Booking.slot_datetime > window_start, Booking.slot_datetime <= window_end, flag.is_(False)).order_by(Booking.slot_datetime)
      rows = (await session.execute(stmt)).scalars().all()
      return [booking_from_row(row) for row in rows]

  async def claim_reminder(self, booking_id: str, *, kind: ReminderKind) -> bool:
    flag = _reminder_column(kind)
    async with self._session_factory() as session, session.begin():
      stmt = update(Booking).where(Booking.booking_id == booking_id, Booking.status == "confirmed", flag.is_(False)).values({flag.key: True}).execution_options(synchronize_session=False)
      result = await session.execute(stmt)
      return result.rowcount == 1
