"""Postgres-backed repository for tutor time slots using SQLAlchemy."""

from __future__ import annotations

import datetime
from collections.abc import Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tutorslots.core.database import get_session_factory
from tutorslots.scheduling.models import AttendanceMark, SlotStatus, TimeSlotRecord
from tutorslots.schema.scheduling import TimeSlot
from tutorslots.storage.row_mapping import slot_from_row, slot_values
from tutorslots.storage.scheduling_repo import SlotRepository


class PostgresSlotRepository(SlotRepository):
  """Persist slots to Postgres; status changes are conditional single-statement updates."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
    self._session_factory = session_factory or get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def get_slot(self, slot_id: str) -> TimeSlotRecord | None:
    async with self._session_factory() as session:
      row = await session.get(TimeSlot, slot_id)
      return slot_from_row(row) if row is not None else None

  async def find_slot(self, *, tutor_id: str, slot_date: datetime.date, slot_time: datetime.time) -> TimeSlotRecord | None:
    async with self._session_factory() as session:
      stmt = select(TimeSlot).where(TimeSlot.tutor_id == tutor_id, TimeSlot.slot_date == slot_date, TimeSlot.slot_time == slot_time)
      row = (await session.execute(stmt)).scalar_one_or_none()
      return slot_from_row(row) if row is not None else None

  async def insert_slots(self, records: Sequence[TimeSlotRecord]) -> list[TimeSlotRecord]:
    if not records:
      return []
    async with self._session_factory() as session, session.begin():
      stmt = insert(TimeSlot).values([slot_values(record) for record in records])
      # The unique (tutor, date, time) constraint arbitrates concurrent opens of the same position.
      stmt = stmt.on_conflict_do_nothing(index_elements=[TimeSlot.tutor_id, TimeSlot.slot_date, TimeSlot.slot_time]).returning(TimeSlot.slot_id)
      inserted = set((await session.execute(stmt)).scalars().all())
    return [record for record in records if record.slot_id in inserted]

  async def transition_slot(self, slot_id: str, *, from_statuses: Sequence[SlotStatus], to_status: SlotStatus, now: datetime.datetime) -> TimeSlotRecord | None:
    async with self._session_factory() as session, session.begin():
      stmt = update(TimeSlot).where(TimeSlot.slot_id == slot_id, TimeSlot.status.in_(tuple(from_statuses))).values(status=to_status, updated_at=now).returning(TimeSlot).execution_options(synchronize_session=False)
      row = (await session.execute(stmt)).scalar_one_or_none()
      return slot_from_row(row) if row is not None else None

  async def mark_slot_attendance(self, slot_id: str, *, mark: AttendanceMark, now: datetime.datetime) -> bool:
    async with self._session_factory() as session, session.begin():
      stmt = update(TimeSlot).where(TimeSlot.slot_id == slot_id, TimeSlot.status == "open", TimeSlot.attendance_mark.is_distinct_from(mark)).values(attendance_mark=mark, updated_at=now).execution_options(synchronize_session=False)
      result = await session.execute(stmt)
      return result.rowcount == 1

  async def delete_slot(self, slot_id: str, *, from_statuses: Sequence[SlotStatus]) -> bool:
    async with self._session_factory() as session, session.begin():
      stmt = delete(TimeSlot).where(TimeSlot.slot_id == slot_id, TimeSlot.status.in_(tuple(from_statuses))).execution_options(synchronize_session=False)
      result = await session.execute(stmt)
      return result.rowcount == 1

  async def list_slots(self, *, tutor_id: str, start_date: datetime.date, end_date: datetime.date, statuses: Sequence[SlotStatus] | None = None) -> list[TimeSlotRecord]:
    async with self._session_factory() as session:
      stmt = select(TimeSlot).where(TimeSlot.tutor_id == tutor_id, TimeSlot.slot_date >= start_date, TimeSlot.slot_date <= end_date)
      if statuses is not None:
        stmt = stmt.where(TimeSlot.status.in_(tuple(statuses)))
      rows = (await session.execute(stmt.order_by(TimeSlot.starts_at))).scalars().all()
      return [slot_from_row(row) for row in rows]
