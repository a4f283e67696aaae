"""Postgres-backed repository for weekly templates."""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tutorslots.core.database import get_session_factory
from tutorslots.scheduling.models import WeeklyTemplateEntry
from tutorslots.schema.scheduling import WeeklyTemplateEntryRow
from tutorslots.storage.row_mapping import template_from_row
from tutorslots.storage.scheduling_repo import TemplateRepository


class PostgresTemplateRepository(TemplateRepository):
  def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
    self._session_factory = session_factory or get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def replace_template(self, tutor_id: str, entries: Sequence[WeeklyTemplateEntry]) -> None:
    async with self._session_factory() as session, session.begin():
      await session.execute(delete(WeeklyTemplateEntryRow).where(WeeklyTemplateEntryRow.tutor_id == tutor_id))
      session.add_all(
        [
          WeeklyTemplateEntryRow(template_id=entry.template_id, tutor_id=tutor_id, day_of_week=entry.day_of_week, slot_time=entry.slot_time, is_active=entry.is_active, created_at=entry.created_at)
          for entry in entries
        ]
      )

  async def list_template(self, tutor_id: str, *, active_only: bool = True) -> list[WeeklyTemplateEntry]:
    async with self._session_factory() as session:
      stmt = select(WeeklyTemplateEntryRow).where(WeeklyTemplateEntryRow.tutor_id == tutor_id)
      if active_only:
        stmt = stmt.where(WeeklyTemplateEntryRow.is_active.is_(True))
      rows = (await session.execute(stmt.order_by(WeeklyTemplateEntryRow.day_of_week, WeeklyTemplateEntryRow.slot_time))).scalars().all()
      return [template_from_row(row) for row in rows]
