"""Postgres-backed penalty ledger and tutor compliance flags."""

from __future__ import annotations

import datetime
from collections.abc import Sequence

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tutorslots.core.database import get_session_factory
from tutorslots.scheduling.models import AppealStatus, PenaltyRecord, TutorComplianceRecord
from tutorslots.scheduling.penalty_codes import PenaltyCode
from tutorslots.schema.scheduling import Booking, PenaltyRecordRow, TutorCompliance
from tutorslots.storage.row_mapping import compliance_from_row, penalty_from_row, penalty_values
from tutorslots.storage.scheduling_repo import PenaltyRepository


class PostgresPenaltyRepository(PenaltyRepository):
  def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
    self._session_factory = session_factory or get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def _insert_penalty(self, session: AsyncSession, record: PenaltyRecord) -> bool:
    stmt = insert(PenaltyRecordRow).values(penalty_values(record)).on_conflict_do_nothing(index_elements=[PenaltyRecordRow.penalty_id]).returning(PenaltyRecordRow.penalty_id)
    return (await session.execute(stmt)).scalar_one_or_none() is not None

  async def record_penalty(self, record: PenaltyRecord) -> bool:
    async with self._session_factory() as session, session.begin():
      inserted = await self._insert_penalty(session, record)
      if inserted and record.booking_id is not None:
        stmt = update(Booking).where(Booking.booking_id == record.booking_id).values(penalty_code=str(record.code), penalty_reason=record.reason, penalty_timestamp=record.created_at).execution_options(synchronize_session=False)
        await session.execute(stmt)
    return inserted

  async def get_penalty(self, penalty_id: str) -> PenaltyRecord | None:
    async with self._session_factory() as session:
      row = await session.get(PenaltyRecordRow, penalty_id)
      return penalty_from_row(row) if row is not None else None

  async def count_penalties(self, *, tutor_id: str, codes: Sequence[PenaltyCode], since: datetime.datetime) -> dict[PenaltyCode, int]:
    counts = {code: 0 for code in codes}
    async with self._session_factory() as session:
      stmt = (
        select(PenaltyRecordRow.code, func.count())
        .where(PenaltyRecordRow.tutor_id == tutor_id, PenaltyRecordRow.code.in_([str(code) for code in codes]), PenaltyRecordRow.created_at >= since)
        .group_by(PenaltyRecordRow.code)
      )
      for code, count in (await session.execute(stmt)).all():
        counts[PenaltyCode(code)] = int(count)
    return counts

  async def list_recent_penalties(self, *, tutor_id: str, limit: int) -> list[PenaltyRecord]:
    async with self._session_factory() as session:
      stmt = select(PenaltyRecordRow).where(PenaltyRecordRow.tutor_id == tutor_id).order_by(PenaltyRecordRow.created_at.desc()).limit(limit)
      rows = (await session.execute(stmt)).scalars().all()
      return [penalty_from_row(row) for row in rows]

  async def set_appeal_status(self, penalty_id: str, *, status: AppealStatus, resolved_at: datetime.datetime | None) -> PenaltyRecord | None:
    async with self._session_factory() as session, session.begin():
      stmt = update(PenaltyRecordRow).where(PenaltyRecordRow.penalty_id == penalty_id).values(appeal_status=status, resolved_at=resolved_at).returning(PenaltyRecordRow).execution_options(synchronize_session=False)
      row = (await session.execute(stmt)).scalar_one_or_none()
      return penalty_from_row(row) if row is not None else None

  async def get_compliance(self, tutor_id: str) -> TutorComplianceRecord:
    async with self._session_factory() as session:
      row = await session.get(TutorCompliance, tutor_id)
      return compliance_from_row(row) if row is not None else TutorComplianceRecord(tutor_id=tutor_id)

  async def apply_auto_block(self, record: PenaltyRecord, *, expires_at: datetime.datetime) -> None:
    async with self._session_factory() as session, session.begin():
      await self._insert_penalty(session, record)
      # Last writer wins on the expiry.
      upsert = insert(TutorCompliance).values(tutor_id=record.tutor_id, is_blocked=True, block_expires_at=expires_at, updated_at=record.created_at)
      upsert = upsert.on_conflict_do_update(index_elements=[TutorCompliance.tutor_id], set_={"is_blocked": True, "block_expires_at": expires_at, "updated_at": record.created_at})
      await session.execute(upsert)

  async def release_expired_blocks(self, *, now: datetime.datetime) -> list[str]:
    async with self._session_factory() as session, session.begin():
      stmt = (
        update(TutorCompliance)
        .where(TutorCompliance.is_blocked.is_(True), TutorCompliance.block_expires_at.is_not(None), TutorCompliance.block_expires_at <= now)
        .values(is_blocked=False, block_expires_at=None, updated_at=now)
        .returning(TutorCompliance.tutor_id)
        .execution_options(synchronize_session=False)
      )
      return list((await session.execute(stmt)).scalars().all())
