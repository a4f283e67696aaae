"""Read-only compliance views over the penalty ledger."""

from __future__ import annotations

import datetime
import logging

from tutorslots.scheduling.errors import TutorBlockedError
from tutorslots.scheduling.models import CodeCounts, PenaltySummary
from tutorslots.scheduling.penalty_codes import PENALTY_WINDOW_DAYS, RECENT_PENALTY_LIMIT, SUMMARY_CODES, PenaltyCode
from tutorslots.scheduling.time_rules import Clock, month_start, utc_now
from tutorslots.storage.scheduling_repo import PenaltyRepository

logger = logging.getLogger(__name__)


def _code_counts(counts: dict[PenaltyCode, int]) -> CodeCounts:
  ta301 = counts.get(PenaltyCode.TA_BOOKED, 0)
  ta302 = counts.get(PenaltyCode.TA_UNBOOKED, 0)
  ta303 = counts.get(PenaltyCode.TA_SHORT_NOTICE, 0)
  return CodeCounts(ta301=ta301, ta302=ta302, ta303=ta303, total=ta301 + ta302 + ta303)


class ComplianceService:
  """Answers "may this tutor take sessions" and builds operator summaries."""

  def __init__(self, *, penalties: PenaltyRepository, schedule_timezone: str = "UTC", clock: Clock = utc_now) -> None:
    self._penalties = penalties
    self._timezone = schedule_timezone
    self._clock = clock

  async def is_blocked(self, tutor_id: str, *, now: datetime.datetime | None = None) -> bool:
    compliance = await self._penalties.get_compliance(tutor_id)
    return compliance.is_active_block(now or self._clock())

  async def ensure_not_blocked(self, tutor_id: str) -> None:
    compliance = await self._penalties.get_compliance(tutor_id)
    if compliance.is_active_block(self._clock()):
      logger.info("Rejected action for blocked tutor tutor_id=%s expires_at=%s", tutor_id, compliance.block_expires_at)
      raise TutorBlockedError("Tutor is temporarily blocked from new sessions", tutor_id=tutor_id, block_expires_at=compliance.block_expires_at)

  async def get_penalty_summary(self, tutor_id: str) -> PenaltySummary:
    """Month-to-date and trailing-window counts, block state and the newest ledger entries."""
    now = self._clock()
    this_month = await self._penalties.count_penalties(tutor_id=tutor_id, codes=SUMMARY_CODES, since=month_start(now, self._timezone))
    trailing = await self._penalties.count_penalties(tutor_id=tutor_id, codes=SUMMARY_CODES, since=now - datetime.timedelta(days=PENALTY_WINDOW_DAYS))
    compliance = await self._penalties.get_compliance(tutor_id)
    recent = await self._penalties.list_recent_penalties(tutor_id=tutor_id, limit=RECENT_PENALTY_LIMIT)
    active = compliance.is_active_block(now)
    return PenaltySummary(
      tutor_id=tutor_id,
      this_month=_code_counts(this_month),
      last_30_days=_code_counts(trailing),
      active_block=active,
      block_expires_at=compliance.block_expires_at if active else None,
      recent_penalties=recent,
    )
