"""Penalty code catalogue and the circumstance-to-code decision function.

The code set is closed: adding a code is a data-model change (new enum member, new
catalogue entry, and a migration widening the `penalty_records.code` check constraint).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass


class PenaltyCode(enum.StrEnum):
  TA_BOOKED = "301"
  TA_UNBOOKED = "302"
  TA_SHORT_NOTICE = "303"
  SUBSTITUTION = "401"
  SYSTEM_ISSUE = "501"
  STUDENT_ABSENT = "502"
  PENALTY_BLOCK = "601"


class Severity(enum.StrEnum):
  LOW = "low"
  MEDIUM = "medium"
  HIGH = "high"
  CRITICAL = "critical"


@dataclass(frozen=True)
class PenaltyCodeInfo:
  """Fixed metadata attached to every record carrying a code."""

  code: PenaltyCode
  label: str
  description: str
  severity: Severity
  affects_compensation: bool


PENALTY_CODE_DETAILS: dict[PenaltyCode, PenaltyCodeInfo] = {
  PenaltyCode.TA_BOOKED: PenaltyCodeInfo(
    code=PenaltyCode.TA_BOOKED,
    label="TA-301",
    description="Tutor failed to attend a booked lesson slot.",
    severity=Severity.CRITICAL,
    affects_compensation=True,
  ),
  PenaltyCode.TA_UNBOOKED: PenaltyCodeInfo(
    code=PenaltyCode.TA_UNBOOKED,
    label="TA-302",
    description="Tutor failed to attend an unbooked (open) lesson slot.",
    severity=Severity.HIGH,
    affects_compensation=True,
  ),
  PenaltyCode.TA_SHORT_NOTICE: PenaltyCodeInfo(
    code=PenaltyCode.TA_SHORT_NOTICE,
    label="TA-303",
    description="Open slot closed within 48 hours of lesson time.",
    severity=Severity.MEDIUM,
    affects_compensation=False,
  ),
  PenaltyCode.SUBSTITUTION: PenaltyCodeInfo(
    code=PenaltyCode.SUBSTITUTION,
    label="SUB-401",
    description="Slot temporarily closed for potential substitution.",
    severity=Severity.LOW,
    affects_compensation=False,
  ),
  PenaltyCode.SYSTEM_ISSUE: PenaltyCodeInfo(
    code=PenaltyCode.SYSTEM_ISSUE,
    label="SYS-501",
    description="Lesson not conducted due to system or student-side issues. Tutor is compensated.",
    severity=Severity.LOW,
    affects_compensation=False,
  ),
  PenaltyCode.STUDENT_ABSENT: PenaltyCodeInfo(
    code=PenaltyCode.STUDENT_ABSENT,
    label="STU-502",
    description="Student failed to attend the booked lesson. Tutor is compensated.",
    severity=Severity.LOW,
    affects_compensation=False,
  ),
  PenaltyCode.PENALTY_BLOCK: PenaltyCodeInfo(
    code=PenaltyCode.PENALTY_BLOCK,
    label="BLK-601",
    description="Temporary block due to repeated absences (3+ TA-301 codes in 30 days).",
    severity=Severity.CRITICAL,
    affects_compensation=True,
  ),
}

SHORT_NOTICE_HOURS = 48
TA_BOOKED_THRESHOLD = 3
PENALTY_WINDOW_DAYS = 30
BLOCK_DURATION_DAYS = 7
RECENT_PENALTY_LIMIT = 10

# Codes broken out individually in compliance summaries.
SUMMARY_CODES: tuple[PenaltyCode, ...] = (PenaltyCode.TA_BOOKED, PenaltyCode.TA_UNBOOKED, PenaltyCode.TA_SHORT_NOTICE)


def penalty_info(code: PenaltyCode | str) -> PenaltyCodeInfo:
  """Return catalogue metadata, raising ValueError for codes outside the closed set."""
  return PENALTY_CODE_DETAILS[PenaltyCode(code)]


def determine_penalty_code(
  *,
  was_booked: bool,
  tutor_present: bool,
  cancellation_notice_hours: float | None = None,
  student_present: bool | None = None,
  system_issue: bool = False,
  is_substitution: bool = False,
) -> PenaltyCode | None:
  """Map slot circumstances to a penalty code.

  Rules are evaluated in priority order and the first match wins, so a substitution
  always masks a tutor absence and a confirmed student no-show masks nothing below it.
  `student_present=None` means "not recorded" and never counts as a no-show.
  """
  if is_substitution:
    return PenaltyCode.SUBSTITUTION

  if system_issue or (was_booked and student_present is False and tutor_present):
    if student_present is False:
      return PenaltyCode.STUDENT_ABSENT
    return PenaltyCode.SYSTEM_ISSUE

  if not tutor_present:
    return PenaltyCode.TA_BOOKED if was_booked else PenaltyCode.TA_UNBOOKED

  if not was_booked and cancellation_notice_hours is not None and cancellation_notice_hours < SHORT_NOTICE_HOURS:
    return PenaltyCode.TA_SHORT_NOTICE

  return None
