"""Clock and lead-time rules shared by slot, booking and compliance services.

Slots are stored as a local calendar date plus a time of day. The configured schedule
time zone places that pair on the timeline; every comparison below happens between
timezone-aware UTC instants.
"""

from __future__ import annotations

import datetime
import re
from collections.abc import Callable, Iterator
from zoneinfo import ZoneInfo

from tutorslots.scheduling.errors import InvalidScheduleInputError

Clock = Callable[[], datetime.datetime]

OPEN_LEAD_TIME = datetime.timedelta(minutes=5)
BOOK_LEAD_TIME = datetime.timedelta(minutes=30)
SLOT_DURATION_MINUTES = 25
MAX_BULK_SLOTS = 100
# (reminder kind, window start, window end) as offsets from now; windows do not overlap.
REMINDER_WINDOWS: tuple[tuple[str, datetime.timedelta, datetime.timedelta], ...] = (
  ("15m", datetime.timedelta(minutes=5), datetime.timedelta(minutes=15)),
  ("5m", datetime.timedelta(0), datetime.timedelta(minutes=5)),
)

_TIME_PATTERN = re.compile(r"^(?P<hour>\d{1,2}):(?P<minute>\d{2})(?::\d{2})?\s*(?P<meridiem>[AaPp][Mm])?$")


def utc_now() -> datetime.datetime:
  """Return timezone-aware current UTC time."""
  return datetime.datetime.now(datetime.UTC)


def parse_slot_date(raw: str | datetime.date) -> datetime.date:
  """Parse an ISO calendar date (YYYY-MM-DD)."""
  if isinstance(raw, datetime.datetime):
    return raw.date()
  if isinstance(raw, datetime.date):
    return raw
  try:
    return datetime.date.fromisoformat(raw.strip())
  except ValueError as exc:
    raise InvalidScheduleInputError(f"Invalid date: {raw!r} (expected YYYY-MM-DD)", value=raw) from exc


def parse_slot_time(raw: str | datetime.time) -> datetime.time:
  """Parse a 24h `HH:MM` or 12h `h:MM AM/PM` time of day."""
  if isinstance(raw, datetime.time):
    return raw.replace(second=0, microsecond=0, tzinfo=None)
  match = _TIME_PATTERN.match(raw.strip())
  if match is None:
    raise InvalidScheduleInputError(f"Invalid time: {raw!r} (expected HH:MM or h:MM AM/PM)", value=raw)

  hour = int(match.group("hour"))
  minute = int(match.group("minute"))
  meridiem = match.group("meridiem")
  if meridiem is not None:
    if not 1 <= hour <= 12:
      raise InvalidScheduleInputError(f"Invalid 12-hour time: {raw!r}", value=raw)
    # 12 AM is midnight and 12 PM is noon.
    hour = hour % 12
    if meridiem.upper() == "PM":
      hour += 12
  if hour > 23 or minute > 59:
    raise InvalidScheduleInputError(f"Invalid time: {raw!r}", value=raw)
  return datetime.time(hour, minute)


def format_slot_time(value: datetime.time) -> str:
  return value.strftime("%H:%M")


def slot_instant(slot_date: datetime.date, slot_time: datetime.time, tz_name: str) -> datetime.datetime:
  """Place a local (date, time) pair on the UTC timeline."""
  local = datetime.datetime.combine(slot_date, slot_time, tzinfo=ZoneInfo(tz_name))
  return local.astimezone(datetime.UTC)


def meets_lead_time(instant: datetime.datetime, *, now: datetime.datetime, lead: datetime.timedelta) -> bool:
  """Return True when `instant` is at least `lead` after `now`."""
  return instant >= now + lead


def notice_hours(instant: datetime.datetime, *, now: datetime.datetime) -> float:
  return (instant - now).total_seconds() / 3600


def iter_dates(start: datetime.date, end: datetime.date) -> Iterator[datetime.date]:
  """Yield each calendar day from start to end inclusive."""
  if start > end:
    raise InvalidScheduleInputError("startDate must not be after endDate", start_date=start, end_date=end)
  current = start
  while current <= end:
    yield current
    current += datetime.timedelta(days=1)


def day_of_week(value: datetime.date) -> int:
  """Return the day index with 0=Sunday .. 6=Saturday."""
  return (value.weekday() + 1) % 7


def local_today(now: datetime.datetime, tz_name: str) -> datetime.date:
  return now.astimezone(ZoneInfo(tz_name)).date()


def week_bounds(now: datetime.datetime, tz_name: str, week_offset: int = 0) -> tuple[datetime.date, datetime.date]:
  """Return the Monday and Sunday of the week `week_offset` weeks from the current one."""
  today = local_today(now, tz_name)
  monday = today - datetime.timedelta(days=today.weekday()) + datetime.timedelta(weeks=week_offset)
  return monday, monday + datetime.timedelta(days=6)


def month_start(now: datetime.datetime, tz_name: str) -> datetime.datetime:
  """Return the first instant of the current calendar month in the schedule time zone."""
  first = local_today(now, tz_name).replace(day=1)
  return datetime.datetime.combine(first, datetime.time(0, 0), tzinfo=ZoneInfo(tz_name)).astimezone(datetime.UTC)
