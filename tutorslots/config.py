"""Process settings for the scheduling service, read from TUTORSLOTS_* environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from tutorslots.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)


@dataclass(frozen=True)
class Settings:
  """Typed settings for the tutoring schedule service."""

  environment: str
  allowed_origins: tuple[str, ...]
  debug: bool
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  schedule_timezone: str
  task_secret: str | None
  local_sweeps_enabled: bool
  unblock_sweep_interval_seconds: int
  reminder_sweep_interval_seconds: int
  available_slots_cache_ttl_seconds: int
  redis_url: str | None
  events_enabled: bool


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    raise ValueError("TUTORSLOTS_ALLOWED_ORIGINS must be set to one or more origins.")

  origins = [item for item in (part.strip() for part in raw.split(",")) if item]

  if not origins:
    raise ValueError("TUTORSLOTS_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("TUTORSLOTS_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


_TRUTHY = frozenset({"1", "true", "yes", "on"})


def _parse_bool(raw: str | None) -> bool:
  return raw is not None and raw.strip().lower() in _TRUTHY


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _parse_timezone(raw: str | None) -> str:
  """Validate the IANA zone used to place local slot times on the timeline."""
  name = (raw or "UTC").strip() or "UTC"
  try:
    ZoneInfo(name)
  except (ZoneInfoNotFoundError, ValueError) as exc:
    raise ValueError(f"TUTORSLOTS_SCHEDULE_TIMEZONE is not a known time zone: {name}") from exc
  return name


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Parse and validate the full settings set; cached for the life of the process."""
  environment = os.getenv("TUTORSLOTS_ENV", "development").lower()

  # Toggle verbose error output and SQL echo in non-production environments.
  debug = _parse_bool(os.getenv("TUTORSLOTS_DEBUG"))

  log_max_bytes = _positive_int("TUTORSLOTS_LOG_MAX_BYTES", "5242880")  # 5MB default

  log_backup_count = int(os.getenv("TUTORSLOTS_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("TUTORSLOTS_LOG_BACKUP_COUNT must be zero or a positive integer.")

  # Client errors are only logged on request.
  log_http_4xx = _parse_bool(os.getenv("TUTORSLOTS_LOG_HTTP_4XX"))

  database = get_database_settings()

  return Settings(
    environment=environment,
    allowed_origins=_parse_origins(os.getenv("TUTORSLOTS_ALLOWED_ORIGINS")),
    debug=debug,
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=log_http_4xx,
    pg_dsn=database.pg_dsn,
    pg_connect_timeout=database.pg_connect_timeout,
    schedule_timezone=_parse_timezone(os.getenv("TUTORSLOTS_SCHEDULE_TIMEZONE")),
    task_secret=_optional_str(os.getenv("TUTORSLOTS_TASK_SECRET")),
    local_sweeps_enabled=_parse_bool(os.getenv("TUTORSLOTS_LOCAL_SWEEPS")),
    unblock_sweep_interval_seconds=_positive_int("TUTORSLOTS_UNBLOCK_SWEEP_INTERVAL_SECONDS", "3600"),
    reminder_sweep_interval_seconds=_positive_int("TUTORSLOTS_REMINDER_SWEEP_INTERVAL_SECONDS", "60"),
    available_slots_cache_ttl_seconds=_positive_int("TUTORSLOTS_AVAILABLE_SLOTS_CACHE_TTL_SECONDS", "30"),
    redis_url=_optional_str(os.getenv("TUTORSLOTS_REDIS_URL")),
    events_enabled=_parse_bool(os.getenv("TUTORSLOTS_EVENTS_ENABLED", "true")),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Database subset of the settings; alembic reads this without needing CORS or task secrets."""
  debug = _parse_bool(os.getenv("TUTORSLOTS_DEBUG"))
  pg_connect_timeout = _positive_int("TUTORSLOTS_PG_CONNECT_TIMEOUT", "5")

  # Hosting platforms commonly inject DATABASE_URL.
  pg_dsn = os.getenv("TUTORSLOTS_PG_DSN") or os.getenv("DATABASE_URL")

  return DatabaseSettings(debug=debug, pg_dsn=_optional_str(pg_dsn), pg_connect_timeout=pg_connect_timeout)


def _optional_str(raw: str | None) -> str | None:
  value = (raw or "").strip()
  return value or None
