import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlsplit, urlunsplit

from fastapi import FastAPI

from tutorslots.core.database import dispose_engine
from tutorslots.core.logging import initialize_logging
from tutorslots.core.ttl_cache import build_cache
from tutorslots.jobs.sweeper import build_sweeper
from tutorslots.scheduling.time_rules import utc_now
from tutorslots.services.factory import SchedulingRepositories, build_postgres_repositories, build_scheduling_services


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Own the process-wide cache, service graph and optional sweeper for the app's lifetime."""
  from tutorslots.config import get_settings

  settings = get_settings()
  clock = getattr(app.state, "clock", None) or utc_now
  publisher = getattr(app.state, "publisher", None)
  logger = logging.getLogger("tutorslots.core.lifespan")
  initialize_logging(settings)

  # Pre-seeded repositories, clock or publisher on app.state take precedence over the defaults.
  repositories: SchedulingRepositories | None = getattr(app.state, "repositories", None)
  owns_engine = repositories is None
  if repositories is None:
    if not settings.pg_dsn:
      logger.error("Database connection is not configured (TUTORSLOTS_PG_DSN is missing); refusing to start.")
      raise RuntimeError("TUTORSLOTS_PG_DSN must be set.")
    logger.info("Using Postgres store at %s", _redact_dsn(settings.pg_dsn))
    repositories = build_postgres_repositories()

  cache = build_cache(settings)
  services = build_scheduling_services(settings, repositories=repositories, cache=cache, publisher=publisher, clock=clock)
  app.state.cache = cache
  app.state.services = services

  sweeper = None
  if settings.local_sweeps_enabled:
    sweeper = build_sweeper(services.maintenance, unblock_interval_seconds=settings.unblock_sweep_interval_seconds, reminder_interval_seconds=settings.reminder_sweep_interval_seconds)
    sweeper.start()
  logger.info("Startup complete environment=%s local_sweeps=%s", settings.environment, settings.local_sweeps_enabled)

  try:
    yield
  finally:
    if sweeper is not None:
      await sweeper.stop()
    if services.penalties.pending_count:
      logger.error("Shutting down with %d unsettled penalty writes or escalations", services.penalties.pending_count)
    await cache.aclose()
    if owns_engine:
      await dispose_engine()
    logger.info("Shutdown complete")


def _redact_dsn(raw: str | None) -> str:
  """Loggable form of a DSN: the password and query string (which may hold one) are dropped."""
  if not raw:
    return "<unset>"
  parts = urlsplit(raw)
  if not parts.scheme or not parts.netloc:
    return "<invalid>"
  credentials, _, host = parts.netloc.rpartition("@")
  user = credentials.partition(":")[0]
  return urlunsplit(parts._replace(netloc=f"{user}@{host}" if user else host, query=""))
