import asyncio
import logging
import time
from logging.config import fileConfig

from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

import tutorslots.schema  # noqa: F401
from alembic import context
from tutorslots.core.database import DATABASE_URL, Base
from tutorslots.core.migrations import build_migration_context_options

config = context.config
if config.config_file_name is not None:
  fileConfig(config.config_file_name)

logger = logging.getLogger("tutorslots.migrations")


class _RevisionTimer:
  """Logs each applied revision with the time elapsed since the previous one finished."""

  def __init__(self) -> None:
    self.mark = time.perf_counter()

  def __call__(self, *, ctx: object, step: object, heads: set[str], run_args: dict[str, object]) -> None:
    now = time.perf_counter()
    direction = "upgrade" if getattr(step, "is_upgrade", True) else "downgrade"
    revision = getattr(step, "up_revision_id", None) or "?"
    logger.info("%s %s took %.2fs", direction, revision, now - self.mark)
    self.mark = now


def _require_url() -> str:
  if DATABASE_URL is None:
    raise RuntimeError("Set TUTORSLOTS_PG_DSN (or DATABASE_URL) before running scheduling migrations.")
  return DATABASE_URL


def _configure(**kwargs: object) -> None:
  context.configure(on_version_apply=_RevisionTimer(), **build_migration_context_options(target_metadata=Base.metadata), **kwargs)


def run_migrations_offline() -> None:
  """Render the scheduling DDL as SQL without a live connection."""
  _configure(url=_require_url(), literal_binds=True, dialect_opts={"paramstyle": "named"})
  with context.begin_transaction():
    context.run_migrations()


def _run_on_connection(connection: Connection) -> None:
  _configure(connection=connection)
  migration_context = context.get_context()
  logger.info("Migrating scheduling schema from %s", migration_context.get_current_revision() or "base")
  with context.begin_transaction():
    context.run_migrations()
  logger.info("Scheduling schema now at %s", ", ".join(migration_context.get_current_heads()) or "base")


async def run_migrations_online() -> None:
  section = config.get_section(config.config_ini_section) or {}
  section["sqlalchemy.url"] = _require_url()
  engine = async_engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)
  try:
    async with engine.connect() as connection:
      await connection.run_sync(_run_on_connection)
  finally:
    await engine.dispose()


if context.is_offline_mode():
  run_migrations_offline()
else:
  asyncio.run(run_migrations_online())
