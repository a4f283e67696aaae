from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from tutorslots.config import get_database_settings

_SYNC_SCHEMES = ("postgresql://", "postgres://", "postgresql+psycopg2://")


class Base(DeclarativeBase):
  pass


def async_dsn(dsn: str | None) -> str | None:
  """Point plain Postgres URLs at the asyncpg driver; other URLs pass through."""
  if not dsn:
    return None
  for scheme in _SYNC_SCHEMES:
    if dsn.startswith(scheme):
      return "postgresql+asyncpg://" + dsn[len(scheme) :]
  return dsn


DATABASE_URL = async_dsn(get_database_settings().pg_dsn)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_db_engine() -> AsyncEngine | None:
  global _engine
  if _engine is None:
    settings = get_database_settings()
    url = async_dsn(settings.pg_dsn)
    if url is None:
      return None
    _engine = create_async_engine(url, echo=settings.debug, pool_pre_ping=True, connect_args={"timeout": settings.pg_connect_timeout})
  return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession] | None:
  """Shared session factory for the Postgres repositories, or None when no DSN is configured."""
  global _session_factory
  if _session_factory is None:
    engine = get_db_engine()
    if engine is not None:
      _session_factory = async_sessionmaker(bind=engine, expire_on_commit=False)
  return _session_factory


async def dispose_engine() -> None:
  global _engine, _session_factory
  if _engine is not None:
    await _engine.dispose()
  _engine = None
  _session_factory = None
