"""Retry wrapper for idempotent writes, classifying failures by Postgres SQLSTATE."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSIENT_SQLSTATES = {"40001": "serialization_conflict", "40P01": "deadlock"}
# Class 23 is integrity, 42 syntax/undefined objects, 28 authorization.
_FATAL_SQLSTATE_CLASSES = {"23": "integrity_error", "42": "schema_error", "28": "schema_error"}
_CONNECTIVITY_MARKERS = ("connection", "timeout", "reset", "network", "broken pipe", "closed")


@dataclass(frozen=True)
class DBFailureClassification:
  retryable: bool
  category: str
  sqlstate: str | None = None


@dataclass(frozen=True)
class RetryPolicy:
  max_attempts: int = 3
  initial_backoff_ms: int = 50
  max_backoff_ms: int = 1000
  jitter: bool = True

  def backoff_seconds(self, attempt: int) -> float:
    """Exponential delay after ``attempt`` failed, with up to 25% jitter either way."""
    delay_ms = min(self.initial_backoff_ms * 2 ** (attempt - 1), self.max_backoff_ms)
    if self.jitter and delay_ms:
      delay_ms *= random.uniform(0.75, 1.25)
    return delay_ms / 1000


def _sqlstate(exc: BaseException) -> str | None:
  driver_error = exc.orig if isinstance(exc, DBAPIError) else exc
  # asyncpg names it sqlstate, psycopg pgcode.
  code = getattr(driver_error, "sqlstate", None) or getattr(driver_error, "pgcode", None)
  return str(code) if code else None


def classify_db_failure(exc: BaseException) -> DBFailureClassification:
  """Decide whether a failed write is worth repeating.

  Transaction conflicts and dropped connections are retried. Integrity violations
  mean a concurrent writer won; the caller must re-read state instead of retrying.
  """
  sqlstate = _sqlstate(exc)
  if sqlstate in _TRANSIENT_SQLSTATES:
    return DBFailureClassification(True, _TRANSIENT_SQLSTATES[sqlstate], sqlstate)
  if isinstance(exc, IntegrityError):
    return DBFailureClassification(False, "integrity_error", sqlstate)
  if sqlstate and sqlstate[:2] in _FATAL_SQLSTATE_CLASSES:
    return DBFailureClassification(False, _FATAL_SQLSTATE_CLASSES[sqlstate[:2]], sqlstate)
  if isinstance(exc, ConnectionError | TimeoutError):
    return DBFailureClassification(True, "connectivity_error", sqlstate)
  if isinstance(exc, OperationalError):
    message = str(exc).lower()
    if any(marker in message for marker in _CONNECTIVITY_MARKERS):
      return DBFailureClassification(True, "connectivity_error", sqlstate)
    return DBFailureClassification(False, "operational_error", sqlstate)
  return DBFailureClassification(False, "unknown_error", sqlstate)


async def execute_with_retry(*, operation_name: str, func: Callable[[], Awaitable[T]], max_attempts: int = 3, initial_backoff_ms: int = 50, max_backoff_ms: int = 1000, jitter: bool = True) -> T:
  """Await ``func`` until it succeeds, fails for good, or ``max_attempts`` is spent.

  ``func`` must be idempotent: a retried penalty insert can follow a commit whose
  acknowledgement never arrived.
  """
  policy = RetryPolicy(max_attempts=max_attempts, initial_backoff_ms=initial_backoff_ms, max_backoff_ms=max_backoff_ms, jitter=jitter)
  for attempt in range(1, policy.max_attempts + 1):
    try:
      result = await func()
    except Exception as exc:
      failure = classify_db_failure(exc)
      final = not failure.retryable or attempt == policy.max_attempts
      logger.warning("%s failed attempt=%d/%d category=%s sqlstate=%s final=%s", operation_name, attempt, policy.max_attempts, failure.category, failure.sqlstate or "-", final, exc_info=final)
      if final:
        raise
      await asyncio.sleep(policy.backoff_seconds(attempt))
    else:
      if attempt > 1:
        logger.info("%s succeeded on attempt %d", operation_name, attempt)
      return result
  raise RuntimeError(f"{operation_name} was attempted zero times")
