"""Cache key layout for the available-slots read path."""

from __future__ import annotations

import datetime

from tutorslots.core.ttl_cache import CacheBackend


def tutor_slots_prefix(tutor_id: str) -> str:
  return f"available:{tutor_id}:"


def available_slots_key(tutor_id: str, start_date: datetime.date, end_date: datetime.date) -> str:
  return f"{tutor_slots_prefix(tutor_id)}{start_date.isoformat()}:{end_date.isoformat()}"


async def invalidate_tutor(cache: CacheBackend | None, tutor_id: str) -> None:
  if cache is not None:
    await cache.invalidate_prefix(tutor_slots_prefix(tutor_id))
