"""Key-value caches with per-entry expiry for read paths.

`RedisTTLCache` is used whenever TUTORSLOTS_REDIS_URL is set, so every worker sees the
same entries and an invalidation in one process reaches all of them. Without a URL the
service falls back to `TTLCache`, which lives in the process and is swept periodically.
Entries are never authoritative: callers cache read paths only and invalidate on every
related write. Values are opaque bytes; callers own the encoding.
"""

from __future__ import annotations

import logging
import math
import re
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

import redis.asyncio as redis
from redis.exceptions import RedisError

from tutorslots.config import Settings

logger = logging.getLogger(__name__)

_GLOB_SPECIALS = re.compile(r"([\\*?\[\]])")


class CacheBackend(Protocol):
  async def get(self, key: str) -> bytes | None: ...

  async def set(self, key: str, value: bytes, ttl_seconds: float | None = None) -> None: ...

  async def invalidate(self, key: str) -> bool: ...

  async def invalidate_prefix(self, prefix: str) -> int: ...

  async def sweep(self) -> int: ...

  async def aclose(self) -> None: ...


@dataclass(frozen=True)
class _Entry:
  value: bytes
  expires_at: float


class TTLCache:
  """Single-process cache; expired entries are dropped on read and by `sweep`."""

  def __init__(self, *, default_ttl_seconds: float = 30.0, clock: Callable[[], float] = time.monotonic) -> None:
    self._default_ttl = default_ttl_seconds
    self._clock = clock
    self._entries: dict[str, _Entry] = {}
    self._lock = threading.Lock()

  async def get(self, key: str) -> bytes | None:
    with self._lock:
      entry = self._entries.get(key)
      if entry is None:
        return None
      if entry.expires_at <= self._clock():
        del self._entries[key]
        return None
      return entry.value

  async def set(self, key: str, value: bytes, ttl_seconds: float | None = None) -> None:
    ttl = self._default_ttl if ttl_seconds is None else ttl_seconds
    if ttl <= 0:
      return
    with self._lock:
      self._entries[key] = _Entry(value=value, expires_at=self._clock() + ttl)

  async def invalidate(self, key: str) -> bool:
    with self._lock:
      return self._entries.pop(key, None) is not None

  async def invalidate_prefix(self, prefix: str) -> int:
    """Drop every key starting with `prefix` and return how many were removed."""
    with self._lock:
      doomed = [key for key in self._entries if key.startswith(prefix)]
      for key in doomed:
        del self._entries[key]
    if doomed:
      logger.debug("Cache invalidated prefix=%s keys=%d", prefix, len(doomed))
    return len(doomed)

  async def sweep(self) -> int:
    """Evict expired entries."""
    now = self._clock()
    with self._lock:
      expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
      for key in expired:
        del self._entries[key]
    return len(expired)

  async def aclose(self) -> None:
    with self._lock:
      self._entries.clear()

  def __len__(self) -> int:
    with self._lock:
      return len(self._entries)


class RedisTTLCache:
  """Shared cache stored in Redis under `namespace`.

  Redis expires keys itself, so `sweep` has nothing to do. Redis errors are logged and
  treated as misses; a failed invalidation leaves entries to age out within one TTL.
  """

  def __init__(self, client: redis.Redis, *, default_ttl_seconds: float = 30.0, namespace: str = "tutorslots:") -> None:
    self._client = client
    self._default_ttl = default_ttl_seconds
    self._namespace = namespace

  def _name(self, key: str) -> str:
    return f"{self._namespace}{key}"

  async def get(self, key: str) -> bytes | None:
    try:
      return await self._client.get(self._name(key))
    except RedisError as exc:
      logger.warning("Cache get failed key=%s error=%s", key, exc)
      return None

  async def set(self, key: str, value: bytes, ttl_seconds: float | None = None) -> None:
    ttl = self._default_ttl if ttl_seconds is None else ttl_seconds
    if ttl <= 0:
      return
    try:
      await self._client.setex(self._name(key), max(1, math.ceil(ttl)), value)
    except RedisError as exc:
      logger.warning("Cache set failed key=%s error=%s", key, exc)

  async def invalidate(self, key: str) -> bool:
    try:
      return bool(await self._client.delete(self._name(key)))
    except RedisError as exc:
      logger.error("Cache invalidate failed key=%s error=%s", key, exc)
      return False

  async def invalidate_prefix(self, prefix: str) -> int:
    """Delete every key under `prefix`; SCAN keeps the server responsive on large keyspaces."""
    pattern = _GLOB_SPECIALS.sub(r"\\\1", self._name(prefix)) + "*"
    try:
      doomed = [name async for name in self._client.scan_iter(match=pattern, count=500)]
      if not doomed:
        return 0
      removed = int(await self._client.delete(*doomed))
    except RedisError as exc:
      logger.error("Cache invalidate failed prefix=%s error=%s", prefix, exc)
      return 0
    logger.debug("Cache invalidated prefix=%s keys=%d", prefix, removed)
    return removed

  async def sweep(self) -> int:
    return 0

  async def aclose(self) -> None:
    await self._client.aclose()


def build_cache(settings: Settings) -> CacheBackend:
  """Redis when a URL is configured, otherwise the in-process store."""
  ttl = settings.available_slots_cache_ttl_seconds
  if settings.redis_url is None:
    logger.info("TUTORSLOTS_REDIS_URL is not set; caching availability in process")
    return TTLCache(default_ttl_seconds=ttl)
  client = redis.from_url(settings.redis_url, socket_connect_timeout=5, socket_timeout=5, health_check_interval=30)
  logger.info("Caching availability in Redis")
  return RedisTTLCache(client, default_ttl_seconds=ttl)
