from __future__ import annotations

import dataclasses
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from tutorslots.core.ttl_cache import RedisTTLCache, TTLCache, build_cache


class _Ticker:
  def __init__(self) -> None:
    self.now = 0.0

  def __call__(self) -> float:
    return self.now


def _redis_client(*scanned: bytes) -> MagicMock:
  client = MagicMock()
  client.get = AsyncMock(return_value=None)
  client.setex = AsyncMock()
  client.delete = AsyncMock(return_value=len(scanned))
  client.aclose = AsyncMock()

  async def _scan_iter(**kwargs):
    for name in scanned:
      yield name

  client.scan_iter = MagicMock(side_effect=_scan_iter)
  return client


@pytest.mark.anyio
async def test_entries_expire_after_their_ttl():
  ticker = _Ticker()
  cache = TTLCache(default_ttl_seconds=30, clock=ticker)
  await cache.set("a", b"[1,2]")
  ticker.now = 29.9
  assert await cache.get("a") == b"[1,2]"
  ticker.now = 30.0
  assert await cache.get("a") is None
  assert len(cache) == 0


@pytest.mark.anyio
async def test_non_positive_ttl_is_not_stored():
  cache = TTLCache(default_ttl_seconds=0)
  await cache.set("a", b"1")
  assert await cache.get("a") is None


@pytest.mark.anyio
async def test_invalidate_prefix_only_touches_matching_keys():
  cache = TTLCache()
  await cache.set("available:tutor-1:2026-03-02", b"1")
  await cache.set("available:tutor-1:2026-03-09", b"2")
  await cache.set("available:tutor-10:2026-03-02", b"3")

  assert await cache.invalidate_prefix("available:tutor-1:") == 2
  assert await cache.get("available:tutor-10:2026-03-02") == b"3"
  assert await cache.invalidate("available:tutor-10:2026-03-02") is True
  assert await cache.invalidate("available:tutor-10:2026-03-02") is False


@pytest.mark.anyio
async def test_sweep_and_close():
  ticker = _Ticker()
  cache = TTLCache(default_ttl_seconds=10, clock=ticker)
  await cache.set("short", b"1", ttl_seconds=5)
  await cache.set("long", b"2")
  ticker.now = 6
  assert await cache.sweep() == 1
  assert len(cache) == 1
  await cache.aclose()
  assert len(cache) == 0


@pytest.mark.anyio
async def test_redis_set_uses_whole_second_expiry_under_namespace():
  client = _redis_client()
  cache = RedisTTLCache(client, default_ttl_seconds=30)

  await cache.set("available:tutor-1:a", b"[]")
  await cache.set("available:tutor-1:b", b"[]", ttl_seconds=0.2)
  await cache.set("available:tutor-1:c", b"[]", ttl_seconds=0)

  assert [call.args for call in client.setex.await_args_list] == [("tutorslots:available:tutor-1:a", 30, b"[]"), ("tutorslots:available:tutor-1:b", 1, b"[]")]


@pytest.mark.anyio
async def test_redis_prefix_invalidation_scans_then_deletes():
  client = _redis_client(b"tutorslots:available:tutor-1:x", b"tutorslots:available:tutor-1:y")
  cache = RedisTTLCache(client)

  assert await cache.invalidate_prefix("available:tutor-1:") == 2
  assert client.scan_iter.call_args.kwargs["match"] == "tutorslots:available:tutor-1:*"
  client.delete.assert_awaited_once_with(b"tutorslots:available:tutor-1:x", b"tutorslots:available:tutor-1:y")


@pytest.mark.anyio
async def test_redis_prefix_pattern_escapes_glob_characters():
  client = _redis_client()
  cache = RedisTTLCache(client)

  assert await cache.invalidate_prefix("available:tutor*[1]:") == 0
  assert client.scan_iter.call_args.kwargs["match"] == "tutorslots:available:tutor\\*\\[1\\]:*"
  client.delete.assert_not_awaited()


@pytest.mark.anyio
async def test_redis_errors_read_as_misses():
  client = _redis_client()
  client.get.side_effect = RedisConnectionError("down")
  client.setex.side_effect = RedisConnectionError("down")
  cache = RedisTTLCache(client)

  assert await cache.get("available:tutor-1:a") is None
  await cache.set("available:tutor-1:a", b"[]")
  assert await cache.sweep() == 0


@pytest.mark.anyio
async def test_build_cache_picks_backend_from_settings(settings):
  local = build_cache(settings)
  assert isinstance(local, TTLCache)

  shared = build_cache(dataclasses.replace(settings, redis_url="redis://localhost:6379/0"))
  assert isinstance(shared, RedisTTLCache)
  await shared.aclose()
