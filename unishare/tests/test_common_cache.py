import json
import pickle
import time
import unittest
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from unishare.common.cache import (
    CacheEntry, MemoryCacheBackend, RedisCacheBackend, SerializationFormat, create_cache_backend
)
from unishare.common.config import AppConfig, CacheConfig
from unishare.common.exceptions import CacheError


class TestCacheEntry(unittest.TestCase):
    """Test the CacheEntry class."""

    def test_init(self):
        """Test initializing a CacheEntry."""
        entry = CacheEntry({"rank": 1})
        self.assertEqual(entry.value, {"rank": 1})
        self.assertIsNone(entry.expires_at)
        self.assertIsNone(entry.remaining_ttl())
        self.assertEqual(entry.access_count, 0)

        entry = CacheEntry("board", ttl=10)
        self.assertEqual(entry.expires_at, entry.created_at + 10)
        self.assertLessEqual(entry.remaining_ttl(), 10)

    def test_is_expired(self):
        entry = CacheEntry("board")
        self.assertFalse(entry.is_expired())

        entry.expires_at = time.time() - 10
        self.assertTrue(entry.is_expired())
        self.assertEqual(entry.remaining_ttl(), 0.0)

    def test_access(self):
        entry = CacheEntry("board")
        entry.access()
        entry.access()
        self.assertEqual(entry.access_count, 2)
        self.assertGreaterEqual(entry.last_accessed, entry.created_at)


@pytest.mark.asyncio
async def test_memory_get_set_delete():
    cache = MemoryCacheBackend(max_size=10)

    miss = await cache.get("leaderboard:global:all_time:50")
    assert not miss.success
    assert not miss.hit

    await cache.set("leaderboard:global:all_time:50", [1, 2, 3], ttl=60)
    hit = await cache.get("leaderboard:global:all_time:50")
    assert hit.success and hit.hit
    assert hit.value == [1, 2, 3]
    assert hit.source == "memory"

    assert await cache.delete("leaderboard:global:all_time:50") is True
    assert await cache.delete("leaderboard:global:all_time:50") is False

    stats = await cache.get_stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 1


@pytest.mark.asyncio
async def test_memory_expired_entries_miss():
    cache = MemoryCacheBackend()
    await cache.set("analytics:overview:weekly", {"total_users": 3}, ttl=60)
    cache._cache["analytics:overview:weekly"].expires_at = time.time() - 1

    result = await cache.get("analytics:overview:weekly")
    assert not result.success
    assert (await cache.get_stats())["expirations"] == 1


@pytest.mark.asyncio
async def test_memory_lru_eviction():
    cache = MemoryCacheBackend(max_size=2)
    await cache.set("a", 1)
    await cache.set("b", 2)
    await cache.get("a")
    await cache.set("c", 3)

    assert (await cache.get("b")).success is False
    assert (await cache.get("a")).value == 1
    assert (await cache.get("c")).value == 3
    assert (await cache.get_stats())["evictions"] == 1


@pytest.mark.asyncio
async def test_memory_clear_prefix():
    cache = MemoryCacheBackend()
    await cache.set("leaderboard:global:all_time:50", 1)
    await cache.set("leaderboard:department:CS:weekly:10", 2)
    await cache.set("analytics:overview:all_time", 3)

    assert await cache.clear_prefix("leaderboard:") == 2
    assert (await cache.get("analytics:overview:all_time")).value == 3

    assert await cache.clear() is True
    assert (await cache.get_stats())["size"] == 0


def make_redis_client():
    client = MagicMock()
    client.get = AsyncMock(return_value=None)
    client.set = AsyncMock(return_value=True)
    client.delete = AsyncMock(return_value=1)
    return client


@pytest.mark.asyncio
async def test_redis_prefixes_and_pickles_values():
    client = make_redis_client()
    cache = RedisCacheBackend(client, key_prefix="test:")

    await cache.set("leaderboard:global", {"rank": 1}, ttl=30)
    client.set.assert_awaited_once_with("test:leaderboard:global", pickle.dumps({"rank": 1}), ex=30)

    client.get.return_value = pickle.dumps({"rank": 1})
    result = await cache.get("leaderboard:global")
    assert result.hit
    assert result.value == {"rank": 1}
    client.get.assert_awaited_with("test:leaderboard:global")


@pytest.mark.asyncio
async def test_redis_json_format_and_miss():
    client = make_redis_client()
    cache = RedisCacheBackend(client, key_prefix="", serialization=SerializationFormat.JSON)

    await cache.set("k", {"a": 1})
    client.set.assert_awaited_once_with("k", json.dumps({"a": 1}).encode("utf-8"))

    result = await cache.get("missing")
    assert not result.success
    assert (await cache.get_stats())["misses"] == 1


@pytest.mark.asyncio
async def test_redis_clear_prefix_scans_keys():
    client = make_redis_client()

    async def scan_iter(match):
        assert match == "test:leaderboard:*"
        for key in (b"test:leaderboard:a", b"test:leaderboard:b"):
            yield key

    client.scan_iter = scan_iter
    cache = RedisCacheBackend(client, key_prefix="test:")

    assert await cache.clear_prefix("leaderboard:") == 2
    assert client.delete.await_count == 2


@pytest.mark.asyncio
async def test_redis_failures_raise_cache_error():
    client = make_redis_client()
    client.get.side_effect = RedisConnectionError("down")
    client.set.side_effect = RedisConnectionError("down")
    cache = RedisCacheBackend(client)

    with pytest.raises(CacheError):
        await cache.get("k")
    with pytest.raises(CacheError):
        await cache.set("k", 1)


def test_create_cache_backend_defaults_to_memory():
    backend = create_cache_backend(AppConfig(cache=CacheConfig(memory_max_size=7)))
    assert isinstance(backend, MemoryCacheBackend)
    assert backend._max_size == 7


def test_create_cache_backend_redis():
    backend = create_cache_backend(AppConfig(cache=CacheConfig(use_redis=True, key_prefix="x:")))
    assert isinstance(backend, RedisCacheBackend)
    assert backend._key_prefix == "x:"
