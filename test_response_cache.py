"""
Response Cache Tests

Validates the cache contract shared by both backends:
1. Values are returned until their TTL elapses, then treated as absent
2. Pattern invalidation removes exactly the keys containing the substring
3. The Redis backend falls back to memory on any Redis failure
4. The sweeper removes expired in-memory entries
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from conftest import FakeClock
from core.cache import CacheSweeper, InMemoryCacheBackend, RedisCacheBackend, create_cache_backend
from core.cache.backends import DEFAULT_TTL
from core.config import SankhyaSettings


class TestInMemoryCache:
    """Expiration and invalidation on the process-local backend."""

    @pytest.mark.asyncio
    async def test_value_available_until_ttl_elapses(self, memory_cache, clock):
        await memory_cache.set("preco:10", 12.5, ttl=600)

        clock.advance(599)
        assert await memory_cache.get("preco:10") == 12.5

        clock.advance(2)
        assert await memory_cache.get("preco:10") is None

    @pytest.mark.asyncio
    async def test_expired_entry_is_removed_on_read(self, memory_cache, clock):
        await memory_cache.set("estoque:10:", {"total": 1}, ttl=5)
        clock.advance(6)

        assert await memory_cache.get("estoque:10:") is None
        assert memory_cache.keys() == []

    @pytest.mark.asyncio
    async def test_default_ttl_when_unspecified(self, memory_cache, clock):
        await memory_cache.set("a", 1)
        await memory_cache.set("b", 2, ttl=0)

        clock.advance(DEFAULT_TTL - 1)
        assert await memory_cache.get("a") == 1
        assert await memory_cache.get("b") == 2

        clock.advance(2)
        assert await memory_cache.get("a") is None
        assert await memory_cache.get("b") is None

    @pytest.mark.asyncio
    async def test_falsy_values_are_cached(self, memory_cache):
        await memory_cache.set("preco:99", 0.0, ttl=60)

        assert await memory_cache.get("preco:99") == 0.0
        assert await memory_cache.has("preco:99")

    @pytest.mark.asyncio
    async def test_delete(self, memory_cache):
        await memory_cache.set("k", "v")
        await memory_cache.delete("k")
        await memory_cache.delete("never-set")

        assert await memory_cache.get("k") is None

    @pytest.mark.asyncio
    async def test_invalidate_pattern_removes_only_matching_keys(self, memory_cache):
        for key in ("preco:1", "preco:2", "estoque:1:", "estoque:2:01", "produtos:p1"):
            await memory_cache.set(key, key)

        removed = await memory_cache.invalidate_pattern("estoque")

        assert removed == 2
        assert sorted(memory_cache.keys()) == ["preco:1", "preco:2", "produtos:p1"]

    @pytest.mark.asyncio
    async def test_invalidate_pattern_is_literal_not_regex(self, memory_cache):
        await memory_cache.set("preco:1", 1)
        await memory_cache.set("preco.*", 2)

        removed = await memory_cache.invalidate_pattern(".*")

        assert removed == 1
        assert memory_cache.keys() == ["preco:1"]

    @pytest.mark.asyncio
    async def test_category_helpers(self, memory_cache):
        await memory_cache.set("preco:1", 1)
        await memory_cache.set("estoque:1:", 1)
        await memory_cache.set("parceiros:all", 1)
        await memory_cache.set("produtos:page1", 1)

        assert await memory_cache.invalidate_prices() == 1
        assert await memory_cache.invalidate_stock() == 1
        assert await memory_cache.invalidate_partners() == 1
        assert await memory_cache.invalidate_products() == 1
        assert memory_cache.keys() == []

    @pytest.mark.asyncio
    async def test_cleanup_and_stats(self, memory_cache, clock):
        await memory_cache.set("short", 1, ttl=10)
        await memory_cache.set("long", 2, ttl=1000)
        clock.advance(11)

        assert await memory_cache.cleanup() == 1

        stats = await memory_cache.get_stats()
        assert stats == {"backend": "memory", "size": 1, "keys": ["long"]}

    @pytest.mark.asyncio
    async def test_clear(self, memory_cache):
        await memory_cache.set("a", 1)
        await memory_cache.clear()

        assert memory_cache.keys() == []


class FakeRedis:
    """Minimal async Redis double keeping values in a dict."""

    def __init__(self):
        self.data = {}
        self.ttls = {}
        self.ping = AsyncMock(return_value=True)
        self.aclose = AsyncMock()

    async def get(self, key):
        return self.data.get(key)

    async def setex(self, key, ttl, value):
        self.data[key] = value
        self.ttls[key] = ttl

    async def delete(self, *keys):
        for key in keys:
            self.data.pop(key, None)

    async def scan_iter(self, match=None):
        for key in list(self.data):
            yield key


class TestRedisCache:
    """Redis storage and transparent fallback to memory."""

    @pytest.mark.asyncio
    async def test_set_stores_json_entry_with_expiry(self, clock):
        redis = FakeRedis()
        cache = RedisCacheBackend(client=redis, clock=clock)
        assert await cache.initialize()

        await cache.set("preco:10", 12.5, ttl=600)

        stored = json.loads(redis.data["sankhya:preco:10"])
        assert stored == {"data": 12.5, "timestamp": clock.now, "ttl": 600}
        assert redis.ttls["sankhya:preco:10"] == 600
        assert await cache.get("preco:10") == 12.5
        assert cache.memory.keys() == []

    @pytest.mark.asyncio
    async def test_entry_older_than_ttl_is_absent(self, clock):
        redis = FakeRedis()
        cache = RedisCacheBackend(client=redis, clock=clock)
        await cache.initialize()

        await cache.set("estoque:1:", {"total": 2}, ttl=300)
        clock.advance(301)

        assert await cache.get("estoque:1:") is None
        assert "sankhya:estoque:1:" not in redis.data

    @pytest.mark.asyncio
    async def test_unreachable_redis_runs_memory_only(self, clock):
        redis = FakeRedis()
        redis.ping = AsyncMock(side_effect=RedisConnectionError("refused"))
        cache = RedisCacheBackend(client=redis, clock=clock)

        assert await cache.initialize() is False

        await cache.set("preco:1", 3.0)
        assert await cache.get("preco:1") == 3.0
        assert redis.data == {}
        assert cache.memory.keys() == ["preco:1"]

    @pytest.mark.asyncio
    async def test_write_failure_falls_back_to_memory(self, clock):
        redis = FakeRedis()
        redis.setex = AsyncMock(side_effect=RedisConnectionError("connection lost"))
        cache = RedisCacheBackend(client=redis, clock=clock)
        await cache.initialize()

        await cache.set("preco:1", 3.0, ttl=60)

        assert cache.memory.keys() == ["preco:1"]
        assert await cache.get("preco:1") == 3.0

    @pytest.mark.asyncio
    async def test_read_failure_falls_back_to_memory(self, clock):
        redis = FakeRedis()
        cache = RedisCacheBackend(client=redis, clock=clock)
        await cache.initialize()
        cache.memory.put("preco:1", 7.0, ttl=60)
        redis.get = AsyncMock(side_effect=RedisConnectionError("timeout"))

        assert await cache.get("preco:1") == 7.0
        assert await cache.get("preco:2") is None

    @pytest.mark.asyncio
    async def test_corrupt_entry_is_not_an_error(self, clock):
        redis = FakeRedis()
        cache = RedisCacheBackend(client=redis, clock=clock)
        await cache.initialize()
        redis.data["sankhya:preco:1"] = "not json"

        assert await cache.get("preco:1") is None

    @pytest.mark.asyncio
    async def test_invalidate_pattern_counts_both_stores(self, clock):
        redis = FakeRedis()
        cache = RedisCacheBackend(client=redis, clock=clock)
        await cache.initialize()
        await cache.set("preco:1", 1)
        await cache.set("preco:2", 2)
        await cache.set("estoque:1:", 3)
        cache.memory.put("preco:3", 3)

        removed = await cache.invalidate_pattern("preco")

        assert removed == 3
        assert list(redis.data) == ["sankhya:estoque:1:"]
        assert cache.memory.keys() == []

    @pytest.mark.asyncio
    async def test_invalidate_pattern_failure_still_clears_memory(self, clock):
        redis = FakeRedis()
        cache = RedisCacheBackend(client=redis, clock=clock)
        await cache.initialize()
        cache.memory.put("preco:1", 1)
        redis.scan_iter = MagicMock(side_effect=RedisConnectionError("down"))

        assert await cache.invalidate_pattern("preco") == 1

    @pytest.mark.asyncio
    async def test_stats(self, clock):
        redis = FakeRedis()
        cache = RedisCacheBackend(client=redis, clock=clock)
        await cache.initialize()
        await cache.set("preco:1", 1)

        stats = await cache.get_stats()

        assert stats["backend"] == "redis"
        assert stats["using_redis"] is True
        assert stats["redis_size"] == 1
        assert stats["memory_size"] == 0

    def test_requires_url_or_client(self):
        with pytest.raises(ValueError):
            RedisCacheBackend()


class TestCacheFactory:

    @pytest.mark.asyncio
    async def test_memory_backend_without_redis_url(self):
        settings = SankhyaSettings(redis_url=None, cache_default_ttl=42)

        cache = await create_cache_backend(settings)

        assert isinstance(cache, InMemoryCacheBackend)
        assert cache.default_ttl == 42


class TestCacheSweeper:

    @pytest.mark.asyncio
    async def test_sweep_once_removes_expired_entries(self, memory_cache, clock):
        await memory_cache.set("old", 1, ttl=1)
        await memory_cache.set("new", 2, ttl=100)
        clock.advance(5)

        sweeper = CacheSweeper(memory_cache, interval=600)

        assert await sweeper.sweep_once() == 1
        assert memory_cache.keys() == ["new"]

    @pytest.mark.asyncio
    async def test_background_sweep_runs_on_interval(self):
        clock = FakeClock()
        cache = InMemoryCacheBackend(clock=clock)
        await cache.set("old", 1, ttl=1)
        clock.advance(5)

        sweeper = CacheSweeper(cache, interval=0.01)
        sweeper.start()
        try:
            for _ in range(50):
                if not cache.keys():
                    break
                await asyncio.sleep(0.01)
        finally:
            await sweeper.stop()

        assert cache.keys() == []
        assert sweeper.running is False
