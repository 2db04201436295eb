"""Response cache backends.

Every backend exposes the same async contract:
- get(key) -> value or None
- set(key, value, ttl=None)
- delete(key)
- invalidate_pattern(substring) -> number of removed entries

Backends:
- InMemoryCacheBackend: process-local dict with lazy expiration
- RedisCacheBackend: Redis with transparent fallback to an in-memory backend
"""

import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from core.observability.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TTL = 5 * 60  # seconds

# Substrings used for bulk invalidation by entity category
PARTNERS_PATTERN = "parceiros"
PRODUCTS_PATTERN = "produtos"
STOCK_PATTERN = "estoque"
PRICES_PATTERN = "preco"

Clock = Callable[[], float]


@dataclass
class CacheEntry:
    """A cached value with its creation time and time-to-live (seconds)."""
    key: str
    value: Any
    created_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return (now - self.created_at) > self.ttl

    def to_dict(self) -> Dict[str, Any]:
        return {"data": self.value, "timestamp": self.created_at, "ttl": self.ttl}

    @classmethod
    def from_dict(cls, key: str, data: Dict[str, Any]) -> "CacheEntry":
        return cls(
            key=key,
            value=data["data"],
            created_at=float(data["timestamp"]),
            ttl=float(data["ttl"]),
        )


class CacheBackend(ABC):
    """Abstract base class for response cache storage."""

    def __init__(self, default_ttl: float = DEFAULT_TTL, clock: Clock = time.time):
        self.default_ttl = default_ttl
        self._clock = clock

    def _resolve_ttl(self, ttl: Optional[float]) -> float:
        return ttl if ttl else self.default_ttl

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None when absent or expired."""
        pass

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store a value for `ttl` seconds (default TTL when not given)."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        pass

    @abstractmethod
    async def invalidate_pattern(self, pattern: str) -> int:
        """Remove every key containing `pattern` as a literal substring."""
        pass

    @abstractmethod
    async def clear(self) -> None:
        pass

    @abstractmethod
    async def cleanup(self) -> int:
        """Remove expired entries held in process memory."""
        pass

    @abstractmethod
    async def get_stats(self) -> Dict[str, Any]:
        pass

    async def has(self, key: str) -> bool:
        return await self.get(key) is not None

    async def invalidate_partners(self) -> int:
        return await self.invalidate_pattern(PARTNERS_PATTERN)

    async def invalidate_products(self) -> int:
        return await self.invalidate_pattern(PRODUCTS_PATTERN)

    async def invalidate_stock(self) -> int:
        return await self.invalidate_pattern(STOCK_PATTERN)

    async def invalidate_prices(self) -> int:
        return await self.invalidate_pattern(PRICES_PATTERN)

    async def close(self) -> None:
        pass


class InMemoryCacheBackend(CacheBackend):
    """Process-local cache.

    Entries expire lazily on read; `cleanup()` removes the rest.
    """

    def __init__(self, default_ttl: float = DEFAULT_TTL, clock: Clock = time.time):
        super().__init__(default_ttl, clock)
        self._entries: Dict[str, CacheEntry] = {}

    def get_entry(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._entries[key]
            return None
        return entry

    async def get(self, key: str) -> Optional[Any]:
        entry = self.get_entry(key)
        return entry.value if entry else None

    def put(self, key: str, value: Any, ttl: Optional[float] = None) -> CacheEntry:
        entry = CacheEntry(
            key=key,
            value=value,
            created_at=self._clock(),
            ttl=self._resolve_ttl(ttl),
        )
        self._entries[key] = entry
        return entry

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        self.put(key, value, ttl)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def invalidate_pattern(self, pattern: str) -> int:
        matching = [key for key in self._entries if pattern in key]
        for key in matching:
            del self._entries[key]
        logger.info(
            f"Invalidated {len(matching)} cache entries matching '{pattern}'",
            extra_fields={"pattern": pattern, "removed": len(matching)},
        )
        return len(matching)

    async def clear(self) -> None:
        self._entries.clear()

    async def cleanup(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def keys(self) -> List[str]:
        return list(self._entries.keys())

    async def get_stats(self) -> Dict[str, Any]:
        return {
            "backend": "memory",
            "size": len(self._entries),
            "keys": self.keys(),
        }


def _escape_glob(pattern: str) -> str:
    """Escape Redis glob metacharacters so the pattern matches literally."""
    return "".join("\\" + c if c in "*?[]^\\" else c for c in pattern)


class RedisCacheBackend(CacheBackend):
    """Redis-backed cache that never surfaces a Redis failure.

    Entries are stored as JSON `{data, timestamp, ttl}` with a matching Redis
    expiry. Any Redis error (or an unreachable server at startup) falls back to
    the embedded in-memory backend for that operation.

    Usage:
        cache = RedisCacheBackend(url="redis://localhost:6379/0")
        await cache.initialize()
        await cache.set("preco:123", 12.5, ttl=600)
    """

    def __init__(
        self,
        url: Optional[str] = None,
        client: Optional[Any] = None,
        key_prefix: str = "sankhya:",
        default_ttl: float = DEFAULT_TTL,
        clock: Clock = time.time,
    ):
        super().__init__(default_ttl, clock)
        if client is None and url is None:
            raise ValueError("Either url or client must be provided")
        self._client = client if client is not None else aioredis.Redis.from_url(url, decode_responses=True)
        self._prefix = key_prefix
        self._use_redis = False
        self.memory = InMemoryCacheBackend(default_ttl, clock)

    @property
    def using_redis(self) -> bool:
        return self._use_redis

    async def initialize(self) -> bool:
        """Ping Redis; stay memory-only when it is unreachable."""
        try:
            await self._client.ping()
            self._use_redis = True
            logger.info("Redis connected for persistent cache")
        except (RedisError, OSError) as e:
            self._use_redis = False
            logger.warning(f"Redis unavailable, using in-memory cache: {e}")
        return self._use_redis

    def _redis_key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def get(self, key: str) -> Optional[Any]:
        if self._use_redis:
            try:
                raw = await self._client.get(self._redis_key(key))
                if raw is not None:
                    entry = CacheEntry.from_dict(key, json.loads(raw))
                    if entry.is_expired(self._clock()):
                        await self._client.delete(self._redis_key(key))
                    else:
                        return entry.value
            except (RedisError, OSError, ValueError, KeyError, TypeError) as e:
                logger.error(f"Redis read failed for '{key}', falling back to memory: {e}")

        return await self.memory.get(key)

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        entry = CacheEntry(
            key=key,
            value=value,
            created_at=self._clock(),
            ttl=self._resolve_ttl(ttl),
        )

        if self._use_redis:
            try:
                await self._client.setex(
                    self._redis_key(key),
                    max(1, int(entry.ttl)),
                    json.dumps(entry.to_dict()),
                )
                return
            except (RedisError, OSError, ValueError, TypeError) as e:
                logger.error(f"Redis write failed for '{key}', using memory: {e}")

        self.memory.put(key, value, ttl)

    async def delete(self, key: str) -> None:
        if self._use_redis:
            try:
                await self._client.delete(self._redis_key(key))
            except (RedisError, OSError) as e:
                logger.error(f"Redis delete failed for '{key}': {e}")
        await self.memory.delete(key)

    async def _redis_keys(self, pattern: str = "") -> List[str]:
        match = f"{_escape_glob(self._prefix)}*{_escape_glob(pattern)}*"
        keys = []
        async for redis_key in self._client.scan_iter(match=match):
            if pattern in redis_key[len(self._prefix):]:
                keys.append(redis_key)
        return keys

    async def invalidate_pattern(self, pattern: str) -> int:
        count = 0

        if self._use_redis:
            try:
                keys = await self._redis_keys(pattern)
                if keys:
                    await self._client.delete(*keys)
                    count += len(keys)
            except (RedisError, OSError) as e:
                logger.error(f"Redis pattern invalidation failed for '{pattern}': {e}")

        count += await self.memory.invalidate_pattern(pattern)
        logger.info(
            f"Invalidated {count} cache entries matching '{pattern}'",
            extra_fields={"pattern": pattern, "removed": count, "backend": "redis"},
        )
        return count

    async def clear(self) -> None:
        if self._use_redis:
            try:
                keys = await self._redis_keys()
                if keys:
                    await self._client.delete(*keys)
            except (RedisError, OSError) as e:
                logger.error(f"Redis clear failed: {e}")
        await self.memory.clear()

    async def cleanup(self) -> int:
        # Redis expires its own keys; only the fallback store needs sweeping.
        return await self.memory.cleanup()

    async def get_stats(self) -> Dict[str, Any]:
        redis_size = 0
        if self._use_redis:
            try:
                redis_size = len(await self._redis_keys())
            except (RedisError, OSError) as e:
                logger.error(f"Redis stats failed: {e}")

        return {
            "backend": "redis",
            "using_redis": self._use_redis,
            "redis_size": redis_size,
            "memory_size": len(self.memory.keys()),
            "memory_keys": self.memory.keys(),
        }

    async def close(self) -> None:
        try:
            await self._client.aclose()
        except (RedisError, OSError) as e:
            logger.warning(f"Error closing Redis client: {e}")


async def create_cache_backend(settings) -> CacheBackend:
    """Build the cache backend selected by settings.

    Redis when `settings.redis_url` is set, process memory otherwise.
    """
    if settings.redis_url:
        backend = RedisCacheBackend(url=settings.redis_url, default_ttl=settings.cache_default_ttl)
        await backend.initialize()
        return backend

    logger.info("Using in-memory response cache")
    return InMemoryCacheBackend(default_ttl=settings.cache_default_ttl)
