"""Response cache shielding the ERP from redundant traffic."""

from core.cache.backends import (
    DEFAULT_TTL,
    CacheBackend,
    CacheEntry,
    InMemoryCacheBackend,
    RedisCacheBackend,
    create_cache_backend,
)
from core.cache.sweeper import CacheSweeper

__all__ = [
    "DEFAULT_TTL",
    "CacheBackend",
    "CacheEntry",
    "InMemoryCacheBackend",
    "RedisCacheBackend",
    "create_cache_backend",
    "CacheSweeper",
]
