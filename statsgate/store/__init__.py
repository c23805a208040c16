"""
Shared key/value stores with per-entry TTL.
"""

from statsgate.settings import Settings
from statsgate.store.base import CacheStore
from statsgate.store.memory import MemoryCacheStore, StoreStats
from statsgate.store.redis import RedisCacheStore


def create_store(settings: Settings) -> CacheStore:
    """Redis when REDIS_URL is configured, in-process memory otherwise."""
    if settings.redis_url:
        return RedisCacheStore.from_url(settings.redis_url)
    return MemoryCacheStore(max_size=settings.cache_max_size)


__all__ = [
    "CacheStore",
    "MemoryCacheStore",
    "RedisCacheStore",
    "StoreStats",
    "create_store",
]
