"""
CacheManager - two-tier cache with a fresh copy and a longer-lived stale shadow.

Features:
- Fresh tier: type-specific TTL, served on the happy path
- Stale tier: shadow copy written alongside every fresh write with a longer
  TTL, read only when the live source has failed
- Store failures are soft: they are logged and treated as a cache miss
"""

import hashlib
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Generic, TypeVar

from loguru import logger

from statsgate.services.errors import StoreError
from statsgate.store.base import CacheStore

T = TypeVar("T")

STALE_PREFIX = "stale:"


@dataclass
class CacheEntry(Generic[T]):
    """A single cache entry with metadata."""

    value: T
    stored_at: float
    ttl_seconds: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "value": self.value,
            "stored_at": self.stored_at,
            "ttl_seconds": self.ttl_seconds,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "CacheEntry[Any]":
        return cls(
            value=raw["value"],
            stored_at=float(raw["stored_at"]),
            ttl_seconds=float(raw["ttl_seconds"]),
        )


@dataclass
class CacheResult(Generic[T]):
    """Result from cache lookup."""

    data: T
    from_cache: str  # 'fresh' | 'stale'
    is_stale: bool
    stored_at: float


@dataclass
class CacheStats:
    """Cache statistics."""

    hits: int = 0
    misses: int = 0
    stale_hits: int = 0
    store_errors: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.hits + self.stale_hits + self.misses
        if total == 0:
            return 0.0
        return (self.hits + self.stale_hits) / total

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "stale_hits": self.stale_hits,
            "store_errors": self.store_errors,
            "hit_rate": f"{self.hit_rate:.2%}",
        }


class CacheManager:
    """
    Two-tier cache on top of a CacheStore.

    Usage:
        cache = CacheManager(store, prefix="pubg:")

        result = await cache.get("player:steam:name")
        if result:
            return result.data

        data = await fetch_data()
        await cache.set("player:steam:name", data, ttl=timedelta(hours=1))

        # after the fetch failed
        stale = await cache.get_stale("player:steam:name")
    """

    def __init__(
        self,
        store: CacheStore,
        prefix: str = "statsgate:",
        stale_ttl_multiplier: int = 24,
        clock: Callable[[], float] = time.time,
        debug: bool = False,
    ):
        self._store = store
        self._prefix = prefix
        self._stale_ttl_multiplier = max(1, stale_ttl_multiplier)
        self._clock = clock
        self._debug = debug
        self._stats = CacheStats()

    @property
    def store(self) -> CacheStore:
        return self._store

    def generate_key(self, key: str) -> str:
        """Namespace a key, hashing it if it is too long for comfort."""
        if len(key) > 200:
            hash_val = hashlib.md5(key.encode()).hexdigest()[:16]
            return f"{self._prefix}{hash_val}"
        return f"{self._prefix}{key}"

    def _stale_key(self, key: str) -> str:
        return f"{self._prefix}{STALE_PREFIX}{self.generate_key(key)[len(self._prefix):]}"

    async def _read(self, store_key: str) -> CacheEntry[Any] | None:
        try:
            raw = await self._store.get(store_key)
        except StoreError as e:
            self._stats.store_errors += 1
            logger.warning(f"[CacheManager] store read failed, treating as miss: {e}")
            return None
        if raw is None:
            return None
        try:
            return CacheEntry.from_dict(raw)
        except (ValueError, KeyError, TypeError) as e:
            self._stats.store_errors += 1
            logger.warning(f"[CacheManager] corrupt entry at {store_key}, treating as miss: {e!r}")
            return None

    async def get(self, key: str) -> CacheResult[Any] | None:
        """
        Get a fresh value from cache.

        Returns CacheResult if found, None on miss or store failure.
        """
        entry = await self._read(self.generate_key(key))
        if entry is None:
            self._stats.misses += 1
            self._log(f"MISS: {key[:50]}")
            return None

        self._stats.hits += 1
        self._log(f"HIT: {key[:50]}")
        return CacheResult(
            data=entry.value,
            from_cache="fresh",
            is_stale=False,
            stored_at=entry.stored_at,
        )

    async def get_stale(self, key: str) -> CacheResult[Any] | None:
        """Get the shadow copy kept for failure fallback."""
        entry = await self._read(self._stale_key(key))
        if entry is None:
            self._log(f"STALE MISS: {key[:50]}")
            return None

        self._stats.stale_hits += 1
        self._log(f"STALE HIT: {key[:50]}")
        return CacheResult(
            data=entry.value,
            from_cache="stale",
            is_stale=True,
            stored_at=entry.stored_at,
        )

    async def set(
        self,
        key: str,
        data: Any,
        ttl: timedelta,
        stale_ttl: timedelta | None = None,
    ) -> bool:
        """
        Write the fresh copy and refresh its stale shadow.

        Args:
            key: Cache key (unprefixed)
            data: JSON-compatible data to cache
            ttl: Fresh time to live
            stale_ttl: Shadow time to live (ttl * stale_ttl_multiplier if not given)

        Returns:
            False if the store rejected the write
        """
        ttl_seconds = ttl.total_seconds()
        stale_seconds = (
            stale_ttl.total_seconds()
            if stale_ttl is not None
            else ttl_seconds * self._stale_ttl_multiplier
        )
        entry = CacheEntry(value=data, stored_at=self._clock(), ttl_seconds=ttl_seconds)

        try:
            await self._store.set(self.generate_key(key), entry.to_dict(), ttl_seconds)
            await self._store.set(
                self._stale_key(key), entry.to_dict(), max(stale_seconds, ttl_seconds)
            )
        except StoreError as e:
            self._stats.store_errors += 1
            logger.warning(f"[CacheManager] store write failed for {key[:50]}: {e}")
            return False

        self._log(f"SET: {key[:50]} (TTL: {ttl_seconds}s, stale: {stale_seconds}s)")
        return True

    async def delete(self, key: str) -> bool:
        """Delete both tiers of a key."""
        try:
            fresh = await self._store.delete(self.generate_key(key))
            stale = await self._store.delete(self._stale_key(key))
        except StoreError as e:
            self._stats.store_errors += 1
            logger.warning(f"[CacheManager] store delete failed for {key[:50]}: {e}")
            return False
        return fresh or stale

    async def invalidate(self, prefix: str, include_stale: bool = True) -> int:
        """
        Invalidate all keys starting with prefix.

        Returns:
            Number of entries invalidated
        """
        removed = 0
        try:
            removed += await self._store.clear_by_prefix(f"{self._prefix}{prefix}")
            if include_stale:
                removed += await self._store.clear_by_prefix(
                    f"{self._prefix}{STALE_PREFIX}{prefix}"
                )
        except StoreError as e:
            self._stats.store_errors += 1
            logger.warning(f"[CacheManager] invalidate '{prefix}' failed: {e}")
        if removed:
            self._log(f"INVALIDATE: {removed} entries matching '{prefix}'")
        return removed

    def get_stats(self) -> CacheStats:
        """Get cache statistics."""
        return self._stats

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[CacheManager] {message}")
