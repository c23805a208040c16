"""
MemoryCacheStore - in-process cache store with TTL and oldest-write eviction.

Suitable for a single instance and for tests. Counters and buckets kept
here are only consistent within one process; use RedisCacheStore when
several instances must share limits.
"""

import asyncio
import copy
import time
from dataclasses import dataclass
from typing import Any, Callable

from loguru import logger

from statsgate.store.base import CacheStore

# Key namespaces of the admission limiters and the abuse blocker
PROTECTED_PREFIXES = ("ratelimit:", "burst:", "blocked:")


@dataclass
class StoreEntry:
    """A single stored value with its expiry."""

    value: Any
    stored_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass
class StoreStats:
    """Store statistics."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    size: int = 0
    max_size: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    def to_dict(self) -> dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "size": self.size,
            "max_size": self.max_size,
            "hit_rate": f"{self.hit_rate:.2%}",
        }


class MemoryCacheStore(CacheStore):
    """
    Async in-memory store.

    When full, expired entries go first, then the oldest write outside the
    protected prefixes. Admission counters, buckets and blocks live under
    those prefixes so size pressure from cached API data cannot reset them.

    Usage:
        store = MemoryCacheStore(max_size=1000)
        await store.set("key", {"a": 1}, ttl_seconds=60)
        value = await store.get("key")
    """

    def __init__(
        self,
        max_size: int = 5000,
        clock: Callable[[], float] = time.time,
        debug: bool = False,
        protected_prefixes: tuple[str, ...] = PROTECTED_PREFIXES,
    ):
        self._data: dict[str, StoreEntry] = {}
        self._max_size = max_size
        self._protected_prefixes = protected_prefixes
        self._clock = clock
        self._debug = debug
        self._lock = asyncio.Lock()
        self._stats = StoreStats()

    def _live(self, key: str) -> StoreEntry | None:
        """Return the entry for key, dropping it if expired. Caller holds the lock."""
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._data[key]
            self._log(f"EXPIRED: {key[:50]}")
            return None
        return entry

    def _put(self, key: str, value: Any, ttl_seconds: float) -> None:
        """Store a copy of value. Caller holds the lock."""
        if len(self._data) >= self._max_size and key not in self._data:
            self._evict()
        now = self._clock()
        self._data[key] = StoreEntry(
            value=copy.deepcopy(value),
            stored_at=now,
            expires_at=now + max(ttl_seconds, 0),
        )

    async def get(self, key: str) -> Any | None:
        async with self._lock:
            entry = self._live(key)
            if entry is None:
                self._stats.misses += 1
                self._log(f"MISS: {key[:50]}")
                return None
            self._stats.hits += 1
            self._log(f"HIT: {key[:50]}")
            return copy.deepcopy(entry.value)

    async def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        async with self._lock:
            self._put(key, value, ttl_seconds)
            self._log(f"SET: {key[:50]} (TTL: {ttl_seconds}s)")

    async def delete(self, key: str) -> bool:
        async with self._lock:
            existed = self._live(key) is not None
            self._data.pop(key, None)
            if existed:
                self._log(f"DELETE: {key[:50]}")
            return existed

    async def exists(self, key: str) -> bool:
        async with self._lock:
            return self._live(key) is not None

    async def clear_by_prefix(self, prefix: str) -> int:
        async with self._lock:
            keys_to_delete = [k for k in self._data if k.startswith(prefix)]
            for key in keys_to_delete:
                del self._data[key]
            if keys_to_delete:
                self._log(f"CLEAR: {len(keys_to_delete)} entries with prefix '{prefix}'")
            return len(keys_to_delete)

    async def incr(self, key: str, ttl_seconds: float) -> int:
        async with self._lock:
            entry = self._live(key)
            if entry is None:
                self._put(key, 1, ttl_seconds)
                return 1
            entry.value = int(entry.value) + 1
            return entry.value

    async def compare_and_set(
        self,
        key: str,
        expected: Any | None,
        value: Any,
        ttl_seconds: float,
    ) -> bool:
        async with self._lock:
            entry = self._live(key)
            current = entry.value if entry is not None else None
            if current != expected:
                return False
            self._put(key, value, ttl_seconds)
            return True

    async def ttl(self, key: str) -> float | None:
        """Seconds until key expires, or None if missing."""
        async with self._lock:
            entry = self._live(key)
            if entry is None:
                return None
            return entry.expires_at - self._clock()

    async def cleanup_expired(self) -> int:
        """Remove all expired entries. Returns count of removed entries."""
        async with self._lock:
            now = self._clock()
            expired_keys = [k for k, v in self._data.items() if v.is_expired(now)]
            for key in expired_keys:
                del self._data[key]
            if expired_keys:
                self._log(f"CLEANUP: {len(expired_keys)} expired entries removed")
            return len(expired_keys)

    def _evict(self) -> None:
        """Make room for one entry. Caller holds the lock."""
        if not self._data:
            return
        now = self._clock()
        expired = [k for k, entry in self._data.items() if entry.is_expired(now)]
        if expired:
            for key in expired:
                del self._data[key]
            self._log(f"EVICT: {len(expired)} expired entries")
            return

        candidates = [
            k for k in self._data if not k.startswith(self._protected_prefixes)
        ] or list(self._data)
        oldest_key = min(candidates, key=lambda k: self._data[k].stored_at)
        del self._data[oldest_key]
        self._stats.evictions += 1
        self._log(f"EVICT: {oldest_key[:50]}")

    def get_stats(self) -> StoreStats:
        self._stats.size = len(self._data)
        self._stats.max_size = self._max_size
        return self._stats

    def _log(self, message: str) -> None:
        if self._debug:
            logger.debug(f"[MemoryCacheStore] {message}")
