"""
Cache store interface shared by the outbound cache and the inbound limiters.
"""

from abc import ABC, abstractmethod
from typing import Any


class CacheStore(ABC):
    """
    Async key/value store with per-entry TTL.

    Implementations raise StoreError when the backend is unreachable;
    callers decide whether that is a miss (cache) or a fail-open (limiters).
    Values must be JSON-compatible.
    """

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Get a value, or None if missing or expired."""
        ...

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        """Set a value that expires after ttl_seconds."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a key. Returns True if it existed."""
        ...

    @abstractmethod
    async def exists(self, key: str) -> bool:
        ...

    @abstractmethod
    async def clear_by_prefix(self, prefix: str) -> int:
        """Delete every key starting with prefix. Returns the count removed."""
        ...

    @abstractmethod
    async def incr(self, key: str, ttl_seconds: float) -> int:
        """
        Atomically increment an integer counter.

        A missing key starts at 0 and gets ttl_seconds; the TTL of an
        existing key is left untouched.
        """
        ...

    @abstractmethod
    async def compare_and_set(
        self,
        key: str,
        expected: Any | None,
        value: Any,
        ttl_seconds: float,
    ) -> bool:
        """
        Set key to value only if its current value equals expected.

        expected=None means "key must be absent". Returns False when another
        writer got there first.
        """
        ...

    async def ping(self) -> bool:
        """Check the backend is reachable."""
        return True

    async def close(self) -> None:
        """Release backend resources."""
        return None
