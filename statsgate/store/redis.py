"""
RedisCacheStore - shared cache store on redis.asyncio.

Values are stored as JSON. Counter increments run as a Lua script so the
first increment and its expiry are applied atomically; compare-and-set
uses WATCH/MULTI optimistic transactions.
"""

import json
import math
from typing import Any

import redis.asyncio as redis
from loguru import logger
from redis.exceptions import RedisError, WatchError

from statsgate.services.errors import StoreError
from statsgate.store.base import CacheStore

INCR_WITH_TTL = """
local count = redis.call('INCR', KEYS[1])
if count == 1 then
    redis.call('PEXPIRE', KEYS[1], ARGV[1])
end
return count
"""


def _ttl_ms(ttl_seconds: float) -> int:
    return max(1, int(math.ceil(ttl_seconds * 1000)))


class RedisCacheStore(CacheStore):
    """
    Redis-backed store shared by every service instance.

    Usage:
        store = RedisCacheStore.from_url("redis://localhost:6379/0")
        await store.set("key", {"a": 1}, ttl_seconds=60)
    """

    def __init__(self, client: Any):
        self._client = client
        self._incr_script = client.register_script(INCR_WITH_TTL)

    @classmethod
    def from_url(cls, url: str) -> "RedisCacheStore":
        return cls(redis.from_url(url, decode_responses=True))

    async def get(self, key: str) -> Any | None:
        try:
            raw = await self._client.get(key)
        except RedisError as e:
            raise StoreError(f"GET {key} failed: {e}") from e
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            raise StoreError(f"GET {key} returned undecodable value: {e}") from e

    async def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        try:
            await self._client.set(key, json.dumps(value), px=_ttl_ms(ttl_seconds))
        except RedisError as e:
            raise StoreError(f"SET {key} failed: {e}") from e

    async def delete(self, key: str) -> bool:
        try:
            return bool(await self._client.delete(key))
        except RedisError as e:
            raise StoreError(f"DEL {key} failed: {e}") from e

    async def exists(self, key: str) -> bool:
        try:
            return bool(await self._client.exists(key))
        except RedisError as e:
            raise StoreError(f"EXISTS {key} failed: {e}") from e

    async def clear_by_prefix(self, prefix: str) -> int:
        removed = 0
        try:
            batch: list[str] = []
            async for key in self._client.scan_iter(match=f"{prefix}*", count=500):
                batch.append(key)
                if len(batch) >= 500:
                    removed += await self._client.delete(*batch)
                    batch = []
            if batch:
                removed += await self._client.delete(*batch)
        except RedisError as e:
            raise StoreError(f"Clearing prefix '{prefix}' failed: {e}") from e
        logger.debug(f"[RedisCacheStore] cleared {removed} keys with prefix '{prefix}'")
        return removed

    async def incr(self, key: str, ttl_seconds: float) -> int:
        try:
            return int(
                await self._incr_script(keys=[key], args=[_ttl_ms(ttl_seconds)])
            )
        except RedisError as e:
            raise StoreError(f"INCR {key} failed: {e}") from e

    async def compare_and_set(
        self,
        key: str,
        expected: Any | None,
        value: Any,
        ttl_seconds: float,
    ) -> bool:
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                await pipe.watch(key)
                raw = await pipe.get(key)
                current = json.loads(raw) if raw is not None else None
                if current != expected:
                    await pipe.unwatch()
                    return False
                pipe.multi()
                pipe.set(key, json.dumps(value), px=_ttl_ms(ttl_seconds))
                await pipe.execute()
                return True
        except WatchError:
            return False
        except RedisError as e:
            raise StoreError(f"CAS {key} failed: {e}") from e

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError as e:
            raise StoreError(f"PING failed: {e}") from e

    async def close(self) -> None:
        await self._client.aclose()
