"""
Temporary blocking of abusive identifiers.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable

from loguru import logger

from statsgate.services.errors import StoreError
from statsgate.services.events import EventCategory, EventSink, Severity
from statsgate.store.base import CacheStore


@dataclass
class BlockRecord:
    identifier: str
    blocked_until: float
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {"blocked_until": self.blocked_until, "reason": self.reason}


class AbuseBlocker:
    """
    Marks identifiers as blocked for a fixed duration.

    A block is a ``blocked:{identifier}`` key whose store TTL equals the
    block duration, so it lifts itself without any cleanup job.
    """

    KEY_PREFIX = "blocked"

    def __init__(
        self,
        store: CacheStore,
        events: EventSink | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.events = events or EventSink()
        self._clock = clock

    def _key(self, identifier: str) -> str:
        return f"{self.KEY_PREFIX}:{identifier}"

    async def get_block(self, identifier: str) -> BlockRecord | None:
        """Current block of identifier, None if not blocked or the store failed."""
        try:
            raw = await self.store.get(self._key(identifier))
        except StoreError as e:
            logger.error(f"Block lookup failed for {identifier}, treating as unblocked: {e}")
            return None
        if not isinstance(raw, dict):
            return None
        record = BlockRecord(
            identifier=identifier,
            blocked_until=float(raw.get("blocked_until", 0)),
            reason=str(raw.get("reason", "")),
        )
        if record.blocked_until <= self._clock():
            return None
        return record

    async def is_blocked(self, identifier: str) -> bool:
        return await self.get_block(identifier) is not None

    async def block(
        self,
        identifier: str,
        duration_seconds: float = 300.0,
        reason: str = "Rate limit exceeded",
    ) -> BlockRecord:
        record = BlockRecord(
            identifier=identifier,
            blocked_until=self._clock() + duration_seconds,
            reason=reason,
        )
        try:
            await self.store.set(
                self._key(identifier), record.to_dict(), ttl_seconds=duration_seconds
            )
        except StoreError as e:
            logger.error(f"Failed to persist block for {identifier}: {e}")

        metadata = {
            "identifier": identifier,
            "duration_seconds": duration_seconds,
            "reason": reason,
        }
        self.events.log_event(
            EventCategory.SECURITY,
            Severity.WARNING,
            f"{identifier} temporarily blocked",
            metadata,
        )
        self.events.create_alert(
            Severity.CRITICAL,
            EventCategory.SECURITY.value,
            "Identifier temporarily blocked",
            metadata,
        )
        return record

    async def unblock(self, identifier: str) -> bool:
        try:
            removed = await self.store.delete(self._key(identifier))
        except StoreError as e:
            logger.error(f"Failed to unblock {identifier}: {e}")
            return False
        if removed:
            self.events.log_event(
                EventCategory.SECURITY,
                Severity.INFO,
                f"{identifier} unblocked",
                {"identifier": identifier},
            )
        return removed
