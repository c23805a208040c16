"""
RequestPacer - keeps at least min_interval between upstream requests.
"""

import asyncio
import time
from typing import Awaitable, Callable

from loguru import logger


class RequestPacer:
    """
    Single-slot request smoothing.

    Not a rate limiter: it only stops the client from calling upstream more
    than once per min_interval. Concurrent callers queue on a lock and are
    released one interval apart.

    Usage:
        pacer = RequestPacer(min_interval=1.0)
        await pacer.before_request()
        response = await http.get(...)
    """

    def __init__(
        self,
        min_interval: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ):
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep or asyncio.sleep
        self._last_request_at: float | None = None
        self._lock = asyncio.Lock()

    @property
    def last_request_at(self) -> float | None:
        return self._last_request_at

    async def before_request(self) -> None:
        """Wait until the next request slot, then claim it."""
        async with self._lock:
            if self._last_request_at is not None:
                elapsed = self._clock() - self._last_request_at
                remaining = self.min_interval - elapsed
                if remaining > 0:
                    logger.debug(f"Pacing upstream request for {remaining:.3f}s")
                    await self._sleep(remaining)
            self._last_request_at = self._clock()
