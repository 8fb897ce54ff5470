from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, Optional


class Throttler:
    """Minimum spacing between outbound requests for one credential.

    Assumes a single caller at a time; requests for a client are already
    serialized within one orchestrator pass, so this is not a queue.
    """

    def __init__(
        self,
        min_interval: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.min_interval = max(0.0, float(min_interval))
        self._clock = clock
        self._sleep = sleep
        self._last_request_at: Optional[float] = None

    @classmethod
    def from_rate(cls, requests_per_minute: int, **kwargs) -> "Throttler":
        if not requests_per_minute or requests_per_minute <= 0:
            return cls(0.0, **kwargs)
        return cls(60.0 / requests_per_minute, **kwargs)

    async def wait(self) -> float:
        """Block until the interval since the previous request has elapsed.

        Returns the number of seconds slept.
        """
        now = self._clock()
        waited = 0.0
        if self._last_request_at is not None:
            remaining = self.min_interval - (now - self._last_request_at)
            if remaining > 0:
                await self._sleep(remaining)
                waited = remaining
                now = self._clock()
        self._last_request_at = now
        return waited
