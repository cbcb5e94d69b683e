"""Per-provider request spacing shared by concurrent city workers."""

import asyncio
import time
from typing import Awaitable, Callable

import structlog

logger = structlog.get_logger()

Sleep = Callable[[float], Awaitable[None]]
Clock = Callable[[], float]


class ProviderThrottle:
    """Serialize request start times for one provider.

    Every request waits until at least min_interval seconds have passed since
    the previous request to the same provider. A rate-limit backoff pushes the
    next allowed start out for every worker sharing this throttle, so cities
    processed in parallel still back off together.
    """

    def __init__(
        self,
        name: str,
        min_interval: float = 0.35,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = time.monotonic,
    ):
        """Initialize throttle.

        Args:
            name: Provider name for logging
            min_interval: Minimum seconds between request starts
            sleep: Awaitable sleep function (replaced in tests)
            clock: Monotonic clock in seconds (replaced in tests)
        """
        self.name = name
        self.min_interval = min_interval
        self._sleep = sleep
        self._clock = clock
        self._lock = asyncio.Lock()
        self._next_allowed = 0.0

    async def wait(self) -> None:
        """Block until this provider may be called again, then reserve the slot."""
        async with self._lock:
            delay = self._next_allowed - self._clock()
            if delay > 0:
                await self._sleep(delay)
            self._next_allowed = self._clock() + self.min_interval

    def back_off(self, delay: float) -> None:
        """Hold every caller of this provider for at least delay seconds."""
        until = self._clock() + delay
        if until > self._next_allowed:
            self._next_allowed = until
            logger.debug("provider_backoff_scheduled", provider=self.name, delay=round(delay, 2))
