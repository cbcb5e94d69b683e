"""
Sync engine: idempotent upserts and the staleness sweep.

Upserts are scoped to one (source, city, state) batch. The sweep is scoped to
a whole source and runs once per pipeline run, after every city is done, so
it only deactivates events the provider has stopped returning everywhere.
"""

from datetime import datetime, timedelta
from typing import Callable, Sequence

import structlog

from .models import ExternalEvent, utc_now
from .store import EventStore

logger = structlog.get_logger()

Clock = Callable[[], datetime]


class SyncEngine:
    """Write canonical events into an EventStore and retire stale ones."""

    def __init__(self, store: EventStore, stale_days: float = 2, clock: Clock = utc_now):
        """Initialize sync engine.

        Args:
            store: Event store to write to
            stale_days: Days without a refresh before an event is deactivated
            clock: Returns the current aware UTC time (replaced in tests)
        """
        self.store = store
        self.stale_days = stale_days
        self.clock = clock

    async def upsert(
        self, source: str, city: str, state: str, events: Sequence[ExternalEvent]
    ) -> int:
        """Insert or refresh a batch of events for one source and city.

        Every written row ends up active with last_fetched_at set to now.
        Running the same batch twice leaves the same rows behind.

        Returns:
            Number of events written
        """
        count = await self.store.upsert_events(source, city, state, events, self.clock())
        logger.info("events_upserted", provider=source, city=city, state=state, count=count)
        return count

    def stale_cutoff(self) -> datetime:
        return self.clock() - timedelta(days=self.stale_days)

    async def sweep(self, source: str) -> int:
        """Deactivate events of a source not refreshed within the stale window.

        Returns:
            Number of rows deactivated
        """
        cutoff = self.stale_cutoff()
        count = await self.store.deactivate_stale(source, cutoff)
        logger.info(
            "stale_events_deactivated",
            provider=source,
            cutoff=cutoff.isoformat(),
            stale_days=self.stale_days,
            count=count,
        )
        return count
