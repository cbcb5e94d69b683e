"""
Run orchestrator.

One run walks every enabled city through every configured provider,
upserts what it finds, then sweeps stale events once per provider:

    PENDING -> FETCHING -> SWEEPING -> DONE

A provider failing for one city is logged and skipped. Failing to read the
enabled cities or to sweep fails the whole run; upserts already committed
stay committed.
"""

import asyncio
import time
from typing import Optional, Sequence

import structlog

from .errors import ProviderError
from .models import EnabledCity, ProviderCityStats, RunReport, RunState, utc_now
from .normalize import normalize_records
from .pagination import fetch_all_pages
from .providers.base import Provider
from .resilience.health import HealthMonitor
from .resilience.retry import RetryPolicy
from .resilience.throttle import ProviderThrottle
from .store import EventStore
from .sync import SyncEngine

logger = structlog.get_logger()


class IngestionRunner:
    """Run the event ingestion pipeline once."""

    def __init__(
        self,
        store: EventStore,
        providers: Sequence[Provider],
        sync: Optional[SyncEngine] = None,
        radius_miles: int = 15,
        concurrency: int = 4,
        retry_policy: Optional[RetryPolicy] = None,
        throttles: Optional[dict[str, ProviderThrottle]] = None,
        page_delay: float = 0.35,
    ):
        """Initialize runner.

        Args:
            store: Event store holding events and enabled cities
            providers: Configured provider clients
            sync: Sync engine, defaults to one over store
            radius_miles: Search radius for every city
            concurrency: Number of cities processed at once
            retry_policy: Backoff policy for rate-limited pages
            throttles: Per-provider throttles, created from page_delay if absent
            page_delay: Minimum seconds between requests to one provider
        """
        self.store = store
        self.providers = list(providers)
        self.sync = sync or SyncEngine(store)
        self.radius_miles = radius_miles
        self.concurrency = max(1, concurrency)
        self.retry_policy = retry_policy or RetryPolicy()
        self.throttles = dict(throttles or {})
        for provider in self.providers:
            self.throttles.setdefault(
                provider.name, ProviderThrottle(provider.name, min_interval=page_delay)
            )
        self.health = HealthMonitor()
        self.state = RunState.PENDING

    async def run(self) -> RunReport:
        """Fetch, upsert and sweep.

        Returns:
            RunReport with per-city stats and sweep counts

        Raises:
            Exception: Store errors while reading cities or sweeping
        """
        report = RunReport(providers=[p.name for p in self.providers])
        started = time.monotonic()
        logger.info("ingestion_run_started", providers=report.providers)

        try:
            cities = await self.store.list_enabled_cities()
            report.cities = len(cities)

            self._transition(RunState.FETCHING)
            report.stats = await self._fetch_cities(cities)
            report.failed = [
                f"{s.provider}:{s.city},{s.state}" for s in report.stats if s.status == "error"
            ]

            # Sweep only after every city worker has finished
            self._transition(RunState.SWEEPING)
            for provider in self.providers:
                report.deactivated[provider.name] = await self.sync.sweep(provider.name)

            self._transition(RunState.DONE)
        except Exception:
            # The caller reports the failure
            self._transition(RunState.FAILED)
            raise

        report.state = self.state
        report.finished_at = utc_now()
        report.health = self.health.get_status()
        logger.info(
            "ingestion_run_finished",
            cities=report.cities,
            upserted=report.upserted,
            deactivated=report.deactivated,
            failed=len(report.failed),
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        return report

    async def _fetch_cities(self, cities: list[EnabledCity]) -> list[ProviderCityStats]:
        semaphore = asyncio.Semaphore(self.concurrency)

        async def worker(city: EnabledCity) -> list[ProviderCityStats]:
            async with semaphore:
                return await self.process_city(city)

        results = await asyncio.gather(*(worker(city) for city in cities))
        return [stats for city_stats in results for stats in city_stats]

    async def process_city(self, city: EnabledCity) -> list[ProviderCityStats]:
        """Run every provider for one city, one after another."""
        return [await self._process(provider, city) for provider in self.providers]

    async def _process(self, provider: Provider, city: EnabledCity) -> ProviderCityStats:
        started = time.monotonic()
        stats = ProviderCityStats(
            provider=provider.name, city=city.city, state=city.state, status="success"
        )

        try:
            walk = await fetch_all_pages(
                provider,
                city.city,
                city.state,
                self.radius_miles,
                throttle=self.throttles[provider.name],
                policy=self.retry_policy,
            )
            stats.pages = walk.pages
            stats.fetched = len(walk.records)

            events = normalize_records(walk.records, provider.normalize_record, source=provider.name)
            stats.normalized = len(events)
            if not events:
                logger.info(
                    "no_usable_events",
                    provider=provider.name,
                    city=city.city,
                    state=city.state,
                    fetched=stats.fetched,
                )
            else:
                stats.upserted = await self.sync.upsert(provider.name, city.city, city.state, events)
        except ProviderError as e:
            stats.status = "error"
            stats.status_code = e.status_code
            stats.error_message = e.message
            logger.warning(
                "provider_city_failed",
                provider=provider.name,
                city=city.city,
                state=city.state,
                status_code=e.status_code,
                error=e.message,
            )
        except Exception as e:
            # Upsert failures stay scoped to this city and provider
            stats.status = "error"
            stats.error_message = str(e)
            logger.warning(
                "city_upsert_failed",
                provider=provider.name,
                city=city.city,
                state=city.state,
                error=str(e),
                exc_info=True,
            )

        stats.duration_ms = int((time.monotonic() - started) * 1000)
        if stats.status == "success":
            self.health.record_success(provider.name, city.label, stats.upserted)
        else:
            self.health.record_failure(provider.name, city.label, stats.error_message or "")
        return stats

    def _transition(self, state: RunState) -> None:
        logger.debug("ingestion_run_state", previous=self.state.value, state=state.value)
        self.state = state
