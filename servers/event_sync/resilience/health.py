"""Health tracking for event providers over a run."""

from datetime import datetime, timezone
from typing import Any

import structlog

logger = structlog.get_logger()


class HealthMonitor:
    """Track per-provider success and failure across city fetches.

    A provider counts as healthy while its most recent city fetch succeeded.
    Totals are kept so the run report can show how widespread failures were.
    """

    def __init__(self):
        """Initialize health monitor with empty status."""
        self.status: dict[str, dict[str, Any]] = {}

    def _entry(self, provider: str) -> dict[str, Any]:
        return self.status.setdefault(
            provider,
            {
                "healthy": True,
                "last_check": None,
                "cities_ok": 0,
                "cities_failed": 0,
                "event_count": 0,
                "consecutive_failures": 0,
                "last_error": None,
            },
        )

    def record_success(self, provider: str, city: str, event_count: int) -> None:
        """Record a successful fetch of one city from a provider.

        Args:
            provider: Provider name
            city: City label the fetch was for
            event_count: Number of events upserted
        """
        entry = self._entry(provider)
        entry.update(
            healthy=True,
            last_check=datetime.now(timezone.utc).isoformat(),
            consecutive_failures=0,
        )
        entry["cities_ok"] += 1
        entry["event_count"] += event_count
        logger.debug("provider_healthy", provider=provider, city=city, event_count=event_count)

    def record_failure(self, provider: str, city: str, error: str) -> None:
        """Record a failed fetch of one city from a provider.

        Args:
            provider: Provider name
            city: City label the fetch was for
            error: Error message describing the failure
        """
        entry = self._entry(provider)
        entry.update(
            healthy=False,
            last_check=datetime.now(timezone.utc).isoformat(),
            last_error=error,
        )
        entry["cities_failed"] += 1
        entry["consecutive_failures"] += 1
        logger.debug(
            "provider_unhealthy",
            provider=provider,
            city=city,
            consecutive_failures=entry["consecutive_failures"],
            error=error,
        )

    def is_healthy(self, provider: str) -> bool:
        """Check if a provider is currently healthy; unknown providers are."""
        return self.status.get(provider, {}).get("healthy", True)

    def get_provider_status(self, provider: str) -> dict[str, Any] | None:
        return self.status.get(provider)

    def get_status(self) -> dict[str, Any]:
        """Get full health status report.

        Returns:
            Dict with timestamp, summary counts and all provider statuses
        """
        healthy_count = sum(1 for s in self.status.values() if s["healthy"])
        total_count = len(self.status)

        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "summary": {
                "healthy": healthy_count,
                "unhealthy": total_count - healthy_count,
                "total": total_count,
            },
            "providers": self.status,
        }

    def get_unhealthy_providers(self) -> list[str]:
        return [name for name, status in self.status.items() if not status["healthy"]]
