"""Resilience patterns for provider calls: backoff, throttling, health."""

from .health import HealthMonitor
from .retry import RetryPolicy
from .throttle import ProviderThrottle

__all__ = [
    "RetryPolicy",
    "ProviderThrottle",
    "HealthMonitor",
]
