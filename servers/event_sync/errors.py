"""Exception types raised by the event sync pipeline."""

from typing import Optional


class EventSyncError(Exception):
    """Base class for pipeline errors."""


class ConfigError(EventSyncError):
    """Raised when pipeline configuration is invalid."""


class ProviderError(EventSyncError):
    """A provider call failed in a way that aborts the current city."""

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message
        self.status_code = status_code


class RateLimitedError(ProviderError):
    """Provider answered HTTP 429; the same page should be retried."""

    def __init__(self, provider: str, retry_after: Optional[float] = None):
        super().__init__(provider, "rate limited", status_code=429)
        self.retry_after = retry_after


class RateLimitExhaustedError(ProviderError):
    """Provider kept rate limiting the same page past the retry budget."""

    def __init__(self, provider: str, page: int, attempts: int):
        super().__init__(
            provider,
            f"still rate limited on page {page} after {attempts} attempts",
            status_code=429,
        )
        self.page = page
        self.attempts = attempts
