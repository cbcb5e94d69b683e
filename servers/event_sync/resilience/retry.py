"""Backoff policy for rate-limited provider calls."""

import random

from pydantic import BaseModel, Field


class RetryPolicy(BaseModel):
    """How long to wait after a provider rate-limits us, and how often.

    The defaults reproduce a fixed 1.5s backoff. Set exponential_base above
    1.0 for exponential growth and jitter to spread concurrent workers out.
    """

    base_delay: float = Field(default=1.5, ge=0)
    max_retries: int = Field(default=5, ge=0)
    exponential_base: float = Field(default=1.0, ge=1.0)
    max_delay: float = Field(default=60.0, ge=0)
    jitter: bool = False

    def delay_for(self, attempt: int, retry_after: float | None = None) -> float:
        """Seconds to wait before retry number attempt (zero-based).

        Args:
            attempt: How many times this page has already been rate limited
            retry_after: Provider's Retry-After hint, if it sent one

        Returns:
            Delay in seconds, never below the provider's hint
        """
        delay = min(self.base_delay * (self.exponential_base**attempt), self.max_delay)
        if self.jitter:
            delay *= 0.5 + random.random()
        if retry_after is not None:
            delay = max(delay, min(retry_after, self.max_delay))
        return delay

    def should_retry(self, attempt: int) -> bool:
        """True while the retry budget for one page is not used up."""
        return attempt < self.max_retries
