"""
Pagination driver.

Walks a provider's pages for one city, retrying the same page after a
rate-limit signal and stopping at the provider's last page or the page cap.
"""

from typing import Any, Optional

import structlog
from pydantic import BaseModel, Field

from .errors import RateLimitedError, RateLimitExhaustedError
from .models import Page
from .providers.base import Provider
from .resilience.retry import RetryPolicy
from .resilience.throttle import ProviderThrottle

logger = structlog.get_logger()


class PageWalk(BaseModel):
    """Raw records from one provider/city walk, with the pages it took."""

    records: list[Any] = Field(default_factory=list)
    pages: int = 0
    rate_limited: int = 0


async def fetch_all_pages(
    provider: Provider,
    city: str,
    state: str,
    radius_miles: int,
    throttle: ProviderThrottle,
    policy: Optional[RetryPolicy] = None,
    max_pages: Optional[int] = None,
) -> PageWalk:
    """Fetch pages from a provider until its last page or the page cap.

    A rate-limited page is retried after a backoff and does not count toward
    max_pages. Any other provider error propagates to the caller.

    Args:
        provider: Provider client to call
        city: City to search
        state: State code to search
        radius_miles: Search radius
        throttle: Shared request spacing for this provider
        policy: Backoff policy for rate-limit signals
        max_pages: Page cap, defaults to the provider's own

    Returns:
        PageWalk with accumulated raw records

    Raises:
        RateLimitExhaustedError: Same page rate limited past policy.max_retries
        ProviderError: Any other failure from the provider
    """
    policy = policy or RetryPolicy()
    max_pages = provider.max_pages if max_pages is None else max_pages

    records: list[Any] = []
    page = provider.start_page
    pages_fetched = 0
    rate_limited = 0
    attempt = 0

    while pages_fetched < max_pages:
        await throttle.wait()
        try:
            result: Page = await provider.fetch_page(city, state, radius_miles, page)
        except RateLimitedError as e:
            rate_limited += 1
            if not policy.should_retry(attempt):
                raise RateLimitExhaustedError(provider.name, page, attempt + 1) from e

            delay = policy.delay_for(attempt, e.retry_after)
            attempt += 1
            logger.warning(
                "provider_rate_limited",
                provider=provider.name,
                city=city,
                state=state,
                page=page,
                attempt=attempt,
                delay=round(delay, 2),
            )
            throttle.back_off(delay)
            continue

        attempt = 0
        pages_fetched += 1
        records.extend(result.events)

        if result.is_last_page:
            break
        page += 1

    logger.debug(
        "provider_pages_fetched",
        provider=provider.name,
        city=city,
        state=state,
        pages=pages_fetched,
        records=len(records),
    )
    return PageWalk(records=records, pages=pages_fetched, rate_limited=rate_limited)
