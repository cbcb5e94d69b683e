"""
Common provider client behaviour.

A provider fetches one page of a location search and maps its raw records
into ExternalEvents. Providers differ in request shape and pagination idiom;
the pagination driver only sees fetch_page() and start_page.
"""

from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional

import httpx
import structlog

from ..errors import ProviderError, RateLimitedError
from ..models import ExternalEvent, Page

logger = structlog.get_logger()


class Provider(ABC):
    """Base class for an external event provider."""

    name: str = "provider"
    start_page: int = 0

    def __init__(self, client: httpx.AsyncClient, api_key: str, max_pages: int = 3):
        """Initialize provider.

        Args:
            client: Shared HTTP client for the run
            api_key: Credential for this provider
            max_pages: Page cap per city
        """
        self.client = client
        self.api_key = api_key
        self.max_pages = max_pages

    @abstractmethod
    async def fetch_page(self, city: str, state: str, radius_miles: int, page: int) -> Page:
        """Fetch one page of raw records.

        Raises:
            RateLimitedError: Provider answered HTTP 429
            ProviderError: Any other failure for this city
        """

    @abstractmethod
    def normalize_record(self, raw: dict[str, Any]) -> Optional[ExternalEvent]:
        """Map one raw record to an ExternalEvent, or None if unusable."""

    async def _get_json(
        self,
        url: str,
        params: Mapping[str, Any],
        headers: Optional[Mapping[str, str]] = None,
    ) -> dict[str, Any]:
        """GET a JSON object, translating failures into provider errors."""
        logger.debug("provider_request", provider=self.name, url=url, page=params.get("page"))
        try:
            response = await self.client.get(url, params=params, headers=headers)
        except httpx.TimeoutException as e:
            raise ProviderError(self.name, f"request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise ProviderError(self.name, f"request failed: {e}") from e

        if response.status_code == 429:
            raise RateLimitedError(self.name, retry_after=_retry_after(response))

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                self.name,
                f"HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(
                self.name, "malformed JSON response", status_code=response.status_code
            ) from e

        if not isinstance(data, dict):
            raise ProviderError(
                self.name, "unexpected JSON payload", status_code=response.status_code
            )
        return data

    def _record_list(self, value: Any, field: str) -> list[Any]:
        """The raw records of a page; a missing list means no records."""
        if value is None:
            return []
        if not isinstance(value, list):
            raise ProviderError(self.name, f"unexpected {field} payload: {type(value).__name__}")
        return value


def _retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def as_dict(value: Any) -> dict[str, Any]:
    """value if it is a JSON object, else an empty one."""
    return value if isinstance(value, dict) else {}


def first_item(value: Any) -> Optional[Any]:
    """First element of a list-like value, if any."""
    if isinstance(value, list) and value:
        return value[0]
    return None
