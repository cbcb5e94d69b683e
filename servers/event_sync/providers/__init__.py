"""
Event provider clients.

Each provider implements:
- fetch_page(city, state, radius_miles, page) -> Page
- normalize_record(raw) -> ExternalEvent | None
- Provider-specific request shape and pagination idiom
"""

from typing import Iterable, Optional

import httpx
import structlog

from ..config import PipelineSettings
from .base import Provider
from .eventbrite import EventbriteProvider
from .meetup import MeetupProvider
from .ticketmaster import TicketmasterProvider

logger = structlog.get_logger()

PROVIDER_NAMES = ("ticketmaster", "eventbrite", "meetup")

CREDENTIAL_VARS = {
    "ticketmaster": "TICKETMASTER_API_KEY",
    "eventbrite": "EVENTBRITE_TOKEN",
    "meetup": "MEETUP_API_KEY",
}


def build_providers(
    settings: PipelineSettings,
    client: httpx.AsyncClient,
    only: Optional[Iterable[str]] = None,
) -> list[Provider]:
    """Create a client for every provider that has credentials.

    Args:
        settings: Pipeline settings
        client: Shared HTTP client for the run
        only: Restrict to these provider names

    Returns:
        Configured providers, in a stable order
    """
    wanted = set(only) if only else set(PROVIDER_NAMES)
    providers: list[Provider] = []

    for name in PROVIDER_NAMES:
        if name not in wanted:
            continue
        provider_settings = getattr(settings, name)
        if not provider_settings.configured:
            logger.info("provider_skipped", provider=name, reason=f"{CREDENTIAL_VARS[name]} not set")
            continue

        if name == "ticketmaster":
            providers.append(
                TicketmasterProvider(client, provider_settings.api_key, provider_settings.max_pages)
            )
        elif name == "eventbrite":
            providers.append(
                EventbriteProvider(client, provider_settings.api_key, provider_settings.max_pages)
            )
        else:
            providers.append(
                MeetupProvider(
                    client,
                    provider_settings.api_key,
                    provider_settings.max_pages,
                    text=provider_settings.text,
                    lat=provider_settings.lat,
                    lon=provider_settings.lon,
                )
            )

    return providers


__all__ = [
    "Provider",
    "TicketmasterProvider",
    "EventbriteProvider",
    "MeetupProvider",
    "PROVIDER_NAMES",
    "build_providers",
]
