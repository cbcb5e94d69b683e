"""
Eventbrite event search integration.

Generic events API: meetups, classes, community happenings.
Pages are one-based; the response carries pagination.page_count and
pagination.has_more_items. Authenticates with a bearer token.
"""

from typing import Any, Optional

from ..models import ExternalEvent, Page
from ..normalize import build_event, clean_str, parse_timestamp
from .base import Provider, as_dict


EVENTBRITE_BASE = "https://www.eventbriteapi.com/v3/events/search/"


class EventbriteProvider(Provider):
    """Search Eventbrite events within a radius of a city."""

    name = "eventbrite"
    start_page = 1

    async def fetch_page(self, city: str, state: str, radius_miles: int, page: int) -> Page:
        params = {
            "location.address": f"{city}, {state}",
            "location.within": f"{radius_miles}mi",
            "sort_by": "date",
            "expand": "venue,category",
            "page": page,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        data = await self._get_json(EVENTBRITE_BASE, params, headers=headers)

        events = self._record_list(data.get("events"), "events")
        pagination = as_dict(data.get("pagination"))
        return Page(events=list(events), is_last_page=_is_last_page(pagination, page, events))

    def normalize_record(self, raw: dict[str, Any]) -> Optional[ExternalEvent]:
        venue = as_dict(raw.get("venue"))

        return build_event(
            external_id=clean_str(raw.get("id")),
            title=_text(raw.get("name")),
            description=_text(raw.get("description")) or clean_str(raw.get("summary")),
            start_time=_parse_when(raw.get("start")),
            end_time=_parse_when(raw.get("end")),
            venue_name=clean_str(venue.get("name")),
            category=clean_str(as_dict(raw.get("category")).get("name")),
            external_url=clean_str(raw.get("url")),
        )


def _is_last_page(pagination: dict[str, Any], page: int, events: list) -> bool:
    if not events:
        return True
    if "has_more_items" in pagination:
        return not pagination["has_more_items"]
    page_count = pagination.get("page_count")
    try:
        return page >= int(page_count)
    except (TypeError, ValueError):
        return True


def _text(value: Any) -> Optional[str]:
    """Eventbrite wraps strings as {"text": ..., "html": ...}."""
    if isinstance(value, dict):
        return clean_str(value.get("text"))
    return clean_str(value)


def _parse_when(value: Any):
    if not isinstance(value, dict):
        return None
    return parse_timestamp(value.get("utc")) or parse_timestamp(value.get("local"))
