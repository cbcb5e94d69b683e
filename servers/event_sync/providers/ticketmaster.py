"""
Ticketmaster Discovery API integration.

Ticket-marketplace source: concerts, sports, theater.
Pages are zero-based; the response carries page.totalPages.
API key goes in the query string.
"""

from typing import Any, Optional

from ..models import ExternalEvent, Page
from ..normalize import build_event, clean_str, parse_timestamp
from .base import Provider, as_dict, first_item


TICKETMASTER_BASE = "https://app.ticketmaster.com/discovery/v2/events.json"
PAGE_SIZE = 50


class TicketmasterProvider(Provider):
    """Search Ticketmaster events around a city."""

    name = "ticketmaster"
    start_page = 0

    async def fetch_page(self, city: str, state: str, radius_miles: int, page: int) -> Page:
        params = {
            "city": city,
            "stateCode": state,
            "radius": radius_miles,
            "unit": "miles",
            "size": PAGE_SIZE,
            "page": page,
            "sort": "date,asc",
            "apikey": self.api_key,
        }
        data = await self._get_json(TICKETMASTER_BASE, params)

        events = self._record_list(as_dict(data.get("_embedded")).get("events"), "_embedded.events")
        total_pages = _as_int(as_dict(data.get("page")).get("totalPages"))

        # No page block or totalPages 0 means nothing left to ask for
        is_last = total_pages is None or page + 1 >= total_pages or not events
        return Page(events=list(events), is_last_page=is_last)

    def normalize_record(self, raw: dict[str, Any]) -> Optional[ExternalEvent]:
        dates = as_dict(raw.get("dates"))
        start = as_dict(dates.get("start"))
        end = as_dict(dates.get("end"))

        venue = as_dict(first_item(as_dict(raw.get("_embedded")).get("venues")))

        return build_event(
            external_id=clean_str(raw.get("id")),
            title=clean_str(raw.get("name")),
            description=clean_str(raw.get("description")) or clean_str(raw.get("info")),
            start_time=_parse_start(start),
            end_time=parse_timestamp(end.get("dateTime")),
            venue_name=clean_str(venue.get("name")),
            category=_segment(raw.get("classifications")),
            external_url=clean_str(raw.get("url")),
        )


def _segment(classifications: Any) -> Optional[str]:
    """Segment name (e.g. Music) of the primary classification."""
    segment = as_dict(as_dict(first_item(classifications)).get("segment"))
    name = clean_str(segment.get("name"))
    # Ticketmaster uses "Undefined" for unclassified events
    return None if name == "Undefined" else name


def _parse_start(start: dict[str, Any]):
    """Prefer the UTC dateTime; fall back to localDate plus localTime."""
    parsed = parse_timestamp(start.get("dateTime"))
    if parsed:
        return parsed

    local_date = clean_str(start.get("localDate"))
    if not local_date:
        return None
    local_time = clean_str(start.get("localTime"))
    return parse_timestamp(f"{local_date}T{local_time}" if local_time else local_date)


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
