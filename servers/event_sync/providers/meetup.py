"""
Meetup upcoming-events integration.

Meetup-style source: group gatherings and local meetups.
The endpoint has no page-count field, so every search is a single page.
API key and signing flag go in the query string.
"""

from datetime import timedelta
from typing import Any, Optional

import httpx

from ..models import ExternalEvent, Page
from ..normalize import build_event, clean_str, parse_epoch_millis, parse_timestamp
from .base import Provider, as_dict


MEETUP_BASE = "https://api.meetup.com/find/upcoming_events"


class MeetupProvider(Provider):
    """Search upcoming Meetup events near a city."""

    name = "meetup"
    start_page = 0

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        max_pages: int = 3,
        text: Optional[str] = None,
        lat: Optional[float] = None,
        lon: Optional[float] = None,
    ):
        super().__init__(client, api_key, max_pages=max_pages)
        self.text = text
        self.lat = lat
        self.lon = lon

    async def fetch_page(self, city: str, state: str, radius_miles: int, page: int) -> Page:
        params: dict[str, Any] = {
            "key": self.api_key,
            "sign": "true",
            "radius": radius_miles,
            "city": city,
            "state": state,
        }
        if self.text:
            params["text"] = self.text
        if self.lat is not None and self.lon is not None:
            params["lat"] = self.lat
            params["lon"] = self.lon

        data = await self._get_json(MEETUP_BASE, params)
        events = self._record_list(data.get("events"), "events")
        return Page(events=list(events), is_last_page=True)

    def normalize_record(self, raw: dict[str, Any]) -> Optional[ExternalEvent]:
        venue = as_dict(raw.get("venue"))
        start_time = _parse_start(raw)

        end_time = None
        duration = raw.get("duration")
        if start_time and isinstance(duration, (int, float)) and duration > 0:
            end_time = start_time + timedelta(milliseconds=duration)

        return build_event(
            external_id=clean_str(raw.get("id")),
            title=clean_str(raw.get("name")),
            description=clean_str(raw.get("description")),
            start_time=start_time,
            end_time=end_time,
            venue_name=clean_str(venue.get("name")),
            category=clean_str(as_dict(as_dict(raw.get("group")).get("category")).get("name")),
            external_url=clean_str(raw.get("link")),
        )


def _parse_start(raw: dict[str, Any]):
    """Epoch milliseconds first, then local_date/local_time."""
    parsed = parse_epoch_millis(raw.get("time"))
    if parsed:
        return parsed

    local_date = clean_str(raw.get("local_date"))
    if not local_date:
        return None
    local_time = clean_str(raw.get("local_time"))
    return parse_timestamp(f"{local_date}T{local_time}" if local_time else local_date)
