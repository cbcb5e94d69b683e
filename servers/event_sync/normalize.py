"""
Shared helpers for turning raw provider records into ExternalEvents.

Provider modules do the field extraction; this module holds the parsing
rules they have in common. Nothing here touches the network or the store.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional

import structlog
from dateutil import parser as date_parser
from pydantic import ValidationError

from .models import ExternalEvent

logger = structlog.get_logger()


def clean_str(value: Any) -> Optional[str]:
    """Trim a value to a string, treating empty as missing."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp into an aware UTC datetime.

    Naive values are taken as UTC. Returns None for missing or unparseable
    input.
    """
    text = clean_str(value)
    if not text:
        return None
    try:
        parsed = date_parser.isoparse(text)
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_epoch_millis(value: Any) -> Optional[datetime]:
    """Parse milliseconds since the epoch into an aware UTC datetime."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return datetime.fromtimestamp(float(value) / 1000, tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def build_event(**fields: Any) -> Optional[ExternalEvent]:
    """Build an ExternalEvent, or None if a mandatory field is missing."""
    for name in ("external_id", "title", "start_time", "external_url"):
        if not fields.get(name):
            return None
    try:
        return ExternalEvent(**fields)
    except ValidationError:
        return None


def normalize_records(
    records: Iterable[Any],
    normalize_record: Callable[[dict[str, Any]], Optional[ExternalEvent]],
    source: Optional[str] = None,
) -> list[ExternalEvent]:
    """Normalize a batch of raw records, dropping unusable ones.

    A record that is not a JSON object, or whose shape makes the provider
    normalizer fail, is dropped on its own; the rest of the batch survives.
    """
    events = []
    dropped = 0
    for record in records:
        if not isinstance(record, dict):
            dropped += 1
            continue
        try:
            event = normalize_record(record)
        except (AttributeError, KeyError, IndexError, TypeError, ValueError) as e:
            logger.debug("raw_record_rejected", provider=source, record_id=record.get("id"), error=str(e))
            event = None
        if event is None:
            dropped += 1
        else:
            events.append(event)

    if dropped:
        logger.debug("raw_records_dropped", provider=source, dropped=dropped, kept=len(events))
    return dedupe_by_external_id(events)


def dedupe_by_external_id(events: Iterable[ExternalEvent]) -> list[ExternalEvent]:
    """Collapse repeats of the same external id; the last occurrence wins."""
    by_id: dict[str, ExternalEvent] = {}
    for event in events:
        by_id.pop(event.external_id, None)
        by_id[event.external_id] = event
    return list(by_id.values())
