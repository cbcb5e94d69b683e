"""
Pydantic models for event sync data structures.

These models define the core data types used throughout the pipeline:
- EnabledCity: A city the configuration store has switched events on for
- ExternalEvent: Canonical event produced by a provider's normalizer
- StoredEvent: Persisted event row with source, location and activity state
- Page: One page of raw provider records
- ProviderCityStats / RunReport: Observability output of a run
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class EnabledCity(BaseModel):
    """A city row read from the city configuration store."""

    city: str
    state: str
    events_enabled: bool = True

    @property
    def label(self) -> str:
        return f"{self.city},{self.state}"


class ExternalEvent(BaseModel):
    """Provider-agnostic event, produced by a normalizer."""

    external_id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    description: Optional[str] = None

    # Timing
    start_time: datetime
    end_time: Optional[datetime] = None

    venue_name: Optional[str] = None
    category: Optional[str] = None  # Provider classification, e.g. Music
    external_url: str = Field(min_length=1)  # Provenance link


class StoredEvent(BaseModel):
    """An event row as persisted by the sync engine."""

    model_config = ConfigDict(from_attributes=True)

    source: str  # ticketmaster, eventbrite, meetup
    external_event_id: str

    title: str
    description: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    venue_name: Optional[str] = None
    category: Optional[str] = None
    external_url: str

    # Location the event was fetched for
    city: str
    state: str

    is_active: bool = True
    first_seen_at: Optional[datetime] = None
    last_fetched_at: datetime


class Page(BaseModel):
    """One page of raw records returned by a provider.

    Records are kept as the provider sent them; the normalizer decides what is
    usable.
    """

    events: list[Any] = Field(default_factory=list)
    is_last_page: bool = False


class RunState(str, Enum):
    """States of a single pipeline run."""

    PENDING = "pending"
    FETCHING = "fetching"
    SWEEPING = "sweeping"
    DONE = "done"
    FAILED = "failed"


class ProviderCityStats(BaseModel):
    """Statistics from one provider for one city."""

    provider: str
    city: str
    state: str
    status: str  # success, error
    pages: int = 0
    fetched: int = 0
    normalized: int = 0
    upserted: int = 0
    duration_ms: Optional[int] = None
    status_code: Optional[int] = None
    error_message: Optional[str] = None


class RunReport(BaseModel):
    """Result of a full pipeline run."""

    state: RunState = RunState.PENDING
    started_at: datetime = Field(default_factory=utc_now)
    finished_at: Optional[datetime] = None
    providers: list[str] = Field(default_factory=list)
    cities: int = 0
    stats: list[ProviderCityStats] = Field(default_factory=list)
    deactivated: dict[str, int] = Field(default_factory=dict)
    failed: list[str] = Field(default_factory=list)
    health: dict[str, Any] = Field(default_factory=dict)

    @computed_field
    @property
    def upserted(self) -> int:
        """Total rows upserted across all cities and providers."""
        return sum(s.upserted for s in self.stats)

    @computed_field
    @property
    def total_deactivated(self) -> int:
        return sum(self.deactivated.values())
