"""
Pipeline configuration read from the environment.

Every setting has a default so a bare environment still runs; providers are
only configured when their credential variable is set. Each provider reads
its own prefix (TICKETMASTER_, EVENTBRITE_, MEETUP_); pipeline-wide settings
read EVENTS_.
"""

from typing import Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError
from .resilience.retry import RetryPolicy


DEFAULT_MAX_PAGES = 3
DEFAULT_RADIUS_MILES = 15
DEFAULT_STALE_DAYS = 2
DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///events.db"


class ProviderSettings(BaseSettings):
    """Credentials and limits for a single provider."""

    api_key: Optional[str] = None
    max_pages: int = Field(default=DEFAULT_MAX_PAGES, ge=1)

    model_config = SettingsConfigDict(
        # Blank variables count as unset
        env_ignore_empty=True,
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def configured(self) -> bool:
        return bool(self.api_key)


class TicketmasterSettings(ProviderSettings):
    model_config = SettingsConfigDict(env_prefix="TICKETMASTER_")


class EventbriteSettings(ProviderSettings):
    """Eventbrite authenticates with a bearer token rather than an API key."""

    api_key: Optional[str] = Field(default=None, validation_alias="EVENTBRITE_TOKEN")

    model_config = SettingsConfigDict(env_prefix="EVENTBRITE_")


class MeetupSettings(ProviderSettings):
    """Meetup search accepts extra free-text and coordinate filters."""

    text: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None

    model_config = SettingsConfigDict(env_prefix="MEETUP_")


class PipelineSettings(BaseSettings):
    """Settings for one pipeline run."""

    ticketmaster: TicketmasterSettings = Field(default_factory=TicketmasterSettings)
    eventbrite: EventbriteSettings = Field(default_factory=EventbriteSettings)
    meetup: MeetupSettings = Field(default_factory=MeetupSettings)

    radius_miles: int = Field(default=DEFAULT_RADIUS_MILES, ge=1)
    stale_days: float = Field(default=DEFAULT_STALE_DAYS, gt=0)
    concurrency: int = Field(default=4, ge=1)
    request_timeout: float = Field(default=30.0, gt=0)
    page_delay: float = Field(default=0.35, ge=0)
    rate_limit_backoff: float = Field(default=1.5, ge=0)
    rate_limit_max_retries: int = Field(default=5, ge=0)
    database_url: str = Field(default=DEFAULT_DATABASE_URL, min_length=1)

    model_config = SettingsConfigDict(
        env_prefix="EVENTS_",
        env_ignore_empty=True,
        extra="ignore",
    )

    @classmethod
    def from_env(cls) -> "PipelineSettings":
        """Build settings from environment variables.

        Raises:
            ConfigError: If a variable cannot be parsed or is out of range
        """
        try:
            return cls(
                ticketmaster=TicketmasterSettings(),
                eventbrite=EventbriteSettings(),
                meetup=MeetupSettings(),
            )
        except ValidationError as e:
            raise ConfigError(str(e)) from e

    @property
    def retry(self) -> RetryPolicy:
        """Backoff policy for rate-limited pages."""
        return RetryPolicy(
            base_delay=self.rate_limit_backoff,
            max_retries=self.rate_limit_max_retries,
        )

    def with_max_pages(self, max_pages: int) -> "PipelineSettings":
        """Copy of these settings with every provider capped at max_pages."""
        return self.model_copy(
            update={
                "ticketmaster": self.ticketmaster.model_copy(update={"max_pages": max_pages}),
                "eventbrite": self.eventbrite.model_copy(update={"max_pages": max_pages}),
                "meetup": self.meetup.model_copy(update={"max_pages": max_pages}),
            }
        )
