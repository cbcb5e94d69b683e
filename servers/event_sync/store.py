"""
Event store: persisted events and the enabled-city table.

The pipeline talks to storage through the EventStore protocol. SqlEventStore
implements it with SQLAlchemy Core on an async engine. Uniqueness of
(source, external_event_id) is enforced by the database, and upserts use
INSERT ... ON CONFLICT DO UPDATE so concurrent workers never duplicate rows.
"""

from datetime import datetime, timezone
from typing import Optional, Protocol, Sequence

import structlog
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    select,
    update,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from .models import EnabledCity, ExternalEvent, StoredEvent

logger = structlog.get_logger()

metadata = MetaData()

external_events = Table(
    "external_events",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("source", String(64), nullable=False),
    Column("external_event_id", String(255), nullable=False),
    Column("title", String(512), nullable=False),
    Column("description", Text, nullable=True),
    Column("start_time", DateTime, nullable=False),
    Column("end_time", DateTime, nullable=True),
    Column("venue_name", String(255), nullable=True),
    Column("category", String(64), nullable=True, index=True),
    Column("external_url", String(2048), nullable=False),
    Column("city", String(128), nullable=False),
    Column("state", String(32), nullable=False),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("first_seen_at", DateTime, nullable=False),
    Column("last_fetched_at", DateTime, nullable=False, index=True),
    UniqueConstraint("source", "external_event_id", name="uq_external_events_source_external_id"),
)

enabled_cities = Table(
    "enabled_cities",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("city", String(128), nullable=False),
    Column("state", String(32), nullable=False),
    Column("events_enabled", Boolean, nullable=False, default=True),
    UniqueConstraint("city", "state", name="uq_enabled_cities_city_state"),
)

# Columns refreshed on every sighting of an existing event
MUTABLE_COLUMNS = (
    "title",
    "description",
    "start_time",
    "end_time",
    "venue_name",
    "category",
    "external_url",
    "city",
    "state",
    "is_active",
    "last_fetched_at",
)


class EventStore(Protocol):
    """Storage operations the pipeline depends on."""

    async def list_enabled_cities(self) -> list[EnabledCity]: ...

    async def upsert_events(
        self,
        source: str,
        city: str,
        state: str,
        events: Sequence[ExternalEvent],
        fetched_at: datetime,
    ) -> int: ...

    async def deactivate_stale(self, source: str, cutoff: datetime) -> int: ...

    async def list_events(
        self,
        source: Optional[str] = None,
        active: Optional[bool] = None,
        category: Optional[str] = None,
    ) -> list[StoredEvent]: ...


class SqlEventStore:
    """EventStore backed by a SQL database through SQLAlchemy."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine

    @classmethod
    def from_url(cls, url: str, **engine_kwargs) -> "SqlEventStore":
        """Create a store for a database URL, e.g. sqlite+aiosqlite:///events.db."""
        return cls(create_async_engine(url, **engine_kwargs))

    async def create_schema(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.create_all)
        logger.info("event_store_schema_ready", tables=sorted(metadata.tables))

    async def close(self) -> None:
        await self.engine.dispose()

    async def list_enabled_cities(self) -> list[EnabledCity]:
        stmt = (
            select(enabled_cities.c.city, enabled_cities.c.state, enabled_cities.c.events_enabled)
            .where(enabled_cities.c.events_enabled.is_(True))
            .order_by(enabled_cities.c.state, enabled_cities.c.city)
        )
        async with self.engine.connect() as conn:
            result = await conn.execute(stmt)
            return [EnabledCity.model_validate(row, from_attributes=True) for row in result]

    async def enable_city(self, city: str, state: str, enabled: bool = True) -> None:
        """Insert or update an enabled-city row."""
        stmt = self._insert(enabled_cities).values(city=city, state=state, events_enabled=enabled)
        stmt = stmt.on_conflict_do_update(
            index_elements=["city", "state"],
            set_={"events_enabled": stmt.excluded.events_enabled},
        )
        async with self.engine.begin() as conn:
            await conn.execute(stmt)

    async def upsert_events(
        self,
        source: str,
        city: str,
        state: str,
        events: Sequence[ExternalEvent],
        fetched_at: datetime,
    ) -> int:
        """Insert or refresh events keyed by (source, external id).

        Args:
            source: Provider name
            city: City the events were fetched for
            state: State the events were fetched for
            events: Canonical events from the normalizer
            fetched_at: Timestamp recorded as last_fetched_at

        Returns:
            Number of events written
        """
        if not events:
            return 0

        now = _to_db(fetched_at)
        rows = [
            {
                "source": source,
                "external_event_id": event.external_id,
                "title": event.title,
                "description": event.description,
                "start_time": _to_db(event.start_time),
                "end_time": _to_db(event.end_time),
                "venue_name": event.venue_name,
                "category": event.category,
                "external_url": event.external_url,
                "city": city,
                "state": state,
                "is_active": True,
                "first_seen_at": now,
                "last_fetched_at": now,
            }
            for event in events
        ]

        stmt = self._insert(external_events)
        stmt = stmt.on_conflict_do_update(
            index_elements=["source", "external_event_id"],
            set_={name: stmt.excluded[name] for name in MUTABLE_COLUMNS},
        )
        async with self.engine.begin() as conn:
            await conn.execute(stmt, rows)
        return len(rows)

    async def deactivate_stale(self, source: str, cutoff: datetime) -> int:
        """Mark active events of a source inactive when last fetched before cutoff.

        Returns:
            Number of rows deactivated
        """
        stmt = (
            update(external_events)
            .where(external_events.c.source == source)
            .where(external_events.c.is_active.is_(True))
            .where(external_events.c.last_fetched_at < _to_db(cutoff))
            .values(is_active=False)
        )
        async with self.engine.begin() as conn:
            result = await conn.execute(stmt)
            return result.rowcount

    async def list_events(
        self,
        source: Optional[str] = None,
        active: Optional[bool] = None,
        category: Optional[str] = None,
    ) -> list[StoredEvent]:
        """List stored events, optionally filtered by source, activity and category."""
        stmt = select(external_events).order_by(
            external_events.c.source, external_events.c.external_event_id
        )
        if source is not None:
            stmt = stmt.where(external_events.c.source == source)
        if active is not None:
            stmt = stmt.where(external_events.c.is_active.is_(active))
        if category is not None:
            stmt = stmt.where(external_events.c.category == category)

        async with self.engine.connect() as conn:
            result = await conn.execute(stmt)
            return [_row_to_stored_event(row) for row in result.mappings()]

    def _insert(self, table: Table):
        if self.engine.dialect.name == "postgresql":
            return postgresql.insert(table)
        return sqlite.insert(table)


def _to_db(value: Optional[datetime]) -> Optional[datetime]:
    """Store timestamps as naive UTC."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _from_db(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc)


def _row_to_stored_event(row) -> StoredEvent:
    return StoredEvent(
        source=row["source"],
        external_event_id=row["external_event_id"],
        title=row["title"],
        description=row["description"],
        start_time=_from_db(row["start_time"]),
        end_time=_from_db(row["end_time"]),
        venue_name=row["venue_name"],
        category=row["category"],
        external_url=row["external_url"],
        city=row["city"],
        state=row["state"],
        is_active=row["is_active"],
        first_seen_at=_from_db(row["first_seen_at"]),
        last_fetched_at=_from_db(row["last_fetched_at"]),
    )
