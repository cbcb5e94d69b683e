"""Tests for the command-line entry point."""

import asyncio
import json
import logging
from unittest.mock import AsyncMock, patch

import pytest
import structlog
from structlog.testing import capture_logs

from servers.event_sync.__main__ import build_parser, configure_logging, main, run_pipeline
from servers.event_sync.config import PipelineSettings
from servers.event_sync.models import Page, RunState
from servers.event_sync.store import SqlEventStore


@pytest.fixture(autouse=True)
def quiet_logging():
    """Silence structlog so stdout only carries command output."""
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(logging.CRITICAL))
    with patch("servers.event_sync.__main__.configure_logging"):
        yield
    structlog.reset_defaults()


@pytest.fixture
def clean_env():
    with patch.dict("os.environ", {}, clear=True):
        yield


async def _cities(database_url: str):
    store = SqlEventStore.from_url(database_url)
    try:
        return await store.list_enabled_cities()
    finally:
        await store.close()


class TestParser:
    """Tests for argument parsing."""

    def test_run_options(self):
        """Should parse the run options."""
        args = build_parser().parse_args(
            ["--database-url", "sqlite+aiosqlite:///x.db", "run", "--provider", "meetup", "--max-pages", "2"]
        )

        assert args.command == "run"
        assert args.database_url == "sqlite+aiosqlite:///x.db"
        assert args.provider == ["meetup"]
        assert args.max_pages == 2

    def test_rejects_unknown_provider(self):
        """Should reject an unknown provider name."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(["run", "--provider", "facebook"])

    def test_rejects_zero_max_pages(self):
        """Should reject a page cap of zero."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(["run", "--max-pages", "0"])

    def test_enable_city(self):
        """Should parse the enable-city arguments."""
        args = build_parser().parse_args(["enable-city", "Austin", "TX", "--disable"])

        assert (args.city, args.state, args.disable) == ("Austin", "TX", True)


class TestMain:
    """Tests for main()."""

    def test_enable_city_creates_schema_and_row(self, clean_env, database_url):
        """Should create the schema and the city row."""
        assert main(["--database-url", database_url, "enable-city", "Austin", "TX"]) == 0

        cities = asyncio.run(_cities(database_url))
        assert [c.label for c in cities] == ["Austin,TX"]

    def test_disable_city(self, clean_env, database_url):
        """Should disable a city and exit 0."""
        main(["--database-url", database_url, "enable-city", "Austin", "TX"])
        main(["--database-url", database_url, "enable-city", "Austin", "TX", "--disable"])

        assert asyncio.run(_cities(database_url)) == []

    def test_init_db(self, clean_env, database_url):
        """Should create the schema and exit 0."""
        assert main(["--database-url", database_url, "init-db"]) == 0
        assert asyncio.run(_cities(database_url)) == []

    def test_run_without_credentials(self, clean_env, database_url, capsys):
        """A run with no provider credentials still completes."""
        main(["--database-url", database_url, "enable-city", "Austin", "TX"])

        code = main(["--database-url", database_url, "run", "--json"])

        assert code == 0
        report = json.loads(capsys.readouterr().out)
        assert report["state"] == "done"
        assert report["cities"] == 1
        assert report["providers"] == []
        assert report["upserted"] == 0

    def test_invalid_environment_exits_2(self, database_url):
        """Invalid environment settings should exit 2."""
        with patch.dict("os.environ", {"EVENTS_RADIUS_MILES": "fifteen"}, clear=True):
            assert main(["--database-url", database_url, "run"]) == 2

    def test_run_failure_exits_1(self, clean_env, database_url):
        """A failed run should exit 1."""
        with patch(
            "servers.event_sync.__main__.run_pipeline",
            new=AsyncMock(side_effect=OSError("database unavailable")),
        ):
            assert main(["--database-url", database_url, "run"]) == 1

    def test_run_failure_logged_once(self, clean_env, database_url):
        """A failed run should produce a single error log entry."""
        structlog.reset_defaults()
        failing_read = AsyncMock(side_effect=OSError("database unavailable"))

        with patch.object(SqlEventStore, "list_enabled_cities", new=failing_read):
            with capture_logs() as logs:
                assert main(["--database-url", database_url, "run"]) == 1

        errors = [entry for entry in logs if entry["log_level"] == "error"]
        assert [entry["event"] for entry in errors] == ["ingestion_run_failed"]
        assert errors[0]["error"] == "database unavailable"

    def test_text_summary(self, clean_env, database_url, capsys):
        """Should print a readable run summary."""
        assert main(["--database-url", database_url]) == 0

        out = capsys.readouterr().out
        assert out.startswith("Run done: 0 cities")
        assert "Upserted: 0" in out


class TestRunPipeline:
    """Tests for run_pipeline wiring."""

    @pytest.mark.asyncio
    async def test_uses_given_store_and_providers(self, store, stub_provider, raw_event):
        """Should run against the given store and providers."""
        await store.enable_city("Austin", "TX")
        provider = stub_provider(
            name="ticketmaster",
            responses=[Page(events=[raw_event("1"), raw_event("2")], is_last_page=True)],
        )
        settings = PipelineSettings(page_delay=0)

        with patch("servers.event_sync.__main__.build_providers", return_value=[provider]) as build:
            report = await run_pipeline(settings, store=store, only=["ticketmaster"])

        assert build.call_args.kwargs["only"] == ["ticketmaster"]
        assert report.state == RunState.DONE
        assert report.upserted == 2
        # The caller's store is left open
        assert len(await store.list_events()) == 2


def test_configure_logging_json(capsys):
    """Should configure JSON rendering when asked."""
    configure_logging("WARNING", json_logs=True)
    try:
        log = structlog.get_logger()
        log.info("hidden_event")
        log.warning("shown_event", city="Austin")
    finally:
        structlog.reset_defaults()

    lines = capsys.readouterr().err.strip().splitlines()
    assert len(lines) == 1
    record = json.loads(lines[0])
    assert record["event"] == "shown_event"
    assert record["level"] == "warning"
    assert record["city"] == "Austin"
