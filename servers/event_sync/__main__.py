"""
Command-line entry point for the event sync pipeline.

Commands:
- run: Fetch every enabled city from every configured provider, then sweep
- init-db: Create the event store tables
- enable-city: Switch events on (or off) for a city

Run with: python -m servers.event_sync [command]

The pipeline runs once and exits; scheduling is left to cron or whatever
invokes it.
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

import httpx
import structlog

from .config import PipelineSettings
from .errors import ConfigError
from .models import RunReport
from .orchestrator import IngestionRunner
from .providers import PROVIDER_NAMES, build_providers
from .store import SqlEventStore
from .sync import SyncEngine

logger = structlog.get_logger()


def configure_logging(level: str = "INFO", json_logs: bool = False) -> None:
    """Configure structlog for command-line runs."""
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


async def run_pipeline(
    settings: PipelineSettings,
    store: Optional[SqlEventStore] = None,
    only: Optional[list[str]] = None,
) -> RunReport:
    """Wire settings into providers, a store and a runner, then run once.

    Args:
        settings: Pipeline settings
        store: Event store, created from settings.database_url if absent
        only: Restrict the run to these provider names

    Returns:
        RunReport for the run
    """
    own_store = store is None
    store = store or SqlEventStore.from_url(settings.database_url)

    try:
        if own_store:
            await store.create_schema()
        async with httpx.AsyncClient(timeout=settings.request_timeout) as client:
            providers = build_providers(settings, client, only=only)
            if not providers:
                logger.warning("no_providers_configured")

            runner = IngestionRunner(
                store,
                providers,
                sync=SyncEngine(store, stale_days=settings.stale_days),
                radius_miles=settings.radius_miles,
                concurrency=settings.concurrency,
                retry_policy=settings.retry,
                page_delay=settings.page_delay,
            )
            return await runner.run()
    finally:
        if own_store:
            await store.close()


def _settings_from_args(args: argparse.Namespace) -> PipelineSettings:
    settings = PipelineSettings.from_env()

    updates = {}
    if args.database_url:
        updates["database_url"] = args.database_url
    if getattr(args, "radius", None) is not None:
        updates["radius_miles"] = args.radius
    if getattr(args, "stale_days", None) is not None:
        updates["stale_days"] = args.stale_days
    if getattr(args, "concurrency", None) is not None:
        updates["concurrency"] = args.concurrency
    if updates:
        settings = settings.model_copy(update=updates)

    if getattr(args, "max_pages", None) is not None:
        settings = settings.with_max_pages(args.max_pages)
    return settings


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def _positive_float(value: str) -> float:
    number = float(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be greater than 0, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m servers.event_sync",
        description="Sync community events from external providers into the event store.",
    )
    parser.add_argument("--database-url", help="SQLAlchemy async URL (overrides EVENTS_DATABASE_URL)")
    parser.add_argument("--log-level", default="INFO", help="Log level (default: INFO)")
    parser.add_argument("--json-logs", action="store_true", help="Emit logs as JSON lines")

    sub = parser.add_subparsers(dest="command")

    run = sub.add_parser("run", help="Run the pipeline once")
    run.add_argument(
        "--provider",
        action="append",
        choices=PROVIDER_NAMES,
        help="Only run this provider (repeatable)",
    )
    run.add_argument("--max-pages", type=_positive_int, help="Page cap for every provider")
    run.add_argument("--radius", type=_positive_int, help="Search radius in miles")
    run.add_argument("--stale-days", type=_positive_float, help="Staleness window in days")
    run.add_argument("--concurrency", type=_positive_int, help="Cities processed at once")
    run.add_argument("--json", action="store_true", help="Print the run report as JSON")

    sub.add_parser("init-db", help="Create event store tables")

    enable = sub.add_parser("enable-city", help="Enable events for a city")
    enable.add_argument("city")
    enable.add_argument("state")
    enable.add_argument("--disable", action="store_true", help="Disable instead of enable")

    return parser


async def _init_db(settings: PipelineSettings) -> None:
    store = SqlEventStore.from_url(settings.database_url)
    try:
        await store.create_schema()
    finally:
        await store.close()


async def _enable_city(settings: PipelineSettings, city: str, state: str, enabled: bool) -> None:
    store = SqlEventStore.from_url(settings.database_url)
    try:
        await store.create_schema()
        await store.enable_city(city, state, enabled=enabled)
        logger.info("city_updated", city=city, state=state, events_enabled=enabled)
    finally:
        await store.close()


def _print_summary(report: RunReport) -> None:
    print(f"Run {report.state.value}: {report.cities} cities, providers: {', '.join(report.providers) or 'none'}")
    print(f"  Upserted: {report.upserted}")
    for source, count in report.deactivated.items():
        print(f"  Deactivated ({source}): {count}")
    for label in report.failed:
        print(f"  Failed: {label}")


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point. Returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)
    command = args.command or "run"

    configure_logging(args.log_level, args.json_logs)

    try:
        settings = _settings_from_args(args)
    except ConfigError as e:
        logger.error("invalid_configuration", error=str(e))
        return 2

    if command == "init-db":
        asyncio.run(_init_db(settings))
        return 0

    if command == "enable-city":
        asyncio.run(_enable_city(settings, args.city, args.state, not args.disable))
        return 0

    try:
        report = asyncio.run(run_pipeline(settings, only=getattr(args, "provider", None)))
    except Exception as e:
        logger.error("ingestion_run_failed", error=str(e), exc_info=True)
        return 1

    if getattr(args, "json", False):
        print(json.dumps(report.model_dump(mode="json"), indent=2))
    else:
        _print_summary(report)
    return 0


if __name__ == "__main__":
    sys.exit(main())
