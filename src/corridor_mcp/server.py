import argparse
import asyncio
import logging
from collections import Counter
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel

from corridor_mcp.app import mcp
from corridor_mcp.data.config import get_config
from corridor_mcp.models.movements import MovementsResponse

# Register tools with the MCP app
from corridor_mcp.tools import alerts_tools, analytics_tools, movements_tools  # noqa: F401


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    timestamp: str
    realtime_enabled: bool
    freight_feed_enabled: bool


@mcp.tool()
def health() -> HealthResponse:
    """Check if the corridor MCP server is running and healthy.

    Returns the server status, version, current timestamp and whether the
    TfNSW realtime and ARTC freight credentials are configured.
    """
    from corridor_mcp import __version__

    config = get_config()
    return HealthResponse(
        status="ok",
        version=__version__,
        timestamp=datetime.now(UTC).isoformat(),
        realtime_enabled=config.realtime_enabled,
        freight_feed_enabled=config.freight_feed_enabled,
    )


async def run_ingest(gtfs_path: Path, db_path: Path) -> None:
    """Run GTFS ingestion."""
    from corridor_mcp.data.gtfs_loader import GTFSLoader

    loader = GTFSLoader(db_path)
    row_counts = await loader.ingest(gtfs_path)

    print("\nIngestion complete. Row counts:")
    for table, count in row_counts.items():
        print(f"  {table}: {count:,}")


async def run_fetch_static(db_path: Path) -> None:
    """Download the TfNSW GTFS static timetable and ingest it."""
    from corridor_mcp.data.gtfs_loader import get_table_counts
    from corridor_mcp.services.schedule_service import SQLiteTimetableProvider

    config = get_config().model_copy(update={"db_path": db_path})
    await SQLiteTimetableProvider(config).refresh()

    print("\nTimetable refreshed. Row counts:")
    for table, count in (await get_table_counts(db_path)).items():
        print(f"  {table}: {count:,}")


def format_summary(response: MovementsResponse) -> str:
    """One status line per refresh for the `watch` command."""
    counts = Counter(m.status.value for m in response.movements)
    line = f"{response.timestamp:%H:%M:%S} {len(response.movements)} movements"
    if counts:
        line += " (" + ", ".join(f"{count} {status}" for status, count in sorted(counts.items())) + ")"
    if response.fallback_active:
        line += f" - {response.fallback_reason}"
    return line


async def run_watch(interval: float | None = None) -> None:
    """Poll the corridor and print a summary line after every refresh."""
    from corridor_mcp.services.poller import get_poller

    poller = get_poller()
    if interval is not None:
        poller.interval = interval
    poller.on_update = lambda response: print(format_summary(response), flush=True)
    await poller.run()


def _add_common_args(subparser: argparse.ArgumentParser) -> None:
    subparser.add_argument(
        "--db",
        type=Path,
        default=None,
        help="SQLite database path (default: data/gtfs.db or CORRIDOR_DB_PATH env var)",
    )
    subparser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="corridor-mcp",
        description="Cardiff–Kotara Corridor Tracker MCP Server",
    )
    subparsers = parser.add_subparsers(dest="command")

    # ingest command
    ingest_parser = subparsers.add_parser(
        "ingest",
        help="Ingest GTFS data into SQLite database",
    )
    ingest_parser.add_argument(
        "gtfs_path",
        type=Path,
        help="Path to GTFS directory or ZIP file",
    )
    _add_common_args(ingest_parser)

    # fetch-static command
    fetch_parser = subparsers.add_parser(
        "fetch-static",
        help="Download the TfNSW GTFS static timetable and ingest it (needs TFNSW_API_KEY)",
    )
    _add_common_args(fetch_parser)

    # watch command
    watch_parser = subparsers.add_parser(
        "watch",
        help="Poll corridor movements and print a summary after each refresh",
    )
    watch_parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between refreshes (default: CORRIDOR_POLL_INTERVAL or 20)",
    )
    watch_parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")

    args = parser.parse_args()

    if args.command in ("ingest", "fetch-static"):
        # Configure logging
        log_level = logging.DEBUG if args.verbose else logging.INFO
        logging.basicConfig(
            level=log_level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )
        db_path = args.db or get_config().db_path

        if args.command == "ingest":
            asyncio.run(run_ingest(args.gtfs_path, db_path))
        else:
            asyncio.run(run_fetch_static(db_path))
    elif args.command == "watch":
        logging.basicConfig(
            level=logging.DEBUG if args.verbose else logging.WARNING,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )
        try:
            asyncio.run(run_watch(args.interval))
        except KeyboardInterrupt:
            print("\nStopped watching.")
    else:
        # stdout carries the MCP protocol, so logs go to stderr
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )
        # Default: run MCP server
        mcp.run()


if __name__ == "__main__":
    main()
