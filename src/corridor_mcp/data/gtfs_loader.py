"""Ingest a GTFS static feed (directory or ZIP) into the SQLite timetable store.

Only the tables and columns the corridor timetable provider reads are kept.
The database is rebuilt in a temp file and swapped in atomically, so a
failed or partial ingest never replaces a working timetable.
"""

import csv
import io
import logging
import zipfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, NamedTuple, TextIO

import aiosqlite

logger = logging.getLogger(__name__)

BATCH_SIZE = 5000


class GTFSTable(NamedTuple):
    """One GTFS file and the SQLite table it is loaded into."""

    name: str
    columns: tuple[tuple[str, str], ...]  # (column, sqlite type)
    primary_key: tuple[str, ...]
    required: tuple[str, ...]  # must be in the header and non-empty in each row
    optional_file: bool = False

    @property
    def filename(self) -> str:
        return f"{self.name}.txt"

    @property
    def column_names(self) -> list[str]:
        return [name for name, _ in self.columns]

    def create_sql(self) -> str:
        cols = [f"{name} {sql_type}" for name, sql_type in self.columns]
        cols.append(f"PRIMARY KEY ({', '.join(self.primary_key)})")
        return f"CREATE TABLE {self.name} ({', '.join(cols)})"


TABLES: tuple[GTFSTable, ...] = (
    GTFSTable(
        "agency",
        (("agency_id", "TEXT"), ("agency_name", "TEXT"), ("agency_url", "TEXT"), ("agency_timezone", "TEXT")),
        primary_key=("agency_id",),
        required=("agency_name",),
        optional_file=True,
    ),
    GTFSTable(
        "routes",
        (
            ("route_id", "TEXT"),
            ("agency_id", "TEXT"),
            ("route_short_name", "TEXT"),
            ("route_long_name", "TEXT"),
            ("route_type", "INTEGER"),
        ),
        primary_key=("route_id",),
        required=("route_id", "route_type"),
    ),
    GTFSTable(
        "stops",
        (
            ("stop_id", "TEXT"),
            ("stop_name", "TEXT"),
            ("stop_lat", "REAL"),
            ("stop_lon", "REAL"),
            ("location_type", "INTEGER"),
            ("parent_station", "TEXT"),
            ("platform_code", "TEXT"),
        ),
        primary_key=("stop_id",),
        required=("stop_id", "stop_name"),
    ),
    GTFSTable(
        "calendar",
        (
            ("service_id", "TEXT"),
            *((day, "INTEGER") for day in ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")),
            ("start_date", "TEXT"),
            ("end_date", "TEXT"),
        ),
        primary_key=("service_id",),
        required=("service_id",),
        optional_file=True,
    ),
    GTFSTable(
        "calendar_dates",
        (("service_id", "TEXT"), ("date", "TEXT"), ("exception_type", "INTEGER")),
        primary_key=("service_id", "date"),
        required=("service_id", "date", "exception_type"),
        optional_file=True,
    ),
    GTFSTable(
        "trips",
        (
            ("trip_id", "TEXT"),
            ("route_id", "TEXT"),
            ("service_id", "TEXT"),
            ("trip_headsign", "TEXT"),
            ("trip_short_name", "TEXT"),
            ("direction_id", "INTEGER"),
        ),
        primary_key=("trip_id",),
        required=("trip_id", "route_id", "service_id"),
    ),
    GTFSTable(
        "stop_times",
        (
            ("trip_id", "TEXT"),
            ("arrival_time", "TEXT"),
            ("departure_time", "TEXT"),
            ("stop_id", "TEXT"),
            ("stop_sequence", "INTEGER"),
            ("pickup_type", "INTEGER"),
            ("drop_off_type", "INTEGER"),
        ),
        primary_key=("trip_id", "stop_sequence"),
        required=("trip_id", "stop_id", "stop_sequence"),
    ),
)

INDEXES = {
    "idx_stops_parent": "stops(parent_station)",
    "idx_trips_route": "trips(route_id)",
    "idx_trips_service": "trips(service_id)",
    "idx_stop_times_stop": "stop_times(stop_id)",
}

# Tables the timetable provider cannot work without
NON_EMPTY_TABLES = ("routes", "stops", "trips", "stop_times")


@contextmanager
def open_gtfs_file(gtfs_path: Path, filename: str) -> Iterator[TextIO | None]:
    """Open one file of a GTFS directory or ZIP; yields None if it is absent."""
    if gtfs_path.is_file() and gtfs_path.suffix == ".zip":
        with zipfile.ZipFile(gtfs_path) as zf:
            if filename not in zf.namelist():
                yield None
                return
            with zf.open(filename) as raw:
                yield io.TextIOWrapper(raw, encoding="utf-8-sig")
        return

    path = gtfs_path / filename
    if not path.exists():
        yield None
        return
    with path.open(encoding="utf-8-sig") as f:
        yield f


def _coerce(value: str | None, sql_type: str) -> Any:
    if value is None:
        return None
    value = value.strip()
    if value == "":
        return None
    if sql_type == "INTEGER":
        return int(value)
    if sql_type == "REAL":
        return float(value)
    return value


class GTFSLoader:
    """Builds the SQLite timetable store from a GTFS feed."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)

    async def ingest(self, gtfs_path: Path) -> dict[str, int]:
        """Ingest a GTFS directory or ZIP, replacing the database atomically.

        Readers holding the previous database keep working until they reconnect.

        Returns:
            Rows loaded per table.

        Raises:
            FileNotFoundError: If the GTFS path doesn't exist.
            ValueError: If a required file or column is missing, or a core
                table ends up empty.
        """
        gtfs_path = Path(gtfs_path)
        if not gtfs_path.exists():
            raise FileNotFoundError(f"GTFS path not found: {gtfs_path}")

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        staging = self.db_path.with_suffix(".tmp.db")
        staging.unlink(missing_ok=True)

        try:
            async with aiosqlite.connect(staging) as db:
                # Bulk load: durability is provided by the swap, not the journal
                await db.execute("PRAGMA journal_mode=OFF")
                await db.execute("PRAGMA synchronous=OFF")

                row_counts = {}
                for table in TABLES:
                    await db.execute(table.create_sql())
                    row_counts[table.name] = await self._load(db, table, gtfs_path)

                for index_name, target in INDEXES.items():
                    await db.execute(f"CREATE INDEX {index_name} ON {target}")
                await db.commit()
                await self._check_not_empty(db)
        except Exception:
            staging.unlink(missing_ok=True)
            raise

        staging.replace(self.db_path)
        logger.info(f"GTFS timetable written to {self.db_path}")
        return row_counts

    async def _load(self, db: aiosqlite.Connection, table: GTFSTable, gtfs_path: Path) -> int:
        with open_gtfs_file(gtfs_path, table.filename) as text:
            if text is None:
                if not table.optional_file:
                    raise ValueError(f"Required GTFS file {table.filename} not found in {gtfs_path.name}")
                logger.warning(f"Optional file {table.filename} not found in {gtfs_path.name}")
                return 0

            reader = csv.DictReader(text)
            if reader.fieldnames is None:
                raise ValueError(f"{table.filename} is empty")
            reader.fieldnames = [name.strip() for name in reader.fieldnames]
            missing = [col for col in table.required if col not in reader.fieldnames]
            if missing:
                raise ValueError(f"{table.filename} missing columns: {', '.join(missing)}")

            names = table.column_names
            insert = (
                f"INSERT OR REPLACE INTO {table.name} ({', '.join(names)}) "
                f"VALUES ({', '.join('?' * len(names))})"
            )
            loaded = skipped = 0
            batch: list[tuple[Any, ...]] = []
            for row in reader:
                if any(not (row.get(col) or "").strip() for col in table.required):
                    skipped += 1
                    continue
                batch.append(tuple(_coerce(row.get(name), sql_type) for name, sql_type in table.columns))
                if len(batch) >= BATCH_SIZE:
                    await db.executemany(insert, batch)
                    loaded += len(batch)
                    batch.clear()
            if batch:
                await db.executemany(insert, batch)
                loaded += len(batch)

        suffix = f" ({skipped:,} rows skipped)" if skipped else ""
        logger.info(f"Loaded {loaded:,} rows into {table.name}{suffix}")
        return loaded

    async def _check_not_empty(self, db: aiosqlite.Connection) -> None:
        for name in NON_EMPTY_TABLES:
            async with db.execute(f"SELECT COUNT(*) FROM {name}") as cursor:
                (count,) = await cursor.fetchone()
            if count == 0:
                raise ValueError(f"No {name} loaded - check GTFS data")


async def get_table_counts(db_path: Path) -> dict[str, int]:
    """Row counts for every timetable table in the database."""
    counts: dict[str, int] = {}
    async with aiosqlite.connect(db_path) as db:
        for table in TABLES:
            async with db.execute(f"SELECT COUNT(*) FROM {table.name}") as cursor:
                row = await cursor.fetchone()
                counts[table.name] = row[0] if row else 0
    return counts
