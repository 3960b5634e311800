import zipfile
from pathlib import Path

import aiosqlite
import pytest

from corridor_mcp.data.gtfs_loader import GTFSLoader, get_table_counts


@pytest.fixture
def corridor_gtfs_zip(corridor_gtfs_dir: Path, tmp_path: Path) -> Path:
    """Create a GTFS ZIP file from the corridor directory."""
    zip_path = tmp_path / "gtfs.zip"
    with zipfile.ZipFile(zip_path, "w") as zf:
        for file_path in corridor_gtfs_dir.iterdir():
            zf.write(file_path, file_path.name)
    return zip_path


class TestGTFSLoader:
    """Tests for GTFSLoader."""

    async def test_ingest_from_directory(self, corridor_gtfs_dir: Path, tmp_path: Path) -> None:
        """Test ingesting GTFS data from a directory."""
        db_path = tmp_path / "test.db"
        loader = GTFSLoader(db_path)

        row_counts = await loader.ingest(corridor_gtfs_dir)

        assert db_path.exists()
        assert row_counts == {
            "agency": 1,
            "routes": 4,
            "stops": 5,
            "calendar": 2,
            "calendar_dates": 1,
            "trips": 6,
            "stop_times": 18,
        }

    async def test_ingest_from_zip(self, corridor_gtfs_zip: Path, tmp_path: Path) -> None:
        """Test ingesting GTFS data from a ZIP file."""
        db_path = tmp_path / "test.db"
        loader = GTFSLoader(db_path)

        row_counts = await loader.ingest(corridor_gtfs_zip)

        assert db_path.exists()
        assert row_counts["routes"] == 4
        assert row_counts["stops"] == 5
        assert row_counts["stop_times"] == 18

    async def test_atomic_swap_creates_new_db(self, corridor_gtfs_dir: Path, tmp_path: Path) -> None:
        """Test that ingestion creates the database atomically."""
        db_path = tmp_path / "test.db"
        temp_path = db_path.with_suffix(".tmp.db")

        loader = GTFSLoader(db_path)
        await loader.ingest(corridor_gtfs_dir)

        assert db_path.exists()
        assert not temp_path.exists()

    async def test_atomic_swap_replaces_existing(self, corridor_gtfs_dir: Path, tmp_path: Path) -> None:
        """Test that ingestion replaces an existing database."""
        db_path = tmp_path / "test.db"

        loader = GTFSLoader(db_path)
        await loader.ingest(corridor_gtfs_dir)
        await loader.ingest(corridor_gtfs_dir)

        counts = await get_table_counts(db_path)
        assert counts["routes"] == 4

    async def test_rollback_on_failure(self, tmp_path: Path) -> None:
        """Test that temp DB is cleaned up on failure."""
        db_path = tmp_path / "test.db"
        temp_path = db_path.with_suffix(".tmp.db")

        loader = GTFSLoader(db_path)

        with pytest.raises(FileNotFoundError):
            await loader.ingest(tmp_path / "nonexistent")

        assert not db_path.exists()
        assert not temp_path.exists()

    async def test_missing_required_column_fails(self, corridor_gtfs_dir: Path, tmp_path: Path) -> None:
        """A trips.txt without service_id is rejected and leaves no database behind."""
        (corridor_gtfs_dir / "trips.txt").write_text("route_id,trip_id\nCCN_1a,NC1\n")
        db_path = tmp_path / "test.db"

        with pytest.raises(ValueError, match="trips.txt missing columns: service_id"):
            await GTFSLoader(db_path).ingest(corridor_gtfs_dir)

        assert not db_path.exists()
        assert not db_path.with_suffix(".tmp.db").exists()

    async def test_empty_stop_times_fails_integrity(self, corridor_gtfs_dir: Path, tmp_path: Path) -> None:
        (corridor_gtfs_dir / "stop_times.txt").write_text(
            "trip_id,arrival_time,departure_time,stop_id,stop_sequence\n"
        )

        with pytest.raises(ValueError, match="No stop_times loaded"):
            await GTFSLoader(tmp_path / "test.db").ingest(corridor_gtfs_dir)

    async def test_optional_file_missing(self, corridor_gtfs_dir: Path, tmp_path: Path) -> None:
        """calendar_dates.txt may be absent."""
        (corridor_gtfs_dir / "calendar_dates.txt").unlink()

        row_counts = await GTFSLoader(tmp_path / "test.db").ingest(corridor_gtfs_dir)

        assert row_counts["calendar_dates"] == 0
        assert row_counts["trips"] == 6

    async def test_required_file_missing(self, corridor_gtfs_dir: Path, tmp_path: Path) -> None:
        (corridor_gtfs_dir / "stop_times.txt").unlink()

        with pytest.raises(ValueError, match="Required GTFS file stop_times.txt not found"):
            await GTFSLoader(tmp_path / "test.db").ingest(corridor_gtfs_dir)

    async def test_numeric_columns_typed(self, corridor_db: Path) -> None:
        async with aiosqlite.connect(corridor_db) as db:
            async with db.execute("SELECT stop_lat, location_type FROM stops WHERE stop_id = '225421'") as cursor:
                lat, location_type = await cursor.fetchone()

        assert lat == -32.944587
        assert location_type == 1

    async def test_rows_missing_required_values_skipped(self, corridor_gtfs_dir: Path, tmp_path: Path) -> None:
        with (corridor_gtfs_dir / "stop_times.txt").open("a") as f:
            f.write("NC1,08:10:00,08:10:00,,24,0,0\n")

        row_counts = await GTFSLoader(tmp_path / "test.db").ingest(corridor_gtfs_dir)

        assert row_counts["stop_times"] == 18

    async def test_creates_parent_directories(self, corridor_gtfs_dir: Path, tmp_path: Path) -> None:
        """Test that parent directories are created if needed."""
        db_path = tmp_path / "subdir" / "nested" / "test.db"

        await GTFSLoader(db_path).ingest(corridor_gtfs_dir)

        assert db_path.exists()


class TestSchemaAndIndexes:
    """Tests for database schema and indexes."""

    async def test_schema_has_all_tables(self, corridor_db: Path) -> None:
        async with aiosqlite.connect(corridor_db) as db:
            cursor = await db.execute("SELECT name FROM sqlite_master WHERE type='table' ORDER BY name")
            tables = [row[0] async for row in cursor]
            await cursor.close()

        assert tables == [
            "agency",
            "calendar",
            "calendar_dates",
            "routes",
            "stop_times",
            "stops",
            "trips",
        ]

    async def test_indexes_created(self, corridor_db: Path) -> None:
        async with aiosqlite.connect(corridor_db) as db:
            cursor = await db.execute(
                "SELECT name FROM sqlite_master WHERE type='index' AND name LIKE 'idx_%'"
            )
            indexes = [row[0] async for row in cursor]
            await cursor.close()

        for idx in ["idx_stops_parent", "idx_trips_route", "idx_trips_service", "idx_stop_times_stop"]:
            assert idx in indexes, f"Missing index: {idx}"


class TestDataIntegrity:
    """Tests for data integrity after ingestion."""

    async def test_trip_short_name_loaded(self, corridor_db: Path) -> None:
        async with aiosqlite.connect(corridor_db) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute("SELECT * FROM trips WHERE trip_id = 'NC1'") as cursor:
                trip = await cursor.fetchone()

        assert trip is not None
        assert trip["trip_short_name"] == "N101"
        assert trip["route_id"] == "CCN_1a"
        assert trip["direction_id"] == 1

    async def test_stop_times_pass_flags_loaded(self, corridor_db: Path) -> None:
        async with aiosqlite.connect(corridor_db) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT * FROM stop_times WHERE trip_id = 'XP1' ORDER BY stop_sequence"
            ) as cursor:
                stop_times = [row async for row in cursor]

        assert len(stop_times) == 4
        assert stop_times[1]["stop_id"] == "225521"
        assert stop_times[1]["pickup_type"] == 1
        assert stop_times[1]["drop_off_type"] == 1

    async def test_platform_child_keeps_parent(self, corridor_db: Path) -> None:
        async with aiosqlite.connect(corridor_db) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute("SELECT * FROM stops WHERE stop_id = '2255211'") as cursor:
                stop = await cursor.fetchone()

        assert stop["parent_station"] == "225521"
        assert stop["platform_code"] == "1"

    async def test_null_values_handled(self, corridor_db: Path) -> None:
        """Empty CSV values become NULL in the database."""
        async with aiosqlite.connect(corridor_db) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute("SELECT * FROM trips WHERE trip_id = 'HN1'") as cursor:
                trip = await cursor.fetchone()
            async with db.execute("SELECT * FROM stops WHERE stop_id = '225521'") as cursor:
                stop = await cursor.fetchone()

        assert trip["trip_headsign"] is None
        assert stop["parent_station"] is None


class TestGetTableCounts:
    """Tests for the get_table_counts utility function."""

    async def test_returns_all_counts(self, corridor_db: Path) -> None:
        counts = await get_table_counts(corridor_db)

        assert counts["agency"] == 1
        assert counts["routes"] == 4
        assert counts["stops"] == 5
        assert counts["calendar"] == 2
        assert counts["calendar_dates"] == 1
        assert counts["trips"] == 6
        assert counts["stop_times"] == 18
