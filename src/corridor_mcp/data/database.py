"""Database connection helper for the GTFS SQLite timetable."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import aiosqlite


@asynccontextmanager
async def get_db(db_path: Path) -> AsyncIterator[aiosqlite.Connection]:
    """Async context manager for DB connections with Row factory.

    Args:
        db_path: Path to the timetable database.

    Yields:
        aiosqlite.Connection configured with Row factory for dict-like access.

    Raises:
        FileNotFoundError: If the database file doesn't exist.
    """
    if not db_path.exists():
        raise FileNotFoundError(
            f"Timetable database not found at {db_path}. "
            "Run 'corridor-mcp ingest <gtfs_path>' or 'corridor-mcp fetch-static' to create it."
        )

    async with aiosqlite.connect(db_path) as db:
        db.row_factory = aiosqlite.Row
        yield db
