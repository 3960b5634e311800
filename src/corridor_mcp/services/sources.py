"""Uniform "fetch -> normalized records + status" contract for upstream sources.

Every source (realtime feeds, alerts, freight) is fetched through
fetch_source(), which applies the timeout and turns any failure into an
offline FeedStatus, so a cycle never aborts because one source failed.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sized
from datetime import UTC, datetime
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from corridor_mcp.models.movements import DataSource, FeedHealth, FeedStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SourceUnavailableError(RuntimeError):
    """Raised by a fetcher when its source is not configured."""


class SourceResult(BaseModel, Generic[T]):
    """Normalized records from one source plus that source's health."""

    records: T
    feed_status: FeedStatus


def offline_status(
    name: str,
    source: DataSource,
    error: str,
    fetched_at: datetime | None = None,
) -> FeedStatus:
    """FeedStatus for a source that could not be fetched or decoded."""
    return FeedStatus(
        name=name,
        source=source,
        status=FeedHealth.OFFLINE,
        last_fetched=fetched_at or datetime.now(UTC),
        error=error,
    )


def _count(records: Any) -> int | None:
    return len(records) if isinstance(records, Sized) else None


async def fetch_source(
    name: str,
    source: DataSource,
    fetch: Callable[[], Awaitable[T]],
    empty: T,
    timeout: float | None = None,
) -> SourceResult[T]:
    """Fetch one source, never raising for source-level failures.

    Args:
        name: Human-readable feed name for the status panel.
        source: Source tag for the FeedStatus.
        fetch: Zero-argument coroutine factory returning decoded records.
        empty: Value returned as records when the fetch fails.
        timeout: Seconds before the source is declared offline.

    Returns:
        SourceResult with the records (or empty) and an online/offline status.
    """
    fetched_at = datetime.now(UTC)
    try:
        records = await asyncio.wait_for(fetch(), timeout)
    except TimeoutError:
        error = f"{name} timed out" + (f" after {timeout:g}s" if timeout is not None else "")
        logger.warning(error)
        return SourceResult(records=empty, feed_status=offline_status(name, source, error, fetched_at))
    except SourceUnavailableError as e:
        logger.debug(f"{name} not configured: {e}")
        return SourceResult(records=empty, feed_status=offline_status(name, source, str(e), fetched_at))
    except Exception as e:
        error = f"Failed to fetch {name}: {e}"
        logger.warning(error)
        return SourceResult(records=empty, feed_status=offline_status(name, source, error, fetched_at))

    return SourceResult(
        records=records,
        feed_status=FeedStatus(
            name=name,
            source=source,
            status=FeedHealth.ONLINE,
            last_fetched=fetched_at,
            last_successful=datetime.now(UTC),
            record_count=_count(records),
        ),
    )
