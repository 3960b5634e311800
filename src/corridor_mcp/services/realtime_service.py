"""Realtime update processor for the TfNSW GTFS-RT feeds.

Fetches trip updates and vehicle positions (cached for a short TTL) and
normalizes them into per-trip maps scoped to the corridor. Each processor
returns a FeedStatus alongside its map and never raises for feed failures.
"""

import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel

from corridor_mcp.data.cache import TTLCache
from corridor_mcp.data.config import CorridorConfig, get_config
from corridor_mcp.data.tfnsw_client import TfNSWClient
from corridor_mcp.geometry.stations import get_station_for_stop
from corridor_mcp.models.movements import DataSource, VehiclePosition
from corridor_mcp.models.realtime import (
    ScheduleRelationship,
    TripUpdatesData,
    VehiclePositionsData,
)
from corridor_mcp.services.sources import (
    SourceResult,
    SourceUnavailableError,
    fetch_source,
)

logger = logging.getLogger(__name__)

TRIP_UPDATES_FEED_NAME = "GTFS-RT Trip Updates"
VEHICLE_POSITIONS_FEED_NAME = "GTFS-RT Vehicle Positions"

MISSING_KEY_ERROR = "TFNSW_API_KEY not set. Register at https://opendata.transport.nsw.gov.au/"

# Module-level state (lazy-initialized)
_feed_cache: TTLCache[str, Any] | None = None
_config: CorridorConfig | None = None


class StopUpdate(BaseModel):
    """Realtime times for one corridor stop of one trip."""

    arrival_delay: int | None = None  # seconds
    departure_delay: int | None = None
    arrival_time: datetime | None = None
    departure_time: datetime | None = None


class TripUpdateRecord(BaseModel):
    """Normalized realtime state of one trip."""

    trip_id: str
    route_id: str | None = None
    cancelled: bool = False
    stop_time_updates: dict[str, StopUpdate] = {}  # corridor station id -> update
    timestamp: datetime | None = None


TripUpdateResult = SourceResult[dict[str, TripUpdateRecord]]
VehiclePositionResult = SourceResult[dict[str, VehiclePosition]]


def _get_config() -> CorridorConfig:
    """Get or create the config singleton."""
    global _config
    if _config is None:
        _config = get_config()
    return _config


def _get_feed_cache() -> TTLCache[str, Any]:
    """Get or create the decoded-feed cache singleton."""
    global _feed_cache
    if _feed_cache is None:
        _feed_cache = TTLCache(ttl=_get_config().realtime_cache_ttl_seconds)
    return _feed_cache


def is_realtime_available() -> bool:
    """Check if realtime data can be fetched (API key configured)."""
    return _get_config().realtime_enabled


async def _cached_fetch(key: str, fetch: Callable[[TfNSWClient], Awaitable[Any]], force_refresh: bool) -> Any:
    config = _get_config()
    if not config.realtime_enabled:
        raise SourceUnavailableError(MISSING_KEY_ERROR)

    cache = _get_feed_cache()
    if not force_refresh:
        cached = cache.get(key)
        if cached is not None:
            return cached

    async with TfNSWClient(config) as client:
        data = await fetch(client)
    cache.set(key, data)
    return data


async def get_trip_updates(force_refresh: bool = False) -> TripUpdatesData:
    """Fetch trip updates with caching.

    Raises:
        SourceUnavailableError: If no API key is configured.
        httpx.HTTPError: If the HTTP request fails.
    """
    data = await _cached_fetch("trip_updates", lambda client: client.fetch_trip_updates(), force_refresh)
    logger.debug(f"Trip updates feed has {len(data.trip_updates)} entities")
    return data


async def get_vehicle_positions(force_refresh: bool = False) -> VehiclePositionsData:
    """Fetch vehicle positions with caching.

    Raises:
        SourceUnavailableError: If no API key is configured.
        httpx.HTTPError: If the HTTP request fails.
    """
    data = await _cached_fetch(
        "vehicle_positions", lambda client: client.fetch_vehicle_positions(), force_refresh
    )
    logger.debug(f"Vehicle positions feed has {len(data.vehicles)} entities")
    return data


def _from_unix(ts: int | None) -> datetime | None:
    return datetime.fromtimestamp(ts, tz=UTC) if ts else None


def build_trip_update_map(data: TripUpdatesData) -> dict[str, TripUpdateRecord]:
    """Index trip updates by trip_id, keeping only corridor stop updates.

    Stop updates are keyed by corridor station, so platform and parent
    stop_ids of the same station land on the same entry.

    A trip whose stop updates all refer to other stops is dropped. A trip
    with no stop updates at all (e.g. a bare cancellation) is kept.
    Later entities for the same trip replace earlier ones.
    """
    updates: dict[str, TripUpdateRecord] = {}

    for trip_update in data.trip_updates:
        trip_id = trip_update.trip.trip_id
        if trip_id is None:
            continue

        stop_updates = trip_update.stop_time_update
        relevant = [
            (station.id, stu)
            for stu in stop_updates
            if stu.stop_id and (station := get_station_for_stop(stu.stop_id)) is not None
        ]
        # TODO: revisit once TfNSW documents whether an empty stop_time_update list is ever sent for running trips
        if not relevant and stop_updates:
            continue

        stop_time_updates = {
            station_id: StopUpdate(
                arrival_delay=stu.arrival.delay if stu.arrival else None,
                departure_delay=stu.departure.delay if stu.departure else None,
                arrival_time=_from_unix(stu.arrival.time) if stu.arrival else None,
                departure_time=_from_unix(stu.departure.time) if stu.departure else None,
            )
            for station_id, stu in relevant
        }

        updates[trip_id] = TripUpdateRecord(
            trip_id=trip_id,
            route_id=trip_update.trip.route_id,
            cancelled=trip_update.trip.schedule_relationship == ScheduleRelationship.CANCELED,
            stop_time_updates=stop_time_updates,
            timestamp=_from_unix(trip_update.timestamp),
        )

    return updates


def build_vehicle_position_map(data: VehiclePositionsData) -> dict[str, VehiclePosition]:
    """Index vehicle positions by trip_id.

    TfNSW encodes the consist as dot-separated car numbers in vehicle.id.
    """
    positions: dict[str, VehiclePosition] = {}

    for vp in data.vehicles:
        if vp.trip is None or vp.trip.trip_id is None or vp.position is None:
            continue

        raw_vehicle_id = vp.vehicle.id if vp.vehicle else None
        car_numbers = raw_vehicle_id.split(".") if raw_vehicle_id else None

        positions[vp.trip.trip_id] = VehiclePosition(
            lat=vp.position.latitude,
            lng=vp.position.longitude,
            bearing=vp.position.bearing,
            speed=vp.position.speed,
            timestamp=_from_unix(vp.timestamp) or datetime.now(UTC),
            source=DataSource.VEHICLE_POSITIONS,
            vehicle_id=raw_vehicle_id,
            vehicle_label=vp.vehicle.label if vp.vehicle else None,
            car_numbers=car_numbers,
            consist_length=len(car_numbers) if car_numbers else None,
            occupancy_status=vp.occupancy_status,
        )

    return positions


async def process_trip_updates(
    fetch: Callable[[], Awaitable[TripUpdatesData]] | None = None,
    timeout: float | None = None,
) -> TripUpdateResult:
    """Fetch the trip updates feed and build the per-trip delay map.

    Args:
        fetch: Feed decoder to use instead of the TfNSW client.
        timeout: Seconds before the feed is marked offline.
    """
    config = _get_config()
    result = await fetch_source(
        TRIP_UPDATES_FEED_NAME,
        DataSource.TRIP_UPDATES,
        fetch or get_trip_updates,
        empty=None,
        timeout=timeout if timeout is not None else config.fetch_timeout_seconds,
    )
    if result.records is None:
        return TripUpdateResult(records={}, feed_status=result.feed_status)

    updates = build_trip_update_map(result.records)
    status = result.feed_status.model_copy(update={"record_count": len(updates)})
    logger.debug(f"{len(updates)} trip updates relevant to the corridor")
    return TripUpdateResult(records=updates, feed_status=status)


async def process_vehicle_positions(
    fetch: Callable[[], Awaitable[VehiclePositionsData]] | None = None,
    timeout: float | None = None,
) -> VehiclePositionResult:
    """Fetch the vehicle positions feed and build the per-trip position map.

    Args:
        fetch: Feed decoder to use instead of the TfNSW client.
        timeout: Seconds before the feed is marked offline.
    """
    config = _get_config()
    result = await fetch_source(
        VEHICLE_POSITIONS_FEED_NAME,
        DataSource.VEHICLE_POSITIONS,
        fetch or get_vehicle_positions,
        empty=None,
        timeout=timeout if timeout is not None else config.fetch_timeout_seconds,
    )
    if result.records is None:
        return VehiclePositionResult(records={}, feed_status=result.feed_status)

    positions = build_vehicle_position_map(result.records)
    status = result.feed_status.model_copy(update={"record_count": len(positions)})
    return VehiclePositionResult(records=positions, feed_status=status)


def clear_caches() -> None:
    """Clear the decoded-feed cache."""
    if _feed_cache:
        _feed_cache.clear()


def reset_service() -> None:
    """Reset the service state completely.

    Clears caches and resets config. Useful for testing.
    """
    global _feed_cache, _config
    _feed_cache = None
    _config = None
    # Clear the lru_cache on get_config so it re-reads .env/environment
    if hasattr(get_config, "cache_clear"):
        get_config.cache_clear()
