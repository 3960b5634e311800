"""Schedule source: baseline corridor movements from the GTFS static timetable.

Timetables are read per service date from the SQLite store built by
GTFSLoader, projected onto absolute instants and cached with a TTL. When a
date yields nothing the dataset is refreshed once; if that also fails the
last cached value (even stale) or the built-in timetable is used instead.
"""

import logging
import time as monotonic_time
from datetime import UTC, date, datetime, time, timedelta
from pathlib import Path
from typing import Protocol
from zoneinfo import ZoneInfo

import aiosqlite
from pydantic import BaseModel

from corridor_mcp.data.cache import Clock, TTLCache
from corridor_mcp.data.config import CorridorConfig, get_config
from corridor_mcp.data.database import get_db
from corridor_mcp.data.gtfs_loader import GTFSLoader
from corridor_mcp.data.tfnsw_client import TfNSWClient
from corridor_mcp.geometry.stations import (
    CARDIFF,
    CORRIDOR_STOP_IDS,
    KOTARA,
    Station,
    get_station_for_stop,
    infer_direction,
    register_platform,
)
from corridor_mcp.models.gtfs import CorridorTimetable, Route, Stop, StopTime, Trip
from corridor_mcp.models.movements import (
    ConfidenceInfo,
    ConfidenceLevel,
    DataSource,
    Direction,
    FeedHealth,
    FeedStatus,
    Movement,
    MovementStatus,
    ServiceType,
    StopCall,
)
from corridor_mcp.services.sources import SourceResult, SourceUnavailableError
from corridor_mcp.services.synthetic_timetable import generate_scheduled_movements

logger = logging.getLogger(__name__)

SCHEDULE_FEED_NAME = "GTFS Static Timetable"
SCHEDULE_REASON = "Based on published GTFS static timetable"

# calendar.txt day columns, Monday first to match date.weekday()
WEEKDAY_COLUMNS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

# pickup_type / drop_off_type value meaning "no pickup" / "no drop off"
NOT_AVAILABLE = 1


def parse_gtfs_time(time_str: str) -> tuple[int, int, int]:
    """Split a GTFS HH:MM:SS time; hours run past 24 for after-midnight calls.

    Raises:
        ValueError: If the time string is invalid.
    """
    parts = time_str.strip().split(":")
    if len(parts) != 3 or not all(p.isdigit() for p in parts):
        raise ValueError(f"Invalid GTFS time format: {time_str}")
    hours, minutes, seconds = (int(p) for p in parts)
    return hours, minutes, seconds


def gtfs_time_to_seconds(time_str: str) -> int:
    """Seconds after the start of the service day (may exceed 86400)."""
    hours, minutes, seconds = parse_gtfs_time(time_str)
    return (hours * 60 + minutes) * 60 + seconds


def date_to_gtfs_format(d: date) -> str:
    return d.strftime("%Y%m%d")


def project_gtfs_time(service_date: date, time_str: str | None, tz: ZoneInfo) -> datetime | None:
    """Project a GTFS wall-clock time onto an absolute instant.

    The offset is applied to local midnight of the service date, so
    "25:10:00" on the 3rd is 01:10 local on the 4th.

    Args:
        service_date: The GTFS service day.
        time_str: HH:MM:SS, or None when the timetable leaves it blank.
        tz: Corridor timezone.

    Returns:
        Timezone-aware datetime in UTC, or None for a blank time.

    Raises:
        ValueError: If the time string is invalid.
    """
    if not time_str:
        return None
    seconds = gtfs_time_to_seconds(time_str)
    days, remainder = divmod(seconds, 86400)
    local = datetime.combine(service_date + timedelta(days=days), time(0), tzinfo=tz)
    return (local + timedelta(seconds=remainder)).astimezone(UTC)


async def get_active_service_ids(db: aiosqlite.Connection, query_date: date) -> set[str]:
    """Service ids running on a date.

    A service runs when its calendar range covers the date and its weekday
    flag is set, or when calendar_dates adds it (exception_type 1); a
    removal (exception_type 2) always wins.
    """
    day = date_to_gtfs_format(query_date)
    sql = f"""
        SELECT service_id FROM calendar
        WHERE ? BETWEEN start_date AND end_date AND {WEEKDAY_COLUMNS[query_date.weekday()]} = 1
        UNION
        SELECT service_id FROM calendar_dates WHERE date = ? AND exception_type = 1
        EXCEPT
        SELECT service_id FROM calendar_dates WHERE date = ? AND exception_type = 2
    """
    async with db.execute(sql, (day, day, day)) as cursor:
        return {row["service_id"] async for row in cursor}


class TimetableProvider(Protocol):
    """Source of parsed static timetable tables for one service date."""

    async def load(self, service_date: date) -> CorridorTimetable: ...

    async def refresh(self) -> None: ...


def _placeholders(values: list[str] | set[str]) -> str:
    return ",".join("?" for _ in values)


class SQLiteTimetableProvider:
    """Reads corridor trips from the SQLite store built by GTFSLoader."""

    def __init__(self, config: CorridorConfig):
        self._config = config

    @property
    def db_path(self) -> Path:
        return self._config.db_path

    async def load(self, service_date: date) -> CorridorTimetable:
        """Load the tables for trips active on service_date that touch the corridor.

        Raises:
            FileNotFoundError: If the database has not been built.
            aiosqlite.Error: If the database is unreadable.
        """
        async with get_db(self.db_path) as db:
            services = await get_active_service_ids(db, service_date)
            if not services:
                logger.debug(f"No active services on {service_date}")
                return CorridorTimetable(service_date=service_date)

            stop_ids = sorted(CORRIDOR_STOP_IDS)
            prefixes = self._config.route_prefixes
            route_clause = " OR ".join("t.route_id LIKE ?" for _ in prefixes) or "1 = 1"
            sql = f"""
                SELECT DISTINCT t.trip_id
                FROM trips t
                JOIN stop_times st ON st.trip_id = t.trip_id
                LEFT JOIN stops s ON s.stop_id = st.stop_id
                WHERE t.service_id IN ({_placeholders(services)})
                  AND (st.stop_id IN ({_placeholders(stop_ids)})
                       OR s.parent_station IN ({_placeholders(stop_ids)}))
                  AND ({route_clause})
            """
            params = [*services, *stop_ids, *stop_ids, *(f"{p}%" for p in prefixes)]
            async with db.execute(sql, params) as cursor:
                trip_ids = [row["trip_id"] for row in await cursor.fetchall()]

            if not trip_ids:
                return CorridorTimetable(service_date=service_date)

            sql = f"SELECT * FROM trips WHERE trip_id IN ({_placeholders(trip_ids)})"
            async with db.execute(sql, trip_ids) as cursor:
                trips = {row["trip_id"]: Trip(**dict(row)) for row in await cursor.fetchall()}

            sql = f"""
                SELECT * FROM stop_times
                WHERE trip_id IN ({_placeholders(trip_ids)})
                ORDER BY trip_id, stop_sequence
            """
            stop_times: dict[str, list[StopTime]] = {}
            async with db.execute(sql, trip_ids) as cursor:
                for row in await cursor.fetchall():
                    stop_times.setdefault(row["trip_id"], []).append(StopTime(**dict(row)))

            referenced = sorted({st.stop_id for sts in stop_times.values() for st in sts})
            sql = f"SELECT * FROM stops WHERE stop_id IN ({_placeholders(referenced)})"
            async with db.execute(sql, referenced) as cursor:
                stops = {row["stop_id"]: Stop(**dict(row)) for row in await cursor.fetchall()}

            route_ids = sorted({trip.route_id for trip in trips.values()})
            sql = f"""
                SELECT r.route_id, r.agency_id, a.agency_name, r.route_short_name,
                       r.route_long_name, r.route_type
                FROM routes r
                LEFT JOIN agency a ON a.agency_id = r.agency_id
                WHERE r.route_id IN ({_placeholders(route_ids)})
            """
            async with db.execute(sql, route_ids) as cursor:
                routes = {row["route_id"]: Route(**dict(row)) for row in await cursor.fetchall()}

        logger.debug(f"Loaded {len(trips)} corridor trips for {service_date}")
        return CorridorTimetable(
            service_date=service_date,
            routes=routes,
            trips=trips,
            stops=stops,
            stop_times=stop_times,
        )

    async def refresh(self) -> None:
        """Download the static GTFS ZIP and rebuild the database.

        Raises:
            SourceUnavailableError: If no TfNSW API key is configured.
            httpx.HTTPError: If the download fails.
            ValueError: If the downloaded GTFS is malformed.
        """
        if not self._config.realtime_enabled:
            raise SourceUnavailableError("TFNSW_API_KEY not set; cannot download the GTFS static timetable")

        zip_path = self.db_path.with_suffix(".zip")
        logger.info(f"Downloading GTFS static timetable to {zip_path}")
        async with TfNSWClient(self._config) as client:
            await client.download_gtfs_static(zip_path)
        try:
            await GTFSLoader(self.db_path).ingest(zip_path)
        finally:
            zip_path.unlink(missing_ok=True)


def _station_for(stop_id: str, stops: dict[str, Stop]) -> Station | None:
    station = get_station_for_stop(stop_id)
    if station is None and stop_id in stops:
        # realtime updates for this platform resolve to the same station
        station = register_platform(stop_id, stops[stop_id].parent_station)
    return station


def _infer_trip_direction(
    trip: Trip,
    calls: dict[str, StopCall],
    trip_stop_times: list[StopTime],
    stops: dict[str, Stop],
) -> Direction:
    cardiff, kotara = calls.get(CARDIFF.id), calls.get(KOTARA.id)
    direction = infer_direction(
        cardiff.stop_sequence if cardiff else None,
        kotara.stop_sequence if kotara else None,
    )
    if direction is not None:
        return direction

    # One corridor call only: Newcastle lies east of both stations
    station = CARDIFF if cardiff else KOTARA
    destination = stops.get(trip_stop_times[-1].stop_id)
    if destination is not None and destination.stop_lon is not None and destination.stop_lon != station.lng:
        if destination.stop_lon > station.lng:
            return Direction.TOWARDS_NEWCASTLE
        return Direction.TOWARDS_SYDNEY

    return Direction.TOWARDS_NEWCASTLE if trip.direction_id == 1 else Direction.TOWARDS_SYDNEY


def build_movements_from_timetable(timetable: CorridorTimetable, tz: ZoneInfo) -> list[Movement]:
    """Convert corridor trips of one service date into scheduled movements.

    Trips without a call at either corridor station, or without any time at
    their first corridor call, are skipped.
    """
    now = datetime.now(UTC)
    service_date = timetable.service_date
    movements: list[Movement] = []

    for trip_id, trip_stop_times in timetable.stop_times.items():
        trip = timetable.trips.get(trip_id)
        if trip is None or not trip_stop_times:
            continue

        calls: dict[str, StopCall] = {}
        for st in trip_stop_times:
            station = _station_for(st.stop_id, timetable.stops)
            if station is None or station.id in calls:
                continue
            stop = timetable.stops.get(st.stop_id)
            calls[station.id] = StopCall(
                stop_id=st.stop_id,
                stop_name=station.name,
                scheduled_arrival=project_gtfs_time(service_date, st.arrival_time, tz),
                scheduled_departure=project_gtfs_time(service_date, st.departure_time, tz),
                platform=stop.platform_code if stop else None,
                stop_sequence=st.stop_sequence,
                stops_here=not (st.pickup_type == NOT_AVAILABLE and st.drop_off_type == NOT_AVAILABLE),
            )

        if not calls:
            continue

        direction = _infer_trip_direction(trip, calls, trip_stop_times, timetable.stops)
        corridor_calls = sorted(calls.values(), key=lambda c: c.stop_sequence)
        if direction == Direction.TOWARDS_NEWCASTLE:
            primary = calls.get(CARDIFF.id) or calls[KOTARA.id]
        else:
            primary = calls.get(KOTARA.id) or calls[CARDIFF.id]
        scheduled_time = primary.scheduled_departure or primary.scheduled_arrival
        if scheduled_time is None:
            continue

        route = timetable.routes.get(trip.route_id)
        first_stop = timetable.stops.get(trip_stop_times[0].stop_id)
        last_stop = timetable.stops.get(trip_stop_times[-1].stop_id)
        service_name = trip.route_id
        if route is not None:
            service_name = " ".join(n for n in (route.route_short_name, route.route_long_name) if n) or trip.route_id

        movements.append(
            Movement(
                id=f"sched-{trip_id}-{date_to_gtfs_format(service_date)}",
                trip_id=trip_id,
                run_id=trip.trip_short_name,
                route_id=trip.route_id,
                service_name=service_name,
                operator=(route.agency_name if route else None) or "Unknown operator",
                service_type=ServiceType.PASSENGER,
                direction=direction,
                origin=first_stop.stop_name if first_stop else trip_stop_times[0].stop_id,
                destination=trip.trip_headsign
                or (last_stop.stop_name if last_stop else trip_stop_times[-1].stop_id),
                status=MovementStatus.SCHEDULED,
                stops=corridor_calls,
                cardiff_call=calls.get(CARDIFF.id),
                kotara_call=calls.get(KOTARA.id),
                passes_through=not any(c.stops_here for c in corridor_calls),
                confidence=ConfidenceInfo(
                    level=ConfidenceLevel.SCHEDULED,
                    reason=SCHEDULE_REASON,
                    sources=[DataSource.GTFS_STATIC],
                    last_updated=now,
                ),
                scheduled_time=scheduled_time,
            )
        )

    return movements


class DaySchedule(BaseModel):
    """Cached movements for one service date and how they were obtained."""

    movements: list[Movement]
    source: DataSource = DataSource.GTFS_STATIC
    degraded_reason: str | None = None


class ScheduleSource:
    """Baseline scheduled movements for a time range, cached per service date.

    Usage:
        source = ScheduleSource(SQLiteTimetableProvider(config), config.tz)
        result = await source.fetch(start, end)
    """

    def __init__(
        self,
        provider: TimetableProvider,
        tz: ZoneInfo,
        ttl: float = 3600,
        clock: Clock = monotonic_time.monotonic,
    ):
        """Initialize the source.

        Args:
            provider: Static timetable provider.
            tz: Corridor timezone used for service days and GTFS projection.
            ttl: Seconds a parsed service date stays fresh.
            clock: Monotonic clock for the cache, injectable for tests.
        """
        self._provider = provider
        self._tz = tz
        self.cache: TTLCache[date, DaySchedule] = TTLCache(ttl=ttl, clock=clock)

    def service_dates(self, start: datetime, end: datetime) -> list[date]:
        """Service dates whose trips can fall within [start, end].

        Includes the day before start, whose after-midnight trips run into it.
        """
        first = start.astimezone(self._tz).date() - timedelta(days=1)
        last = end.astimezone(self._tz).date()
        return [first + timedelta(days=i) for i in range((last - first).days + 1)]

    async def _load_date(self, service_date: date) -> list[Movement]:
        timetable = await self._provider.load(service_date)
        return build_movements_from_timetable(timetable, self._tz)

    async def _load_with_refresh(self, service_date: date, refreshed: list[bool]) -> list[Movement]:
        """Load a date, refreshing the dataset once per fetch when it comes back empty."""
        try:
            movements = await self._load_date(service_date)
            if movements or refreshed[0]:
                return movements
            logger.info(f"Timetable has no corridor movements for {service_date}; refreshing once")
        except (FileNotFoundError, aiosqlite.Error, ValueError) as e:
            if refreshed[0]:
                raise
            logger.warning(f"Timetable unavailable for {service_date}: {e}; refreshing once")

        refreshed[0] = True
        await self._provider.refresh()
        return await self._load_date(service_date)

    async def _day(self, service_date: date, refreshed: list[bool]) -> DaySchedule:
        cached = self.cache.get(service_date)
        if cached is not None:
            logger.debug(f"Schedule cache hit for {service_date}")
            return cached

        error: str | None = None
        try:
            movements = await self._load_with_refresh(service_date, refreshed)
        except Exception as e:
            movements = []
            error = f"Timetable refresh failed: {e}"
            logger.warning(f"{error} ({service_date})")

        if movements:
            day = DaySchedule(movements=movements)
        else:
            stale = self.cache.get_stale(service_date)
            if stale is not None and stale.movements:
                logger.info(f"Serving stale timetable for {service_date}")
                day = stale.model_copy(
                    update={"degraded_reason": error or "Timetable empty after refresh; using cached timetable"}
                )
            else:
                logger.info(f"Using built-in timetable for {service_date}")
                day = DaySchedule(
                    movements=generate_scheduled_movements(service_date, self._tz),
                    source=DataSource.GTFS_STATIC_FALLBACK,
                    degraded_reason=error or "No corridor services in GTFS static timetable",
                )

        self.cache.set(service_date, day)
        return day

    async def fetch(self, start: datetime, end: datetime) -> SourceResult[list[Movement]]:
        """Scheduled movements whose primary time is within [start, end], with feed status.

        Never raises for timetable failures; degradation shows in the status.
        """
        fetched_at = datetime.now(UTC)
        refreshed = [False]
        seen: set[str] = set()
        movements: list[Movement] = []
        reasons: list[str] = []
        fallback_only = True

        for service_date in self.service_dates(start, end):
            day = await self._day(service_date, refreshed)
            if day.degraded_reason and day.degraded_reason not in reasons:
                reasons.append(day.degraded_reason)
            if day.source == DataSource.GTFS_STATIC:
                fallback_only = False
            for movement in day.movements:
                if movement.id in seen or not start <= movement.scheduled_time <= end:
                    continue
                seen.add(movement.id)
                movements.append(movement)

        status = FeedStatus(
            name=SCHEDULE_FEED_NAME,
            source=DataSource.GTFS_STATIC_FALLBACK if fallback_only else DataSource.GTFS_STATIC,
            status=FeedHealth.DEGRADED if reasons else FeedHealth.ONLINE,
            last_fetched=fetched_at,
            last_successful=None if fallback_only else fetched_at,
            error="; ".join(reasons) or None,
            record_count=len(movements),
        )
        return SourceResult(records=movements, feed_status=status)

    async def get_scheduled_movements(self, start: datetime, end: datetime) -> list[Movement]:
        """Scheduled movements whose primary time is within [start, end] (inclusive)."""
        result = await self.fetch(start, end)
        return result.records


# Module-level state (lazy-initialized)
_schedule_source: ScheduleSource | None = None


def get_schedule_source() -> ScheduleSource:
    """Get or create the process-wide schedule source."""
    global _schedule_source
    if _schedule_source is None:
        config = get_config()
        _schedule_source = ScheduleSource(
            SQLiteTimetableProvider(config),
            config.tz,
            ttl=config.schedule_cache_ttl_seconds,
        )
    return _schedule_source


def reset_service() -> None:
    """Drop the schedule source and its cache. Useful for testing."""
    global _schedule_source
    _schedule_source = None
