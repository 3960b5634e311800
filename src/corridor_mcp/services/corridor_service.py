"""Corridor aggregator: one best-effort movements response per request.

Each cycle fetches the schedule, then fans out to the realtime feeds,
freight and alerts concurrently. A failing source only ever shows up as an
offline FeedStatus; the cycle always returns whatever it could assemble.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, time, timedelta
from zoneinfo import ZoneInfo

from corridor_mcp.data.config import get_config
from corridor_mcp.models.movements import (
    CorridorPositionsResponse,
    DataSource,
    DirectionFilter,
    FeedHealth,
    FeedStatus,
    Movement,
    MovementFilters,
    MovementsResponse,
    MovementStatus,
    ServiceAlert,
    StationFilter,
    StatusFilter,
    TimeWindow,
    TypeFilter,
    VehiclePosition,
)
from corridor_mcp.services import realtime_service
from corridor_mcp.services.alerts_service import (
    ALERTS_FEED_NAME,
    attach_alerts,
    get_corridor_alerts,
    process_service_alerts,
)
from corridor_mcp.services.freight_service import FreightResult, get_freight_for_window
from corridor_mcp.services.position_service import locate_movements
from corridor_mcp.services.realtime_service import (
    TRIP_UPDATES_FEED_NAME,
    VEHICLE_POSITIONS_FEED_NAME,
    TripUpdateRecord,
)
from corridor_mcp.services.reconciliation import merge_realtime_data
from corridor_mcp.services.schedule_service import ScheduleSource, get_schedule_source
from corridor_mcp.services.sources import SourceResult, offline_status

logger = logging.getLogger(__name__)

# Movements more than this far past their last corridor departure are completed
COMPLETION_GRACE = timedelta(minutes=5)

TripUpdatesFetcher = Callable[[], Awaitable[SourceResult[dict[str, TripUpdateRecord]]]]
VehiclePositionsFetcher = Callable[[], Awaitable[SourceResult[dict[str, VehiclePosition]]]]
FreightFetcher = Callable[[datetime, datetime], Awaitable[FreightResult]]
AlertsFetcher = Callable[[], Awaitable[SourceResult[list[ServiceAlert]]]]


def get_time_window(window: TimeWindow, now: datetime, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """Start and end (inclusive) of a selectable time window.

    "today" is local midnight to the last instant of the local day.
    """
    if window == TimeWindow.NOW:
        return now - timedelta(minutes=15), now + timedelta(hours=1)
    if window == TimeWindow.NEXT_2H:
        return now - timedelta(minutes=5), now + timedelta(hours=2)

    local_date = now.astimezone(tz).date()
    return (
        datetime.combine(local_date, time.min, tzinfo=tz),
        datetime.combine(local_date, time.max, tzinfo=tz),
    )


def _matches(movement: Movement, filters: MovementFilters) -> bool:
    if filters.station == StationFilter.CARDIFF and movement.cardiff_call is None:
        return False
    if filters.station == StationFilter.KOTARA and movement.kotara_call is None:
        return False
    if filters.direction != DirectionFilter.BOTH and movement.direction.value != filters.direction.value:
        return False
    if filters.type != TypeFilter.ALL and movement.service_type.value != filters.type.value:
        return False
    if filters.status != StatusFilter.ALL and movement.status.value != filters.status.value:
        return False
    return True


def apply_filters(movements: list[Movement], filters: MovementFilters) -> list[Movement]:
    """Keep movements matching every filter; "both"/"all" disables a filter."""
    return [m for m in movements if _matches(m, filters)]


def mark_completed_movements(movements: list[Movement], now: datetime) -> list[Movement]:
    """Mark movements completed once they are well past their last corridor departure.

    Cancelled and live movements are left alone.
    """
    marked: list[Movement] = []
    for movement in movements:
        if movement.status not in (MovementStatus.CANCELLED, MovementStatus.LIVE, MovementStatus.COMPLETED):
            departures = [c.best_departure for c in movement.corridor_calls if c.best_departure]
            if departures and max(departures) < now - COMPLETION_GRACE:
                movement = movement.model_copy(update={"status": MovementStatus.COMPLETED})
        marked.append(movement)
    return marked


def sort_movements(movements: list[Movement]) -> list[Movement]:
    """Ascending by estimated time, falling back to scheduled time."""
    return sorted(movements, key=lambda m: m.effective_time)


class CorridorAggregator:
    """Runs one aggregation cycle per request.

    Every source is injectable so cycles can be tested without a network.
    """

    def __init__(
        self,
        schedule: ScheduleSource,
        tz: ZoneInfo,
        trip_updates: TripUpdatesFetcher | None = None,
        vehicle_positions: VehiclePositionsFetcher | None = None,
        freight: FreightFetcher | None = None,
        alerts: AlertsFetcher | None = None,
        route_prefixes: list[str] | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._schedule = schedule
        self._tz = tz
        self._trip_updates = trip_updates or realtime_service.process_trip_updates
        self._vehicle_positions = vehicle_positions or realtime_service.process_vehicle_positions
        self._freight = freight or get_freight_for_window
        self._alerts = alerts or process_service_alerts
        self._route_prefixes = route_prefixes
        self._clock = clock or (lambda: datetime.now(UTC))

    async def _fetch_realtime(self, now: datetime) -> tuple[SourceResult, SourceResult]:
        """Fetch both realtime feeds; one raising leaves the other usable."""
        trip_updates, vehicle_positions = await asyncio.gather(
            self._trip_updates(),
            self._vehicle_positions(),
            return_exceptions=True,
        )
        if isinstance(trip_updates, BaseException):
            logger.warning(f"Trip updates failed: {trip_updates}")
            trip_updates = SourceResult(
                records={},
                feed_status=offline_status(
                    TRIP_UPDATES_FEED_NAME, DataSource.TRIP_UPDATES, f"Realtime data unavailable: {trip_updates}", now
                ),
            )
        if isinstance(vehicle_positions, BaseException):
            logger.warning(f"Vehicle positions failed: {vehicle_positions}")
            vehicle_positions = SourceResult(
                records={},
                feed_status=offline_status(
                    VEHICLE_POSITIONS_FEED_NAME,
                    DataSource.VEHICLE_POSITIONS,
                    f"Realtime data unavailable: {vehicle_positions}",
                    now,
                ),
            )
        return trip_updates, vehicle_positions

    async def get_movements(self, filters: MovementFilters | None = None) -> MovementsResponse:
        """Run one full cycle and return the filtered, sorted movements."""
        filters = filters or MovementFilters()
        now = self._clock()
        start, end = get_time_window(filters.time_window, now, self._tz)
        feeds: list[FeedStatus] = []
        fallback_active = False
        fallback_reason: str | None = None

        schedule = await self._schedule.fetch(start, end)
        feeds.append(schedule.feed_status)
        movements = schedule.records

        include_freight = filters.type != TypeFilter.PASSENGER

        async def no_freight() -> None:
            return None

        realtime, freight, alerts = await asyncio.gather(
            self._fetch_realtime(now),
            self._freight(start, end) if include_freight else no_freight(),
            self._alerts(),
            return_exceptions=True,
        )

        all_alerts: list[ServiceAlert] = []
        corridor_alerts: list[ServiceAlert] = []
        if isinstance(alerts, BaseException):
            logger.warning(f"Service alerts failed: {alerts}")
            feeds.append(offline_status(ALERTS_FEED_NAME, DataSource.SERVICE_ALERTS, "Service alerts unavailable", now))
        else:
            all_alerts = alerts.records
            corridor_alerts = get_corridor_alerts(all_alerts, self._route_prefixes)
            feeds.append(alerts.feed_status)

        trip_updates, vehicle_positions = realtime
        feeds.extend([trip_updates.feed_status, vehicle_positions.feed_status])
        movements = merge_realtime_data(movements, trip_updates.records, vehicle_positions.records)

        if (
            trip_updates.feed_status.status == FeedHealth.OFFLINE
            and vehicle_positions.feed_status.status == FeedHealth.OFFLINE
        ):
            fallback_active = True
            errors = " ".join(e for e in (trip_updates.feed_status.error, vehicle_positions.feed_status.error) if e)
            fallback_reason = f"Realtime feeds are unavailable. Showing scheduled times only. {errors}".strip()

        if fallback_active:
            logger.info(f"Fallback active: {fallback_reason}")

        if include_freight:
            if isinstance(freight, BaseException):
                logger.warning(f"Freight estimation failed: {freight}")
                feeds.append(
                    offline_status(
                        "Freight Data",
                        DataSource.ARTC_FREIGHT_MODELLED,
                        f"Freight data unavailable: {freight}",
                        now,
                    )
                )
            elif freight is not None:
                movements = [*movements, *freight.movements]
                feeds.append(freight.feed_status)

        movements = attach_alerts(movements, all_alerts)
        movements = mark_completed_movements(movements, now)
        movements = apply_filters(movements, filters)
        movements = sort_movements(movements)

        logger.debug(f"Cycle complete: {len(movements)} movements in {filters.time_window.value} window")
        return MovementsResponse(
            movements=movements,
            feeds=feeds,
            alerts=corridor_alerts,
            filters=filters,
            timestamp=now,
            fallback_active=fallback_active,
            fallback_reason=fallback_reason,
        )

    async def get_positions(self, filters: MovementFilters | None = None) -> CorridorPositionsResponse:
        """Current map positions of the movements a cycle returns."""
        response = await self.get_movements(filters)
        positions = locate_movements(response.movements, response.timestamp)
        return CorridorPositionsResponse(
            positions=positions,
            count=len(positions),
            timestamp=response.timestamp,
        )


# Module-level state (lazy-initialized)
_aggregator: CorridorAggregator | None = None


def get_aggregator() -> CorridorAggregator:
    """Get or create the process-wide aggregator."""
    global _aggregator
    if _aggregator is None:
        config = get_config()
        _aggregator = CorridorAggregator(
            get_schedule_source(),
            config.tz,
            route_prefixes=config.route_prefixes,
        )
    return _aggregator


def reset_service() -> None:
    """Drop the aggregator. Useful for testing."""
    global _aggregator
    _aggregator = None
