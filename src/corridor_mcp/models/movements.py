"""Pydantic models for corridor movements and the aggregated response.

All of these are built fresh on every aggregation cycle.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from corridor_mcp.models.realtime import OccupancyStatus


class ConfidenceLevel(str, Enum):
    """Provenance of a movement's data.

    SCHEDULED < CONFIRMED_UPDATED < CONFIRMED_LIVE. ESTIMATED_FREIGHT is a
    separate low-confidence track outside that ordering.
    """

    SCHEDULED = "scheduled"
    CONFIRMED_UPDATED = "confirmed-updated"
    CONFIRMED_LIVE = "confirmed-live"
    ESTIMATED_FREIGHT = "estimated-freight"


class DataSource(str, Enum):
    """Tag identifying where a piece of data came from."""

    GTFS_STATIC = "tfnsw-gtfs-static"
    GTFS_STATIC_FALLBACK = "tfnsw-gtfs-static-fallback"
    TRIP_UPDATES = "tfnsw-gtfs-rt-trip-updates"
    VEHICLE_POSITIONS = "tfnsw-gtfs-rt-vehicle-positions"
    SERVICE_ALERTS = "tfnsw-gtfs-rt-service-alerts"
    ARTC_FREIGHT = "artc-freight"
    ARTC_FREIGHT_MODELLED = "artc-freight-modelled"


class Direction(str, Enum):
    TOWARDS_NEWCASTLE = "towards-newcastle"
    TOWARDS_SYDNEY = "towards-sydney"


class ServiceType(str, Enum):
    PASSENGER = "passenger"
    FREIGHT = "freight"


class MovementStatus(str, Enum):
    SCHEDULED = "scheduled"
    LIVE = "live"
    DELAYED = "delayed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class FeedHealth(str, Enum):
    ONLINE = "online"
    DEGRADED = "degraded"
    OFFLINE = "offline"


class ConfidenceInfo(BaseModel):
    """Why we believe what we show for a movement."""

    level: ConfidenceLevel
    reason: str
    sources: list[DataSource] = Field(min_length=1)
    last_updated: datetime


class StopCall(BaseModel):
    """One appearance of a movement at one stop."""

    stop_id: str
    stop_name: str
    scheduled_arrival: datetime | None = None
    scheduled_departure: datetime | None = None
    estimated_arrival: datetime | None = None
    estimated_departure: datetime | None = None
    platform: str | None = None
    stop_sequence: int
    stops_here: bool = Field(description="False when the vehicle passes through")

    @property
    def best_departure(self) -> datetime | None:
        """Estimated departure if known, otherwise scheduled departure."""
        return self.estimated_departure or self.scheduled_departure

    @property
    def best_time(self) -> datetime | None:
        """Best available time at this stop, departures before arrivals."""
        return (
            self.estimated_departure
            or self.scheduled_departure
            or self.estimated_arrival
            or self.scheduled_arrival
        )


class VehiclePosition(BaseModel):
    """Live GPS fix for the vehicle running a movement."""

    lat: float
    lng: float
    bearing: float | None = None
    speed: float | None = Field(default=None, description="meters/second")
    timestamp: datetime
    source: DataSource = DataSource.VEHICLE_POSITIONS
    vehicle_id: str | None = Field(default=None, description="Raw dot-separated car numbers")
    vehicle_label: str | None = None
    car_numbers: list[str] | None = None
    consist_length: int | None = None
    occupancy_status: OccupancyStatus | None = None


class Movement(BaseModel):
    """One scheduled or estimated traversal of the corridor."""

    id: str
    trip_id: str | None = None
    run_id: str | None = None
    route_id: str | None = None
    service_name: str
    operator: str
    service_type: ServiceType
    direction: Direction
    origin: str
    destination: str
    consist_type: str | None = None

    status: MovementStatus = MovementStatus.SCHEDULED
    stops: list[StopCall] = []

    cardiff_call: StopCall | None = None
    kotara_call: StopCall | None = None
    passes_through: bool = False

    vehicle_position: VehiclePosition | None = None
    confidence: ConfidenceInfo

    disruptions: list[str] = []

    scheduled_time: datetime = Field(
        description="Departure from the first corridor station in direction of travel"
    )
    estimated_time: datetime | None = None
    delay_minutes: int | None = None

    @property
    def corridor_calls(self) -> list[StopCall]:
        return [c for c in (self.cardiff_call, self.kotara_call) if c is not None]

    @property
    def primary_call(self) -> StopCall | None:
        """Call at the first corridor station encountered in direction of travel."""
        if self.direction == Direction.TOWARDS_NEWCASTLE:
            return self.cardiff_call or self.kotara_call
        return self.kotara_call or self.cardiff_call

    @property
    def effective_time(self) -> datetime:
        return self.estimated_time or self.scheduled_time


class FeedStatus(BaseModel):
    """Health of one upstream source for one aggregation cycle."""

    name: str
    source: DataSource
    status: FeedHealth
    last_fetched: datetime | None = None
    last_successful: datetime | None = None
    error: str | None = None
    record_count: int | None = None


class ActiveWindow(BaseModel):
    start: datetime
    end: datetime | None = None


class ServiceAlert(BaseModel):
    """A disruption notice decoded from the service alerts feed."""

    id: str
    cause: str = Field(description="GTFS-RT cause name, e.g. MAINTENANCE")
    effect: str = Field(description="GTFS-RT effect name, e.g. NO_SERVICE")
    header: str
    description: str = ""
    route_ids: list[str] = []
    trip_ids: list[str] = []
    stop_ids: list[str] = []
    active_periods: list[ActiveWindow] = []
    is_active: bool


class StationFilter(str, Enum):
    CARDIFF = "cardiff"
    KOTARA = "kotara"
    BOTH = "both"


class DirectionFilter(str, Enum):
    TOWARDS_NEWCASTLE = "towards-newcastle"
    TOWARDS_SYDNEY = "towards-sydney"
    BOTH = "both"


class TypeFilter(str, Enum):
    PASSENGER = "passenger"
    FREIGHT = "freight"
    ALL = "all"


class StatusFilter(str, Enum):
    ALL = "all"
    SCHEDULED = "scheduled"
    LIVE = "live"
    DELAYED = "delayed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class TimeWindow(str, Enum):
    NOW = "now"
    NEXT_2H = "next-2h"
    TODAY = "today"


class MovementFilters(BaseModel):
    station: StationFilter = StationFilter.BOTH
    direction: DirectionFilter = DirectionFilter.BOTH
    type: TypeFilter = TypeFilter.ALL
    status: StatusFilter = StatusFilter.ALL
    time_window: TimeWindow = TimeWindow.NOW


class MovementsResponse(BaseModel):
    """Everything the display layer needs for one refresh."""

    movements: list[Movement]
    feeds: list[FeedStatus]
    alerts: list[ServiceAlert]
    filters: MovementFilters
    timestamp: datetime
    fallback_active: bool
    fallback_reason: str | None = None


class MovementLocation(BaseModel):
    """Where a movement is on the corridor right now."""

    movement_id: str
    lat: float
    lng: float
    normalized_position: float = Field(description="0 = Cardiff end of the path, 1 = Kotara end")
    is_live: bool


class CorridorPositionsResponse(BaseModel):
    positions: list[MovementLocation]
    count: int
    timestamp: datetime
