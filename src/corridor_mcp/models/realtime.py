"""Decoded TfNSW GTFS-RT feeds (trip updates and vehicle positions).

Only fields the corridor reconciliation reads are kept. Stop ids are
whatever TfNSW publishes, usually platform ids rather than parent stations.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class OccupancyStatus(str, Enum):
    """Vehicle occupancy level (GTFS-RT standard enum)."""

    EMPTY = "EMPTY"
    MANY_SEATS_AVAILABLE = "MANY_SEATS_AVAILABLE"
    FEW_SEATS_AVAILABLE = "FEW_SEATS_AVAILABLE"
    STANDING_ROOM_ONLY = "STANDING_ROOM_ONLY"
    CRUSHED_STANDING_ROOM_ONLY = "CRUSHED_STANDING_ROOM_ONLY"
    FULL = "FULL"
    NOT_ACCEPTING_PASSENGERS = "NOT_ACCEPTING_PASSENGERS"


class ScheduleRelationship(str, Enum):
    """Trip-level schedule relationship (GTFS-RT TripDescriptor enum)."""

    SCHEDULED = "SCHEDULED"
    ADDED = "ADDED"
    UNSCHEDULED = "UNSCHEDULED"
    CANCELED = "CANCELED"
    REPLACEMENT = "REPLACEMENT"
    DUPLICATED = "DUPLICATED"
    DELETED = "DELETED"


class StopTimeEvent(BaseModel):
    """Predicted arrival or departure time at a stop."""

    delay: int | None = None  # seconds late (positive) or early (negative)
    time: int | None = None  # predicted unix timestamp


class StopTimeUpdate(BaseModel):
    """Predicted times for one stop of a trip."""

    stop_id: str | None = None
    arrival: StopTimeEvent | None = None
    departure: StopTimeEvent | None = None


class TripDescriptor(BaseModel):
    """Trip a realtime entity refers to; CANCELED marks a cancelled trip."""

    trip_id: str | None = None
    route_id: str | None = None
    schedule_relationship: ScheduleRelationship | None = None


class TripUpdate(BaseModel):
    """Real-time update for a single trip."""

    trip: TripDescriptor
    stop_time_update: list[StopTimeUpdate] = []
    timestamp: int | None = None


class Position(BaseModel):
    """Geographic position of a vehicle."""

    latitude: float
    longitude: float
    bearing: float | None = None
    speed: float | None = None  # meters/second


class VehicleDescriptor(BaseModel):
    """Identifies a vehicle. TfNSW puts dot-separated car numbers in id."""

    id: str | None = None
    label: str | None = None


class VehiclePositionEntity(BaseModel):
    """One train in the vehicle positions feed."""

    trip: TripDescriptor | None = None
    vehicle: VehicleDescriptor | None = None
    position: Position | None = None
    occupancy_status: OccupancyStatus | None = None
    timestamp: int | None = None


class FeedHeader(BaseModel):
    """Header information from GTFS-RT feed."""

    gtfs_realtime_version: str
    timestamp: int


class TripUpdatesData(BaseModel):
    """Complete trip updates feed data."""

    header: FeedHeader
    trip_updates: list[TripUpdate] = []
    fetched_at: datetime


class VehiclePositionsData(BaseModel):
    """Complete vehicle positions feed data."""

    header: FeedHeader
    vehicles: list[VehiclePositionEntity] = []
    fetched_at: datetime
