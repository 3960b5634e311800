"""Pydantic models for GTFS static entities."""

from datetime import date

from pydantic import BaseModel


class Route(BaseModel):
    """GTFS route entity."""

    route_id: str
    agency_id: str | None = None
    agency_name: str | None = None  # joined from agency.txt
    route_short_name: str | None = None
    route_long_name: str | None = None
    route_type: int


class Stop(BaseModel):
    """GTFS stop entity."""

    stop_id: str
    stop_name: str
    stop_lat: float | None = None
    stop_lon: float | None = None
    location_type: int | None = None  # 0=stop, 1=station
    parent_station: str | None = None
    platform_code: str | None = None


class Trip(BaseModel):
    """GTFS trip entity."""

    trip_id: str
    route_id: str
    service_id: str
    trip_headsign: str | None = None
    trip_short_name: str | None = None
    direction_id: int | None = None


class StopTime(BaseModel):
    """GTFS stop_times entity."""

    trip_id: str
    arrival_time: str | None = None  # HH:MM:SS (can exceed 24:00:00)
    departure_time: str | None = None
    stop_id: str
    stop_sequence: int
    pickup_type: int | None = None
    drop_off_type: int | None = None


class CorridorTimetable(BaseModel):
    """Static timetable tables for one service date, scoped to the corridor.

    Only trips that call at (or pass) a corridor stop are present, but each
    of those trips carries its complete stop_times so origin and destination
    can be resolved.
    """

    service_date: date
    routes: dict[str, Route] = {}
    trips: dict[str, Trip] = {}
    stops: dict[str, Stop] = {}
    stop_times: dict[str, list[StopTime]] = {}  # trip_id -> ordered stop times
