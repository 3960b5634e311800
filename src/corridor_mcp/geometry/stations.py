"""Station definitions for the Cardiff–Kotara corridor.

Stop IDs are TfNSW GTFS stop_ids. Cardiff is south-west of Kotara, so a
train calling at Cardiff before Kotara is heading towards Newcastle.
"""

from pydantic import BaseModel

from corridor_mcp.models.movements import Direction


class Station(BaseModel):
    id: str
    name: str
    lat: float  # on-track position
    lng: float
    stop_ids: list[str]  # parent station stop_ids


CARDIFF = Station(
    id="cardiff",
    name="Cardiff",
    lat=-32.9432879,
    lng=151.6681841,
    stop_ids=["225521"],
)

KOTARA = Station(
    id="kotara",
    name="Kotara",
    lat=-32.9445870,
    lng=151.6884115,
    stop_ids=["225421"],
)

CORRIDOR_STATIONS: list[Station] = [CARDIFF, KOTARA]

CORRIDOR_STOP_IDS: frozenset[str] = frozenset(
    stop_id for station in CORRIDOR_STATIONS for stop_id in station.stop_ids
)

# Platform stop_id -> station, learned from the timetable's parent_station links.
# TfNSW stop_times and realtime feeds reference platforms, not parent stations.
_platforms: dict[str, Station] = {}


def register_platform(stop_id: str, parent_station: str | None) -> Station | None:
    """Remember a platform of a corridor station; returns the station, if any."""
    station = next((s for s in CORRIDOR_STATIONS if parent_station in s.stop_ids), None)
    if station is not None:
        _platforms[stop_id] = station
    return station


def clear_platforms() -> None:
    """Forget learned platforms. Useful for testing."""
    _platforms.clear()


def get_station_for_stop(stop_id: str) -> Station | None:
    """Find which corridor station a stop_id (parent or known platform) belongs to."""
    for station in CORRIDOR_STATIONS:
        if stop_id in station.stop_ids:
            return station
    return _platforms.get(stop_id)


def is_corridor_stop(stop_id: str) -> bool:
    """Check if a stop_id belongs to a corridor station."""
    return get_station_for_stop(stop_id) is not None


def infer_direction(
    cardiff_sequence: int | None,
    kotara_sequence: int | None,
) -> Direction | None:
    """Determine direction from the stop sequence of the two corridor calls.

    Returns None unless both sequences are known.
    """
    if cardiff_sequence is None or kotara_sequence is None:
        return None
    if cardiff_sequence < kotara_sequence:
        return Direction.TOWARDS_NEWCASTLE
    return Direction.TOWARDS_SYDNEY
