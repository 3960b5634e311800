"""Position estimation along the corridor.

Single source of truth for where a movement is right now. A live GPS fix
always wins; otherwise the position is interpolated from the best known
times at Cardiff and Kotara, with a short approach and departure run-out
either side of the corridor.
"""

from datetime import datetime, timedelta

from corridor_mcp.geometry.rail_path import CORRIDOR_GEOMETRY, CorridorGeometry
from corridor_mcp.geometry.stations import CARDIFF, KOTARA
from corridor_mcp.models.movements import (
    Direction,
    Movement,
    MovementLocation,
    MovementStatus,
)

APPROACH_PADDING = timedelta(minutes=3)

_NOT_ON_MAP = {MovementStatus.CANCELLED, MovementStatus.COMPLETED}


def estimate_position(
    movement: Movement,
    now: datetime,
    geometry: CorridorGeometry = CORRIDOR_GEOMETRY,
) -> float | None:
    """Normalized corridor position of a movement at now.

    Returns:
        Position in [0, 1] (0 = Cardiff end of the path), or None when the
        movement is not within the padded corridor window or lacks a time
        at either station.
    """
    if movement.vehicle_position is not None:
        return geometry.project(movement.vehicle_position.lat, movement.vehicle_position.lng)

    if movement.cardiff_call is None or movement.kotara_call is None:
        return None
    cardiff_time = movement.cardiff_call.best_time
    kotara_time = movement.kotara_call.best_time
    if cardiff_time is None or kotara_time is None:
        return None

    # Cardiff is the path start, so it is entered first heading to Newcastle
    towards_newcastle = movement.direction == Direction.TOWARDS_NEWCASTLE
    cardiff_dist = geometry.distance_of(CARDIFF.id)
    kotara_dist = geometry.distance_of(KOTARA.id)
    if towards_newcastle:
        entry_time, exit_time = cardiff_time, kotara_time
        entry_dist, exit_dist = cardiff_dist, kotara_dist
        approach_dist, departure_dist = 0.0, geometry.total_length
    else:
        entry_time, exit_time = kotara_time, cardiff_time
        entry_dist, exit_dist = kotara_dist, cardiff_dist
        approach_dist, departure_dist = geometry.total_length, 0.0

    if now < entry_time - APPROACH_PADDING or now > exit_time + APPROACH_PADDING:
        return None

    if now < entry_time:
        progress = (now - (entry_time - APPROACH_PADDING)) / APPROACH_PADDING
        return geometry.normalize(approach_dist + (entry_dist - approach_dist) * progress)

    if now <= exit_time:
        progress = 1.0 if exit_time == entry_time else (now - entry_time) / (exit_time - entry_time)
        return geometry.normalize(entry_dist + (exit_dist - entry_dist) * progress)

    progress = (now - exit_time) / APPROACH_PADDING
    return geometry.normalize(exit_dist + (departure_dist - exit_dist) * progress)


def locate_movement(
    movement: Movement,
    now: datetime,
    geometry: CorridorGeometry = CORRIDOR_GEOMETRY,
) -> MovementLocation | None:
    """Map position of a movement, or None if it shouldn't be drawn."""
    if movement.status in _NOT_ON_MAP:
        return None

    if movement.vehicle_position is not None:
        vp = movement.vehicle_position
        return MovementLocation(
            movement_id=movement.id,
            lat=vp.lat,
            lng=vp.lng,
            normalized_position=geometry.project(vp.lat, vp.lng),
            is_live=True,
        )

    t = estimate_position(movement, now, geometry)
    if t is None:
        return None
    lat, lng = geometry.interpolate(t)
    return MovementLocation(
        movement_id=movement.id,
        lat=lat,
        lng=lng,
        normalized_position=t,
        is_live=False,
    )


def locate_movements(
    movements: list[Movement],
    now: datetime,
    geometry: CorridorGeometry = CORRIDOR_GEOMETRY,
) -> list[MovementLocation]:
    """Map positions for every movement currently in or near the corridor."""
    return [
        location
        for movement in movements
        if (location := locate_movement(movement, now, geometry)) is not None
    ]
