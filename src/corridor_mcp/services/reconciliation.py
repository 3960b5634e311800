"""Reconciliation of realtime updates into scheduled movements.

Trip updates are applied first and vehicle positions second, so a live
position always has the final say on confidence. Movements are never
mutated in place; each merge returns updated copies.
"""

import logging
from datetime import UTC, datetime, timedelta

from corridor_mcp.geometry.stations import CARDIFF, KOTARA
from corridor_mcp.models.movements import (
    ConfidenceInfo,
    ConfidenceLevel,
    DataSource,
    Movement,
    MovementStatus,
    StopCall,
    VehiclePosition,
)
from corridor_mcp.services.realtime_service import StopUpdate, TripUpdateRecord

logger = logging.getLogger(__name__)

# A movement is "delayed" only beyond this many minutes late
DELAY_THRESHOLD_MINUTES = 2

CANCELLED_REASON = "Trip cancelled per GTFS-RT trip update"
CANCELLED_DISRUPTION = "Service cancelled"
UPDATED_REASON = "Times updated from GTFS-RT trip update feed"
LIVE_REASON = "Live vehicle position confirmed from GTFS-RT"


def _estimate(scheduled: datetime | None, absolute: datetime | None, delay: int | None) -> datetime | None:
    """Absolute updated time wins over a delay offset from the scheduled time."""
    if absolute is not None:
        return absolute
    if delay is not None and scheduled is not None:
        return scheduled + timedelta(seconds=delay)
    return None


def apply_stop_update(call: StopCall, update: StopUpdate | None) -> StopCall:
    """Return call with estimated times from a stop-time update, if any."""
    if update is None:
        return call

    changes = {}
    arrival = _estimate(call.scheduled_arrival, update.arrival_time, update.arrival_delay)
    if arrival is not None:
        changes["estimated_arrival"] = arrival
    departure = _estimate(call.scheduled_departure, update.departure_time, update.departure_delay)
    if departure is not None:
        changes["estimated_departure"] = departure
    return call.model_copy(update=changes) if changes else call


def apply_trip_update(movement: Movement, update: TripUpdateRecord) -> Movement:
    """Apply a trip update: cancellation, or per-stop times plus delay and status."""
    last_updated = update.timestamp or datetime.now(UTC)

    if update.cancelled:
        return movement.model_copy(
            update={
                "status": MovementStatus.CANCELLED,
                "confidence": ConfidenceInfo(
                    level=ConfidenceLevel.CONFIRMED_UPDATED,
                    reason=CANCELLED_REASON,
                    sources=[DataSource.TRIP_UPDATES],
                    last_updated=last_updated,
                ),
                "disruptions": [*movement.disruptions, CANCELLED_DISRUPTION],
            }
        )

    def updated(call: StopCall | None, station_id: str) -> StopCall | None:
        if call is None:
            return None
        return apply_stop_update(call, update.stop_time_updates.get(station_id))

    cardiff_call = updated(movement.cardiff_call, CARDIFF.id)
    kotara_call = updated(movement.kotara_call, KOTARA.id)

    def in_stops(call: StopCall) -> StopCall:
        if call == movement.cardiff_call:
            return cardiff_call
        if call == movement.kotara_call:
            return kotara_call
        return call

    merged = movement.model_copy(
        update={
            "cardiff_call": cardiff_call,
            "kotara_call": kotara_call,
            "stops": [in_stops(call) for call in movement.stops],
        }
    )

    changes: dict = {
        "status": MovementStatus.LIVE,
        "confidence": ConfidenceInfo(
            level=ConfidenceLevel.CONFIRMED_UPDATED,
            reason=UPDATED_REASON,
            sources=[DataSource.GTFS_STATIC, DataSource.TRIP_UPDATES],
            last_updated=last_updated,
        ),
    }

    primary = merged.primary_call
    if primary is not None and primary.estimated_departure and primary.scheduled_departure:
        delay = (primary.estimated_departure - primary.scheduled_departure).total_seconds() / 60
        changes["delay_minutes"] = round(delay)
        changes["estimated_time"] = primary.estimated_departure
        if delay > DELAY_THRESHOLD_MINUTES:
            changes["status"] = MovementStatus.DELAYED

    return merged.model_copy(update=changes)


def apply_vehicle_position(movement: Movement, position: VehiclePosition) -> Movement:
    """Attach a live position and upgrade confidence to confirmed-live."""
    sources = [s for s in movement.confidence.sources if s != DataSource.VEHICLE_POSITIONS]
    sources.append(DataSource.VEHICLE_POSITIONS)

    status = movement.status
    if status == MovementStatus.SCHEDULED:
        status = MovementStatus.LIVE

    return movement.model_copy(
        update={
            "vehicle_position": position,
            "status": status,
            "confidence": ConfidenceInfo(
                level=ConfidenceLevel.CONFIRMED_LIVE,
                reason=LIVE_REASON,
                sources=sources,
                last_updated=position.timestamp,
            ),
        }
    )


def merge_realtime_data(
    movements: list[Movement],
    trip_updates: dict[str, TripUpdateRecord],
    vehicle_positions: dict[str, VehiclePosition],
) -> list[Movement]:
    """Merge realtime maps into baseline movements, matched by trip_id.

    Args:
        movements: Baseline (scheduled) movements.
        trip_updates: trip_id -> normalized trip update.
        vehicle_positions: trip_id -> live position.

    Returns:
        A new list in the same order. Movements with no realtime match are
        returned unchanged; realtime records with no matching movement are
        ignored.
    """
    merged: list[Movement] = []
    matched_updates = matched_positions = 0

    for movement in movements:
        if movement.trip_id is None:
            merged.append(movement)
            continue

        update = trip_updates.get(movement.trip_id)
        if update is not None:
            movement = apply_trip_update(movement, update)
            matched_updates += 1

        position = vehicle_positions.get(movement.trip_id)
        if position is not None:
            movement = apply_vehicle_position(movement, position)
            matched_positions += 1

        merged.append(movement)

    logger.debug(
        f"Merged realtime data: {matched_updates}/{len(trip_updates)} trip updates, "
        f"{matched_positions}/{len(vehicle_positions)} vehicle positions matched"
    )
    return merged
