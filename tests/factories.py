"""Builders for movements used across the service tests."""

from datetime import UTC, datetime, timedelta

from corridor_mcp.geometry.stations import CARDIFF, KOTARA
from corridor_mcp.models.movements import (
    ConfidenceInfo,
    ConfidenceLevel,
    DataSource,
    Direction,
    Movement,
    MovementStatus,
    ServiceType,
    StopCall,
    VehiclePosition,
)

T0 = datetime(2025, 6, 2, 0, 0, tzinfo=UTC)  # 10:00 in Sydney


def make_movement(
    trip_id: str | None = "NC1",
    direction: Direction = Direction.TOWARDS_NEWCASTLE,
    first: datetime = T0,
    gap: timedelta = timedelta(minutes=4),
    service_type: ServiceType = ServiceType.PASSENGER,
    status: MovementStatus = MovementStatus.SCHEDULED,
    route_id: str | None = "CCN_1a",
    movement_id: str | None = None,
) -> Movement:
    """A movement departing its first corridor station at `first` and the second `gap` later."""
    second = first + gap
    if direction == Direction.TOWARDS_NEWCASTLE:
        cardiff_dep, kotara_dep = first, second
        sequences = {CARDIFF.id: 20, KOTARA.id: 21}
    else:
        kotara_dep, cardiff_dep = first, second
        sequences = {CARDIFF.id: 22, KOTARA.id: 21}

    cardiff = StopCall(
        stop_id="225521",
        stop_name="Cardiff",
        scheduled_arrival=cardiff_dep - timedelta(minutes=1),
        scheduled_departure=cardiff_dep,
        stop_sequence=sequences[CARDIFF.id],
        stops_here=True,
    )
    kotara = StopCall(
        stop_id="225421",
        stop_name="Kotara",
        scheduled_arrival=kotara_dep - timedelta(minutes=1),
        scheduled_departure=kotara_dep,
        stop_sequence=sequences[KOTARA.id],
        stops_here=True,
    )
    stops = [cardiff, kotara] if direction == Direction.TOWARDS_NEWCASTLE else [kotara, cardiff]

    if service_type == ServiceType.FREIGHT:
        confidence = ConfidenceInfo(
            level=ConfidenceLevel.ESTIMATED_FREIGHT,
            reason="Estimated",
            sources=[DataSource.ARTC_FREIGHT_MODELLED],
            last_updated=T0,
        )
    else:
        confidence = ConfidenceInfo(
            level=ConfidenceLevel.SCHEDULED,
            reason="Based on published GTFS static timetable",
            sources=[DataSource.GTFS_STATIC],
            last_updated=T0,
        )

    return Movement(
        id=movement_id or f"sched-{trip_id}",
        trip_id=trip_id,
        route_id=route_id,
        service_name="CCN Central Coast & Newcastle Line",
        operator="NSW TrainLink",
        service_type=service_type,
        direction=direction,
        origin="Central" if direction == Direction.TOWARDS_NEWCASTLE else "Newcastle Interchange",
        destination="Newcastle Interchange" if direction == Direction.TOWARDS_NEWCASTLE else "Central",
        status=status,
        stops=stops,
        cardiff_call=cardiff,
        kotara_call=kotara,
        confidence=confidence,
        scheduled_time=first,
    )


def make_position(lat: float = -32.9438, lng: float = 151.6780, timestamp: datetime = T0) -> VehiclePosition:
    return VehiclePosition(lat=lat, lng=lng, timestamp=timestamp, vehicle_id="D6151.D6152", car_numbers=["D6151", "D6152"])
