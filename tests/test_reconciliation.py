"""Tests for merging realtime updates into scheduled movements."""

from datetime import timedelta

from factories import T0, make_movement, make_position

from corridor_mcp.models.movements import ConfidenceLevel, DataSource, Direction, MovementStatus
from corridor_mcp.services.realtime_service import StopUpdate, TripUpdateRecord
from corridor_mcp.services.reconciliation import (
    CANCELLED_DISRUPTION,
    apply_stop_update,
    merge_realtime_data,
)


def update(trip_id: str = "NC1", cancelled: bool = False, **stops: StopUpdate) -> TripUpdateRecord:
    """Trip update keyed by corridor station: cardiff= / kotara=."""
    return TripUpdateRecord(
        trip_id=trip_id,
        cancelled=cancelled,
        stop_time_updates=dict(stops),
        timestamp=T0,
    )


def test_no_realtime_leaves_schedule_untouched():
    movement = make_movement()

    [merged] = merge_realtime_data([movement], {}, {})

    assert merged == movement
    assert merged.delay_minutes is None
    assert merged.status == MovementStatus.SCHEDULED
    assert merged.confidence.level == ConfidenceLevel.SCHEDULED


def test_three_minute_delay_is_delayed():
    movement = make_movement()

    [merged] = merge_realtime_data([movement], {"NC1": update(cardiff=StopUpdate(departure_delay=180))}, {})

    assert merged.delay_minutes == 3
    assert merged.status == MovementStatus.DELAYED
    assert merged.estimated_time == T0 + timedelta(minutes=3)
    assert merged.cardiff_call.estimated_departure == T0 + timedelta(minutes=3)
    assert merged.confidence.level == ConfidenceLevel.CONFIRMED_UPDATED
    assert merged.confidence.sources == [DataSource.GTFS_STATIC, DataSource.TRIP_UPDATES]


def test_small_delay_is_live():
    [merged] = merge_realtime_data(
        [make_movement()], {"NC1": update(cardiff=StopUpdate(departure_delay=60))}, {}
    )

    assert merged.delay_minutes == 1
    assert merged.status == MovementStatus.LIVE


def test_threshold_is_exclusive():
    [merged] = merge_realtime_data(
        [make_movement()], {"NC1": update(cardiff=StopUpdate(departure_delay=120))}, {}
    )

    assert merged.delay_minutes == 2
    assert merged.status == MovementStatus.LIVE


def test_early_running():
    [merged] = merge_realtime_data(
        [make_movement()], {"NC1": update(cardiff=StopUpdate(departure_delay=-120))}, {}
    )

    assert merged.delay_minutes == -2
    assert merged.status == MovementStatus.LIVE


def test_zero_delay_is_applied():
    [merged] = merge_realtime_data(
        [make_movement()], {"NC1": update(cardiff=StopUpdate(departure_delay=0))}, {}
    )

    assert merged.delay_minutes == 0
    assert merged.cardiff_call.estimated_departure == T0


def test_trip_update_with_no_corridor_stops_confirms_without_delay():
    [merged] = merge_realtime_data([make_movement()], {"NC1": update()}, {})

    assert merged.status == MovementStatus.LIVE
    assert merged.delay_minutes is None
    assert merged.confidence.level == ConfidenceLevel.CONFIRMED_UPDATED


def test_towards_sydney_delay_measured_at_kotara():
    movement = make_movement(trip_id="SY1", direction=Direction.TOWARDS_SYDNEY)
    record = update(
        "SY1",
        kotara=StopUpdate(departure_delay=240),
        cardiff=StopUpdate(departure_delay=60),
    )

    [merged] = merge_realtime_data([movement], {"SY1": record}, {})

    assert merged.delay_minutes == 4
    assert merged.stops[0].stop_name == "Kotara"
    assert merged.stops[0].estimated_departure == T0 + timedelta(minutes=4)


def test_absolute_time_beats_delay():
    stop = StopUpdate(departure_delay=60, departure_time=T0 + timedelta(minutes=5))

    call = apply_stop_update(make_movement().cardiff_call, stop)

    assert call.estimated_departure == T0 + timedelta(minutes=5)
    assert call.estimated_arrival is None


def test_arrival_delay_uses_scheduled_arrival():
    call = make_movement().cardiff_call
    updated = apply_stop_update(call, StopUpdate(arrival_delay=90))

    assert updated.estimated_arrival == call.scheduled_arrival + timedelta(seconds=90)
    assert updated.estimated_departure is None


def test_cancellation():
    [merged] = merge_realtime_data([make_movement()], {"NC1": update(cancelled=True)}, {})

    assert merged.status == MovementStatus.CANCELLED
    assert merged.disruptions == [CANCELLED_DISRUPTION]
    assert merged.confidence.sources == [DataSource.TRIP_UPDATES]


def test_vehicle_position_after_delay_is_confirmed_live():
    position = make_position()

    [merged] = merge_realtime_data(
        [make_movement()],
        {"NC1": update(cardiff=StopUpdate(departure_delay=180))},
        {"NC1": position},
    )

    assert merged.confidence.level == ConfidenceLevel.CONFIRMED_LIVE
    assert merged.status == MovementStatus.DELAYED
    assert merged.delay_minutes == 3
    assert merged.vehicle_position == position
    assert merged.confidence.sources == [
        DataSource.GTFS_STATIC,
        DataSource.TRIP_UPDATES,
        DataSource.VEHICLE_POSITIONS,
    ]


def test_vehicle_position_alone_promotes_to_live():
    [merged] = merge_realtime_data([make_movement()], {}, {"NC1": make_position()})

    assert merged.status == MovementStatus.LIVE
    assert merged.confidence.level == ConfidenceLevel.CONFIRMED_LIVE
    assert merged.confidence.last_updated == T0


def test_confirmed_live_always_has_a_position():
    movements = [make_movement("A"), make_movement("B"), make_movement("C")]
    merged = merge_realtime_data(
        movements,
        {"A": update("A", cardiff=StopUpdate(departure_delay=30))},
        {"B": make_position()},
    )

    for movement in merged:
        if movement.confidence.level == ConfidenceLevel.CONFIRMED_LIVE:
            assert movement.vehicle_position is not None
    assert [m.confidence.level for m in merged] == [
        ConfidenceLevel.CONFIRMED_UPDATED,
        ConfidenceLevel.CONFIRMED_LIVE,
        ConfidenceLevel.SCHEDULED,
    ]


def test_unmatched_realtime_ignored_and_input_not_mutated():
    movement = make_movement()
    snapshot = movement.model_copy(deep=True)

    merged = merge_realtime_data(
        [movement],
        {"OTHER": update("OTHER", cancelled=True), "NC1": update(cardiff=StopUpdate(departure_delay=300))},
        {"OTHER": make_position()},
    )

    assert len(merged) == 1
    assert merged[0].status == MovementStatus.DELAYED
    assert movement == snapshot


def test_movement_without_trip_id_passes_through():
    freight = make_movement(trip_id=None, movement_id="freight-X")

    assert merge_realtime_data([freight], {}, {}) == [freight]
