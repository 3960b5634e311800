"""Tests for position estimation along the corridor."""

from datetime import timedelta

import pytest
from factories import T0, make_movement, make_position

from corridor_mcp.geometry.rail_path import CORRIDOR_GEOMETRY
from corridor_mcp.geometry.stations import CARDIFF, KOTARA
from corridor_mcp.models.movements import Direction, MovementStatus
from corridor_mcp.services.position_service import estimate_position, locate_movement, locate_movements

P_CARDIFF = CORRIDOR_GEOMETRY.position_of(CARDIFF.id)
P_KOTARA = CORRIDOR_GEOMETRY.position_of(KOTARA.id)


def minutes(m: float) -> timedelta:
    return timedelta(minutes=m)


class TestTowardsNewcastle:
    """Cardiff at T0, Kotara at T0 + 4 min."""

    @pytest.fixture
    def movement(self):
        return make_movement()

    def test_outside_padded_window(self, movement):
        assert estimate_position(movement, T0 - minutes(3.5)) is None
        assert estimate_position(movement, T0 + minutes(7.5)) is None

    def test_approach(self, movement):
        assert estimate_position(movement, T0 - minutes(3)) == pytest.approx(0.0)
        assert estimate_position(movement, T0 - minutes(1.5)) == pytest.approx(P_CARDIFF / 2)

    def test_at_stations(self, movement):
        assert estimate_position(movement, T0) == pytest.approx(P_CARDIFF)
        assert estimate_position(movement, T0 + minutes(4)) == pytest.approx(P_KOTARA)

    def test_between_stations(self, movement):
        assert estimate_position(movement, T0 + minutes(2)) == pytest.approx((P_CARDIFF + P_KOTARA) / 2)

    def test_departure_run_out(self, movement):
        assert estimate_position(movement, T0 + minutes(5.5)) == pytest.approx(P_KOTARA + (1 - P_KOTARA) / 2)
        assert estimate_position(movement, T0 + minutes(7)) == pytest.approx(1.0)

    def test_monotonic(self, movement):
        positions = [estimate_position(movement, T0 + timedelta(seconds=s)) for s in range(-180, 421, 15)]
        assert all(b >= a for a, b in zip(positions, positions[1:]))

    def test_estimated_times_used(self, movement):
        call = movement.cardiff_call.model_copy(update={"estimated_departure": T0 + minutes(2)})
        delayed = movement.model_copy(update={"cardiff_call": call})

        assert estimate_position(delayed, T0 + minutes(2)) == pytest.approx(P_CARDIFF)


class TestTowardsSydney:
    """Kotara at T0, Cardiff at T0 + 4 min."""

    @pytest.fixture
    def movement(self):
        return make_movement("SY1", direction=Direction.TOWARDS_SYDNEY)

    def test_runs_kotara_to_cardiff(self, movement):
        assert estimate_position(movement, T0 - minutes(3)) == pytest.approx(1.0)
        assert estimate_position(movement, T0) == pytest.approx(P_KOTARA)
        assert estimate_position(movement, T0 + minutes(4)) == pytest.approx(P_CARDIFF)
        assert estimate_position(movement, T0 + minutes(7)) == pytest.approx(0.0)

    def test_monotonic_decreasing(self, movement):
        positions = [estimate_position(movement, T0 + timedelta(seconds=s)) for s in range(-180, 421, 15)]
        assert all(b <= a for a, b in zip(positions, positions[1:]))


class TestLiveAndEdgeCases:
    def test_live_position_wins(self):
        lat, lng = CORRIDOR_GEOMETRY.anchor_of(KOTARA.id)
        movement = make_movement().model_copy(update={"vehicle_position": make_position(lat, lng)})

        # hours away from the timetable, the fix still places it
        assert estimate_position(movement, T0 + timedelta(hours=5)) == pytest.approx(P_KOTARA)

        location = locate_movement(movement, T0 + timedelta(hours=5))
        assert location.is_live is True
        assert (location.lat, location.lng) == (lat, lng)

    def test_missing_corridor_call(self):
        movement = make_movement().model_copy(update={"kotara_call": None})
        assert estimate_position(movement, T0) is None

    def test_same_time_at_both_stations(self):
        movement = make_movement(gap=timedelta(0))
        assert estimate_position(movement, T0) == pytest.approx(P_KOTARA)

    @pytest.mark.parametrize("status", [MovementStatus.CANCELLED, MovementStatus.COMPLETED])
    def test_cancelled_and_completed_not_drawn(self, status):
        assert locate_movement(make_movement(status=status), T0) is None

    def test_interpolated_location(self):
        location = locate_movement(make_movement(), T0)

        assert location.movement_id == "sched-NC1"
        assert location.is_live is False
        assert location.normalized_position == pytest.approx(P_CARDIFF)
        assert (location.lat, location.lng) == pytest.approx(CORRIDOR_GEOMETRY.interpolate(P_CARDIFF))

    def test_locate_movements_skips_off_map(self):
        movements = [
            make_movement("A"),
            make_movement("B", first=T0 + timedelta(hours=2)),
            make_movement("C", status=MovementStatus.CANCELLED),
        ]

        assert [loc.movement_id for loc in locate_movements(movements, T0)] == ["sched-A"]
