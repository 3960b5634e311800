"""Tests for the movements MCP tools."""

from unittest.mock import AsyncMock, MagicMock, patch

from factories import T0

from corridor_mcp.models.movements import (
    CorridorPositionsResponse,
    DirectionFilter,
    MovementFilters,
    MovementsResponse,
    StationFilter,
    StatusFilter,
    TimeWindow,
    TypeFilter,
)
from corridor_mcp.services.poller import MovementPoller
from corridor_mcp.tools.movements_tools import get_corridor_movements, get_corridor_positions


def _mock_aggregator() -> MagicMock:
    aggregator = MagicMock()
    aggregator.get_movements = AsyncMock(
        return_value=MovementsResponse(
            movements=[],
            feeds=[],
            alerts=[],
            filters=MovementFilters(),
            timestamp=T0,
            fallback_active=True,
            fallback_reason="Realtime feeds are unavailable. Showing scheduled times only.",
        )
    )
    aggregator.get_positions = AsyncMock(return_value=CorridorPositionsResponse(positions=[], count=0, timestamp=T0))
    return aggregator


async def test_get_corridor_movements_defaults():
    """Defaults disable every filter and use the "now" window."""
    aggregator = _mock_aggregator()

    with patch("corridor_mcp.tools.movements_tools.get_poller", return_value=MovementPoller(aggregator.get_movements)):
        result = await get_corridor_movements()

    assert result.fallback_active is True
    aggregator.get_movements.assert_awaited_once_with(MovementFilters())


async def test_get_corridor_movements_passes_filters():
    """Tool arguments map onto MovementFilters."""
    aggregator = _mock_aggregator()

    with patch("corridor_mcp.tools.movements_tools.get_poller", return_value=MovementPoller(aggregator.get_movements)):
        await get_corridor_movements(
            station=StationFilter.KOTARA,
            direction=DirectionFilter.TOWARDS_SYDNEY,
            service_type=TypeFilter.FREIGHT,
            status=StatusFilter.DELAYED,
            time_window=TimeWindow.TODAY,
        )

    [filters] = aggregator.get_movements.call_args.args
    assert filters == MovementFilters(
        station=StationFilter.KOTARA,
        direction=DirectionFilter.TOWARDS_SYDNEY,
        type=TypeFilter.FREIGHT,
        status=StatusFilter.DELAYED,
        time_window=TimeWindow.TODAY,
    )


async def test_get_corridor_positions_uses_now_window():
    """Positions are always computed for the current window."""
    aggregator = _mock_aggregator()

    with patch("corridor_mcp.tools.movements_tools.get_aggregator", return_value=aggregator):
        result = await get_corridor_positions(service_type=TypeFilter.PASSENGER)

    assert result.count == 0
    [filters] = aggregator.get_positions.call_args.args
    assert filters.type == TypeFilter.PASSENGER
    assert filters.time_window == TimeWindow.NOW


async def test_get_corridor_movements_superseded_call_aggregates_again():
    """A call cancelled by a newer one still answers for its own filters."""
    aggregator = _mock_aggregator()
    poller = MagicMock()
    poller.refresh = AsyncMock(return_value=None)

    with (
        patch("corridor_mcp.tools.movements_tools.get_poller", return_value=poller),
        patch("corridor_mcp.tools.movements_tools.get_aggregator", return_value=aggregator),
    ):
        result = await get_corridor_movements(station=StationFilter.CARDIFF)

    assert result.fallback_active is True
    aggregator.get_movements.assert_awaited_once_with(MovementFilters(station=StationFilter.CARDIFF))
