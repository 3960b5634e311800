"""Tests for the analytics MCP tool."""

from unittest.mock import AsyncMock, MagicMock, patch

from corridor_mcp.models.movements import DirectionFilter, MovementFilters, StationFilter, TypeFilter
from corridor_mcp.tools.analytics_tools import get_corridor_analytics


def _mock_analytics() -> MagicMock:
    analytics = MagicMock()
    analytics.get_analytics = AsyncMock(return_value="response")
    return analytics


async def test_get_corridor_analytics_defaults():
    analytics = _mock_analytics()

    with patch("corridor_mcp.tools.analytics_tools.get_analytics", return_value=analytics):
        result = await get_corridor_analytics()

    assert result == "response"
    analytics.get_analytics.assert_awaited_once_with(MovementFilters(), days=7)


async def test_get_corridor_analytics_passes_filters():
    analytics = _mock_analytics()

    with patch("corridor_mcp.tools.analytics_tools.get_analytics", return_value=analytics):
        await get_corridor_analytics(
            station=StationFilter.CARDIFF,
            direction=DirectionFilter.TOWARDS_NEWCASTLE,
            service_type=TypeFilter.PASSENGER,
            days=3,
        )

    analytics.get_analytics.assert_awaited_once_with(
        MovementFilters(
            station=StationFilter.CARDIFF,
            direction=DirectionFilter.TOWARDS_NEWCASTLE,
            type=TypeFilter.PASSENGER,
        ),
        days=3,
    )


async def test_get_corridor_analytics_clamps_days():
    analytics = _mock_analytics()

    with patch("corridor_mcp.tools.analytics_tools.get_analytics", return_value=analytics):
        await get_corridor_analytics(days=90)
        await get_corridor_analytics(days=0)

    assert [call.kwargs["days"] for call in analytics.get_analytics.await_args_list] == [14, 1]
