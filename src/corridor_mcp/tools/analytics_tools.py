from corridor_mcp.app import mcp
from corridor_mcp.models.analytics import AnalyticsResponse
from corridor_mcp.models.movements import (
    DirectionFilter,
    MovementFilters,
    StationFilter,
    StatusFilter,
    TypeFilter,
)
from corridor_mcp.services.analytics_service import DEFAULT_DAYS, MAX_DAYS, get_analytics


@mcp.tool()
async def get_corridor_analytics(
    station: StationFilter = StationFilter.BOTH,
    direction: DirectionFilter = DirectionFilter.BOTH,
    service_type: TypeFilter = TypeFilter.ALL,
    status: StatusFilter = StatusFilter.ALL,
    days: int = DEFAULT_DAYS,
) -> AnalyticsResponse:
    """Get daily traffic statistics for the Cardiff–Kotara corridor.

    Today's figures come from a live aggregation (realtime delays and
    cancellations included). Earlier days are rebuilt from that day's
    timetable plus freight, so they show scheduled volumes and have
    live_tracked = 0.

    Each day reports totals by service type and direction, on-time, delayed
    and cancelled counts, average delay, the busiest hour, calls at each
    station and a 24-hour breakdown.

    Args:
        station: "cardiff", "kotara" or "both".
        direction: "towards-newcastle", "towards-sydney" or "both".
        service_type: "passenger", "freight" or "all".
        status: "scheduled", "live", "delayed", "cancelled", "completed" or "all".
        days: Number of days including today (default 7, max 14).

    Returns:
        AnalyticsResponse with today's stats and a list of days, newest first.
    """
    days = max(1, min(days, MAX_DAYS))

    filters = MovementFilters(
        station=station,
        direction=direction,
        type=service_type,
        status=status,
    )
    return await get_analytics().get_analytics(filters, days=days)
