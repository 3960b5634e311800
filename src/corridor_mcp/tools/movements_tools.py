from corridor_mcp.app import mcp
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
from corridor_mcp.services.corridor_service import get_aggregator
from corridor_mcp.services.poller import get_poller


@mcp.tool()
async def get_corridor_movements(
    station: StationFilter = StationFilter.BOTH,
    direction: DirectionFilter = DirectionFilter.BOTH,
    service_type: TypeFilter = TypeFilter.ALL,
    status: StatusFilter = StatusFilter.ALL,
    time_window: TimeWindow = TimeWindow.NOW,
) -> MovementsResponse:
    """Get passenger and freight movements through the Cardiff–Kotara corridor.

    Combines the published timetable with TfNSW realtime trip updates and
    vehicle positions, plus ARTC or modelled freight. Every movement carries
    a confidence label: scheduled, confirmed-updated (realtime times),
    confirmed-live (live GPS) or estimated-freight.

    When fallback_active is True the realtime feeds are unavailable and times
    are scheduled only; fallback_reason explains why. The feeds list gives the
    health of each upstream source.

    Args:
        station: "cardiff", "kotara" or "both".
        direction: "towards-newcastle", "towards-sydney" or "both".
        service_type: "passenger", "freight" or "all".
        status: "scheduled", "live", "delayed", "cancelled", "completed" or "all".
        time_window: "now" (-15 min to +1 h), "next-2h" (-5 min to +2 h)
                     or "today" (local midnight to midnight).

    Overlapping calls share one poller. The newest call cancels an older
    in-flight aggregation, and the superseded call then aggregates again
    for its own filters.

    Returns:
        MovementsResponse sorted by estimated-or-scheduled time.
    """
    filters = MovementFilters(
        station=station,
        direction=direction,
        type=service_type,
        status=status,
        time_window=time_window,
    )
    response = await get_poller().refresh(filters)
    if response is None:
        # a newer call cancelled this aggregation
        response = await get_aggregator().get_movements(filters)
    return response


@mcp.tool()
async def get_corridor_positions(
    station: StationFilter = StationFilter.BOTH,
    direction: DirectionFilter = DirectionFilter.BOTH,
    service_type: TypeFilter = TypeFilter.ALL,
) -> CorridorPositionsResponse:
    """Get where each movement is on the corridor right now.

    Movements with a live GPS fix are reported at that fix (is_live=True).
    Others are interpolated along the track from their times at Cardiff and
    Kotara, starting 3 minutes before entry and ending 3 minutes after exit.
    Cancelled and completed movements are omitted.

    Args:
        station: "cardiff", "kotara" or "both".
        direction: "towards-newcastle", "towards-sydney" or "both".
        service_type: "passenger", "freight" or "all".

    Returns:
        CorridorPositionsResponse with lat/lng and normalized track position
        (0 = Cardiff end of the path, 1 = Kotara end).
    """
    filters = MovementFilters(
        station=station,
        direction=direction,
        type=service_type,
        time_window=TimeWindow.NOW,
    )
    return await get_aggregator().get_positions(filters)
