from corridor_mcp.app import mcp
from corridor_mcp.models.movements import ServiceAlert
from corridor_mcp.services.alerts_service import (
    get_corridor_alerts as _get_corridor_alerts,
)
from corridor_mcp.services.alerts_service import process_service_alerts


@mcp.tool()
async def get_corridor_alerts() -> list[ServiceAlert]:
    """Get active TfNSW service alerts for lines running through the corridor.

    Covers the Central Coast & Newcastle, Hunter and South Coast line route
    families. Returns an empty list when the alerts feed is unavailable
    (for example when TFNSW_API_KEY is not configured).

    Returns:
        List of active ServiceAlert records with cause, effect and text.
    """
    result = await process_service_alerts()
    return _get_corridor_alerts(result.records)
