"""Service alert correlation for corridor movements.

Decodes the TfNSW service alerts feed into ServiceAlert records, selects
the ones relevant to the corridor and matches alerts to individual
movements by trip or route.
"""

import logging
from collections.abc import Awaitable, Callable, Iterable
from datetime import UTC, datetime

from corridor_mcp.data.cache import TTLCache
from corridor_mcp.data.config import CorridorConfig, get_config
from corridor_mcp.data.tfnsw_client import TfNSWClient
from corridor_mcp.models.alerts import ActivePeriod, AlertEntity, ServiceAlertsData
from corridor_mcp.models.movements import ActiveWindow, DataSource, Movement, ServiceAlert
from corridor_mcp.services.sources import SourceResult, SourceUnavailableError, fetch_source

logger = logging.getLogger(__name__)

ALERTS_FEED_NAME = "GTFS-RT Service Alerts"
DEFAULT_HEADER = "Service Alert"
UNKNOWN_CAUSE = "UNKNOWN_CAUSE"

MISSING_KEY_ERROR = "TFNSW_API_KEY not set. Register at https://opendata.transport.nsw.gov.au/"

# Module-level state (lazy-initialized)
_alerts_cache: TTLCache[str, ServiceAlertsData] | None = None
_config: CorridorConfig | None = None


def _get_config() -> CorridorConfig:
    """Get or create the config singleton."""
    global _config
    if _config is None:
        _config = get_config()
    return _config


def _get_alerts_cache() -> TTLCache[str, ServiceAlertsData]:
    global _alerts_cache
    if _alerts_cache is None:
        _alerts_cache = TTLCache(ttl=_get_config().realtime_cache_ttl_seconds)
    return _alerts_cache


async def get_service_alerts_feed(force_refresh: bool = False) -> ServiceAlertsData:
    """Fetch the service alerts feed with caching.

    Raises:
        SourceUnavailableError: If no API key is configured.
        httpx.HTTPError: If the HTTP request fails.
    """
    config = _get_config()
    if not config.realtime_enabled:
        raise SourceUnavailableError(MISSING_KEY_ERROR)

    cache = _get_alerts_cache()
    if not force_refresh:
        cached = cache.get("alerts")
        if cached is not None:
            return cached

    async with TfNSWClient(config) as client:
        data = await client.fetch_service_alerts()
    cache.set("alerts", data)
    logger.debug(f"Fetched {len(data.alerts)} service alerts")
    return data


def _from_unix(ts: int | None) -> datetime | None:
    return datetime.fromtimestamp(ts, tz=UTC) if ts else None


def is_alert_active(periods: list[ActivePeriod], now: datetime) -> bool:
    """An alert is active if now falls in any period, or it has no periods.

    An open start means since forever, an open end means until further notice.
    """
    if not periods:
        return True
    ts = now.timestamp()
    return any(
        (period.start or 0) <= ts <= (period.end if period.end else float("inf"))
        for period in periods
    )


def build_service_alert(entity: AlertEntity, now: datetime) -> ServiceAlert:
    """Convert a decoded alert entity into a ServiceAlert."""
    route_ids = [ie.route_id for ie in entity.informed_entities if ie.route_id]
    trip_ids = [ie.trip_id for ie in entity.informed_entities if ie.trip_id]
    stop_ids = [ie.stop_id for ie in entity.informed_entities if ie.stop_id]

    return ServiceAlert(
        id=entity.id,
        cause=entity.cause or UNKNOWN_CAUSE,
        effect=entity.effect or "UNKNOWN_EFFECT",
        header=entity.header_text or DEFAULT_HEADER,
        description=entity.description_text or "",
        route_ids=route_ids,
        trip_ids=trip_ids,
        stop_ids=stop_ids,
        active_periods=[
            # an open start is shown as "from now"
            ActiveWindow(start=_from_unix(p.start) or now, end=_from_unix(p.end))
            for p in entity.active_periods
        ],
        is_active=is_alert_active(entity.active_periods, now),
    )


def build_service_alerts(data: ServiceAlertsData, now: datetime | None = None) -> list[ServiceAlert]:
    """Convert every alert in a decoded feed, evaluating activity at now."""
    now = now or datetime.now(UTC)
    return [build_service_alert(entity, now) for entity in data.alerts]


async def process_service_alerts(
    fetch: Callable[[], Awaitable[ServiceAlertsData]] | None = None,
    timeout: float | None = None,
) -> SourceResult[list[ServiceAlert]]:
    """Fetch the alerts feed and decode it into ServiceAlert records.

    Failures produce an offline status and no alerts; they never raise.
    """
    config = _get_config()
    result = await fetch_source(
        ALERTS_FEED_NAME,
        DataSource.SERVICE_ALERTS,
        fetch or get_service_alerts_feed,
        empty=None,
        timeout=timeout if timeout is not None else config.fetch_timeout_seconds,
    )
    if result.records is None:
        return SourceResult(records=[], feed_status=result.feed_status)

    alerts = build_service_alerts(result.records)
    status = result.feed_status.model_copy(update={"record_count": len(alerts)})
    return SourceResult(records=alerts, feed_status=status)


def get_corridor_alerts(alerts: list[ServiceAlert], route_prefixes: Iterable[str] | None = None) -> list[ServiceAlert]:
    """Active alerts affecting any route that runs through the corridor."""
    prefixes = tuple(route_prefixes if route_prefixes is not None else _get_config().route_prefixes)
    return [
        alert
        for alert in alerts
        if alert.is_active and any(rid.startswith(prefixes) for rid in alert.route_ids)
    ]


def get_alerts_for_movement(
    alerts: list[ServiceAlert],
    trip_id: str | None,
    route_id: str | None,
) -> list[ServiceAlert]:
    """Active alerts affecting a movement, exact trip matches first.

    Route ids follow "{prefix}_{suffix}", so an alert on "CCN_1a" applies to
    every movement whose route id starts with "CCN".
    """
    trip_matches: list[ServiceAlert] = []
    route_matches: list[ServiceAlert] = []

    for alert in alerts:
        if not alert.is_active:
            continue
        if trip_id and trip_id in alert.trip_ids:
            trip_matches.append(alert)
        elif route_id and any(route_id.startswith(rid.split("_")[0]) for rid in alert.route_ids):
            route_matches.append(alert)

    return trip_matches + route_matches


def format_alert_disruption(alert: ServiceAlert) -> str:
    """Header plus the cause in brackets, e.g. "Trackwork (maintenance)"."""
    if alert.cause == UNKNOWN_CAUSE:
        return alert.header
    return f"{alert.header} ({alert.cause.replace('_', ' ').lower()})"


def attach_alerts(movements: list[Movement], alerts: list[ServiceAlert]) -> list[Movement]:
    """Append matching alert disruptions to each movement."""
    if not alerts:
        return movements

    attached: list[Movement] = []
    for movement in movements:
        matches = get_alerts_for_movement(alerts, movement.trip_id, movement.route_id)
        if matches:
            movement = movement.model_copy(
                update={"disruptions": [*movement.disruptions, *(format_alert_disruption(a) for a in matches)]}
            )
        attached.append(movement)
    return attached


def clear_cache() -> None:
    """Clear the alerts cache."""
    if _alerts_cache:
        _alerts_cache.clear()


def reset_service() -> None:
    """Reset the service state completely. Useful for testing."""
    global _alerts_cache, _config
    _alerts_cache = None
    _config = None
