"""Freight estimator for trains passing through the corridor.

Live freight running data is rarely available. When an ARTC subscription
key is configured and the feed returns corridor passing times those are
used; otherwise a deterministic daily pattern of coal, intermodal and
grain trains is generated. Either way every freight movement is labelled
estimated-freight and passes through without stopping.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta

from pydantic import BaseModel

from corridor_mcp.data.artc_client import ARTCClient
from corridor_mcp.data.cache import TTLCache
from corridor_mcp.data.config import CorridorConfig, get_config
from corridor_mcp.geometry.stations import CARDIFF, KOTARA
from corridor_mcp.models.freight import ArtcTrainMovement, FreightMovement
from corridor_mcp.models.movements import (
    ConfidenceInfo,
    ConfidenceLevel,
    DataSource,
    Direction,
    FeedHealth,
    FeedStatus,
    Movement,
    MovementStatus,
    ServiceType,
    StopCall,
)
from corridor_mcp.services.sources import SourceResult, SourceUnavailableError, fetch_source

logger = logging.getLogger(__name__)

LIVE_FEED_NAME = "ARTC Freight Data"
MODELLED_FEED_NAME = "Freight Data (Modelled)"

MISSING_KEY_ERROR = "No ARTC API key configured. Using modelled freight patterns."

LIVE_REASON = "From ARTC freight movement data"
MODELLED_REASON = "Estimated from known corridor freight patterns (not real-time)"

LIVE_LIMITATIONS = ["Subject to ARTC API availability"]
MODELLED_LIMITATIONS = [
    "Live freight running data is not publicly available in real-time",
    "Freight movements shown are estimates based on known corridor patterns",
    "Actual freight times may vary significantly from estimates",
    "Coal, intermodal, and grain traffic patterns are based on published corridor usage data",
    "For confirmed freight times, contact ARTC or the freight operator directly",
]

OPERATORS = ["Pacific National", "Aurizon", "QUBE Logistics"]

# Minutes between passing the first and second corridor station
STATION_SEPARATION_MINUTES = 4

# ARTC results are refreshed at most this often
ARTC_CACHE_TTL_SECONDS = 300


@dataclass(frozen=True)
class CommodityPattern:
    commodity: str
    daily_count: int
    consist: str


COMMODITY_PATTERNS = [
    CommodityPattern("Coal", 6, "Locomotive + coal wagons (approx 80 wagons)"),
    CommodityPattern("Intermodal", 3, "Locomotive + container wagons"),
    CommodityPattern("Grain", 1, "Locomotive + grain hoppers"),
]

DEFAULT_CONSIST = "Locomotive + wagons"


class FreightResult(BaseModel):
    movements: list[Movement]
    feed_status: FeedStatus
    limitations: list[str]


# Module-level state (lazy-initialized)
_artc_cache: TTLCache[str, list[ArtcTrainMovement]] | None = None
_config: CorridorConfig | None = None


def _get_config() -> CorridorConfig:
    """Get or create the config singleton."""
    global _config
    if _config is None:
        _config = get_config()
    return _config


def _get_artc_cache() -> TTLCache[str, list[ArtcTrainMovement]]:
    global _artc_cache
    if _artc_cache is None:
        _artc_cache = TTLCache(ttl=ARTC_CACHE_TTL_SECONDS)
    return _artc_cache


def _model_direction(pattern: CommodityPattern, i: int) -> Direction:
    # Coal always runs loaded to the port
    if pattern.commodity == "Coal" or i % 2 == 0:
        return Direction.TOWARDS_NEWCASTLE
    return Direction.TOWARDS_SYDNEY


def generate_modelled_freight(for_date: date, now: datetime | None = None) -> list[FreightMovement]:
    """Deterministic freight pattern for one local date.

    Each commodity's trains are spread evenly across the day from 02:00,
    with a pseudo-random minute so they don't all line up on the hour.
    """
    tz = _get_config().tz
    last_updated = now or datetime.now(UTC)
    movements: list[FreightMovement] = []

    index = 0
    for pattern in COMMODITY_PATTERNS:
        for i in range(pattern.daily_count):
            hour = int(24 / pattern.daily_count * i) + 2
            minute = (i * 17 + 7) % 60
            direction = _model_direction(pattern, i)

            # Offsets run from 02:07 to 22:xx local; passes stay on for_date
            first_pass = datetime.combine(for_date, time(0), tzinfo=tz) + timedelta(hours=hour, minutes=minute)
            second_pass = first_pass + timedelta(minutes=STATION_SEPARATION_MINUTES)
            if direction == Direction.TOWARDS_NEWCASTLE:
                cardiff_pass, kotara_pass = first_pass, second_pass
                origin = "Hunter Valley" if pattern.commodity == "Coal" else "Sydney / Western NSW"
                destination = "Newcastle Port / NCIG"
            else:
                kotara_pass, cardiff_pass = first_pass, second_pass
                origin = "Newcastle / Hunter Valley"
                destination = "Sydney / Western NSW"

            movements.append(
                FreightMovement(
                    train_id=f"FRT-{pattern.commodity[:3].upper()}-{index + 1:03d}",
                    operator=OPERATORS[index % len(OPERATORS)],
                    origin=origin,
                    destination=destination,
                    commodity_type=pattern.commodity,
                    consist_type=pattern.consist,
                    estimated_cardiff_pass=cardiff_pass.astimezone(UTC),
                    estimated_kotara_pass=kotara_pass.astimezone(UTC),
                    direction=direction,
                    source=DataSource.ARTC_FREIGHT_MODELLED,
                    last_updated=last_updated,
                )
            )
            index += 1

    return movements


def _node_time(record: ArtcTrainMovement, station_name: str) -> datetime | None:
    for node, passed_at in record.node_times.items():
        if node.strip().lower() == station_name.lower():
            return passed_at
    return None


def _consist_for_commodity(commodity: str | None) -> str:
    for pattern in COMMODITY_PATTERNS:
        if commodity and commodity.lower() == pattern.commodity.lower():
            return pattern.consist
    return DEFAULT_CONSIST


def convert_artc_movement(record: ArtcTrainMovement, now: datetime | None = None) -> FreightMovement | None:
    """Convert an ARTC record into a freight movement.

    Returns None when the record has no passing time at either corridor station.
    """
    cardiff_pass = _node_time(record, CARDIFF.name)
    kotara_pass = _node_time(record, KOTARA.name)
    if cardiff_pass is None and kotara_pass is None:
        return None

    if cardiff_pass is not None and kotara_pass is not None and cardiff_pass != kotara_pass:
        towards_newcastle = cardiff_pass < kotara_pass
    else:
        destination = record.destination_location.lower()
        towards_newcastle = "newcastle" in destination or "port" in destination

    return FreightMovement(
        train_id=record.train_id,
        operator=record.operator,
        origin=record.origin_location,
        destination=record.destination_location,
        commodity_type=record.commodity,
        consist_type=_consist_for_commodity(record.commodity),
        estimated_cardiff_pass=cardiff_pass,
        estimated_kotara_pass=kotara_pass,
        direction=Direction.TOWARDS_NEWCASTLE if towards_newcastle else Direction.TOWARDS_SYDNEY,
        source=DataSource.ARTC_FREIGHT,
        last_updated=now or datetime.now(UTC),
    )


def freight_to_movement(freight: FreightMovement) -> Movement:
    """Wrap a freight movement as a pass-through corridor Movement."""
    towards_newcastle = freight.direction == Direction.TOWARDS_NEWCASTLE

    cardiff_call = None
    if freight.estimated_cardiff_pass is not None:
        cardiff_call = StopCall(
            stop_id=CARDIFF.stop_ids[0],
            stop_name=CARDIFF.name,
            scheduled_departure=freight.estimated_cardiff_pass,
            stop_sequence=20 if towards_newcastle else 22,
            stops_here=False,
        )
    kotara_call = None
    if freight.estimated_kotara_pass is not None:
        kotara_call = StopCall(
            stop_id=KOTARA.stop_ids[0],
            stop_name=KOTARA.name,
            scheduled_departure=freight.estimated_kotara_pass,
            stop_sequence=21,
            stops_here=False,
        )

    stops = sorted((c for c in (cardiff_call, kotara_call) if c is not None), key=lambda c: c.stop_sequence)
    if towards_newcastle:
        primary = freight.estimated_cardiff_pass or freight.estimated_kotara_pass
    else:
        primary = freight.estimated_kotara_pass or freight.estimated_cardiff_pass

    local_date = primary.astimezone(_get_config().tz).strftime("%Y%m%d")
    return Movement(
        id=f"freight-{freight.train_id}-{local_date}",
        run_id=freight.train_id,
        service_name=f"Freight - {freight.commodity_type or 'General'}",
        operator=freight.operator,
        service_type=ServiceType.FREIGHT,
        direction=freight.direction,
        origin=freight.origin,
        destination=freight.destination,
        consist_type=freight.consist_type,
        status=MovementStatus.SCHEDULED,
        stops=stops,
        cardiff_call=cardiff_call,
        kotara_call=kotara_call,
        passes_through=True,
        confidence=ConfidenceInfo(
            level=ConfidenceLevel.ESTIMATED_FREIGHT,
            reason=LIVE_REASON if freight.source == DataSource.ARTC_FREIGHT else MODELLED_REASON,
            sources=[freight.source],
            last_updated=freight.last_updated,
        ),
        scheduled_time=primary,
    )


async def fetch_artc_movements(force_refresh: bool = False) -> list[ArtcTrainMovement]:
    """Fetch ARTC train movements with caching.

    Raises:
        SourceUnavailableError: If no ARTC key is configured.
        httpx.HTTPError: If the HTTP request fails.
    """
    config = _get_config()
    if not config.freight_feed_enabled:
        raise SourceUnavailableError(MISSING_KEY_ERROR)

    cache = _get_artc_cache()
    if not force_refresh:
        cached = cache.get("movements")
        if cached is not None:
            return cached

    async with ARTCClient(config) as client:
        records = await client.fetch_train_movements()
    cache.set("movements", records)
    logger.debug(f"ARTC returned {len(records)} train movements")
    return records


async def _fetch_live(
    fetch: Callable[[], Awaitable[list[ArtcTrainMovement]]] | None,
    timeout: float | None,
) -> SourceResult[list[ArtcTrainMovement]]:
    config = _get_config()
    return await fetch_source(
        LIVE_FEED_NAME,
        DataSource.ARTC_FREIGHT,
        fetch or fetch_artc_movements,
        empty=[],
        timeout=timeout if timeout is not None else config.fetch_timeout_seconds,
    )


def _build_result(
    dates: list[date],
    live_result: SourceResult[list[ArtcTrainMovement]],
    now: datetime,
) -> FreightResult:
    """Live movements if the ARTC feed had any for the corridor, else the model for each date."""
    live = [
        freight_to_movement(freight)
        for record in live_result.records
        if (freight := convert_artc_movement(record, now)) is not None
    ]
    if live:
        return FreightResult(
            movements=live,
            feed_status=live_result.feed_status.model_copy(update={"record_count": len(live)}),
            limitations=LIVE_LIMITATIONS,
        )

    if live_result.feed_status.status == FeedHealth.OFFLINE:
        error = live_result.feed_status.error
    else:
        error = "ARTC returned no corridor movements. Using modelled freight patterns."
    logger.debug(f"Using modelled freight: {error}")

    modelled = [freight_to_movement(f) for d in dates for f in generate_modelled_freight(d, now)]
    return FreightResult(
        movements=modelled,
        feed_status=FeedStatus(
            name=MODELLED_FEED_NAME,
            source=DataSource.ARTC_FREIGHT_MODELLED,
            status=FeedHealth.DEGRADED,
            last_fetched=now,
            last_successful=now,
            error=error,
            record_count=len(modelled),
        ),
        limitations=MODELLED_LIMITATIONS,
    )


def _local_date(movement: Movement) -> date:
    return movement.scheduled_time.astimezone(_get_config().tz).date()


async def get_freight_movements(
    for_date: date,
    fetch: Callable[[], Awaitable[list[ArtcTrainMovement]]] | None = None,
    timeout: float | None = None,
) -> FreightResult:
    """Freight movements passing the corridor on one local date.

    Args:
        for_date: Local date to produce movements for.
        fetch: ARTC fetcher to use instead of the HTTP client.
        timeout: Seconds before the ARTC feed is abandoned.

    Returns:
        FreightResult with movements, the freight FeedStatus and the
        limitations that apply to the data shown.
    """
    live_result = await _fetch_live(fetch, timeout)
    result = _build_result([for_date], live_result, datetime.now(UTC))
    movements = [m for m in result.movements if _local_date(m) == for_date]
    return result.model_copy(
        update={
            "movements": movements,
            "feed_status": result.feed_status.model_copy(update={"record_count": len(movements)}),
        }
    )


async def get_freight_for_window(
    start: datetime,
    end: datetime,
    fetch: Callable[[], Awaitable[list[ArtcTrainMovement]]] | None = None,
    timeout: float | None = None,
) -> FreightResult:
    """Freight movements whose primary time falls within [start, end].

    The model is generated for every local date the window touches and
    then clipped, so windows spanning midnight see both days.
    """
    tz = _get_config().tz
    first, last = start.astimezone(tz).date(), end.astimezone(tz).date()
    dates = [first + timedelta(days=i) for i in range(max((last - first).days, 0) + 1)]

    live_result = await _fetch_live(fetch, timeout)
    result = _build_result(dates, live_result, datetime.now(UTC))
    movements = [m for m in result.movements if start <= m.scheduled_time <= end]
    return result.model_copy(
        update={
            "movements": movements,
            "feed_status": result.feed_status.model_copy(update={"record_count": len(movements)}),
        }
    )


def clear_caches() -> None:
    """Clear the ARTC response cache."""
    if _artc_cache:
        _artc_cache.clear()


def reset_service() -> None:
    """Reset the service state completely. Useful for testing."""
    global _artc_cache, _config
    _artc_cache = None
    _config = None
