"""Pydantic models for the GTFS-RT service alerts feed."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from corridor_mcp.models.realtime import FeedHeader


class ActivePeriod(BaseModel):
    """Time range when an alert applies. Either bound may be open."""

    model_config = ConfigDict(extra="ignore")

    start: int | None = None
    end: int | None = None


class InformedEntity(BaseModel):
    """Entity affected by an alert (route, trip, or stop).

    Each field is optional as entities can specify any combination.
    """

    model_config = ConfigDict(extra="ignore")

    route_id: str | None = None
    trip_id: str | None = None
    stop_id: str | None = None


class AlertEntity(BaseModel):
    """A single alert entity as decoded from the feed."""

    model_config = ConfigDict(extra="ignore")

    id: str
    active_periods: list[ActivePeriod] = []
    cause: str = "UNKNOWN_CAUSE"
    effect: str = "UNKNOWN_EFFECT"
    informed_entities: list[InformedEntity] = []
    header_text: str | None = None
    description_text: str | None = None


class ServiceAlertsData(BaseModel):
    """Complete service alerts feed data."""

    header: FeedHeader
    alerts: list[AlertEntity] = []
    fetched_at: datetime
