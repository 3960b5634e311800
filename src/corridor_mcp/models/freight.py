"""Freight movement models for ARTC data and the modelled fallback."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from corridor_mcp.models.movements import DataSource, Direction


class ArtcTrainMovement(BaseModel):
    """A train movement record as returned by the ARTC developer portal.

    node_times maps network location names (e.g. "Cardiff") to the
    planned or actual passing time at that node.
    """

    model_config = ConfigDict(extra="ignore")

    train_id: str
    operator: str
    origin_location: str
    destination_location: str
    departure_datetime: datetime | None = None
    arrival_datetime: datetime | None = None
    commodity: str | None = None
    path_nodes: list[str] = []
    node_times: dict[str, datetime] = {}


class FreightMovement(BaseModel):
    """Freight train passing the corridor, before conversion to a Movement."""

    train_id: str
    operator: str
    origin: str
    destination: str
    commodity_type: str | None = None
    consist_type: str
    estimated_cardiff_pass: datetime | None = None
    estimated_kotara_pass: datetime | None = None
    direction: Direction
    source: DataSource
    last_updated: datetime
