from datetime import UTC, datetime
from pathlib import Path

import httpx
from google.transit import gtfs_realtime_pb2

from corridor_mcp.data.config import CorridorConfig
from corridor_mcp.models.alerts import (
    ActivePeriod,
    AlertEntity,
    InformedEntity,
    ServiceAlertsData,
)
from corridor_mcp.models.realtime import (
    FeedHeader,
    OccupancyStatus,
    Position,
    ScheduleRelationship,
    StopTimeEvent,
    StopTimeUpdate,
    TripDescriptor,
    TripUpdate,
    TripUpdatesData,
    VehicleDescriptor,
    VehiclePositionEntity,
    VehiclePositionsData,
)


class TfNSWClient:
    """Async HTTP client for TfNSW Open Data GTFS and GTFS-RT feeds.

    All requests authenticate with an `Authorization: apikey <key>` header.

    Usage:
        async with TfNSWClient(config) as client:
            trip_updates = await client.fetch_trip_updates()
    """

    def __init__(self, config: CorridorConfig):
        """Initialize the client.

        Args:
            config: Corridor configuration with API key, URLs and timeout.
        """
        self._config = config
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "TfNSWClient":
        """Enter async context - create HTTP client."""
        headers = {}
        if self._config.tfnsw_api_key:
            headers["Authorization"] = f"apikey {self._config.tfnsw_api_key}"
        self._client = httpx.AsyncClient(
            headers=headers,
            timeout=self._config.fetch_timeout_seconds,
            follow_redirects=True,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context - close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _fetch_feed(self, url: str) -> gtfs_realtime_pb2.FeedMessage:
        if not self._client:
            raise RuntimeError("Client not initialized - use 'async with'")

        response = await self._client.get(url, headers={"Accept": "application/x-google-protobuf"})
        response.raise_for_status()

        feed = gtfs_realtime_pb2.FeedMessage()
        feed.ParseFromString(response.content)
        return feed

    async def fetch_trip_updates(self) -> TripUpdatesData:
        """Fetch and parse the trip updates feed.

        Raises:
            RuntimeError: If client not initialized.
            httpx.HTTPError: If the HTTP request fails.
            google.protobuf.message.DecodeError: If the payload is not a feed.
        """
        feed = await self._fetch_feed(self._config.trip_updates_url)
        return self._parse_trip_updates(feed)

    async def fetch_vehicle_positions(self) -> VehiclePositionsData:
        """Fetch and parse the vehicle positions feed.

        Raises:
            RuntimeError: If client not initialized.
            httpx.HTTPError: If the HTTP request fails.
            google.protobuf.message.DecodeError: If the payload is not a feed.
        """
        feed = await self._fetch_feed(self._config.vehicle_positions_url)
        return self._parse_vehicle_positions(feed)

    async def fetch_service_alerts(self) -> ServiceAlertsData:
        """Fetch and parse the service alerts feed."""
        feed = await self._fetch_feed(self._config.service_alerts_url)
        return self._parse_service_alerts(feed)

    async def download_gtfs_static(self, dest: Path) -> Path:
        """Download the GTFS static ZIP to dest.

        Returns:
            The path written.

        Raises:
            RuntimeError: If client not initialized.
            httpx.HTTPError: If the HTTP request fails.
        """
        if not self._client:
            raise RuntimeError("Client not initialized - use 'async with'")

        dest.parent.mkdir(parents=True, exist_ok=True)
        async with self._client.stream(
            "GET", self._config.gtfs_static_url, headers={"Accept": "application/zip"}
        ) as response:
            response.raise_for_status()
            with open(dest, "wb") as f:
                async for chunk in response.aiter_bytes():
                    f.write(chunk)
        return dest

    def _parse_header(self, feed: gtfs_realtime_pb2.FeedMessage) -> FeedHeader:
        return FeedHeader(
            gtfs_realtime_version=feed.header.gtfs_realtime_version,
            timestamp=feed.header.timestamp,
        )

    def _parse_trip_updates(self, feed: gtfs_realtime_pb2.FeedMessage) -> TripUpdatesData:
        """Parse protobuf feed message into TripUpdatesData model."""
        trip_updates = [
            self._parse_trip_update(entity.trip_update)
            for entity in feed.entity
            if entity.HasField("trip_update")
        ]
        return TripUpdatesData(
            header=self._parse_header(feed),
            trip_updates=trip_updates,
            fetched_at=datetime.now(UTC),
        )

    def _parse_trip_update(self, tu: gtfs_realtime_pb2.TripUpdate) -> TripUpdate:
        """Parse a single trip update entity."""
        return TripUpdate(
            trip=self._parse_trip_descriptor(tu.trip),
            stop_time_update=[self._parse_stop_time_update(stu) for stu in tu.stop_time_update],
            timestamp=tu.timestamp if tu.timestamp else None,
        )

    def _parse_stop_time_event(self, event: gtfs_realtime_pb2.TripUpdate.StopTimeEvent) -> StopTimeEvent:
        return StopTimeEvent(
            delay=event.delay if event.HasField("delay") else None,
            time=event.time if event.time else None,
        )

    def _parse_stop_time_update(self, stu: gtfs_realtime_pb2.TripUpdate.StopTimeUpdate) -> StopTimeUpdate:
        """Parse a single stop time update."""
        return StopTimeUpdate(
            stop_id=stu.stop_id if stu.stop_id else None,
            arrival=self._parse_stop_time_event(stu.arrival) if stu.HasField("arrival") else None,
            departure=self._parse_stop_time_event(stu.departure) if stu.HasField("departure") else None,
        )

    def _parse_vehicle_positions(self, feed: gtfs_realtime_pb2.FeedMessage) -> VehiclePositionsData:
        """Parse protobuf feed message into VehiclePositionsData model."""
        vehicles = [
            self._parse_vehicle_position(entity.vehicle)
            for entity in feed.entity
            if entity.HasField("vehicle")
        ]
        return VehiclePositionsData(
            header=self._parse_header(feed),
            vehicles=vehicles,
            fetched_at=datetime.now(UTC),
        )

    def _parse_vehicle_position(self, vp: gtfs_realtime_pb2.VehiclePosition) -> VehiclePositionEntity:
        """Parse a single vehicle position entity."""
        trip = None
        if vp.HasField("trip"):
            trip = self._parse_trip_descriptor(vp.trip)

        vehicle = None
        if vp.HasField("vehicle"):
            vehicle = VehicleDescriptor(
                id=vp.vehicle.id if vp.vehicle.id else None,
                label=vp.vehicle.label if vp.vehicle.label else None,
            )

        position = None
        if vp.HasField("position"):
            position = Position(
                latitude=vp.position.latitude,
                longitude=vp.position.longitude,
                bearing=vp.position.bearing if vp.position.HasField("bearing") else None,
                speed=vp.position.speed if vp.position.HasField("speed") else None,
            )

        # parse occupancy status (GTFS-RT enum -> our enum)
        occupancy_status = None
        if vp.HasField("occupancy_status"):
            occupancy_name = gtfs_realtime_pb2.VehiclePosition.OccupancyStatus.Name(vp.occupancy_status)
            try:
                occupancy_status = OccupancyStatus(occupancy_name)
            except ValueError:
                pass  # values added to the standard after ours, leave as None

        return VehiclePositionEntity(
            trip=trip,
            vehicle=vehicle,
            position=position,
            occupancy_status=occupancy_status,
            timestamp=vp.timestamp if vp.timestamp else None,
        )

    def _parse_service_alerts(self, feed: gtfs_realtime_pb2.FeedMessage) -> ServiceAlertsData:
        """Parse protobuf feed message into ServiceAlertsData model."""
        alerts = [
            self._parse_alert(entity.id, entity.alert)
            for entity in feed.entity
            if entity.HasField("alert")
        ]
        return ServiceAlertsData(
            header=self._parse_header(feed),
            alerts=alerts,
            fetched_at=datetime.now(UTC),
        )

    def _parse_alert(self, entity_id: str, alert: gtfs_realtime_pb2.Alert) -> AlertEntity:
        """Parse a single alert entity."""
        active_periods = [
            ActivePeriod(
                start=period.start if period.start else None,
                end=period.end if period.end else None,
            )
            for period in alert.active_period
        ]

        informed_entities = [
            InformedEntity(
                route_id=ie.route_id if ie.route_id else None,
                trip_id=ie.trip.trip_id if ie.HasField("trip") and ie.trip.trip_id else None,
                stop_id=ie.stop_id if ie.stop_id else None,
            )
            for ie in alert.informed_entity
        ]

        return AlertEntity(
            id=entity_id,
            active_periods=active_periods,
            cause=gtfs_realtime_pb2.Alert.Cause.Name(alert.cause),
            effect=gtfs_realtime_pb2.Alert.Effect.Name(alert.effect),
            informed_entities=informed_entities,
            header_text=self._first_translation(alert.header_text),
            description_text=self._first_translation(alert.description_text),
        )

    def _first_translation(self, text: gtfs_realtime_pb2.TranslatedString) -> str | None:
        for translation in text.translation:
            if translation.text:
                return translation.text
        return None

    def _parse_trip_descriptor(self, td: gtfs_realtime_pb2.TripDescriptor) -> TripDescriptor:
        """Parse a trip descriptor."""
        schedule_relationship = None
        if td.HasField("schedule_relationship"):
            relationship_name = gtfs_realtime_pb2.TripDescriptor.ScheduleRelationship.Name(
                td.schedule_relationship
            )
            try:
                schedule_relationship = ScheduleRelationship(relationship_name)
            except ValueError:
                pass

        return TripDescriptor(
            trip_id=td.trip_id if td.trip_id else None,
            route_id=td.route_id if td.route_id else None,
            schedule_relationship=schedule_relationship,
        )
