from functools import lru_cache
from pathlib import Path
from zoneinfo import ZoneInfo

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

TFNSW_BASE = "https://api.transport.nsw.gov.au"
ARTC_API_BASE = "https://developer.artc.com.au"


class CorridorConfig(BaseSettings):
    """Configuration for upstream feeds, caching and the corridor clock.

    Automatically loads from environment variables and .env file.
    Absence of TFNSW_API_KEY puts the tracker in schedule-only mode;
    absence of ARTC_API_KEY puts freight in modelled mode.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    tfnsw_api_key: str | None = Field(default=None, alias="TFNSW_API_KEY")
    artc_api_key: str | None = Field(default=None, alias="ARTC_API_KEY")

    # TfNSW Open Data endpoints
    trip_updates_url: str = f"{TFNSW_BASE}/v2/gtfs/realtime/sydneytrains"
    vehicle_positions_url: str = f"{TFNSW_BASE}/v2/gtfs/vehiclepos/sydneytrains"
    service_alerts_url: str = f"{TFNSW_BASE}/v2/gtfs/alerts/sydneytrains"
    gtfs_static_url: str = f"{TFNSW_BASE}/v1/gtfs/schedule/sydneytrains"

    # ARTC developer portal
    artc_movements_url: str = f"{ARTC_API_BASE}/api/trainmovements?corridor=hunter"

    realtime_cache_ttl_seconds: float = Field(default=15, alias="CORRIDOR_RT_CACHE_TTL")
    schedule_cache_ttl_seconds: float = Field(default=3600, alias="CORRIDOR_SCHEDULE_CACHE_TTL")
    fetch_timeout_seconds: float = Field(default=10, alias="CORRIDOR_FETCH_TIMEOUT")
    poll_interval_seconds: float = Field(default=20, alias="CORRIDOR_POLL_INTERVAL")

    db_path: Path = Field(default=Path("data/gtfs.db"), alias="CORRIDOR_DB_PATH")
    timezone: str = Field(default="Australia/Sydney", alias="CORRIDOR_TIMEZONE")

    # route_id prefixes of services that run through the corridor
    route_prefixes: list[str] = ["CCN", "HUN", "SHL"]

    @property
    def tz(self) -> ZoneInfo:
        """Corridor-local timezone used for service days and time windows."""
        return ZoneInfo(self.timezone)

    @property
    def realtime_enabled(self) -> bool:
        return self.tfnsw_api_key is not None

    @property
    def freight_feed_enabled(self) -> bool:
        return self.artc_api_key is not None


@lru_cache
def get_config() -> CorridorConfig:
    """Get corridor configuration (cached singleton).

    Returns:
        CorridorConfig with values from .env file or environment variables.
    """
    return CorridorConfig()
