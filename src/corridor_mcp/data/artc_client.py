import httpx
from pydantic import TypeAdapter

from corridor_mcp.data.config import CorridorConfig
from corridor_mcp.models.freight import ArtcTrainMovement

_MOVEMENTS_ADAPTER = TypeAdapter(list[ArtcTrainMovement])


class ARTCClient:
    """Async HTTP client for train movements from the ARTC developer portal.

    Usage:
        async with ARTCClient(config) as client:
            movements = await client.fetch_train_movements()
    """

    def __init__(self, config: CorridorConfig):
        """Initialize the client.

        Args:
            config: Configuration with the ARTC subscription key and URL.
        """
        self._config = config
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "ARTCClient":
        """Enter async context - create HTTP client."""
        headers = {"Accept": "application/json"}
        if self._config.artc_api_key:
            headers["Ocp-Apim-Subscription-Key"] = self._config.artc_api_key
        self._client = httpx.AsyncClient(headers=headers, timeout=self._config.fetch_timeout_seconds)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context - close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def fetch_train_movements(self) -> list[ArtcTrainMovement]:
        """Fetch and parse train movements on the Hunter corridor.

        Accepts either a bare JSON list or an object with a "movements" list.

        Returns:
            List of parsed movement records.

        Raises:
            RuntimeError: If client not initialized.
            httpx.HTTPError: If the HTTP request fails.
            pydantic.ValidationError: If the payload does not match.
        """
        if not self._client:
            raise RuntimeError("Client not initialized - use 'async with'")

        response = await self._client.get(self._config.artc_movements_url)
        response.raise_for_status()

        payload = response.json()
        if isinstance(payload, dict):
            payload = payload.get("movements", [])
        return _MOVEMENTS_ADAPTER.validate_python(payload)
