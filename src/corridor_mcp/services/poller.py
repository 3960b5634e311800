"""Latest-request-wins refresher for corridor movements.

A new request (for example after a filter change) cancels the aggregation
still in flight, so a slow stale response can never overwrite a newer one.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from corridor_mcp.data.config import get_config
from corridor_mcp.models.movements import MovementFilters, MovementsResponse
from corridor_mcp.services.corridor_service import get_aggregator

logger = logging.getLogger(__name__)

Aggregate = Callable[[MovementFilters], Awaitable[MovementsResponse]]
Listener = Callable[[MovementsResponse], None]


class MovementPoller:
    """Polls the aggregator on an interval and on demand.

    Usage:
        poller = get_poller()
        response = await poller.refresh(MovementFilters(station="cardiff"))
    """

    def __init__(
        self,
        aggregate: Aggregate,
        interval: float = 20,
        filters: MovementFilters | None = None,
        on_update: Listener | None = None,
    ):
        self._aggregate = aggregate
        self.interval = interval
        self.on_update = on_update
        self.filters = filters or MovementFilters()
        self.latest: MovementsResponse | None = None
        self._in_flight: asyncio.Task[MovementsResponse] | None = None

    @property
    def in_flight(self) -> asyncio.Task[MovementsResponse] | None:
        return self._in_flight

    async def refresh(self, filters: MovementFilters | None = None) -> MovementsResponse | None:
        """Run one aggregation, cancelling any that is still running.

        Returns:
            The new response, or None if this request was itself superseded.
        """
        if filters is not None:
            self.filters = filters

        if self._in_flight is not None and not self._in_flight.done():
            logger.debug("Cancelling in-flight aggregation")
            self._in_flight.cancel()

        task = asyncio.create_task(self._aggregate(self.filters))
        self._in_flight = task
        try:
            response = await task
        except asyncio.CancelledError:
            if task.cancelled() and self._in_flight is not task:
                # superseded by a newer request
                return None
            raise
        finally:
            if self._in_flight is task:
                self._in_flight = None

        self.latest = response
        if self.on_update is not None:
            self.on_update(response)
        return response

    async def run(self) -> None:
        """Refresh every interval until cancelled."""
        while True:
            await self.refresh()
            await asyncio.sleep(self.interval)


# Module-level state (lazy-initialized)
_poller: MovementPoller | None = None


def get_poller() -> MovementPoller:
    """Get or create the process-wide poller over the shared aggregator."""
    global _poller
    if _poller is None:
        _poller = MovementPoller(get_aggregator().get_movements, interval=get_config().poll_interval_seconds)
    return _poller


def reset_poller() -> None:
    """Drop the poller. Useful for testing."""
    global _poller
    _poller = None
