"""TTL-based cache for feeds and parsed timetables."""

import time
from collections.abc import Callable, Hashable
from typing import Generic, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

Clock = Callable[[], float]


class TTLCache(Generic[K, V]):
    """Keyed cache with time-based expiration and an injectable clock.

    Expired entries are kept around so callers can fall back to a stale
    value when a refresh fails. There is no locking: concurrent refreshes
    simply race and the last writer wins.
    """

    def __init__(self, ttl: float = 30.0, clock: Clock = time.monotonic):
        """Initialize the cache.

        Args:
            ttl: Time-to-live in seconds for cached values.
            clock: Monotonic seconds source, injectable for tests.
        """
        self._ttl = ttl
        self._clock = clock
        self._entries: dict[K, tuple[V, float]] = {}

    @property
    def ttl(self) -> float:
        return self._ttl

    def get(self, key: K) -> V | None:
        """Get the cached value for key if it hasn't expired.

        Returns:
            The cached value if valid, None if expired or not set.
        """
        entry = self._entries.get(key)
        if entry is not None and self._clock() < entry[1]:
            return entry[0]
        return None

    def get_stale(self, key: K) -> V | None:
        """Get the last value stored for key, ignoring expiry."""
        entry = self._entries.get(key)
        return entry[0] if entry is not None else None

    def set(self, key: K, value: V) -> None:
        """Set a value in the cache with TTL.

        Args:
            key: Cache key.
            value: The value to cache.
        """
        self._entries[key] = (value, self._clock() + self._ttl)

    def invalidate(self, key: K | None = None) -> None:
        """Expire one key, or every key when none is given.

        The values stay available through get_stale().
        """
        keys = [key] if key is not None else list(self._entries)
        for k in keys:
            if k in self._entries:
                value, _ = self._entries[k]
                self._entries[k] = (value, float("-inf"))

    def clear(self) -> None:
        """Drop every cached value, stale ones included."""
        self._entries.clear()
