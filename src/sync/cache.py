"""Per-user TTL cache owned by callers of the sync orchestrator."""

import time
from typing import Callable, Generic, TypeVar

import structlog

from src.models.config import CacheConfig

log = structlog.stdlib.get_logger()

T = TypeVar("T")


class TTLCache(Generic[T]):
    """Keyed cache whose entries expire ``ttl_seconds`` after they are stored.

    Keys are user ids. Each entry keeps its payload and the clock reading at
    which it was stored. Expired entries are evicted on read.
    """

    def __init__(self, ttl_seconds: float = 120.0, clock: Callable[[], float] = time.monotonic):
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[T, float]] = {}

    @classmethod
    def from_config(
        cls, config: CacheConfig, clock: Callable[[], float] = time.monotonic
    ) -> "TTLCache[T]":
        """Build a cache whose TTL comes from the ``cache`` config section."""
        return cls(ttl_seconds=config.ttl_seconds, clock=clock)

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def get(self, user_id: str) -> T | None:
        """Return the cached payload, or None when missing or expired."""
        entry = self._entries.get(user_id)
        if entry is None:
            return None

        payload, stored_at = entry
        if self._clock() - stored_at >= self._ttl:
            self._entries.pop(user_id, None)
            log.debug("cache_entry_expired", user_id=user_id)
            return None
        return payload

    def put(self, user_id: str, payload: T) -> None:
        self._entries[user_id] = (payload, self._clock())

    def invalidate(self, user_id: str) -> bool:
        """Drop the entry for a user. Returns True if one was present."""
        removed = self._entries.pop(user_id, None) is not None
        if removed:
            log.debug("cache_entry_invalidated", user_id=user_id)
        return removed

    def invalidate_all(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, user_id: object) -> bool:
        return isinstance(user_id, str) and self.get(user_id) is not None
