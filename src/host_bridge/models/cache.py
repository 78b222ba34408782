"""
Query cache entry models.
"""

from enum import Enum
from typing import Any, Optional


class CacheState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    FRESH = "fresh"
    STALE = "stale"
    ERROR = "error"


class CacheEntry:
    """One cached fetch result. Exactly one exists per key tuple."""

    __slots__ = ("key", "data", "fetched_at", "ttl", "state", "error", "last_used", "inflight", "generation")

    def __init__(self, key: tuple, ttl: float, now: float):
        self.key = key
        self.data: Any = None
        self.fetched_at: Optional[float] = None
        self.ttl = ttl
        self.state = CacheState.IDLE
        self.error: Optional[Exception] = None
        self.last_used = now
        self.inflight = None
        # Bumped by writes and invalidations; a fetch started under an older value is superseded.
        self.generation = 0

    def expired(self, now: float) -> bool:
        return self.fetched_at is not None and now - self.fetched_at >= self.ttl

    @property
    def fetching(self) -> bool:
        return self.inflight is not None and not self.inflight.done()

    def __repr__(self) -> str:
        return f"CacheEntry(key={self.key!r}, state={self.state.value!r})"
