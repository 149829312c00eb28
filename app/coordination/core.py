"""
Core data structures for request coordination.
"""
import asyncio
from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class CacheEntry:
    """
    A successful result stored under its request key.

    Entries are replaced wholesale, never updated in place.
    """
    result: Any
    cached_at: float

    def age_seconds(self, now: float) -> float:
        """Seconds since the result was cached."""
        return now - self.cached_at

    def is_fresh(self, now: float, cache_duration: float) -> bool:
        """Check if the entry is still within the cache duration."""
        return self.age_seconds(now) <= cache_duration


@dataclass
class InFlightEntry:
    """Tracks an operation that has started but not yet settled."""
    task: "asyncio.Future[Any]"
    started_at: float
    waiter_count: int = 0
    context: str = ""


@dataclass
class RequestResult:
    """Outcome handed back to every caller of execute_once."""
    data: Any
    was_from_cache: bool
    key: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON responses."""
        return {
            "data": self.data,
            "wasFromCache": self.was_from_cache,
            "key": self.key,
        }
