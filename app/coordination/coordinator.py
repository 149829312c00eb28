"""
Request coordination to prevent duplicate upstream calls.

When several tasks ask for the same keyed operation while it is running,
only one execution happens and every caller shares its outcome. Successful
results are cached for a fixed duration; failures are never cached.
"""
import asyncio
import functools
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from .core import CacheEntry, InFlightEntry, RequestResult
from .keys import build_request_key

logger = logging.getLogger("coordination.coordinator")

# 5 minutes
DEFAULT_CACHE_DURATION = 300.0


def _label(key: str, context: str) -> str:
    return f"{key} [{context}]" if context else key


class RequestCoordinator:
    """
    Ensures identical async operations run at most once at a time.

    Pattern:
    - A fresh cached result is returned without calling the operation
    - Otherwise a caller joins the in-flight execution for the key, if any
    - Otherwise the caller starts the execution and registers it
    - On success the result is cached, on failure nothing is cached

    Map mutation happens only in synchronous code between awaits, so the
    single event loop never observes a half-registered key.

    There is no timeout: an operation that never settles keeps its key
    in flight until it does.

    Usage:
        coordinator = RequestCoordinator()
        result = await coordinator.execute_once(
            "getRecommendations:job-42",
            lambda: functions.get_recommendations("job-42"),
        )
    """

    def __init__(
        self,
        cache_duration: float = DEFAULT_CACHE_DURATION,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the coordinator.

        Args:
            cache_duration: Seconds a successful result stays servable
            clock: Time source, injectable for tests
        """
        self.cache_duration = cache_duration
        self._clock = clock
        self._cache: Dict[str, CacheEntry] = {}
        self._in_flight: Dict[str, InFlightEntry] = {}

        self._stats = {
            "hits": 0,
            "coalesced": 0,
            "executions": 0,
            "failures": 0,
        }

    async def execute_once(
        self,
        key: str,
        operation: Callable[[], Awaitable[Any]],
        force_regenerate: bool = False,
        context: str = "",
    ) -> RequestResult:
        """
        Serve from cache, join an in-flight execution, or start a new one.

        Args:
            key: Request key identifying the logical operation
            operation: Zero-argument callable returning an awaitable
            force_regenerate: Skip cache and in-flight reuse, always execute
            context: Caller label included in log lines (e.g. "retry-call")

        Returns:
            RequestResult with the data and whether it came from cache

        Raises:
            ValueError: If key is empty
            Exception: Any error from the operation is propagated verbatim
        """
        if not key:
            raise ValueError("request key must be a non-empty string")

        label = _label(key, context)

        if not force_regenerate:
            entry = self._lookup(key)
            if entry is not None:
                self._stats["hits"] += 1
                logger.debug(
                    f"CACHE HIT: {label} [age={entry.age_seconds(self._clock()):.1f}s]"
                )
                return RequestResult(data=entry.result, was_from_cache=True, key=key)

            in_flight = self._in_flight.get(key)
            if in_flight is not None:
                in_flight.waiter_count += 1
                self._stats["coalesced"] += 1
                logger.debug(
                    f"Coalescing request for {label} (waiters: {in_flight.waiter_count})"
                )
                data = await asyncio.shield(in_flight.task)
                return RequestResult(data=data, was_from_cache=False, key=key)
        else:
            logger.info(f"FORCE REGENERATE: {label}")

        in_flight = self._start(key, operation, context)
        data = await asyncio.shield(in_flight.task)
        return RequestResult(data=data, was_from_cache=False, key=key)

    async def execute_keyed(
        self,
        operation_name: str,
        params: Optional[Dict[str, Any]],
        operation: Callable[[], Awaitable[Any]],
        force_regenerate: bool = False,
        context: str = "",
    ) -> RequestResult:
        """Build the key from an operation name and params, then execute_once."""
        key = build_request_key(operation_name, params)
        return await self.execute_once(
            key, operation, force_regenerate=force_regenerate, context=context
        )

    def _start(
        self,
        key: str,
        operation: Callable[[], Awaitable[Any]],
        context: str = "",
    ) -> InFlightEntry:
        """Invoke the operation and register it as the in-flight entry for key."""
        task = asyncio.ensure_future(operation())
        in_flight = InFlightEntry(task=task, started_at=self._clock(), context=context)
        self._in_flight[key] = in_flight
        self._stats["executions"] += 1
        logger.debug(f"Initiating execution for {_label(key, context)}")

        # Runs before any awaiting caller resumes
        task.add_done_callback(functools.partial(self._settle, key, in_flight))
        return in_flight

    def _settle(self, key: str, in_flight: InFlightEntry, task: "asyncio.Future[Any]") -> None:
        """Clear the in-flight entry and cache a success."""
        label = _label(key, in_flight.context)
        is_current = self._in_flight.get(key) is in_flight
        if is_current:
            del self._in_flight[key]

        if task.cancelled():
            logger.warning(f"Execution cancelled for {label}")
            return

        error = task.exception()
        if error is not None:
            self._stats["failures"] += 1
            logger.warning(f"Execution failed for {label}: {error}")
            return

        # A superseded execution (force_regenerate started a newer one) never
        # overwrites the cache.
        if is_current:
            self._cache[key] = CacheEntry(result=task.result(), cached_at=self._clock())
            duration = self._clock() - in_flight.started_at
            logger.debug(f"Cached result for {label} [took={duration:.2f}s]")

    def _lookup(self, key: str) -> Optional[CacheEntry]:
        """Return the entry for key if it exists and has not expired."""
        entry = self._cache.get(key)
        if entry is None:
            return None
        if not entry.is_fresh(self._clock(), self.cache_duration):
            logger.debug(f"CACHE EXPIRED: {key}")
            return None
        return entry

    def is_request_cached(self, key: str) -> bool:
        """Check if a non-expired result exists for key."""
        return self._lookup(key) is not None

    def is_request_in_flight(self, key: str) -> bool:
        """Check if an execution for key is currently running."""
        return key in self._in_flight

    def get_cached(self, key: str) -> Optional[Any]:
        """Get the cached result for key, or None if absent or expired."""
        entry = self._lookup(key)
        return entry.result if entry is not None else None

    def invalidate(self, key: str) -> bool:
        """
        Invalidate a specific cache entry.

        Returns:
            True if entry was found and removed
        """
        if key in self._cache:
            del self._cache[key]
            logger.info(f"Invalidated cache: {key}")
            return True
        return False

    def invalidate_pattern(self, pattern: str) -> int:
        """
        Invalidate all cache entries whose key contains pattern.

        Returns:
            Number of entries invalidated
        """
        to_delete = [k for k in self._cache if pattern in k]
        for key in to_delete:
            del self._cache[key]
        if to_delete:
            logger.info(f"Invalidated {len(to_delete)} entries matching '{pattern}'")
        return len(to_delete)

    def clear(self) -> int:
        """
        Clear all cache entries. In-flight executions are left running.

        Returns:
            Number of entries cleared
        """
        count = len(self._cache)
        self._cache.clear()
        logger.info(f"Cleared {count} cache entries")
        return count

    @property
    def active_requests(self) -> int:
        """Number of currently in-flight executions."""
        return len(self._in_flight)

    def get_stats(self) -> Dict[str, Any]:
        """Get coordinator statistics."""
        served = self._stats["hits"] + self._stats["coalesced"]
        total_requests = served + self._stats["executions"]
        hit_rate = (self._stats["hits"] / total_requests * 100) if total_requests > 0 else 0

        return {
            "entries": len(self._cache),
            "in_flight": len(self._in_flight),
            "in_flight_keys": list(self._in_flight.keys()),
            "hits": self._stats["hits"],
            "coalesced": self._stats["coalesced"],
            "executions": self._stats["executions"],
            "failures": self._stats["failures"],
            "hit_rate_percent": round(hit_rate, 1),
            "cache_duration_seconds": self.cache_duration,
        }
