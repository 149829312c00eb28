"""Rate limiting for job subscriptions."""

from collections import defaultdict
from time import monotonic
from typing import Any, Callable, Dict, List, Optional, Tuple

# Configuration
RATE_LIMIT_REQUESTS = 60  # Max subscriptions per window
RATE_LIMIT_WINDOW_SECONDS = 60  # Window size in seconds


class SubscriptionRateLimiter:
    """
    Sliding window rate limiter for subscribe calls.

    Limits to 60 subscriptions per minute per job ID, which stops a
    remount loop from hammering the backing store.
    """

    def __init__(
        self,
        max_requests: int = RATE_LIMIT_REQUESTS,
        window_seconds: float = RATE_LIMIT_WINDOW_SECONDS,
        clock: Callable[[], float] = monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._requests: Dict[str, List[float]] = defaultdict(list)

    def check(self, job_id: str) -> Tuple[bool, Optional[int]]:
        """
        Check if a subscription is allowed for the given job, and record it.

        Args:
            job_id: The job being subscribed to

        Returns:
            Tuple of (allowed: bool, retry_after_seconds: Optional[int])
            If not allowed, retry_after_seconds indicates when to retry.
        """
        now = self._clock()
        window_start = now - self.window_seconds

        # Clean old entries
        self._requests[job_id] = [
            ts for ts in self._requests[job_id]
            if ts > window_start
        ]

        if len(self._requests[job_id]) >= self.max_requests:
            oldest_in_window = min(self._requests[job_id])
            retry_after = int(oldest_in_window + self.window_seconds - now) + 1
            return False, max(1, retry_after)

        self._requests[job_id].append(now)
        return True, None

    def remaining(self, job_id: str) -> int:
        """Number of subscriptions left for job_id in the current window."""
        window_start = self._clock() - self.window_seconds
        current = [ts for ts in self._requests.get(job_id, []) if ts > window_start]
        return max(0, self.max_requests - len(current))

    def reset(self, job_id: str) -> None:
        """Reset the rate limit for a specific job."""
        self._requests.pop(job_id, None)

    def cleanup(self) -> int:
        """
        Remove all stale entries from the limiter.

        Returns the number of jobs cleaned up.
        """
        window_start = self._clock() - self.window_seconds
        empty_jobs = []
        for job_id, timestamps in self._requests.items():
            recent = [ts for ts in timestamps if ts > window_start]
            if recent:
                self._requests[job_id] = recent
            else:
                empty_jobs.append(job_id)

        for job_id in empty_jobs:
            del self._requests[job_id]

        return len(empty_jobs)

    def get_stats(self) -> Dict[str, Any]:
        """Get limiter statistics."""
        return {
            "total_keys": len(self._requests),
            "total_requests": sum(len(ts) for ts in self._requests.values()),
            "active_keys": [k for k, ts in self._requests.items() if ts],
        }
