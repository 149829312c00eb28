"""
Real-time job listener interface and in-memory implementation.

The multiplexer only depends on the JobListener protocol, so the backing
store (Firestore document snapshots in production) can be swapped without
touching subscription bookkeeping.
"""
from typing import Any, Callable, Dict, List, Optional, Protocol
import itertools
import logging

logger = logging.getLogger("subscriptions.listener")

JobData = Optional[Dict[str, Any]]
UpdateHandler = Callable[[JobData], None]
ErrorHandler = Callable[[Exception], None]
Detach = Callable[[], None]


class JobListener(Protocol):
    """
    Interface for a real-time listener on a single job document.

    Implementations:
    - InMemoryJobListener: updates pushed by the caller (tests, local runs)
    """

    def attach(
        self,
        job_id: str,
        on_update: UpdateHandler,
        on_error: ErrorHandler,
    ) -> Detach:
        """
        Start listening to a job document.

        Args:
            job_id: The job document ID
            on_update: Called with the job dict, or None if the document is missing
            on_error: Called with the backing-store error

        Returns:
            Function that stops the listener
        """
        ...


class InMemoryJobListener:
    """
    Listener whose updates are pushed explicitly.

    Keeps counters of attach/detach calls so callers can verify how many
    underlying listeners exist.
    """

    def __init__(self):
        self._handlers: Dict[str, Dict[int, tuple]] = {}
        self._ids = itertools.count(1)
        self.attach_calls = 0
        self.detach_calls = 0

    def attach(
        self,
        job_id: str,
        on_update: UpdateHandler,
        on_error: ErrorHandler,
    ) -> Detach:
        handle = next(self._ids)
        self._handlers.setdefault(job_id, {})[handle] = (on_update, on_error)
        self.attach_calls += 1
        logger.debug(f"Attached listener {handle} for job {job_id}")

        def detach() -> None:
            handlers = self._handlers.get(job_id)
            if handlers is None or handle not in handlers:
                return
            del handlers[handle]
            if not handlers:
                del self._handlers[job_id]
            self.detach_calls += 1
            logger.debug(f"Detached listener {handle} for job {job_id}")

        return detach

    def push(self, job_id: str, data: JobData) -> int:
        """
        Deliver a document update to every listener on job_id.

        Returns:
            Number of listeners notified
        """
        handlers = list(self._handlers.get(job_id, {}).values())
        for on_update, _ in handlers:
            on_update(data)
        return len(handlers)

    def fail(self, job_id: str, error: Exception) -> int:
        """
        Deliver a backing-store error to every listener on job_id.

        Returns:
            Number of listeners notified
        """
        handlers = list(self._handlers.get(job_id, {}).values())
        for _, on_error in handlers:
            on_error(error)
        return len(handlers)

    @property
    def attached_count(self) -> int:
        """Number of listeners currently attached, across all jobs."""
        return sum(len(handlers) for handlers in self._handlers.values())

    def attached_jobs(self) -> List[str]:
        """Job IDs with at least one attached listener."""
        return list(self._handlers.keys())
