"""
Job subscription multiplexing.

Many parts of the application want live updates for the same job. Each
job gets exactly one underlying listener; updates are fanned out to every
registered callback.
"""
import logging
import time
from typing import Any, Callable, Dict, Optional

from .listener import JobData, JobListener
from .models import JobCallback, JobSubscriptionInfo, SubscriptionRecord
from .rate_limiter import SubscriptionRateLimiter

logger = logging.getLogger("subscriptions.multiplexer")

DEFAULT_MAX_ERRORS = 3


def _noop() -> None:
    return None


class JobSubscriptionMultiplexer:
    """
    Collapses subscriptions to the same job into one underlying listener.

    The listener is reference counted by its callbacks: it is attached on
    the first subscribe for a job and detached when the last callback
    unsubscribes. Dispatch is synchronous, in registration order, and a
    failing callback never stops its siblings.
    """

    def __init__(
        self,
        listener: JobListener,
        rate_limiter: Optional[SubscriptionRateLimiter] = None,
        max_errors: int = DEFAULT_MAX_ERRORS,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the multiplexer.

        Args:
            listener: Backing-store listener used to attach one listener per job
            rate_limiter: Limits subscribe calls per job (default 60/min)
            max_errors: Consecutive backing-store errors before a record goes inactive
            clock: Time source for last_update stamps
        """
        self._listener = listener
        self._rate_limiter = rate_limiter or SubscriptionRateLimiter()
        self._max_errors = max_errors
        self._clock = clock
        self._records: Dict[str, SubscriptionRecord] = {}

    def subscribe_to_job(self, job_id: str, callback: JobCallback) -> Callable[[], None]:
        """
        Register a callback for updates on job_id.

        Args:
            job_id: The job document ID
            callback: Called with the job dict (or None) on every update

        Returns:
            Function removing this callback; the last removal detaches the listener
        """
        if not job_id:
            raise ValueError("job_id must be a non-empty string")

        allowed, retry_after = self._rate_limiter.check(job_id)
        if not allowed:
            logger.warning(
                f"Rate limit exceeded for job {job_id}. Try again in {retry_after}s"
            )
            return _noop

        record = self._records.get(job_id)
        if record is None:
            record = self._create_record(job_id)

        record.callbacks[id(callback)] = callback
        logger.debug(
            f"Subscribed to job {job_id} (callbacks: {record.callback_count}, "
            f"subscriptions left in window: {self._rate_limiter.remaining(job_id)})"
        )

        # Late subscribers see the current state straight away
        if record.job is not None:
            self._invoke(job_id, callback, record.job)

        def unsubscribe() -> None:
            self._unsubscribe_callback(job_id, record, callback)

        return unsubscribe

    def _create_record(self, job_id: str) -> SubscriptionRecord:
        """Attach the underlying listener for job_id and wrap it in a record."""
        logger.info(f"Creating listener for job {job_id}")
        record = SubscriptionRecord(job_id=job_id, detach=_noop)

        def on_update(data: JobData) -> None:
            self._dispatch(record, data)

        def on_error(error: Exception) -> None:
            self._dispatch_error(record, error)

        # Registered before attaching so an initial snapshot delivered during
        # attach is not dropped
        self._records[job_id] = record
        try:
            record.detach = self._listener.attach(job_id, on_update, on_error)
        except Exception:
            del self._records[job_id]
            raise
        return record

    def _unsubscribe_callback(
        self,
        job_id: str,
        record: SubscriptionRecord,
        callback: JobCallback,
    ) -> None:
        if self._records.get(job_id) is not record:
            return
        if record.callbacks.get(id(callback)) is not callback:
            return

        del record.callbacks[id(callback)]
        logger.debug(
            f"Unsubscribed from job {job_id}, remaining callbacks: {record.callback_count}"
        )

        if not record.callbacks:
            logger.info(f"Tearing down listener for job {job_id}")
            del self._records[job_id]
            record.detach()
            self._rate_limiter.cleanup()

    def _dispatch(self, record: SubscriptionRecord, data: JobData) -> None:
        """Fan an update out to every callback of the record."""
        if self._records.get(record.job_id) is not record:
            return

        record.job = data
        record.last_update = self._clock()
        record.error_count = 0
        if not record.is_active:
            logger.info(f"Job {record.job_id} recovered, marking as active")
            record.is_active = True

        if data is not None:
            logger.debug(f"Job update for {record.job_id}: {data.get('status')}")

        for callback in record.snapshot():
            self._invoke(record.job_id, callback, data)

    def _dispatch_error(self, record: SubscriptionRecord, error: Exception) -> None:
        """Count a backing-store error and notify callbacks with None."""
        if self._records.get(record.job_id) is not record:
            return

        logger.error(f"Listener error for job {record.job_id}: {error}")
        record.error_count += 1
        if record.error_count >= self._max_errors and record.is_active:
            logger.warning(
                f"Max errors reached for job {record.job_id}, marking as inactive"
            )
            record.is_active = False

        for callback in record.snapshot():
            self._invoke(record.job_id, callback, None)

    def _invoke(self, job_id: str, callback: JobCallback, data: JobData) -> None:
        try:
            callback(data)
        except Exception:
            logger.exception(f"Callback error for job {job_id}")

    def force_refresh(self, job_id: str) -> bool:
        """
        Clear the error state of a job subscription.

        Resets the error count, reactivates the record and resets the job's
        subscribe rate limit. The attached listener keeps delivering the
        latest document, so nothing is re-attached.

        Returns:
            True if a subscription existed for job_id
        """
        record = self._records.get(job_id)
        if record is None:
            return False

        logger.info(f"Force refreshing job {job_id}")
        record.error_count = 0
        record.is_active = True
        self._rate_limiter.reset(job_id)
        return True

    def get_current_job(self, job_id: str) -> Optional[Dict[str, Any]]:
        """Last job data received for job_id, if any."""
        record = self._records.get(job_id)
        return record.job if record is not None else None

    def has_active_subscribers(self, job_id: str) -> bool:
        """Check if job_id has at least one registered callback."""
        record = self._records.get(job_id)
        return record is not None and record.callback_count > 0

    def has_subscription(self, job_id: str) -> bool:
        """Check if an underlying listener exists for job_id."""
        return job_id in self._records

    def get_stats(self) -> Dict[str, Any]:
        """Get subscription statistics."""
        by_job: Dict[str, JobSubscriptionInfo] = {}
        active = 0
        total_callbacks = 0

        for job_id, record in self._records.items():
            is_active = record.callback_count > 0 and record.is_active
            if is_active:
                active += 1
            total_callbacks += record.callback_count
            by_job[job_id] = JobSubscriptionInfo(
                callback_count=record.callback_count,
                is_active=is_active,
                error_count=record.error_count,
            )

        return {
            "total_subscriptions": len(self._records),
            "active_subscriptions": active,
            "total_callbacks": total_callbacks,
            "subscriptions_by_job": {k: v.to_dict() for k, v in by_job.items()},
            "rate_limit": self._rate_limiter.get_stats(),
        }

    def cleanup(self) -> int:
        """
        Detach every listener and drop every record.

        Returns:
            Number of listeners torn down
        """
        records = list(self._records.values())
        self._records.clear()
        logger.info(f"Cleaning up {len(records)} subscriptions")

        for record in records:
            try:
                record.detach()
            except Exception:
                logger.exception(f"Failed to detach listener for job {record.job_id}")

        removed = self._rate_limiter.cleanup()
        if removed:
            logger.debug(f"Dropped rate-limit history for {removed} jobs")

        return len(records)
