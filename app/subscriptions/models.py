"""
Data models for job subscriptions.
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

JobCallback = Callable[[Optional[Dict[str, Any]]], None]


@dataclass
class SubscriptionRecord:
    """
    One underlying listener for a job, shared by every registered callback.

    Callbacks are keyed by id(), so unhashable callables work too; the dict
    keeps insertion order, so dispatch follows registration order.
    """
    job_id: str
    detach: Callable[[], None]
    callbacks: Dict[int, JobCallback] = field(default_factory=dict)
    job: Optional[Dict[str, Any]] = None
    last_update: Optional[float] = None
    error_count: int = 0
    is_active: bool = True

    @property
    def callback_count(self) -> int:
        return len(self.callbacks)

    def snapshot(self) -> List[JobCallback]:
        """Callbacks in registration order, safe to iterate while mutating."""
        return list(self.callbacks.values())


@dataclass
class JobSubscriptionInfo:
    """Per-job entry of the multiplexer stats."""
    callback_count: int
    is_active: bool
    error_count: int

    def to_dict(self) -> dict:
        return {
            "callback_count": self.callback_count,
            "is_active": self.is_active,
            "error_count": self.error_count,
        }
