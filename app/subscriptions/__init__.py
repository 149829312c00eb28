"""
Job subscription module.

Shares one real-time listener per job between every interested callback.
"""
from .listener import InMemoryJobListener, JobListener
from .models import JobSubscriptionInfo, SubscriptionRecord
from .multiplexer import DEFAULT_MAX_ERRORS, JobSubscriptionMultiplexer
from .rate_limiter import SubscriptionRateLimiter

__all__ = [
    # Listener
    "JobListener",
    "InMemoryJobListener",
    # Models
    "SubscriptionRecord",
    "JobSubscriptionInfo",
    # Multiplexer
    "DEFAULT_MAX_ERRORS",
    "JobSubscriptionMultiplexer",
    "SubscriptionRateLimiter",
]
