"""
Request coordination: at-most-once execution of keyed async operations
with a lazily-expiring result cache.
"""
from .core import CacheEntry, InFlightEntry, RequestResult
from .keys import build_request_key
from .coordinator import DEFAULT_CACHE_DURATION, RequestCoordinator

__all__ = [
    # Core types
    "CacheEntry",
    "InFlightEntry",
    "RequestResult",
    # Keys
    "build_request_key",
    # Coordinator
    "DEFAULT_CACHE_DURATION",
    "RequestCoordinator",
]
