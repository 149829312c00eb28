"""
Composition root.

Builds the single request coordinator and subscription multiplexer a
process uses. Feature code receives them from the AppContext instead of
reaching for module-level globals.
"""
from dataclasses import dataclass
from typing import Optional

from app.coordination import RequestCoordinator
from app.subscriptions import (
    InMemoryJobListener,
    JobListener,
    JobSubscriptionMultiplexer,
    SubscriptionRateLimiter,
)
from config.settings import Settings, settings as default_settings


@dataclass
class AppContext:
    """Process-wide services shared by all callers."""
    coordinator: RequestCoordinator
    multiplexer: JobSubscriptionMultiplexer
    listener: JobListener
    settings: Settings


def build_context(
    app_settings: Optional[Settings] = None,
    listener: Optional[JobListener] = None,
) -> AppContext:
    """
    Construct the services for one process.

    Args:
        app_settings: Settings to read tunables from (defaults to env settings)
        listener: Backing-store listener (defaults to an in-memory one)
    """
    app_settings = app_settings or default_settings
    listener = listener or InMemoryJobListener()

    coordinator = RequestCoordinator(
        cache_duration=app_settings.request_cache_duration_seconds,
    )
    multiplexer = JobSubscriptionMultiplexer(
        listener,
        rate_limiter=SubscriptionRateLimiter(
            max_requests=app_settings.subscription_rate_limit_requests,
            window_seconds=app_settings.subscription_rate_limit_window_seconds,
        ),
        max_errors=app_settings.subscription_max_errors,
    )
    return AppContext(
        coordinator=coordinator,
        multiplexer=multiplexer,
        listener=listener,
        settings=app_settings,
    )
