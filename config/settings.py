"""Configuration management using pydantic-settings."""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Request coordination
    request_cache_duration_seconds: float = 300.0  # 5 minutes

    # Job subscriptions
    subscription_rate_limit_requests: int = 60
    subscription_rate_limit_window_seconds: float = 60.0
    subscription_max_errors: int = 3

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
