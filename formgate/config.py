"""Engine configuration via pydantic-settings."""

from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="FORMGATE_")

    # Public submission hardening
    submit_rate_limit_max: int = 10
    submit_rate_limit_window_ms: int = 60 * 1000
    embed_rate_limit_max: int = 60
    embed_rate_limit_window_ms: int = 60 * 1000
    max_payload_bytes: int = 64 * 1024

    # Rate limit store housekeeping
    rate_limit_sweep_interval_seconds: float = 5 * 60
    rate_limit_stale_after_ms: int = 5 * 60 * 1000

    # Notification delivery runs on a worker pool off the request path
    notify_max_workers: int = 4

    # Embed client
    embed_base_url: str = ""
    embed_timeout_seconds: float = 10.0


settings = Settings()
