"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "catalog-history"
    debug: bool = False
    log_level: str = "INFO"

    # Durable store: unset means the in-memory store
    database_url: str | None = None

    # Change capture
    system_actor: str = "system"
    capture_retry_attempts: int = 3
    capture_retry_delay_seconds: float = 0.05

    # Audit query bounds
    audit_query_default_limit: int = 50
    audit_query_max_limit: int = 1000

    # Reconstruction
    reconstruction_event_limit: int = 1000
    strict_decoding: bool = False

    # Trend reporting
    report_timezone: str = "UTC"
    trend_default_weeks: int = 12
    trend_max_weeks: int = 104
    aggregation_concurrency: int = 16
    trend_timeout_seconds: float | None = None

    model_config = {"env_prefix": "CATALOG_HISTORY_"}


settings = Settings()
