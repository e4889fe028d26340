"""
Central configuration for the Diamond Score service.
Uses pydantic-settings for env-based config with validation.
"""
from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    DEV = "dev"
    STAGING = "staging"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Root settings for the API, aggregator, and stream client."""

    model_config = SettingsConfigDict(
        env_prefix="DS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── General ──────────────────────────────────────────────
    environment: Environment = Environment.DEV
    debug: bool = False
    log_level: str = "INFO"
    instance_id: str = Field(default="", description="Unique pod/container ID for log context")

    # ── API ──────────────────────────────────────────────────
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_workers: int = 1
    cors_origins: list[str] = ["*"]

    # ── Sources ──────────────────────────────────────────────
    source_order: list[str] = Field(
        default=["mlb", "milb", "ncaa", "wbc"],
        description="Sources queried on every aggregation pass, in emission priority order.",
    )
    source_always_show: list[str] = Field(
        default=["mlb"],
        description="Sources emitted even when a successful fetch returns no games.",
    )
    source_request_timeout_s: float = 10.0
    source_retries: int = 2
    source_retry_base_delay_s: float = 0.5

    # ── Rate limiting ────────────────────────────────────────
    rate_limit_intervals_ms: dict[str, int] = Field(
        default={
            "statsapi.mlb.com": 100,
            "site.api.espn.com": 100,
        },
        description="Minimum milliseconds between requests per hostname.",
    )

    # ── Cache ────────────────────────────────────────────────
    cache_live_ttl_s: float = 30.0
    cache_standings_ttl_s: float = 300.0
    cache_rankings_ttl_s: float = 3600.0
    cache_schedule_ttl_s: float = 900.0
    cache_stale_ttl_s: float = 600.0
    cache_sweep_interval_s: float = 60.0

    # TTL for a source's events depending on whether any of them are live
    result_ttl_live_s: float = 30.0
    result_ttl_idle_s: float = 120.0

    # ── Live stream cadence ──────────────────────────────────
    stream_live_interval_s: float = 15.0
    stream_pregame_interval_s: float = 60.0
    stream_idle_interval_s: float = 300.0
    stream_pregame_window_s: float = 1800.0

    # ── Health ───────────────────────────────────────────────
    health_down_threshold: int = 3

    # ── Stream client ────────────────────────────────────────
    client_initial_backoff_s: float = 2.0
    client_max_backoff_s: float = 60.0
    client_poll_retry_s: float = 30.0
    client_push_enabled: bool = True

    # ── Observability ────────────────────────────────────────
    metrics_enabled: bool = True
    metrics_port: int = 9090


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Singleton access to validated settings."""
    return Settings()
