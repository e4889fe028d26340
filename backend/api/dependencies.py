"""
Dependency injection for the API service.
Holds the process-wide service context (caches, health tracker, aggregator,
stream channel) and exposes it to route handlers.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field

from shared.config import Settings, get_settings
from shared.utils.cache import StaleStore, TieredCache
from shared.utils.rate_limiter import DomainRateLimiter

from aggregator.engine import Aggregator
from api.stream.channel import LiveUpdateChannel
from ingest.health import SourceHealthTracker
from ingest.registry import build_sources


@dataclass
class AppContext:
    """Explicitly owned state shared by every request in this process."""

    settings: Settings
    rate_limiter: DomainRateLimiter
    health: SourceHealthTracker
    cache: TieredCache
    stale: StaleStore
    aggregator: Aggregator
    channel: LiveUpdateChannel
    started_at: float = field(default_factory=time.monotonic)

    @property
    def uptime_s(self) -> float:
        return time.monotonic() - self.started_at


def build_context(settings: Settings | None = None) -> AppContext:
    """Wire the rate limiter, caches, health tracker, and sources together."""
    settings = settings or get_settings()
    rate_limiter = DomainRateLimiter(settings=settings)
    sources = build_sources(rate_limiter, settings)
    health = SourceHealthTracker(
        sources=[s.name for s in sources],
        down_threshold=settings.health_down_threshold,
    )
    cache = TieredCache(settings)
    stale = StaleStore(settings)
    aggregator = Aggregator(sources, health, cache, stale, settings)
    return AppContext(
        settings=settings,
        rate_limiter=rate_limiter,
        health=health,
        cache=cache,
        stale=stale,
        aggregator=aggregator,
        channel=LiveUpdateChannel(aggregator, settings),
    )


# Module-level singleton, initialized at startup
_context: AppContext | None = None


def init_dependencies(context: AppContext) -> None:
    """Initialize the module-level context. Called once at startup."""
    global _context
    _context = context


def get_context() -> AppContext:
    """FastAPI dependency: returns the shared AppContext."""
    if _context is None:
        raise RuntimeError("AppContext not initialized; call init_dependencies first")
    return _context


def get_aggregator() -> Aggregator:
    return get_context().aggregator


def get_channel() -> LiveUpdateChannel:
    return get_context().channel

