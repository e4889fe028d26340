"""Shared fixtures for the test suite."""
from __future__ import annotations

import pytest

from shared.config import Settings
from shared.utils.cache import StaleStore, TieredCache

from factories import FakeClock
from ingest.health import SourceHealthTracker


@pytest.fixture
def settings() -> Settings:
    """Defaults with metrics off and stream cadence shrunk to milliseconds."""
    return Settings(
        metrics_enabled=False,
        stream_live_interval_s=0.01,
        stream_pregame_interval_s=0.02,
        stream_idle_interval_s=0.03,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(settings: Settings, clock: FakeClock) -> TieredCache:
    return TieredCache(settings, clock=clock)


@pytest.fixture
def stale(settings: Settings, clock: FakeClock) -> StaleStore:
    return StaleStore(settings, clock=clock)


@pytest.fixture
def health() -> SourceHealthTracker:
    return SourceHealthTracker(sources=["mlb", "ncaa", "wbc"])
