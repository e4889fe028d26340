"""
Adaptive refresh cadence for live-stream ticks and client polling.

    any live game                      -> live interval     (15s)
    a scheduled game starts within 30m -> pregame interval  (60s)
    otherwise                          -> idle interval     (300s)
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from shared.config import Settings, get_settings
from shared.models.domain import AggregationResult, Event
from shared.models.enums import GameStatus
from shared.utils.logging import get_logger

logger = get_logger(__name__)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_imminent(event: Event, now: datetime, window_s: float) -> bool:
    """True when a scheduled event starts within the next window_s seconds."""
    if event.status != GameStatus.SCHEDULED:
        return False
    until_start = (_as_utc(event.scheduled_time) - _as_utc(now)).total_seconds()
    return 0 < until_start <= window_s


class AdaptiveCadence:
    """Picks the delay before the next refresh from the latest result."""

    def __init__(self, settings: Settings | None = None) -> None:
        s = settings or get_settings()
        self.live_interval_s = s.stream_live_interval_s
        self.pregame_interval_s = s.stream_pregame_interval_s
        self.idle_interval_s = s.stream_idle_interval_s
        self.pregame_window_s = s.stream_pregame_window_s

    def compute_interval(
        self,
        result: AggregationResult,
        now: Optional[datetime] = None,
    ) -> float:
        if result.has_live:
            return self.live_interval_s
        now = now or datetime.now(timezone.utc)
        if any(is_imminent(game, now, self.pregame_window_s) for game in result.iter_games()):
            return self.pregame_interval_s
        return self.idle_interval_s


def compute_interval(
    result: AggregationResult,
    now: Optional[datetime] = None,
    settings: Settings | None = None,
) -> float:
    """Module-level shortcut for AdaptiveCadence(settings).compute_interval."""
    return AdaptiveCadence(settings).compute_interval(result, now)
