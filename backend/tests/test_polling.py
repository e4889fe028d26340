"""
Unit tests for adaptive refresh cadence.

Run: pytest backend/tests/test_polling.py -v
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from shared.config import Settings
from shared.models.domain import AggregationResult, LeagueGroup
from shared.models.enums import GameStatus

from factories import DATE, make_event
from scheduler.engine.polling import AdaptiveCadence, compute_interval, is_imminent

NOW = datetime(2026, 4, 10, 22, 0, tzinfo=timezone.utc)


def _result(*games) -> AggregationResult:
    return AggregationResult.build(DATE, [LeagueGroup(id=1, name="MLB", games=list(games))])


@pytest.fixture
def cadence() -> AdaptiveCadence:
    return AdaptiveCadence(Settings())


def test_live_game_gives_live_interval(cadence: AdaptiveCadence) -> None:
    result = _result(
        make_event(1, status=GameStatus.LIVE),
        make_event(2, status=GameStatus.SCHEDULED, scheduled_time=NOW + timedelta(minutes=10)),
    )
    assert cadence.compute_interval(result, NOW) == 15


def test_imminent_game_gives_pregame_interval(cadence: AdaptiveCadence) -> None:
    result = _result(
        make_event(1, status=GameStatus.FINAL),
        make_event(2, status=GameStatus.SCHEDULED, scheduled_time=NOW + timedelta(minutes=30)),
    )
    assert cadence.compute_interval(result, NOW) == 60


def test_nothing_soon_gives_idle_interval(cadence: AdaptiveCadence) -> None:
    result = _result(
        make_event(1, status=GameStatus.SCHEDULED, scheduled_time=NOW + timedelta(minutes=31)),
    )
    assert cadence.compute_interval(result, NOW) == 300


def test_empty_result_is_idle(cadence: AdaptiveCadence) -> None:
    assert cadence.compute_interval(AggregationResult.build(DATE, []), NOW) == 300


@pytest.mark.parametrize(
    "offset_min, status, expected",
    [
        (10, GameStatus.SCHEDULED, True),
        (30, GameStatus.SCHEDULED, True),
        (30.5, GameStatus.SCHEDULED, False),
        (0, GameStatus.SCHEDULED, False),
        (-5, GameStatus.SCHEDULED, False),
        (10, GameStatus.DELAYED, False),
        (10, GameStatus.POSTPONED, False),
    ],
)
def test_is_imminent(offset_min: float, status: GameStatus, expected: bool) -> None:
    event = make_event(1, status=status, scheduled_time=NOW + timedelta(minutes=offset_min))
    assert is_imminent(event, NOW, 1800) is expected


def test_naive_scheduled_time_is_treated_as_utc() -> None:
    event = make_event(
        1,
        status=GameStatus.SCHEDULED,
        scheduled_time=datetime(2026, 4, 10, 22, 20),
    )
    assert is_imminent(event, NOW, 1800) is True


def test_intervals_follow_settings() -> None:
    settings = Settings(stream_live_interval_s=5, stream_idle_interval_s=90)
    live = _result(make_event(1, status=GameStatus.LIVE))
    idle = _result(make_event(1, status=GameStatus.FINAL))
    assert compute_interval(live, NOW, settings) == 5
    assert compute_interval(idle, NOW, settings) == 90
