"""
Unit tests for the live update channel: snapshot diffing, init/update/ping
sequencing, tick failure handling, and cancellation.

Run: pytest backend/tests/test_stream_channel.py -v
"""
from __future__ import annotations

import asyncio
import json
from typing import Union
from unittest.mock import MagicMock

import pytest

from shared.config import Settings
from shared.models.domain import AggregationResult, LeagueGroup
from shared.models.enums import GameStatus, InningHalf, StreamMsgType

from api.stream.channel import ConnectionSnapshot, LiveUpdateChannel, format_sse
from factories import DATE, NCAA, make_event


def _result(*games) -> AggregationResult:
    return AggregationResult.build(DATE, [LeagueGroup(id=1, name="MLB", games=list(games))])


class ScriptedAggregator:
    """Returns queued results (or raises queued exceptions) per build_result call."""

    def __init__(self, *steps: Union[AggregationResult, BaseException]) -> None:
        self.steps = list(steps)
        self.calls = 0

    async def build_result(self, date: str) -> AggregationResult:
        self.calls += 1
        step = self.steps[min(self.calls - 1, len(self.steps) - 1)]
        if isinstance(step, BaseException):
            raise step
        return step


async def _take(channel: LiveUpdateChannel, n: int):
    conn = channel.open(DATE)
    messages = []
    gen = channel.messages(conn)
    async for msg in gen:
        messages.append(msg)
        if len(messages) == n:
            break
    await gen.aclose()
    return conn, messages


# ── ConnectionSnapshot ──────────────────────────────────────────────────

def test_diff_reports_only_changed_game() -> None:
    games = [make_event(i, home_score=1) for i in range(1, 10)]
    snap = ConnectionSnapshot.from_result(_result(*games))
    games[6] = make_event(7, home_score=2)

    changed = snap.diff(_result(*games))

    assert [g.id for g in changed] == ["7"]
    assert snap.diff(_result(*games)) == []


def test_diff_ignores_non_volatile_fields() -> None:
    snap = ConnectionSnapshot.from_result(_result(make_event(1)))
    renamed = make_event(1, tv_networks=["MLB.TV"], home_hits=9)
    assert snap.diff(_result(renamed)) == []


@pytest.mark.parametrize(
    "changes",
    [
        {"away_score": 3},
        {"status": GameStatus.LIVE},
        {"inning": 4},
        {"inning_half": InningHalf.BOTTOM},
        {"outs": 2},
    ],
)
def test_diff_detects_each_volatile_field(changes: dict) -> None:
    snap = ConnectionSnapshot.from_result(_result(make_event(1)))
    assert len(snap.diff(_result(make_event(1, **changes)))) == 1


def test_same_id_in_different_leagues_is_tracked_separately() -> None:
    snap = ConnectionSnapshot.from_result(_result(make_event(5), make_event(5, league=NCAA)))
    assert len(snap) == 2
    changed = snap.diff(_result(make_event(5), make_event(5, league=NCAA, home_score=1)))
    assert [g.league.id for g in changed] == [16]


def test_new_game_counts_as_changed() -> None:
    snap = ConnectionSnapshot.from_result(_result(make_event(1)))
    changed = snap.diff(_result(make_event(1), make_event(2)))
    assert [g.id for g in changed] == ["2"]


# ── Framing ─────────────────────────────────────────────────────────────

def test_format_sse_frame() -> None:
    frame = format_sse(StreamMsgType.PING, {"ts": 1})
    assert frame == 'event: ping\ndata: {"ts":1}\n\n'


# ── Message loop ────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_init_carries_full_result(settings: Settings) -> None:
    first = _result(make_event(1), make_event(2))
    channel = LiveUpdateChannel(ScriptedAggregator(first), settings)

    _, messages = await _take(channel, 1)

    assert messages[0].type == StreamMsgType.INIT
    assert messages[0].data == first.to_wire()
    assert set(messages[0].data) == {"date", "leagues", "hasLive"}


@pytest.mark.asyncio
async def test_update_contains_exactly_changed_games(settings: Settings) -> None:
    before = _result(make_event(6), make_event(7, home_score=1, status=GameStatus.LIVE))
    after = _result(make_event(6), make_event(7, home_score=2, status=GameStatus.LIVE))
    channel = LiveUpdateChannel(ScriptedAggregator(before, after), settings)

    _, messages = await _take(channel, 2)

    update = messages[1]
    assert update.type == StreamMsgType.UPDATE
    assert [g["id"] for g in update.data["games"]] == ["7"]
    assert update.data["games"][0]["homeScore"] == 2
    assert update.data["hasLive"] is True


@pytest.mark.asyncio
async def test_no_change_sends_ping(settings: Settings) -> None:
    same = _result(make_event(1))
    channel = LiveUpdateChannel(ScriptedAggregator(same), settings)

    _, messages = await _take(channel, 3)

    assert [m.type for m in messages] == [StreamMsgType.INIT, StreamMsgType.PING, StreamMsgType.PING]
    assert isinstance(messages[1].data["ts"], int)


@pytest.mark.asyncio
async def test_tick_exception_becomes_ping_and_stream_continues(settings: Settings) -> None:
    first = _result(make_event(1))
    changed = _result(make_event(1, home_score=5))
    agg = ScriptedAggregator(first, RuntimeError("upstream exploded"), changed)
    channel = LiveUpdateChannel(agg, settings)

    _, messages = await _take(channel, 3)

    assert [m.type for m in messages] == [
        StreamMsgType.INIT,
        StreamMsgType.PING,
        StreamMsgType.UPDATE,
    ]


@pytest.mark.asyncio
async def test_snapshot_updated_after_update(settings: Settings) -> None:
    first = _result(make_event(1))
    changed = _result(make_event(1, home_score=5))
    channel = LiveUpdateChannel(ScriptedAggregator(first, changed), settings)

    _, messages = await _take(channel, 3)

    assert [m.type for m in messages] == [
        StreamMsgType.INIT,
        StreamMsgType.UPDATE,
        StreamMsgType.PING,
    ]


@pytest.mark.asyncio
async def test_cancel_stops_loop_without_further_messages(settings: Settings) -> None:
    settings = settings.model_copy(update={"stream_idle_interval_s": 30.0})
    channel = LiveUpdateChannel(ScriptedAggregator(_result(make_event(1))), settings)
    conn = channel.open(DATE)
    gen = channel.messages(conn)

    init = await gen.__anext__()
    assert init.type == StreamMsgType.INIT

    pending = asyncio.ensure_future(gen.__anext__())
    await asyncio.sleep(0.01)
    conn.cancel()
    with pytest.raises(StopAsyncIteration):
        await asyncio.wait_for(pending, timeout=1.0)
    assert channel.connection_count == 0


@pytest.mark.asyncio
async def test_in_flight_tick_does_not_emit_after_cancel(settings: Settings) -> None:
    gate = asyncio.Event()
    first = _result(make_event(1))

    class SlowAggregator(ScriptedAggregator):
        async def build_result(self, date: str) -> AggregationResult:
            self.calls += 1
            if self.calls > 1:
                await gate.wait()
                return _result(make_event(1, home_score=9))
            return first

    agg = SlowAggregator()
    channel = LiveUpdateChannel(agg, settings)
    conn = channel.open(DATE)
    gen = channel.messages(conn)
    await gen.__anext__()

    pending = asyncio.ensure_future(gen.__anext__())
    while agg.calls < 2:
        await asyncio.sleep(0.005)
    conn.cancel()
    gate.set()

    with pytest.raises(StopAsyncIteration):
        await asyncio.wait_for(pending, timeout=1.0)


@pytest.mark.asyncio
async def test_stop_cancels_every_connection(settings: Settings) -> None:
    channel = LiveUpdateChannel(ScriptedAggregator(_result()), settings)
    conns = [channel.open(DATE) for _ in range(3)]
    assert channel.connection_count == 3

    await channel.stop()

    assert channel.connection_count == 0
    assert all(c.cancelled for c in conns)


@pytest.mark.asyncio
async def test_cadence_uses_latest_result(settings: Settings) -> None:
    agg = ScriptedAggregator(_result(make_event(1, status=GameStatus.LIVE)))
    channel = LiveUpdateChannel(agg, settings)
    channel._cadence = MagicMock(wraps=channel._cadence)

    await _take(channel, 3)

    live_flags = [call.args[0].has_live for call in channel._cadence.compute_interval.call_args_list]
    assert live_flags and all(live_flags)


def test_encoded_message_is_parseable() -> None:
    frame = format_sse("update", {"games": [], "hasLive": False})
    event_line, data_line, _, _ = frame.split("\n")
    assert event_line == "event: update"
    assert json.loads(data_line[len("data: "):]) == {"games": [], "hasLive": False}
