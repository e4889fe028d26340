"""
Unit tests for the aggregation pass: concurrency, partial failure, merge
policy, stale fallback, and result caching.

Run: pytest backend/tests/test_aggregator.py -v
"""
from __future__ import annotations

import asyncio

import pytest

from shared.config import Settings
from shared.errors import TransientFetchError, UnknownSourceError
from shared.models.domain import LeagueRef, RankedTeam, Rankings
from shared.models.enums import GameStatus, SourceStatus
from shared.utils.cache import StaleStore, TieredCache

from aggregator.engine import ERROR_DELAYED, ERROR_UNAVAILABLE, Aggregator
from factories import (
    DATE,
    DOUBLE_A,
    MLB,
    NCAA,
    TRIPLE_A,
    WBC,
    FakeClock,
    FakeSource,
    make_event,
    spec_for,
)
from ingest.health import SourceHealthTracker


@pytest.fixture
def mlb() -> FakeSource:
    return FakeSource(spec_for("mlb", MLB, 0), [make_event(1), make_event(2)])


@pytest.fixture
def ncaa() -> FakeSource:
    return FakeSource(
        spec_for("ncaa", NCAA, 10, default_collapsed=True, show_top25_filter=True),
        [make_event(3, league=NCAA)],
    )


@pytest.fixture
def wbc() -> FakeSource:
    return FakeSource(spec_for("wbc", WBC, 20), [make_event(4, league=WBC)])


@pytest.fixture
def aggregator(
    mlb: FakeSource,
    ncaa: FakeSource,
    wbc: FakeSource,
    health: SourceHealthTracker,
    cache: TieredCache,
    stale: StaleStore,
    settings: Settings,
) -> Aggregator:
    # Deliberately out of priority order
    return Aggregator([wbc, mlb, ncaa], health, cache, stale, settings)


def _by_name(result) -> dict[str, object]:
    return {league.name: league for league in result.leagues}


@pytest.mark.asyncio
async def test_all_sources_succeed_in_priority_order(aggregator: Aggregator) -> None:
    result = await aggregator.build_result(DATE)
    assert result.date == DATE
    assert [l.id for l in result.leagues] == [1, 16, 20]
    assert all(l.error is None and not l.stale for l in result.leagues)
    ncaa_group = result.leagues[1]
    assert ncaa_group.default_collapsed and ncaa_group.show_top25_filter


@pytest.mark.asyncio
async def test_one_failing_source_degrades_only_its_league(
    aggregator: Aggregator, ncaa: FakeSource, health: SourceHealthTracker
) -> None:
    ncaa.events = TransientFetchError("ncaa", "https://espn", 503)

    result = await aggregator.build_result(DATE)

    leagues = _by_name(result)
    assert len(leagues["MLB"].games) == 2
    assert len(leagues["World Baseball Classic"].games) == 1
    failed = leagues["College Baseball"]
    assert failed.error == ERROR_UNAVAILABLE
    assert failed.games == []
    assert failed.stale is False
    assert health.classify("ncaa") == SourceStatus.DEGRADED
    assert health.classify("mlb") == SourceStatus.HEALTHY


@pytest.mark.asyncio
async def test_every_source_failing_still_resolves(
    aggregator: Aggregator, mlb: FakeSource, ncaa: FakeSource, wbc: FakeSource
) -> None:
    for src in (mlb, ncaa, wbc):
        src.events = RuntimeError("down")
    result = await aggregator.build_result(DATE)
    assert [l.error for l in result.leagues] == [ERROR_UNAVAILABLE] * 3
    assert result.has_live is False


@pytest.mark.asyncio
async def test_sources_are_fetched_concurrently(
    health: SourceHealthTracker, cache: TieredCache, stale: StaleStore, settings: Settings
) -> None:
    started: list[str] = []
    gate = asyncio.Event()

    class Slow(FakeSource):
        async def fetch_events(self, date: str):
            started.append(self.name)
            await gate.wait()
            return []

    sources = [Slow(spec_for(n, MLB, i)) for i, n in enumerate(("a", "b", "c"))]
    agg = Aggregator(sources, health, cache, stale, settings)
    task = asyncio.create_task(agg.build_result(DATE))
    await asyncio.sleep(0.01)
    assert sorted(started) == ["a", "b", "c"]
    gate.set()
    await asyncio.wait_for(task, timeout=1.0)


@pytest.mark.asyncio
async def test_empty_success_is_omitted_unless_always_shown(
    health: SourceHealthTracker, cache: TieredCache, stale: StaleStore, settings: Settings
) -> None:
    shown = FakeSource(spec_for("mlb", MLB, 0, always_show=True), [])
    hidden = FakeSource(spec_for("ncaa", NCAA, 1), [])
    agg = Aggregator([shown, hidden], health, cache, stale, settings)

    result = await agg.build_result(DATE)

    assert [l.id for l in result.leagues] == [1]
    assert result.leagues[0].games == []
    assert result.leagues[0].error is None


@pytest.mark.asyncio
async def test_silent_failure_source_is_omitted(
    health: SourceHealthTracker, cache: TieredCache, stale: StaleStore, settings: Settings
) -> None:
    wbc = FakeSource(spec_for("wbc", WBC, 0, silent_failure=True), RuntimeError("offseason"))
    agg = Aggregator([wbc], health, cache, stale, settings)
    result = await agg.build_result(DATE)
    assert result.leagues == []
    assert health.classify("wbc") == SourceStatus.DEGRADED


@pytest.mark.asyncio
async def test_stale_games_substituted_after_primary_cache_expires(
    aggregator: Aggregator, mlb: FakeSource, clock: FakeClock
) -> None:
    seeded = await aggregator.build_result(DATE)
    seeded_mlb = seeded.leagues[0].games

    mlb.events = TransientFetchError("mlb", "https://statsapi.mlb.com", 500)
    clock.advance(121)  # past the idle result TTL, inside the stale TTL

    result = await aggregator.build_result(DATE)

    mlb_group = result.leagues[0]
    assert mlb_group.stale is True
    assert mlb_group.error == ERROR_DELAYED
    assert mlb_group.games == seeded_mlb


@pytest.mark.asyncio
async def test_stale_fallback_expires(
    aggregator: Aggregator, mlb: FakeSource, clock: FakeClock
) -> None:
    await aggregator.build_result(DATE)
    mlb.events = RuntimeError("down")
    clock.advance(601)
    result = await aggregator.build_result(DATE)
    assert result.leagues[0].stale is False
    assert result.leagues[0].error == ERROR_UNAVAILABLE


@pytest.mark.asyncio
async def test_stale_is_per_date(aggregator: Aggregator, mlb: FakeSource) -> None:
    await aggregator.build_result(DATE)
    mlb.events = RuntimeError("down")
    result = await aggregator.build_result("2026-04-11")
    assert result.leagues[0].error == ERROR_UNAVAILABLE
    assert result.leagues[0].games == []


@pytest.mark.asyncio
async def test_failed_source_does_not_overwrite_its_stale_entry(
    aggregator: Aggregator, mlb: FakeSource, stale: StaleStore, clock: FakeClock
) -> None:
    await aggregator.build_result(DATE)
    mlb.events = RuntimeError("down")
    clock.advance(121)
    await aggregator.build_result(DATE)
    kept = stale.get("mlb", DATE)
    assert kept is not None
    assert [g.id for g in kept.games] == ["1", "2"]


@pytest.mark.asyncio
async def test_result_cache_hit_skips_fetch(aggregator: Aggregator, mlb: FakeSource) -> None:
    await aggregator.build_result(DATE)
    await aggregator.build_result(DATE)
    assert mlb.calls == 1


@pytest.mark.asyncio
async def test_live_games_shorten_result_ttl(
    aggregator: Aggregator, mlb: FakeSource, clock: FakeClock
) -> None:
    mlb.events = [make_event(1, status=GameStatus.LIVE, inning=3)]
    await aggregator.build_result(DATE)
    clock.advance(31)
    await aggregator.build_result(DATE)
    assert mlb.calls == 2


@pytest.mark.asyncio
async def test_has_live_reflects_all_games(aggregator: Aggregator, wbc: FakeSource) -> None:
    assert (await aggregator.build_result(DATE)).has_live is False
    wbc.events = [make_event(4, league=WBC, status=GameStatus.LIVE)]
    assert (await aggregator.build_result("2026-04-12")).has_live is True


@pytest.mark.asyncio
async def test_detail_for_unknown_source_raises(aggregator: Aggregator) -> None:
    with pytest.raises(UnknownSourceError):
        await aggregator.fetch_event_detail("kbo", "1")


@pytest.mark.asyncio
async def test_standings_unsupported_by_source(aggregator: Aggregator) -> None:
    with pytest.raises(NotImplementedError):
        await aggregator.fetch_standings("ncaa", 2026)


# ── Multi-league sources ────────────────────────────────────────────────

@pytest.fixture
def milb() -> FakeSource:
    spec = spec_for(
        "milb",
        LeagueRef(id=10, name="Minor League Baseball"),
        5,
        silent_failure=True,
        default_collapsed=True,
        sub_leagues=(TRIPLE_A, DOUBLE_A),
    )
    return FakeSource(spec, [make_event(5, league=DOUBLE_A), make_event(6, league=TRIPLE_A)])


@pytest.fixture
def with_milb(
    aggregator: Aggregator,
    milb: FakeSource,
    health: SourceHealthTracker,
    cache: TieredCache,
    stale: StaleStore,
    settings: Settings,
) -> Aggregator:
    return Aggregator([*aggregator.sources, milb], health, cache, stale, settings)


@pytest.mark.asyncio
async def test_multi_league_source_emits_one_group_per_league_with_games(
    with_milb: Aggregator, milb: FakeSource
) -> None:
    milb.events = [*milb.events, make_event(7, league=TRIPLE_A)]
    result = await with_milb.build_result(DATE)

    assert [l.id for l in result.leagues] == [1, 11, 12, 16, 20]
    triple_a, double_a = result.leagues[1], result.leagues[2]
    assert triple_a.name == "Triple-A"
    assert [g.id for g in triple_a.games] == ["6", "7"]
    assert [g.id for g in double_a.games] == ["5"]
    assert triple_a.default_collapsed and double_a.default_collapsed


@pytest.mark.asyncio
async def test_multi_league_source_skips_leagues_without_games(
    with_milb: Aggregator, milb: FakeSource
) -> None:
    milb.events = [make_event(5, league=DOUBLE_A)]
    result = await with_milb.build_result(DATE)
    assert [l.id for l in result.leagues] == [1, 12, 16, 20]


@pytest.mark.asyncio
async def test_multi_league_failure_is_silent_then_stale_per_league(
    with_milb: Aggregator, milb: FakeSource, clock: FakeClock
) -> None:
    milb.events = RuntimeError("statsapi down")
    result = await with_milb.build_result(DATE)
    assert [l.id for l in result.leagues] == [1, 16, 20]

    milb.events = [make_event(5, league=DOUBLE_A), make_event(6, league=TRIPLE_A)]
    await with_milb.build_result("2026-04-11")
    milb.events = RuntimeError("statsapi down")
    clock.advance(121)
    result = await with_milb.build_result("2026-04-11")

    minors = [l for l in result.leagues if l.id in (11, 12)]
    assert [l.id for l in minors] == [11, 12]
    assert all(l.stale and l.error == ERROR_DELAYED for l in minors)


# ── Rankings ────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_rankings_are_cached(aggregator: Aggregator, ncaa: FakeSource, clock: FakeClock) -> None:
    ncaa.rankings = Rankings(
        poll_name="Top 25",
        teams=[RankedTeam(rank=1, id=126, display_name="LSU Tigers")],
    )
    first = await aggregator.fetch_rankings("ncaa")
    clock.advance(1800)
    second = await aggregator.fetch_rankings("ncaa")
    assert first.poll_name == second.poll_name == "Top 25"
    assert ncaa.ranking_calls == 1

    clock.advance(1801)
    await aggregator.fetch_rankings("ncaa")
    assert ncaa.ranking_calls == 2


@pytest.mark.asyncio
async def test_empty_rankings_are_not_cached(aggregator: Aggregator, ncaa: FakeSource) -> None:
    ncaa.rankings = Rankings()
    assert (await aggregator.fetch_rankings("ncaa")).teams == []
    await aggregator.fetch_rankings("ncaa")
    assert ncaa.ranking_calls == 2


@pytest.mark.asyncio
async def test_rankings_unsupported_by_source(aggregator: Aggregator) -> None:
    with pytest.raises(NotImplementedError):
        await aggregator.fetch_rankings("mlb")
    with pytest.raises(UnknownSourceError):
        await aggregator.fetch_rankings("kbo")
