"""
Aggregation engine.

One pass fans out to every registered source concurrently and joins once all
of them have settled. A failing source is contained at its own slot and turns
into a degraded league group; the pass itself never fails because of a
source.

Merge policy per source, emitted in fixed priority order:
    success, games        -> league group (one per sub-league with games
                             for multi-league sources)
    success, no games     -> group only when the source is always shown
    failure, stale games  -> stale games, stale=True, softened error
    failure, no stale     -> error group with empty games, or nothing for
                             silent-failure sources
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Iterable, Optional

from shared.config import Settings, get_settings
from shared.errors import UnknownSourceError
from shared.models.domain import (
    AggregationResult,
    Event,
    EventDetail,
    LeagueGroup,
    Rankings,
    Standing,
)
from shared.utils.cache import StaleStore, TieredCache
from shared.utils.logging import elapsed_ms, get_logger
from shared.utils.metrics import (
    AGGREGATION_DURATION,
    SOURCE_FETCHES,
    SOURCE_LATENCY,
    STALE_SUBSTITUTIONS,
    atrack_latency,
)

from ingest.health import SourceHealthTracker
from ingest.sources.base import SourceAdapter, SourceSpec

logger = get_logger(__name__)

ERROR_UNAVAILABLE = "Data temporarily unavailable"
ERROR_DELAYED = "Data may be delayed"


@dataclass
class SourceOutcome:
    """Settled result of one source slot in an aggregation pass."""
    source: str
    ok: bool
    games: list[Event] = field(default_factory=list)
    error: Optional[str] = None
    cached: bool = False


class Aggregator:
    """Builds AggregationResults from a fixed set of source adapters."""

    def __init__(
        self,
        sources: Iterable[SourceAdapter],
        health: SourceHealthTracker,
        cache: TieredCache,
        stale: StaleStore,
        settings: Settings | None = None,
    ) -> None:
        self._sources = sorted(sources, key=lambda s: s.spec.priority)
        self._by_name = {s.name: s for s in self._sources}
        self._health = health
        self._cache = cache
        self._stale = stale
        self._settings = settings or get_settings()

    @property
    def sources(self) -> list[SourceAdapter]:
        return list(self._sources)

    def source(self, name: str) -> SourceAdapter:
        adapter = self._by_name.get(name)
        if adapter is None:
            raise UnknownSourceError(name)
        return adapter

    async def start(self) -> None:
        for adapter in self._sources:
            await adapter.start()

    async def close(self) -> None:
        for adapter in self._sources:
            await adapter.close()

    # ── Aggregation pass ──────────────────────────────────────────────

    async def build_result(self, date: str) -> AggregationResult:
        """Fetch every source for date and merge into one result."""
        start = time.perf_counter()
        async with atrack_latency(AGGREGATION_DURATION):
            outcomes = await asyncio.gather(
                *(self._fetch_source(adapter, date) for adapter in self._sources)
            )

        leagues: list[LeagueGroup] = []
        for adapter, outcome in zip(self._sources, outcomes):
            leagues.extend(self._merge(adapter.spec, outcome, date))

        if any(o.ok for o in outcomes):
            for adapter, outcome in zip(self._sources, outcomes):
                if outcome.ok:
                    self._stale.put(adapter.name, date, adapter.spec.group(outcome.games))

        result = AggregationResult.build(date, leagues)
        logger.info(
            "aggregation_complete",
            date=date,
            duration_ms=elapsed_ms(start),
            league_count=len(leagues),
            failed=[o.source for o in outcomes if not o.ok],
            has_live=result.has_live,
        )
        return result

    async def _fetch_source(self, adapter: SourceAdapter, date: str) -> SourceOutcome:
        name = adapter.name
        cache_key = f"events:{name}:{date}"
        cached = self._cache.live.get(cache_key)
        if cached is not None:
            SOURCE_FETCHES.labels(source=name, outcome="cached").inc()
            return SourceOutcome(source=name, ok=True, games=cached, cached=True)

        start = time.perf_counter()
        try:
            async with atrack_latency(SOURCE_LATENCY, source=name):
                games = await adapter.fetch_events(date)
        except Exception as exc:
            self._health.record_failure(name, exc)
            SOURCE_FETCHES.labels(source=name, outcome="failure").inc()
            logger.error(
                "source_fetch_error",
                source=name,
                date=date,
                duration_ms=elapsed_ms(start),
                error=str(exc),
            )
            return SourceOutcome(source=name, ok=False, error=str(exc))

        self._health.record_success(name)
        SOURCE_FETCHES.labels(source=name, outcome="success").inc()
        has_live = any(g.is_live for g in games)
        ttl = self._settings.result_ttl_live_s if has_live else self._settings.result_ttl_idle_s
        self._cache.live.set(cache_key, games, ttl_s=ttl)
        logger.info(
            "source_fetch_ok",
            source=name,
            date=date,
            duration_ms=elapsed_ms(start),
            games=len(games),
        )
        return SourceOutcome(source=name, ok=True, games=games)

    def _merge(self, spec: SourceSpec, outcome: SourceOutcome, date: str) -> list[LeagueGroup]:
        if outcome.ok:
            if outcome.games or spec.always_show:
                return spec.groups(outcome.games)
            return []

        previous = self._stale.get(spec.name, date)
        if previous is not None and previous.games:
            STALE_SUBSTITUTIONS.labels(source=spec.name).inc()
            logger.warning("stale_data_served", source=spec.name, date=date, games=len(previous.games))
            return spec.groups(previous.games, error=ERROR_DELAYED, stale=True)
        if spec.silent_failure:
            return []
        return [spec.group([], error=ERROR_UNAVAILABLE)]

    # ── Pass-through reads ────────────────────────────────────────────

    async def fetch_event_detail(self, source: str, event_id: str) -> EventDetail:
        """Single game detail; 30s cache while live, longer once settled."""
        adapter = self.source(source)
        key = f"detail:{source}:{event_id}"
        cached = self._cache.live.get(key)
        if cached is not None:
            return cached
        detail = await adapter.fetch_event_detail(event_id)
        ttl = None if detail.is_live else self._settings.cache_standings_ttl_s
        self._cache.live.set(key, detail, ttl_s=ttl)
        return detail

    async def fetch_standings(self, source: str, season: int) -> list[Standing]:
        adapter = self.source(source)
        key = f"standings:{source}:{season}"
        cached = self._cache.standings.get(key)
        if cached is not None:
            return cached
        standings = await adapter.fetch_standings(season)
        self._cache.standings.set(key, standings)
        return standings

    async def fetch_game_days(self, source: str, month: str) -> list[str]:
        adapter = self.source(source)
        key = f"game-days:{source}:{month}"
        cached = self._cache.schedule.get(key)
        if cached is not None:
            return cached
        dates = await adapter.fetch_game_days(month)
        self._cache.schedule.set(key, dates)
        return dates

    async def fetch_rankings(self, source: str) -> Rankings:
        """Current poll; published weekly, so cached for an hour once non-empty."""
        adapter = self.source(source)
        key = f"rankings:{source}"
        cached = self._cache.standings.get(key)
        if cached is not None:
            return cached
        rankings = await adapter.fetch_rankings()
        if rankings.teams:
            self._cache.standings.set(key, rankings, ttl_s=self._settings.cache_rankings_ttl_s)
        return rankings
