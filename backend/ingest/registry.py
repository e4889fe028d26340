"""
Source registry.
Maps source names to their league metadata and merge policy, and builds the
adapters enabled by settings.
"""
from __future__ import annotations

import dataclasses

from shared.config import Settings, get_settings
from shared.models.domain import LeagueRef
from shared.utils.http_client import SourceHTTPClient
from shared.utils.logging import get_logger
from shared.utils.rate_limiter import DomainRateLimiter

from ingest.sources.base import SourceAdapter, SourceSpec
from ingest.sources.espn import ESPNScoreboardSource
from ingest.sources.milb import MILB_LEVELS, MiLBSource
from ingest.sources.mlb import MLBStatsSource

logger = get_logger(__name__)

MLB_LEAGUE = LeagueRef(id=1, name="MLB", country="USA", logo_url="/logos/mlb.svg")
MILB_LEAGUE = LeagueRef(id=10, name="Minor League Baseball", country="USA")
NCAA_LEAGUE = LeagueRef(id=16, name="College Baseball", country="USA")
WBC_LEAGUE = LeagueRef(id=20, name="World Baseball Classic", country="International")

SOURCE_SPECS: dict[str, SourceSpec] = {
    "mlb": SourceSpec(name="mlb", league=MLB_LEAGUE, priority=0),
    # Supplementary: one group per level with games, nothing when down
    "milb": SourceSpec(
        name="milb",
        league=MILB_LEAGUE,
        priority=5,
        silent_failure=True,
        default_collapsed=True,
        sub_leagues=tuple(level.league for level in MILB_LEVELS),
    ),
    "ncaa": SourceSpec(
        name="ncaa",
        league=NCAA_LEAGUE,
        priority=10,
        default_collapsed=True,
        show_top25_filter=True,
    ),
    # Periodic tournament: no error card when it is out of season
    "wbc": SourceSpec(name="wbc", league=WBC_LEAGUE, priority=20, silent_failure=True),
}

ESPN_LEAGUE_PATHS: dict[str, tuple[str, int, bool]] = {
    # source -> (ESPN league path, scoreboard limit, publishes a poll)
    "ncaa": ("baseball/college-baseball", 500, True),
    "wbc": ("baseball/wbc", 100, False),
}


def resolve_spec(name: str, settings: Settings) -> SourceSpec:
    spec = SOURCE_SPECS[name]
    return dataclasses.replace(spec, always_show=name in settings.source_always_show)


def build_adapter(
    name: str,
    rate_limiter: DomainRateLimiter,
    settings: Settings | None = None,
) -> SourceAdapter:
    """Create the adapter for a registered source name."""
    settings = settings or get_settings()
    spec = resolve_spec(name, settings)
    http = SourceHTTPClient(name, rate_limiter, settings=settings)
    if name == "mlb":
        return MLBStatsSource(spec, http)
    if name == "milb":
        return MiLBSource(spec, http)
    if name in ESPN_LEAGUE_PATHS:
        path, limit, rankings = ESPN_LEAGUE_PATHS[name]
        return ESPNScoreboardSource(spec, http, league_path=path, limit=limit, rankings=rankings)
    raise KeyError(f"No adapter registered for source {name!r}")


def build_sources(
    rate_limiter: DomainRateLimiter,
    settings: Settings | None = None,
) -> list[SourceAdapter]:
    """Build every enabled adapter, ordered by emission priority."""
    settings = settings or get_settings()
    adapters: list[SourceAdapter] = []
    for name in settings.source_order:
        if name not in SOURCE_SPECS:
            logger.warning("unknown_source_skipped", source=name)
            continue
        adapters.append(build_adapter(name, rate_limiter, settings))
    adapters.sort(key=lambda a: a.spec.priority)
    logger.info("sources_registered", sources=[a.name for a in adapters])
    return adapters
