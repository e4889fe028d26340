"""
Minor League Baseball source.
Same MLB Stats API and payloads as the major leagues, queried once per level
by sportId. Each level is its own league in the aggregation result.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

from shared.models.domain import Event, LeagueRef
from shared.utils.logging import get_logger

from ingest.sources.mlb import MLBStatsSource

logger = get_logger(__name__)


@dataclass(frozen=True)
class MiLBLevel:
    sport_id: int
    abbreviation: str
    # leagueId values for the standings endpoint
    league_ids: tuple[int, ...]
    league: LeagueRef


MILB_LEVELS: tuple[MiLBLevel, ...] = (
    MiLBLevel(11, "AAA", (117, 112), LeagueRef(id=11, name="Triple-A", country="USA")),
    MiLBLevel(12, "AA", (113, 111, 109), LeagueRef(id=12, name="Double-A", country="USA")),
    MiLBLevel(13, "A+", (116, 118, 126), LeagueRef(id=13, name="High-A", country="USA")),
    MiLBLevel(14, "A", (122, 123, 110), LeagueRef(id=14, name="Single-A", country="USA")),
)


class MiLBSource(MLBStatsSource):
    """Triple-A through Single-A; a level that fails is left out of the pass."""

    levels = MILB_LEVELS
    sport_id = ",".join(str(level.sport_id) for level in MILB_LEVELS)
    standings_league_ids = ",".join(str(i) for level in MILB_LEVELS for i in level.league_ids)

    async def fetch_events(self, date: str) -> list[Event]:
        """
        Fetch every level concurrently.

        Raises:
            The first level's error when every level failed; partial failures
            are logged and dropped.
        """
        results = await asyncio.gather(
            *(self._fetch_schedule(date, level.sport_id, level.league) for level in self.levels),
            return_exceptions=True,
        )
        events: list[Event] = []
        failures: list[Exception] = []
        for level, result in zip(self.levels, results):
            if isinstance(result, Exception):
                failures.append(result)
                logger.warning(
                    "milb_level_failed",
                    level=level.league.name,
                    date=date,
                    error=str(result),
                )
                continue
            if isinstance(result, BaseException):
                raise result
            events.extend(result)

        if failures and len(failures) == len(self.levels):
            raise failures[0]
        return events

    def _detail_league(self, game_data: dict[str, Any]) -> LeagueRef:
        sport_id = (game_data.get("teams", {}).get("home", {}).get("sport") or {}).get("id")
        for level in self.levels:
            if level.sport_id == sport_id:
                return level.league
        return self.league
