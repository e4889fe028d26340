"""
Abstract base class for upstream score sources.
Defines the contract every source adapter implements and the registry
metadata that controls how its results are merged.
"""
from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import Optional

from shared.models.domain import Event, EventDetail, LeagueGroup, LeagueRef, Rankings, Standing
from shared.utils.http_client import SourceHTTPClient
from shared.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class SourceSpec:
    """
    Registry entry for one source.

    always_show: emit the league even when a successful fetch returns no games.
    silent_failure: on failure without stale data, omit the league instead of
        emitting an error group (supplementary or seasonal sources).
    priority: emission order in the aggregation result, ascending.
    sub_leagues: for sources spanning several leagues, the groups to split
        games into, in emission order. Each event's league picks its group and
        only groups with games are emitted.
    """
    name: str
    league: LeagueRef
    priority: int
    always_show: bool = False
    silent_failure: bool = False
    default_collapsed: bool = False
    show_top25_filter: bool = False
    sub_leagues: tuple[LeagueRef, ...] = ()

    def group(
        self,
        games: list[Event],
        *,
        league: Optional[LeagueRef] = None,
        error: Optional[str] = None,
        stale: bool = False,
    ) -> LeagueGroup:
        league = league or self.league
        return LeagueGroup(
            id=league.id,
            name=league.name,
            country=league.country,
            logo_url=league.logo_url,
            games=games,
            default_collapsed=self.default_collapsed,
            show_top25_filter=self.show_top25_filter,
            error=error,
            stale=stale,
        )

    def groups(
        self,
        games: list[Event],
        *,
        error: Optional[str] = None,
        stale: bool = False,
    ) -> list[LeagueGroup]:
        """Split games into the groups this source emits."""
        if not self.sub_leagues:
            return [self.group(games, error=error, stale=stale)]
        by_league: dict[int, list[Event]] = {}
        for game in games:
            by_league.setdefault(game.league.id, []).append(game)
        return [
            self.group(by_league[league.id], league=league, error=error, stale=stale)
            for league in self.sub_leagues
            if league.id in by_league
        ]


class SourceAdapter(abc.ABC):
    """
    Base class for source adapters.

    Each adapter fetches and normalizes one provider's events. fetch_events
    and fetch_event_detail may raise; the aggregator contains the failure.
    Payload-shape problems are handled inside the adapter and yield an
    empty result.
    """

    def __init__(self, spec: SourceSpec, http_client: SourceHTTPClient) -> None:
        self._spec = spec
        self._http = http_client

    @property
    def name(self) -> str:
        return self._spec.name

    @property
    def spec(self) -> SourceSpec:
        return self._spec

    @property
    def league(self) -> LeagueRef:
        return self._spec.league

    @property
    @abc.abstractmethod
    def base_url(self) -> str:
        """Base URL; its host is the rate-limit domain."""
        ...

    async def start(self) -> None:
        """Initialize the source HTTP client."""
        await self._http.start()

    async def close(self) -> None:
        """Shutdown the source HTTP client."""
        await self._http.close()

    @abc.abstractmethod
    async def fetch_events(self, date: str) -> list[Event]:
        """Fetch all events for a YYYY-MM-DD date."""
        ...

    @abc.abstractmethod
    async def fetch_event_detail(self, event_id: str) -> EventDetail:
        """Fetch one event with its detailed feed."""
        ...

    async def fetch_standings(self, season: int) -> list[Standing]:
        raise NotImplementedError(f"{self.name} does not provide standings")

    async def fetch_game_days(self, month: str) -> list[str]:
        raise NotImplementedError(f"{self.name} does not provide a schedule calendar")

    async def fetch_rankings(self) -> Rankings:
        raise NotImplementedError(f"{self.name} does not publish rankings")
