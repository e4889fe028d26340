"""
Pydantic v2 domain models shared across the Diamond Score service.
These are the canonical wire/internal representations. Field names are
snake_case in Python and camelCase on the wire.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Iterator, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from shared.models.enums import GameStatus, InningHalf, SourceStatus


# ── Base ────────────────────────────────────────────────────────────────
class DomainModel(BaseModel):
    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict using camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


class FrozenModel(DomainModel):
    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        alias_generator=to_camel,
        frozen=True,
    )


# ── Reference entities ──────────────────────────────────────────────────
class LeagueRef(FrozenModel):
    id: int
    name: str
    country: Optional[str] = None
    logo_url: Optional[str] = None


class Team(FrozenModel):
    id: int
    name: str
    abbreviation: str = ""
    logo_url: Optional[str] = None
    rank: Optional[int] = None
    wins: Optional[int] = None
    losses: Optional[int] = None


class PlayerInfo(FrozenModel):
    id: int
    name: str


# ── Live situation ──────────────────────────────────────────────────────
class RunnersOn(FrozenModel):
    first: bool = False
    second: bool = False
    third: bool = False


class Count(FrozenModel):
    balls: int = 0
    strikes: int = 0
    outs: int = 0


class LinescoreInning(FrozenModel):
    inning: int
    home: Optional[int] = None
    away: Optional[int] = None


# ── Event ───────────────────────────────────────────────────────────────
class Event(FrozenModel):
    """One contest. Immutable: a changed game is a new Event value."""
    id: str
    league: LeagueRef
    status: GameStatus
    scheduled_time: datetime
    home_team: Team
    away_team: Team
    home_score: int = 0
    away_score: int = 0
    current_inning: Optional[int] = None
    inning_half: Optional[InningHalf] = None
    outs: Optional[int] = None
    runners_on: Optional[RunnersOn] = None
    count: Optional[Count] = None
    linescore: list[LinescoreInning] = Field(default_factory=list)
    home_hits: Optional[int] = None
    away_hits: Optional[int] = None
    home_errors: Optional[int] = None
    away_errors: Optional[int] = None
    current_pitcher: Optional[PlayerInfo] = None
    current_batter: Optional[PlayerInfo] = None
    tv_networks: list[str] = Field(default_factory=list)

    @property
    def is_live(self) -> bool:
        return self.status == GameStatus.LIVE

    def volatile_projection(self) -> tuple[Any, ...]:
        """Fields whose change must reach live-stream subscribers."""
        outs = self.outs
        if outs is None and self.count is not None:
            outs = self.count.outs
        half = self.inning_half.value if self.inning_half else None
        return (
            self.home_score,
            self.away_score,
            self.status.value,
            self.current_inning,
            half,
            outs,
        )


class PlayEvent(FrozenModel):
    id: str
    inning: int
    half: InningHalf
    event: str
    description: str = ""
    rbi: int = 0
    away_score: int = 0
    home_score: int = 0


class EventDetail(Event):
    """Event enriched with the per-game feed."""
    venue: Optional[str] = None
    last_play_description: Optional[str] = None
    winning_pitcher: Optional[PlayerInfo] = None
    losing_pitcher: Optional[PlayerInfo] = None
    save_pitcher: Optional[PlayerInfo] = None
    plays: list[PlayEvent] = Field(default_factory=list)


# ── Aggregation ─────────────────────────────────────────────────────────
class LeagueGroup(DomainModel):
    """One source's games for one date plus fetch/error/staleness status."""
    id: int
    name: str
    country: Optional[str] = None
    logo_url: Optional[str] = None
    games: list[Event] = Field(default_factory=list)
    default_collapsed: bool = False
    show_top25_filter: bool = False
    error: Optional[str] = None
    stale: bool = False


def compute_has_live(leagues: Iterable[LeagueGroup]) -> bool:
    return any(game.is_live for league in leagues for game in league.games)


class AggregationResult(DomainModel):
    date: str
    leagues: list[LeagueGroup] = Field(default_factory=list)
    has_live: bool = False

    @classmethod
    def build(cls, date: str, leagues: list[LeagueGroup]) -> "AggregationResult":
        return cls(date=date, leagues=leagues, has_live=compute_has_live(leagues))

    def iter_games(self) -> Iterator[Event]:
        for league in self.leagues:
            yield from league.games


# ── Source health ───────────────────────────────────────────────────────
class SourceHealth(DomainModel):
    """Mutable per-source record; timestamps are epoch seconds."""
    last_success_at: Optional[float] = None
    last_error_at: Optional[float] = None
    last_error: Optional[str] = None
    consecutive_fails: int = 0


class SourceHealthReport(DomainModel):
    status: SourceStatus
    last_success_ago: Optional[str] = None
    last_error_ago: Optional[str] = None
    last_error: Optional[str] = None
    consecutive_fails: int = 0


class HealthResponse(DomainModel):
    status: str
    service: str = "api"
    uptime: str
    ts: datetime
    sources: dict[str, SourceHealthReport] = Field(default_factory=dict)


# ── Standings / schedule ────────────────────────────────────────────────
class Standing(FrozenModel):
    team: Team
    division: str
    wins: int
    losses: int
    pct: float
    games_back: float = 0.0
    streak: str = ""
    last10: str = ""


class DivisionStandings(DomainModel):
    name: str
    rows: list[Standing] = Field(default_factory=list)


class StandingsResponse(DomainModel):
    season: int
    divisions: list[DivisionStandings] = Field(default_factory=list)


class GameDaysResponse(DomainModel):
    dates: list[str] = Field(default_factory=list)


class RankedTeam(FrozenModel):
    rank: int
    id: int
    display_name: str
    abbreviation: str = ""
    primary_color: Optional[str] = None
    logo_url: Optional[str] = None
    conference: Optional[str] = None
    wins: int = 0
    losses: int = 0


class Rankings(DomainModel):
    poll_name: str = "Rankings"
    teams: list[RankedTeam] = Field(default_factory=list)


# ── Live stream payloads ────────────────────────────────────────────────
class UpdatePayload(DomainModel):
    games: list[Event] = Field(default_factory=list)
    has_live: bool = False


class PingPayload(DomainModel):
    ts: int
