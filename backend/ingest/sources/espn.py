"""
ESPN scoreboard source.
Uses ESPN's public site API (structured JSON, no HTML scraping). One adapter
class serves any baseball league path, e.g. college baseball and the World
Baseball Classic. Sources built with rankings=True also read the league poll.
"""
from __future__ import annotations

import re
from typing import Any, Optional

from shared.errors import UpstreamShapeError
from shared.models.domain import (
    Count,
    Event,
    EventDetail,
    LinescoreInning,
    RankedTeam,
    Rankings,
    RunnersOn,
    Team,
)
from shared.models.enums import GameStatus, InningHalf
from shared.utils.http_client import SourceHTTPClient
from shared.utils.logging import get_logger

from ingest.sources.base import SourceAdapter, SourceSpec

logger = get_logger(__name__)

ESPN_BASE = "https://site.api.espn.com/apis/site/v2/sports"

# ESPN abbreviations that collide with other leagues' teams
ESPN_ABBR_MAP: dict[str, str] = {
    "COL": "CLM",
}

_POSTPONED_TYPES = frozenset({"STATUS_POSTPONED", "STATUS_CANCELED", "STATUS_SUSPENDED"})
_RECORD_RE = re.compile(r"^(\d+)-(\d+)")
_UNRANKED = 25
# "1st in SEC", "T-2nd in ACC"
_CONFERENCE_RE = re.compile(r"\bin\s+(.+)$", re.IGNORECASE)

_STATUS_ORDER: dict[GameStatus, int] = {
    GameStatus.LIVE: 0,
    GameStatus.FINAL: 1,
    GameStatus.SCHEDULED: 2,
    GameStatus.POSTPONED: 3,
    GameStatus.DELAYED: 3,
}


def _map_status(type_name: str, state: str) -> GameStatus:
    if type_name in _POSTPONED_TYPES:
        return GameStatus.POSTPONED
    if type_name == "STATUS_DELAYED":
        return GameStatus.DELAYED
    if state == "in":
        return GameStatus.LIVE
    if state == "post":
        return GameStatus.FINAL
    return GameStatus.SCHEDULED


def _map_inning_half(detail: str) -> Optional[InningHalf]:
    lower = detail.lower()
    if lower.startswith("top"):
        return InningHalf.TOP
    if lower.startswith("bot"):
        return InningHalf.BOTTOM
    if lower.startswith("mid"):
        return InningHalf.MID
    if lower.startswith("end"):
        return InningHalf.END
    return None


def _parse_record(records: Optional[list[dict[str, Any]]]) -> dict[str, int]:
    if not records:
        return {}
    entry = (
        next((r for r in records if r.get("name") == "overall"), None)
        or next((r for r in records if r.get("name") == "total"), None)
        or records[0]
    )
    match = _RECORD_RE.match(entry.get("summary") or "")
    if not match:
        return {}
    return {"wins": int(match.group(1)), "losses": int(match.group(2))}


def _parse_rank(competitor: dict[str, Any]) -> Optional[int]:
    # Scoreboard nests the poll rank; summary carries it flat. 99999 = unranked
    rank = (competitor.get("curatedRank") or {}).get("current") or competitor.get("rank")
    if isinstance(rank, int) and 0 < rank <= _UNRANKED:
        return rank
    return None


def _parse_team(competitor: dict[str, Any]) -> Team:
    team = competitor["team"]
    abbreviation = team.get("abbreviation", "")
    logo = team.get("logo") or next((l.get("href") for l in team.get("logos") or []), None)
    return Team(
        id=int(team["id"]),
        name=team.get("displayName") or team.get("name", ""),
        abbreviation=ESPN_ABBR_MAP.get(abbreviation, abbreviation),
        logo_url=logo,
        rank=_parse_rank(competitor),
        **_parse_record(competitor.get("records")),
    )


def _parse_linescore(home: dict[str, Any], away: dict[str, Any]) -> list[LinescoreInning]:
    home_by_period = {l["period"]: l.get("value") for l in home.get("linescores") or [] if "period" in l}
    away_by_period = {l["period"]: l.get("value") for l in away.get("linescores") or [] if "period" in l}
    max_period = max([0, *home_by_period, *away_by_period])
    return [
        LinescoreInning(
            inning=i,
            home=_as_int(home_by_period.get(i)),
            away=_as_int(away_by_period.get(i)),
        )
        for i in range(1, max_period + 1)
    ]


def _as_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _score(competitor: dict[str, Any]) -> int:
    return _as_int(competitor.get("score")) or 0


def _split_competitors(comp: dict[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
    competitors = comp.get("competitors") or []
    home = next((c for c in competitors if c.get("homeAway") == "home"), None)
    away = next((c for c in competitors if c.get("homeAway") == "away"), None)
    if home is None or away is None:
        raise KeyError("competitors")
    return home, away


def _parse_ranked_team(entry: dict[str, Any]) -> RankedTeam:
    team = entry["team"]
    record = _RECORD_RE.match(entry.get("recordSummary") or "")
    conference = _CONFERENCE_RE.search(entry.get("standingSummary") or "")
    color = team.get("color")
    return RankedTeam(
        rank=entry["current"],
        id=_as_int(team.get("id")) or 0,
        display_name=team["displayName"],
        abbreviation=team.get("abbreviation", ""),
        primary_color=f"#{color}" if color else None,
        logo_url=next((l.get("href") for l in team.get("logos") or []), None),
        conference=conference.group(1).strip() if conference else None,
        wins=int(record.group(1)) if record else 0,
        losses=int(record.group(2)) if record else 0,
    )


def _situation_fields(situation: Optional[dict[str, Any]]) -> dict[str, Any]:
    if not situation:
        return {}
    fields: dict[str, Any] = {
        "runners_on": RunnersOn(
            first=bool(situation.get("onFirst")),
            second=bool(situation.get("onSecond")),
            third=bool(situation.get("onThird")),
        )
    }
    if any(situation.get(k) is not None for k in ("outs", "balls", "strikes")):
        outs = situation.get("outs") or 0
        fields["outs"] = outs
        fields["count"] = Count(
            balls=situation.get("balls") or 0,
            strikes=situation.get("strikes") or 0,
            outs=outs,
        )
    return fields


class ESPNScoreboardSource(SourceAdapter):
    """Baseball scoreboard for one ESPN league path (e.g. ``baseball/wbc``)."""

    def __init__(
        self,
        spec: SourceSpec,
        http_client: SourceHTTPClient,
        league_path: str,
        limit: int = 100,
        rankings: bool = False,
    ) -> None:
        super().__init__(spec, http_client)
        self._league_path = league_path
        self._limit = limit
        self._rankings = rankings

    @property
    def base_url(self) -> str:
        return f"{ESPN_BASE}/{self._league_path}"

    async def fetch_events(self, date: str) -> list[Event]:
        data = await self._http.get_json(
            f"{self.base_url}/scoreboard",
            params={"dates": date.replace("-", ""), "limit": self._limit},
        )
        events: list[Event] = []
        raw_events = (data.get("events") or []) if isinstance(data, dict) else []
        for raw in raw_events:
            try:
                events.append(self._event_to_canonical(raw))
            except UpstreamShapeError as exc:
                logger.warning("espn_event_skipped", source=self.name, date=date, error=str(exc))
        events.sort(key=lambda e: _STATUS_ORDER[e.status])
        return events

    def _event_to_canonical(self, raw: dict[str, Any]) -> Event:
        try:
            comp = raw["competitions"][0]
            home, away = _split_competitors(comp)
            status_obj = raw.get("status") or comp["status"]
            status_type = status_obj.get("type", {})
            status = _map_status(status_type.get("name", ""), status_type.get("state", ""))
            live = status == GameStatus.LIVE
            return Event(
                id=str(raw["id"]),
                league=self.league,
                status=status,
                scheduled_time=comp.get("startDate") or comp.get("date") or raw["date"],
                home_team=_parse_team(home),
                away_team=_parse_team(away),
                home_score=_score(home),
                away_score=_score(away),
                current_inning=status_obj.get("period") if live else None,
                inning_half=_map_inning_half(status_type.get("detail", "")) if live else None,
                linescore=_parse_linescore(home, away),
                home_hits=_as_int(home.get("hits")),
                away_hits=_as_int(away.get("hits")),
                home_errors=_as_int(home.get("errors")),
                away_errors=_as_int(away.get("errors")),
                **(_situation_fields(comp.get("situation")) if live else {}),
            )
        except (IndexError, KeyError, TypeError, ValueError) as exc:
            raise UpstreamShapeError(self.name, f"unparseable event: {exc}") from exc

    async def fetch_event_detail(self, event_id: str) -> EventDetail:
        data = await self._http.get_json(f"{self.base_url}/summary", params={"event": event_id})
        try:
            comp = data["header"]["competitions"][0]
            home, away = _split_competitors(comp)
            status_type = comp["status"].get("type", {})
            status = _map_status(status_type.get("name", ""), status_type.get("state", ""))
            live = status == GameStatus.LIVE
            return EventDetail(
                id=str(event_id),
                league=self.league,
                status=status,
                scheduled_time=comp["date"],
                home_team=_parse_team(home),
                away_team=_parse_team(away),
                home_score=_score(home),
                away_score=_score(away),
                current_inning=comp["status"].get("period") if live else None,
                inning_half=_map_inning_half(status_type.get("detail", "")) if live else None,
                linescore=_parse_linescore(home, away),
                home_hits=_as_int(home.get("hits")),
                away_hits=_as_int(away.get("hits")),
                home_errors=_as_int(home.get("errors")),
                away_errors=_as_int(away.get("errors")),
                venue=((data.get("gameInfo") or {}).get("venue") or {}).get("fullName"),
                **(_situation_fields(comp.get("situation")) if live else {}),
            )
        except (IndexError, KeyError, TypeError, ValueError) as exc:
            raise UpstreamShapeError(self.name, f"unparseable summary {event_id}: {exc}") from exc

    async def fetch_rankings(self) -> Rankings:
        """First poll listed by ESPN; an empty Rankings when none is published."""
        if not self._rankings:
            return await super().fetch_rankings()
        data = await self._http.get_json(f"{self.base_url}/rankings")
        try:
            polls = data.get("rankings") or []
            poll = polls[0] if polls else None
            if not poll or not poll.get("ranks"):
                return Rankings()
            return Rankings(
                poll_name=poll.get("name") or "Rankings",
                teams=[_parse_ranked_team(entry) for entry in poll["ranks"]],
            )
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            logger.warning("espn_rankings_shape_error", source=self.name, error=str(exc))
            return Rankings()
