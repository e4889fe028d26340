"""
MLB Stats API source.
Fetches schedules with hydrated linescores, live game feeds, standings, and
the monthly game-day calendar from statsapi.mlb.com.
"""
from __future__ import annotations

import calendar
from datetime import datetime
from typing import Any, Optional

from shared.errors import SourceError, UpstreamShapeError
from shared.models.domain import (
    Count,
    Event,
    EventDetail,
    LeagueRef,
    LinescoreInning,
    PlayEvent,
    PlayerInfo,
    RunnersOn,
    Standing,
    Team,
)
from shared.models.enums import GameStatus, InningHalf
from shared.utils.logging import get_logger

from ingest.sources.base import SourceAdapter

logger = get_logger(__name__)

MLB_API = "https://statsapi.mlb.com/api/v1"
MLB_API_LIVE = "https://statsapi.mlb.com/api/v1.1"
MLB_LOGO_URL = "https://www.mlbstatic.com/team-logos/{team_id}.svg"

_LIVE_CODES = frozenset({"I", "MA", "MB", "MC"})
_FINAL_CODES = frozenset({"F", "FT", "FR", "FO", "CR", "GO"})
_POSTPONED_CODES = frozenset({"PO", "PI", "CO"})
_DELAYED_CODES = frozenset({"DI", "DR", "DG"})


def _map_status(status: dict[str, Any]) -> GameStatus:
    """Map an MLB statusCode to GameStatus. Unknown codes are scheduled."""
    code = status.get("statusCode", "")
    if code in _LIVE_CODES:
        return GameStatus.LIVE
    if code in _FINAL_CODES:
        return GameStatus.FINAL
    if code in _POSTPONED_CODES:
        return GameStatus.POSTPONED
    if code in _DELAYED_CODES:
        return GameStatus.DELAYED
    return GameStatus.SCHEDULED


def _map_inning_half(linescore: dict[str, Any]) -> Optional[InningHalf]:
    if linescore.get("currentInning") is None:
        return None
    is_top = linescore.get("isTopInning")
    if is_top is True:
        return InningHalf.TOP
    if is_top is False:
        return InningHalf.BOTTOM
    return None


def _parse_team(raw: dict[str, Any]) -> Team:
    name = raw["name"]
    return Team(
        id=int(raw["id"]),
        name=name,
        abbreviation=raw.get("abbreviation") or name[:3].upper(),
        logo_url=MLB_LOGO_URL.format(team_id=raw["id"]),
    )


def _parse_linescore(innings: Optional[list[dict[str, Any]]]) -> list[LinescoreInning]:
    return [
        LinescoreInning(
            inning=inn["num"],
            home=inn.get("home", {}).get("runs"),
            away=inn.get("away", {}).get("runs"),
        )
        for inn in innings or []
    ]


def _parse_runners(play: dict[str, Any]) -> RunnersOn:
    bases = {"1B": False, "2B": False, "3B": False}
    for runner in play.get("runners") or []:
        movement = runner.get("movement", {})
        if movement.get("isOut"):
            continue
        end = movement.get("end")
        if end in bases:
            bases[end] = True
    return RunnersOn(first=bases["1B"], second=bases["2B"], third=bases["3B"])


def _to_player(raw: Optional[dict[str, Any]]) -> Optional[PlayerInfo]:
    if not raw:
        return None
    return PlayerInfo(id=raw["id"], name=raw["fullName"])


def _linescore_fields(ls: dict[str, Any]) -> dict[str, Any]:
    teams = ls.get("teams") or {}
    home = teams.get("home", {})
    away = teams.get("away", {})
    return {
        "current_inning": ls.get("currentInning"),
        "inning_half": _map_inning_half(ls),
        "outs": ls.get("outs"),
        "linescore": _parse_linescore(ls.get("innings")),
        "home_hits": home.get("hits"),
        "away_hits": away.get("hits"),
        "home_errors": home.get("errors"),
        "away_errors": away.get("errors"),
    }


def _current_play_fields(play: Optional[dict[str, Any]]) -> dict[str, Any]:
    if not play:
        return {}
    count = play.get("count", {})
    matchup = play.get("matchup", {})
    return {
        "count": Count(
            balls=count.get("balls", 0),
            strikes=count.get("strikes", 0),
            outs=count.get("outs", 0),
        ),
        "runners_on": _parse_runners(play),
        "current_batter": _to_player(matchup.get("batter")),
        "current_pitcher": _to_player(matchup.get("pitcher")),
    }


def _parse_plays(all_plays: list[dict[str, Any]]) -> list[PlayEvent]:
    plays: list[PlayEvent] = []
    complete = [p for p in all_plays if p.get("about", {}).get("isComplete")]
    for i, play in enumerate(complete):
        about = play["about"]
        result = play.get("result", {})
        plays.append(
            PlayEvent(
                id=f"{about.get('atBatIndex', i)}-{i}",
                inning=about["inning"],
                half=InningHalf.TOP if about.get("isTopInning") else InningHalf.BOTTOM,
                event=result.get("event", ""),
                description=result.get("description", ""),
                rbi=result.get("rbi") or 0,
                away_score=result.get("awayScore") or 0,
                home_score=result.get("homeScore") or 0,
            )
        )
    return plays


def _parse_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


class MLBStatsSource(SourceAdapter):
    """Major League Baseball via the public MLB Stats API."""

    sport_id: int | str = 1
    # American League, National League
    standings_league_ids = "103,104"

    @property
    def base_url(self) -> str:
        return MLB_API

    async def fetch_events(self, date: str) -> list[Event]:
        return await self._fetch_schedule(date, self.sport_id, self.league)

    async def _fetch_schedule(self, date: str, sport_id: int | str, league: LeagueRef) -> list[Event]:
        data = await self._http.get_json(
            f"{MLB_API}/schedule",
            params={"sportId": sport_id, "date": date, "hydrate": "linescore,team"},
        )
        try:
            raw_games = [g for entry in data.get("dates") or [] for g in entry["games"]]
        except (AttributeError, KeyError, TypeError) as exc:
            logger.warning("mlb_schedule_shape_error", source=self.name, date=date, error=str(exc))
            return []

        events: list[Event] = []
        for raw in raw_games:
            try:
                event = self._parse_game(raw, league)
            except UpstreamShapeError as exc:
                logger.warning("mlb_game_skipped", source=self.name, date=date, error=str(exc))
                continue
            if event.is_live:
                event = await self._enrich_live(event)
            events.append(event)
        return events

    def _parse_game(self, raw: dict[str, Any], league: LeagueRef) -> Event:
        try:
            teams = raw["teams"]
            ls = raw.get("linescore") or {}
            return Event(
                id=str(raw["gamePk"]),
                league=league,
                status=_map_status(raw.get("status", {})),
                scheduled_time=raw["gameDate"],
                home_team=_parse_team(teams["home"]["team"]),
                away_team=_parse_team(teams["away"]["team"]),
                home_score=teams["home"].get("score") or 0,
                away_score=teams["away"].get("score") or 0,
                **_linescore_fields(ls),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise UpstreamShapeError(self.name, f"unparseable game: {exc}") from exc

    async def _enrich_live(self, event: Event) -> Event:
        """Overlay count, runners, and matchup from the live feed."""
        try:
            feed = await self._http.get_json(f"{MLB_API_LIVE}/game/{event.id}/feed/live")
            live = feed["liveData"]
            updates = _linescore_fields(live.get("linescore") or {})
            updates.update(_current_play_fields(live.get("plays", {}).get("currentPlay")))
        except (SourceError, KeyError, TypeError, ValueError) as exc:
            # Schedule data is still usable without the live overlay
            logger.debug("mlb_live_feed_unavailable", event_id=event.id, error=str(exc))
            return event
        return event.model_copy(update=updates)

    async def fetch_event_detail(self, event_id: str) -> EventDetail:
        feed = await self._http.get_json(f"{MLB_API_LIVE}/game/{event_id}/feed/live")
        try:
            game_data = feed["gameData"]
            live = feed["liveData"]
            ls = live.get("linescore") or {}
            ls_teams = ls.get("teams") or {}
            plays = live.get("plays", {})
            current = plays.get("currentPlay")
            decisions = live.get("decisions") or {}
            fields = _linescore_fields(ls)
            fields.update(_current_play_fields(current))
            return EventDetail(
                id=str(event_id),
                league=self._detail_league(game_data),
                status=_map_status(game_data.get("status", {})),
                scheduled_time=game_data.get("datetime", {}).get("dateTime") or datetime.min,
                home_team=_parse_team(game_data["teams"]["home"]),
                away_team=_parse_team(game_data["teams"]["away"]),
                home_score=ls_teams.get("home", {}).get("runs") or 0,
                away_score=ls_teams.get("away", {}).get("runs") or 0,
                venue=(game_data.get("venue") or {}).get("name"),
                last_play_description=(current or {}).get("result", {}).get("description"),
                winning_pitcher=_to_player(decisions.get("winner")),
                losing_pitcher=_to_player(decisions.get("loser")),
                save_pitcher=_to_player(decisions.get("save")),
                plays=_parse_plays(plays.get("allPlays") or []),
                **fields,
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise UpstreamShapeError(self.name, f"unparseable live feed {event_id}: {exc}") from exc

    def _detail_league(self, game_data: dict[str, Any]) -> LeagueRef:
        return self.league

    async def fetch_standings(self, season: int) -> list[Standing]:
        data = await self._http.get_json(
            f"{MLB_API}/standings",
            params={
                "leagueId": self.standings_league_ids,
                "season": season,
                "standingsTypes": "regularSeason",
                "hydrate": "team,division",
            },
        )
        standings: list[Standing] = []
        try:
            for division in data.get("records") or []:
                division_name = division["division"]["name"]
                for rec in division["teamRecords"]:
                    splits = (rec.get("records") or {}).get("splitRecords") or []
                    last10 = next((s for s in splits if s.get("type") == "lastTen"), None)
                    games_back = rec.get("gamesBack", "-")
                    standings.append(
                        Standing(
                            team=_parse_team(rec["team"]),
                            division=division_name,
                            wins=rec["wins"],
                            losses=rec["losses"],
                            pct=_parse_float(rec.get("winningPercentage")),
                            games_back=0.0 if games_back == "-" else _parse_float(games_back),
                            streak=(rec.get("streak") or {}).get("streakCode", ""),
                            last10=f"{last10['wins']}-{last10['losses']}" if last10 else "",
                        )
                    )
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("mlb_standings_shape_error", season=season, error=str(exc))
            return []
        return standings

    async def fetch_game_days(self, month: str) -> list[str]:
        year, mon = (int(part) for part in month.split("-"))
        last_day = calendar.monthrange(year, mon)[1]
        data = await self._http.get_json(
            f"{MLB_API}/schedule",
            params={
                "sportId": self.sport_id,
                "startDate": f"{month}-01",
                "endDate": f"{month}-{last_day:02d}",
            },
        )
        try:
            return [entry["date"] for entry in data.get("dates") or []]
        except (AttributeError, KeyError, TypeError) as exc:
            logger.warning("mlb_game_days_shape_error", month=month, error=str(exc))
            return []
