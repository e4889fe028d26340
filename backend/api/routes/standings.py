"""
Standings endpoint.

GET /standings?source=mlb&season=YYYY: standings grouped by division.
Before April the most recent completed season is the default.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from shared.errors import SourceError, UnknownSourceError
from shared.models.domain import DivisionStandings, Standing, StandingsResponse
from shared.utils.logging import get_logger

from aggregator.engine import Aggregator
from api.dependencies import get_aggregator

logger = get_logger(__name__)
router = APIRouter(tags=["standings"])

DIVISION_ORDER = (
    "American League East",
    "American League Central",
    "American League West",
    "National League East",
    "National League Central",
    "National League West",
)


def current_season(now: Optional[datetime] = None) -> int:
    now = now or datetime.now(timezone.utc)
    return now.year - 1 if now.month < 4 else now.year


def group_by_division(rows: list[Standing]) -> list[DivisionStandings]:
    """Known divisions first in league order, then the rest as they appear."""
    by_division: dict[str, list[Standing]] = {}
    for row in rows:
        by_division.setdefault(row.division, []).append(row)
    ordered = [d for d in DIVISION_ORDER if d in by_division]
    ordered += [d for d in by_division if d and d not in DIVISION_ORDER]
    return [DivisionStandings(name=name, rows=by_division[name]) for name in ordered]


@router.get("/standings")
async def get_standings(
    source: str = Query("mlb"),
    season: Optional[int] = Query(None, ge=1876, le=2100),
    aggregator: Aggregator = Depends(get_aggregator),
) -> dict[str, Any]:
    season = season or current_season()
    try:
        rows = await aggregator.fetch_standings(source, season)
    except (UnknownSourceError, NotImplementedError):
        raise HTTPException(status_code=404, detail=f"No standings for source: {source}")
    except SourceError as exc:
        logger.warning("standings_failed", source=source, season=season, error=str(exc))
        raise HTTPException(status_code=502, detail="Failed to fetch standings")
    return StandingsResponse(season=season, divisions=group_by_division(rows)).to_wire()
