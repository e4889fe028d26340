"""
Schedule calendar endpoint.

GET /schedule/game-days?month=YYYY-MM: dates in the month with at least one
game. Upstream failure degrades to an empty list.
"""
from __future__ import annotations

import re
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from shared.errors import SourceError, UnknownSourceError
from shared.models.domain import GameDaysResponse
from shared.utils.logging import get_logger

from aggregator.engine import Aggregator
from api.dependencies import get_aggregator

logger = get_logger(__name__)
router = APIRouter(prefix="/schedule", tags=["schedule"])

MONTH_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


@router.get("/game-days")
async def get_game_days(
    month: Optional[str] = Query(None, description="Month in YYYY-MM format."),
    source: str = Query("mlb"),
    aggregator: Aggregator = Depends(get_aggregator),
) -> dict[str, Any]:
    if not month or not MONTH_RE.match(month):
        raise HTTPException(status_code=400, detail=f"Invalid month: {month}. Use YYYY-MM.")
    try:
        dates = await aggregator.fetch_game_days(source, month)
    except (UnknownSourceError, NotImplementedError):
        raise HTTPException(status_code=404, detail=f"No schedule for source: {source}")
    except SourceError as exc:
        logger.warning("game_days_failed", source=source, month=month, error=str(exc))
        dates = []
    return GameDaysResponse(dates=dates).to_wire()
