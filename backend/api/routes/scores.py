"""
Scores REST endpoint.

GET /scores?date=YYYY-MM-DD: every league's games for a date, merged from all
sources. Defaults to today (UTC). Failed sources come back as degraded league
groups, so the response is 200 unless the date itself is malformed.
"""
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from shared.utils.logging import get_logger

from aggregator.engine import Aggregator
from api.dependencies import get_aggregator

logger = get_logger(__name__)
router = APIRouter(tags=["scores"])


def resolve_date(date_str: Optional[str]) -> str:
    """Validate a YYYY-MM-DD query value; default to today (UTC)."""
    if not date_str:
        return datetime.now(timezone.utc).date().isoformat()
    try:
        return date.fromisoformat(date_str).isoformat()
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid date format: {date_str}. Use YYYY-MM-DD.",
        )


@router.get("/scores")
async def get_scores(
    response: Response,
    date_str: Optional[str] = Query(
        None,
        alias="date",
        description="Date in YYYY-MM-DD format. Defaults to today (UTC).",
    ),
    aggregator: Aggregator = Depends(get_aggregator),
) -> dict[str, Any]:
    target = resolve_date(date_str)
    result = await aggregator.build_result(target)
    response.headers["Cache-Control"] = "no-store"
    return result.to_wire()
