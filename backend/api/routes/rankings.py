"""
Poll rankings endpoint.

GET /rankings/{source}: the source's current poll, e.g. /rankings/ncaa for
the college baseball top 25.
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from shared.errors import SourceError, UnknownSourceError
from shared.utils.logging import get_logger

from aggregator.engine import Aggregator
from api.dependencies import get_aggregator

logger = get_logger(__name__)
router = APIRouter(prefix="/rankings", tags=["rankings"])


@router.get("/{source}")
async def get_rankings(
    source: str,
    aggregator: Aggregator = Depends(get_aggregator),
) -> dict[str, Any]:
    try:
        rankings = await aggregator.fetch_rankings(source)
    except (UnknownSourceError, NotImplementedError):
        raise HTTPException(status_code=404, detail=f"No rankings for source: {source}")
    except SourceError as exc:
        logger.warning("rankings_failed", source=source, error=str(exc))
        raise HTTPException(status_code=502, detail="Failed to fetch rankings")
    return rankings.to_wire()
