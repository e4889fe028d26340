"""
Game detail endpoint.

GET /game/{source}/{event_id}: one game with its detailed feed (venue,
decisions, play-by-play where the source has them).
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from shared.errors import SourceError, UnknownSourceError
from shared.utils.logging import get_logger

from aggregator.engine import Aggregator
from api.dependencies import get_aggregator

logger = get_logger(__name__)
router = APIRouter(tags=["games"])


@router.get("/game/{source}/{event_id}")
async def get_game(
    source: str,
    event_id: str,
    aggregator: Aggregator = Depends(get_aggregator),
) -> dict[str, Any]:
    try:
        detail = await aggregator.fetch_event_detail(source, event_id)
    except UnknownSourceError:
        raise HTTPException(status_code=404, detail=f"Unknown source: {source}")
    except SourceError as exc:
        logger.warning("game_detail_failed", source=source, event_id=event_id, error=str(exc))
        raise HTTPException(status_code=502, detail="Failed to fetch game data")
    return detail.to_wire()
