"""
Health endpoint.

GET /health: per-source status derived purely from the SourceHealthTracker.
Overall status is "ok" while every source is healthy or unknown, else
"degraded". Always 200 so load balancers keep routing to a live process.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends

from shared.models.domain import HealthResponse
from shared.models.enums import SourceStatus

from api.dependencies import AppContext, get_context

router = APIRouter(tags=["system"])

_OK_STATES = (SourceStatus.HEALTHY, SourceStatus.UNKNOWN)


@router.get("/health")
async def health(ctx: AppContext = Depends(get_context)) -> dict[str, Any]:
    sources = ctx.health.report()
    overall = "ok" if all(r.status in _OK_STATES for r in sources.values()) else "degraded"
    return HealthResponse(
        status=overall,
        uptime=f"{round(ctx.uptime_s)}s",
        ts=datetime.now(timezone.utc),
        sources=sources,
    ).to_wire()
