"""
Live stream endpoint.

GET /live-stream?date=YYYY-MM-DD: server-sent events.
    event: init    full AggregationResult
    event: update  {games, hasLive} for games whose volatile fields changed
    event: ping    {ts} keepalive
The stream is unidirectional and ends when the client disconnects.
"""
from __future__ import annotations

import asyncio
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse

from shared.utils.logging import get_logger

from api.dependencies import get_channel
from api.routes.scores import resolve_date
from api.stream.channel import LiveConnection, LiveUpdateChannel

logger = get_logger(__name__)
router = APIRouter(tags=["live"])

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}
DISCONNECT_POLL_S = 1.0


async def _watch_disconnect(request: Request, conn: LiveConnection) -> None:
    while not conn.cancelled:
        if await request.is_disconnected():
            conn.cancel()
            return
        await asyncio.sleep(DISCONNECT_POLL_S)


async def _event_stream(
    request: Request,
    channel: LiveUpdateChannel,
    conn: LiveConnection,
) -> AsyncIterator[str]:
    watcher = asyncio.create_task(_watch_disconnect(request, conn))
    try:
        async for message in channel.messages(conn):
            yield message.encode()
    finally:
        watcher.cancel()
        channel.close(conn)


@router.get("/live-stream")
async def live_stream(
    request: Request,
    date_str: Optional[str] = Query(
        None,
        alias="date",
        description="Date in YYYY-MM-DD format. Defaults to today (UTC).",
    ),
    channel: LiveUpdateChannel = Depends(get_channel),
) -> StreamingResponse:
    target = resolve_date(date_str)
    remote = f"{request.client.host}:{request.client.port}" if request.client else "unknown"
    conn = channel.open(target, remote_addr=remote)
    return StreamingResponse(
        _event_stream(request, channel, conn),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
