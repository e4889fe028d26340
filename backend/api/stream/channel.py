"""
Server-push live update channel.

Each subscriber gets:
- an `init` message with the full aggregation result on connect
- `update` messages carrying only the games whose volatile fields changed
- `ping` keepalives when nothing changed or a tick's rebuild failed

The tick loop is self-rescheduling: the next delay is computed after a tick
completes, so a slow tick delays the following one rather than overlapping it.
"""
from __future__ import annotations

import asyncio
import json
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Hashable, Optional

from shared.config import Settings, get_settings
from shared.models.domain import AggregationResult, Event, PingPayload, UpdatePayload
from shared.models.enums import StreamMsgType
from shared.utils.logging import get_logger
from shared.utils.metrics import STREAM_CONNECTIONS, STREAM_MESSAGES, STREAM_TICK_ERRORS

from aggregator.engine import Aggregator
from scheduler.engine.polling import AdaptiveCadence

logger = get_logger(__name__)


def _snapshot_key(event: Event) -> Hashable:
    # Provider ids are only unique within a league
    return (event.league.id, event.id)


class ConnectionSnapshot:
    """Last volatile projection sent to one connection, per event."""

    def __init__(self, entries: Optional[dict[Hashable, tuple[Any, ...]]] = None) -> None:
        self._entries: dict[Hashable, tuple[Any, ...]] = entries or {}

    @classmethod
    def from_result(cls, result: AggregationResult) -> "ConnectionSnapshot":
        return cls({_snapshot_key(g): g.volatile_projection() for g in result.iter_games()})

    def diff(self, result: AggregationResult) -> list[Event]:
        """Return games whose projection changed and record the new values."""
        changed: list[Event] = []
        for game in result.iter_games():
            key = _snapshot_key(game)
            projection = game.volatile_projection()
            if self._entries.get(key) != projection:
                changed.append(game)
                self._entries[key] = projection
        return changed

    def __len__(self) -> int:
        return len(self._entries)


@dataclass
class LiveConnection:
    """One subscriber of the live stream for a date."""

    date: str
    connection_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    snapshot: ConnectionSnapshot = field(default_factory=ConnectionSnapshot)
    created_at: float = field(default_factory=time.monotonic)
    remote_addr: str = ""
    _cancel: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    @property
    def alive_seconds(self) -> float:
        return time.monotonic() - self.created_at

    def cancel(self) -> None:
        self._cancel.set()

    async def wait_cancelled(self, timeout_s: float) -> bool:
        """Sleep up to timeout_s; True if the connection was cancelled meanwhile."""
        try:
            await asyncio.wait_for(self._cancel.wait(), timeout=timeout_s)
        except asyncio.TimeoutError:
            return self._cancel.is_set()
        return True


@dataclass(frozen=True)
class StreamMessage:
    type: StreamMsgType
    data: dict[str, Any]

    def encode(self) -> str:
        return format_sse(self.type, self.data)


def format_sse(msg_type: StreamMsgType | str, data: dict[str, Any]) -> str:
    """Render one server-sent event frame."""
    event = msg_type.value if isinstance(msg_type, StreamMsgType) else msg_type
    payload = json.dumps(data, separators=(",", ":"))
    return f"event: {event}\ndata: {payload}\n\n"


class LiveUpdateChannel:
    """
    Runs the per-connection push loop on top of the Aggregator.

    Connections never share snapshots or timers. stop() cancels every open
    connection; a tick already in flight finishes without emitting.
    """

    def __init__(self, aggregator: Aggregator, settings: Settings | None = None) -> None:
        self._aggregator = aggregator
        self._settings = settings or get_settings()
        self._cadence = AdaptiveCadence(self._settings)
        self._connections: dict[str, LiveConnection] = {}

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def open(self, date: str, remote_addr: str = "") -> LiveConnection:
        conn = LiveConnection(date=date, remote_addr=remote_addr)
        self._connections[conn.connection_id] = conn
        STREAM_CONNECTIONS.inc()
        logger.info(
            "stream_connected",
            connection_id=conn.connection_id,
            date=date,
            remote_addr=remote_addr,
        )
        return conn

    def close(self, conn: LiveConnection) -> None:
        conn.cancel()
        if self._connections.pop(conn.connection_id, None) is not None:
            STREAM_CONNECTIONS.dec()
            logger.info(
                "stream_disconnected",
                connection_id=conn.connection_id,
                alive_s=round(conn.alive_seconds, 1),
            )

    async def stop(self) -> None:
        """Cancel all open connections."""
        for conn in list(self._connections.values()):
            self.close(conn)
        logger.info("stream_channel_stopped")

    def _message(self, msg_type: StreamMsgType, data: dict[str, Any]) -> StreamMessage:
        STREAM_MESSAGES.labels(msg_type=msg_type.value).inc()
        return StreamMessage(type=msg_type, data=data)

    def _ping(self) -> StreamMessage:
        return self._message(StreamMsgType.PING, PingPayload(ts=int(time.time() * 1000)).to_wire())

    async def messages(self, conn: LiveConnection) -> AsyncIterator[StreamMessage]:
        """
        Yield init, then one update or ping per tick until cancelled.

        The connection is closed when the generator exits, whatever the reason.
        """
        try:
            result = await self._aggregator.build_result(conn.date)
            if conn.cancelled:
                return
            conn.snapshot = ConnectionSnapshot.from_result(result)
            yield self._message(StreamMsgType.INIT, result.to_wire())

            while not conn.cancelled:
                delay = self._cadence.compute_interval(result)
                if await conn.wait_cancelled(delay):
                    break

                fresh = await self._tick(conn)
                if conn.cancelled:
                    break
                if fresh is None:
                    yield self._ping()
                    continue

                result = fresh
                changed = conn.snapshot.diff(fresh)
                if changed:
                    payload = UpdatePayload(games=changed, has_live=fresh.has_live)
                    yield self._message(StreamMsgType.UPDATE, payload.to_wire())
                else:
                    yield self._ping()
        finally:
            self.close(conn)

    async def _tick(self, conn: LiveConnection) -> Optional[AggregationResult]:
        try:
            return await self._aggregator.build_result(conn.date)
        except Exception as exc:
            STREAM_TICK_ERRORS.inc()
            logger.warning(
                "stream_tick_failed",
                connection_id=conn.connection_id,
                date=conn.date,
                error=str(exc),
            )
            return None
