"""
Live stream consumer with reconnection and a polling fallback.

Push mode reads GET /live-stream as server-sent events. A failed subscribe or
a dropped stream reconnects after an exponential backoff (2s, 4s, 8s, ...,
capped at 60s); every `init` resets the backoff. Hiding the client closes the
connection; showing it again reconnects at once with the backoff reset.

Polling mode (push disabled) fetches GET /scores immediately, then again on
the adaptive cadence of the last result. A failed poll retries after a fixed
delay without growing it.
"""
from __future__ import annotations

import asyncio
import inspect
import json
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Union

import httpx

from shared.config import Settings, get_settings
from shared.models.domain import AggregationResult, Event, LeagueGroup, UpdatePayload
from shared.models.enums import StreamMsgType
from shared.utils.logging import get_logger

from scheduler.engine.polling import AdaptiveCadence

logger = get_logger(__name__)

InitCallback = Callable[[AggregationResult], Union[None, Awaitable[None]]]
UpdateCallback = Callable[[UpdatePayload], Union[None, Awaitable[None]]]


async def iter_sse(lines: AsyncIterator[str]) -> AsyncIterator[tuple[str, dict[str, Any]]]:
    """Parse server-sent event lines into (event, decoded JSON data) pairs."""
    event = "message"
    data: list[str] = []
    async for raw in lines:
        line = raw.rstrip("\r")
        if not line:
            if data:
                yield event, json.loads("\n".join(data))
            event, data = "message", []
            continue
        if line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        value = value[1:] if value.startswith(" ") else value
        if name == "event":
            event = value
        elif name == "data":
            data.append(value)
    if data:
        yield event, json.loads("\n".join(data))


def apply_update(state: AggregationResult, payload: UpdatePayload) -> AggregationResult:
    """Replace changed games in state; games not seen before are ignored."""
    changed = {(g.league.id, g.id): g for g in payload.games}
    leagues: list[LeagueGroup] = []
    for league in state.leagues:
        games: list[Event] = [changed.get((g.league.id, g.id), g) for g in league.games]
        leagues.append(league.model_copy(update={"games": games}))
    return AggregationResult.build(state.date, leagues)


class ReconnectingClient:
    """Keeps a local AggregationResult for one date in sync with the server."""

    def __init__(
        self,
        base_url: str,
        date: str,
        on_init: Optional[InitCallback] = None,
        on_update: Optional[UpdateCallback] = None,
        *,
        push_enabled: Optional[bool] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        settings: Settings | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        s = settings or get_settings()
        self._base_url = base_url.rstrip("/")
        self._date = date
        self._on_init = on_init
        self._on_update = on_update
        self._push_enabled = s.client_push_enabled if push_enabled is None else push_enabled
        self._initial_backoff_s = s.client_initial_backoff_s
        self._max_backoff_s = s.client_max_backoff_s
        self._poll_retry_s = s.client_poll_retry_s
        self._stream_timeout = httpx.Timeout(10.0, read=s.stream_idle_interval_s + 30.0)
        self._cadence = AdaptiveCadence(s)
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=10.0)
        self._sleep = sleep
        self._backoff_s = self._initial_backoff_s
        self._attempt = 0
        self._visible = True
        self._task: Optional[asyncio.Task[None]] = None
        self.state: Optional[AggregationResult] = None

    @property
    def visible(self) -> bool:
        return self._visible

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ── Backoff ───────────────────────────────────────────────────────

    @property
    def current_backoff_s(self) -> float:
        return self._backoff_s

    def next_backoff(self) -> float:
        """Return the delay for this reconnect and double the next one."""
        delay = self._backoff_s
        self._backoff_s = min(self._backoff_s * 2, self._max_backoff_s)
        self._attempt += 1
        return delay

    def reset_backoff(self) -> None:
        self._backoff_s = self._initial_backoff_s
        self._attempt = 0

    # ── Lifecycle ─────────────────────────────────────────────────────

    async def start(self) -> None:
        self._visible = True
        self._spawn()

    async def close(self) -> None:
        await self._cancel_supervisor()
        if self._owns_http:
            await self._http.aclose()

    async def set_visible(self, visible: bool) -> None:
        """Suspend while hidden; reconnect immediately when shown again."""
        if visible == self._visible:
            return
        self._visible = visible
        if not visible:
            logger.info("client_suspended", date=self._date)
            await self._cancel_supervisor()
            return
        logger.info("client_resumed", date=self._date)
        self.reset_backoff()
        self._spawn()

    def _spawn(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self.run())

    async def _cancel_supervisor(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def run(self) -> None:
        """Supervisor loop; runs until cancelled."""
        if self._push_enabled:
            await self._run_push()
        else:
            await self._run_polling()

    # ── Push ──────────────────────────────────────────────────────────

    async def _run_push(self) -> None:
        while True:
            try:
                await self._consume_stream()
                error = "stream ended"
            except (httpx.HTTPError, ValueError) as exc:
                error = str(exc) or exc.__class__.__name__
            except Exception as exc:
                logger.exception("client_stream_crashed", date=self._date)
                error = str(exc) or exc.__class__.__name__
            delay = self.next_backoff()
            logger.warning(
                "client_reconnect_scheduled",
                date=self._date,
                attempt=self._attempt,
                delay_s=delay,
                error=error,
            )
            await self._sleep(delay)

    async def _consume_stream(self) -> None:
        async with self._http.stream(
            "GET",
            f"{self._base_url}/live-stream",
            params={"date": self._date},
            headers={"Accept": "text/event-stream"},
            timeout=self._stream_timeout,
        ) as resp:
            resp.raise_for_status()
            logger.info("client_connected", date=self._date, status=resp.status_code)
            async for event, data in iter_sse(resp.aiter_lines()):
                await self._handle(event, data)

    async def _handle(self, event: str, data: dict[str, Any]) -> None:
        if event == StreamMsgType.INIT.value:
            result = AggregationResult.model_validate(data)
            self.reset_backoff()
            await self._replace_state(result)
        elif event == StreamMsgType.UPDATE.value:
            payload = UpdatePayload.model_validate(data)
            if self.state is not None:
                self.state = apply_update(self.state, payload)
            await self._notify(StreamMsgType.UPDATE.value, self._on_update, payload)
        # ping carries nothing for the receiver

    async def _replace_state(self, result: AggregationResult) -> None:
        self.state = result
        await self._notify(StreamMsgType.INIT.value, self._on_init, result)

    async def _notify(self, event: str, callback: Optional[Callable[..., Any]], arg: Any) -> None:
        # A failing consumer callback must not tear down the connection
        try:
            await _maybe_await(callback, arg)
        except Exception:
            logger.exception("client_callback_failed", date=self._date, event=event)

    # ── Polling ───────────────────────────────────────────────────────

    async def _run_polling(self) -> None:
        while True:
            try:
                resp = await self._http.get(f"{self._base_url}/scores", params={"date": self._date})
                resp.raise_for_status()
                result = AggregationResult.model_validate(resp.json())
            except (httpx.HTTPError, ValueError) as exc:
                delay = self._poll_retry_s
                logger.warning("client_poll_failed", date=self._date, delay_s=delay, error=str(exc))
            except Exception as exc:
                delay = self._poll_retry_s
                logger.exception("client_poll_crashed", date=self._date, delay_s=delay, error=str(exc))
            else:
                await self._replace_state(result)
                delay = self._cadence.compute_interval(result)
            await self._sleep(delay)


async def _maybe_await(callback: Optional[Callable[..., Any]], arg: Any) -> None:
    if callback is None:
        return
    outcome = callback(arg)
    if inspect.isawaitable(outcome):
        await outcome
