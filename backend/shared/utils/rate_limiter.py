"""
Per-domain rate limiting by minimum inter-request interval.

Each configured host gets at most one request per interval. The next free slot
is reserved before awaiting, so concurrent callers for the same host queue up
behind each other without a lock; hosts never wait on one another.
"""
from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, Optional
from urllib.parse import urlparse

from shared.config import Settings, get_settings
from shared.utils.logging import get_logger
from shared.utils.metrics import RATE_LIMIT_WAIT

logger = get_logger(__name__)


class DomainRateLimiter:
    """Enforces a minimum gap between consecutive requests to the same host."""

    def __init__(
        self,
        intervals_ms: Optional[dict[str, int]] = None,
        *,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if intervals_ms is None:
            intervals_ms = (settings or get_settings()).rate_limit_intervals_ms
        self._intervals_s = {host: ms / 1000.0 for host, ms in intervals_ms.items()}
        self._last_request_at: dict[str, float] = {}
        self._clock = clock
        self._sleep = sleep

    @staticmethod
    def _hostname(url: str) -> Optional[str]:
        try:
            return urlparse(url).hostname
        except ValueError:
            return None

    def interval_for(self, url: str) -> float:
        host = self._hostname(url)
        if not host:
            return 0.0
        return self._intervals_s.get(host, 0.0)

    async def throttle(self, url: str) -> float:
        """
        Wait until a request to url is allowed. Returns the seconds waited.

        Hosts without a configured interval return immediately.
        """
        host = self._hostname(url)
        if not host:
            return 0.0
        interval = self._intervals_s.get(host)
        if not interval:
            return 0.0

        now = self._clock()
        last = self._last_request_at.get(host)
        slot = now if last is None else max(now, last + interval)
        # Stamp before suspending so the next caller sees this reservation
        self._last_request_at[host] = slot
        wait = slot - now

        if wait > 0:
            RATE_LIMIT_WAIT.labels(host=host).observe(wait)
            logger.debug("rate_limit_wait", host=host, wait_s=round(wait, 3))
            await self._sleep(wait)
        return wait
