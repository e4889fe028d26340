"""
Bounded exponential-backoff retry for upstream fetches.

Delays between attempts are base, base*2, base*4, ... with no jitter.
Waits are asyncio sleeps so a backoff never blocks the event loop.
"""
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from shared.utils.logging import get_logger
from shared.utils.metrics import SOURCE_RETRIES

logger = get_logger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


def backoff_delay(base_delay_s: float, attempt: int) -> float:
    """Delay after the given 1-based failed attempt."""
    return base_delay_s * (2 ** (attempt - 1))


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    retries: int = 3,
    base_delay_s: float = 1.0,
    source: Optional[str] = None,
    label: str = "fetch",
    sleep: Sleep = asyncio.sleep,
) -> T:
    """
    Call fn up to retries + 1 times.

    Args:
        fn: Zero-argument coroutine factory; called once per attempt.
        retries: Extra attempts after the first.
        base_delay_s: Wait after the first failure; doubles on each retry.
        source: Source name for log context.
        label: Human-readable name of the operation.
        sleep: Awaitable sleep, replaceable in tests.

    Returns:
        The first successful result of fn.

    Raises:
        The last error raised by fn once all attempts are spent, or
        immediately when the error is marked non-retryable.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return await fn()
        except Exception as exc:
            if not getattr(exc, "retryable", True) or attempt > retries:
                raise

            delay = backoff_delay(base_delay_s, attempt)
            SOURCE_RETRIES.labels(source=source or "unknown").inc()
            logger.warning(
                "retry_scheduled",
                source=source,
                label=label,
                attempt=attempt,
                max_retries=retries,
                next_delay_s=delay,
                error=str(exc),
            )
            await sleep(delay)
