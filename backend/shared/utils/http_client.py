"""
Async HTTP client wrapper for upstream source requests.
Every request is throttled per host, retried with exponential backoff,
timed, and logged with source, URL, status, and duration.
"""
from __future__ import annotations

import time
from typing import Any, Optional

import httpx

from shared.config import Settings, get_settings
from shared.errors import TransientFetchError
from shared.utils.logging import elapsed_ms, get_logger
from shared.utils.metrics import SOURCE_REQUESTS
from shared.utils.rate_limiter import DomainRateLimiter
from shared.utils.retry import with_retry

logger = get_logger(__name__)


class SourceHTTPClient:
    """
    Async HTTP client shared by the adapters of one upstream source.
    Handles timeouts, per-host throttling, retries, and per-request logging.
    """

    def __init__(
        self,
        source: str,
        rate_limiter: DomainRateLimiter,
        settings: Settings | None = None,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._source = source
        self._limiter = rate_limiter
        self._timeout = settings.source_request_timeout_s
        self._retries = settings.source_retries
        self._base_delay_s = settings.source_retry_base_delay_s
        self._headers = headers or {"User-Agent": "diamond-score/1.0"}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def start(self) -> httpx.AsyncClient:
        """Initialize the underlying httpx client; returns it."""
        if self._client is not None:
            return self._client
        self._client = httpx.AsyncClient(
            headers=self._headers,
            timeout=httpx.Timeout(self._timeout, connect=5.0),
            follow_redirects=True,
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
            transport=self._transport,
        )
        return self._client

    async def close(self) -> None:
        """Close the underlying httpx client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        """GET url and decode JSON, with throttling and retry."""
        resp = await self.get(url, params=params)
        try:
            return resp.json()
        except ValueError as exc:
            raise TransientFetchError(
                self._source, url, resp.status_code, message=f"invalid JSON: {exc}"
            ) from exc

    async def get(self, url: str, params: dict[str, Any] | None = None) -> httpx.Response:
        """
        Perform a GET with throttling, bounded retry, and structured logging.

        Raises:
            TransientFetchError: On transport failure or non-2xx response once
                retries are spent. 4xx responses other than 429 fail at once.
        """
        return await with_retry(
            lambda: self._attempt(url, params),
            retries=self._retries,
            base_delay_s=self._base_delay_s,
            source=self._source,
            label=url,
        )

    async def _attempt(self, url: str, params: dict[str, Any] | None) -> httpx.Response:
        client = self._client or await self.start()

        await self._limiter.throttle(url)

        start = time.perf_counter()
        try:
            resp = await client.get(url, params=params)
        except httpx.HTTPError as exc:
            duration_ms = elapsed_ms(start)
            status = "timeout" if isinstance(exc, httpx.TimeoutException) else "error"
            SOURCE_REQUESTS.labels(source=self._source, status=status).inc()
            logger.warning(
                "source_request_failed",
                source=self._source,
                url=url,
                duration_ms=duration_ms,
                error=str(exc) or exc.__class__.__name__,
            )
            raise TransientFetchError(self._source, url, message=str(exc) or status) from exc

        duration_ms = elapsed_ms(start)
        SOURCE_REQUESTS.labels(source=self._source, status=str(resp.status_code)).inc()
        if resp.is_success:
            logger.info(
                "source_request_ok",
                source=self._source,
                url=url,
                status=resp.status_code,
                duration_ms=duration_ms,
            )
            return resp

        logger.warning(
            "source_request_http_error",
            source=self._source,
            url=url,
            status=resp.status_code,
            duration_ms=duration_ms,
        )
        # Don't retry client errors (4xx except 429)
        retryable = not (400 <= resp.status_code < 500 and resp.status_code != 429)
        raise TransientFetchError(self._source, url, resp.status_code, retryable=retryable)
