"""
API middleware stack.

- Request context: X-Request-ID in and out, bound into structlog contextvars
  so aggregator and source logs for a request carry its id
- One structured log line per request (health and metrics scrapes excluded)
- Global exception handler returning 500 JSON
- CORS for browser clients of the scores and live-stream endpoints
"""
from __future__ import annotations

import time
import uuid

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from shared.config import Settings, get_settings
from shared.utils.logging import elapsed_ms, get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
QUIET_PATHS = frozenset({"/health", "/metrics"})


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assigns a request id, binds it for logging, and logs the outcome."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:16]
        request.state.request_id = request_id
        path = request.url.path
        start = time.perf_counter()

        with structlog.contextvars.bound_contextvars(request_id=request_id, path=path):
            try:
                response = await call_next(request)
            except Exception as exc:
                logger.error(
                    "http_request_error",
                    method=request.method,
                    duration_ms=elapsed_ms(start),
                    error=str(exc),
                    exc_info=True,
                )
                raise

            # For the live stream this fires when headers go out, not at close
            if path not in QUIET_PATHS:
                logger.info(
                    "http_request",
                    method=request.method,
                    query=str(request.query_params),
                    status=response.status_code,
                    duration_ms=elapsed_ms(start),
                    client=request.client.host if request.client else "unknown",
                )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def setup_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(Exception)
    async def unhandled(request: Request, exc: Exception) -> JSONResponse:
        request_id = getattr(request.state, "request_id", "unknown")
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            request_id=request_id,
            error=str(exc),
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
                "request_id": request_id,
            },
        )


def setup_middleware(app: FastAPI, settings: Settings | None = None) -> None:
    """CORS wraps request context (last added runs outermost)."""
    settings = settings or get_settings()
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER],
    )
    setup_exception_handlers(app)
