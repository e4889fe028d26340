"""
Structured logging for the Diamond Score service.

structlog runs on top of stdlib logging so uvicorn and library records go
through the same renderer. Every entry is an event name plus key/value
fields; per-request fields (request_id, path) ride in contextvars and are
merged into everything logged while the request is handled.
"""
from __future__ import annotations

import logging
import sys
import time
from typing import Any, Optional

import structlog

from shared.config import Environment, Settings, get_settings

# Upstream fetches are logged by SourceHTTPClient; request lines by middleware
QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "asyncio")


def _processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _renderer(environment: Environment) -> structlog.types.Processor:
    if environment == Environment.DEV:
        return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    return structlog.processors.JSONRenderer()


def setup_logging(
    service_name: str,
    settings: Optional[Settings] = None,
    extra_context: Optional[dict[str, Any]] = None,
) -> None:
    """
    Route structlog and stdlib logging through one stdout handler.

    Args:
        service_name: Bound as `service` on every entry (api, client).
        settings: Defaults to the process settings.
        extra_context: Additional static fields bound to every entry.
    """
    settings = settings or get_settings()
    shared = _processors()

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(settings.environment),
            ],
            foreign_pre_chain=shared,
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        service=service_name,
        instance_id=settings.instance_id,
        **(extra_context or {}),
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def elapsed_ms(start: float) -> float:
    """Milliseconds since a time.perf_counter() reading, for duration_ms fields."""
    return round((time.perf_counter() - start) * 1000, 2)
