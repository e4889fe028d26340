"""
Lightweight metrics collection for Diamond Score.
Wraps prometheus_client with async-safe patterns.
"""
from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from prometheus_client import Counter, Gauge, Histogram, start_http_server

from shared.config import get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

# ── Counters ────────────────────────────────────────────────────────────
SOURCE_FETCHES = Counter(
    "ds_source_fetches_total",
    "Total source fetch attempts by outcome",
    ["source", "outcome"],
)
SOURCE_REQUESTS = Counter(
    "ds_source_requests_total",
    "Total upstream HTTP requests",
    ["source", "status"],
)
SOURCE_RETRIES = Counter(
    "ds_source_retries_total",
    "Total retried upstream operations",
    ["source"],
)
CACHE_LOOKUPS = Counter(
    "ds_cache_lookups_total",
    "Cache lookups by store and result",
    ["store", "result"],
)
STALE_SUBSTITUTIONS = Counter(
    "ds_stale_substitutions_total",
    "League groups served from the stale fallback store",
    ["source"],
)
STREAM_MESSAGES = Counter(
    "ds_stream_messages_total",
    "Total live-stream messages sent to clients",
    ["msg_type"],
)
STREAM_TICK_ERRORS = Counter(
    "ds_stream_tick_errors_total",
    "Live-stream ticks whose rebuild raised",
)

# ── Histograms ──────────────────────────────────────────────────────────
SOURCE_LATENCY = Histogram(
    "ds_source_latency_seconds",
    "Source fetch latency in seconds",
    ["source"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)
RATE_LIMIT_WAIT = Histogram(
    "ds_rate_limit_wait_seconds",
    "Self-imposed wait before an upstream request",
    ["host"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)
AGGREGATION_DURATION = Histogram(
    "ds_aggregation_duration_seconds",
    "Duration of a full aggregation pass",
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

# ── Gauges ──────────────────────────────────────────────────────────────
STREAM_CONNECTIONS = Gauge(
    "ds_stream_connections_active",
    "Currently open live-stream connections",
)
SOURCE_CONSECUTIVE_FAILS = Gauge(
    "ds_source_consecutive_fails",
    "Consecutive failed fetches per source",
    ["source"],
)


@asynccontextmanager
async def atrack_latency(histogram: Histogram, **labels: str) -> AsyncIterator[None]:
    """Async context manager to track operation latency."""
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        if labels:
            histogram.labels(**labels).observe(elapsed)
        else:
            histogram.observe(elapsed)


def start_metrics_server(port: int | None = None) -> None:
    """Start the Prometheus metrics HTTP server."""
    settings = get_settings()
    if not settings.metrics_enabled:
        return
    metrics_port = port or settings.metrics_port
    try:
        start_http_server(metrics_port)
        logger.info("metrics_server_started", port=metrics_port)
    except OSError as exc:
        logger.warning("metrics_server_failed", error=str(exc), port=metrics_port)
