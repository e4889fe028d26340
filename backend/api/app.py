"""
FastAPI application factory for the Diamond Score API service.

Creates the app with:
- REST routes (scores, game detail, standings, rankings, schedule calendar)
- Server-sent live stream
- Middleware stack
- Health endpoint
- Lifespan management: builds the service context, starts source HTTP
  clients, the cache sweeper, and the metrics server
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI

from shared.config import get_settings
from shared.utils.cache import run_sweeper
from shared.utils.logging import get_logger, setup_logging
from shared.utils.metrics import start_metrics_server

from api.dependencies import AppContext, build_context, init_dependencies
from api.middleware import setup_middleware
from api.routes.games import router as games_router
from api.routes.health import router as health_router
from api.routes.live import router as live_router
from api.routes.rankings import router as rankings_router
from api.routes.schedule import router as schedule_router
from api.routes.scores import router as scores_router
from api.routes.standings import router as standings_router

logger = get_logger(__name__)


@asynccontextmanager
async def _noop_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """No-op lifespan for tests that inject their own context."""
    yield


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.
    Startup wires and starts the context; shutdown cancels open streams,
    stops the sweeper, and closes source HTTP clients.
    """
    settings = get_settings()
    setup_logging("api", settings)
    start_metrics_server(settings.metrics_port)

    ctx = build_context(settings)
    init_dependencies(ctx)
    await ctx.aggregator.start()

    stop_sweeper = asyncio.Event()
    sweeper_task = asyncio.create_task(
        run_sweeper(ctx.cache, ctx.stale, settings.cache_sweep_interval_s, stop_sweeper)
    )

    logger.info(
        "api_service_started",
        host=settings.api_host,
        port=settings.api_port,
        sources=[s.name for s in ctx.aggregator.sources],
    )

    yield

    await ctx.channel.stop()
    stop_sweeper.set()
    try:
        await sweeper_task
    except asyncio.CancelledError:
        pass
    await ctx.aggregator.close()
    logger.info("api_service_stopped")


def create_app(*, use_lifespan: bool = True, context: Optional[AppContext] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Passing a context (tests) installs it directly and disables the lifespan.
    """
    if context is not None:
        init_dependencies(context)
        use_lifespan = False

    app = FastAPI(
        title="Diamond Score API",
        description="Live baseball scores aggregated from multiple upstream sources",
        version="1.0.0",
        lifespan=lifespan if use_lifespan else _noop_lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    setup_middleware(app, context.settings if context is not None else None)

    app.include_router(scores_router)
    app.include_router(live_router)
    app.include_router(health_router)
    app.include_router(games_router)
    app.include_router(standings_router)
    app.include_router(rankings_router)
    app.include_router(schedule_router)

    return app


# For running with uvicorn directly
app = create_app()
