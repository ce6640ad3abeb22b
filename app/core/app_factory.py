from __future__ import annotations

"""Application factory for FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers and the
rate limiter lifecycle) to improve testability.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.adapters.rate_limit.base import AbstractCounterStore
from app.adapters.rate_limit.factory import create_counter_store
from app.api.routes import health_router, public_router
from app.core.config import Settings, settings as default_settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import request_id_middleware
from app.services.rate_limiter import RateLimiter
from app.services.sweeper import CleanupSweeper


def create_app(
    cfg: Settings | None = None,
    *,
    store: AbstractCounterStore | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    The counter store, limiter and sweeper are built here and attached to
    ``app.state`` instead of living in module globals.

    Args:
        cfg: Settings to use; defaults to the global settings.
        store: Counter store override (tests, custom backends).

    Returns:
        Configured FastAPI app with middleware, handlers and routers.
    """
    cfg = cfg or default_settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log, debug=cfg.app.debug)

    counter_store = store or create_counter_store(cfg)
    limiter = RateLimiter(counter_store)
    sweeper = CleanupSweeper(
        counter_store,
        interval_seconds=cfg.rate_limit.sweep_interval_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        sweeper.start()
        try:
            yield
        finally:
            await sweeper.stop()
            await counter_store.close()

    app = FastAPI(
        title="Marketplace API",
        description=(
            "Multi-tenant marketplace API. Public routes are protected by a "
            "fixed-window rate limiter reporting X-RateLimit-* headers."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.settings = cfg
    app.state.rate_limiter = limiter
    app.state.sweeper = sweeper

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(public_router, prefix="/v1")
    app.include_router(health_router)

    return app
