"""FastAPI application entry point for Bharose Pe.

Lifecycle:
    1. Startup: Initialize logging, database, Redis, create tables (dev mode).
    2. Running: Serve the REST API on a single Uvicorn process.
    3. Shutdown: Close database and Redis connections gracefully.

Run with:
    uvicorn bharose_pe.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from bharose_pe.config import get_settings
from bharose_pe.logging_config import get_logger, setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    settings = get_settings()

    # 1. Setup structured logging
    setup_logging(
        log_level=settings.app_log_level,
        json_logs=not settings.is_development,
    )
    logger = get_logger(__name__)
    logger.info(
        "app.starting",
        env=settings.app_env,
        debug=settings.app_debug,
    )

    # 2. Initialize database
    from bharose_pe.infrastructure.database.engine import close_db, init_db

    await init_db()

    # 3. Initialize Redis (change feed only; the API works without it)
    from bharose_pe.infrastructure.redis_client import close_redis, init_redis

    try:
        await init_redis()
    except Exception as exc:
        logger.warning("app.redis_unavailable", error=str(exc))

    logger.info("app.started", host=settings.app_host, port=settings.app_port)

    yield

    # Shutdown
    logger.info("app.shutting_down")
    await close_db()
    await close_redis()
    logger.info("app.stopped")


def create_app() -> FastAPI:
    """Application factory: creates and configures the FastAPI app."""
    settings = get_settings()

    app = FastAPI(
        title="Bharose Pe",
        description="Escrow transaction lifecycle and dispute resolution service.",
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # --- Middleware ---
    from bharose_pe.api.middleware import setup_middleware

    setup_middleware(app)

    # --- REST API Routes ---
    from bharose_pe.api.routes.disputes import router as disputes_router
    from bharose_pe.api.routes.escalations import router as escalations_router
    from bharose_pe.api.routes.health import router as health_router
    from bharose_pe.api.routes.notifications import router as notifications_router
    from bharose_pe.api.routes.transactions import router as transactions_router

    app.include_router(health_router)
    app.include_router(transactions_router)
    app.include_router(disputes_router)
    app.include_router(escalations_router)
    app.include_router(notifications_router)

    return app


# The app instance used by Uvicorn
app = create_app()
