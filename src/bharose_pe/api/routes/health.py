"""Health check endpoint.

Verifies connectivity to the database and Redis, returns structured status.
Used by Docker healthchecks, load balancers, and monitoring systems.
"""

from __future__ import annotations

from fastapi import APIRouter
from sqlalchemy import text

from bharose_pe.logging_config import get_logger
from bharose_pe.schemas.notifications import HealthResponse

router = APIRouter(tags=["Health"])
logger = get_logger(__name__)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Returns the health status of the application and its dependencies.",
)
async def health_check() -> HealthResponse:
    """Check connectivity to the database and Redis.

    Redis only backs the change feed, so its absence degrades the service
    rather than failing it.
    """
    db_status = "unknown"
    redis_status = "unknown"

    try:
        from bharose_pe.infrastructure.database.engine import _get_engine

        engine = _get_engine()
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        db_status = "healthy"
    except Exception as exc:
        db_status = "unhealthy"
        logger.error("health.db_check_failed", error=str(exc))

    try:
        from bharose_pe.infrastructure.redis_client import get_redis

        redis = get_redis()
        await redis.ping()
        redis_status = "healthy"
    except Exception as exc:
        redis_status = "unhealthy"
        logger.error("health.redis_check_failed", error=str(exc))

    overall = "ok" if db_status == "healthy" and redis_status == "healthy" else "degraded"

    return HealthResponse(
        status=overall,
        version="0.1.0",
        database=db_status,
        redis=redis_status,
    )
