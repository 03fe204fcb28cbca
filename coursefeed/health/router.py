"""Health check endpoints."""

from fastapi import APIRouter, Request, status
from fastapi.responses import ORJSONResponse
from redis.exceptions import RedisError

from coursefeed.config import get_settings
from coursefeed.core.database import AsyncCassandraConnection
from coursefeed.core.logging import get_logger
from coursefeed.core.redis import get_redis


logger = get_logger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


async def _redis_status() -> str:
    client = get_redis()
    if client is None:
        return "disabled"
    try:
        await client.ping()
    except RedisError as e:
        logger.warning("health_redis_ping_failed", error=str(e))
        return "unavailable"
    return "ok"


@router.get("/live")
async def liveness() -> dict[str, str]:
    """Liveness probe - checks if the application is running."""
    return {"status": "alive"}


@router.get("/ready")
async def readiness(request: Request) -> ORJSONResponse:
    """Readiness probe.

    Cassandra and the session registry are required; Redis only backs
    the comment cache, so its absence degrades but does not fail.
    """
    settings = get_settings()
    cassandra_ok = AsyncCassandraConnection.is_connected()
    registry_ok = getattr(request.app.state, "feed_registry", None) is not None
    ready = cassandra_ok and registry_ok
    sessions = len(request.app.state.feed_registry) if registry_ok else 0

    return ORJSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if ready else "not_ready",
            "environment": settings.environment,
            "cassandra": "ok" if cassandra_ok else "unavailable",
            "redis": await _redis_status(),
            "feed_sessions": sessions,
        },
    )


@router.get("")
async def health() -> dict[str, str]:
    """General health check endpoint."""
    settings = get_settings()
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }
