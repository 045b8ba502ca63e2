"""
Health check router with database and cache connectivity verification.
"""
import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import redis

from backoffice.core.cache import CacheBackend, RedisCache, get_cache
from backoffice.db.session import get_db

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Basic health check - always returns OK."""
    return {"status": "ok"}


@router.get("/api/health")
def api_health_check(db: Session = Depends(get_db), cache: CacheBackend = Depends(get_cache)):
    """
    Comprehensive health check verifying:
    - Database connectivity
    - Redis connectivity (when the Redis backend is configured)

    Returns 503 if the database is down. The cache is reported but never
    fails the check: reads fall back to the database.
    """
    health_status = {
        "status": "ok",
        "services": {}
    }
    is_healthy = True

    try:
        db.execute(text("SELECT 1"))
        health_status["services"]["database"] = {"status": "ok"}
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        health_status["services"]["database"] = {"status": "error", "message": str(e)}
        is_healthy = False

    if isinstance(cache, RedisCache):
        try:
            cache.client.ping()
            health_status["services"]["cache"] = {"status": "ok", "backend": "redis"}
        except redis.RedisError as e:
            health_status["services"]["cache"] = {"status": "unavailable", "backend": "redis", "message": str(e)}
    else:
        health_status["services"]["cache"] = {"status": "ok", "backend": "memory"}

    if not is_healthy:
        health_status["status"] = "unhealthy"
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=health_status
        )

    return health_status
