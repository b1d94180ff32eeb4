"""
Health check endpoint.
Verifies object storage and Redis connectivity.
"""
import asyncio

from fastapi import APIRouter, Depends, HTTPException
import redis

from tododiary.api.deps import get_registry
from tododiary.config import settings
from tododiary.storage.client import StorageRegistry

router = APIRouter()


def _ping_redis() -> None:
    r = redis.from_url(settings.redis_url, socket_connect_timeout=2)
    r.ping()


@router.get("")
async def health_check(registry: StorageRegistry = Depends(get_registry)):
    """
    Health check endpoint.
    Returns status of the object store and Redis (Celery broker).
    """
    storage = registry.diaries
    health_status = {
        "status": "healthy",
        "storage": "unknown",
        "storage_backend": storage.backend,
        "redis": "unknown"
    }

    # Check object store
    result = await asyncio.to_thread(storage.check_bucket)
    if result.error:
        health_status["storage"] = f"error: {result.error}"
        health_status["status"] = "unhealthy"
    else:
        health_status["storage"] = "connected"

    # Check Redis
    try:
        await asyncio.to_thread(_ping_redis)
        health_status["redis"] = "connected"
    except Exception as e:
        health_status["redis"] = f"error: {str(e)}"
        health_status["status"] = "unhealthy"

    if health_status["status"] == "unhealthy":
        raise HTTPException(status_code=503, detail=health_status)

    return health_status
