"""Health check endpoints."""
import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from api.dependencies import get_session_store, get_storage
from core.redis import get_redis_client
from core.sessions import RedisSessionStore, SessionStore
from services.storage import StorageBackend

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    storage: str
    backend: str
    redis: str


async def check_redis_health() -> str:
    """Check Redis connectivity. Returns 'connected', 'unavailable', or 'disabled'."""
    redis_client = get_redis_client()
    if redis_client is None:
        return "disabled"
    if await redis_client.ping():
        return "connected"
    return "unavailable"


@router.get("/health", response_model=HealthResponse)
async def health_check(
    storage: StorageBackend = Depends(get_storage),
    store: SessionStore = Depends(get_session_store),
) -> HealthResponse:
    """
    Check application and storage health.

    Redis only matters when it backs the session store; otherwise its status is
    informational and never degrades the result.
    """
    storage_status = "healthy" if await storage.ping() else "unhealthy"
    if storage_status == "unhealthy":
        logger.error("storage_health_check_failed", extra={"backend": storage.name})

    redis_status = await check_redis_health()
    redis_required = isinstance(store, RedisSessionStore)

    healthy = storage_status == "healthy" and (not redis_required or redis_status == "connected")
    return HealthResponse(
        status="healthy" if healthy else "degraded",
        storage=storage_status,
        backend=storage.name,
        redis=redis_status,
    )
