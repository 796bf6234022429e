"""Administrator maintenance endpoints."""
import hmac
import logging

from fastapi import APIRouter, Depends, Header, HTTPException

from api.dependencies import get_settings, get_storage
from core.config import Settings
from core.logging import redact
from schemas.admin import RemapResult, RemapUserRequest
from services.storage import StorageBackend

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


async def require_admin(
    admin_token: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Admin endpoints exist only when ADMIN_TOKEN is configured."""
    if not settings.admin_token:
        raise HTTPException(status_code=404, detail="Not found")
    if admin_token is None or not hmac.compare_digest(admin_token, settings.admin_token):
        logger.warning("admin_token_rejected")
        raise HTTPException(status_code=403, detail="Invalid admin token")


@router.post("/remap-user", response_model=RemapResult, dependencies=[Depends(require_admin)])
async def remap_user(
    data: RemapUserRequest,
    storage: StorageBackend = Depends(get_storage),
) -> RemapResult:
    """
    Move all data of one user id to another.

    Used after rotating SESSION_SECRET: the operator logs in under the new
    secret to learn the new id, then remaps the old id onto it.
    """
    logger.info(
        "admin_remap_requested",
        extra={"source": redact(data.source_user_id), "target": redact(data.target_user_id)},
    )
    return await storage.remap_user(data.source_user_id, data.target_user_id)
