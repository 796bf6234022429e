"""Application settings endpoints."""
from fastapi import APIRouter, Depends

from api.dependencies import get_current_user_id, get_storage
from schemas.settings import SettingsRecord, SettingsUpdate
from services.storage import StorageBackend

router = APIRouter(
    prefix="/settings",
    tags=["settings"],
    dependencies=[Depends(get_current_user_id)],
)


@router.get("/", response_model=SettingsRecord)
async def get_settings(storage: StorageBackend = Depends(get_storage)) -> SettingsRecord:
    """The global settings row (shared by all users)."""
    return await storage.get_settings()


@router.put("/", response_model=SettingsRecord)
async def update_settings(
    data: SettingsUpdate,
    storage: StorageBackend = Depends(get_storage),
) -> SettingsRecord:
    """Update the provided settings fields."""
    return await storage.update_settings(data)
