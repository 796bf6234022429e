"""Folder CRUD endpoints."""
from fastapi import APIRouter, Depends

from api.dependencies import get_current_user_id, get_storage
from core.exceptions import NotFoundError
from schemas.folder import FolderCreate, FolderRecord, FolderRename
from services.storage import StorageBackend

router = APIRouter(prefix="/folders", tags=["folders"])


@router.get("/", response_model=list[FolderRecord])
async def list_folders(
    user_id: str = Depends(get_current_user_id),
    storage: StorageBackend = Depends(get_storage),
) -> list[FolderRecord]:
    """List the user's folders. The General folder is created on first access."""
    return await storage.list_folders(user_id)


@router.post("/", response_model=FolderRecord, status_code=201)
async def create_folder(
    data: FolderCreate,
    user_id: str = Depends(get_current_user_id),
    storage: StorageBackend = Depends(get_storage),
) -> FolderRecord:
    """Create a folder."""
    return await storage.create_folder(data, user_id)


@router.get("/{folder_id}", response_model=FolderRecord)
async def get_folder(
    folder_id: int,
    user_id: str = Depends(get_current_user_id),
    storage: StorageBackend = Depends(get_storage),
) -> FolderRecord:
    """Get a single folder by ID."""
    folder = await storage.get_folder(folder_id, user_id)
    if folder is None:
        raise NotFoundError("Folder not found")
    return folder


@router.put("/{folder_id}", response_model=FolderRecord)
async def rename_folder(
    folder_id: int,
    data: FolderRename,
    user_id: str = Depends(get_current_user_id),
    storage: StorageBackend = Depends(get_storage),
) -> FolderRecord:
    """Rename a folder."""
    folder = await storage.rename_folder(folder_id, data.name, user_id)
    if folder is None:
        raise NotFoundError("Folder not found")
    return folder


@router.delete("/{folder_id}", status_code=204)
async def delete_folder(
    folder_id: int,
    user_id: str = Depends(get_current_user_id),
    storage: StorageBackend = Depends(get_storage),
) -> None:
    """Delete a folder; its snippets move to General."""
    deleted = await storage.delete_folder(folder_id, user_id)
    if not deleted:
        raise NotFoundError("Folder not found")
