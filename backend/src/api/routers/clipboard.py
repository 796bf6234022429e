"""Clipboard history endpoints."""
from fastapi import APIRouter, Depends

from api.dependencies import get_current_user_id, get_storage
from core.exceptions import NotFoundError
from schemas.clipboard import ClearHistoryResponse, ClipboardItemCreate, ClipboardItemRecord
from services.storage import StorageBackend

router = APIRouter(prefix="/clipboard", tags=["clipboard"])


@router.get("/", response_model=list[ClipboardItemRecord])
async def list_clipboard_items(
    user_id: str = Depends(get_current_user_id),
    storage: StorageBackend = Depends(get_storage),
) -> list[ClipboardItemRecord]:
    """The user's clipboard history, newest first."""
    return await storage.list_clipboard_items(user_id)


@router.post("/", response_model=ClipboardItemRecord, status_code=201)
async def create_clipboard_item(
    data: ClipboardItemCreate,
    user_id: str = Depends(get_current_user_id),
    storage: StorageBackend = Depends(get_storage),
) -> ClipboardItemRecord:
    """
    Record a clipboard event.

    Repeating the same content within a few seconds returns the existing item
    instead of adding a new one.
    """
    return await storage.create_clipboard_item(data, user_id)


@router.delete("/", response_model=ClearHistoryResponse)
async def clear_clipboard_history(
    user_id: str = Depends(get_current_user_id),
    storage: StorageBackend = Depends(get_storage),
) -> ClearHistoryResponse:
    """Delete the user's whole clipboard history."""
    return ClearHistoryResponse(deleted=await storage.clear_clipboard_history(user_id))


@router.delete("/{item_id}", status_code=204)
async def delete_clipboard_item(
    item_id: int,
    user_id: str = Depends(get_current_user_id),
    storage: StorageBackend = Depends(get_storage),
) -> None:
    """Delete one clipboard item."""
    deleted = await storage.delete_clipboard_item(item_id, user_id)
    if not deleted:
        raise NotFoundError("Clipboard item not found")
