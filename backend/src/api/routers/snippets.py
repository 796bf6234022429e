"""Snippet CRUD endpoints."""
from fastapi import APIRouter, Depends

from api.dependencies import get_current_user_id, get_storage
from core.exceptions import NotFoundError
from schemas.snippet import SnippetCreate, SnippetRecord, SnippetUpdate
from services.storage import StorageBackend

router = APIRouter(prefix="/snippets", tags=["snippets"])


@router.get("/", response_model=list[SnippetRecord])
async def list_snippets(
    user_id: str = Depends(get_current_user_id),
    storage: StorageBackend = Depends(get_storage),
) -> list[SnippetRecord]:
    """List the user's snippets, most recently updated first."""
    return await storage.list_snippets(user_id)


@router.post("/", response_model=SnippetRecord, status_code=201)
async def create_snippet(
    data: SnippetCreate,
    user_id: str = Depends(get_current_user_id),
    storage: StorageBackend = Depends(get_storage),
) -> SnippetRecord:
    """Create a snippet."""
    return await storage.create_snippet(data, user_id)


@router.get("/trigger/{trigger:path}", response_model=SnippetRecord)
async def get_snippet_by_trigger(
    trigger: str,
    user_id: str = Depends(get_current_user_id),
    storage: StorageBackend = Depends(get_storage),
) -> SnippetRecord:
    """Look up the snippet a trigger expands to."""
    snippet = await storage.get_snippet_by_trigger(trigger, user_id)
    if snippet is None:
        raise NotFoundError("Snippet not found")
    return snippet


@router.get("/{snippet_id}", response_model=SnippetRecord)
async def get_snippet(
    snippet_id: int,
    user_id: str = Depends(get_current_user_id),
    storage: StorageBackend = Depends(get_storage),
) -> SnippetRecord:
    """Get a single snippet by ID."""
    snippet = await storage.get_snippet(snippet_id, user_id)
    if snippet is None:
        raise NotFoundError("Snippet not found")
    return snippet


@router.put("/{snippet_id}", response_model=SnippetRecord)
async def update_snippet(
    snippet_id: int,
    data: SnippetUpdate,
    user_id: str = Depends(get_current_user_id),
    storage: StorageBackend = Depends(get_storage),
) -> SnippetRecord:
    """Update the provided fields of a snippet."""
    snippet = await storage.update_snippet(snippet_id, data, user_id)
    if snippet is None:
        raise NotFoundError("Snippet not found")
    return snippet


@router.delete("/{snippet_id}", status_code=204)
async def delete_snippet(
    snippet_id: int,
    user_id: str = Depends(get_current_user_id),
    storage: StorageBackend = Depends(get_storage),
) -> None:
    """Delete a snippet."""
    deleted = await storage.delete_snippet(snippet_id, user_id)
    if not deleted:
        raise NotFoundError("Snippet not found")
