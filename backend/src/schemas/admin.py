"""Schemas for administrator maintenance operations."""
from pydantic import BaseModel, Field


class RemapUserRequest(BaseModel):
    """Move all data of one derived user id to another."""

    source_user_id: str = Field(min_length=1)
    target_user_id: str = Field(min_length=1)


class RemapResult(BaseModel):
    """Counts of what remap_user moved, merged, or skipped."""

    source_user_id: str
    target_user_id: str
    folders_moved: int = 0
    folders_merged: int = 0
    snippets_moved: int = 0
    clipboard_items_moved: int = 0
    skipped_triggers: list[str] = []
