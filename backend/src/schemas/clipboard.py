"""Pydantic schemas for clipboard history."""
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from schemas.common import ensure_utc, require_non_empty

ClipboardType = Literal["text", "url", "code"]


class ClipboardItemCreate(BaseModel):
    """Schema for recording a clipboard event."""

    content: str = Field(min_length=1, max_length=100_000)
    type: ClipboardType = "text"

    @field_validator("content")
    @classmethod
    def clean_content(cls, v: str) -> str:
        """Strip control characters."""
        return require_non_empty(v, "Content", multiline=True)


class ClipboardItemRecord(BaseModel):
    """A stored clipboard item, as returned by every storage backend."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    content: str
    type: str = "text"
    user_id: str
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def as_utc(cls, v: datetime) -> datetime:
        """Normalize timestamps to UTC."""
        return ensure_utc(v)


class ClearHistoryResponse(BaseModel):
    """Result of clearing a user's clipboard history."""

    deleted: int
