"""Pydantic schemas for folder endpoints and storage records."""
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from schemas.common import ensure_utc, require_non_empty

GENERAL_FOLDER_NAME = "General"


def is_reserved_folder_name(name: str) -> bool:
    """'General' is reserved for the default folder, case-insensitively."""
    return name.strip().lower() == GENERAL_FOLDER_NAME.lower()


class FolderCreate(BaseModel):
    """Schema for creating a folder."""

    name: str = Field(min_length=1, max_length=100)
    sort_order: int = Field(default=0, ge=0, le=9999)

    @field_validator("name")
    @classmethod
    def clean_name(cls, v: str) -> str:
        """Strip control characters."""
        return require_non_empty(v, "Folder name")


class FolderRename(BaseModel):
    """Schema for renaming a folder."""

    name: str = Field(min_length=1, max_length=100)

    @field_validator("name")
    @classmethod
    def clean_name(cls, v: str) -> str:
        """Strip control characters."""
        return require_non_empty(v, "Folder name")


class FolderRecord(BaseModel):
    """A stored folder, as returned by every storage backend."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    user_id: str
    sort_order: int = 0
    created_at: datetime
    updated_at: datetime

    @field_validator("sort_order", mode="before")
    @classmethod
    def default_sort_order(cls, v: int | None) -> int:
        """Legacy rows may carry a null sort order."""
        return 0 if v is None else v

    @field_validator("created_at", "updated_at")
    @classmethod
    def as_utc(cls, v: datetime) -> datetime:
        """Normalize timestamps to UTC."""
        return ensure_utc(v)

    @property
    def is_general(self) -> bool:
        """Whether this is the user's default folder."""
        return self.name == GENERAL_FOLDER_NAME
