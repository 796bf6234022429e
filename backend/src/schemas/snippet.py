"""Pydantic schemas for snippet endpoints and storage records."""
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from schemas.common import ensure_utc, require_non_empty, sanitize_text

TRIGGER_PATTERN = r"^[a-zA-Z0-9\-_/.]+$"


class SnippetCreate(BaseModel):
    """Schema for creating a snippet."""

    title: str = Field(min_length=1, max_length=200)
    content: str = Field(min_length=1, max_length=50_000)
    trigger: str = Field(min_length=1, max_length=50, pattern=TRIGGER_PATTERN)
    description: str | None = Field(default=None, max_length=500)
    folder_id: int | None = Field(default=None, gt=0)

    @field_validator("title")
    @classmethod
    def clean_title(cls, v: str) -> str:
        """Strip control characters."""
        return require_non_empty(v, "Title")

    @field_validator("content")
    @classmethod
    def clean_content(cls, v: str) -> str:
        """Strip control characters."""
        return require_non_empty(v, "Content", multiline=True)

    @field_validator("description")
    @classmethod
    def clean_description(cls, v: str | None) -> str | None:
        """Strip control characters; blank descriptions become None."""
        if v is None:
            return None
        return sanitize_text(v, multiline=True) or None


class SnippetUpdate(BaseModel):
    """
    Schema for partially updating a snippet.

    Only fields present in the payload are applied. Sending `"folder_id": null`
    unassigns the snippet and `"description": null` clears the description;
    omitting them leaves the stored values untouched.
    """

    title: str | None = Field(default=None, min_length=1, max_length=200)
    content: str | None = Field(default=None, min_length=1, max_length=50_000)
    trigger: str | None = Field(default=None, min_length=1, max_length=50, pattern=TRIGGER_PATTERN)
    description: str | None = Field(default=None, max_length=500)
    folder_id: int | None = Field(default=None, gt=0)

    @field_validator("title", "content", "trigger")
    @classmethod
    def reject_null_required(cls, v: str | None, info: ValidationInfo) -> str:
        """Required columns can be changed but not cleared."""
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return require_non_empty(
            v, info.field_name.capitalize(), multiline=info.field_name == "content",
        )

    @field_validator("description")
    @classmethod
    def clean_description(cls, v: str | None) -> str | None:
        """Strip control characters; blank descriptions become None."""
        if v is None:
            return None
        return sanitize_text(v, multiline=True) or None

    def changes(self) -> dict[str, Any]:
        """Fields explicitly provided by the caller, including explicit nulls."""
        return self.model_dump(exclude_unset=True)


class SnippetRecord(BaseModel):
    """A stored snippet, as returned by every storage backend."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    content: str
    trigger: str
    description: str | None = None
    folder_id: int | None = None
    user_id: str
    created_at: datetime
    updated_at: datetime

    @field_validator("created_at", "updated_at")
    @classmethod
    def as_utc(cls, v: datetime) -> datetime:
        """Normalize timestamps to UTC."""
        return ensure_utc(v)
