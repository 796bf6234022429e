"""Pydantic schemas for the global settings row."""
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from schemas.common import sanitize_text

SHORTCUT_PATTERN = r"^[a-zA-Z0-9+\-;':,.<>/?]+$"

DEFAULT_SETTINGS: dict[str, Any] = {
    "snippet_shortcut": "ctrl+;",
    "clipboard_shortcut": "ctrl+shift+v",
    "clipboard_enabled": True,
    "history_limit": 100,
    "launch_on_startup": False,
    "theme": "light",
}


class SettingsRecord(BaseModel):
    """The stored settings row."""

    model_config = ConfigDict(from_attributes=True)

    id: int = 1
    snippet_shortcut: str = DEFAULT_SETTINGS["snippet_shortcut"]
    clipboard_shortcut: str = DEFAULT_SETTINGS["clipboard_shortcut"]
    clipboard_enabled: bool = DEFAULT_SETTINGS["clipboard_enabled"]
    history_limit: int = DEFAULT_SETTINGS["history_limit"]
    launch_on_startup: bool = DEFAULT_SETTINGS["launch_on_startup"]
    theme: str = DEFAULT_SETTINGS["theme"]


class SettingsUpdate(BaseModel):
    """Partial settings update; omitted fields are left unchanged."""

    snippet_shortcut: str | None = Field(default=None, min_length=1, max_length=20, pattern=SHORTCUT_PATTERN)
    clipboard_shortcut: str | None = Field(default=None, min_length=1, max_length=20, pattern=SHORTCUT_PATTERN)
    clipboard_enabled: bool | None = None
    history_limit: int | None = Field(default=None, ge=1, le=1000)
    launch_on_startup: bool | None = None
    theme: Literal["light", "dark"] | None = None

    @field_validator("snippet_shortcut", "clipboard_shortcut")
    @classmethod
    def clean_shortcut(cls, v: str | None) -> str | None:
        """Strip control characters."""
        return sanitize_text(v) if v is not None else None

    def changes(self) -> dict[str, Any]:
        """Provided fields. Every settings column is required, so nulls are dropped."""
        return {
            key: value
            for key, value in self.model_dump(exclude_unset=True).items()
            if value is not None
        }
