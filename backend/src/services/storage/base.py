"""
Storage backend contract and the policies every backend shares.

All entity operations are scoped by an explicit user id; a row owned by another
user behaves exactly like a missing row. Settings are the one global exception.
"""
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime, timedelta

from core.exceptions import ReservedNameError
from models.base import utcnow
from schemas.admin import RemapResult
from schemas.clipboard import ClipboardItemCreate, ClipboardItemRecord
from schemas.folder import FolderCreate, FolderRecord, is_reserved_folder_name
from schemas.settings import SettingsRecord, SettingsUpdate
from schemas.snippet import SnippetCreate, SnippetRecord, SnippetUpdate

# Identical clipboard events inside this window are treated as one
CLIPBOARD_DEDUPE_WINDOW = timedelta(seconds=5)

Clock = Callable[[], datetime]


def check_folder_name(name: str) -> None:
    """Reject the reserved default folder name for create and rename."""
    if is_reserved_folder_name(name):
        raise ReservedNameError


def folder_sort_key(folder: FolderRecord) -> tuple[int, str]:
    """Folders list by sort order, then name."""
    return (folder.sort_order, folder.name.lower())


class StorageBackend(ABC):
    """Interface implemented by the PostgreSQL, SQLite, file, and memory backends."""

    name: str = "abstract"

    def __init__(self, clock: Clock = utcnow) -> None:
        self._clock = clock

    def now(self) -> datetime:
        """Current time from the injected clock (UTC)."""
        return self._clock()

    async def initialize(self) -> None:  # noqa: B027
        """Prepare the backend (run migrations, load files). Called once at startup."""

    async def close(self) -> None:  # noqa: B027
        """Release connections and file handles."""

    @abstractmethod
    async def ping(self) -> bool:
        """Whether the backend is currently reachable."""

    # Folders

    @abstractmethod
    async def list_folders(self, user_id: str) -> list[FolderRecord]:
        """All folders of the user, ensuring the General folder exists first."""

    @abstractmethod
    async def get_folder(self, folder_id: int, user_id: str) -> FolderRecord | None:
        """A single folder, or None if missing or not owned by the user."""

    @abstractmethod
    async def create_folder(self, data: FolderCreate, user_id: str) -> FolderRecord:
        """Create a folder; raises ReservedNameError or DuplicateNameError."""

    @abstractmethod
    async def rename_folder(self, folder_id: int, name: str, user_id: str) -> FolderRecord | None:
        """Rename a folder; None if missing. General cannot be renamed."""

    @abstractmethod
    async def delete_folder(self, folder_id: int, user_id: str) -> bool:
        """Delete a folder after moving its snippets to General; raises ReservedFolderError."""

    @abstractmethod
    async def ensure_general_folder(self, user_id: str) -> FolderRecord:
        """Return the user's General folder, creating it if missing."""

    # Snippets

    @abstractmethod
    async def list_snippets(self, user_id: str) -> list[SnippetRecord]:
        """All snippets of the user, most recently updated first."""

    @abstractmethod
    async def get_snippet(self, snippet_id: int, user_id: str) -> SnippetRecord | None:
        """A single snippet, or None if missing or not owned by the user."""

    @abstractmethod
    async def get_snippet_by_trigger(self, trigger: str, user_id: str) -> SnippetRecord | None:
        """The user's snippet with this trigger, if any."""

    @abstractmethod
    async def create_snippet(self, data: SnippetCreate, user_id: str) -> SnippetRecord:
        """Create a snippet; raises ValidationError or DuplicateTriggerError."""

    @abstractmethod
    async def update_snippet(
        self, snippet_id: int, data: SnippetUpdate, user_id: str,
    ) -> SnippetRecord | None:
        """Apply the provided fields; None if the snippet is missing."""

    @abstractmethod
    async def delete_snippet(self, snippet_id: int, user_id: str) -> bool:
        """Delete a snippet. Returns whether it existed."""

    # Clipboard

    @abstractmethod
    async def list_clipboard_items(self, user_id: str) -> list[ClipboardItemRecord]:
        """The user's clipboard history, newest first."""

    @abstractmethod
    async def create_clipboard_item(
        self, data: ClipboardItemCreate, user_id: str,
    ) -> ClipboardItemRecord:
        """Record a clipboard event, suppressing duplicates and trimming history."""

    @abstractmethod
    async def delete_clipboard_item(self, item_id: int, user_id: str) -> bool:
        """Delete one history item. Returns whether it existed."""

    @abstractmethod
    async def clear_clipboard_history(self, user_id: str) -> int:
        """Delete the user's whole history. Returns the number of items removed."""

    # Settings

    @abstractmethod
    async def get_settings(self) -> SettingsRecord:
        """The global settings row, created with defaults on first read."""

    @abstractmethod
    async def update_settings(self, data: SettingsUpdate) -> SettingsRecord:
        """Apply the provided settings fields."""

    # Administration

    @abstractmethod
    async def remap_user(self, source_user_id: str, target_user_id: str) -> RemapResult:
        """Move every folder, snippet, and clipboard item of one user id to another."""
