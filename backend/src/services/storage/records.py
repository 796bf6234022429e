"""
Shared implementation for backends that hold every record in Python dicts.

MemoryStorage keeps them for the life of the process; FileStorage mirrors them
to JSON files through the `_persist` hook after each mutation. Mutations are
serialized by an asyncio lock so a persist never interleaves with another write,
and a mutation whose persist fails leaves the in-memory tables untouched.
"""
import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from core.exceptions import (
    DuplicateNameError,
    DuplicateTriggerError,
    ReservedFolderError,
    ReservedNameError,
    ValidationError,
)
from core.logging import redact
from models.base import utcnow
from schemas.admin import RemapResult
from schemas.clipboard import ClipboardItemCreate, ClipboardItemRecord
from schemas.folder import GENERAL_FOLDER_NAME, FolderCreate, FolderRecord
from schemas.settings import SettingsRecord, SettingsUpdate
from schemas.snippet import SnippetCreate, SnippetRecord, SnippetUpdate
from services.storage.base import (
    CLIPBOARD_DEDUPE_WINDOW,
    Clock,
    StorageBackend,
    check_folder_name,
    folder_sort_key,
)

logger = logging.getLogger(__name__)

FOLDERS = "folders"
SNIPPETS = "snippets"
CLIPBOARD = "clipboard"
SETTINGS = "settings"


def _next_id(table: dict[int, object]) -> int:
    return max(table, default=0) + 1


class RecordStorage(StorageBackend):
    """Storage backend over in-process dicts of pydantic records."""

    def __init__(self, clock: Clock = utcnow) -> None:
        super().__init__(clock)
        self._lock = asyncio.Lock()
        self._folders: dict[int, FolderRecord] = {}
        self._snippets: dict[int, SnippetRecord] = {}
        self._clipboard: dict[int, ClipboardItemRecord] = {}
        self._settings: SettingsRecord | None = None

    async def _persist(self, *tables: str) -> None:
        """Make the given tables durable. No-op for purely in-memory storage."""

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[None]:
        """
        Serialize a mutation and undo its in-memory changes if it fails.

        Mutations replace records with `model_copy` instead of editing them,
        so shallow copies of the tables are enough to restore the prior state.
        """
        async with self._lock:
            snapshot = (
                dict(self._folders),
                dict(self._snippets),
                dict(self._clipboard),
                self._settings,
            )
            try:
                yield
            except Exception:
                self._folders, self._snippets, self._clipboard, self._settings = snapshot
                raise

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------

    def _owned_folder(self, folder_id: int | None, user_id: str) -> FolderRecord | None:
        folder = self._folders.get(folder_id)
        if folder is None or folder.user_id != user_id:
            return None
        return folder

    def _find_general(self, user_id: str) -> FolderRecord | None:
        return next(
            (
                f for f in sorted(self._folders.values(), key=lambda f: f.id)
                if f.user_id == user_id and f.name == GENERAL_FOLDER_NAME
            ),
            None,
        )

    def _folder_name_taken(self, name: str, user_id: str, exclude_id: int | None = None) -> bool:
        return any(
            f.user_id == user_id and f.name == name and f.id != exclude_id
            for f in self._folders.values()
        )

    async def _ensure_general_locked(self, user_id: str) -> FolderRecord:
        general = self._find_general(user_id)
        if general is not None:
            return general
        now = self.now()
        general = FolderRecord(
            id=_next_id(self._folders),
            name=GENERAL_FOLDER_NAME,
            user_id=user_id,
            sort_order=0,
            created_at=now,
            updated_at=now,
        )
        self._folders[general.id] = general
        await self._persist(FOLDERS)
        logger.info(
            "general_folder_created",
            extra={"user_id": redact(user_id), "backend": self.name},
        )
        return general

    async def ensure_general_folder(self, user_id: str) -> FolderRecord:
        async with self._transaction():
            return await self._ensure_general_locked(user_id)

    async def list_folders(self, user_id: str) -> list[FolderRecord]:
        await self.ensure_general_folder(user_id)
        return sorted(
            (f for f in self._folders.values() if f.user_id == user_id),
            key=folder_sort_key,
        )

    async def get_folder(self, folder_id: int, user_id: str) -> FolderRecord | None:
        return self._owned_folder(folder_id, user_id)

    async def create_folder(self, data: FolderCreate, user_id: str) -> FolderRecord:
        check_folder_name(data.name)
        async with self._transaction():
            if self._folder_name_taken(data.name, user_id):
                raise DuplicateNameError
            now = self.now()
            folder = FolderRecord(
                id=_next_id(self._folders),
                name=data.name,
                user_id=user_id,
                sort_order=data.sort_order,
                created_at=now,
                updated_at=now,
            )
            self._folders[folder.id] = folder
            await self._persist(FOLDERS)
            return folder

    async def rename_folder(self, folder_id: int, name: str, user_id: str) -> FolderRecord | None:
        check_folder_name(name)
        async with self._transaction():
            folder = self._owned_folder(folder_id, user_id)
            if folder is None:
                return None
            if folder.is_general:
                raise ReservedNameError("Cannot rename the 'General' folder")
            if folder.name == name:
                return folder
            if self._folder_name_taken(name, user_id, exclude_id=folder_id):
                raise DuplicateNameError
            renamed = folder.model_copy(update={"name": name, "updated_at": self.now()})
            self._folders[folder_id] = renamed
            await self._persist(FOLDERS)
            return renamed

    async def delete_folder(self, folder_id: int, user_id: str) -> bool:
        async with self._transaction():
            folder = self._owned_folder(folder_id, user_id)
            if folder is None:
                return False
            if folder.is_general:
                raise ReservedFolderError
            general = await self._ensure_general_locked(user_id)
            now = self.now()
            moved = 0
            for snippet in list(self._snippets.values()):
                if snippet.user_id == user_id and snippet.folder_id == folder_id:
                    self._snippets[snippet.id] = snippet.model_copy(
                        update={"folder_id": general.id, "updated_at": now},
                    )
                    moved += 1
            del self._folders[folder_id]
            await self._persist(SNIPPETS, FOLDERS)
        logger.info(
            "folder_deleted",
            extra={"user_id": redact(user_id), "snippets_moved": moved, "backend": self.name},
        )
        return True

    # ------------------------------------------------------------------
    # Snippets
    # ------------------------------------------------------------------

    def _owned_snippet(self, snippet_id: int, user_id: str) -> SnippetRecord | None:
        snippet = self._snippets.get(snippet_id)
        if snippet is None or snippet.user_id != user_id:
            return None
        return snippet

    def _check_folder(self, folder_id: int | None, user_id: str) -> None:
        if folder_id is not None and self._owned_folder(folder_id, user_id) is None:
            raise ValidationError(f"Folder {folder_id} not found")

    def _trigger_taken(self, trigger: str, user_id: str, exclude_id: int | None = None) -> bool:
        return any(
            s.user_id == user_id and s.trigger == trigger and s.id != exclude_id
            for s in self._snippets.values()
        )

    async def list_snippets(self, user_id: str) -> list[SnippetRecord]:
        return sorted(
            (s for s in self._snippets.values() if s.user_id == user_id),
            key=lambda s: (s.updated_at, s.id),
            reverse=True,
        )

    async def get_snippet(self, snippet_id: int, user_id: str) -> SnippetRecord | None:
        return self._owned_snippet(snippet_id, user_id)

    async def get_snippet_by_trigger(self, trigger: str, user_id: str) -> SnippetRecord | None:
        return next(
            (s for s in self._snippets.values() if s.user_id == user_id and s.trigger == trigger),
            None,
        )

    async def create_snippet(self, data: SnippetCreate, user_id: str) -> SnippetRecord:
        async with self._transaction():
            self._check_folder(data.folder_id, user_id)
            if self._trigger_taken(data.trigger, user_id):
                raise DuplicateTriggerError
            now = self.now()
            snippet = SnippetRecord(
                id=_next_id(self._snippets),
                **data.model_dump(),
                user_id=user_id,
                created_at=now,
                updated_at=now,
            )
            self._snippets[snippet.id] = snippet
            await self._persist(SNIPPETS)
            return snippet

    async def update_snippet(
        self, snippet_id: int, data: SnippetUpdate, user_id: str,
    ) -> SnippetRecord | None:
        changes = data.changes()
        async with self._transaction():
            snippet = self._owned_snippet(snippet_id, user_id)
            if snippet is None:
                return None
            if "folder_id" in changes:
                self._check_folder(changes["folder_id"], user_id)
            if "trigger" in changes and self._trigger_taken(changes["trigger"], user_id, snippet_id):
                raise DuplicateTriggerError
            updated = snippet.model_copy(update={**changes, "updated_at": self.now()})
            self._snippets[snippet_id] = updated
            await self._persist(SNIPPETS)
            return updated

    async def delete_snippet(self, snippet_id: int, user_id: str) -> bool:
        async with self._transaction():
            if self._owned_snippet(snippet_id, user_id) is None:
                return False
            del self._snippets[snippet_id]
            await self._persist(SNIPPETS)
            return True

    # ------------------------------------------------------------------
    # Clipboard
    # ------------------------------------------------------------------

    def _user_history(self, user_id: str) -> list[ClipboardItemRecord]:
        return sorted(
            (i for i in self._clipboard.values() if i.user_id == user_id),
            key=lambda i: (i.created_at, i.id),
            reverse=True,
        )

    async def list_clipboard_items(self, user_id: str) -> list[ClipboardItemRecord]:
        return self._user_history(user_id)

    async def create_clipboard_item(
        self, data: ClipboardItemCreate, user_id: str,
    ) -> ClipboardItemRecord:
        async with self._transaction():
            now = self.now()
            cutoff = now - CLIPBOARD_DEDUPE_WINDOW
            for existing in self._user_history(user_id):
                if existing.created_at <= cutoff:
                    break
                if existing.content == data.content and existing.type == data.type:
                    return existing

            item = ClipboardItemRecord(
                id=_next_id(self._clipboard),
                content=data.content,
                type=data.type,
                user_id=user_id,
                created_at=now,
            )
            self._clipboard[item.id] = item

            settings_created = self._settings is None
            limit = self._current_settings().history_limit
            for stale in self._user_history(user_id)[limit:]:
                del self._clipboard[stale.id]
            await self._persist(CLIPBOARD, *((SETTINGS,) if settings_created else ()))
            return item

    async def delete_clipboard_item(self, item_id: int, user_id: str) -> bool:
        async with self._transaction():
            item = self._clipboard.get(item_id)
            if item is None or item.user_id != user_id:
                return False
            del self._clipboard[item_id]
            await self._persist(CLIPBOARD)
            return True

    async def clear_clipboard_history(self, user_id: str) -> int:
        async with self._transaction():
            doomed = [i.id for i in self._clipboard.values() if i.user_id == user_id]
            for item_id in doomed:
                del self._clipboard[item_id]
            if doomed:
                await self._persist(CLIPBOARD)
            return len(doomed)

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def _current_settings(self) -> SettingsRecord:
        if self._settings is None:
            self._settings = SettingsRecord()
        return self._settings

    async def get_settings(self) -> SettingsRecord:
        async with self._transaction():
            if self._settings is None:
                self._current_settings()
                await self._persist(SETTINGS)
            return self._settings

    async def update_settings(self, data: SettingsUpdate) -> SettingsRecord:
        async with self._transaction():
            self._settings = self._current_settings().model_copy(update=data.changes())
            await self._persist(SETTINGS)
            return self._settings

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    async def remap_user(self, source_user_id: str, target_user_id: str) -> RemapResult:
        result = RemapResult(source_user_id=source_user_id, target_user_id=target_user_id)
        if source_user_id == target_user_id:
            return result
        async with self._transaction():
            now = self.now()
            await self._ensure_general_locked(target_user_id)
            target_folders = {
                f.name: f.id for f in self._folders.values() if f.user_id == target_user_id
            }

            folder_map: dict[int, int] = {}
            for folder in [f for f in self._folders.values() if f.user_id == source_user_id]:
                if folder.name in target_folders:
                    folder_map[folder.id] = target_folders[folder.name]
                    del self._folders[folder.id]
                    result.folders_merged += 1
                else:
                    self._folders[folder.id] = folder.model_copy(
                        update={"user_id": target_user_id, "updated_at": now},
                    )
                    result.folders_moved += 1

            for snippet in [s for s in self._snippets.values() if s.user_id == source_user_id]:
                if self._trigger_taken(snippet.trigger, target_user_id):
                    # Stays with the source user; its folder now belongs to the target
                    self._snippets[snippet.id] = snippet.model_copy(update={"folder_id": None})
                    result.skipped_triggers.append(snippet.trigger)
                    continue
                self._snippets[snippet.id] = snippet.model_copy(
                    update={
                        "user_id": target_user_id,
                        "folder_id": folder_map.get(snippet.folder_id, snippet.folder_id),
                        "updated_at": now,
                    },
                )
                result.snippets_moved += 1

            for item in [i for i in self._clipboard.values() if i.user_id == source_user_id]:
                self._clipboard[item.id] = item.model_copy(update={"user_id": target_user_id})
                result.clipboard_items_moved += 1

            await self._persist(FOLDERS, SNIPPETS, CLIPBOARD)
        logger.info(
            "user_remapped",
            extra={
                "source": redact(source_user_id),
                "target": redact(target_user_id),
                "backend": self.name,
            },
        )
        return result
