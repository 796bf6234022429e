"""
JSON-file storage backend.

Each entity kind lives in its own file under the data directory. Every mutation
rewrites the affected files through a temporary file that is fsynced and then
atomically renamed over the original, so a crash leaves either the old or the
new contents and never a truncated file.
"""
import asyncio
import json
import logging
import os
from pathlib import Path

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from core.exceptions import StorageUnavailableError
from models.base import utcnow
from schemas.clipboard import ClipboardItemRecord
from schemas.folder import FolderRecord
from schemas.settings import SettingsRecord
from schemas.snippet import SnippetRecord
from services.storage.base import Clock
from services.storage.records import CLIPBOARD, FOLDERS, SETTINGS, SNIPPETS, RecordStorage

logger = logging.getLogger(__name__)

FILENAMES = {
    FOLDERS: "folders.json",
    SNIPPETS: "snippets.json",
    CLIPBOARD: "clipboard.json",
    SETTINGS: "settings.json",
}

_folder_list = TypeAdapter(list[FolderRecord])
_snippet_list = TypeAdapter(list[SnippetRecord])
_clipboard_list = TypeAdapter(list[ClipboardItemRecord])


def _write_json_atomic(path: Path, payload: object) -> None:
    tmp = path.with_name(path.name + ".tmp")
    with tmp.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp, path)


class FileStorage(RecordStorage):
    """Stores records as JSON arrays under `data_dir`."""

    name = "file"

    def __init__(self, data_dir: Path, clock: Clock = utcnow) -> None:
        super().__init__(clock)
        self.data_dir = Path(data_dir)

    def _path(self, table: str) -> Path:
        return self.data_dir / FILENAMES[table]

    async def initialize(self) -> None:
        """Create the data directory and load every file into memory."""
        try:
            await asyncio.to_thread(self._load)
        except (OSError, ValueError, PydanticValidationError) as e:
            logger.exception("file_storage_load_failed", extra={"data_dir": str(self.data_dir)})
            raise StorageUnavailableError(f"Cannot load data files: {e}") from e
        logger.info(
            "file_storage_loaded",
            extra={
                "data_dir": str(self.data_dir),
                "folders": len(self._folders),
                "snippets": len(self._snippets),
                "clipboard_items": len(self._clipboard),
            },
        )

    def _read(self, table: str) -> object | None:
        path = self._path(table)
        if not path.exists():
            return None
        with path.open(encoding="utf-8") as f:
            return json.load(f)

    def _load(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        folders = _folder_list.validate_python(self._read(FOLDERS) or [])
        snippets = _snippet_list.validate_python(self._read(SNIPPETS) or [])
        clipboard = _clipboard_list.validate_python(self._read(CLIPBOARD) or [])
        settings = self._read(SETTINGS)

        self._folders = {f.id: f for f in folders}
        self._snippets = {s.id: s for s in snippets}
        self._clipboard = {i.id: i for i in clipboard}
        self._settings = SettingsRecord.model_validate(settings) if settings else None

    def _serialize(self, table: str) -> object:
        if table == FOLDERS:
            records = self._folders.values()
        elif table == SNIPPETS:
            records = self._snippets.values()
        elif table == CLIPBOARD:
            records = self._clipboard.values()
        else:
            settings = self._settings or SettingsRecord()
            return settings.model_dump(mode="json")
        return [r.model_dump(mode="json") for r in sorted(records, key=lambda r: r.id)]

    async def _persist(self, *tables: str) -> None:
        # Snapshot on the event loop; only the disk I/O runs in the worker thread
        payloads = {table: self._serialize(table) for table in dict.fromkeys(tables)}
        try:
            await asyncio.to_thread(self._write, payloads)
        except OSError as e:
            logger.exception("file_storage_write_failed", extra={"tables": list(payloads)})
            raise StorageUnavailableError("Failed to write data files") from e

    def _write(self, payloads: dict[str, object]) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        for table, payload in payloads.items():
            _write_json_atomic(self._path(table), payload)

    async def ping(self) -> bool:
        return self.data_dir.is_dir() and os.access(self.data_dir, os.W_OK)
