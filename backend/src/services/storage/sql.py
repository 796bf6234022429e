"""
SQL storage backends (PostgreSQL through asyncpg, SQLite through aiosqlite).

Every public method runs in its own transaction. Multi-statement operations
(deleting a folder, clipboard insert with trimming, user remapping) commit or
roll back as a unit.
"""
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from sqlalchemy import delete, func, select, text, update
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from core.exceptions import (
    DuplicateNameError,
    DuplicateTriggerError,
    ReservedFolderError,
    ReservedNameError,
    StorageUnavailableError,
    ValidationError,
)
from core.logging import redact
from db.migrations import MigrationRunner
from db.session import build_engine, build_session_factory
from models import AppSettings, ClipboardItem, Folder, Snippet, UserMapping
from models.base import utcnow
from schemas.admin import RemapResult
from schemas.clipboard import ClipboardItemCreate, ClipboardItemRecord
from schemas.folder import GENERAL_FOLDER_NAME, FolderCreate, FolderRecord
from schemas.settings import DEFAULT_SETTINGS, SettingsRecord, SettingsUpdate
from schemas.snippet import SnippetCreate, SnippetRecord, SnippetUpdate
from services.storage.base import (
    CLIPBOARD_DEDUPE_WINDOW,
    Clock,
    StorageBackend,
    check_folder_name,
)

logger = logging.getLogger(__name__)


def _to_column(value: object) -> object:
    # Settings flags are stored as 0/1 integers
    return int(value) if isinstance(value, bool) else value


class SQLStorage(StorageBackend):
    """Storage backend over an async SQLAlchemy engine."""

    def __init__(
        self,
        database_url: str,
        clock: Clock = utcnow,
        engine: AsyncEngine | None = None,
    ) -> None:
        super().__init__(clock)
        self._engine = engine or build_engine(database_url)
        self._session_factory = build_session_factory(self._engine)

    @property
    def engine(self) -> AsyncEngine:
        """The underlying engine."""
        return self._engine

    async def initialize(self) -> None:
        """Bring the schema up to date. Failures abort startup."""
        await MigrationRunner(self._engine).run()

    async def close(self) -> None:
        await self._engine.dispose()

    async def ping(self) -> bool:
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except (SQLAlchemyError, OSError):
            logger.warning("storage_ping_failed", extra={"backend": self.name})
            return False

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        """Session in a transaction; connectivity failures become StorageUnavailableError."""
        try:
            async with self._session_factory() as session, session.begin():
                yield session
        except (OperationalError, InterfaceError, OSError) as e:
            logger.exception("storage_unavailable", extra={"backend": self.name})
            raise StorageUnavailableError from e

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------

    async def _find_general(self, session: AsyncSession, user_id: str) -> Folder | None:
        return await session.scalar(
            select(Folder)
            .where(Folder.user_id == user_id, Folder.name == GENERAL_FOLDER_NAME)
            .order_by(Folder.id)
            .limit(1),
        )

    async def _general(self, session: AsyncSession, user_id: str) -> Folder:
        folder = await self._find_general(session, user_id)
        if folder is not None:
            return folder
        now = self.now()
        folder = Folder(
            name=GENERAL_FOLDER_NAME,
            user_id=user_id,
            sort_order=0,
            created_at=now,
            updated_at=now,
        )
        session.add(folder)
        await session.flush()
        logger.info(
            "general_folder_created",
            extra={"user_id": redact(user_id), "backend": self.name},
        )
        return folder

    async def ensure_general_folder(self, user_id: str) -> FolderRecord:
        try:
            async with self._transaction() as session:
                return FolderRecord.model_validate(await self._general(session, user_id))
        except IntegrityError:
            # A concurrent request created it first
            async with self._transaction() as session:
                folder = await self._find_general(session, user_id)
                return FolderRecord.model_validate(folder)

    async def _owned_folder(
        self, session: AsyncSession, folder_id: int, user_id: str,
    ) -> Folder | None:
        return await session.scalar(
            select(Folder).where(Folder.id == folder_id, Folder.user_id == user_id),
        )

    async def _folder_name_taken(
        self,
        session: AsyncSession,
        name: str,
        user_id: str,
        exclude_id: int | None = None,
    ) -> bool:
        query = select(Folder.id).where(Folder.user_id == user_id, Folder.name == name)
        if exclude_id is not None:
            query = query.where(Folder.id != exclude_id)
        return await session.scalar(query.limit(1)) is not None

    async def list_folders(self, user_id: str) -> list[FolderRecord]:
        await self.ensure_general_folder(user_id)
        async with self._transaction() as session:
            folders = await session.scalars(
                select(Folder)
                .where(Folder.user_id == user_id)
                .order_by(
                    func.coalesce(Folder.sort_order, 0),
                    func.lower(Folder.name),
                    Folder.id,
                ),
            )
            return [FolderRecord.model_validate(f) for f in folders]

    async def get_folder(self, folder_id: int, user_id: str) -> FolderRecord | None:
        async with self._transaction() as session:
            folder = await self._owned_folder(session, folder_id, user_id)
            return FolderRecord.model_validate(folder) if folder else None

    async def create_folder(self, data: FolderCreate, user_id: str) -> FolderRecord:
        check_folder_name(data.name)
        try:
            async with self._transaction() as session:
                if await self._folder_name_taken(session, data.name, user_id):
                    raise DuplicateNameError
                now = self.now()
                folder = Folder(
                    name=data.name,
                    user_id=user_id,
                    sort_order=data.sort_order,
                    created_at=now,
                    updated_at=now,
                )
                session.add(folder)
                await session.flush()
                return FolderRecord.model_validate(folder)
        except IntegrityError as e:
            raise DuplicateNameError from e

    async def rename_folder(self, folder_id: int, name: str, user_id: str) -> FolderRecord | None:
        check_folder_name(name)
        try:
            async with self._transaction() as session:
                folder = await self._owned_folder(session, folder_id, user_id)
                if folder is None:
                    return None
                if folder.name == GENERAL_FOLDER_NAME:
                    raise ReservedNameError("Cannot rename the 'General' folder")
                if folder.name != name:
                    if await self._folder_name_taken(session, name, user_id, exclude_id=folder_id):
                        raise DuplicateNameError
                    folder.name = name
                    folder.updated_at = self.now()
                    await session.flush()
                return FolderRecord.model_validate(folder)
        except IntegrityError as e:
            raise DuplicateNameError from e

    async def delete_folder(self, folder_id: int, user_id: str) -> bool:
        async with self._transaction() as session:
            folder = await self._owned_folder(session, folder_id, user_id)
            if folder is None:
                return False
            if folder.name == GENERAL_FOLDER_NAME:
                raise ReservedFolderError
            general = await self._general(session, user_id)
            moved = await session.execute(
                update(Snippet)
                .where(Snippet.folder_id == folder_id, Snippet.user_id == user_id)
                .values(folder_id=general.id, updated_at=self.now()),
            )
            await session.execute(
                delete(Folder).where(Folder.id == folder_id, Folder.user_id == user_id),
            )
        logger.info(
            "folder_deleted",
            extra={"user_id": redact(user_id), "snippets_moved": moved.rowcount, "backend": self.name},
        )
        return True

    # ------------------------------------------------------------------
    # Snippets
    # ------------------------------------------------------------------

    async def _check_folder(self, session: AsyncSession, folder_id: int | None, user_id: str) -> None:
        if folder_id is not None and await self._owned_folder(session, folder_id, user_id) is None:
            raise ValidationError(f"Folder {folder_id} not found")

    async def _trigger_taken(
        self,
        session: AsyncSession,
        trigger: str,
        user_id: str,
        exclude_id: int | None = None,
    ) -> bool:
        query = select(Snippet.id).where(Snippet.user_id == user_id, Snippet.trigger == trigger)
        if exclude_id is not None:
            query = query.where(Snippet.id != exclude_id)
        return await session.scalar(query.limit(1)) is not None

    async def _owned_snippet(
        self, session: AsyncSession, snippet_id: int, user_id: str,
    ) -> Snippet | None:
        return await session.scalar(
            select(Snippet).where(Snippet.id == snippet_id, Snippet.user_id == user_id),
        )

    async def list_snippets(self, user_id: str) -> list[SnippetRecord]:
        async with self._transaction() as session:
            snippets = await session.scalars(
                select(Snippet)
                .where(Snippet.user_id == user_id)
                .order_by(Snippet.updated_at.desc(), Snippet.id.desc()),
            )
            return [SnippetRecord.model_validate(s) for s in snippets]

    async def get_snippet(self, snippet_id: int, user_id: str) -> SnippetRecord | None:
        async with self._transaction() as session:
            snippet = await self._owned_snippet(session, snippet_id, user_id)
            return SnippetRecord.model_validate(snippet) if snippet else None

    async def get_snippet_by_trigger(self, trigger: str, user_id: str) -> SnippetRecord | None:
        async with self._transaction() as session:
            snippet = await session.scalar(
                select(Snippet).where(Snippet.user_id == user_id, Snippet.trigger == trigger),
            )
            return SnippetRecord.model_validate(snippet) if snippet else None

    async def create_snippet(self, data: SnippetCreate, user_id: str) -> SnippetRecord:
        try:
            async with self._transaction() as session:
                await self._check_folder(session, data.folder_id, user_id)
                if await self._trigger_taken(session, data.trigger, user_id):
                    raise DuplicateTriggerError
                now = self.now()
                snippet = Snippet(
                    **data.model_dump(),
                    user_id=user_id,
                    created_at=now,
                    updated_at=now,
                )
                session.add(snippet)
                await session.flush()
                return SnippetRecord.model_validate(snippet)
        except IntegrityError as e:
            raise DuplicateTriggerError from e

    async def update_snippet(
        self, snippet_id: int, data: SnippetUpdate, user_id: str,
    ) -> SnippetRecord | None:
        changes = data.changes()
        try:
            async with self._transaction() as session:
                snippet = await self._owned_snippet(session, snippet_id, user_id)
                if snippet is None:
                    return None
                if "folder_id" in changes:
                    await self._check_folder(session, changes["folder_id"], user_id)
                if "trigger" in changes and await self._trigger_taken(
                    session, changes["trigger"], user_id, exclude_id=snippet_id,
                ):
                    raise DuplicateTriggerError
                for field, value in changes.items():
                    setattr(snippet, field, value)
                snippet.updated_at = self.now()
                await session.flush()
                return SnippetRecord.model_validate(snippet)
        except IntegrityError as e:
            raise DuplicateTriggerError from e

    async def delete_snippet(self, snippet_id: int, user_id: str) -> bool:
        async with self._transaction() as session:
            result = await session.execute(
                delete(Snippet).where(Snippet.id == snippet_id, Snippet.user_id == user_id),
            )
            return result.rowcount > 0

    # ------------------------------------------------------------------
    # Clipboard
    # ------------------------------------------------------------------

    async def list_clipboard_items(self, user_id: str) -> list[ClipboardItemRecord]:
        async with self._transaction() as session:
            items = await session.scalars(
                select(ClipboardItem)
                .where(ClipboardItem.user_id == user_id)
                .order_by(ClipboardItem.created_at.desc(), ClipboardItem.id.desc()),
            )
            return [ClipboardItemRecord.model_validate(i) for i in items]

    async def create_clipboard_item(
        self, data: ClipboardItemCreate, user_id: str,
    ) -> ClipboardItemRecord:
        async with self._transaction() as session:
            now = self.now()
            duplicate = await session.scalar(
                select(ClipboardItem)
                .where(
                    ClipboardItem.user_id == user_id,
                    ClipboardItem.content == data.content,
                    ClipboardItem.type == data.type,
                    ClipboardItem.created_at > now - CLIPBOARD_DEDUPE_WINDOW,
                )
                .order_by(ClipboardItem.created_at.desc(), ClipboardItem.id.desc())
                .limit(1),
            )
            if duplicate is not None:
                return ClipboardItemRecord.model_validate(duplicate)

            item = ClipboardItem(
                content=data.content,
                type=data.type,
                user_id=user_id,
                created_at=now,
            )
            session.add(item)
            await session.flush()

            limit = (await self._settings_row(session)).history_limit
            stale_ids = (
                await session.scalars(
                    select(ClipboardItem.id)
                    .where(ClipboardItem.user_id == user_id)
                    .order_by(ClipboardItem.created_at.desc(), ClipboardItem.id.desc())
                    .offset(limit),
                )
            ).all()
            if stale_ids:
                await session.execute(
                    delete(ClipboardItem).where(ClipboardItem.id.in_(stale_ids)),
                )
                logger.debug(
                    "clipboard_history_trimmed",
                    extra={"user_id": redact(user_id), "removed": len(stale_ids)},
                )
            return ClipboardItemRecord.model_validate(item)

    async def delete_clipboard_item(self, item_id: int, user_id: str) -> bool:
        async with self._transaction() as session:
            result = await session.execute(
                delete(ClipboardItem).where(
                    ClipboardItem.id == item_id,
                    ClipboardItem.user_id == user_id,
                ),
            )
            return result.rowcount > 0

    async def clear_clipboard_history(self, user_id: str) -> int:
        async with self._transaction() as session:
            result = await session.execute(
                delete(ClipboardItem).where(ClipboardItem.user_id == user_id),
            )
            return result.rowcount

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    async def _settings_row(self, session: AsyncSession) -> AppSettings:
        row = await session.scalar(select(AppSettings).order_by(AppSettings.id).limit(1))
        if row is None:
            row = AppSettings(**{k: _to_column(v) for k, v in DEFAULT_SETTINGS.items()})
            session.add(row)
            await session.flush()
        return row

    async def get_settings(self) -> SettingsRecord:
        async with self._transaction() as session:
            return SettingsRecord.model_validate(await self._settings_row(session))

    async def update_settings(self, data: SettingsUpdate) -> SettingsRecord:
        async with self._transaction() as session:
            row = await self._settings_row(session)
            for field, value in data.changes().items():
                setattr(row, field, _to_column(value))
            await session.flush()
            return SettingsRecord.model_validate(row)

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    async def remap_user(self, source_user_id: str, target_user_id: str) -> RemapResult:
        result = RemapResult(source_user_id=source_user_id, target_user_id=target_user_id)
        if source_user_id == target_user_id:
            return result
        async with self._transaction() as session:
            now = self.now()
            await self._general(session, target_user_id)
            target_folders = {
                f.name: f.id
                for f in await session.scalars(select(Folder).where(Folder.user_id == target_user_id))
            }

            folder_map: dict[int, int] = {}
            source_folders = await session.scalars(
                select(Folder).where(Folder.user_id == source_user_id).order_by(Folder.id),
            )
            for folder in source_folders.all():
                if folder.name in target_folders:
                    folder_map[folder.id] = target_folders[folder.name]
                else:
                    folder.user_id = target_user_id
                    folder.updated_at = now
                    result.folders_moved += 1
            result.folders_merged = len(folder_map)

            target_triggers = set(
                await session.scalars(select(Snippet.trigger).where(Snippet.user_id == target_user_id)),
            )
            source_snippets = await session.scalars(
                select(Snippet).where(Snippet.user_id == source_user_id).order_by(Snippet.id),
            )
            for snippet in source_snippets.all():
                if snippet.trigger in target_triggers:
                    # Stays with the source user; its folder now belongs to the target
                    snippet.folder_id = None
                    result.skipped_triggers.append(snippet.trigger)
                    continue
                snippet.user_id = target_user_id
                snippet.folder_id = folder_map.get(snippet.folder_id, snippet.folder_id)
                snippet.updated_at = now
                result.snippets_moved += 1
            await session.flush()

            if folder_map:
                await session.execute(delete(Folder).where(Folder.id.in_(list(folder_map))))
            moved = await session.execute(
                update(ClipboardItem)
                .where(ClipboardItem.user_id == source_user_id)
                .values(user_id=target_user_id),
            )
            result.clipboard_items_moved = moved.rowcount
            session.add(
                UserMapping(
                    source_user_id=source_user_id,
                    target_user_id=target_user_id,
                    created_at=now,
                ),
            )
        logger.info(
            "user_remapped",
            extra={
                "source": redact(source_user_id),
                "target": redact(target_user_id),
                "backend": self.name,
            },
        )
        return result


class PostgresStorage(SQLStorage):
    """Production backend selected when DATABASE_URL points at PostgreSQL."""

    name = "postgres"


class SQLiteStorage(SQLStorage):
    """Embedded single-file database; the default without DATABASE_URL."""

    name = "sqlite"

    def __init__(
        self,
        database_url: str,
        clock: Clock = utcnow,
        engine: AsyncEngine | None = None,
    ) -> None:
        database = make_url(database_url).database
        if database and database != ":memory:":
            Path(database).parent.mkdir(parents=True, exist_ok=True)
        super().__init__(database_url, clock, engine)
