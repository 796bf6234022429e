"""Backend selection from configuration."""
import logging

from core.config import Settings
from core.exceptions import StorageUnavailableError
from models.base import utcnow
from services.storage.base import Clock, StorageBackend
from services.storage.file import FileStorage
from services.storage.memory import MemoryStorage
from services.storage.sql import PostgresStorage, SQLiteStorage

logger = logging.getLogger(__name__)


def create_storage(settings: Settings, clock: Clock = utcnow) -> StorageBackend:
    """
    Build the storage backend named by `settings.resolved_backend`.

    PostgreSQL requires DATABASE_URL; the embedded backends only need a writable
    data directory. The backend is not initialized here, call
    `await storage.initialize()` before serving requests.
    """
    backend = settings.resolved_backend
    if backend == "postgres":
        if not settings.database_url:
            raise StorageUnavailableError("DATABASE_URL is required for the postgres backend")
        storage: StorageBackend = PostgresStorage(settings.async_database_url, clock)
    elif backend == "sqlite":
        storage = SQLiteStorage(settings.sqlite_database_url, clock)
    elif backend == "file":
        storage = FileStorage(settings.data_dir, clock)
    elif backend == "memory":
        logger.warning("memory_storage_selected", extra={"detail": "data is lost on restart"})
        storage = MemoryStorage(clock)
    else:
        raise StorageUnavailableError(f"Unknown storage backend: {backend}")
    logger.info("storage_selected", extra={"backend": storage.name})
    return storage
