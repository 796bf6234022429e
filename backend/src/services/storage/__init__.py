"""Interchangeable persistence backends behind one user-scoped contract."""
from services.storage.base import StorageBackend
from services.storage.factory import create_storage
from services.storage.file import FileStorage
from services.storage.memory import MemoryStorage
from services.storage.sql import PostgresStorage, SQLiteStorage, SQLStorage

__all__ = [
    "FileStorage",
    "MemoryStorage",
    "PostgresStorage",
    "SQLStorage",
    "SQLiteStorage",
    "StorageBackend",
    "create_storage",
]
