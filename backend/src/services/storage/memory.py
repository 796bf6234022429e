"""Volatile storage backend for development and tests."""
from services.storage.records import RecordStorage


class MemoryStorage(RecordStorage):
    """Keeps everything in process memory; all data is lost on restart."""

    name = "memory"

    async def ping(self) -> bool:
        return True
