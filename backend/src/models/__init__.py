"""SQLAlchemy models."""
from models.base import Base, TimestampMixin
from models.clipboard_item import ClipboardItem
from models.folder import Folder
from models.settings import AppSettings
from models.snippet import Snippet
from models.user_mapping import UserMapping

__all__ = [
    "AppSettings",
    "Base",
    "ClipboardItem",
    "Folder",
    "Snippet",
    "TimestampMixin",
    "UserMapping",
]
