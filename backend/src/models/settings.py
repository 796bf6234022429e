"""Global application settings row."""
from sqlalchemy import Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base


class AppSettings(Base):
    """Single global settings row (not user scoped); created on first read."""

    __tablename__ = "settings"

    id: Mapped[int] = mapped_column(primary_key=True)
    snippet_shortcut: Mapped[str] = mapped_column(Text, default="ctrl+;")
    clipboard_shortcut: Mapped[str] = mapped_column(Text, default="ctrl+shift+v")
    # Flags are stored as 0/1 integers for compatibility with existing databases
    clipboard_enabled: Mapped[int] = mapped_column(Integer, default=1)
    history_limit: Mapped[int] = mapped_column(Integer, default=100)
    launch_on_startup: Mapped[int] = mapped_column(Integer, default=0)
    theme: Mapped[str] = mapped_column(Text, default="light")
