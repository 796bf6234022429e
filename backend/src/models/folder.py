"""Folder model - per-user grouping of snippets."""
from typing import TYPE_CHECKING

from sqlalchemy import Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from models.snippet import Snippet


class Folder(Base, TimestampMixin):
    """Folder owned by a derived user id. Every user has one named 'General'."""

    __tablename__ = "folders"
    __table_args__ = (
        UniqueConstraint("name", "user_id", name="uq_folders_name_user"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(Text)
    user_id: Mapped[str] = mapped_column(Text, index=True)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    snippets: Mapped[list["Snippet"]] = relationship(back_populates="folder")
