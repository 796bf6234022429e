"""Snippet model - text expanded from a per-user trigger."""
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from models.folder import Folder


class Snippet(Base, TimestampMixin):
    """Snippet owned by a derived user id."""

    __tablename__ = "snippets"
    __table_args__ = (
        UniqueConstraint("trigger", "user_id", name="uq_snippets_trigger_user"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str] = mapped_column(Text)
    content: Mapped[str] = mapped_column(Text)
    trigger: Mapped[str] = mapped_column(Text, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    folder_id: Mapped[int | None] = mapped_column(
        ForeignKey("folders.id"),
        nullable=True,
    )
    user_id: Mapped[str] = mapped_column(Text, index=True)

    folder: Mapped["Folder | None"] = relationship(back_populates="snippets")
