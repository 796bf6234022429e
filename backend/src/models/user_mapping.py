"""Administrator-recorded user id remappings."""
from datetime import datetime

from sqlalchemy import DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, utcnow


class UserMapping(Base):
    """
    Records that one derived user id's data was moved to another.

    Written by StorageBackend.remap_user after a server secret rotation; there is
    no automatic detection of which old id belongs to which new one.
    """

    __tablename__ = "user_mappings"

    id: Mapped[int] = mapped_column(primary_key=True)
    source_user_id: Mapped[str] = mapped_column(Text, index=True)
    target_user_id: Mapped[str] = mapped_column(Text, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
