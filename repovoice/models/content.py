"""
Generated content database model.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from repovoice.core.database import Base
from repovoice.schemas.edit_metadata import ContentFormat


class Content(Base):
    """
    A generated post or thread and the user's edit of it.

    Recording an edit writes `edited_text`, `edit_metadata` and
    `edit_timestamp`; pruning clears only the metadata columns.
    """

    __tablename__ = "contents"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    platform: Mapped[str] = mapped_column(String(50), default="x", nullable=False)
    content_format: Mapped[str] = mapped_column(
        String(20), default=ContentFormat.SINGLE.value, nullable=False
    )

    generated_text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    edited_text: Mapped[Optional[str]] = mapped_column(Text)
    # Generated thread tweets: [{"position": 0, "text": "..."}]
    tweets: Mapped[Optional[list]] = mapped_column(JSON)

    # Learning bookkeeping; cleared (row kept) when pruned
    edit_metadata: Mapped[Optional[dict]] = mapped_column(JSON(none_as_null=True))
    edit_timestamp: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        Index("idx_content_user_edit_timestamp", "user_id", "edit_timestamp"),
    )

    @property
    def format(self) -> ContentFormat:
        return ContentFormat(self.content_format)

    def __repr__(self) -> str:
        return f"<Content(id={self.id}, format={self.content_format})>"
