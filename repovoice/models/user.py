"""
User-related database models.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from repovoice.core.database import Base


class User(Base):
    """
    User account with the learned style profile.

    `version` is the optimistic-lock counter: SQLAlchemy bumps it on every
    UPDATE and raises StaleDataError when another writer got there first.
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True, index=True)
    name: Mapped[Optional[str]] = mapped_column(String(255))

    # Voice profile (see repovoice.schemas.style_profile)
    style_profile: Mapped[Optional[dict]] = mapped_column(JSON)
    manual_overrides: Mapped[Optional[dict]] = mapped_column(JSON)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<User(id={self.id}, version={self.version})>"
