"""Learning job models: job lifecycle rows, dead letters and profile versions."""

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from repovoice.core.database import Base


class JobStatus(str, enum.Enum):
    """Status of a learning job."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class LearningJob(Base):
    """
    One request to learn from a single content edit.

    Transitions: pending -> processing -> completed | failed,
    failed -> processing on retry.
    """

    __tablename__ = "learning_jobs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    content_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    status: Mapped[str] = mapped_column(
        String(20), default=JobStatus.PENDING.value, nullable=False, index=True
    )
    priority: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    processing_started: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    processing_completed: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    error: Mapped[Optional[str]] = mapped_column(Text)

    style_delta: Mapped[Optional[dict]] = mapped_column(JSON)
    # {"is_thread": bool, "content_format": str, "tweet_count": int}
    job_metadata: Mapped[Optional[dict]] = mapped_column("metadata", JSON)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        Index("idx_learning_job_user_status", "user_id", "status"),
        Index("idx_learning_job_status_created", "status", "created_at"),
    )

    @property
    def processing_ms(self) -> Optional[int]:
        if not self.processing_started or not self.processing_completed:
            return None
        delta = self.processing_completed - self.processing_started
        return int(delta.total_seconds() * 1000)

    def __repr__(self) -> str:
        return f"<LearningJob(id={self.id}, status={self.status}, attempts={self.attempts})>"


class DeadLetterJob(Base):
    """A learning job that exhausted its attempts. Never retried automatically."""

    __tablename__ = "learning_dead_letters"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    job_id: Mapped[str] = mapped_column(String(36), nullable=False, unique=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(36), index=True)
    content_id: Mapped[Optional[str]] = mapped_column(String(36))
    error: Mapped[Optional[str]] = mapped_column(Text)
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    payload: Mapped[Optional[dict]] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<DeadLetterJob(job_id={self.job_id}, attempts={self.attempts})>"


class ProfileVersion(Base):
    """Snapshot of a style profile taken immediately before an update."""

    __tablename__ = "profile_versions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    profile: Mapped[dict] = mapped_column(JSON, nullable=False)
    source: Mapped[str] = mapped_column(String(20), nullable=False)
    learning_iterations: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_profile_version_user_timestamp", "user_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<ProfileVersion(user_id={self.user_id}, iterations={self.learning_iterations})>"
