"""Structured learning events and the learning metrics summary."""

from typing import Optional

import structlog
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from repovoice.core.database import get_db_context
from repovoice.models.learning import JobStatus, LearningJob, ProfileVersion
from repovoice.schemas.style_profile import SnapshotSource, StyleProfile

logger = structlog.get_logger(__name__)


class RecentFailure(BaseModel):
    job_id: str
    user_id: str
    content_id: str
    attempts: int
    error: Optional[str] = None


class LearningMetrics(BaseModel):
    jobs_by_status: dict[str, int]
    total_jobs: int
    avg_processing_ms: Optional[float] = None
    profile_updates: int
    recent_failures: list[RecentFailure]


class LearningMonitor:
    """
    Emits one structured event per job transition and profile update.

    Every job event carries job_id, user_id and content_id so a single job
    can be followed through the logs.
    """

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self.session_factory = session_factory

    def job_started(self, job_id: str, user_id: str, content_id: str, attempt: int) -> None:
        logger.info(
            "Learning job started",
            job_id=job_id,
            user_id=user_id,
            content_id=content_id,
            status=JobStatus.PROCESSING.value,
            attempt=attempt,
        )

    def job_completed(
        self,
        job_id: str,
        user_id: str,
        content_id: str,
        elapsed_ms: int,
        outcome: str,
    ) -> None:
        logger.info(
            "Learning job completed",
            job_id=job_id,
            user_id=user_id,
            content_id=content_id,
            status=JobStatus.COMPLETED.value,
            elapsed_ms=elapsed_ms,
            outcome=outcome,
        )

    def job_failed(
        self,
        job_id: str,
        user_id: Optional[str],
        content_id: Optional[str],
        attempt: int,
        error: BaseException,
    ) -> None:
        logger.error(
            "Learning job failed",
            job_id=job_id,
            user_id=user_id,
            content_id=content_id,
            status=JobStatus.FAILED.value,
            attempt=attempt,
            error=str(error),
            error_type=type(error).__name__,
            exc_info=error,
        )

    def profile_updated(
        self,
        user_id: str,
        before: StyleProfile,
        after: StyleProfile,
        changed: list[str],
        edit_count: int,
    ) -> None:
        logger.info(
            "Style profile updated",
            user_id=user_id,
            learning_iterations=after.learning_iterations,
            edit_count=edit_count,
            changed_fields=changed,
            before=before.model_dump(mode="json", include={"tone", "writing_traits", "structure_preferences"}),
            after=after.model_dump(mode="json", include={"tone", "writing_traits", "structure_preferences"}),
        )

    async def get_metrics_summary(
        self,
        failure_limit: int = 10,
        db: Optional[AsyncSession] = None,
    ) -> LearningMetrics:
        """Job counts by status, mean processing time and recent failures."""
        async def _summary(session: AsyncSession) -> LearningMetrics:
            counts = dict(
                (await session.execute(
                    select(LearningJob.status, func.count(LearningJob.id)).group_by(LearningJob.status)
                )).all()
            )
            jobs_by_status = {status.value: counts.get(status.value, 0) for status in JobStatus}

            completed = (await session.execute(
                select(LearningJob).where(
                    LearningJob.status == JobStatus.COMPLETED.value,
                    LearningJob.processing_started.is_not(None),
                    LearningJob.processing_completed.is_not(None),
                )
            )).scalars().all()
            durations = [job.processing_ms for job in completed if job.processing_ms is not None]

            profile_updates = (await session.execute(
                select(func.count(ProfileVersion.id)).where(
                    ProfileVersion.source == SnapshotSource.FEEDBACK.value
                )
            )).scalar_one()

            failed = (await session.execute(
                select(LearningJob)
                .where(LearningJob.status == JobStatus.FAILED.value)
                .order_by(LearningJob.updated_at.desc())
                .limit(failure_limit)
            )).scalars().all()

            return LearningMetrics(
                jobs_by_status=jobs_by_status,
                total_jobs=sum(jobs_by_status.values()),
                avg_processing_ms=sum(durations) / len(durations) if durations else None,
                profile_updates=profile_updates,
                recent_failures=[
                    RecentFailure(
                        job_id=job.id,
                        user_id=job.user_id,
                        content_id=job.content_id,
                        attempts=job.attempts,
                        error=job.error,
                    )
                    for job in failed
                ],
            )

        if db:
            return await _summary(db)

        async with get_db_context(self.session_factory) as session:
            return await _summary(session)
