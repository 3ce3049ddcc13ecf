"""
Learning job submission and the dead-letter store.

Jobs travel through Celery; a job that fails its final attempt is written
to the dead-letter table and never retried automatically.
"""

import asyncio
import uuid
from dataclasses import dataclass
from typing import Optional, Protocol

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from repovoice.core.config import settings
from repovoice.core.database import get_db_context, translate_storage_errors
from repovoice.models.learning import DeadLetterJob

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class JobHandle:
    job_id: str
    task_id: Optional[str] = None
    countdown_ms: int = 0


class LearningQueue(Protocol):
    async def enqueue_learning_job(
        self,
        job_id: str,
        user_id: str,
        content_id: str,
        priority: int = 0,
        countdown_ms: Optional[int] = None,
    ) -> JobHandle:
        ...


class CeleryLearningQueue:
    """Publishes learning jobs to the Celery `learning` queue."""

    def __init__(self, queue_name: Optional[str] = None):
        self.queue_name = queue_name or settings.learning_queue_name

    async def enqueue_learning_job(
        self,
        job_id: str,
        user_id: str,
        content_id: str,
        priority: int = 0,
        countdown_ms: Optional[int] = None,
    ) -> JobHandle:
        from repovoice.tasks.learning import process_learning_job

        countdown = countdown_ms / 1000 if countdown_ms else None

        # Broker publish is blocking
        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(
            None,
            lambda: process_learning_job.apply_async(
                args=[job_id],
                task_id=job_id,
                queue=self.queue_name,
                priority=priority,
                countdown=countdown,
            ),
        )

        logger.info(
            "Learning job enqueued",
            job_id=job_id,
            user_id=user_id,
            content_id=content_id,
            priority=priority,
            countdown_ms=countdown_ms or 0,
        )
        return JobHandle(job_id=job_id, task_id=result.id, countdown_ms=countdown_ms or 0)


class DeadLetterStore:
    """Holding area for jobs that exhausted their attempts."""

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self.session_factory = session_factory

    async def record(
        self,
        job_id: str,
        error: str,
        attempts: int,
        user_id: Optional[str] = None,
        content_id: Optional[str] = None,
        payload: Optional[dict] = None,
        db: Optional[AsyncSession] = None,
    ) -> DeadLetterJob:
        """Write the dead letter once; a redelivered final attempt returns the existing row."""
        async def _record(session: AsyncSession) -> DeadLetterJob:
            with translate_storage_errors("record_dead_letter"):
                existing = (
                    await session.execute(select(DeadLetterJob).where(DeadLetterJob.job_id == job_id))
                ).scalar_one_or_none()
                if existing:
                    return existing

                entry = DeadLetterJob(
                    id=str(uuid.uuid4()),
                    job_id=job_id,
                    user_id=user_id,
                    content_id=content_id,
                    error=error,
                    attempts=attempts,
                    payload=payload or {},
                )
                session.add(entry)
                await session.commit()

            logger.error(
                "Learning job moved to dead letter queue",
                job_id=job_id,
                user_id=user_id,
                attempts=attempts,
                error=error,
            )
            return entry

        if db:
            return await _record(db)

        async with get_db_context(self.session_factory) as session:
            return await _record(session)

    async def get(self, job_id: str, db: Optional[AsyncSession] = None) -> Optional[DeadLetterJob]:
        async def _get(session: AsyncSession) -> Optional[DeadLetterJob]:
            stmt = select(DeadLetterJob).where(DeadLetterJob.job_id == job_id)
            return (await session.execute(stmt)).scalar_one_or_none()

        if db:
            return await _get(db)

        async with get_db_context(self.session_factory) as session:
            return await _get(session)

    async def list_recent(self, limit: int = 50, db: Optional[AsyncSession] = None) -> list[DeadLetterJob]:
        async def _list(session: AsyncSession) -> list[DeadLetterJob]:
            stmt = select(DeadLetterJob).order_by(DeadLetterJob.created_at.desc()).limit(limit)
            return list((await session.execute(stmt)).scalars().all())

        if db:
            return await _list(db)

        async with get_db_context(self.session_factory) as session:
            return await _list(session)
