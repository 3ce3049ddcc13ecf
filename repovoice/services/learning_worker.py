"""
Worker-side learning job handler.

Wraps the engine for the queue consumer: every failure is re-raised so the
queue retries it, and the final failed attempt is dead-lettered first.
"""

from typing import Optional

import structlog

from repovoice.core.config import settings
from repovoice.core.exceptions import JobNotFoundError, TransientStorageError
from repovoice.core.observability import capture_exception
from repovoice.services.feedback_learning import FeedbackLearningEngine, ProfileUpdateOutcome
from repovoice.services.learning_queue import DeadLetterStore

logger = structlog.get_logger(__name__)


class LearningJobHandler:
    def __init__(
        self,
        engine: FeedbackLearningEngine,
        dead_letters: DeadLetterStore,
        max_attempts: Optional[int] = None,
    ):
        self.engine = engine
        self.dead_letters = dead_letters
        self.max_attempts = max_attempts or settings.learning_max_attempts

    def is_final_attempt(self, attempt: int) -> bool:
        return attempt >= self.max_attempts

    async def handle(self, job_id: str, attempt: int) -> Optional[ProfileUpdateOutcome]:
        """
        Process one delivery of a learning job.

        `attempt` is the 1-based delivery number as seen by the queue.
        """
        try:
            return await self.engine.process_learning_job(job_id)
        except Exception as e:
            if not self.is_final_attempt(attempt):
                logger.warning(
                    "Learning job attempt failed, will retry",
                    job_id=job_id,
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    error=str(e),
                )
                raise

            try:
                await self._dead_letter(job_id, attempt, e)
            except Exception as dl_error:
                logger.error(
                    "Failed to dead-letter learning job",
                    job_id=job_id,
                    attempt=attempt,
                    error=str(dl_error),
                    job_error=str(e),
                )
                capture_exception(dl_error, {"job_id": job_id, "attempt": attempt})
            raise

    async def _dead_letter(self, job_id: str, attempt: int, error: Exception) -> None:
        user_id = content_id = None
        payload: dict = {"job_id": job_id}
        try:
            job = await self.engine.get_job(job_id)
            user_id, content_id = job.user_id, job.content_id
            payload.update(
                priority=job.priority,
                metadata=job.job_metadata or {},
                job_attempts=job.attempts,
            )
        except JobNotFoundError:
            logger.warning("Dead-lettering a job with no job record", job_id=job_id)
        except TransientStorageError as lookup_error:
            logger.warning(
                "Job record unavailable, dead-lettering without it",
                job_id=job_id,
                error=str(lookup_error),
            )

        await self.dead_letters.record(
            job_id,
            error=str(error) or type(error).__name__,
            attempts=attempt,
            user_id=user_id,
            content_id=content_id,
            payload=payload,
        )
