"""
Learning job tasks.

At-least-once delivery: a failed attempt is retried with exponential
backoff until the attempt budget is spent; the final failure is
dead-lettered by the job handler.
"""

import asyncio
from typing import Optional

import structlog

from repovoice.bootstrap import worker_job_handler
from repovoice.core.config import settings
from repovoice.worker import celery_app

logger = structlog.get_logger(__name__)


def backoff_seconds(attempt: int) -> float:
    """Delay before the next delivery after `attempt` failed: 1s, 2s, 4s..."""
    return settings.learning_backoff_delay_ms * 2 ** (attempt - 1) / 1000


async def _handle(job_id: str, attempt: int) -> Optional[str]:
    async with worker_job_handler() as handler:
        outcome = await handler.handle(job_id, attempt)
    return outcome.value if outcome else None


@celery_app.task(
    bind=True,
    name="repovoice.tasks.learning.process_learning_job",
    acks_late=True,
    max_retries=settings.learning_max_attempts - 1,
    rate_limit=f"{settings.learning_jobs_per_second}/s",
)
def process_learning_job(self, job_id: str) -> Optional[str]:
    """Process one learning job; returns the profile update outcome."""
    attempt = self.request.retries + 1
    try:
        return asyncio.run(_handle(job_id, attempt))
    except Exception as exc:
        if attempt >= settings.learning_max_attempts:
            logger.error("Learning job exhausted attempts", job_id=job_id, attempts=attempt)
            raise
        raise self.retry(exc=exc, countdown=backoff_seconds(attempt))
