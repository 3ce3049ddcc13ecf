"""
Learning job API routes.

Job status for clients polling a queued job, plus the operational metrics
summary.
"""

from datetime import datetime
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from repovoice.api.deps import get_current_user_id, get_learning_services
from repovoice.bootstrap import LearningServices
from repovoice.core.database import get_db
from repovoice.core.exceptions import JobNotFoundError
from repovoice.services.learning_monitor import LearningMetrics

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/learning", tags=["learning"])


class LearningJobResponse(BaseModel):
    job_id: str
    content_id: str
    status: str
    attempts: int
    error: Optional[str] = None
    created_at: datetime
    processing_started: Optional[datetime] = None
    processing_completed: Optional[datetime] = None
    processing_ms: Optional[int] = None
    style_delta: Optional[dict] = None


@router.get("/jobs/{job_id}", response_model=LearningJobResponse)
async def get_learning_job(
    job_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    services: LearningServices = Depends(get_learning_services),
) -> LearningJobResponse:
    try:
        job = await services.engine.get_job(job_id, db=db)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Learning job not found")

    if job.user_id != user_id:
        raise HTTPException(status_code=403, detail="Access denied")

    return LearningJobResponse(
        job_id=job.id,
        content_id=job.content_id,
        status=job.status,
        attempts=job.attempts,
        error=job.error,
        created_at=job.created_at,
        processing_started=job.processing_started,
        processing_completed=job.processing_completed,
        processing_ms=job.processing_ms,
        style_delta=job.style_delta,
    )


@router.get("/metrics", response_model=LearningMetrics)
async def get_learning_metrics(
    failure_limit: int = Query(10, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    services: LearningServices = Depends(get_learning_services),
) -> LearningMetrics:
    """Job counts by status, mean processing time and recent failures."""
    return await services.monitor.get_metrics_summary(failure_limit=failure_limit, db=db)
