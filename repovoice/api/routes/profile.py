"""
Style profile API routes.

Exposes the learned profile's version history and how far feedback has
trained it.
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from repovoice.api.deps import get_current_user_id, get_learning_services
from repovoice.bootstrap import LearningServices
from repovoice.core.database import get_db
from repovoice.core.exceptions import UserNotFoundError
from repovoice.schemas.style_profile import ProfileVersionSnapshot
from repovoice.services.profile_evolution import ProfileAnalytics

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/profile", tags=["profile"])


class VersionHistoryResponse(BaseModel):
    versions: list[ProfileVersionSnapshot]
    total: int


@router.get("/versions", response_model=VersionHistoryResponse)
async def get_version_history(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    services: LearningServices = Depends(get_learning_services),
) -> VersionHistoryResponse:
    """Retained profile snapshots, oldest first."""
    versions = await services.versioning.get_version_history(user_id, db=db)
    return VersionHistoryResponse(versions=versions, total=len(versions))


@router.get("/evolution", response_model=ProfileAnalytics)
async def get_profile_evolution(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    services: LearningServices = Depends(get_learning_services),
) -> ProfileAnalytics:
    try:
        return await services.evolution.get_analytics(user_id, db=db)
    except UserNotFoundError:
        raise HTTPException(status_code=404, detail="Style profile not found")
