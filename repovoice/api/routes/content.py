"""
Content edit API routes.

Saving an edit records its style delta right away and queues profile
learning in the background.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, model_validator
from sqlalchemy.ext.asyncio import AsyncSession

from repovoice.api.deps import get_current_user_id, get_learning_services
from repovoice.bootstrap import LearningServices
from repovoice.core.database import get_db
from repovoice.models.content import Content
from repovoice.schemas.edit_metadata import EditedTweet, EditMetadata

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/content", tags=["content"])


class SaveEditRequest(BaseModel):
    """Edited text for a single post, or edited tweets for a thread."""
    edited_text: Optional[str] = None
    edited_tweets: Optional[list[EditedTweet]] = None

    @model_validator(mode="after")
    def _require_edit(self) -> "SaveEditRequest":
        if self.edited_text is None and not self.edited_tweets:
            raise ValueError("edited_text or edited_tweets is required")
        return self


class SaveEditResponse(BaseModel):
    content_id: str
    edit_metadata: EditMetadata
    learning_queued: bool
    job_id: Optional[str] = None


async def _get_owned_content(db: AsyncSession, content_id: str, user_id: str) -> Content:
    content = await db.get(Content, content_id)
    if content is None:
        raise HTTPException(status_code=404, detail="Content not found")
    if content.user_id != user_id:
        raise HTTPException(status_code=403, detail="Access denied")
    return content


@router.post("/{content_id}/edits", response_model=SaveEditResponse)
async def save_edit(
    content_id: str,
    request: SaveEditRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    services: LearningServices = Depends(get_learning_services),
) -> SaveEditResponse:
    """
    Save a user's edit of generated content.

    Threads are compared tweet by tweet against the generated tweets;
    single posts against the generated text. Learning is queued subject to
    batching, so `job_id` is empty when the edit joined a pending batch.
    """
    content = await _get_owned_content(db, content_id, user_id)

    if content.format.is_thread:
        if not request.edited_tweets:
            raise HTTPException(status_code=422, detail="edited_tweets is required for threads")
        originals = [EditedTweet.model_validate(t) for t in content.tweets or []]
        metadata = await services.store.store_thread_edit_metadata(
            content_id, request.edited_tweets, originals, db=db
        )
    else:
        if request.edited_text is None:
            raise HTTPException(status_code=422, detail="edited_text is required for single posts")
        metadata = await services.store.store_edit_metadata(
            content_id, content.generated_text, request.edited_text, db=db
        )

    handle = await services.engine.queue_learning_job(
        user_id,
        content_id,
        metadata=services.engine.job_metadata_for(content),
    )

    logger.info(
        "Edit saved",
        user_id=user_id,
        content_id=content_id,
        content_format=content.content_format,
        job_id=handle.job_id if handle else None,
    )
    return SaveEditResponse(
        content_id=content_id,
        edit_metadata=metadata,
        learning_queued=handle is not None,
        job_id=handle.job_id if handle else None,
    )
