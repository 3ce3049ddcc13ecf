"""
Feedback learning engine.

Orchestrates one learning cycle per edited content item:
resolve the delta, detect patterns over the recent edit window, apply the
weighted profile update, snapshot and persist it.
"""

import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional, Protocol

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from repovoice.core.config import settings
from repovoice.core.database import get_db_context, translate_storage_errors
from repovoice.core.exceptions import (
    ContentNotFoundError,
    DeltaExtractionError,
    JobNotFoundError,
    ProfileConflictError,
    UserNotFoundError,
)
from repovoice.core.observability import capture_exception
from repovoice.models.content import Content
from repovoice.models.learning import JobStatus, LearningJob
from repovoice.models.user import User
from repovoice.schemas.edit_metadata import ContentFormat, EditMetadata, StyleDelta
from repovoice.schemas.style_profile import ManualOverrides, SnapshotSource, StyleProfile
from repovoice.services.edit_metadata_store import EditMetadataStore
from repovoice.services.learning_gate import LearningGate
from repovoice.services.learning_monitor import LearningMonitor
from repovoice.services.learning_queue import JobHandle, LearningQueue
from repovoice.services.pattern_detector import PatternDetector
from repovoice.services.profile_policy import ProfileUpdatePolicy, changed_fields
from repovoice.services.profile_versioning import ProfileVersioningService
from repovoice.services.style_delta import StyleDeltaExtractor

logger = structlog.get_logger(__name__)


class ProfileUpdateOutcome(str, Enum):
    UPDATED = "updated"
    RATE_LIMITED = "rate_limited"
    NO_PROFILE = "no_profile"


class ProfileCache(Protocol):
    async def invalidate_style_profile(self, user_id: str) -> None:
        ...

    async def invalidate_evolution_score(self, user_id: str) -> None:
        ...


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ProfileChange:
    before: StyleProfile
    after: StyleProfile
    edit_count: int


# ============================================================================
# Delta resolution per content format
# ============================================================================

class DeltaStrategy(Protocol):
    async def resolve(self, content: Content, session: AsyncSession) -> StyleDelta:
        ...


class SinglePostDeltaStrategy:
    """Extracts the delta from the generated and edited post text."""

    def __init__(self, extractor: StyleDeltaExtractor, store: EditMetadataStore):
        self.extractor = extractor
        self.store = store

    async def resolve(self, content: Content, session: AsyncSession) -> StyleDelta:
        if not content.edited_text:
            raise DeltaExtractionError(f"Content {content.id} has no edited text")

        delta = await self.extractor.extract_deltas(content.generated_text, content.edited_text)
        if content.edit_metadata is None:
            # Edit saved without metadata (or pruned since): record it for the window
            await self.store.record_delta(
                content.id, delta, content.generated_text, content.edited_text, db=session
            )
        return delta


class ThreadDeltaStrategy:
    """Reuses the metadata aggregated from per-tweet deltas when the edit was saved."""

    async def resolve(self, content: Content, session: AsyncSession) -> StyleDelta:
        if not content.edit_metadata:
            raise DeltaExtractionError(f"Thread content {content.id} has no aggregated edit metadata")
        return EditMetadata.model_validate(content.edit_metadata).to_delta()


# ============================================================================
# Engine
# ============================================================================

class FeedbackLearningEngine:
    """
    Learning job lifecycle: pending -> processing -> completed | failed.

    All collaborators are passed in; process-wide instances are built by
    repovoice.bootstrap.
    """

    def __init__(
        self,
        extractor: StyleDeltaExtractor,
        store: EditMetadataStore,
        detector: PatternDetector,
        policy: ProfileUpdatePolicy,
        versioning: ProfileVersioningService,
        gate: LearningGate,
        queue: LearningQueue,
        cache: ProfileCache,
        monitor: LearningMonitor,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        clock: Callable[[], datetime] = utc_now,
        recent_edits_limit: Optional[int] = None,
        min_edits_for_major_changes: Optional[int] = None,
        update_max_retries: Optional[int] = None,
        update_retry_base_ms: Optional[int] = None,
    ):
        self.extractor = extractor
        self.store = store
        self.detector = detector
        self.policy = policy
        self.versioning = versioning
        self.gate = gate
        self.queue = queue
        self.cache = cache
        self.monitor = monitor
        self.session_factory = session_factory
        self.clock = clock
        self.recent_edits_limit = recent_edits_limit or settings.learning_recent_edits_limit
        self.min_edits_for_major_changes = (
            min_edits_for_major_changes or settings.learning_min_edits_for_major_changes
        )
        self.update_max_retries = update_max_retries or settings.profile_update_max_retries
        self.update_retry_base_ms = update_retry_base_ms or settings.profile_update_retry_base_ms

        thread_strategy = ThreadDeltaStrategy()
        self.strategies: dict[ContentFormat, DeltaStrategy] = {
            ContentFormat.SINGLE: SinglePostDeltaStrategy(extractor, store),
            ContentFormat.MINI_THREAD: thread_strategy,
            ContentFormat.FULL_THREAD: thread_strategy,
        }

    # ------------------------------------------------------------------
    # Queueing
    # ------------------------------------------------------------------

    async def queue_learning_job(
        self,
        user_id: str,
        content_id: str,
        priority: int = 0,
        metadata: Optional[dict] = None,
    ) -> Optional[JobHandle]:
        """
        Queue a learning job for a saved edit, subject to batching.

        Returns None when the edit joined an open batch or queueing failed;
        a failure here never fails the user's save.
        """
        try:
            decision = await self.gate.register_edit(user_id, content_id)
            if not decision.should_enqueue:
                return None

            job = LearningJob(
                id=str(uuid.uuid4()),
                user_id=user_id,
                content_id=content_id,
                status=JobStatus.PENDING.value,
                priority=priority,
                attempts=0,
                job_metadata=metadata or {},
            )
            async with get_db_context(self.session_factory) as session:
                with translate_storage_errors("create_learning_job"):
                    session.add(job)
                    await session.commit()

            handle = await self.queue.enqueue_learning_job(
                job.id,
                user_id,
                content_id,
                priority=priority,
                countdown_ms=decision.countdown_ms or None,
            )
            logger.info(
                "Learning job queued",
                job_id=job.id,
                user_id=user_id,
                content_id=content_id,
                batch_action=decision.action.value,
                countdown_ms=decision.countdown_ms,
            )
            return handle
        except Exception as e:
            logger.error(
                "Failed to queue learning job",
                user_id=user_id,
                content_id=content_id,
                error=str(e),
            )
            capture_exception(e, {"user_id": user_id, "content_id": content_id})
            return None

    @staticmethod
    def job_metadata_for(content: Content) -> dict:
        fmt = content.format
        return {
            "is_thread": fmt.is_thread,
            "content_format": fmt.value,
            "tweet_count": len(content.tweets or []) if fmt.is_thread else 1,
        }

    async def get_job(self, job_id: str, db: Optional[AsyncSession] = None) -> LearningJob:
        async def _get(session: AsyncSession) -> LearningJob:
            with translate_storage_errors("get_learning_job"):
                job = await session.get(LearningJob, job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            return job

        if db:
            return await _get(db)

        async with get_db_context(self.session_factory) as session:
            return await _get(session)

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def process_learning_job(self, job_id: str) -> Optional[ProfileUpdateOutcome]:
        """
        Run one learning job to completion or failure.

        Already-completed jobs are acknowledged without reprocessing and
        return None. Any failure marks the job failed and re-raises so the
        queue can retry it.
        """
        started = time.perf_counter()
        user_id: Optional[str] = None
        content_id: Optional[str] = None
        attempt = 0

        async with get_db_context(self.session_factory) as session:
            job = await self.get_job(job_id, db=session)
            if job.status == JobStatus.COMPLETED.value:
                logger.info("Learning job already completed, acknowledging", job_id=job_id)
                return None

            user_id, content_id = job.user_id, job.content_id
            job.status = JobStatus.PROCESSING.value
            job.processing_started = self.clock()
            job.processing_completed = None
            job.error = None
            job.attempts += 1
            attempt = job.attempts
            with translate_storage_errors("start_learning_job"):
                await session.commit()
            self.monitor.job_started(job_id, user_id, content_id, attempt)

            try:
                with translate_storage_errors("load_content"):
                    content = await session.get(Content, content_id)
                if content is None:
                    raise ContentNotFoundError(content_id)

                delta = await self.strategies[content.format].resolve(content, session)

                job.style_delta = delta.model_dump(mode="json", by_alias=True)
                with translate_storage_errors("store_job_delta"):
                    await session.commit()

                outcome = await self.update_profile_from_deltas(user_id)

                job.status = JobStatus.COMPLETED.value
                job.processing_completed = self.clock()
                with translate_storage_errors("complete_learning_job"):
                    await session.commit()
            except Exception as e:
                self.monitor.job_failed(job_id, user_id, content_id, attempt, e)
                capture_exception(
                    e, {"job_id": job_id, "user_id": user_id, "content_id": content_id, "attempt": attempt}
                )
                await self._record_failure(session, job_id, e)
                raise

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        self.monitor.job_completed(job_id, user_id, content_id, elapsed_ms, outcome.value)
        return outcome

    async def _record_failure(self, session: AsyncSession, job_id: str, error: Exception) -> None:
        # Storage may be what failed; the job error must still reach the queue
        try:
            await session.rollback()
            failed = await session.get(LearningJob, job_id, populate_existing=True)
            if failed is not None:
                failed.status = JobStatus.FAILED.value
                failed.error = str(error) or type(error).__name__
                failed.processing_completed = self.clock()
                await session.commit()
        except Exception as e:
            logger.error(
                "Failed to record learning job failure",
                job_id=job_id,
                error=str(e),
                job_error=str(error),
            )

    # ------------------------------------------------------------------
    # Profile update
    # ------------------------------------------------------------------

    async def update_profile_from_deltas(self, user_id: str) -> ProfileUpdateOutcome:
        """
        Apply the patterns in the user's recent edit window to their profile.

        At most one mutation per user per cooldown: a refused gate is a
        logged no-op. The gate is released again only when nothing was
        committed; once the profile commit lands the cooldown holds even if
        a later step fails.
        """
        if not await self.gate.try_acquire(user_id):
            return ProfileUpdateOutcome.RATE_LIMITED

        change: Optional[ProfileChange] = None
        outcome: Optional[ProfileUpdateOutcome] = None
        try:
            try:
                async for retry_attempt in AsyncRetrying(
                    retry=retry_if_exception_type(StaleDataError),
                    stop=stop_after_attempt(self.update_max_retries),
                    wait=wait_exponential(multiplier=self.update_retry_base_ms / 1000),
                    reraise=True,
                ):
                    with retry_attempt:
                        if retry_attempt.retry_state.attempt_number > 1:
                            logger.warning(
                                "Profile version conflict, retrying",
                                user_id=user_id,
                                attempt=retry_attempt.retry_state.attempt_number,
                            )
                        change = await self._apply_profile_update(user_id)
            except StaleDataError as e:
                raise ProfileConflictError(user_id, self.update_max_retries) from e
            outcome = ProfileUpdateOutcome.UPDATED if change else ProfileUpdateOutcome.NO_PROFILE
        finally:
            if outcome is not ProfileUpdateOutcome.UPDATED:
                await self.gate.release(user_id)

        if change:
            await self._invalidate_cache(user_id)
            self.monitor.profile_updated(
                user_id,
                change.before,
                change.after,
                changed_fields(change.before, change.after),
                edit_count=change.edit_count,
            )
        return outcome

    async def _apply_profile_update(self, user_id: str) -> Optional[ProfileChange]:
        """Commit one profile update; None when the user has no profile yet."""
        async with get_db_context(self.session_factory) as session:
            with translate_storage_errors("load_user"):
                user = await session.get(User, user_id)
            if user is None:
                raise UserNotFoundError(user_id)
            if not user.style_profile:
                logger.info("User has no style profile, skipping learning", user_id=user_id)
                return None

            profile = StyleProfile.model_validate(user.style_profile)
            overrides = ManualOverrides.model_validate(user.manual_overrides or {})

            edits = await self.store.get_recent_edits(
                user_id, limit=self.recent_edits_limit, db=session
            )
            patterns = self.detector.detect_patterns(edits)
            # Pattern detection and the major-change gate share this window
            can_make_major_changes = len(edits) >= self.min_edits_for_major_changes

            now = self.clock()
            updated = self.policy.apply_weighted_updates(
                profile, patterns, overrides, can_make_major_changes, now=now
            )

            await self.versioning.create_snapshot(
                session, user_id, profile, SnapshotSource.FEEDBACK, timestamp=now
            )
            user.style_profile = updated.model_dump(mode="json")
            # The window is consumed in the same transaction as the profile write
            await self.store.mark_processed_in_session(
                session, [e.content_id for e in edits if e.content_id]
            )
            with translate_storage_errors("save_profile"):
                await session.commit()

        return ProfileChange(before=profile, after=updated, edit_count=len(edits))

    async def _invalidate_cache(self, user_id: str) -> None:
        # Entries expire by TTL, so a failed invalidation only delays freshness
        try:
            await self.cache.invalidate_style_profile(user_id)
            await self.cache.invalidate_evolution_score(user_id)
        except Exception as e:
            logger.warning("Cache invalidation failed", user_id=user_id, error=str(e))
