"""
Profile version snapshots.

A snapshot is taken immediately before every profile update and never
modified afterwards. Only the most recent versions per user are kept.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from repovoice.core.config import settings
from repovoice.core.database import get_db_context, translate_storage_errors
from repovoice.models.learning import ProfileVersion
from repovoice.schemas.style_profile import ProfileVersionSnapshot, SnapshotSource, StyleProfile

logger = structlog.get_logger(__name__)


def _to_snapshot(row: ProfileVersion) -> ProfileVersionSnapshot:
    return ProfileVersionSnapshot(
        profile=StyleProfile.model_validate(row.profile),
        source=SnapshotSource(row.source),
        learning_iterations=row.learning_iterations,
        timestamp=row.timestamp,
    )


class ProfileVersioningService:
    """Append-only profile history, bounded per user."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        max_versions: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.max_versions = max_versions or settings.profile_max_versions

    async def create_snapshot(
        self,
        session: AsyncSession,
        user_id: str,
        profile: StyleProfile,
        source: SnapshotSource,
        timestamp: Optional[datetime] = None,
    ) -> ProfileVersionSnapshot:
        """
        Add a snapshot inside the caller's transaction and prune the oldest.

        The caller commits, so the snapshot and the profile write land
        together or not at all.
        """
        row = ProfileVersion(
            id=str(uuid.uuid4()),
            user_id=user_id,
            profile=profile.model_dump(mode="json"),
            source=source.value,
            learning_iterations=profile.learning_iterations,
            timestamp=timestamp or datetime.now(timezone.utc),
        )
        session.add(row)
        await session.flush()
        await self._prune_in_session(session, user_id, self.max_versions)

        logger.debug(
            "Profile snapshot created",
            user_id=user_id,
            source=source.value,
            learning_iterations=profile.learning_iterations,
        )
        return _to_snapshot(row)

    async def get_version_history(
        self,
        user_id: str,
        db: Optional[AsyncSession] = None,
    ) -> list[ProfileVersionSnapshot]:
        """All retained versions, oldest first."""
        async def _get(session: AsyncSession) -> list[ProfileVersionSnapshot]:
            stmt = (
                select(ProfileVersion)
                .where(ProfileVersion.user_id == user_id)
                .order_by(ProfileVersion.timestamp, ProfileVersion.learning_iterations)
            )
            with translate_storage_errors("get_version_history"):
                rows = (await session.execute(stmt)).scalars().all()
            return [_to_snapshot(row) for row in rows]

        if db:
            return await _get(db)

        async with get_db_context(self.session_factory) as session:
            return await _get(session)

    async def get_version(
        self,
        user_id: str,
        index: int,
        db: Optional[AsyncSession] = None,
    ) -> Optional[ProfileVersionSnapshot]:
        """Version by position; negative indices count from the newest."""
        history = await self.get_version_history(user_id, db=db)
        actual = len(history) + index if index < 0 else index
        if actual < 0 or actual >= len(history):
            return None
        return history[actual]

    async def prune_versions(
        self,
        user_id: str,
        max_versions: Optional[int] = None,
        db: Optional[AsyncSession] = None,
    ) -> int:
        async def _prune(session: AsyncSession) -> int:
            pruned = await self._prune_in_session(session, user_id, max_versions or self.max_versions)
            await session.commit()
            return pruned

        if db:
            return await _prune(db)

        async with get_db_context(self.session_factory) as session:
            return await _prune(session)

    async def _prune_in_session(self, session: AsyncSession, user_id: str, keep: int) -> int:
        stale = (
            select(ProfileVersion.id)
            .where(ProfileVersion.user_id == user_id)
            .order_by(ProfileVersion.timestamp.desc(), ProfileVersion.learning_iterations.desc())
            .offset(keep)
        )
        with translate_storage_errors("prune_profile_versions"):
            stale_ids = list((await session.execute(stale)).scalars().all())
            if stale_ids:
                await session.execute(
                    delete(ProfileVersion).where(ProfileVersion.id.in_(stale_ids))
                )
        return len(stale_ids)
