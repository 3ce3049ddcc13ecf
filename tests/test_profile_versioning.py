"""
Profile version history tests.
"""

from datetime import datetime, timedelta, timezone

import pytest

from repovoice.schemas.style_profile import SnapshotSource, StyleProfile
from repovoice.services.profile_versioning import ProfileVersioningService

START = datetime(2026, 1, 1, tzinfo=timezone.utc)


async def snapshot_iterations(service, session_factory, user_id: str, count: int) -> None:
    for i in range(count):
        async with session_factory() as session:
            await service.create_snapshot(
                session,
                user_id,
                StyleProfile(learning_iterations=i),
                SnapshotSource.FEEDBACK,
                timestamp=START + timedelta(minutes=i),
            )
            await session.commit()


@pytest.mark.asyncio
async def test_history_keeps_newest_versions(session_factory):
    service = ProfileVersioningService(session_factory=session_factory, max_versions=3)
    await snapshot_iterations(service, session_factory, "user-1", 5)

    history = await service.get_version_history("user-1")

    assert [v.learning_iterations for v in history] == [2, 3, 4]
    assert all(v.source == SnapshotSource.FEEDBACK for v in history)


@pytest.mark.asyncio
async def test_get_version_by_index(session_factory):
    service = ProfileVersioningService(session_factory=session_factory, max_versions=10)
    await snapshot_iterations(service, session_factory, "user-1", 3)

    assert (await service.get_version("user-1", 0)).learning_iterations == 0
    assert (await service.get_version("user-1", -1)).learning_iterations == 2
    assert await service.get_version("user-1", 3) is None
    assert await service.get_version("user-1", -4) is None


@pytest.mark.asyncio
async def test_snapshot_without_commit_is_discarded(session_factory):
    """Snapshots share the caller's transaction."""
    service = ProfileVersioningService(session_factory=session_factory, max_versions=10)
    async with session_factory() as session:
        await service.create_snapshot(session, "user-1", StyleProfile(), SnapshotSource.MANUAL)
        await session.rollback()

    assert await service.get_version_history("user-1") == []


@pytest.mark.asyncio
async def test_prune_versions(session_factory):
    service = ProfileVersioningService(session_factory=session_factory, max_versions=10)
    await snapshot_iterations(service, session_factory, "user-1", 4)
    await snapshot_iterations(service, session_factory, "user-2", 2)

    assert await service.prune_versions("user-1", max_versions=1) == 3

    assert len(await service.get_version_history("user-1")) == 1
    assert len(await service.get_version_history("user-2")) == 2
