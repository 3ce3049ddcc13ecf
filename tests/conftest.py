"""
Pytest configuration and fixtures.
"""

import os

# Settings are read at import time; point the module-level engine at SQLite
os.environ.setdefault("DATABASE_URL_OVERRIDE", "sqlite+aiosqlite:///:memory:")

import uuid
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Optional
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import repovoice.models  # noqa: F401
from repovoice.bootstrap import LearningServices, build_learning_services
from repovoice.core.database import Base
from repovoice.models.content import Content
from repovoice.models.user import User
from repovoice.schemas.edit_metadata import ContentFormat
from repovoice.schemas.style_profile import StyleProfile
from repovoice.services.learning_gate import InMemoryGateBackend
from repovoice.services.learning_queue import JobHandle


class TickingClock:
    """UTC clock that moves forward one second per reading."""

    def __init__(self, start: Optional[datetime] = None, step: timedelta = timedelta(seconds=1)):
        self.current = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
        self.step = step

    def __call__(self) -> datetime:
        now = self.current
        self.current += self.step
        return now


class ManualMsClock:
    """Millisecond clock for the learning gate, advanced by hand."""

    def __init__(self, start: int = 1_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeLearningQueue:
    """Records enqueued jobs instead of publishing them."""

    def __init__(self):
        self.jobs: list[dict] = []

    async def enqueue_learning_job(
        self,
        job_id: str,
        user_id: str,
        content_id: str,
        priority: int = 0,
        countdown_ms: Optional[int] = None,
    ) -> JobHandle:
        self.jobs.append(
            {
                "job_id": job_id,
                "user_id": user_id,
                "content_id": content_id,
                "priority": priority,
                "countdown_ms": countdown_ms,
            }
        )
        return JobHandle(job_id=job_id, task_id=job_id, countdown_ms=countdown_ms or 0)


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh SQLite database per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock()


@pytest.fixture
def gate_clock() -> ManualMsClock:
    return ManualMsClock()


@pytest.fixture
def fake_queue() -> FakeLearningQueue:
    return FakeLearningQueue()


@pytest.fixture
def profile_cache() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def services(session_factory, clock, gate_clock, fake_queue, profile_cache) -> LearningServices:
    """Learning services wired to the test database, fake queue and test clocks."""
    built = build_learning_services(
        session_factory=session_factory,
        queue=fake_queue,
        gate_backend=InMemoryGateBackend(clock=gate_clock),
        profile_cache=profile_cache,
    )
    built.store.clock = clock
    built.engine.clock = clock
    return built


@pytest.fixture
def create_user(session_factory):
    """Factory inserting a user, with a default style profile unless told otherwise."""
    async def _create(
        user_id: Optional[str] = None,
        profile: Optional[StyleProfile] = StyleProfile(),
        overrides: Optional[dict] = None,
    ) -> str:
        user_id = user_id or str(uuid.uuid4())
        async with session_factory() as session:
            session.add(
                User(
                    id=user_id,
                    email=f"{user_id}@example.com",
                    style_profile=profile.model_dump(mode="json") if profile else None,
                    manual_overrides=overrides,
                )
            )
            await session.commit()
        return user_id

    return _create


@pytest.fixture
def create_content(session_factory):
    """Factory inserting a generated single post or thread."""
    async def _create(
        user_id: str,
        generated_text: str = "We leverage synergies to deliver value.",
        content_format: ContentFormat = ContentFormat.SINGLE,
        tweets: Optional[list[str]] = None,
    ) -> str:
        content_id = str(uuid.uuid4())
        async with session_factory() as session:
            session.add(
                Content(
                    id=content_id,
                    user_id=user_id,
                    content_format=content_format.value,
                    generated_text=generated_text,
                    tweets=[{"position": i, "text": t} for i, t in enumerate(tweets)] if tweets else None,
                )
            )
            await session.commit()
        return content_id

    return _create


@pytest.fixture
def mock_user_id() -> str:
    """Return mock user ID for testing."""
    return "test-user-001"
