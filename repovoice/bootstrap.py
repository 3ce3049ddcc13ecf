"""
Process-wide wiring of the learning engine.

The API lifespan and the Celery worker build their engine here; nothing in
the engine reaches for module-level service instances.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from repovoice.core.cache import RedisCache
from repovoice.core.config import settings
from repovoice.services.edit_metadata_store import EditMetadataStore
from repovoice.services.feedback_learning import FeedbackLearningEngine, ProfileCache
from repovoice.services.learning_gate import (
    GateBackend,
    InMemoryGateBackend,
    LearningGate,
    build_gate_backend,
)
from repovoice.services.learning_monitor import LearningMonitor
from repovoice.services.learning_queue import CeleryLearningQueue, DeadLetterStore, LearningQueue
from repovoice.services.learning_worker import LearningJobHandler
from repovoice.services.pattern_detector import PatternDetector, PatternThresholds
from repovoice.services.profile_evolution import ProfileEvolutionService
from repovoice.services.profile_policy import ProfileUpdatePolicy
from repovoice.services.profile_versioning import ProfileVersioningService
from repovoice.services.style_delta import StyleDeltaExtractor
from repovoice.services.tone_classifier import build_tone_classifier

logger = structlog.get_logger(__name__)

# Single-process runs only: state lives for the whole process but is not
# shared between processes
_process_gate_backend = InMemoryGateBackend()


@dataclass
class LearningServices:
    engine: FeedbackLearningEngine
    store: EditMetadataStore
    versioning: ProfileVersioningService
    evolution: ProfileEvolutionService
    monitor: LearningMonitor
    dead_letters: DeadLetterStore


def build_learning_services(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    cache: Optional[RedisCache] = None,
    queue: Optional[LearningQueue] = None,
    gate_backend: Optional[GateBackend] = None,
    profile_cache: Optional[ProfileCache] = None,
) -> LearningServices:
    """Build the learning services with settings-driven defaults."""
    if gate_backend is None:
        if settings.learning_gate_backend == "redis":
            if cache is None:
                raise ValueError("Redis gate backend requires a connected cache")
            gate_backend = build_gate_backend("redis", cache.client)
        else:
            gate_backend = _process_gate_backend

    extractor = StyleDeltaExtractor(build_tone_classifier(settings.tone_classifier))
    store = EditMetadataStore(extractor, session_factory=session_factory)
    versioning = ProfileVersioningService(session_factory=session_factory)
    monitor = LearningMonitor(session_factory=session_factory)

    engine = FeedbackLearningEngine(
        extractor=extractor,
        store=store,
        detector=PatternDetector(PatternThresholds.from_settings()),
        policy=ProfileUpdatePolicy(),
        versioning=versioning,
        gate=LearningGate(gate_backend),
        queue=queue or CeleryLearningQueue(),
        cache=profile_cache or cache,
        monitor=monitor,
        session_factory=session_factory,
    )

    logger.debug(
        "Learning engine built",
        gate_backend=type(gate_backend).__name__,
        tone_classifier=settings.tone_classifier,
    )
    return LearningServices(
        engine=engine,
        store=store,
        versioning=versioning,
        evolution=ProfileEvolutionService(store, cache=cache, session_factory=session_factory),
        monitor=monitor,
        dead_letters=DeadLetterStore(session_factory=session_factory),
    )


@asynccontextmanager
async def worker_job_handler() -> AsyncIterator[LearningJobHandler]:
    """
    Job handler for one Celery task.

    Each task runs in its own event loop, so the database engine and Redis
    client are created for the task and closed afterwards. The prefork pool
    runs tasks in separate processes, so the cooldown always lives in Redis
    whatever the configured backend.
    """
    db_engine = create_async_engine(settings.database_url, poolclass=NullPool)
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    cache = RedisCache()
    await cache.connect()
    try:
        services = build_learning_services(
            session_factory=session_factory,
            cache=cache,
            gate_backend=build_gate_backend("redis", cache.client),
        )
        yield LearningJobHandler(services.engine, services.dead_letters)
    finally:
        await cache.disconnect()
        await db_engine.dispose()
