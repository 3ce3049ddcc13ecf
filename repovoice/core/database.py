"""
Async SQLAlchemy engine, session factory and declarative base.
"""

from contextlib import asynccontextmanager, contextmanager
from typing import AsyncGenerator, Iterator, Optional

import structlog
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from repovoice.core.config import settings
from repovoice.core.exceptions import TransientStorageError

logger = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


def _engine_kwargs() -> dict:
    if settings.database_null_pool or settings.database_url.startswith("sqlite"):
        return {"poolclass": NullPool}
    return {
        "pool_size": settings.database_pool_size,
        "max_overflow": settings.database_max_overflow,
        "pool_pre_ping": True,
    }


engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    **_engine_kwargs(),
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a database session."""
    async with AsyncSessionLocal() as session:
        yield session


@asynccontextmanager
async def get_db_context(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> AsyncGenerator[AsyncSession, None]:
    """Session context manager for use outside request handlers."""
    async with (session_factory or AsyncSessionLocal)() as session:
        try:
            yield session
        except Exception:
            try:
                await session.rollback()
            except Exception as e:
                logger.warning("Session rollback failed", error=str(e))
            raise


async def init_db() -> None:
    """Create tables that do not exist yet (migrations own the schema in production)."""
    # Register all models on the metadata
    import repovoice.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.debug("Database tables ensured")


async def close_db() -> None:
    """Dispose the engine connection pool."""
    await engine.dispose()


@contextmanager
def translate_storage_errors(operation: str) -> Iterator[None]:
    """Re-raise driver-level failures as TransientStorageError."""
    try:
        yield
    except (OperationalError, InterfaceError) as e:
        logger.warning("Storage operation failed", operation=operation, error=str(e))
        raise TransientStorageError(operation, e) from e
