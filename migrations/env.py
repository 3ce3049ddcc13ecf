"""
Alembic migrations for the learning tables.

The database URL always comes from application settings, so migrations
run against the same database as the API and the learning worker.
"""

import asyncio

import structlog
from alembic import context
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

import repovoice.models  # noqa: F401
from repovoice.core.config import settings
from repovoice.core.database import Base
from repovoice.core.observability import configure_logging

configure_logging()
logger = structlog.get_logger("repovoice.migrations")

target_metadata = Base.metadata


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        **kwargs,
    )


def run_migrations_offline() -> None:
    """Emit the migration SQL without connecting."""
    _configure(
        url=settings.database_url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def _run_on_connection(connection: Connection) -> None:
    _configure(connection=connection)
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    engine = create_async_engine(settings.database_url, poolclass=NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_run_on_connection)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    logger.info("Generating migration SQL", database=settings.postgres_database)
    run_migrations_offline()
else:
    logger.info("Applying migrations", database=settings.postgres_database)
    asyncio.run(run_migrations_online())
