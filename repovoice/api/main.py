"""
FastAPI application main entry point.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from repovoice.api.routes import content_router, learning_router, profile_router
from repovoice.bootstrap import build_learning_services
from repovoice.core.cache import cache
from repovoice.core.config import settings
from repovoice.core.database import close_db, init_db
from repovoice.core.exceptions import (
    DeltaExtractionError,
    ProfileConflictError,
    TransientStorageError,
    ValidationError,
)
from repovoice.core.observability import configure_logging

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    # Startup
    configure_logging()
    logger.info("Starting RepoVoice Backend", environment=settings.environment)

    # Connect to Redis
    try:
        await cache.connect()
        logger.info("Redis connected")
    except Exception as e:
        logger.warning("Redis connection failed", error=str(e))

    # Initialize database
    try:
        await init_db()
        logger.info("Database initialized")
    except Exception as e:
        logger.warning("Database initialization failed", error=str(e))

    # Initialize Sentry for error tracking
    try:
        from repovoice.core.observability import init_sentry
        init_sentry()
        logger.info("Sentry initialized")
    except Exception as e:
        logger.warning("Sentry initialization failed", error=str(e))

    # Without the shared gate the engine stays down and learning routes answer 503
    try:
        app.state.learning = build_learning_services(cache=cache)
        logger.info("Learning engine ready", gate_backend=settings.learning_gate_backend)
    except Exception as e:
        logger.error("Learning engine initialization failed", error=str(e))

    yield

    # Shutdown
    logger.info("Shutting down RepoVoice Backend")
    await cache.disconnect()
    await close_db()


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    RepoVoice Feedback Learning Backend

    Learns a user's writing style from the edits they make to generated
    posts and threads:
    - Style deltas recorded for every saved edit
    - Batched, rate-limited background profile learning
    - Profile version history and evolution analytics
    """,
    docs_url="/docs" if settings.environment != "production" else None,
    redoc_url="/redoc" if settings.environment != "production" else None,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(content_router, prefix=settings.api_v1_prefix)
app.include_router(learning_router, prefix=settings.api_v1_prefix)
app.include_router(profile_router, prefix=settings.api_v1_prefix)


# Engine errors that reach a request handler
@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(DeltaExtractionError)
async def delta_error_handler(request: Request, exc: DeltaExtractionError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(TransientStorageError)
@app.exception_handler(ProfileConflictError)
async def retryable_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Retryable storage failure", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=503, content={"detail": "Temporarily unavailable, retry later"})


# Health check endpoint
@app.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
    }


# Root endpoint
@app.get("/")
async def root() -> dict:
    """Root endpoint with API information."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
        "endpoints": {
            "save_edit": f"{settings.api_v1_prefix}/content/{{content_id}}/edits",
            "learning_job": f"{settings.api_v1_prefix}/learning/jobs/{{job_id}}",
            "learning_metrics": f"{settings.api_v1_prefix}/learning/metrics",
            "profile_versions": f"{settings.api_v1_prefix}/profile/versions",
            "profile_evolution": f"{settings.api_v1_prefix}/profile/evolution",
        },
    }
