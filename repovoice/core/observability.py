"""
Observability and monitoring integrations.
structlog configuration for structured events, Sentry for error tracking.
"""

import logging
import sys
from typing import Optional

import sentry_sdk
import structlog

from repovoice.core.config import settings

logger = structlog.get_logger(__name__)

_sentry_initialized = False


def configure_logging() -> None:
    """
    Configure structlog and the stdlib root logger.

    Console rendering in development, one JSON object per line otherwise
    (selected by LOG_FORMAT).
    """
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.log_format == "json"
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def init_sentry() -> None:
    """Initialize Sentry error tracking."""
    global _sentry_initialized

    if _sentry_initialized or not settings.sentry_dsn:
        return

    try:
        from sentry_sdk.integrations.celery import CeleryIntegration
        from sentry_sdk.integrations.fastapi import FastApiIntegration
        from sentry_sdk.integrations.redis import RedisIntegration
        from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            environment=settings.sentry_environment,
            traces_sample_rate=settings.sentry_traces_sample_rate,
            integrations=[
                FastApiIntegration(transaction_style="endpoint"),
                CeleryIntegration(),
                SqlalchemyIntegration(),
                RedisIntegration(),
            ],
            # Don't send PII
            send_default_pii=False,
        )

        _sentry_initialized = True
        logger.info(
            "Sentry initialized",
            environment=settings.sentry_environment,
            sample_rate=settings.sentry_traces_sample_rate,
        )
    except Exception as e:
        logger.error("Failed to initialize Sentry", error=str(e))


def capture_exception(error: Exception, context: Optional[dict] = None) -> None:
    """
    Capture an exception to Sentry with additional context.

    Args:
        error: The exception to capture
        context: Additional context to attach
    """
    if not settings.sentry_dsn:
        return

    try:
        if context:
            sentry_sdk.set_context("learning_job", context)
        sentry_sdk.capture_exception(error)
    except Exception as e:
        logger.error("Failed to capture exception to Sentry", error=str(e))

