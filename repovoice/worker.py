"""
Celery worker configuration for background tasks.
"""

from celery import Celery
from kombu import Queue

from repovoice.core.config import settings
from repovoice.core.observability import configure_logging, init_sentry

configure_logging()
init_sentry()

# Create Celery app
celery_app = Celery(
    "repovoice_worker",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["repovoice.tasks.learning"],
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=300,  # 5 minutes max per task
    task_soft_time_limit=240,  # Soft limit for graceful shutdown
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    worker_concurrency=settings.learning_worker_concurrency,
    # Redis broker: priorities 0 (highest) .. 9
    broker_transport_options={"queue_order_strategy": "priority", "priority_steps": list(range(10))},
    task_queues=[Queue(settings.learning_queue_name)],
    task_default_queue=settings.learning_queue_name,
)

# Task routing
celery_app.conf.task_routes = {
    "repovoice.tasks.learning.*": {"queue": settings.learning_queue_name},
}
