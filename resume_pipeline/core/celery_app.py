"""
Celery application configuration.

Redis serves as both the message broker and the result backend. Extended
results are enabled so that a job's payload can be read back from the backend
when a pipeline is retried manually.
"""

from celery import Celery, signals
from resume_pipeline.core.config import settings
from resume_pipeline.core.logging_config import setup_logging

celery_app = Celery(
    "resume_pipeline_worker",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL
)

celery_app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # Timezone
    timezone="UTC",
    enable_utc=True,

    # Task behavior
    task_track_started=True,  # Track when tasks start (for monitoring)
    task_time_limit=300,  # 5 minutes max per attempt (stalled-job detection)
    task_soft_time_limit=240,  # Warn at 4 minutes
    task_acks_late=True,  # At-least-once delivery: ack after the attempt finishes
    task_reject_on_worker_lost=True,
    task_always_eager=settings.CELERY_TASK_ALWAYS_EAGER,

    # Result backend
    result_expires=86400,  # Match the pipeline status retention window
    result_extended=True,  # Keep task kwargs so jobs can be redelivered by id

    # Worker behavior
    worker_concurrency=settings.CELERY_WORKER_CONCURRENCY,
    worker_prefetch_multiplier=1,  # Only fetch 1 task at a time
    worker_max_tasks_per_child=50,  # Restart worker after 50 tasks (prevent memory leaks)
)

celery_app.autodiscover_tasks(['resume_pipeline'])


@signals.setup_logging.connect
def configure_worker_logging(**kwargs):
    """Use the application's log format in worker processes instead of Celery's"""
    setup_logging(log_level=settings.LOG_LEVEL, json_logs=settings.JSON_LOGS)
