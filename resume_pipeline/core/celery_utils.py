"""
Celery utility functions for reliable task queueing.

Tasks are published over a fresh Kombu connection from a small thread pool so
that publishing from FastAPI's event loop does not fight Celery's cached
connection pool.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Tuple
from celery import Task
from kombu import Connection
from resume_pipeline.core.config import settings
from resume_pipeline.core.exceptions import TransientServiceError

logger = logging.getLogger(__name__)

# Thread pool for queueing tasks from async contexts
_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="celery_queue")

PUBLISH_TIMEOUT_SECONDS = 5


def _queue_task_sync(task: Task, kwargs: dict, task_id: Optional[str]) -> Tuple[bool, str, str]:
    """
    Publish the task synchronously in a worker thread.

    Returns:
        Tuple[bool, str, str]: (success, task_id, error_message)
    """
    try:
        with Connection(settings.REDIS_URL) as conn:
            result = task.apply_async(
                kwargs=kwargs,
                task_id=task_id,
                connection=conn,
                retry=True,
                retry_policy={
                    'max_retries': 3,
                    'interval_start': 0,
                    'interval_step': 0.2,
                    'interval_max': 0.2,
                }
            )
            return (True, result.id, "")
    except Exception as e:
        return (False, "", str(e))


def queue_task_safely(task: Task, kwargs: dict, task_id: Optional[str] = None) -> str:
    """
    Queue a Celery task with connection retry logic.

    Args:
        task: The Celery task to queue
        kwargs: Keyword arguments for the task
        task_id: Optional id to publish the task under

    Returns:
        str: The id of the queued task

    Raises:
        TransientServiceError: If the broker could not be reached
    """
    if task.app.conf.task_always_eager:
        # Eager mode runs the task inline; no broker involved
        return task.apply_async(kwargs=kwargs, task_id=task_id).id

    future = _executor.submit(_queue_task_sync, task, kwargs, task_id)
    success, queued_id, error = future.result(timeout=PUBLISH_TIMEOUT_SECONDS)

    if not success:
        logger.error(f"Failed to queue task {task.name}: {error}")
        raise TransientServiceError(f"Job queue temporary failure: {error}")

    logger.info(f"Task {task.name} queued successfully: {queued_id}")
    return queued_id
