"""
Job queue contract used by the resume pipeline, and its Celery implementation.

The pipeline needs three things from a queue: publish a job with attempt and
backoff options, report a job's coarse state, and redeliver a job on demand.
"""

import logging
from datetime import datetime, timezone
from typing import Optional
from celery import states
from celery.result import AsyncResult
from resume_pipeline.core.celery_app import celery_app
from resume_pipeline.core.celery_utils import queue_task_safely
from resume_pipeline.core.exceptions import NotFoundError
from resume_pipeline.schemas.pipeline import EnqueueOptions, JobState, PipelineState, ProcessingJob

logger = logging.getLogger(__name__)

# Custom state reported by the worker while stages run
PROGRESS_STATE = "PROGRESS"


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class JobQueue:
    """Abstract job queue"""

    def enqueue(self, job: ProcessingJob, options: EnqueueOptions, job_id: Optional[str] = None) -> str:
        """Publish a job and return its id"""
        raise NotImplementedError

    def get_state(self, job_id: str) -> Optional[JobState]:
        """Coarse state of a job, or None if the queue does not know it"""
        raise NotImplementedError

    def retry(self, job_id: str) -> None:
        """Redeliver a job from the first stage"""
        raise NotImplementedError


class CeleryJobQueue(JobQueue):
    """Job queue backed by Celery with the Redis result backend"""

    def __init__(self, app=celery_app):
        self.app = app

    @staticmethod
    def _task():
        # Imported lazily: the task module depends on the pipeline services
        from resume_pipeline.tasks.resume_tasks import process_resume_task
        return process_resume_task

    def enqueue(self, job: ProcessingJob, options: EnqueueOptions, job_id: Optional[str] = None) -> str:
        kwargs = {"job": job.to_message(), "options": options.model_dump()}
        queued_id = queue_task_safely(self._task(), kwargs=kwargs, task_id=job_id)
        logger.info(f"Enqueued resume job {queued_id} for candidate {job.candidate_id}")
        return queued_id

    def get_state(self, job_id: str) -> Optional[JobState]:
        result = AsyncResult(job_id, app=self.app)
        state = result.state

        # Celery reports unknown ids as PENDING, so a waiting job is
        # indistinguishable from one that never existed
        if state == states.PENDING:
            return None

        info = result.info
        meta = info if isinstance(info, dict) else {}
        job_kwargs = result.kwargs or {}
        candidate_id = meta.get("candidate_id") or (job_kwargs.get("job") or {}).get("candidateId")

        job_state = JobState(
            job_id=job_id,
            status=PipelineState.PROCESSING,
            candidate_id=candidate_id,
            progress=int(meta.get("progress", 0) or 0),
            attempts=int(meta.get("attempts") or meta.get("attempt") or (result.retries or 0) + 1),
            started_at=meta.get("started_at"),
        )

        if state == states.RETRY:
            job_state.status = PipelineState.RETRYING
            job_state.error = str(info) if info else None
        elif state == states.SUCCESS:
            job_state.completed_at = _as_utc(result.date_done)
            if meta.get("success", True):
                job_state.status = PipelineState.COMPLETED
                job_state.progress = 100
                job_state.parsed_data = meta.get("parsed_data")
            else:
                job_state.status = PipelineState.FAILED
                job_state.error = meta.get("error")
        elif state == states.FAILURE:
            job_state.status = PipelineState.FAILED
            job_state.completed_at = _as_utc(result.date_done)
            job_state.error = str(info) if info else "Unknown error"

        return job_state

    def retry(self, job_id: str) -> None:
        result = AsyncResult(job_id, app=self.app)
        kwargs = result.kwargs
        if not kwargs:
            raise NotFoundError(f"Job not found: {job_id}")

        # Drop the old result so readers do not see the previous terminal state
        result.forget()
        queue_task_safely(self._task(), kwargs=kwargs, task_id=job_id)
        logger.info(f"Retrying job: {job_id}")
