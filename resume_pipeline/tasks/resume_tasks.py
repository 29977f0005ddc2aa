"""
Celery task for the resume processing pipeline.

The task is a thin adapter around ResumeProcessingWorker: it rebuilds the
job payload, opens a database session, runs one attempt and then decides
from the outcome's `retryable` flag whether Celery should redeliver it.

Redelivery uses exponential backoff: delay * 2**(attempt - 1), capped by
PIPELINE_BACKOFF_MAX_SECONDS.
"""

import logging
from datetime import datetime, timezone
from typing import Optional
from resume_pipeline.core.celery_app import celery_app
from resume_pipeline.core.config import settings
from resume_pipeline.core.database import SessionLocal
from resume_pipeline.core.deps import get_resume_worker
from resume_pipeline.core.exceptions import TransientServiceError
from resume_pipeline.core.job_queue import PROGRESS_STATE
from resume_pipeline.schemas.pipeline import EnqueueOptions, PipelineStage, ProcessingJob

logger = logging.getLogger(__name__)


@celery_app.task(name="resume_pipeline.tasks.resume_tasks.process_resume_task", bind=True)
def process_resume_task(self, job: dict, options: Optional[dict] = None):
    """
    Process one uploaded resume.

    Args:
        self: Celery task instance (when bind=True)
        job: ProcessingJob message (camelCase keys)
        options: EnqueueOptions (attempts and backoff)

    Returns:
        dict: ProcessingOutcome of the final attempt
    """
    job_id = self.request.id
    processing_job = ProcessingJob.model_validate(job)
    enqueue_options = EnqueueOptions.model_validate(options or {})
    delivery_attempt = self.request.retries + 1
    started_at = datetime.now(timezone.utc).isoformat()

    logger.info(
        f"[Task {job_id}] Processing resume for Candidate {processing_job.candidate_id} "
        f"(delivery {delivery_attempt})"
    )

    def report_progress(progress: int, stage: PipelineStage, attempt: int) -> None:
        # Eager runs have no result backend to report to
        if self.request.is_eager:
            return
        self.update_state(
            state=PROGRESS_STATE,
            meta={
                "candidate_id": processing_job.candidate_id,
                "progress": progress,
                "stage": stage.value,
                "attempts": attempt,
                "started_at": started_at,
            },
        )

    db = SessionLocal()
    try:
        outcome = get_resume_worker().process(
            job_id,
            processing_job,
            delivery_attempt,
            db,
            progress_callback=report_progress,
        )
    finally:
        db.close()

    if outcome.retryable:
        countdown = enqueue_options.backoff_seconds(outcome.attempt, settings.PIPELINE_BACKOFF_MAX_SECONDS)
        logger.warning(
            f"[Task {job_id}] Attempt {outcome.attempt} failed with a transient error, "
            f"retrying in {countdown:.1f}s: {outcome.error}"
        )
        raise self.retry(
            exc=TransientServiceError(outcome.error),
            countdown=countdown,
            max_retries=max(enqueue_options.attempts - 1, 0),
        )

    if outcome.success:
        logger.info(f"[Task {job_id}] Resume processed in {outcome.processing_time}ms")
    else:
        logger.error(f"[Task {job_id}] Resume processing failed: {outcome.error}")

    return outcome.to_dict()
