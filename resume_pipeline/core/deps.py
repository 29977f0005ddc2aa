"""
Shared service instances and FastAPI dependencies for the resume pipeline.

Long-lived collaborators (queue, tracker, extractors, parser, worker) are
built once per process. The API and the Celery task both go through these
factories so they share one status tracker within a process.
"""

from datetime import timedelta
from functools import lru_cache
from fastapi import Depends
from sqlalchemy.orm import Session

from resume_pipeline.core.config import settings
from resume_pipeline.core.database import get_db
from resume_pipeline.core.job_queue import CeleryJobQueue, JobQueue
from resume_pipeline.core.storage import get_storage
from resume_pipeline.services.error_classifier import ErrorClassifier
from resume_pipeline.services.extraction import TextExtractionService
from resume_pipeline.services.pipeline_status import PipelineStatusTracker
from resume_pipeline.services.resume_intake import IntakeService
from resume_pipeline.services.resume_parser import ResumeParser
from resume_pipeline.services.resume_processing import ResumeProcessingWorker


@lru_cache(maxsize=1)
def get_job_queue() -> JobQueue:
    return CeleryJobQueue()


@lru_cache(maxsize=1)
def get_status_tracker() -> PipelineStatusTracker:
    return PipelineStatusTracker(
        classifier=ErrorClassifier(max_attempts=settings.PIPELINE_MAX_ATTEMPTS),
        job_queue=get_job_queue(),
        max_attempts=settings.PIPELINE_MAX_ATTEMPTS,
        retention=timedelta(hours=settings.PIPELINE_STATUS_RETENTION_HOURS),
    )


@lru_cache(maxsize=1)
def get_text_extractor() -> TextExtractionService:
    return TextExtractionService()


@lru_cache(maxsize=1)
def get_resume_parser() -> ResumeParser:
    return ResumeParser()


@lru_cache(maxsize=1)
def get_resume_worker() -> ResumeProcessingWorker:
    return ResumeProcessingWorker(
        storage=get_storage(),
        extractor=get_text_extractor(),
        parser=get_resume_parser(),
        tracker=get_status_tracker(),
    )


def get_intake_service(db: Session = Depends(get_db)) -> IntakeService:
    """Request-scoped intake service bound to the request's database session"""
    return IntakeService(
        db=db,
        storage=get_storage(),
        job_queue=get_job_queue(),
        tracker=get_status_tracker(),
    )
