"""
API endpoints for the resume processing pipeline.

Handles resume uploads, job status polling, manual retries and monitoring.
"""

import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from resume_pipeline.core.deps import get_intake_service, get_status_tracker
from resume_pipeline.core.exceptions import (
    NotFoundError,
    PipelineError,
    RetryExhaustedError,
    TransientServiceError,
    ValidationError,
)
from resume_pipeline.schemas.candidate import CandidateIdentity, ResumeUpload, UploadResumeResponse
from resume_pipeline.schemas.pipeline import PipelineHealth, PipelineStatistics, PipelineStatus
from resume_pipeline.services.pipeline_status import PipelineStatusTracker
from resume_pipeline.services.resume_intake import IntakeService

router = APIRouter(prefix="/resume-pipeline", tags=["Resume Pipeline"])
logger = logging.getLogger(__name__)


def _to_http_exception(error: PipelineError) -> HTTPException:
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, (ValidationError, RetryExhaustedError)):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
    if isinstance(error, TransientServiceError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(error))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))


@router.post("/upload", response_model=UploadResumeResponse, response_model_by_alias=True)
async def upload_resume(
    file: UploadFile = File(...),
    candidate_id: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    first_name: Optional[str] = Form(None),
    last_name: Optional[str] = Form(None),
    linkedin_url: Optional[str] = Form(None),
    intake: IntakeService = Depends(get_intake_service),
):
    """
    Upload a resume and queue it for processing.

    Flow:
    1. Validate file type (PDF, DOC, DOCX, JPEG, PNG, GIF) and size
    2. Resolve the candidate by candidate_id, or find/create one by email
    3. Store the file and record its URL on the candidate
    4. Queue the processing job
    5. Return the job id for status polling

    Raises:
        HTTPException 400: Invalid file or missing identity
        HTTPException 404: Unknown candidate_id
        HTTPException 503: Storage or queue temporarily unavailable
    """
    content = await file.read()

    try:
        identity = CandidateIdentity(
            candidate_id=candidate_id or None,
            email=email or None,
            first_name=first_name,
            last_name=last_name,
            linkedin_url=linkedin_url,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid candidate identity: {e}")

    upload = ResumeUpload(
        content=content,
        mime_type=file.content_type or "application/octet-stream",
        size=file.size if file.size is not None else len(content),
        original_name=file.filename or "resume",
    )

    try:
        return intake.upload_resume(upload, identity)
    except PipelineError as e:
        logger.warning(f"Resume upload rejected: {e}")
        raise _to_http_exception(e)


@router.get("/status/{job_id}", response_model=PipelineStatus, response_model_by_alias=True)
async def get_pipeline_status(
    job_id: str,
    tracker: PipelineStatusTracker = Depends(get_status_tracker),
):
    """Current status and notification trail of a job."""
    pipeline_status = tracker.get(job_id)
    if pipeline_status is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Pipeline status not found")
    return pipeline_status


@router.post("/retry/{job_id}")
async def retry_pipeline(
    job_id: str,
    tracker: PipelineStatusTracker = Depends(get_status_tracker),
):
    """Run a failed job again from the first stage."""
    try:
        tracker.retry(job_id)
    except PipelineError as e:
        raise _to_http_exception(e)
    return {"success": True, "message": "Pipeline retry initiated"}


@router.get("/monitor/all", response_model=List[PipelineStatus], response_model_by_alias=True)
async def list_pipelines(tracker: PipelineStatusTracker = Depends(get_status_tracker)):
    return tracker.list_all()


@router.get("/monitor/statistics", response_model=PipelineStatistics)
async def pipeline_statistics(tracker: PipelineStatusTracker = Depends(get_status_tracker)):
    return tracker.statistics()


@router.get(
    "/monitor/candidate/{candidate_id}",
    response_model=List[PipelineStatus],
    response_model_by_alias=True,
)
async def candidate_pipelines(
    candidate_id: str,
    tracker: PipelineStatusTracker = Depends(get_status_tracker),
):
    """All tracked jobs for one candidate."""
    return tracker.for_candidate(candidate_id)


@router.get("/health", response_model=PipelineHealth, response_model_by_alias=True)
async def pipeline_health(tracker: PipelineStatusTracker = Depends(get_status_tracker)):
    """
    Pipeline health from the failure rate of tracked jobs:
    unhealthy above 50%, degraded above 20%.
    """
    return tracker.health()
