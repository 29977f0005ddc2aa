"""
Resume intake: the synchronous half of the pipeline.

upload_resume() validates the file, resolves (or creates) the candidate,
stores the bytes, starts tracking the job and enqueues it. Everything slow
(extraction, parsing, merging) happens later in the worker.
"""

import logging
import uuid
from typing import Optional
from sqlalchemy.orm import Session
from resume_pipeline import crud
from resume_pipeline.core.config import settings
from resume_pipeline.core.exceptions import NotFoundError, ValidationError
from resume_pipeline.core.job_queue import JobQueue
from resume_pipeline.core.storage import StorageBackend
from resume_pipeline.models.candidate import Candidate, is_blank
from resume_pipeline.schemas.candidate import CandidateIdentity, ResumeUpload, UploadResumeResponse
from resume_pipeline.schemas.pipeline import BackoffOptions, EnqueueOptions, ProcessingJob
from resume_pipeline.services.extraction import MIME_TYPE_FORMATS
from resume_pipeline.services.pipeline_status import PipelineStatusTracker

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = frozenset(MIME_TYPE_FORMATS)


def default_enqueue_options() -> EnqueueOptions:
    return EnqueueOptions(
        attempts=settings.PIPELINE_MAX_ATTEMPTS,
        backoff=BackoffOptions(type="exponential", delay=settings.PIPELINE_BACKOFF_DELAY_MS),
    )


class IntakeService:
    """Accepts resume uploads and hands them to the job queue."""

    def __init__(
        self,
        db: Session,
        storage: StorageBackend,
        job_queue: JobQueue,
        tracker: PipelineStatusTracker,
        max_upload_bytes: Optional[int] = None,
        enqueue_options: Optional[EnqueueOptions] = None,
    ):
        self.db = db
        self.storage = storage
        self.job_queue = job_queue
        self.tracker = tracker
        self.max_upload_bytes = max_upload_bytes or settings.MAX_UPLOAD_SIZE_BYTES
        self.enqueue_options = enqueue_options or default_enqueue_options()

    def validate_upload(self, upload: ResumeUpload) -> None:
        """
        Raises:
            ValidationError: Disallowed mime type, empty file or file too large
        """
        if upload.mime_type not in ALLOWED_MIME_TYPES:
            raise ValidationError(
                f"Invalid file type: {upload.mime_type}. Only PDF, DOC, DOCX, and image files are allowed."
            )

        size = max(upload.size, len(upload.content))
        if size == 0 or not upload.content:
            raise ValidationError("Uploaded file is empty")
        if size > self.max_upload_bytes:
            raise ValidationError(
                f"File size exceeds the maximum allowed size of {self.max_upload_bytes // (1024 * 1024)}MB"
            )

    def resolve_candidate(self, identity: CandidateIdentity) -> Candidate:
        """
        Find the candidate the upload belongs to, creating one from the email
        when nobody matches. candidate_id takes precedence over email.

        Raises:
            NotFoundError: candidate_id given but unknown
            ValidationError: Neither candidate_id nor email given
        """
        if not is_blank(identity.candidate_id):
            candidate = crud.candidate.get_by_id(self.db, identity.candidate_id.strip())
            if candidate is None:
                raise NotFoundError("Candidate not found")
            return candidate

        if not is_blank(identity.email):
            email = str(identity.email).strip()
            candidate = crud.candidate.get_by_email(self.db, email)
            if candidate is not None:
                return candidate

            candidate = crud.candidate.create(
                self.db,
                email=email,
                first_name=identity.first_name,
                last_name=identity.last_name,
                linkedin_url=identity.linkedin_url,
            )
            logger.info(f"Created candidate {candidate.id} for {email}")
            return candidate

        raise ValidationError("Either candidate_id or email must be provided")

    def upload_resume(self, upload: ResumeUpload, identity: CandidateIdentity) -> UploadResumeResponse:
        """
        Validate, store and enqueue a resume.

        Returns:
            UploadResumeResponse with the job id to poll for status

        Raises:
            ValidationError: Bad file or missing identity
            NotFoundError: Unknown candidate_id
            StorageError / TransientServiceError: Storage or queue failures
        """
        self.validate_upload(upload)
        candidate = self.resolve_candidate(identity)

        stored = self.storage.upload(upload.content, upload.mime_type, candidate.id)
        logger.info(f"Stored resume for candidate {candidate.id} at {stored.path}")

        try:
            crud.candidate.set_resume_url(self.db, candidate, stored.url)
        except Exception:
            self.db.rollback()
            logger.error(f"Could not record resume URL for candidate {candidate.id}, removing {stored.path}")
            self.storage.delete(stored.path)
            raise

        job = ProcessingJob(
            candidate_id=candidate.id,
            file_url=stored.url,
            file_path=stored.path,
            original_name=upload.original_name,
            mime_type=upload.mime_type,
        )

        # Tracked before publishing: an eager or fast worker may start immediately
        job_id = str(uuid.uuid4())
        self.tracker.initialize(job_id, job)

        try:
            self.job_queue.enqueue(job, self.enqueue_options, job_id=job_id)
        except Exception as e:
            logger.error(f"Failed to enqueue resume job {job_id}: {e}")
            self.tracker.mark_start_failed(job_id, e)
            raise

        logger.info(f"Resume upload queued as job {job_id} for candidate {candidate.id}")
        return UploadResumeResponse(
            job_id=job_id,
            candidate_id=candidate.id,
            file_url=stored.url,
            status="queued",
        )
