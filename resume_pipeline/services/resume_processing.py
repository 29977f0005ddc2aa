"""
Resume processing worker.

Runs one delivery of a ProcessingJob through its stages:

1. Validate  (5-10%)  candidate exists, mime type has an extractor
2. Download  (20%)    bytes from the storage backend
3. Extract   (40%)    plain text through the format registry
4. Parse     (60%)    structured content from the AI parser
5. Persist   (80%)    fill blank contact fields, upsert ParsedResumeData
6. Finalize  (100%)   tracker marked completed

Failures never escape process(): they are recorded on the tracker and
returned as a ProcessingOutcome whose `retryable` flag tells the queue
adapter whether to redeliver.
"""

import logging
import time
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Optional
from sqlalchemy.orm import Session
from resume_pipeline import crud
from resume_pipeline.core.exceptions import NotFoundError
from resume_pipeline.core.storage import StorageBackend
from resume_pipeline.schemas.pipeline import PipelineStage, ProcessingJob
from resume_pipeline.schemas.resume import ParsedResumeContent
from resume_pipeline.services.extraction import TextExtractionService, format_for_mime_type
from resume_pipeline.services.pipeline_status import PipelineStatusTracker
from resume_pipeline.services.resume_parser import ResumeParser

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, PipelineStage, int], None]


@dataclass
class ProcessingOutcome:
    """Result of one processing attempt"""
    candidate_id: str
    success: bool
    parsed_data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    processing_time: int = 0  # Milliseconds
    retryable: bool = False
    attempt: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ResumeProcessingWorker:
    """Turns a stored resume file into structured candidate data."""

    def __init__(
        self,
        storage: StorageBackend,
        extractor: TextExtractionService,
        parser: ResumeParser,
        tracker: PipelineStatusTracker,
    ):
        self.storage = storage
        self.extractor = extractor
        self.parser = parser
        self.tracker = tracker

    def process(
        self,
        job_id: str,
        job: ProcessingJob,
        delivery_attempt: int,
        db: Session,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> ProcessingOutcome:
        """
        Run every stage for one delivery of the job.

        Args:
            job_id: Queue id of the job
            job: The job payload
            delivery_attempt: 1-based delivery number reported by the queue
            db: Database session, owned by the caller
            progress_callback: Called with (progress, stage, attempt) at every checkpoint

        Returns:
            ProcessingOutcome; `retryable` is True only when the queue should redeliver
        """
        started = time.monotonic()
        attempt = self.tracker.begin_attempt(job_id, delivery_attempt, candidate_id=job.candidate_id)
        stage = PipelineStage.VALIDATION

        def checkpoint(progress: int, current: PipelineStage, message: str) -> None:
            self.tracker.update_progress(job_id, progress, current, message)
            if progress_callback is not None:
                progress_callback(progress, current, attempt)

        logger.info(
            f"Processing resume job {job_id} for candidate {job.candidate_id} "
            f"(attempt {attempt}, file {job.original_name})"
        )

        try:
            checkpoint(5, stage, "Validating candidate and file")
            if crud.candidate.get_by_id(db, job.candidate_id) is None:
                raise NotFoundError("Candidate not found")
            document_format = format_for_mime_type(job.mime_type)
            checkpoint(10, stage, "Validation passed")

            stage = PipelineStage.PARSING
            checkpoint(20, stage, "Downloading resume file")
            data = self.storage.download(job.file_path)

            checkpoint(40, stage, "Extracting text from resume")
            text = self.extractor.extract_text(data, document_format, job.original_name)

            checkpoint(60, stage, "Parsing structured resume data")
            content = self.parser.parse_structured(text)

            stage = PipelineStage.STORAGE
            checkpoint(80, stage, "Saving parsed resume data")
            self.persist(db, job.candidate_id, content, text)

        except Exception as e:
            db.rollback()
            processing_time = int((time.monotonic() - started) * 1000)
            logger.error(f"Resume job {job_id} failed in {stage.value} on attempt {attempt}: {e}")

            retryable = self.tracker.record_error(job_id, e, stage, attempt)
            return ProcessingOutcome(
                candidate_id=job.candidate_id,
                success=False,
                error=str(e),
                processing_time=processing_time,
                retryable=retryable,
                attempt=attempt,
            )

        processing_time = int((time.monotonic() - started) * 1000)
        outcome = ProcessingOutcome(
            candidate_id=job.candidate_id,
            success=True,
            parsed_data=content.model_dump(by_alias=True),
            processing_time=processing_time,
            attempt=attempt,
        )
        self.tracker.complete(job_id, outcome, processing_time)
        if progress_callback is not None:
            progress_callback(100, PipelineStage.COMPLETED, attempt)

        logger.info(f"Resume job {job_id} completed in {processing_time}ms")
        return outcome

    def persist(self, db: Session, candidate_id: str, content: ParsedResumeContent, raw_text: str) -> None:
        """
        Merge parsed contact details into the candidate and store the
        structured resume, in one transaction.

        Raises:
            NotFoundError: The candidate was deleted while the job ran
        """
        candidate = crud.candidate.get_by_id(db, candidate_id)
        if candidate is None:
            raise NotFoundError("Candidate not found")

        filled = crud.candidate.merge_contact_fields(db, candidate, content.personal_info.model_dump())
        crud.parsed_resume.upsert(db, candidate_id, content, raw_text=raw_text)
        db.commit()

        if filled:
            logger.info(f"Filled blank candidate fields from resume: {', '.join(filled)}")
