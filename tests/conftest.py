"""
Pytest configuration and fixtures for testing.

This file provides reusable test fixtures for:
- Database setup/teardown
- In-memory stand-ins for storage, job queue, text extraction and parsing
- Pipeline services wired to those stand-ins
- FastAPI test client
"""

import pytest
from typing import Dict, List, Optional
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from resume_pipeline.core.database import Base, get_db
from resume_pipeline.core.deps import get_intake_service, get_status_tracker
from resume_pipeline.core.exceptions import StorageError
from resume_pipeline.core.job_queue import JobQueue
from resume_pipeline.core.storage import StorageBackend, StoredFile, build_object_path
from resume_pipeline.models.candidate import Candidate
from resume_pipeline.models.parsed_resume_data import ParsedResumeData  # noqa: F401
from resume_pipeline.schemas.pipeline import EnqueueOptions, JobState, ProcessingJob
from resume_pipeline.schemas.resume import ParsedResumeContent
from resume_pipeline.services.pipeline_status import PipelineStatusTracker
from resume_pipeline.services.resume_intake import IntakeService
from resume_pipeline.services.resume_processing import ResumeProcessingWorker
from main import app


# Use in-memory SQLite for testing (fast, isolated)
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

PDF_MIME = "application/pdf"

SAMPLE_RESUME_TEXT = """Jane Candidate
cand@x.com | +1 555 0100 | Austin, TX

Senior Backend Engineer, Acme (2020 - present)
Built payment APIs with Python and PostgreSQL.

Backend Engineer, Initech (2018 - 2020)
"""

SAMPLE_PARSED_RESUME = {
    "personalInfo": {
        "name": "Jane Candidate",
        "email": "cand@x.com",
        "phone": "+1 555 0100",
        "location": "Austin, TX",
        "linkedinUrl": "https://linkedin.com/in/jane",
        "portfolioUrl": None,
    },
    "summary": "Backend engineer focused on payments",
    "skills": ["Python", "PostgreSQL", "FastAPI"],
    "experience": [
        {
            "company": "Acme",
            "position": "Senior Backend Engineer",
            "startDate": "2020",
            "endDate": None,
            "description": "Built payment APIs",
            "technologies": ["Python", "PostgreSQL"],
        },
        {
            "company": "Initech",
            "position": "Backend Engineer",
            "startDate": "2018",
            "endDate": "2020",
            "description": "Maintained billing services",
            "technologies": ["Python"],
        },
    ],
    "education": [
        {
            "institution": "State University",
            "degree": "BSc",
            "field": "Computer Science",
            "graduationYear": 2018,
            "gpa": "3.8",
        }
    ],
    "certifications": ["AWS Certified Developer"],
    "totalExperience": 4,
}


class InMemoryStorage(StorageBackend):
    """Storage backend keeping files in a dict"""

    def __init__(self):
        self.files: Dict[str, bytes] = {}
        self.deleted: List[str] = []
        self.download_errors: List[Exception] = []

    def upload(self, data: bytes, content_type: str, candidate_id: str) -> StoredFile:
        path = build_object_path(candidate_id, content_type)
        self.files[path] = data
        return StoredFile(url=f"memory://{path}", path=path)

    def download(self, path: str) -> bytes:
        if self.download_errors:
            raise self.download_errors.pop(0)
        if path not in self.files:
            raise StorageError(f"Resume file not found in storage: {path}")
        return self.files[path]

    def delete(self, path: str) -> None:
        self.files.pop(path, None)
        self.deleted.append(path)


class RecordingJobQueue(JobQueue):
    """Job queue that records what was published instead of running it"""

    def __init__(self):
        self.enqueued: List[tuple] = []
        self.retried: List[str] = []
        self.states: Dict[str, JobState] = {}
        self.enqueue_error: Optional[Exception] = None
        self.retry_error: Optional[Exception] = None

    def enqueue(self, job: ProcessingJob, options: EnqueueOptions, job_id: Optional[str] = None) -> str:
        if self.enqueue_error is not None:
            raise self.enqueue_error
        self.enqueued.append((job_id, job, options))
        return job_id

    def get_state(self, job_id: str) -> Optional[JobState]:
        return self.states.get(job_id)

    def retry(self, job_id: str) -> None:
        if self.retry_error is not None:
            raise self.retry_error
        self.retried.append(job_id)


class FakeTextExtractor:
    """Returns canned text; queued errors are raised first, one per call"""

    def __init__(self, text: str = SAMPLE_RESUME_TEXT):
        self.text = text
        self.errors: List[Exception] = []
        self.calls: List[tuple] = []

    def extract_text(self, data: bytes, format_hint, filename: str = "") -> str:
        self.calls.append((data, format_hint, filename))
        if self.errors:
            raise self.errors.pop(0)
        return self.text


class FakeResumeParser:
    """Returns canned structured content; queued errors are raised first"""

    def __init__(self, payload: Optional[dict] = None):
        self.payload = payload if payload is not None else SAMPLE_PARSED_RESUME
        self.errors: List[Exception] = []
        self.calls: List[str] = []

    def parse_structured(self, text: str) -> ParsedResumeContent:
        self.calls.append(text)
        if self.errors:
            raise self.errors.pop(0)
        return ParsedResumeContent.model_validate(self.payload)


@pytest.fixture
def db_session():
    """
    Create a fresh database session for each test.
    Tables are dropped after the test completes.
    """
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def job_queue():
    return RecordingJobQueue()


@pytest.fixture
def tracker(job_queue):
    return PipelineStatusTracker(job_queue=job_queue, max_attempts=3)


@pytest.fixture
def text_extractor():
    return FakeTextExtractor()


@pytest.fixture
def resume_parser():
    return FakeResumeParser()


@pytest.fixture
def worker(storage, text_extractor, resume_parser, tracker):
    return ResumeProcessingWorker(
        storage=storage,
        extractor=text_extractor,
        parser=resume_parser,
        tracker=tracker,
    )


@pytest.fixture
def intake(db_session, storage, job_queue, tracker):
    return IntakeService(
        db=db_session,
        storage=storage,
        job_queue=job_queue,
        tracker=tracker,
        max_upload_bytes=10 * 1024 * 1024,
    )


@pytest.fixture
def candidate(db_session):
    """An existing candidate with only an email on file"""
    db_candidate = Candidate(email="cand@x.com", first_name="Jane", consent_given=True)
    db_session.add(db_candidate)
    db_session.commit()
    db_session.refresh(db_candidate)
    return db_candidate


@pytest.fixture
def stored_job(candidate, storage):
    """A ProcessingJob whose PDF is already in storage"""
    stored = storage.upload(b"%PDF-1.4 resume", PDF_MIME, candidate.id)
    return ProcessingJob(
        candidate_id=candidate.id,
        file_url=stored.url,
        file_path=stored.path,
        original_name="resume.pdf",
        mime_type=PDF_MIME,
    )


@pytest.fixture
def client(db_session, intake, tracker):
    """
    FastAPI test client with the database and pipeline services overridden.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_intake_service] = lambda: intake
    app.dependency_overrides[get_status_tracker] = lambda: tracker

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
