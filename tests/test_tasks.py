"""
Tests for the Celery task and the Celery-backed job queue.

Tasks run through Task.apply(), which executes them in-process and performs
redeliveries synchronously.
"""

import pytest
from datetime import datetime, timezone
from celery import states
from resume_pipeline.core import job_queue as job_queue_module
from resume_pipeline.core.exceptions import NotFoundError, TransientServiceError
from resume_pipeline.core.job_queue import PROGRESS_STATE, CeleryJobQueue
from resume_pipeline.schemas.pipeline import EnqueueOptions, PipelineState, ProcessingJob
from resume_pipeline.tasks import resume_tasks
from resume_pipeline.tasks.resume_tasks import process_resume_task

from tests.conftest import TestingSessionLocal


@pytest.fixture
def task_env(monkeypatch, worker, db_session):
    """Point the task at the test worker and database"""
    monkeypatch.setattr(resume_tasks, "get_resume_worker", lambda: worker)
    monkeypatch.setattr(resume_tasks, "SessionLocal", TestingSessionLocal)
    return worker


def run_task(job, task_id="job-1"):
    return process_resume_task.apply(
        kwargs={"job": job.to_message(), "options": EnqueueOptions().model_dump()},
        task_id=task_id,
    )


class TestProcessResumeTask:
    """Celery adapter around the processing worker"""

    def test_success(self, task_env, stored_job, tracker):
        result = run_task(stored_job)

        outcome = result.get()
        assert outcome["success"] is True
        assert outcome["parsed_data"]["totalExperience"] == 4
        assert tracker.get("job-1").status == PipelineState.COMPLETED

    def test_transient_failure_is_redelivered(self, task_env, stored_job, tracker, text_extractor):
        text_extractor.errors.append(TransientServiceError("Rate limit exceeded"))

        result = run_task(stored_job)

        assert result.get()["success"] is True
        assert len(text_extractor.calls) == 2
        status = tracker.get("job-1")
        assert status.status == PipelineState.COMPLETED
        assert status.attempts == 2
        messages = [n.message for n in status.notifications]
        assert "Will retry processing (attempt 2/3)" in messages

    def test_gives_up_after_max_attempts(self, task_env, stored_job, tracker, storage):
        for _ in range(3):
            storage.download_errors.append(TransientServiceError("Storage network error during download"))

        outcome = run_task(stored_job).get()

        assert outcome["success"] is False
        assert outcome["attempt"] == 3
        assert tracker.get("job-1").status == PipelineState.FAILED

    def test_permanent_failure_is_not_redelivered(self, task_env, tracker, text_extractor):
        job = ProcessingJob(
            candidate_id="missing",
            file_url="memory://x",
            file_path="x",
            original_name="resume.pdf",
            mime_type="application/pdf",
        )

        outcome = run_task(job).get()

        assert outcome["success"] is False
        assert outcome["retryable"] is False
        assert "Candidate not found" in outcome["error"]
        assert text_extractor.calls == []


class FakeAsyncResult:
    """AsyncResult stand-in returning canned state"""

    results = {}

    def __init__(self, job_id, app=None):
        self.job_id = job_id
        data = self.results.get(job_id, {})
        self.state = data.get("state", states.PENDING)
        self.info = data.get("info")
        self.kwargs = data.get("kwargs")
        self.retries = data.get("retries", 0)
        self.date_done = data.get("date_done")

    def forget(self):
        FakeAsyncResult.results.pop(self.job_id, None)


@pytest.fixture
def celery_queue(monkeypatch):
    FakeAsyncResult.results = {}
    monkeypatch.setattr(job_queue_module, "AsyncResult", FakeAsyncResult)
    return CeleryJobQueue()


class TestCeleryJobQueue:
    """Celery state mapping and redelivery"""

    def test_enqueue_publishes_job_message(self, celery_queue, stored_job, monkeypatch):
        published = []

        def fake_queue(task, kwargs, task_id=None):
            published.append((task.name, kwargs, task_id))
            return task_id

        monkeypatch.setattr(job_queue_module, "queue_task_safely", fake_queue)

        job_id = celery_queue.enqueue(stored_job, EnqueueOptions(), job_id="job-1")

        assert job_id == "job-1"
        name, kwargs, task_id = published[0]
        assert name == "resume_pipeline.tasks.resume_tasks.process_resume_task"
        assert kwargs["job"]["candidateId"] == stored_job.candidate_id
        assert kwargs["options"] == {"attempts": 3, "backoff": {"type": "exponential", "delay": 2000}}

    def test_unknown_job(self, celery_queue):
        assert celery_queue.get_state("nope") is None

    def test_progress_state(self, celery_queue):
        FakeAsyncResult.results["job-1"] = {
            "state": PROGRESS_STATE,
            "info": {"candidate_id": "cand-1", "progress": 40, "attempts": 2},
        }

        state = celery_queue.get_state("job-1")

        assert state.status == PipelineState.PROCESSING
        assert state.progress == 40
        assert state.attempts == 2
        assert state.candidate_id == "cand-1"

    def test_unsuccessful_outcome_is_failed(self, celery_queue):
        FakeAsyncResult.results["job-1"] = {
            "state": states.SUCCESS,
            "info": {"candidate_id": "cand-1", "success": False, "error": "Candidate not found"},
        }

        state = celery_queue.get_state("job-1")

        assert state.status == PipelineState.FAILED
        assert state.error == "Candidate not found"

    def test_successful_outcome(self, celery_queue):
        FakeAsyncResult.results["job-1"] = {
            "state": states.SUCCESS,
            "info": {"candidate_id": "cand-1", "success": True, "parsed_data": {"skills": ["Go"]}},
        }

        state = celery_queue.get_state("job-1")

        assert state.status == PipelineState.COMPLETED
        assert state.progress == 100
        assert state.parsed_data == {"skills": ["Go"]}

    def test_attempts_of_finished_and_retrying_jobs(self, celery_queue):
        FakeAsyncResult.results["done"] = {
            "state": states.SUCCESS,
            "info": {"candidate_id": "cand-1", "success": True, "attempt": 2},
            "date_done": datetime(2026, 1, 1, 12, 0),
        }
        FakeAsyncResult.results["waiting"] = {"state": states.RETRY, "info": "Rate limit exceeded", "retries": 1}

        done = celery_queue.get_state("done")
        waiting = celery_queue.get_state("waiting")

        assert done.attempts == 2
        assert done.completed_at == datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert waiting.status == PipelineState.RETRYING
        assert waiting.attempts == 2
        assert waiting.error == "Rate limit exceeded"

    def test_retry_requeues_with_same_id(self, celery_queue, monkeypatch):
        published = []
        monkeypatch.setattr(
            job_queue_module,
            "queue_task_safely",
            lambda task, kwargs, task_id=None: published.append((kwargs, task_id)) or task_id,
        )
        FakeAsyncResult.results["job-1"] = {
            "state": states.SUCCESS,
            "info": {"success": False},
            "kwargs": {"job": {"candidateId": "cand-1"}, "options": {}},
        }

        celery_queue.retry("job-1")

        assert published == [({"job": {"candidateId": "cand-1"}, "options": {}}, "job-1")]
        assert "job-1" not in FakeAsyncResult.results

    def test_retry_unknown_job(self, celery_queue):
        with pytest.raises(NotFoundError):
            celery_queue.retry("nope")
