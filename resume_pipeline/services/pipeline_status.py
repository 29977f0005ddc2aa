"""
Pipeline status tracking.

Every resume job has a PipelineStatus that moves through

    queued -> processing -> completed | failed | retrying
    retrying -> processing -> ...            (bounded by max_attempts)

Entries live in an injected keyed store. The default InMemoryStatusStore is
safe for concurrent use by several worker threads: one lock per job id for
writes, deep copies for reads. It is process-local. The API process and the
Celery worker each keep their own entries, so reads of a running job fold in
the job queue's state, which the worker keeps current.

Terminal entries (completed/failed) only change again through retry() or a
redelivery of the job, and are purged once the retention window has passed.
"""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterator, List, Optional
from resume_pipeline.core.exceptions import NotFoundError, RetryExhaustedError, ValidationError
from resume_pipeline.core.job_queue import JobQueue
from resume_pipeline.schemas.pipeline import (
    HealthState,
    JobState,
    NotificationType,
    PipelineHealth,
    PipelineNotification,
    PipelineStage,
    PipelineState,
    PipelineStatistics,
    PipelineStatus,
    ProcessingJob,
)
from resume_pipeline.services.error_classifier import ErrorClassifier

logger = logging.getLogger(__name__)

DEGRADED_FAILURE_RATE = 0.2
UNHEALTHY_FAILURE_RATE = 0.5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryStatusStore:
    """Keyed PipelineStatus store with per-key locking."""

    def __init__(self):
        self._entries: Dict[str, PipelineStatus] = {}
        # job id -> [lock, number of callers holding or waiting on it]
        self._locks: Dict[str, list] = {}
        self._guard = threading.Lock()

    @contextmanager
    def _locked(self, job_id: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(job_id, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            # The lock is dropped only once nobody holds or waits on it and
            # the job is gone, so every caller for a job id shares one lock
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0 and job_id not in self._entries:
                    self._locks.pop(job_id, None)

    def put_if_absent(self, status: PipelineStatus) -> PipelineStatus:
        """Store status unless the job is already tracked; return a copy of what is stored"""
        with self._locked(status.job_id):
            with self._guard:
                current = self._entries.setdefault(status.job_id, status)
            return current.model_copy(deep=True)

    def get(self, job_id: str) -> Optional[PipelineStatus]:
        with self._locked(job_id):
            with self._guard:
                current = self._entries.get(job_id)
            return current.model_copy(deep=True) if current is not None else None

    @contextmanager
    def edit(self, job_id: str) -> Iterator[Optional[PipelineStatus]]:
        """Yield the live entry (or None) while holding the job's lock"""
        with self._locked(job_id):
            with self._guard:
                current = self._entries.get(job_id)
            yield current

    def snapshot(self) -> List[PipelineStatus]:
        with self._guard:
            job_ids = list(self._entries)
        statuses = [self.get(job_id) for job_id in job_ids]
        return [status for status in statuses if status is not None]

    def discard_if(self, job_id: str, predicate: Callable[[PipelineStatus], bool]) -> bool:
        with self._locked(job_id):
            with self._guard:
                current = self._entries.get(job_id)
                if current is None or not predicate(current):
                    return False
                del self._entries[job_id]
                return True

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)


class PipelineStatusTracker:
    """
    Owns the lifecycle state, notification trail and aggregate statistics of
    resume processing jobs.
    """

    def __init__(
        self,
        store: Optional[InMemoryStatusStore] = None,
        classifier: Optional[ErrorClassifier] = None,
        job_queue: Optional[JobQueue] = None,
        max_attempts: int = 3,
        retention: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store if store is not None else InMemoryStatusStore()
        self.max_attempts = max_attempts
        self.classifier = classifier or ErrorClassifier(max_attempts=max_attempts)
        self.job_queue = job_queue
        self.retention = retention
        self.clock = clock

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _notify(self, status: PipelineStatus, type_: NotificationType, message: str, stage: str) -> None:
        timestamp = self.clock()
        if status.notifications and timestamp < status.notifications[-1].timestamp:
            timestamp = status.notifications[-1].timestamp
        status.notifications.append(
            PipelineNotification(type=type_, message=message, timestamp=timestamp, stage=stage)
        )

    def _new_status(self, job_id: str, candidate_id: str) -> PipelineStatus:
        return PipelineStatus(
            job_id=job_id,
            candidate_id=candidate_id,
            status=PipelineState.QUEUED,
            progress=0,
            stage=PipelineStage.UPLOAD,
            started_at=self.clock(),
            attempts=0,
            max_attempts=self.max_attempts,
        )

    @staticmethod
    def _stage_from_progress(progress: int) -> PipelineStage:
        if progress < 10:
            return PipelineStage.VALIDATION
        if progress < 80:
            return PipelineStage.PARSING
        if progress < 100:
            return PipelineStage.STORAGE
        return PipelineStage.COMPLETED

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self, job_id: str, job: ProcessingJob) -> PipelineStatus:
        """Start tracking a freshly enqueued job"""
        status = self._new_status(job_id, job.candidate_id)
        self._notify(
            status,
            NotificationType.INFO,
            "Resume uploaded successfully and queued for processing",
            PipelineStage.UPLOAD.value,
        )
        stored = self.store.put_if_absent(status)
        logger.info(f"Pipeline started for job {job_id}, candidate {job.candidate_id}")
        return stored

    def begin_attempt(self, job_id: str, delivery_attempt: int, candidate_id: Optional[str] = None) -> int:
        """
        Mark a delivery of the job as started and return its attempt number.

        The queue numbers deliveries from 1 again after a manual retry; the
        tracker keeps counting from the attempts already recorded.
        """
        if candidate_id is not None:
            self.store.put_if_absent(self._new_status(job_id, candidate_id))

        with self.store.edit(job_id) as status:
            if status is None:
                return delivery_attempt

            if status.attempts >= delivery_attempt:
                attempt = status.attempts + 1
            else:
                attempt = delivery_attempt
            attempt = min(attempt, status.max_attempts)

            if status.status.is_terminal:
                logger.warning(f"Job {job_id} redelivered after reaching {status.status.value}, reopening")
                status.completed_at = None

            status.attempts = attempt
            status.status = PipelineState.PROCESSING
            status.stage = PipelineStage.VALIDATION
            status.progress = 0
            self._notify(
                status,
                NotificationType.INFO,
                f"Processing attempt {attempt}/{status.max_attempts} started",
                PipelineStage.VALIDATION.value,
            )
            return attempt

    def update_progress(self, job_id: str, progress: int, stage: PipelineStage, message: Optional[str] = None) -> None:
        """
        Record a progress checkpoint.

        Progress is capped at 99 here; only complete() moves a job to 100.
        """
        with self.store.edit(job_id) as status:
            if status is None:
                logger.debug(f"Progress update for untracked job {job_id} ignored")
                return
            if status.status.is_terminal:
                logger.warning(f"Progress update for {status.status.value} job {job_id} ignored")
                return

            stage = PipelineStage(stage)
            status.status = PipelineState.PROCESSING
            status.progress = max(0, min(int(progress), 99))
            status.stage = stage
            if message:
                self._notify(status, NotificationType.INFO, message, stage.value)

    def record_error(self, job_id: str, error: BaseException, stage: PipelineStage, attempt: int) -> bool:
        """
        Record a failed attempt and decide whether it will be retried.

        Returns:
            bool: True if the job should be redelivered by the queue
        """
        retryable = self.classifier.classify(error, attempt)
        stage_name = PipelineStage(stage).value

        with self.store.edit(job_id) as status:
            if status is None:
                return retryable
            if status.status.is_terminal:
                logger.warning(f"Error for {status.status.value} job {job_id} ignored: {error}")
                return False

            status.attempts = min(attempt, status.max_attempts)
            status.error = str(error)
            self._notify(status, NotificationType.ERROR, f"Error in {stage_name}: {error}", stage_name)

            if retryable:
                status.status = PipelineState.RETRYING
                self._notify(
                    status,
                    NotificationType.WARNING,
                    f"Will retry processing (attempt {attempt + 1}/{status.max_attempts})",
                    stage_name,
                )
            else:
                status.status = PipelineState.FAILED
                status.completed_at = self.clock()
                self._notify(
                    status,
                    NotificationType.ERROR,
                    "Processing failed - maximum attempts reached or non-retryable error",
                    stage_name,
                )

        return retryable

    def complete(self, job_id: str, outcome, processing_time: int) -> None:
        """
        Move the job to its terminal state from a processing outcome.

        Args:
            job_id: Job being completed
            outcome: Object with success, parsed_data and error attributes
            processing_time: Milliseconds spent on the attempt
        """
        with self.store.edit(job_id) as status:
            if status is None:
                logger.debug(f"Completion for untracked job {job_id} ignored")
                return
            if status.status.is_terminal:
                logger.debug(f"Job {job_id} already {status.status.value}")
                return

            now = self.clock()
            status.stage = PipelineStage.COMPLETED
            status.completed_at = now
            status.parsed_data = outcome.parsed_data
            status.error = outcome.error

            if outcome.success:
                status.status = PipelineState.COMPLETED
                status.progress = 100
                self._notify(
                    status,
                    NotificationType.SUCCESS,
                    f"Resume processing completed successfully in {processing_time}ms",
                    PipelineStage.COMPLETED.value,
                )
            else:
                status.status = PipelineState.FAILED
                self._notify(
                    status,
                    NotificationType.ERROR,
                    f"Resume processing failed: {outcome.error}",
                    PipelineStage.COMPLETED.value,
                )

        self.purge_expired()

    def mark_start_failed(self, job_id: str, error: BaseException) -> None:
        """The job could not be enqueued at all"""
        with self.store.edit(job_id) as status:
            if status is None or status.status.is_terminal:
                return
            status.status = PipelineState.FAILED
            status.error = str(error)
            status.completed_at = self.clock()
            self._notify(
                status,
                NotificationType.ERROR,
                f"Pipeline failed to start: {error}",
                PipelineStage.UPLOAD.value,
            )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _queue_state(self, job_id: str) -> Optional[JobState]:
        if self.job_queue is None:
            return None
        try:
            return self.job_queue.get_state(job_id)
        except Exception as e:
            logger.error(f"Error getting queue state for job {job_id}: {e}")
            return None

    def _fold_queue_state(self, status: PipelineStatus, state: JobState) -> None:
        """
        Bring a tracked entry up to date with the queue's view of the job.

        The worker usually runs in another process, so the queue's state is
        the only record of its progress here. Stale reports from an
        earlier attempt are ignored.
        """
        if status.status.is_terminal or state.attempts < status.attempts:
            return

        same_attempt = state.attempts == status.attempts
        if same_attempt and state.status == status.status:
            if state.status != PipelineState.PROCESSING or state.progress <= status.progress:
                return
        # A manual retry is pending; the queue still shows the previous run
        if same_attempt and status.status == PipelineState.RETRYING and state.status.is_terminal:
            return

        changed = state.status != status.status
        status.status = state.status
        status.attempts = min(max(status.attempts, state.attempts), status.max_attempts)
        if state.error:
            status.error = state.error

        if state.status == PipelineState.COMPLETED:
            status.progress = 100
            status.stage = PipelineStage.COMPLETED
            status.parsed_data = state.parsed_data
        elif state.status != PipelineState.FAILED and state.progress > 0:
            status.progress = min(state.progress, 99)
            status.stage = self._stage_from_progress(status.progress)

        if state.status.is_terminal:
            status.completed_at = state.completed_at or self.clock()

        if not changed:
            return
        stage_name = status.stage.value
        if state.status == PipelineState.COMPLETED:
            self._notify(status, NotificationType.SUCCESS, "Resume processing completed successfully", stage_name)
        elif state.status == PipelineState.FAILED:
            self._notify(status, NotificationType.ERROR, f"Resume processing failed: {status.error}", stage_name)
        elif state.status == PipelineState.RETRYING:
            self._notify(
                status,
                NotificationType.WARNING,
                f"Will retry processing (attempt {status.attempts + 1}/{status.max_attempts})",
                stage_name,
            )
        else:
            self._notify(
                status,
                NotificationType.INFO,
                f"Processing attempt {status.attempts}/{status.max_attempts} started",
                stage_name,
            )

    def _refresh(self, status: PipelineStatus) -> PipelineStatus:
        """Fold the queue's state into a non-terminal entry and return a fresh copy"""
        if status.status.is_terminal:
            return status
        state = self._queue_state(status.job_id)
        if state is None:
            return status

        with self.store.edit(status.job_id) as tracked:
            if tracked is None:
                return status
            self._fold_queue_state(tracked, state)
            return tracked.model_copy(deep=True)

    def _current(self) -> List[PipelineStatus]:
        return [self._refresh(status) for status in self.store.snapshot()]

    def get(self, job_id: str) -> Optional[PipelineStatus]:
        """
        Current status of a job.

        Tracked entries that are still running are brought up to date from
        the job queue. Jobs this process has not tracked are read from the
        queue alone; such a status has no notification history.
        """
        status = self.store.get(job_id)
        if status is not None:
            return self._refresh(status)

        state = self._queue_state(job_id)
        if state is None:
            return None

        now = self.clock()
        progress = 100 if state.status == PipelineState.COMPLETED else min(state.progress, 99)
        completed_at = None
        if state.status.is_terminal:
            completed_at = state.completed_at or now

        return PipelineStatus(
            job_id=job_id,
            candidate_id=state.candidate_id or "",
            status=state.status,
            progress=progress,
            stage=self._stage_from_progress(progress),
            error=state.error,
            started_at=state.started_at or now,
            completed_at=completed_at,
            attempts=min(state.attempts, self.max_attempts),
            max_attempts=self.max_attempts,
            parsed_data=state.parsed_data,
            notifications=[],
        )

    def list_all(self) -> List[PipelineStatus]:
        return self._current()

    def for_candidate(self, candidate_id: str) -> List[PipelineStatus]:
        return [status for status in self._current() if status.candidate_id == candidate_id]

    def statistics(self) -> PipelineStatistics:
        counts = {state: 0 for state in PipelineState}
        for status in self._current():
            counts[status.status] += 1

        return PipelineStatistics(
            total=sum(counts.values()),
            queued=counts[PipelineState.QUEUED],
            processing=counts[PipelineState.PROCESSING],
            retrying=counts[PipelineState.RETRYING],
            completed=counts[PipelineState.COMPLETED],
            failed=counts[PipelineState.FAILED],
        )

    def health(self) -> PipelineHealth:
        """Health derived from the failure rate of tracked jobs"""
        stats = self.statistics()
        failure_rate = stats.failed / stats.total if stats.total > 0 else 0.0

        if failure_rate > UNHEALTHY_FAILURE_RATE:
            state = HealthState.UNHEALTHY
        elif failure_rate > DEGRADED_FAILURE_RATE:
            state = HealthState.DEGRADED
        else:
            state = HealthState.HEALTHY

        return PipelineHealth(
            status=state,
            queue_health={
                "processing": stats.processing,
                "queued": stats.queued,
                "retrying": stats.retrying,
            },
            statistics=stats,
            timestamp=self.clock(),
        )

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def retry(self, job_id: str) -> None:
        """
        Ask the queue to run the job again from the first stage.

        Raises:
            NotFoundError: Job unknown to both the tracker and the queue
            ValidationError: Job already completed successfully
            RetryExhaustedError: Job used all of its attempts
        """
        status = self.get(job_id)
        if status is None:
            raise NotFoundError(f"Pipeline status not found: {job_id}")
        if status.status == PipelineState.COMPLETED:
            raise ValidationError(f"Pipeline {job_id} already completed")
        if status.attempts >= status.max_attempts:
            raise RetryExhaustedError("Maximum retry attempts exceeded")
        if self.job_queue is None:
            raise NotFoundError(f"No job queue configured to retry {job_id}")

        previous = None
        with self.store.edit(job_id) as tracked:
            if tracked is not None:
                previous = (tracked.status, tracked.stage, tracked.progress, tracked.completed_at)
                tracked.status = PipelineState.RETRYING
                tracked.stage = PipelineStage.VALIDATION
                tracked.progress = 0
                tracked.completed_at = None
                self._notify(
                    tracked,
                    NotificationType.INFO,
                    f"Retrying pipeline (attempt {tracked.attempts + 1}/{tracked.max_attempts})",
                    PipelineStage.VALIDATION.value,
                )

        try:
            self.job_queue.retry(job_id)
        except Exception as e:
            logger.error(f"Error retrying pipeline for job {job_id}: {e}")
            with self.store.edit(job_id) as tracked:
                if tracked is not None and previous is not None and tracked.status == PipelineState.RETRYING:
                    tracked.status, tracked.stage, tracked.progress, tracked.completed_at = previous
                    self._notify(
                        tracked,
                        NotificationType.ERROR,
                        f"Retry could not be scheduled: {e}",
                        PipelineStage.VALIDATION.value,
                    )
            raise

        logger.info(f"Pipeline retry initiated for job {job_id}")

    def purge_expired(self) -> int:
        """Drop terminal entries whose completion is older than the retention window"""
        cutoff = self.clock() - self.retention

        def expired(status: PipelineStatus) -> bool:
            return (
                status.status.is_terminal
                and status.completed_at is not None
                and status.completed_at < cutoff
            )

        removed = 0
        for status in self.store.snapshot():
            if self.store.discard_if(status.job_id, expired):
                removed += 1

        if removed:
            logger.info(f"Purged {removed} pipeline statuses older than {self.retention}")
        return removed
