"""
Pydantic schemas for the resume processing pipeline.

Python code uses snake_case attributes; the queue payload and the status read
API are serialized with camelCase keys (jobId, candidateId, ...).
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class PipelineState(str, Enum):
    """
    Pipeline lifecycle:

    QUEUED -> PROCESSING -> COMPLETED
                  |  ^
                  v  |
               RETRYING        (bounded by max_attempts)
                  |
                  v
                FAILED
    """
    QUEUED = "queued"
    PROCESSING = "processing"
    RETRYING = "retrying"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (PipelineState.COMPLETED, PipelineState.FAILED)


class PipelineStage(str, Enum):
    UPLOAD = "upload"
    VALIDATION = "validation"
    PARSING = "parsing"
    STORAGE = "storage"
    COMPLETED = "completed"


class NotificationType(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    SUCCESS = "success"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PipelineNotification(CamelModel):
    type: NotificationType
    message: str
    timestamp: datetime
    stage: str


class PipelineStatus(CamelModel):
    """Snapshot of one job's progress through the pipeline"""
    job_id: str
    candidate_id: str
    status: PipelineState = PipelineState.QUEUED
    progress: int = Field(0, ge=0, le=100)
    stage: PipelineStage = PipelineStage.UPLOAD
    error: Optional[str] = None
    started_at: datetime
    completed_at: Optional[datetime] = None
    attempts: int = 0
    max_attempts: int = 3
    parsed_data: Optional[Dict[str, Any]] = None
    notifications: List[PipelineNotification] = Field(default_factory=list)


class BackoffOptions(BaseModel):
    type: str = "exponential"
    delay: int = 2000  # Milliseconds before the first redelivery


class EnqueueOptions(BaseModel):
    """Delivery options sent along with every job"""
    attempts: int = 3
    backoff: BackoffOptions = Field(default_factory=BackoffOptions)

    def backoff_seconds(self, attempt: int, cap_seconds: float) -> float:
        """Delay before redelivering after a failed attempt (1-based)"""
        delay = self.backoff.delay / 1000.0
        if self.backoff.type == "exponential":
            delay = delay * (2 ** max(attempt - 1, 0))
        return min(delay, cap_seconds)


class ProcessingJob(CamelModel):
    """Queue payload: one uploaded file for one candidate. Immutable once enqueued."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    candidate_id: str
    file_url: str
    file_path: str
    original_name: str
    mime_type: str

    def to_message(self) -> Dict[str, str]:
        return self.model_dump(by_alias=True)


class JobState(BaseModel):
    """Coarse job state as reported by the job queue itself"""
    job_id: str
    status: PipelineState
    candidate_id: Optional[str] = None
    progress: int = 0
    attempts: int = 0
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    parsed_data: Optional[Dict[str, Any]] = None


class PipelineStatistics(BaseModel):
    total: int = 0
    queued: int = 0
    processing: int = 0
    retrying: int = 0
    completed: int = 0
    failed: int = 0


class HealthState(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class PipelineHealth(CamelModel):
    status: HealthState
    queue_health: Dict[str, int]
    statistics: PipelineStatistics
    timestamp: datetime
