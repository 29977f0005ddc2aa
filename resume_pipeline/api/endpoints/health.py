"""
Health check endpoints.

Provides detailed health status for the database, storage and the resume
pipeline.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict
from fastapi import APIRouter, Depends, status
from sqlalchemy import text
from sqlalchemy.orm import Session

from resume_pipeline.core.config import settings
from resume_pipeline.core.database import get_db
from resume_pipeline.core.deps import get_status_tracker
from resume_pipeline.core.storage import S3Storage, get_storage
from resume_pipeline.schemas.pipeline import HealthState
from resume_pipeline.services.pipeline_status import PipelineStatusTracker

router = APIRouter(tags=["Health"])
logger = logging.getLogger(__name__)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check() -> Dict[str, str]:
    """
    Basic health check endpoint.

    Returns 200 OK if the service is running.
    Use this for simple uptime monitoring and load balancer health checks.
    """
    return {
        "status": "healthy",
        "timestamp": _timestamp()
    }


@router.get("/health/detailed", status_code=status.HTTP_200_OK)
async def detailed_health_check(
    db: Session = Depends(get_db),
    tracker: PipelineStatusTracker = Depends(get_status_tracker),
) -> Dict[str, Any]:
    """
    Detailed health check with dependency status.

    Checks:
    - Database connectivity
    - Storage availability (S3 bucket or local directory)
    - Resume pipeline failure rate
    """
    health_status = {
        "status": "healthy",
        "timestamp": _timestamp(),
        "checks": {}
    }

    # Check database connectivity
    try:
        db.execute(text("SELECT 1"))
        health_status["checks"]["database"] = {
            "status": "healthy",
            "message": "Database connection successful"
        }
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = {
            "status": "unhealthy",
            "message": f"Database error: {str(e)}"
        }

    # Check storage availability
    try:
        storage = get_storage()
        if isinstance(storage, S3Storage):
            storage.s3_client.head_bucket(Bucket=storage.bucket_name)
            message = "S3 storage accessible"
        else:
            message = f"Local storage at {settings.LOCAL_STORAGE_DIR}"
        health_status["checks"]["storage"] = {
            "status": "healthy",
            "message": message
        }
    except Exception as e:
        logger.error(f"Storage health check failed: {e}")
        health_status["status"] = "unhealthy"
        health_status["checks"]["storage"] = {
            "status": "unhealthy",
            "message": f"Storage error: {str(e)}"
        }

    # Pipeline failure rate
    pipeline = tracker.health()
    health_status["checks"]["pipeline"] = {
        "status": pipeline.status.value,
        "message": f"{pipeline.statistics.failed} of {pipeline.statistics.total} tracked jobs failed"
    }
    if pipeline.status != HealthState.HEALTHY and health_status["status"] == "healthy":
        health_status["status"] = "degraded"

    return health_status
