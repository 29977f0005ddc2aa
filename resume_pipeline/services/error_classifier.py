"""
Retry classification for pipeline failures.

A failure is retried only when its message looks transient and the job still
has attempts left. Matching is a case-insensitive substring check on the
error message; adapters for storage and OpenAI word their
TransientServiceError messages so that they hit one of the markers.
"""

import logging
from typing import Iterable

logger = logging.getLogger(__name__)

RETRYABLE_ERROR_MARKERS = (
    "rate limit",
    "timeout",
    "network",
    "temporary",
    "service unavailable",
)


class ErrorClassifier:
    """Decides whether a failed attempt should be redelivered by the queue."""

    def __init__(self, max_attempts: int = 3, markers: Iterable[str] = RETRYABLE_ERROR_MARKERS):
        self.max_attempts = max_attempts
        self.markers = tuple(marker.lower() for marker in markers)

    def is_transient(self, error: BaseException) -> bool:
        message = str(error).lower()
        return any(marker in message for marker in self.markers)

    def classify(self, error: BaseException, attempt_number: int) -> bool:
        """
        Args:
            error: The exception raised by a pipeline stage
            attempt_number: 1-based number of the attempt that failed

        Returns:
            bool: True if the job should be retried
        """
        if not self.is_transient(error):
            logger.info(f"Non-retryable error on attempt {attempt_number}: {error}")
            return False

        if attempt_number >= self.max_attempts:
            logger.warning(
                f"Transient error on attempt {attempt_number}/{self.max_attempts}, "
                f"no attempts left: {error}"
            )
            return False

        logger.info(f"Retryable error on attempt {attempt_number}/{self.max_attempts}: {error}")
        return True
