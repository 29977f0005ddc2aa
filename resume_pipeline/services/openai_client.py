"""
Shared OpenAI client and error translation.

OpenAI failures are rewrapped as pipeline errors whose messages the retry
classifier understands: rate limits, timeouts, connection problems and 5xx
responses become TransientServiceError, everything else ExtractionError.
"""

import logging
from functools import lru_cache
import openai
from openai import OpenAI
from resume_pipeline.core.config import settings
from resume_pipeline.core.exceptions import ExtractionError, PipelineError, TransientServiceError

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_openai_client() -> OpenAI:
    if not settings.OPENAI_API_KEY:
        raise ValueError("OPENAI_API_KEY must be set to use the extraction capability")
    return OpenAI(
        api_key=settings.OPENAI_API_KEY,
        max_retries=settings.OPENAI_MAX_RETRIES,
        timeout=settings.OPENAI_TIMEOUT,
    )


def translate_openai_error(error: Exception, operation: str) -> PipelineError:
    """Map an OpenAI SDK exception to the pipeline's error taxonomy"""
    if isinstance(error, openai.RateLimitError):
        return TransientServiceError(f"OpenAI rate limit exceeded during {operation}: {error}")
    if isinstance(error, openai.APITimeoutError):
        return TransientServiceError(f"OpenAI request timeout during {operation}")
    if isinstance(error, openai.APIConnectionError):
        return TransientServiceError(f"OpenAI network error during {operation}: {error}")
    if isinstance(error, openai.InternalServerError):
        return TransientServiceError(f"OpenAI service unavailable during {operation}: {error}")

    logger.error(f"OpenAI {operation} failed: {error}")
    return ExtractionError(f"OpenAI request failed during {operation}: {error}")
