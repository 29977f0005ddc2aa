"""
Resume pipeline error taxonomy.

Every failure the pipeline knows how to reason about derives from
PipelineError. Whether a failure is retried is decided by the error
classifier from the message text, so adapters that wrap third-party
exceptions word their messages accordingly (see TransientServiceError).
"""


class PipelineError(Exception):
    """Base class for resume pipeline errors"""
    pass


class ValidationError(PipelineError):
    """Bad file type/size or missing identity. Raised synchronously at intake."""
    pass


class NotFoundError(PipelineError):
    """Candidate or job does not exist"""
    pass


class UnsupportedFormatError(PipelineError):
    """No extractor is registered for the file's mime type"""
    pass


class MalformedResponseError(PipelineError):
    """The AI capability returned something that is not valid JSON"""
    pass


class ExtractionError(PipelineError):
    """Document could not be turned into text (corrupt file, empty text layer)"""
    pass


class StorageError(PipelineError):
    """Permanent storage failure, e.g. the object does not exist"""
    pass


class TransientServiceError(PipelineError):
    """
    Rate limit, timeout, network, temporary or service-unavailable failure.

    Messages must contain one of the classifier's markers so the failure is
    retried under the attempt ceiling.
    """
    pass


class RetryExhaustedError(PipelineError):
    """Manual retry requested for a job that already used all its attempts"""
    pass
