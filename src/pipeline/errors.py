"""Exception taxonomy for the media ingestion pipeline."""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class RetryableTransportError(PipelineError):
    """Transient transport failure (network, timeout, 429, 5xx). Always retried."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NonRetryableRequestError(PipelineError):
    """Request rejected for a reason retrying will not fix (auth, validation, 4xx)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MediaReferenceError(NonRetryableRequestError):
    """The media locator could not be exchanged for a signed URL."""


class AdapterError(PipelineError):
    """An adapter could not produce real output. Triggers the fallback path."""

    def __init__(self, adapter: str, reason: str) -> None:
        super().__init__(f"{adapter}: {reason}")
        self.adapter = adapter
        self.reason = reason


class AdapterExhaustedError(AdapterError):
    """Retries were exhausted, or the error was classified non-retryable."""


class RemoteJobFailedError(AdapterError):
    """The remote service finished the job with a non-completed terminal status."""


class AdapterUnavailableError(AdapterError):
    """No backend is configured for this adapter (fallback-only mode)."""


class MalformedAnalysisError(NonRetryableRequestError):
    """The analysis service returned nothing that can be read as an object."""


class PersistenceError(PipelineError):
    """The persistence gateway rejected a write."""


class ProgressRegressionError(PipelineError):
    """A progress update would move a run backwards or touch a terminal run."""


class RunNotFoundError(PipelineError):
    """No pipeline run exists with the requested id."""

    def __init__(self, run_id: str) -> None:
        super().__init__(f"Pipeline run {run_id} not found")
        self.run_id = run_id
