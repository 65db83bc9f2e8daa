"""Error hierarchy for generation-job submission, polling and transport.

This module defines the exception hierarchy for the generation core:
- GenerationError: Base for all generation errors
- TransientError: Retryable transport errors (network, rate limits, timeouts)
- PermanentError: Non-retryable transport errors (authentication, validation)
- SubmissionError: Create-job request rejected (absorbed by the fallback simulator)
- JobFailedError / JobTimeoutError: Terminal, user-visible job outcomes
"""

from typing import Optional


class GenerationError(Exception):
    """Base exception for all generation errors."""

    pass


class TransientError(GenerationError):
    """Transient error that may succeed on retry.

    Examples:
    - Network timeouts
    - Connection refused / DNS failures
    - Rate limit exceeded (429)
    - Service unavailable (5xx)
    """

    pass


class PermanentError(GenerationError):
    """Permanent error that will not succeed on retry.

    Examples:
    - Authentication failures (401, 403)
    - Invalid request parameters (400, 422)
    - Unknown job (404)
    """

    pass


class NetworkError(TransientError):
    """Backend unreachable, timed out, rate limited or temporarily unavailable."""

    pass


class ApiResponseError(PermanentError):
    """Backend answered with a non-retryable error status."""

    def __init__(self, message: str, status_code: int, code: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class SubmissionError(GenerationError):
    """The create-job request was rejected or never reached the backend.

    Distinct from a job that completed with status ``failed``: a submission
    error means no job exists.
    """

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class QuotaExhaustedError(SubmissionError):
    """Monthly generation quota is used up (local check or server-reported)."""

    pass


class GenerationInProgressError(GenerationError):
    """A submission for the same target is already in flight."""

    def __init__(self, target: str):
        super().__init__(f"Generation already submitting for target {target!r}")
        self.target = target


class JobFailedError(GenerationError):
    """The remote job reached status ``failed``.

    ``str(error)`` is the normalized, user-facing message; ``raw_message`` keeps
    the server's text verbatim.
    """

    def __init__(
        self,
        message: str,
        job_id: str,
        raw_message: Optional[str] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message)
        self.job_id = job_id
        self.raw_message = raw_message
        self.code = code


class JobTimeoutError(GenerationError, TimeoutError):
    """Polling budget exhausted before the job reached a terminal status.

    The job may still be running server-side.
    """

    def __init__(self, job_id: str, attempts: int, waited_seconds: float):
        super().__init__(
            f"Job {job_id} did not finish after {attempts} status checks "
            f"({waited_seconds:.1f}s)"
        )
        self.job_id = job_id
        self.attempts = attempts
        self.waited_seconds = waited_seconds
