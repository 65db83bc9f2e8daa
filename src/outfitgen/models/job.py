"""GenerationJob entity - remote generation job with lifecycle status tracking."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobKind(str, Enum):
    """Generation job type. Each kind has its own endpoints and polling budget."""

    OUTFIT = "outfit"
    QUILT_DESIGN = "quilt_design"


class JobStatus(str, Enum):
    """Job lifecycle status as reported by the backend."""

    QUEUED = "queued"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED)


class JobOrigin(str, Enum):
    """Provenance of a terminal result."""

    REMOTE = "remote"
    SIMULATED = "simulated"


class InvalidStateTransition(Exception):
    """Raised when attempting to change a job that is already terminal."""

    pass


class ArtifactRef(BaseModel):
    """Reference to an uploaded or generated image."""

    id: str
    url: str
    width: Optional[int] = None
    height: Optional[int] = None
    size_bytes: Optional[int] = None


class JobResult(BaseModel):
    """Produced artifact of a succeeded job."""

    artifact: ArtifactRef
    origin: JobOrigin = JobOrigin.REMOTE


class JobError(BaseModel):
    """Failure details of a failed job."""

    message: str
    raw_message: Optional[str] = None
    code: Optional[str] = None


class GenerationRequest(BaseModel):
    """Inputs for one generation job.

    ``inputs`` are references to already-uploaded artifacts. For outfit jobs
    the first input is the model image and the second the outfit image.
    """

    kind: JobKind
    inputs: list[ArtifactRef] = Field(default_factory=list)
    prompt: Optional[str] = None
    options: dict[str, Any] = Field(default_factory=dict)

    @property
    def primary_input(self) -> Optional[ArtifactRef]:
        return self.inputs[0] if self.inputs else None


class GenerationJob(BaseModel):
    """GenerationJob tracks one submitted job from submission to terminal status."""

    job_id: str
    kind: JobKind
    status: JobStatus = JobStatus.QUEUED
    attempts: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    estimated_time_seconds: Optional[float] = None
    queue_position: Optional[int] = None
    processing_time_seconds: Optional[float] = None
    queue_time_seconds: Optional[float] = None
    result: Optional[JobResult] = None
    error: Optional[JobError] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def origin(self) -> Optional[JobOrigin]:
        return self.result.origin if self.result else None

    def _ensure_not_terminal(self, target: JobStatus) -> None:
        if self.is_terminal:
            raise InvalidStateTransition(
                f"Cannot move job {self.job_id} from terminal state "
                f"{self.status.value} to {target.value}."
            )

    def _set_status(self, status: JobStatus) -> None:
        if status != self.status:
            self.status = status
            self.updated_at = utcnow()

    def mark_pending(self, status: JobStatus) -> None:
        """Record an intermediate (queued/processing) status.

        Raises:
            InvalidStateTransition: If the job is terminal
            ValueError: If status is terminal
        """
        if status.is_terminal:
            raise ValueError(f"{status.value} is terminal; use mark_succeeded/mark_failed")
        self._ensure_not_terminal(status)
        self._set_status(status)

    def mark_succeeded(self, result: JobResult) -> None:
        """Transition to succeeded with the produced artifact.

        Raises:
            InvalidStateTransition: If the job is already terminal
        """
        self._ensure_not_terminal(JobStatus.SUCCEEDED)
        self.result = result
        self._set_status(JobStatus.SUCCEEDED)

    def mark_failed(self, error: JobError) -> None:
        """Transition to failed.

        Raises:
            InvalidStateTransition: If the job is already terminal
        """
        self._ensure_not_terminal(JobStatus.FAILED)
        self.error = error
        self._set_status(JobStatus.FAILED)
