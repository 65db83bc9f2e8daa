"""Domain models for generation jobs and quota."""

from outfitgen.models.job import (
    ArtifactRef,
    GenerationJob,
    GenerationRequest,
    InvalidStateTransition,
    JobError,
    JobKind,
    JobOrigin,
    JobResult,
    JobStatus,
)
from outfitgen.models.quota import QuotaState

__all__ = [
    "ArtifactRef",
    "GenerationJob",
    "GenerationRequest",
    "InvalidStateTransition",
    "JobError",
    "JobKind",
    "JobOrigin",
    "JobResult",
    "JobStatus",
    "QuotaState",
]
