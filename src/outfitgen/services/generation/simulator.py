"""Fallback simulator used when a job cannot be submitted.

Produces a pass-through result after a fixed delay so an observer waiting on
a generation always reaches a terminal state. Results are tagged
``origin=simulated`` and never count against quota.
"""

import asyncio
from uuid import uuid4

import structlog

from outfitgen.models.job import (
    ArtifactRef,
    GenerationJob,
    GenerationRequest,
    JobOrigin,
    JobResult,
    JobStatus,
)

logger = structlog.get_logger(__name__)


class FallbackSimulator:
    """Synthesizes terminal jobs locally."""

    def __init__(self, delay_seconds: float = 2.0, placeholder_url: str = ""):
        self.delay_seconds = delay_seconds
        self.placeholder_url = placeholder_url

    def pending(self, request: GenerationRequest) -> GenerationJob:
        """Build the queued job that stands in for the failed submission."""
        return GenerationJob(
            job_id=f"sim-{uuid4().hex}",
            kind=request.kind,
            status=JobStatus.QUEUED,
            estimated_time_seconds=self.delay_seconds,
        )

    def _passthrough(self, request: GenerationRequest) -> ArtifactRef:
        if request.primary_input is not None:
            return request.primary_input.model_copy()
        return ArtifactRef(id="placeholder", url=self.placeholder_url)

    async def complete(self, job: GenerationJob, request: GenerationRequest) -> GenerationJob:
        """Wait the fixed delay, then mark the job succeeded with the passthrough artifact."""
        await asyncio.sleep(self.delay_seconds)
        job.mark_succeeded(
            JobResult(artifact=self._passthrough(request), origin=JobOrigin.SIMULATED)
        )
        logger.info(
            "generation.fallback.completed",
            job_id=job.job_id,
            kind=job.kind.value,
            artifact_id=job.result.artifact.id if job.result else None,
        )
        return job

    async def simulate(self, request: GenerationRequest) -> GenerationJob:
        """Return a simulated succeeded job after the fixed delay."""
        return await self.complete(self.pending(request), request)
