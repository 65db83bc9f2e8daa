"""State reconciler for generation jobs.

Owns the per-target state machine and every PollSession it starts:

    idle → submitting → queued/processing (repeated per poll)
                      → succeeded | failed | timed_out
    submitting → submission_failed → queued (simulated) → succeeded (simulated)
    any → idle on reset()

A target is a caller-chosen key (e.g. the outfit being rendered). At most one
job is live per target. Every poll update and fallback completion is checked
against the target's current session before it is applied, so responses that
arrive after cancel(), reset() or a regenerate are dropped.

The reconciler emits typed values only (GenerationJob or GenerationError) to
the observer passed to generate(); user notifications are the observer's job.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import AsyncIterator, Callable, Optional, Union

import structlog

from outfitgen.core.config import PollPolicy
from outfitgen.models.job import (
    GenerationJob,
    GenerationRequest,
    JobError,
    JobKind,
    JobOrigin,
    JobResult,
    JobStatus,
)
from outfitgen.services.exceptions import (
    GenerationError,
    GenerationInProgressError,
    JobFailedError,
    JobTimeoutError,
    PermanentError,
    QuotaExhaustedError,
    SubmissionError,
)
from outfitgen.services.generation.client import GenerationApiClient
from outfitgen.services.generation.error_messages import normalize_job_error
from outfitgen.services.generation.gateway import JobSubmissionGateway, validate_request
from outfitgen.services.generation.quota import QuotaLedger
from outfitgen.services.generation.schemas import JobStatusResponse
from outfitgen.services.generation.simulator import FallbackSimulator
from outfitgen.workers.poll_scheduler import PollingScheduler, PollOutcome, PollSession

logger = structlog.get_logger(__name__)


class GenerationState(str, Enum):
    """Observable state of one target."""

    IDLE = "idle"
    SUBMITTING = "submitting"
    QUEUED = "queued"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    SUBMISSION_FAILED = "submission_failed"


Payload = Union[GenerationJob, GenerationError, None]
StateObserver = Callable[[GenerationState, Payload], None]

_PENDING_STATES = {
    JobStatus.QUEUED: GenerationState.QUEUED,
    JobStatus.PROCESSING: GenerationState.PROCESSING,
}


@dataclass(eq=False)
class TargetSlot:
    """Per-target bookkeeping. ``generation`` changes whenever work is discarded."""

    key: str
    state: GenerationState = GenerationState.IDLE
    job: Optional[GenerationJob] = None
    error: Optional[GenerationError] = None
    session: Optional[PollSession] = None
    fallback_task: Optional[asyncio.Task] = None
    observer: Optional[StateObserver] = None
    generation: int = 0


class GenerationReconciler:
    """Drives generation jobs from submission to a terminal state."""

    def __init__(
        self,
        client: GenerationApiClient,
        gateway: JobSubmissionGateway,
        scheduler: PollingScheduler,
        ledger: QuotaLedger,
        simulator: FallbackSimulator,
        policies: dict[JobKind, PollPolicy],
    ):
        self.client = client
        self.gateway = gateway
        self.scheduler = scheduler
        self.ledger = ledger
        self.simulator = simulator
        self.policies = policies
        self._targets: dict[str, TargetSlot] = {}

    async def __aenter__(self) -> "GenerationReconciler":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # Queries

    def state(self, target: str) -> GenerationState:
        slot = self._targets.get(target)
        return slot.state if slot else GenerationState.IDLE

    def job(self, target: str) -> Optional[GenerationJob]:
        slot = self._targets.get(target)
        return slot.job if slot else None

    def error(self, target: str) -> Optional[GenerationError]:
        slot = self._targets.get(target)
        return slot.error if slot else None

    # Commands

    async def generate(
        self,
        target: str,
        request: GenerationRequest,
        on_state_change: Optional[StateObserver] = None,
    ) -> Optional[GenerationJob]:
        """Submit a new job for a target and start tracking it.

        Any previous job for the target is cancelled first. Returns the
        submitted job (or the simulated stand-in after a submission failure);
        later transitions arrive through ``on_state_change``. Returns None if
        the submission failed after the target was cancelled or regenerated.

        Raises:
            GenerationInProgressError: A submission for this target is in flight
            QuotaExhaustedError: Local or server-reported quota exhaustion
            ValueError: Request failed validation
        """
        slot = self._targets.setdefault(target, TargetSlot(key=target))
        if slot.state == GenerationState.SUBMITTING:
            raise GenerationInProgressError(target)

        validate_request(request)

        if not self.ledger.check_available():
            logger.info("generation.quota_exhausted", target=target, source="local")
            raise QuotaExhaustedError("Monthly generation quota exhausted", code="QUOTA_EXCEEDED")

        self._discard(slot)
        token = slot.generation
        slot.observer = on_state_change
        slot.job = None
        slot.error = None
        self._transition(slot, GenerationState.SUBMITTING, None)

        try:
            job = await self.gateway.submit(request)

        except QuotaExhaustedError as e:
            self.ledger.mark_exhausted()
            if slot.generation == token:
                self._transition(slot, GenerationState.SUBMISSION_FAILED, e)
            raise

        except SubmissionError as e:
            if slot.generation != token:
                logger.info(
                    "generation.submit.superseded",
                    target=target,
                    error_type=type(e).__name__,
                    error_message=str(e),
                )
                return None
            self._transition(slot, GenerationState.SUBMISSION_FAILED, e)
            return self._start_fallback(slot, request, token, e)

        except BaseException:
            # Submission aborted (validation or task cancellation); release the target
            if slot.generation == token and slot.state == GenerationState.SUBMITTING:
                slot.state = GenerationState.IDLE
            raise

        if slot.generation != token:
            logger.info("generation.submit.superseded", target=target, job_id=job.job_id)
            return job

        slot.job = job
        self._transition(slot, _PENDING_STATES[job.status], job)
        if slot.generation != token:
            return job

        slot.session = self.scheduler.start(
            job.job_id,
            job.kind,
            partial(self._on_poll_update, slot),
            self.policies[job.kind],
        )
        return job

    def cancel(self, target: str) -> None:
        """Stop tracking a target's job silently.

        The state is left as is, except that an in-flight submission releases
        the target so a new generate() is accepted.
        """
        slot = self._targets.get(target)
        if slot is None:
            return
        self._discard(slot)
        if slot.state == GenerationState.SUBMITTING:
            slot.state = GenerationState.IDLE

    def reset(self, target: str) -> None:
        """Cancel any work for the target and return it to idle."""
        slot = self._targets.get(target)
        if slot is None:
            return
        self._discard(slot)
        slot.job = None
        slot.error = None
        self._transition(slot, GenerationState.IDLE, None)

    def close(self) -> None:
        """Cancel every session and fallback task."""
        for target in list(self._targets):
            self.cancel(target)

    async def aclose(self) -> None:
        self.close()
        await self.client.aclose()

    @asynccontextmanager
    async def view(self, target: str) -> AsyncIterator["GenerationReconciler"]:
        """Scope a target's jobs to a view: everything is cancelled on exit."""
        try:
            yield self
        finally:
            self.cancel(target)

    async def wait(self, target: str) -> Optional[GenerationJob]:
        """Wait until the target's current poll session or fallback ends."""
        slot = self._targets.get(target)
        if slot is None:
            return None
        if slot.session is not None:
            await slot.session.wait()
        if slot.fallback_task is not None:
            await asyncio.wait([slot.fallback_task])
        return slot.job

    async def reconcile(self, target: str) -> GenerationJob:
        """Check once, out of band, on a job whose polling timed out.

        A terminal status found here is applied as if it had been polled
        (including the quota reservation for a success). A still-pending job
        stays timed_out.

        Raises:
            ValueError: The target has no timed-out job
            NetworkError / PermanentError: Status fetch failed
        """
        slot = self._targets.get(target)
        if slot is None or slot.job is None or slot.state != GenerationState.TIMED_OUT:
            raise ValueError(f"No timed-out job to reconcile for target {target!r}")

        job = slot.job
        token = slot.generation
        status = await self.client.get_job_status(job.job_id, job.kind)

        # Superseded, or another reconcile() already applied a result
        if slot.generation != token or slot.job is not job:
            return job
        if slot.state != GenerationState.TIMED_OUT or job.is_terminal:
            return job

        job.processing_time_seconds = status.processing_time
        job.queue_time_seconds = status.queue_time
        if status.status.is_terminal:
            self._apply_terminal(slot, job, status)
        else:
            job.mark_pending(status.status)

        logger.info(
            "generation.reconciled",
            target=target,
            job_id=job.job_id,
            status=job.status.value,
        )
        return job

    async def refresh_quota(self) -> None:
        """Replace the ledger's counters with the backend's."""
        snapshot = await self.client.get_quota()
        self.ledger.refresh(snapshot)

    # Internals

    def _discard(self, slot: TargetSlot) -> None:
        slot.generation += 1
        if slot.session is not None:
            slot.session.cancel()
            slot.session = None
        if slot.fallback_task is not None:
            if not slot.fallback_task.done():
                slot.fallback_task.cancel()
            slot.fallback_task = None

    def _transition(self, slot: TargetSlot, state: GenerationState, payload: Payload) -> None:
        slot.state = state
        if isinstance(payload, GenerationError):
            slot.error = payload

        logger.debug(
            "generation.state",
            target=slot.key,
            state=state.value,
            job_id=slot.job.job_id if slot.job else None,
        )

        if slot.observer is None:
            return
        try:
            slot.observer(state, payload)
        except Exception as e:
            logger.error(
                "generation.observer_failed",
                target=slot.key,
                state=state.value,
                error_type=type(e).__name__,
                error_message=str(e),
                exc_info=True,
            )

    def _on_poll_update(
        self, slot: TargetSlot, session: PollSession, outcome: PollOutcome
    ) -> None:
        if slot.session is not session or slot.job is None:
            logger.debug("generation.update.stale", target=slot.key, job_id=session.job_id)
            return

        job = slot.job
        job.attempts = session.attempt_count

        if isinstance(outcome, JobTimeoutError):
            slot.session = None
            logger.warning(
                "generation.timed_out",
                target=slot.key,
                job_id=job.job_id,
                attempts=outcome.attempts,
            )
            self._transition(slot, GenerationState.TIMED_OUT, outcome)
            return

        if isinstance(outcome, PermanentError):
            slot.session = None
            self._fail(slot, job, str(outcome), getattr(outcome, "code", None))
            return

        job.processing_time_seconds = outcome.processing_time
        job.queue_time_seconds = outcome.queue_time

        if outcome.status.is_terminal:
            slot.session = None
            self._apply_terminal(slot, job, outcome)
            return

        job.mark_pending(outcome.status)
        self._transition(slot, _PENDING_STATES[outcome.status], job)

    def _apply_terminal(
        self, slot: TargetSlot, job: GenerationJob, status: JobStatusResponse
    ) -> None:
        if status.status == JobStatus.FAILED:
            self._fail(slot, job, status.error, status.error_code)
            return

        if status.output_image is None:
            self._fail(slot, job, "Job finished without an output image", "NO_OUTPUT")
            return

        job.mark_succeeded(
            JobResult(artifact=status.output_image.to_artifact(), origin=JobOrigin.REMOTE)
        )
        self.ledger.reserve_on_success()
        logger.info(
            "generation.succeeded",
            target=slot.key,
            job_id=job.job_id,
            attempts=job.attempts,
            image_url=job.result.artifact.url if job.result else None,
        )
        self._transition(slot, GenerationState.SUCCEEDED, job)

    def _fail(
        self,
        slot: TargetSlot,
        job: GenerationJob,
        raw_message: Optional[str],
        code: Optional[str],
    ) -> None:
        message = normalize_job_error(raw_message, job.kind)
        job.mark_failed(JobError(message=message, raw_message=raw_message, code=code))
        logger.error(
            "generation.failed",
            target=slot.key,
            job_id=job.job_id,
            error_code=code,
            error_message=raw_message,
            attempts=job.attempts,
        )
        self._transition(
            slot,
            GenerationState.FAILED,
            JobFailedError(message, job.job_id, raw_message=raw_message, code=code),
        )

    def _start_fallback(
        self,
        slot: TargetSlot,
        request: GenerationRequest,
        token: int,
        cause: SubmissionError,
    ) -> GenerationJob:
        job = self.simulator.pending(request)
        slot.job = job
        logger.warning(
            "generation.fallback",
            target=slot.key,
            job_id=job.job_id,
            error_type=type(cause).__name__,
            error_message=str(cause),
        )
        self._transition(slot, GenerationState.QUEUED, job)
        if slot.generation != token:
            return job

        slot.fallback_task = asyncio.create_task(
            self._run_fallback(slot, job, request, token), name=f"fallback-{job.job_id}"
        )
        return job

    async def _run_fallback(
        self,
        slot: TargetSlot,
        job: GenerationJob,
        request: GenerationRequest,
        token: int,
    ) -> None:
        await self.simulator.complete(job, request)
        if slot.generation != token or slot.job is not job:
            return
        slot.fallback_task = None
        self._transition(slot, GenerationState.SUCCEEDED, job)
