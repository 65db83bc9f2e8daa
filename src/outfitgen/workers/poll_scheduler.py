"""Polling scheduler for submitted generation jobs.

Each PollSession runs as one asyncio task:

1. Sleep the warm-up delay (a fresh job cannot be done yet)
2. Fetch job status (one request in flight at a time)
3. Deliver the status to the owner's callback
4. Stop on terminal status, on attempt-budget exhaustion (the last tick
   delivers one JobTimeoutError in place of a non-terminal status), on a
   permanent error, or on cancel()
5. Otherwise sleep the interval and go to 2

Transient fetch errors count as attempts and are retried on the next tick.
They are never delivered on their own; if they persist the session ends in
a timeout.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Optional, Union

import structlog
from pydantic import ValidationError

from outfitgen.core.config import PollPolicy
from outfitgen.models.job import JobKind, utcnow
from outfitgen.services.exceptions import JobTimeoutError, PermanentError, TransientError
from outfitgen.services.generation.schemas import JobStatusResponse

logger = structlog.get_logger(__name__)

PollOutcome = Union[JobStatusResponse, JobTimeoutError, PermanentError]
StatusFetcher = Callable[[str, JobKind], Awaitable[JobStatusResponse]]
UpdateCallback = Callable[["PollSession", PollOutcome], None]


def _current_task() -> Optional["asyncio.Task"]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


@dataclass(eq=False)
class PollSession:
    """Bookkeeping for one job's polling. Counters are written only by the scheduler loop."""

    job_id: str
    kind: JobKind
    max_attempts: int
    interval_seconds: float
    warmup_seconds: float
    started_at: datetime = field(default_factory=utcnow)
    attempt_count: int = 0
    cancelled: bool = False
    finished: bool = False
    _task: Optional[asyncio.Task] = field(default=None, repr=False)

    @property
    def active(self) -> bool:
        return not (self.cancelled or self.finished)

    def cancel(self) -> None:
        """Stop polling. Idempotent; a no-op after natural termination."""
        if self.cancelled or self.finished:
            self.cancelled = True
            return
        self.cancelled = True
        task = self._task
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()
        logger.info(
            "generation.poll.cancelled",
            job_id=self.job_id,
            attempt_count=self.attempt_count,
        )

    async def wait(self) -> None:
        """Wait for the session's task to end (never raises CancelledError for it)."""
        if self._task is not None:
            await asyncio.wait([self._task])


class PollingScheduler:
    """Starts and tracks PollSessions. At most one live session per job_id."""

    def __init__(self, fetch_status: StatusFetcher):
        """
        Args:
            fetch_status: Coroutine fetching one status for (job_id, kind)
        """
        self.fetch_status = fetch_status
        self._sessions: dict[str, PollSession] = {}

    def is_polling(self, job_id: str) -> bool:
        session = self._sessions.get(job_id)
        return session is not None and session.active

    @property
    def active_sessions(self) -> list[PollSession]:
        return [session for session in self._sessions.values() if session.active]

    def start(
        self,
        job_id: str,
        kind: JobKind,
        on_update: UpdateCallback,
        policy: PollPolicy,
    ) -> PollSession:
        """Begin polling a job.

        Raises:
            ValueError: If the job already has a live session
        """
        if self.is_polling(job_id):
            raise ValueError(f"Job {job_id} is already being polled")

        session = PollSession(
            job_id=job_id,
            kind=kind,
            max_attempts=policy.max_attempts,
            interval_seconds=policy.interval_seconds,
            warmup_seconds=policy.warmup_seconds,
        )
        self._sessions[job_id] = session
        session._task = asyncio.create_task(
            self._run(session, on_update), name=f"poll-{job_id}"
        )

        logger.info(
            "generation.poll.started",
            job_id=job_id,
            kind=kind.value,
            max_attempts=policy.max_attempts,
            interval_seconds=policy.interval_seconds,
        )
        return session

    def cancel_all(self) -> None:
        for session in list(self._sessions.values()):
            session.cancel()

    def _deliver(
        self, session: PollSession, on_update: UpdateCallback, outcome: PollOutcome
    ) -> None:
        if session.cancelled:
            return
        try:
            on_update(session, outcome)
        except Exception as e:
            logger.error(
                "generation.poll.callback_failed",
                job_id=session.job_id,
                error_type=type(e).__name__,
                error_message=str(e),
                exc_info=True,
            )

    async def _run(self, session: PollSession, on_update: UpdateCallback) -> None:
        loop = asyncio.get_running_loop()
        started = loop.time()

        try:
            await asyncio.sleep(session.warmup_seconds)

            while not session.cancelled:
                session.attempt_count += 1
                attempt_number = session.attempt_count
                status: Optional[JobStatusResponse] = None

                try:
                    status = await self.fetch_status(session.job_id, session.kind)

                except TransientError as e:
                    logger.warning(
                        "generation.poll.retry",
                        job_id=session.job_id,
                        error_type=type(e).__name__,
                        error_message=str(e),
                        attempt_number=attempt_number,
                    )

                except (PermanentError, ValidationError) as e:
                    if isinstance(e, PermanentError):
                        error = e
                    else:
                        error = PermanentError(f"Malformed status response: {str(e)}")
                    logger.error(
                        "generation.poll.failed",
                        job_id=session.job_id,
                        error_type=type(e).__name__,
                        error_message=str(e),
                        attempt_number=attempt_number,
                    )
                    session.finished = True
                    self._deliver(session, on_update, error)
                    return

                # Response for a session cancelled while the request was in flight
                if session.cancelled:
                    return

                out_of_budget = session.attempt_count >= session.max_attempts

                if status is not None:
                    terminal = status.status.is_terminal
                    if terminal:
                        session.finished = True
                    # Last tick delivers only the timeout
                    if terminal or not out_of_budget:
                        self._deliver(session, on_update, status)
                    if terminal:
                        logger.info(
                            "generation.poll.finished",
                            job_id=session.job_id,
                            status=status.status.value,
                            attempt_count=attempt_number,
                            duration_seconds=loop.time() - started,
                        )
                        return
                    if session.cancelled:
                        return

                if out_of_budget:
                    session.finished = True
                    waited = loop.time() - started
                    logger.warning(
                        "generation.poll.timeout",
                        job_id=session.job_id,
                        attempt_count=session.attempt_count,
                        waited_seconds=waited,
                    )
                    self._deliver(
                        session,
                        on_update,
                        JobTimeoutError(session.job_id, session.attempt_count, waited),
                    )
                    return

                await asyncio.sleep(session.interval_seconds)

        finally:
            session.finished = True
            if self._sessions.get(session.job_id) is session:
                del self._sessions[session.job_id]
