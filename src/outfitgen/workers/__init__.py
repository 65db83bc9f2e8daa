"""Background tasks for async processing."""

from outfitgen.workers.poll_scheduler import PollingScheduler, PollSession

__all__ = [
    "PollingScheduler",
    "PollSession",
]
