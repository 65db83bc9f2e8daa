"""Quota ledger - local, advisory cache of the user's generation allowance."""

from typing import Optional

import structlog

from outfitgen.models.quota import QuotaState
from outfitgen.services.generation.schemas import QuotaSnapshot

logger = structlog.get_logger(__name__)


class QuotaLedger:
    """Gates submissions and records confirmed successes.

    The backend count is authoritative; local state is replaced wholesale by
    refresh() and is only ever decremented locally. No method awaits, so
    concurrent generation flows on one event loop cannot interleave a
    read-modify-write.

    A ledger that has never been refreshed has no counters and does not gate.
    """

    def __init__(self, state: Optional[QuotaState] = None):
        self._state = state

    @property
    def state(self) -> Optional[QuotaState]:
        return self._state

    def check_available(self) -> bool:
        """True iff submission is allowed by the local counters."""
        if self._state is None:
            return True
        return self._state.has_quota

    def reserve_on_success(self) -> None:
        """Count one confirmed real success against the monthly allowance."""
        if self._state is None:
            return
        self._state = self._state.model_copy(
            update={"used_this_month": self._state.used_this_month + 1}
        )
        logger.info(
            "quota.reserved",
            used_this_month=self._state.used_this_month,
            remaining=self._state.remaining,
        )

    def mark_exhausted(self) -> None:
        """Apply a server-reported exhaustion until the next refresh."""
        if self._state is None:
            self._state = QuotaState()
            return
        self._state = self._state.model_copy(
            update={"used_this_month": max(self._state.used_this_month, self._state.monthly_limit)}
        )

    def refresh(self, snapshot: QuotaSnapshot) -> QuotaState:
        """Replace local state with an authoritative snapshot."""
        self._state = snapshot.to_state()
        logger.debug(
            "quota.refreshed",
            monthly_limit=self._state.monthly_limit,
            used_this_month=self._state.used_this_month,
            remaining=self._state.remaining,
        )
        return self._state
