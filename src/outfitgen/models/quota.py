"""QuotaState entity - local cache of the user's monthly generation allowance."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class QuotaState(BaseModel):
    """Monthly usage counters. ``remaining`` and ``has_quota`` are derived."""

    monthly_limit: int = Field(default=0, ge=0)
    used_this_month: int = Field(default=0, ge=0)
    reset_date: Optional[datetime] = None

    @property
    def remaining(self) -> int:
        return max(0, self.monthly_limit - self.used_this_month)

    @property
    def has_quota(self) -> bool:
        return self.remaining > 0
