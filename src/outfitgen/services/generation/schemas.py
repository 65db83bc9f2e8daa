"""Wire schemas for the generation backend (camelCase JSON)."""

from datetime import datetime
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from outfitgen.models.job import ArtifactRef, JobStatus
from outfitgen.models.quota import QuotaState


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class OutputImage(WireModel):
    id: str
    url: str
    width: Optional[int] = None
    height: Optional[int] = None
    size_bytes: Optional[int] = None

    def to_artifact(self) -> ArtifactRef:
        return ArtifactRef(
            id=self.id,
            url=self.url,
            width=self.width,
            height=self.height,
            size_bytes=self.size_bytes,
        )


class JobSubmissionResponse(WireModel):
    """Response of the create-job endpoints."""

    job_id: str
    status: JobStatus = JobStatus.QUEUED
    estimated_time: Optional[float] = None
    queue_position: Optional[int] = None


class JobStatusResponse(WireModel):
    """Response of the job-status endpoints."""

    job_id: str
    status: JobStatus
    attempts: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    estimated_time: Optional[float] = None
    processing_time: Optional[float] = None
    queue_time: Optional[float] = None
    output_image: Optional[OutputImage] = None
    error: Optional[str] = None
    error_code: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("errorCode", "code", "error_code")
    )
    error_details: Optional[Any] = None


class QuotaSnapshot(WireModel):
    """Authoritative quota counters from the backend."""

    monthly_limit: int = Field(
        validation_alias=AliasChoices("monthlyRequests", "monthlyLimit", "monthly_limit")
    )
    used_this_month: int
    remaining: Optional[int] = None
    reset_date: Optional[datetime] = None
    has_quota: Optional[bool] = None

    def to_state(self) -> QuotaState:
        return QuotaState(
            monthly_limit=self.monthly_limit,
            used_this_month=self.used_this_month,
            reset_date=self.reset_date,
        )


class JobListResponse(WireModel):
    jobs: list[dict[str, Any]] = Field(default_factory=list)
    pagination: dict[str, Any] = Field(default_factory=dict)
    filters: dict[str, Any] = Field(default_factory=dict)


class JobStats(WireModel):
    total: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)
    average_processing_time: Optional[float] = None
    success_rate: Optional[float] = None
