"""Application configuration using Pydantic BaseSettings."""

import logging

import structlog
from pydantic import BaseModel, Field, PositiveFloat, PositiveInt, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from outfitgen.models.job import JobKind

DEFAULT_OUTFIT_PROMPT = (
    "Create a new image by combining the elements from the provided images. "
    "Take the cloths and place it with/on the model person. "
    "The final image should be a model wearing the cloths."
)


class PollPolicy(BaseModel):
    """Polling budget for one job kind."""

    interval_seconds: PositiveFloat = 2.0
    warmup_seconds: float = Field(default=2.0, ge=0)
    max_attempts: PositiveInt = 30

    @property
    def max_wait_seconds(self) -> float:
        return self.warmup_seconds + self.interval_seconds * (self.max_attempts - 1)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application Environment
    app_env: str = Field(default="development", alias="APP_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Generation Backend
    api_base_url: str = Field(default="http://localhost:3001/api/v1", alias="API_BASE_URL")
    api_auth_token: str = Field(default="demo-token", alias="API_AUTH_TOKEN")
    http_timeout_seconds: float = Field(default=30.0, alias="HTTP_TIMEOUT_SECONDS")
    outfit_prompt: str = Field(default=DEFAULT_OUTFIT_PROMPT, alias="OUTFIT_PROMPT")

    # Polling (shared interval/warm-up, per-kind attempt budget)
    poll_interval_seconds: float = Field(default=2.0, alias="POLL_INTERVAL_SECONDS")
    poll_warmup_seconds: float = Field(default=2.0, alias="POLL_WARMUP_SECONDS")
    # 60 x 2s = ~120s for try-on jobs
    outfit_max_poll_attempts: int = Field(default=60, alias="OUTFIT_MAX_POLL_ATTEMPTS")
    # 30 x 2s = ~60s for quilt designs
    quilt_max_poll_attempts: int = Field(default=30, alias="QUILT_MAX_POLL_ATTEMPTS")

    # Fallback Simulator
    fallback_delay_seconds: float = Field(default=2.0, alias="FALLBACK_DELAY_SECONDS")
    fallback_placeholder_url: str = Field(
        default="/images/placeholder-quilt-1.jpg", alias="FALLBACK_PLACEHOLDER_URL"
    )

    def poll_policy(self, kind: JobKind) -> PollPolicy:
        """Build the polling budget for a job kind."""
        max_attempts = (
            self.outfit_max_poll_attempts
            if kind == JobKind.OUTFIT
            else self.quilt_max_poll_attempts
        )
        return PollPolicy(
            interval_seconds=self.poll_interval_seconds,
            warmup_seconds=self.poll_warmup_seconds,
            max_attempts=max_attempts,
        )

    @model_validator(mode="after")
    def validate_polling_config(self) -> "Settings":
        """Reject polling budgets that would poll forever or never.

        Fails fast with a single error listing every bad variable.
        """
        invalid = []

        if self.poll_interval_seconds <= 0:
            invalid.append("POLL_INTERVAL_SECONDS must be greater than 0")
        if self.poll_warmup_seconds < 0:
            invalid.append("POLL_WARMUP_SECONDS must not be negative")
        if self.outfit_max_poll_attempts < 1:
            invalid.append("OUTFIT_MAX_POLL_ATTEMPTS must be at least 1")
        if self.quilt_max_poll_attempts < 1:
            invalid.append("QUILT_MAX_POLL_ATTEMPTS must be at least 1")
        if self.fallback_delay_seconds < 0:
            invalid.append("FALLBACK_DELAY_SECONDS must not be negative")

        if invalid:
            raise ValueError(
                "Invalid polling configuration:\n\n" + "\n".join(f"  - {m}" for m in invalid)
            )

        return self


def configure_logging(settings: Settings) -> None:
    """Configure structlog based on application environment.

    - Production: JSON output for log aggregation
    - Development: Console output for human readability
    """
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    if settings.app_env == "production":
        # JSON output for production (log aggregation)
        structlog.configure(
            processors=[
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(level),
            context_class=dict,
            logger_factory=structlog.PrintLoggerFactory(),
            cache_logger_on_first_use=True,
        )
    else:
        # Console output for development (human-readable)
        structlog.configure(
            processors=[
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.dev.ConsoleRenderer(),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(level),
            context_class=dict,
            logger_factory=structlog.PrintLoggerFactory(),
            cache_logger_on_first_use=True,
        )
