"""Job submission gateway: one create-job call per generation request."""

import structlog
from pydantic import ValidationError

from outfitgen.models.job import GenerationJob, GenerationRequest, JobKind
from outfitgen.services.exceptions import (
    ApiResponseError,
    NetworkError,
    QuotaExhaustedError,
    SubmissionError,
)
from outfitgen.services.generation.client import GenerationApiClient

logger = structlog.get_logger(__name__)

MAX_PROMPT_LENGTH = 1000


def validate_request(request: GenerationRequest) -> None:
    """Validate a generation request before it is sent.

    Raises:
        ValueError: If an outfit request lacks its two input images, or a quilt
            request has an empty or over-long prompt
    """
    if request.kind == JobKind.OUTFIT:
        if len(request.inputs) < 2:
            raise ValueError(
                f"Outfit generation needs a model image and an outfit image "
                f"(got {len(request.inputs)} inputs)"
            )
        return

    prompt = request.prompt
    if not prompt or not prompt.strip():
        raise ValueError("Prompt cannot be empty or None")
    if len(prompt) > MAX_PROMPT_LENGTH:
        raise ValueError(
            f"Prompt exceeds maximum length of {MAX_PROMPT_LENGTH} characters "
            f"(got {len(prompt)})"
        )


def _is_quota_error(error: ApiResponseError) -> bool:
    code = (error.code or "").lower()
    return error.status_code == 402 or "quota" in code or "quota" in str(error).lower()


class JobSubmissionGateway:
    """Submits generation jobs to the backend."""

    def __init__(self, client: GenerationApiClient, outfit_prompt: str):
        self.client = client
        self.outfit_prompt = outfit_prompt

    async def submit(self, request: GenerationRequest) -> GenerationJob:
        """Create a remote job for the request.

        Args:
            request: Kind, uploaded input references, prompt and options

        Returns:
            GenerationJob in queued or processing state with attempts=0

        Raises:
            ValueError: Request failed local validation (nothing sent)
            QuotaExhaustedError: Backend reported the monthly quota as used up
            SubmissionError: Backend unreachable or request rejected
        """
        validate_request(request)

        try:
            if request.kind == JobKind.OUTFIT:
                model_image, outfit_image = request.inputs[0], request.inputs[1]
                response = await self.client.create_outfit_job(
                    model_image_id=model_image.id,
                    outfit_image_id=outfit_image.id,
                    prompt=request.prompt or self.outfit_prompt,
                    options=request.options or None,
                )
            else:
                response = await self.client.create_quilt_design_job(
                    prompt=request.prompt or "",
                    options=request.options,
                )

        except NetworkError as e:
            logger.warning(
                "generation.submit.failed",
                kind=request.kind.value,
                error_type="NetworkError",
                error_message=str(e),
            )
            raise SubmissionError(f"Backend unreachable: {str(e)}") from e

        except ApiResponseError as e:
            if _is_quota_error(e):
                logger.warning("generation.submit.quota_exhausted", kind=request.kind.value)
                raise QuotaExhaustedError(str(e), code=e.code or "QUOTA_EXCEEDED") from e

            logger.warning(
                "generation.submit.rejected",
                kind=request.kind.value,
                status_code=e.status_code,
                error_message=str(e),
            )
            raise SubmissionError(str(e), code=e.code) from e

        except ValidationError as e:
            raise SubmissionError(f"Malformed create-job response: {str(e)}") from e

        if response.status.is_terminal:
            raise SubmissionError(
                f"Backend returned job {response.job_id} already {response.status.value}"
            )

        job = GenerationJob(
            job_id=response.job_id,
            kind=request.kind,
            status=response.status,
            estimated_time_seconds=response.estimated_time,
            queue_position=response.queue_position,
        )

        logger.info(
            "generation.submitted",
            job_id=job.job_id,
            kind=job.kind.value,
            status=job.status.value,
            estimated_time_seconds=job.estimated_time_seconds,
        )
        return job
