"""HTTP client for the generation backend (jobs, status, quota)."""

from typing import Any, Optional

import httpx

from outfitgen.models.job import JobKind
from outfitgen.services.exceptions import ApiResponseError, NetworkError
from outfitgen.services.generation.schemas import (
    JobListResponse,
    JobStats,
    JobStatusResponse,
    JobSubmissionResponse,
    QuotaSnapshot,
)

# Endpoint prefix per job kind, relative to the API base URL
JOB_ENDPOINTS = {
    JobKind.OUTFIT: "/generate",
    JobKind.QUILT_DESIGN: "/quilt-design",
}


def _error_body(response: httpx.Response) -> tuple[str, Optional[str]]:
    """Extract (message, code) from an error response body."""
    try:
        data = response.json()
    except ValueError:
        return response.text or f"HTTP error! status: {response.status_code}", None

    if not isinstance(data, dict):
        return f"HTTP error! status: {response.status_code}", None

    fallback = f"HTTP error! status: {response.status_code}"
    message = data.get("error") or data.get("message") or fallback
    code = data.get("code") or data.get("errorCode")
    return str(message), (str(code) if code is not None else None)


def classify_response(response: httpx.Response) -> None:
    """Raise a classified error for non-2xx responses.

    Classification rules:
        - 429 (rate limit) → NetworkError
        - 5xx (service unavailable) → NetworkError
        - Other 4xx → ApiResponseError (status code and server code kept)

    Quota exhaustion arrives as 402 or as 429 with a quota code; it is kept as
    ApiResponseError so the gateway can tell it apart from rate limiting.
    """
    if response.is_success:
        return

    message, code = _error_body(response)
    status_code = response.status_code

    if status_code == 402 or (code and "quota" in code.lower()):
        raise ApiResponseError(message, status_code=status_code, code=code or "QUOTA_EXCEEDED")
    if status_code == 429:
        raise NetworkError(f"Rate limit exceeded: {message}")
    if status_code >= 500:
        raise NetworkError(f"Service unavailable ({status_code}): {message}")

    raise ApiResponseError(message, status_code=status_code, code=code)


class GenerationApiClient:
    """REST client for the generation backend."""

    def __init__(
        self,
        base_url: str,
        auth_token: str = "demo-token",
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize API client.

        Args:
            base_url: API root (e.g., "http://localhost:3001/api/v1")
            auth_token: Bearer token sent with every request
            timeout: Request timeout in seconds
            http_client: Pre-built client (tests inject one with a MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.headers = {
            "Authorization": f"Bearer {auth_token}",
            "Content-Type": "application/json",
        }
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        json: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, Any]] = None,
    ) -> Any:
        """Send one request and return the decoded JSON body.

        Raises:
            NetworkError: Timeout, connection failure, 429, 5xx
            ApiResponseError: Any other non-2xx response
        """
        url = f"{self.base_url}{endpoint}"
        try:
            response = await self._client.request(
                method, url, headers=self.headers, json=json, params=params
            )
        except httpx.TimeoutException as e:
            raise NetworkError(f"Request timeout after {self.timeout}s: {str(e)}") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Network error: {str(e)}") from e

        classify_response(response)

        try:
            return response.json()
        except ValueError as e:
            raise ApiResponseError(
                f"Invalid JSON from {endpoint}", status_code=response.status_code
            ) from e

    async def create_outfit_job(
        self,
        model_image_id: str,
        outfit_image_id: str,
        prompt: str,
        options: Optional[dict[str, Any]] = None,
    ) -> JobSubmissionResponse:
        """Create a virtual try-on job from two uploaded images."""
        payload = {
            "modelImageId": model_image_id,
            "outfitImageId": outfit_image_id,
            "prompt": prompt,
            "options": options
            or {
                "strength": 0.9,
                "preserveFace": True,
                "background": "transparent",
                "style": "realistic",
            },
        }
        data = await self._request("POST", JOB_ENDPOINTS[JobKind.OUTFIT], json=payload)
        return JobSubmissionResponse.model_validate(data)

    async def create_quilt_design_job(
        self, prompt: str, options: Optional[dict[str, Any]] = None
    ) -> JobSubmissionResponse:
        """Create a quilt design job from a text prompt."""
        payload = {"prompt": prompt, "options": options or {}}
        data = await self._request(
            "POST", f"{JOB_ENDPOINTS[JobKind.QUILT_DESIGN]}/generate", json=payload
        )
        return JobSubmissionResponse.model_validate(data)

    async def get_job_status(
        self, job_id: str, kind: JobKind = JobKind.OUTFIT
    ) -> JobStatusResponse:
        data = await self._request("GET", f"{JOB_ENDPOINTS[kind]}/{job_id}/status")
        return JobStatusResponse.model_validate(data)

    async def cancel_job(self, job_id: str) -> dict[str, Any]:
        """Ask the backend to cancel an outfit job (best-effort)."""
        return await self._request("POST", f"{JOB_ENDPOINTS[JobKind.OUTFIT]}/{job_id}/cancel")

    async def list_jobs(
        self,
        status: Optional[str] = None,
        page: Optional[int] = None,
        limit: Optional[int] = None,
        sort_by: Optional[str] = None,
        sort_order: Optional[str] = None,
    ) -> JobListResponse:
        params = {
            "status": status,
            "page": page,
            "limit": limit,
            "sortBy": sort_by,
            "sortOrder": sort_order,
        }
        params = {key: value for key, value in params.items() if value is not None}
        data = await self._request("GET", JOB_ENDPOINTS[JobKind.OUTFIT], params=params or None)
        return JobListResponse.model_validate(data)

    async def get_job_stats(self) -> JobStats:
        data = await self._request("GET", f"{JOB_ENDPOINTS[JobKind.OUTFIT]}/stats")
        return JobStats.model_validate(data)

    async def get_quota(self) -> QuotaSnapshot:
        """Fetch the authoritative quota counters."""
        data = await self._request("GET", "/quota")
        if isinstance(data, dict) and isinstance(data.get("quota"), dict):
            data = data["quota"]
        return QuotaSnapshot.model_validate(data)
