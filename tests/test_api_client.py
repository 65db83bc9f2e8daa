"""GenerationApiClient tests against httpx.MockTransport.

Covers request payloads, response parsing, and error classification:
- 429 / 5xx / transport failures → NetworkError (transient)
- 402 or quota codes → ApiResponseError carrying the quota code
- Other 4xx → ApiResponseError (permanent)
"""

import json

import httpx
import pytest

from outfitgen.models.job import JobKind, JobStatus
from outfitgen.services.exceptions import ApiResponseError, NetworkError
from outfitgen.services.generation.client import GenerationApiClient

BASE_URL = "http://backend.test/api/v1"


def make_client(handler) -> GenerationApiClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GenerationApiClient(BASE_URL, auth_token="tok-123", http_client=http_client)


@pytest.mark.asyncio
async def test_create_outfit_job_payload_and_response():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            201,
            json={"jobId": "job-1", "status": "queued", "estimatedTime": 30, "queuePosition": 2},
        )

    client = make_client(handler)
    response = await client.create_outfit_job("img-model", "img-outfit", prompt="wear it")

    assert seen["method"] == "POST"
    assert seen["path"] == "/api/v1/generate"
    assert seen["auth"] == "Bearer tok-123"
    assert seen["body"]["modelImageId"] == "img-model"
    assert seen["body"]["outfitImageId"] == "img-outfit"
    assert seen["body"]["prompt"] == "wear it"
    assert seen["body"]["options"]["preserveFace"] is True

    assert response.job_id == "job-1"
    assert response.status == JobStatus.QUEUED
    assert response.estimated_time == 30
    assert response.queue_position == 2


@pytest.mark.asyncio
async def test_quilt_design_endpoints():
    paths = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        if request.method == "POST":
            return httpx.Response(200, json={"jobId": "q-1", "status": "processing"})
        return httpx.Response(
            200,
            json={
                "jobId": "q-1",
                "status": "succeeded",
                "attempts": 3,
                "processingTime": 12.5,
                "outputImage": {"id": "o-1", "url": "https://cdn.test/o-1.png", "sizeBytes": 10},
            },
        )

    client = make_client(handler)
    submitted = await client.create_quilt_design_job("geometric", {"rows": 4})
    status = await client.get_job_status("q-1", JobKind.QUILT_DESIGN)

    assert paths == ["/api/v1/quilt-design/generate", "/api/v1/quilt-design/q-1/status"]
    assert submitted.status == JobStatus.PROCESSING
    assert status.status == JobStatus.SUCCEEDED
    assert status.processing_time == 12.5
    assert status.output_image.to_artifact().size_bytes == 10


@pytest.mark.asyncio
async def test_status_error_fields_parsed():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"jobId": "job-9", "status": "failed", "error": "NSFW detected", "code": "SAFETY"},
        )

    status = await make_client(handler).get_job_status("job-9")

    assert status.status == JobStatus.FAILED
    assert status.error == "NSFW detected"
    assert status.error_code == "SAFETY"


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", [429, 500, 502, 503])
async def test_retryable_statuses_raise_network_error(status_code):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, json={"error": "busy"})

    with pytest.raises(NetworkError):
        await make_client(handler).get_job_status("job-1")


@pytest.mark.asyncio
async def test_transport_failures_raise_network_error():
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    def slow(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("read timed out", request=request)

    with pytest.raises(NetworkError, match="Network error"):
        await make_client(refuse).get_job_status("job-1")

    with pytest.raises(NetworkError, match="timeout"):
        await make_client(slow).get_job_status("job-1")


@pytest.mark.asyncio
async def test_client_errors_are_permanent():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            400, json={"error": "outfitImageId is required", "code": "VALIDATION"}
        )

    with pytest.raises(ApiResponseError) as exc_info:
        await make_client(handler).create_outfit_job("m", "", prompt="p")

    assert exc_info.value.status_code == 400
    assert exc_info.value.code == "VALIDATION"
    assert str(exc_info.value) == "outfitImageId is required"


@pytest.mark.asyncio
async def test_quota_errors_keep_quota_code():
    def payment_required(request: httpx.Request) -> httpx.Response:
        return httpx.Response(402, json={"error": "Upgrade your plan"})

    def rate_limited_quota(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, json={"error": "Monthly limit", "code": "QUOTA_EXCEEDED"})

    with pytest.raises(ApiResponseError) as exc_info:
        await make_client(payment_required).create_quilt_design_job("p")
    assert exc_info.value.code == "QUOTA_EXCEEDED"

    with pytest.raises(ApiResponseError) as exc_info:
        await make_client(rate_limited_quota).create_quilt_design_job("p")
    assert exc_info.value.status_code == 429


@pytest.mark.asyncio
async def test_non_json_error_body():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, text="Not Found")

    with pytest.raises(ApiResponseError, match="Not Found"):
        await make_client(handler).get_job_status("missing")


@pytest.mark.asyncio
@pytest.mark.parametrize("wrapped", [True, False])
async def test_get_quota_accepts_bare_and_wrapped(wrapped):
    quota = {
        "monthlyRequests": 5,
        "usedThisMonth": 2,
        "remaining": 3,
        "resetDate": "2026-11-01T00:00:00Z",
        "hasQuota": True,
    }

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/v1/quota"
        return httpx.Response(200, json={"quota": quota} if wrapped else quota)

    snapshot = await make_client(handler).get_quota()

    assert snapshot.monthly_limit == 5
    assert snapshot.to_state().remaining == 3


@pytest.mark.asyncio
async def test_list_jobs_sends_only_set_filters():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["params"] = dict(request.url.params)
        return httpx.Response(
            200, json={"jobs": [{"jobId": "job-1"}], "pagination": {"page": 1}, "filters": {}}
        )

    listing = await make_client(handler).list_jobs(status="succeeded", page=1, sort_by="createdAt")

    assert seen["params"] == {"status": "succeeded", "page": "1", "sortBy": "createdAt"}
    assert listing.jobs == [{"jobId": "job-1"}]


@pytest.mark.asyncio
async def test_cancel_and_stats():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/cancel"):
            return httpx.Response(200, json={"message": "cancelled", "jobId": "job-1"})
        return httpx.Response(
            200,
            json={
                "total": 4,
                "byStatus": {"succeeded": 3, "failed": 1},
                "averageProcessingTime": 18.2,
                "successRate": 0.75,
            },
        )

    client = make_client(handler)

    cancelled = await client.cancel_job("job-1")
    stats = await client.get_job_stats()

    assert cancelled["jobId"] == "job-1"
    assert stats.by_status == {"succeeded": 3, "failed": 1}
    assert stats.success_rate == 0.75
