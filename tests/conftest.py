"""pytest fixtures for outfitgen tests.

Provides:
- settings: Test settings with sub-second polling and fallback delays
- backend: Scripted fake of the generation REST backend (httpx.MockTransport)
- reconciler: Function-scoped GenerationReconciler wired to the fake backend
- recorder: Observer collecting (state, payload) transitions
"""

import asyncio
from typing import Any, AsyncGenerator, Optional, Union

import httpx
import pytest
import pytest_asyncio

from outfitgen.core.config import Settings
from outfitgen.core.dependencies import create_reconciler
from outfitgen.models.job import ArtifactRef, GenerationRequest, JobKind
from outfitgen.services.generation.reconciler import GenerationReconciler

MODEL_IMAGE = ArtifactRef(
    id="img-model-1", url="https://cdn.test/model.png", width=768, height=1024
)
OUTFIT_IMAGE = ArtifactRef(id="img-outfit-1", url="https://cdn.test/outfit.png")

ScriptItem = Union[dict, httpx.Response, Exception]


def status_payload(job_id: str, status: str, **extra: Any) -> dict:
    """Build a job-status response body."""
    payload = {
        "jobId": job_id,
        "status": status,
        "attempts": 1,
        "createdAt": "2026-10-17T10:00:00Z",
        "updatedAt": "2026-10-17T10:00:02Z",
        "estimatedTime": 20,
    }
    payload.update(extra)
    return payload


def output_image(image_id: str = "out-1") -> dict:
    return {
        "id": image_id,
        "url": f"https://cdn.test/{image_id}.png",
        "width": 768,
        "height": 1024,
        "sizeBytes": 123456,
    }


class FakeBackend:
    """Scripted generation backend.

    ``submissions`` and ``statuses`` are consumed in order; the last status
    repeats once the script runs out. Exceptions are raised as transport
    errors. Setting ``hold_status`` or ``hold_submit`` makes status or create-job
    requests block until the event is set.
    """

    def __init__(self) -> None:
        self.submissions: list[ScriptItem] = []
        self.statuses: list[ScriptItem] = []
        self.quota: dict = {
            "monthlyRequests": 10,
            "usedThisMonth": 3,
            "remaining": 7,
            "resetDate": "2026-11-01T00:00:00Z",
            "hasQuota": True,
        }
        self.requests: list[httpx.Request] = []
        self.status_requests: list[httpx.Request] = []
        self.status_started = asyncio.Event()
        self.hold_status: Optional[asyncio.Event] = None
        self.hold_submit: Optional[asyncio.Event] = None
        self._last_status: Optional[ScriptItem] = None

    @staticmethod
    def _respond(item: ScriptItem, request: httpx.Request) -> httpx.Response:
        if isinstance(item, Exception):
            if isinstance(item, httpx.RequestError):
                item.request = request
            raise item
        if isinstance(item, httpx.Response):
            return item
        return httpx.Response(200, json=item)

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path.endswith("/status"):
            self.status_requests.append(request)
            self.status_started.set()
            if self.hold_status is not None:
                await self.hold_status.wait()
            if self.statuses:
                self._last_status = self.statuses.pop(0)
            if self._last_status is None:
                return httpx.Response(404, json={"error": "Job not found"})
            return self._respond(self._last_status, request)

        if path.endswith("/quota"):
            return httpx.Response(200, json={"quota": self.quota})

        if request.method == "POST" and path.endswith("/generate"):
            if self.hold_submit is not None:
                await self.hold_submit.wait()
            if not self.submissions:
                return httpx.Response(500, json={"error": "no submission scripted"})
            return self._respond(self.submissions.pop(0), request)

        return httpx.Response(404, json={"error": f"Unknown endpoint {path}"})


class StateRecorder:
    """Observer that records every (state, payload) transition."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []

    def __call__(self, state, payload) -> None:
        self.calls.append((state, payload))

    @property
    def states(self) -> list:
        return [state for state, _ in self.calls]


@pytest.fixture
def settings() -> Settings:
    """Settings with fast polling for tests."""
    return Settings(
        _env_file=None,
        APP_ENV="test",
        API_BASE_URL="http://backend.test/api/v1",
        POLL_INTERVAL_SECONDS=0.01,
        POLL_WARMUP_SECONDS=0.01,
        OUTFIT_MAX_POLL_ATTEMPTS=5,
        QUILT_MAX_POLL_ATTEMPTS=3,
        FALLBACK_DELAY_SECONDS=0.05,
    )


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def recorder() -> StateRecorder:
    return StateRecorder()


@pytest.fixture
def outfit_request() -> GenerationRequest:
    return GenerationRequest(kind=JobKind.OUTFIT, inputs=[MODEL_IMAGE, OUTFIT_IMAGE])


@pytest.fixture
def quilt_request() -> GenerationRequest:
    return GenerationRequest(
        kind=JobKind.QUILT_DESIGN,
        prompt="A modern geometric quilt with blue and gold colors",
        options={"style": "modern", "rows": 8, "columns": 8},
    )


@pytest_asyncio.fixture
async def http_client(backend: FakeBackend) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(backend.handler)) as client:
        yield client


@pytest_asyncio.fixture
async def reconciler(
    settings: Settings, http_client: httpx.AsyncClient
) -> AsyncGenerator[GenerationReconciler, None]:
    """Reconciler wired to the fake backend. All sessions cancelled after the test."""
    async with create_reconciler(settings, http_client=http_client) as reconciler:
        yield reconciler
