"""Factory wiring the generation core from settings."""

from typing import Optional

import httpx

from outfitgen.core.config import Settings
from outfitgen.models.job import JobKind
from outfitgen.services.generation.client import GenerationApiClient
from outfitgen.services.generation.gateway import JobSubmissionGateway
from outfitgen.services.generation.quota import QuotaLedger
from outfitgen.services.generation.reconciler import GenerationReconciler
from outfitgen.services.generation.simulator import FallbackSimulator
from outfitgen.workers.poll_scheduler import PollingScheduler


def create_reconciler(
    settings: Settings,
    http_client: Optional[httpx.AsyncClient] = None,
    ledger: Optional[QuotaLedger] = None,
) -> GenerationReconciler:
    """Build a GenerationReconciler and its collaborators.

    Args:
        settings: Application settings (backend URL, polling budgets, fallback)
        http_client: Optional pre-built httpx client (tests pass a MockTransport)
        ledger: Optional shared quota ledger; one per user

    Returns:
        Reconciler ready for generate(); close it with ``aclose()`` or use it
        as an async context manager

    Example:
        async with create_reconciler(settings) as reconciler:
            await reconciler.refresh_quota()
            await reconciler.generate("outfit-42", request, on_state_change)
            await reconciler.wait("outfit-42")
    """
    client = GenerationApiClient(
        base_url=settings.api_base_url,
        auth_token=settings.api_auth_token,
        timeout=settings.http_timeout_seconds,
        http_client=http_client,
    )
    return GenerationReconciler(
        client=client,
        gateway=JobSubmissionGateway(client, outfit_prompt=settings.outfit_prompt),
        scheduler=PollingScheduler(client.get_job_status),
        ledger=ledger or QuotaLedger(),
        simulator=FallbackSimulator(
            delay_seconds=settings.fallback_delay_seconds,
            placeholder_url=settings.fallback_placeholder_url,
        ),
        policies={kind: settings.poll_policy(kind) for kind in JobKind},
    )
