"""Daily enrichment quota lookup and launch admission."""

from __future__ import annotations

import logging
from typing import Optional

from leadpilot.enrich.api_client import EnrichmentApiClient
from leadpilot.enrich.errors import ApiError, quota_refusal_message
from leadpilot.enrich.models import AdmissionDecision, QuotaSnapshot

logger = logging.getLogger(__name__)


class QuotaGuard:
    """Fetches the caller's remaining quota; the backend stays the final authority."""

    def __init__(self, client: EnrichmentApiClient) -> None:
        self.client = client
        self.snapshot: Optional[QuotaSnapshot] = None

    async def refresh_quota(self) -> Optional[QuotaSnapshot]:
        """Return a fresh snapshot, or ``None`` when the quota is unknown."""
        try:
            payload = await self.client.refresh_quota()
        except ApiError as exc:
            logger.warning("quota.refresh_failed", extra={"error": exc.message})
            return None

        snapshot = QuotaSnapshot.from_payload(payload)
        self.snapshot = snapshot
        logger.info(
            "quota.refreshed",
            extra={"remaining": snapshot.remaining, "resets_at": snapshot.resets_at, "plan": snapshot.plan},
        )
        return snapshot

    @staticmethod
    def check_admission(target_count: int, snapshot: Optional[QuotaSnapshot]) -> AdmissionDecision:
        if snapshot is None or snapshot.remaining is None:
            return AdmissionDecision(admitted=True, snapshot=snapshot)
        if target_count > snapshot.remaining:
            return AdmissionDecision(
                admitted=False,
                reason=quota_refusal_message(target_count, snapshot.remaining, snapshot.resets_at),
                snapshot=snapshot,
            )
        return AdmissionDecision(admitted=True, snapshot=snapshot)

    async def admit(self, target_count: int) -> AdmissionDecision:
        return self.check_admission(target_count, await self.refresh_quota())
