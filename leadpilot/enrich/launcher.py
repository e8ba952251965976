"""Start a bulk enrichment job and feed it the remaining batches."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Iterable, Mapping, Optional

from leadpilot.config import settings
from leadpilot.enrich.api_client import EnrichmentApiClient
from leadpilot.enrich.batching import BATCH_SIZE, plan_batches
from leadpilot.enrich.errors import (
    ApiError,
    LaunchTransportError,
    NoValidTargetsError,
    QuotaExceededError,
)
from leadpilot.enrich.models import (
    AdmissionDecision,
    AppendReport,
    EnrichmentJob,
    JobCounters,
    JobStatus,
    LaunchResult,
    parse_timestamp,
    utcnow,
)
from leadpilot.enrich.quota import QuotaGuard
from leadpilot.enrich.store import JobStore

logger = logging.getLogger(__name__)

AdmissionCheck = Callable[[int], Awaitable[AdmissionDecision]]


def resolve_targets(
    target_ids: Optional[Iterable[str]],
    urn_lookup: Mapping[str, Optional[str]],
) -> tuple[list[str], int]:
    """Map lead ids to backend identifiers.

    ``target_ids=None`` selects every lead in ``urn_lookup``. Returns the
    de-duplicated identifiers in input order and the number of lead ids that
    had no identifier.
    """
    lead_ids = list(urn_lookup) if target_ids is None else list(target_ids)
    resolved: list[str] = []
    seen: set[str] = set()
    unresolved = 0
    for lead_id in lead_ids:
        urn = urn_lookup.get(lead_id)
        if not urn:
            unresolved += 1
            continue
        urn = str(urn)
        if urn not in seen:
            seen.add(urn)
            resolved.append(urn)
    return resolved, unresolved


class JobLauncher:
    def __init__(
        self,
        client: EnrichmentApiClient,
        store: JobStore,
        quota_guard: Optional[QuotaGuard] = None,
        batch_size: int = BATCH_SIZE,
        batch_delay_seconds: float | None = None,
    ) -> None:
        self.client = client
        self.store = store
        self.quota_guard = quota_guard
        self.batch_size = batch_size
        if batch_delay_seconds is None:
            batch_delay_seconds = settings.ENRICH_BATCH_DELAY_MS / 1000.0
        self.batch_delay_seconds = max(0.0, batch_delay_seconds)

    async def _admit(self, count: int, admission_check: Optional[AdmissionCheck]) -> AdmissionDecision:
        if admission_check is not None:
            return await admission_check(count)
        if self.quota_guard is not None:
            return await self.quota_guard.admit(count)
        return AdmissionDecision(admitted=True)

    async def launch(
        self,
        parent_id: str,
        target_ids: Optional[Iterable[str]],
        urn_lookup: Mapping[str, Optional[str]],
        admission_check: Optional[AdmissionCheck] = None,
        label: str | None = None,
    ) -> LaunchResult:
        urn_ids, unresolved = resolve_targets(target_ids, urn_lookup)
        if not urn_ids:
            logger.info("enrichment.launch.no_targets", extra={"parent_id": parent_id, "unresolved": unresolved})
            raise NoValidTargetsError()

        decision = await self._admit(len(urn_ids), admission_check)
        if not decision.admitted:
            snapshot = decision.snapshot
            logger.info(
                "enrichment.launch.quota_refused",
                extra={"parent_id": parent_id, "needed": len(urn_ids), "remaining": snapshot.remaining if snapshot else None},
            )
            raise QuotaExceededError(
                needed=len(urn_ids),
                remaining=snapshot.remaining if snapshot and snapshot.remaining is not None else 0,
                resets_at=snapshot.resets_at if snapshot else None,
                message=decision.reason,
            )

        batches = plan_batches(urn_ids, self.batch_size)
        try:
            data = await self.client.start_job(parent_id, batches[0], label or f"Pipeline {parent_id}")
        except ApiError as exc:
            logger.error("enrichment.launch.failed", extra={"parent_id": parent_id, "error": exc.message})
            raise LaunchTransportError() from exc

        if not data.get("success") or not data.get("job_id"):
            logger.error("enrichment.launch.rejected", extra={"parent_id": parent_id, "error": data.get("error")})
            raise LaunchTransportError(data.get("error") or None)

        try:
            started_at = parse_timestamp(data.get("started_at"))
        except ValueError:
            started_at = utcnow()

        job = EnrichmentJob(
            job_id=str(data["job_id"]),
            parent_id=parent_id,
            total_targets=len(urn_ids),
            status=JobStatus.parse(data.get("status"), default=JobStatus.processing),
            started_at=started_at,
            counters=JobCounters(),
        )
        # Persist before any append so a restart can still find the job.
        self.store.save(parent_id, job)
        logger.info(
            "enrichment.launch.started",
            extra={
                "parent_id": parent_id,
                "job_id": job.job_id,
                "total_targets": job.total_targets,
                "batches": len(batches),
                "unresolved": unresolved,
            },
        )

        append_task = None
        if len(batches) > 1:
            append_task = asyncio.create_task(self.append_batches(job.job_id, batches[1:]))

        if self.quota_guard is not None:
            await self.quota_guard.refresh_quota()

        return LaunchResult(
            job=job,
            batch_count=len(batches),
            unresolved_targets=unresolved,
            append_task=append_task,
        )

    async def append_batches(self, job_id: str, batches: list[list[str]]) -> AppendReport:
        """Submit ``batches`` one after another; failures are counted, not raised."""
        submitted = dropped = failed_batches = 0
        for index, batch in enumerate(batches):
            try:
                await self.client.append_targets(job_id, batch)
                submitted += len(batch)
            except ApiError as exc:
                dropped += len(batch)
                failed_batches += 1
                logger.warning(
                    "enrichment.append.failed",
                    extra={"job_id": job_id, "batch_index": index + 1, "size": len(batch), "error": exc.message},
                )
            if index < len(batches) - 1 and self.batch_delay_seconds:
                await asyncio.sleep(self.batch_delay_seconds)

        report = AppendReport(submitted=submitted, dropped=dropped, failed_batches=failed_batches)
        logger.info(
            "enrichment.append.finished",
            extra={"job_id": job_id, "submitted": submitted, "dropped": dropped, "failed_batches": failed_batches},
        )
        return report
