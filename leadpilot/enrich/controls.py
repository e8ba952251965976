"""Pause, resume and stop for a running enrichment job."""

from __future__ import annotations

import logging
from typing import Optional

from leadpilot.enrich.api_client import EnrichmentApiClient
from leadpilot.enrich.errors import ApiError, ApiStatusError, ApiTransportError, ControlTransportError
from leadpilot.enrich.models import EnrichmentJob, JobStatus
from leadpilot.enrich.poller import StatusPoller
from leadpilot.enrich.quota import QuotaGuard
from leadpilot.enrich.state import JobSlot

logger = logging.getLogger(__name__)


class ControlSurface:
    """Server-side job controls with immediate local feedback.

    Pause and resume write an optimistic status straight into the slot; the
    next successful poll tick is authoritative and may overwrite it.
    """

    def __init__(
        self,
        client: EnrichmentApiClient,
        slot: JobSlot,
        poller: StatusPoller,
        quota_guard: Optional[QuotaGuard] = None,
    ) -> None:
        self.client = client
        self.slot = slot
        self.poller = poller
        self.quota_guard = quota_guard

    async def pause(self, job_id: str) -> Optional[EnrichmentJob]:
        try:
            await self.client.pause_job(job_id)
        except ApiError as exc:
            logger.warning("enrichment.control.failed", extra={"action": "pause", "job_id": job_id, "error": exc.message})
            raise ControlTransportError("pause") from exc
        return self._apply(job_id, JobStatus.paused)

    async def resume(self, job_id: str) -> Optional[EnrichmentJob]:
        try:
            await self.client.resume_job(job_id)
        except ApiError as exc:
            logger.warning("enrichment.control.failed", extra={"action": "resume", "job_id": job_id, "error": exc.message})
            raise ControlTransportError("resume") from exc
        return self._apply(job_id, JobStatus.processing)

    async def stop(self, job_id: str) -> bool:
        """Stop the job and drop local state; returns whether the server acknowledged.

        Only a transport failure leaves local state untouched. An HTTP error
        response still tears down locally so the client never keeps polling a
        job the user asked to stop.
        """
        acknowledged = True
        try:
            await self.client.stop_job(job_id)
        except ApiTransportError as exc:
            logger.warning("enrichment.control.failed", extra={"action": "stop", "job_id": job_id, "error": exc.message})
            raise ControlTransportError("stop") from exc
        except ApiStatusError as exc:
            acknowledged = False
            logger.warning(
                "enrichment.control.stop_unacknowledged",
                extra={"job_id": job_id, "status_code": exc.status_code},
            )

        if self.poller.job_id in (None, job_id):
            self.poller.stop()
        if self.slot.job is None or self.slot.holds(job_id):
            self.slot.release()
        logger.info("enrichment.control.stopped", extra={"job_id": job_id, "acknowledged": acknowledged})

        if self.quota_guard is not None:
            await self.quota_guard.refresh_quota()
        return acknowledged

    def _apply(self, job_id: str, status: JobStatus) -> Optional[EnrichmentJob]:
        # The slot may have moved on while the control call was in flight.
        if not self.slot.holds(job_id):
            logger.info("enrichment.control.stale", extra={"job_id": job_id, "status": status.value})
            return None
        job = self.slot.put(self.slot.job.with_status(status))
        logger.info("enrichment.control.applied", extra={"job_id": job_id, "status": status.value})
        return job
