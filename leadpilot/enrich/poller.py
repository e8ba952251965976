"""Periodic status polling for a running enrichment job."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional

from leadpilot.config import settings
from leadpilot.enrich.api_client import EnrichmentApiClient
from leadpilot.enrich.errors import ApiError, PollTransportError
from leadpilot.enrich.models import EnrichmentJob
from leadpilot.enrich.quota import QuotaGuard
from leadpilot.enrich.state import JobSlot

logger = logging.getLogger(__name__)

JobCallback = Callable[[EnrichmentJob], Any]
RefreshRecords = Callable[[str], Awaitable[Any]]


async def invoke_callback(callback: Optional[Callable[..., Any]], *args: Any) -> None:
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class StatusPoller:
    """Polls job status, folds it into the slot and tears down on a terminal state.

    Ticks run in one loop task, so a slow status call delays the next tick
    instead of overlapping it. Every ``start``/``stop`` bumps a generation
    counter; a tick whose generation is no longer current drops its result.
    """

    def __init__(
        self,
        client: EnrichmentApiClient,
        slot: JobSlot,
        quota_guard: Optional[QuotaGuard] = None,
        refresh_records: Optional[RefreshRecords] = None,
        interval_seconds: float | None = None,
        on_error: Optional[Callable[[PollTransportError], Any]] = None,
    ) -> None:
        self.client = client
        self.slot = slot
        self.quota_guard = quota_guard
        self.refresh_records = refresh_records
        self.interval_seconds = max(
            0.0, settings.ENRICH_POLL_INTERVAL_SECONDS if interval_seconds is None else interval_seconds
        )
        self.on_error = on_error
        self._generation = 0
        self._task: Optional[asyncio.Task] = None
        self._job_id: Optional[str] = None
        self._on_update: Optional[JobCallback] = None
        self._on_terminal: Optional[JobCallback] = None

    @property
    def job_id(self) -> Optional[str]:
        return self._job_id

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(
        self,
        job_id: str,
        on_update: Optional[JobCallback] = None,
        on_terminal: Optional[JobCallback] = None,
    ) -> None:
        if self.running and self._job_id == job_id:
            return
        self.stop()
        self._generation += 1
        self._job_id = job_id
        self._on_update = on_update
        self._on_terminal = on_terminal
        self._task = asyncio.create_task(self._run(self._generation, job_id))
        logger.info("enrichment.poll.started", extra={"job_id": job_id, "parent_id": self.slot.parent_id})

    def stop(self) -> None:
        """Cancel future ticks. Safe to call repeatedly or after a self-stop."""
        self._generation += 1
        task, self._task = self._task, None
        if self._job_id is not None:
            logger.info("enrichment.poll.stopped", extra={"job_id": self._job_id, "parent_id": self.slot.parent_id})
        self._job_id = None
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()

    async def poll_once(self) -> Optional[EnrichmentJob]:
        """Run a single tick for the current job outside the schedule."""
        if self._job_id is None:
            return None
        return await self._tick(self._generation, self._job_id)

    async def _run(self, generation: int, job_id: str) -> None:
        while generation == self._generation:
            try:
                await self._tick(generation, job_id)
            except Exception:
                logger.exception("enrichment.poll.tick_error", extra={"job_id": job_id})
            if generation != self._generation:
                break
            await asyncio.sleep(self.interval_seconds)

    async def _tick(self, generation: int, job_id: str) -> Optional[EnrichmentJob]:
        try:
            payload = await self.client.job_status(job_id)
        except ApiError as exc:
            error = PollTransportError(exc.message)
            logger.info("enrichment.poll.skipped", extra={"job_id": job_id, "error": error.message})
            await invoke_callback(self.on_error, error)
            return None

        if generation != self._generation or not self.slot.holds(job_id):
            logger.debug("enrichment.poll.stale_result", extra={"job_id": job_id})
            return None

        job = self.slot.put(self.slot.job.merge_status(payload))
        logger.debug(
            "enrichment.poll.merged",
            extra={"job_id": job_id, "status": job.status.value, "processed": job.counters.processed},
        )
        try:
            await invoke_callback(self._on_update, job)
        except Exception:
            logger.exception("enrichment.poll.update_callback_error", extra={"job_id": job_id})

        if job.status.is_terminal and generation == self._generation:
            await self._finish(job)
        return job

    async def _finish(self, job: EnrichmentJob) -> None:
        on_terminal = self._on_terminal
        self.stop()
        self.slot.release()
        logger.info(
            "enrichment.job.finished",
            extra={
                "job_id": job.job_id,
                "parent_id": job.parent_id,
                "status": job.status.value,
                "processed": job.counters.processed,
                "enriched": job.counters.enriched,
                "cached": job.counters.cached,
                "failed": job.counters.failed,
            },
        )
        try:
            await invoke_callback(on_terminal, job)
        except Exception:
            logger.exception("enrichment.job.terminal_callback_error", extra={"job_id": job.job_id})

        if self.quota_guard is not None:
            await self.quota_guard.refresh_quota()
        if self.refresh_records is not None:
            try:
                await self.refresh_records(job.parent_id)
            except Exception:
                logger.exception("enrichment.records_refresh_failed", extra={"parent_id": job.parent_id})
