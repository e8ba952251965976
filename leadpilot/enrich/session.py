"""Caller-owned orchestration session for one parent resource."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from functools import partial
from typing import Any, Callable, Iterable, Mapping, Optional

from leadpilot.enrich.api_client import EnrichmentApiClient
from leadpilot.enrich.batching import BATCH_SIZE
from leadpilot.enrich.controls import ControlSurface
from leadpilot.enrich.errors import (
    ApiError,
    ControlTransportError,
    EnrichmentError,
    JobAlreadyActiveError,
    LaunchTransportError,
    PollTransportError,
)
from leadpilot.enrich.launcher import JobLauncher
from leadpilot.enrich.models import AppendReport, EnrichmentJob, JobStatus, LaunchResult, Notice
from leadpilot.enrich.poller import RefreshRecords, StatusPoller, invoke_callback
from leadpilot.enrich.quota import QuotaGuard
from leadpilot.enrich.state import JobSlot
from leadpilot.enrich.store import JobStore, SqlKeyValueStore

logger = logging.getLogger(__name__)


def urn_lookup_from_leads(leads: Iterable[Mapping[str, Any]]) -> dict[str, Optional[str]]:
    """Build the lead id -> ``urn_id`` mapping the launcher resolves against."""
    return {str(lead["id"]): lead.get("urn_id") for lead in leads if lead.get("id") is not None}


class OrchestratorSession:
    """Launch, watch and control the enrichment job of one parent resource.

    The session owns its poller and pending append task; ``dispose()`` ends
    both but keeps the persisted job so a later ``restore()`` picks it up.
    """

    def __init__(
        self,
        parent_id: str,
        client: Optional[EnrichmentApiClient] = None,
        store: Optional[JobStore] = None,
        on_notice: Optional[Callable[[Notice], Any]] = None,
        on_update: Optional[Callable[[EnrichmentJob], Any]] = None,
        on_records: Optional[Callable[[list[dict]], Any]] = None,
        refresh_records: Optional[RefreshRecords] = None,
        batch_size: int = BATCH_SIZE,
        batch_delay_seconds: float | None = None,
        poll_interval_seconds: float | None = None,
    ) -> None:
        self.parent_id = parent_id
        self.client = client or EnrichmentApiClient()
        self.store = store or JobStore(SqlKeyValueStore())
        self.on_notice = on_notice
        self.on_update = on_update
        self.on_records = on_records

        self.slot = JobSlot(parent_id, self.store)
        self.quota = QuotaGuard(self.client)
        self.poller = StatusPoller(
            self.client,
            self.slot,
            quota_guard=self.quota,
            refresh_records=refresh_records or self._refresh_records,
            interval_seconds=poll_interval_seconds,
            on_error=self._handle_poll_error,
        )
        self.controls = ControlSurface(self.client, self.slot, self.poller, self.quota)
        self.launcher = JobLauncher(
            self.client,
            self.store,
            self.quota,
            batch_size=batch_size,
            batch_delay_seconds=batch_delay_seconds,
        )

        self.last_notice: Optional[Notice] = None
        self.last_append_report: Optional[AppendReport] = None
        self.poll_failures = 0
        self._append_task: Optional[asyncio.Task] = None

    async def __aenter__(self) -> "OrchestratorSession":
        await self.restore()
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.dispose()

    @property
    def job(self) -> Optional[EnrichmentJob]:
        return self.slot.job

    @property
    def is_active(self) -> bool:
        return self.slot.job is not None and self.slot.job.is_active

    async def restore(self, watch: bool = True) -> Optional[EnrichmentJob]:
        """Adopt a persisted job and, with ``watch``, resume polling it without relaunching."""
        if self.slot.job is not None:
            return self.slot.job
        job = self.store.load(self.parent_id)
        if job is None:
            return None
        if not job.is_active:
            self.store.clear(self.parent_id)
            return None

        self.slot.job = job
        if watch:
            self._watch(job)
        logger.info(
            "enrichment.session.restored",
            extra={"parent_id": self.parent_id, "job_id": job.job_id, "status": job.status.value},
        )
        return job

    async def launch(
        self,
        target_ids: Optional[Iterable[str]] = None,
        urn_lookup: Optional[Mapping[str, Optional[str]]] = None,
        label: str | None = None,
    ) -> LaunchResult:
        """Start enriching ``target_ids`` (every known lead when ``None``)."""
        try:
            if self.is_active:
                raise JobAlreadyActiveError()
            if self.slot.job is None:
                # A persisted active job blocks a launch even before restore().
                stored = self.store.load(self.parent_id)
                if stored is not None and stored.is_active:
                    raise JobAlreadyActiveError()
            if urn_lookup is None:
                urn_lookup = await self._load_urn_lookup()
            result = await self.launcher.launch(self.parent_id, target_ids, urn_lookup, label=label)
        except EnrichmentError as exc:
            self._notify("error", exc.message)
            raise

        self.slot.job = result.job
        self._watch(result.job)
        if result.append_task is not None:
            self._append_task = result.append_task
            result.append_task.add_done_callback(partial(self._appends_finished, result.job_id))

        message = f"Enrichment started for {result.total_targets} leads"
        if result.batch_count > 1:
            message += f" ({result.batch_count} batches)"
        if result.unresolved_targets:
            message += f"; {result.unresolved_targets} leads skipped without an identifier"
        self._notify("success", message)
        return result

    async def pause(self) -> Optional[EnrichmentJob]:
        job = self.slot.job
        if job is None:
            return None
        try:
            updated = await self.controls.pause(job.job_id)
        except ControlTransportError as exc:
            self._notify("error", exc.message)
            raise
        self._notify("success", "Enrichment paused.")
        if updated is not None:
            await invoke_callback(self.on_update, updated)
        return updated

    async def resume(self) -> Optional[EnrichmentJob]:
        job = self.slot.job
        if job is None:
            return None
        try:
            updated = await self.controls.resume(job.job_id)
        except ControlTransportError as exc:
            self._notify("error", exc.message)
            raise
        self._notify("success", "Enrichment resumed.")
        if updated is not None:
            await invoke_callback(self.on_update, updated)
        return updated

    async def stop(self) -> bool:
        job = self.slot.job
        if job is None:
            return False
        self._cancel_appends()
        try:
            acknowledged = await self.controls.stop(job.job_id)
        except ControlTransportError as exc:
            self._notify("error", exc.message)
            raise
        if acknowledged:
            self._notify("success", "Enrichment stopped.")
        else:
            self._notify("warning", "Enrichment stopped locally; the server did not confirm the stop.")
        return acknowledged

    def dispose(self) -> None:
        self.poller.stop()
        self._cancel_appends()
        logger.debug("enrichment.session.disposed", extra={"parent_id": self.parent_id})

    async def wait(self) -> None:
        """Block until polling ends (terminal state, stop or dispose)."""
        while self.poller.running:
            await asyncio.gather(self.poller.task, return_exceptions=True)

    def _watch(self, job: EnrichmentJob) -> None:
        self.poll_failures = 0
        self.poller.start(job.job_id, on_update=self._handle_update, on_terminal=self._handle_terminal)

    async def _load_urn_lookup(self) -> dict[str, Optional[str]]:
        try:
            leads = await self.client.fetch_leads(self.parent_id)
        except ApiError as exc:
            raise LaunchTransportError("Failed to load leads for enrichment") from exc
        return urn_lookup_from_leads(leads)

    async def _refresh_records(self, parent_id: str) -> None:
        try:
            leads = await self.client.fetch_leads(parent_id)
        except ApiError as exc:
            logger.warning("enrichment.records_refresh_failed", extra={"parent_id": parent_id, "error": exc.message})
            return
        await invoke_callback(self.on_records, leads)

    async def _handle_update(self, job: EnrichmentJob) -> None:
        self.poll_failures = 0
        await invoke_callback(self.on_update, job)

    def _handle_poll_error(self, error: PollTransportError) -> None:
        self.poll_failures += 1

    def _handle_terminal(self, job: EnrichmentJob) -> None:
        self._cancel_appends()
        if job.status is JobStatus.completed:
            c = job.counters
            self._notify(
                "success",
                f"Enrichment completed! Processed: {c.processed}, Enriched: {c.enriched}, "
                f"Cached: {c.cached}, Failed: {c.failed}",
            )
        else:
            self._notify("error", "Enrichment failed. Please try again.")

    def _appends_finished(self, job_id: str, task: asyncio.Task) -> None:
        if self._append_task is task:
            self._append_task = None
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("enrichment.append.crashed", extra={"parent_id": self.parent_id, "error": str(exc)})
            return

        report: AppendReport = task.result()
        self.last_append_report = report
        if not report.dropped:
            return
        if not self.slot.holds(job_id):
            logger.info(
                "enrichment.append.job_gone",
                extra={"parent_id": self.parent_id, "job_id": job_id, "dropped": report.dropped},
            )
            return
        job = self.slot.job
        total = max(job.counters.processed, job.total_targets - report.dropped)
        self.slot.put(replace(job, total_targets=total))
        self._notify("warning", f"{report.dropped} leads could not be queued for enrichment")

    def _cancel_appends(self) -> None:
        task, self._append_task = self._append_task, None
        if task is not None and not task.done():
            task.cancel()

    def _notify(self, kind: str, message: str) -> None:
        notice = Notice(kind=kind, message=message)
        self.last_notice = notice
        logger.info("enrichment.notice", extra={"parent_id": self.parent_id, "kind": kind, "notice": message})
        if self.on_notice is not None:
            self.on_notice(notice)


class SessionRegistry:
    """Hands out exactly one session per parent resource."""

    def __init__(self, client: Optional[EnrichmentApiClient] = None, store: Optional[JobStore] = None, **session_options: Any) -> None:
        self.client = client or EnrichmentApiClient()
        self.store = store or JobStore(SqlKeyValueStore())
        self.session_options = session_options
        self._sessions: dict[str, OrchestratorSession] = {}

    def session(self, parent_id: str) -> OrchestratorSession:
        existing = self._sessions.get(parent_id)
        if existing is None:
            existing = OrchestratorSession(parent_id, self.client, self.store, **self.session_options)
            self._sessions[parent_id] = existing
        return existing

    def dispose(self) -> None:
        for session in self._sessions.values():
            session.dispose()
        self._sessions.clear()
