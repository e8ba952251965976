"""In-memory job of one parent resource, mirrored to the job store."""

from __future__ import annotations

from typing import Optional

from leadpilot.enrich.models import EnrichmentJob
from leadpilot.enrich.store import JobStore


class JobSlot:
    """Single owner of the current job for ``parent_id``.

    The launcher, the poller and the controls all read and write through the
    slot, so every path that ends a job lands in the same empty state.
    """

    def __init__(self, parent_id: str, store: JobStore, job: Optional[EnrichmentJob] = None) -> None:
        self.parent_id = parent_id
        self.store = store
        self.job = job

    def holds(self, job_id: str) -> bool:
        return self.job is not None and self.job.job_id == job_id

    def put(self, job: EnrichmentJob) -> EnrichmentJob:
        self.job = job
        self.store.save(self.parent_id, job)
        return job

    def release(self) -> Optional[EnrichmentJob]:
        job, self.job = self.job, None
        self.store.clear(self.parent_id)
        return job
