"""Bulk lead enrichment job orchestration."""

from .api_client import EnrichmentApiClient
from .batching import BATCH_SIZE, plan_batches
from .controls import ControlSurface
from .launcher import JobLauncher, resolve_targets
from .models import EnrichmentJob, JobCounters, JobStatus, LaunchResult, Notice, QuotaSnapshot
from .poller import StatusPoller
from .quota import QuotaGuard
from .session import OrchestratorSession, SessionRegistry
from .store import InMemoryKeyValueStore, JobStore, SqlKeyValueStore

__all__ = [
    "BATCH_SIZE",
    "ControlSurface",
    "EnrichmentApiClient",
    "EnrichmentJob",
    "InMemoryKeyValueStore",
    "JobCounters",
    "JobLauncher",
    "JobStatus",
    "JobStore",
    "LaunchResult",
    "Notice",
    "OrchestratorSession",
    "QuotaGuard",
    "QuotaSnapshot",
    "SessionRegistry",
    "SqlKeyValueStore",
    "StatusPoller",
    "plan_batches",
    "resolve_targets",
]
