"""Data model for bulk enrichment jobs and daily quota."""

from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Optional


class JobStatus(enum.Enum):
    processing = "processing"
    paused = "paused"
    completed = "completed"
    failed = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @classmethod
    def parse(cls, value: Any, default: "JobStatus | None" = None) -> "JobStatus":
        """Map a server status string; unknown values fall back to ``default``."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            if default is None:
                raise
            return default


TERMINAL_STATUSES = frozenset({JobStatus.completed, JobStatus.failed})
ACTIVE_STATUSES = frozenset({JobStatus.processing, JobStatus.paused})


def _as_count(value: Any) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 timestamp (``Z`` suffix allowed) into an aware datetime."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    else:
        raise ValueError(f"invalid timestamp: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class JobCounters:
    processed: int = 0
    enriched: int = 0
    cached: int = 0
    failed: int = 0

    def merged(self, other: "JobCounters") -> "JobCounters":
        """Per-field max, so interleaved or stale responses never move counters back."""
        return JobCounters(
            processed=max(self.processed, other.processed),
            enriched=max(self.enriched, other.enriched),
            cached=max(self.cached, other.cached),
            failed=max(self.failed, other.failed),
        )


@dataclass(frozen=True)
class EnrichmentJob:
    job_id: str
    parent_id: str
    total_targets: int
    status: JobStatus = JobStatus.processing
    started_at: datetime = field(default_factory=utcnow)
    counters: JobCounters = field(default_factory=JobCounters)
    is_paused: bool = False
    workflow_status: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def progress_pct(self) -> int:
        if self.total_targets <= 0:
            return 0
        return min(100, round(self.counters.processed / self.total_targets * 100))

    def merge_status(self, payload: dict[str, Any]) -> "EnrichmentJob":
        """Fold a status response into this job.

        Server status, pause flag and workflow detail always win; counters only
        move forward and ``processed`` never exceeds the known total.
        """
        progress = payload.get("progress") if isinstance(payload.get("progress"), dict) else {}

        def reported(key: str) -> int:
            return _as_count(progress.get(key) or payload.get(key))

        total = _as_count(progress.get("total") or payload.get("total_urns")) or self.total_targets
        counters = self.counters.merged(
            JobCounters(
                processed=reported("processed"),
                enriched=reported("enriched"),
                cached=reported("cached"),
                failed=reported("failed"),
            )
        )
        if total:
            counters = replace(counters, processed=min(counters.processed, total))

        return replace(
            self,
            total_targets=total,
            status=JobStatus.parse(payload.get("status"), default=JobStatus.processing),
            counters=counters,
            is_paused=bool(payload.get("is_paused")),
            workflow_status=payload.get("workflow_status"),
        )

    def with_status(self, status: JobStatus) -> "EnrichmentJob":
        return replace(self, status=status, is_paused=status is JobStatus.paused)

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "pipeline_id": self.parent_id,
            "total_leads": self.total_targets,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "processed": self.counters.processed,
            "enriched": self.counters.enriched,
            "cached": self.counters.cached,
            "failed": self.counters.failed,
            "is_paused": self.is_paused,
            "workflow_status": self.workflow_status,
        }

    @classmethod
    def from_dict(cls, data: Any, parent_id: str | None = None) -> "EnrichmentJob":
        """Rebuild a persisted job; raises on anything malformed or partial."""
        if not isinstance(data, dict):
            raise TypeError(f"expected a JSON object, got {type(data).__name__}")
        job_id = data["job_id"]
        if job_id in (None, ""):
            raise ValueError("job_id is empty")
        parent = data.get("pipeline_id") or parent_id
        if not parent:
            raise ValueError("pipeline_id is missing")
        started_at = data.get("started_at")
        return cls(
            job_id=str(job_id),
            parent_id=str(parent),
            total_targets=int(data["total_leads"]),
            status=JobStatus.parse(data["status"]),
            started_at=parse_timestamp(started_at) if started_at is not None else utcnow(),
            counters=JobCounters(
                processed=int(data.get("processed") or 0),
                enriched=int(data.get("enriched") or 0),
                cached=int(data.get("cached") or 0),
                failed=int(data.get("failed") or 0),
            ),
            is_paused=bool(data.get("is_paused", False)),
            workflow_status=data.get("workflow_status"),
        )


@dataclass(frozen=True)
class QuotaSnapshot:
    remaining: Optional[int] = None
    today_usage_count: Optional[int] = None
    today_allocated_quota: Optional[int] = None
    resets_at: Optional[str] = None
    is_premium: Optional[bool] = None
    plan: Optional[str] = None
    daily_limit: Optional[int] = None
    date: Optional[str] = None
    user_id: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "QuotaSnapshot":
        """Accept quota fields either top-level or nested under ``data``."""
        nested = payload.get("data") if isinstance(payload.get("data"), dict) else {}

        def pick(key: str) -> Any:
            value = payload.get(key)
            return nested.get(key) if value is None else value

        def optional_int(key: str) -> Optional[int]:
            value = pick(key)
            if value is None or isinstance(value, bool):
                return None
            try:
                return int(value)
            except (TypeError, ValueError):
                return None

        is_premium = pick("isPremium")
        return cls(
            remaining=optional_int("remaining"),
            today_usage_count=optional_int("today_usage_count"),
            today_allocated_quota=optional_int("today_allocated_quota"),
            resets_at=pick("resets_at"),
            is_premium=None if is_premium is None else bool(is_premium),
            plan=pick("plan"),
            daily_limit=optional_int("dailyLimit"),
            date=pick("date"),
            user_id=pick("userId"),
        )


@dataclass(frozen=True)
class AdmissionDecision:
    admitted: bool
    reason: Optional[str] = None
    snapshot: Optional[QuotaSnapshot] = None


@dataclass(frozen=True)
class AppendReport:
    submitted: int = 0
    dropped: int = 0
    failed_batches: int = 0


@dataclass
class LaunchResult:
    job: EnrichmentJob
    batch_count: int
    unresolved_targets: int = 0
    append_task: Optional["asyncio.Task[AppendReport]"] = None

    @property
    def job_id(self) -> str:
        return self.job.job_id

    @property
    def total_targets(self) -> int:
        return self.job.total_targets


@dataclass(frozen=True)
class Notice:
    kind: str
    message: str
