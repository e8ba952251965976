"""Test configuration: a scripted enrichment backend behind httpx.MockTransport."""

import json
from collections import defaultdict
from datetime import datetime, timezone

import httpx
import pytest

from leadpilot.enrich.api_client import EnrichmentApiClient, QUOTA_PATH
from leadpilot.enrich.models import EnrichmentJob, JobCounters, JobStatus
from leadpilot.enrich.store import InMemoryKeyValueStore, JobStore

BASE_URL = "https://crm.test/api/tools"
BASE_PATH = "/api/tools"
RESETS_AT = "2026-10-19T00:00:00Z"


class FakeBackend:
    """Records every call and answers from per-path queues.

    A scripted response may be a dict (200 JSON), an int (that HTTP status),
    an exception instance (raised as a transport failure) or a callable that
    receives the request payload and returns one of those.
    """

    def __init__(self):
        self.calls = []
        self.queues = defaultdict(list)
        self.defaults = {QUOTA_PATH: {"remaining": 1000, "resets_at": RESETS_AT, "plan": "pro"}}

    def on(self, path, *responses):
        self.queues[path].extend(responses)

    def default(self, path, response):
        self.defaults[path] = response

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path[len(BASE_PATH):]
        payload = json.loads(request.content) if request.content else {}
        self.calls.append((path, payload))

        queue = self.queues[path]
        response = queue.pop(0) if queue else self.defaults.get(path, {})
        if callable(response):
            response = response(payload)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, int):
            return httpx.Response(response, json={"error": f"status {response}"})
        return httpx.Response(200, json=response)

    def payloads(self, path):
        return [payload for called, payload in self.calls if called == path]

    def count(self, path):
        return len(self.payloads(path))

    def paths(self):
        return [called for called, _ in self.calls]


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def client(backend):
    return EnrichmentApiClient(base_url=BASE_URL, token="", transport=httpx.MockTransport(backend.handler))


@pytest.fixture
def kv():
    return InMemoryKeyValueStore()


@pytest.fixture
def job_store(kv):
    return JobStore(kv, key_prefix="enrichment_job_")


def make_job(job_id="job-1", parent_id="pipe-1", total=250, status=JobStatus.processing, **counters):
    return EnrichmentJob(
        job_id=job_id,
        parent_id=parent_id,
        total_targets=total,
        status=status,
        started_at=datetime(2026, 10, 18, 9, 30, tzinfo=timezone.utc),
        counters=JobCounters(**counters),
    )


def status_payload(status="processing", total=250, processed=0, enriched=0, cached=0, failed=0, **extra):
    payload = {
        "status": status,
        "progress": {
            "total": total,
            "processed": processed,
            "enriched": enriched,
            "cached": cached,
            "failed": failed,
        },
        "is_paused": status == "paused",
        "workflow_status": "running",
    }
    payload.update(extra)
    return payload


def leads_lookup(count, prefix="lead"):
    return {f"{prefix}-{i}": f"urn:li:member:{i}" for i in range(count)}
