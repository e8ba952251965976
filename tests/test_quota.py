"""Tests for quota refresh and launch admission."""

import asyncio

import httpx

from conftest import RESETS_AT
from leadpilot.enrich.api_client import QUOTA_PATH
from leadpilot.enrich.models import QuotaSnapshot
from leadpilot.enrich.quota import QuotaGuard


def test_refresh_returns_snapshot_and_caches_it(backend, client):
    guard = QuotaGuard(client)
    snap = asyncio.run(guard.refresh_quota())

    assert snap.remaining == 1000
    assert snap.resets_at == RESETS_AT
    assert guard.snapshot == snap
    assert backend.count(QUOTA_PATH) == 1


def test_refresh_transport_failure_means_unknown_not_zero(backend, client):
    backend.on(QUOTA_PATH, httpx.ConnectError("down"))
    assert asyncio.run(QuotaGuard(client).refresh_quota()) is None


def test_refresh_http_error_means_unknown(backend, client):
    backend.on(QUOTA_PATH, 500)
    assert asyncio.run(QuotaGuard(client).refresh_quota()) is None


def test_unknown_quota_admits():
    assert QuotaGuard.check_admission(10_000, None).admitted
    assert QuotaGuard.check_admission(10_000, QuotaSnapshot(remaining=None)).admitted


def test_admission_refused_only_above_remaining():
    snap = QuotaSnapshot(remaining=5, resets_at=RESETS_AT)
    assert QuotaGuard.check_admission(5, snap).admitted
    decision = QuotaGuard.check_admission(6, snap)
    assert not decision.admitted
    assert "You need 6 leads but only have 5 remaining" in decision.reason
    assert RESETS_AT in decision.reason


def test_admission_is_monotonic():
    snap = QuotaSnapshot(remaining=37)
    refused_from = None
    for n in range(0, 100):
        admitted = QuotaGuard.check_admission(n, snap).admitted
        if refused_from is not None:
            assert not admitted, f"{n} admitted after {refused_from} was refused"
        elif not admitted:
            refused_from = n
    assert refused_from == 38


def test_admit_refreshes_before_checking(backend, client):
    backend.on(QUOTA_PATH, {"remaining": 3, "resets_at": RESETS_AT})
    decision = asyncio.run(QuotaGuard(client).admit(4))

    assert not decision.admitted
    assert decision.snapshot.remaining == 3
    assert backend.count(QUOTA_PATH) == 1
