"""Tests for the persisted job store and its key/value backends."""

import json

import pytest
from sqlalchemy import create_engine

from conftest import make_job
from leadpilot.enrich.errors import StoreError
from leadpilot.enrich.models import JobStatus
from leadpilot.enrich.state import JobSlot
from leadpilot.enrich.store import InMemoryKeyValueStore, JobStore, SqlKeyValueStore


class BrokenKeyValueStore:
    def get(self, key):
        raise StoreError("disk gone")

    def set(self, key, value):
        raise StoreError("disk gone")

    def delete(self, key):
        raise StoreError("disk gone")


@pytest.fixture
def sql_kv():
    return SqlKeyValueStore(create_engine("sqlite://"))


# ---------------------------------------------------------------------------
# JobStore
# ---------------------------------------------------------------------------

def test_key_is_derived_from_parent_id(job_store, kv):
    job_store.save("pipe-7", make_job(parent_id="pipe-7"))
    assert list(kv.data) == ["enrichment_job_pipe-7"]


def test_save_then_load_round_trip(job_store):
    job = make_job(status=JobStatus.paused, processed=12, enriched=10, cached=1, failed=1)
    job_store.save("pipe-1", job)
    assert job_store.load("pipe-1") == job


def test_load_missing_returns_none(job_store):
    assert job_store.load("nobody") is None


@pytest.mark.parametrize(
    "raw",
    [
        "{not json",
        "",
        "null",
        "[1, 2, 3]",
        json.dumps({"job_id": "job-1"}),
        json.dumps({"job_id": "job-1", "total_leads": 5, "status": "bogus"}),
        '{"job_id": "j", "pipeline_id": "pipe-1", "total_leads": Infinity, "status": "processing"}',
        '{"job_id": "j", "pipeline_id": "pipe-1", "total_leads": 1e400, "status": "processing"}',
    ],
)
def test_load_corrupted_entry_returns_none(job_store, kv, raw):
    kv.set("enrichment_job_pipe-1", raw)
    assert job_store.load("pipe-1") is None


def test_clear_removes_entry(job_store):
    job_store.save("pipe-1", make_job())
    job_store.clear("pipe-1")
    assert job_store.load("pipe-1") is None
    job_store.clear("pipe-1")


def test_parents_are_isolated(job_store):
    job_store.save("pipe-1", make_job(job_id="a", parent_id="pipe-1"))
    job_store.save("pipe-2", make_job(job_id="b", parent_id="pipe-2"))
    job_store.clear("pipe-1")

    assert job_store.load("pipe-1") is None
    assert job_store.load("pipe-2").job_id == "b"


def test_backend_failures_are_not_fatal():
    store = JobStore(BrokenKeyValueStore())
    store.save("pipe-1", make_job())
    store.clear("pipe-1")
    assert store.load("pipe-1") is None


# ---------------------------------------------------------------------------
# SqlKeyValueStore
# ---------------------------------------------------------------------------

def test_sql_store_set_get_delete(sql_kv):
    assert sql_kv.get("k") is None
    sql_kv.set("k", "v1")
    sql_kv.set("k", "v2")
    assert sql_kv.get("k") == "v2"
    sql_kv.delete("k")
    assert sql_kv.get("k") is None


def test_job_store_over_sql_round_trip(sql_kv):
    store = JobStore(sql_kv)
    job = make_job(processed=3)
    store.save("pipe-1", job)

    assert JobStore(sql_kv).load("pipe-1") == job


def test_in_memory_store_delete_missing_key():
    kv = InMemoryKeyValueStore()
    kv.delete("absent")
    assert kv.get("absent") is None


# ---------------------------------------------------------------------------
# JobSlot
# ---------------------------------------------------------------------------

def test_slot_put_persists_and_release_clears(job_store):
    slot = JobSlot("pipe-1", job_store)
    job = make_job()
    slot.put(job)

    assert slot.holds("job-1")
    assert job_store.load("pipe-1") == job

    assert slot.release() == job
    assert slot.job is None
    assert job_store.load("pipe-1") is None
