import json
import logging
import sys

from leadpilot.logging_utils import JsonLogFormatter


def _record(msg, exc_info=None, **extra):
    record = logging.makeLogRecord({"name": "leadpilot.enrich.poller", "levelno": logging.INFO,
                                    "levelname": "INFO", "msg": msg, "exc_info": exc_info})
    record.__dict__.update(extra)
    return record


def test_json_formatter_carries_event_and_extra():
    line = JsonLogFormatter().format(_record("enrichment.poll.merged", job_id="job-1", processed=40))
    payload = json.loads(line)

    assert payload["event"] == "enrichment.poll.merged"
    assert payload["level"] == "info"
    assert payload["module"] == "leadpilot.enrich.poller"
    assert payload["data"] == {"job_id": "job-1", "processed": 40}
    assert payload["timestamp"].endswith("+00:00")


def test_json_formatter_includes_exception():
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        line = JsonLogFormatter().format(_record("enrichment.poll.tick_error", exc_info=sys.exc_info()))

    assert "RuntimeError: boom" in json.loads(line)["data"]["exception"]
