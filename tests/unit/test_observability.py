"""Tests for the callout attempt log: truncation and failure isolation."""

import logging

import pytest

from callouts.lib.logging import DIAGNOSTICS_LOGGER_NAME
from callouts.lib.mock_transport import MockTransport
from callouts.lib.models import CalloutRequest, ErrorClass
from callouts.lib.observability import (
    MAX_BODY_LENGTH,
    TRUNCATION_MARKER,
    CalloutRecorder,
    truncate_body,
)
from callouts.lib.resilience import ResilienceWrapper, RetryPolicy
from callouts.lib.store import DmlFailure, InMemoryRecordStore

BASE = "https://mock.example.com"


class TestTruncateBody:
    """Tests for truncate_body()."""

    def test_none_passes_through(self):
        assert truncate_body(None) is None

    def test_short_value_unchanged(self):
        assert truncate_body("abc") == "abc"

    def test_exact_limit_unchanged(self):
        value = "x" * MAX_BODY_LENGTH
        assert truncate_body(value) == value

    def test_long_value_truncated_with_marker(self):
        value = "x" * 50000
        truncated = truncate_body(value)
        assert len(truncated) == 32003
        assert truncated.endswith(TRUNCATION_MARKER)
        assert truncated[:MAX_BODY_LENGTH] == value[:MAX_BODY_LENGTH]

    def test_custom_limit(self):
        assert truncate_body("abcdef", 3) == "abc..."


class TestCalloutRecorder:
    """Tests for CalloutRecorder.record()."""

    def test_records_entry(self, memory_store):
        recorder = CalloutRecorder(memory_store)
        request = CalloutRequest(BASE + "/orders", method="POST", body='{"id": 1}')

        recorder.record(request, MockTransport.status(201, "created"), 0.2, correlation_id="rec-1")

        [entry] = memory_store.all("callout_log")
        assert entry["endpoint"] == BASE + "/orders"
        assert entry["method"] == "POST"
        assert entry["request_body"] == '{"id": 1}'
        assert entry["status_code"] == 201
        assert entry["response_body"] == "created"
        assert entry["success"] is True
        assert entry["error"] == ErrorClass.NONE.value
        assert entry["duration"] == 0.2
        assert entry["correlation_id"] == "rec-1"

    def test_large_bodies_truncated(self, memory_store):
        recorder = CalloutRecorder(memory_store)
        request = CalloutRequest(BASE + "/bulk", method="POST", body="r" * 40000)

        recorder.record(request, MockTransport.status(200, "s" * 50000), 0.1)

        [entry] = memory_store.all("callout_log")
        assert len(entry["request_body"]) == 32003
        assert len(entry["response_body"]) == 32003
        assert entry["response_body"].endswith("...")

    def test_failed_insert_reported_not_raised(self, caplog):
        class RejectingStore(InMemoryRecordStore):
            def insert(self, entity, record):
                return DmlFailure(error="field too long")

        recorder = CalloutRecorder(RejectingStore())
        with caplog.at_level(logging.ERROR, logger=DIAGNOSTICS_LOGGER_NAME):
            recorder.record(CalloutRequest(BASE + "/x"), MockTransport.status(200), 0.1)

        assert recorder.failures == 1
        assert any("field too long" in r.getMessage() for r in caplog.records)

    def test_raising_store_reported_not_raised(self, caplog):
        class BrokenStore(InMemoryRecordStore):
            def insert(self, entity, record):
                raise RuntimeError("database unavailable")

        recorder = CalloutRecorder(BrokenStore())
        with caplog.at_level(logging.ERROR, logger=DIAGNOSTICS_LOGGER_NAME):
            recorder.record(CalloutRequest(BASE + "/x"), MockTransport.status(500), 0.1)

        assert recorder.failures == 1
        assert any("database unavailable" in r.getMessage() for r in caplog.records)

    def test_store_failure_does_not_change_callout_result(self, mock_transport, sleeps):
        class BrokenStore(InMemoryRecordStore):
            def insert(self, entity, record):
                raise RuntimeError("database unavailable")

        recorder = CalloutRecorder(BrokenStore())
        wrapper = ResilienceWrapper(mock_transport, recorder=recorder, sleep=sleeps.append)

        outcome = wrapper.execute(CalloutRequest(BASE + "/success"), RetryPolicy())

        assert outcome.success
        assert recorder.failures == 1

    @pytest.mark.parametrize("entity", ["callout_log", "integration_log"])
    def test_custom_entity(self, memory_store, entity):
        recorder = CalloutRecorder(memory_store, entity=entity)
        recorder.record(CalloutRequest(BASE + "/x"), MockTransport.status(200), 0.0)
        assert len(memory_store.all(entity)) == 1
