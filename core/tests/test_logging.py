"""Tests for structured log formatting and trace context."""

import json
import logging

import pytest

from flowengine.observability import clear_trace_context, get_trace_context, set_trace_context
from flowengine.observability.logging import (
    HumanReadableFormatter,
    StructuredFormatter,
    strip_ansi_codes,
)


@pytest.fixture(autouse=True)
def clean_trace():
    clear_trace_context()
    yield
    clear_trace_context()


def make_record(message: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="flowengine.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestTraceContext:
    def test_set_merges(self):
        set_trace_context(flow_id="f1", execution_id="e1")
        set_trace_context(node_id="n1")
        assert get_trace_context() == {"flow_id": "f1", "execution_id": "e1", "node_id": "n1"}

    def test_get_returns_copy(self):
        set_trace_context(flow_id="f1")
        get_trace_context()["flow_id"] = "changed"
        assert get_trace_context()["flow_id"] == "f1"

    def test_clear(self):
        set_trace_context(flow_id="f1")
        clear_trace_context()
        assert get_trace_context() == {}


class TestStructuredFormatter:
    def test_includes_trace_and_extra_fields(self):
        set_trace_context(flow_id="f1", execution_id="e1", node_id="n1")
        line = StructuredFormatter().format(
            make_record("\033[32mdone\033[0m", event="node_completed", node_type="math")
        )
        payload = json.loads(line)

        assert payload["message"] == "done"
        assert payload["level"] == "info"
        assert payload["logger"] == "flowengine.test"
        assert payload["flow_id"] == "f1"
        assert payload["node_id"] == "n1"
        assert payload["event"] == "node_completed"
        assert payload["node_type"] == "math"

    def test_without_context(self):
        payload = json.loads(StructuredFormatter().format(make_record("hello")))
        assert "flow_id" not in payload


class TestHumanReadableFormatter:
    def test_prefix_uses_short_ids(self):
        set_trace_context(flow_id="flow-0123456789", node_id="fetch")
        line = strip_ansi_codes(HumanReadableFormatter().format(make_record("working")))
        assert "[flow:23456789 | node:fetch] working" in line

    def test_event_suffix(self):
        line = strip_ansi_codes(
            HumanReadableFormatter().format(make_record("ok", event="flow_started"))
        )
        assert line.endswith("ok [flow_started]")
