"""
Tests — log formatting and request-id propagation.
"""

import json
import logging

from flask import g

from app.middleware.logging_config import (
    JSONFormatter,
    ReadableFormatter,
    RequestContextFilter,
)


def _record(msg="Step regenerated", **extra):
    record = logging.LogRecord("app.services.reconciliation", logging.INFO, __file__, 1,
                               msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestRequestContextFilter:

    def test_outside_request(self):
        record = _record()
        assert RequestContextFilter().filter(record) is True
        assert record.request_id == "-"

    def test_inside_request(self, app):
        with app.test_request_context("/api/v1/health"):
            g.request_id = "abc123"
            record = _record()
            RequestContextFilter().filter(record)
        assert record.request_id == "abc123"

    def test_explicit_id_wins(self, app):
        with app.test_request_context("/api/v1/health"):
            g.request_id = "from-g"
            record = _record(request_id="explicit")
            RequestContextFilter().filter(record)
        assert record.request_id == "explicit"


class TestFormatters:

    def test_json_promotes_scheduling_context(self):
        record = _record(routine_id="r-1", step_id="s-1", duration_ms=12, request_id="-")
        payload = json.loads(JSONFormatter().format(record))
        assert payload["routine_id"] == "r-1"
        assert payload["step_id"] == "s-1"
        assert payload["duration_ms"] == 12
        assert payload["request_id"] == "-"
        assert "user_profile_id" not in payload

    def test_readable_includes_scope_and_request(self):
        record = _record(routine_id="r-1", request_id="abc123", duration_ms=7.4)
        line = ReadableFormatter().format(record)
        assert "[abc123]" in line
        assert "(routine_id=r-1)" in line
        assert "[7ms]" in line

    def test_request_header_is_echoed(self, client):
        res = client.get("/api/v1/health/live", headers={"X-Request-ID": "trace-42"})
        assert res.headers["X-Request-ID"] == "trace-42"
