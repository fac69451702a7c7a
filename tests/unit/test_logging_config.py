"""Unit tests for log record redaction and JSON rendering."""

import json
import logging

from src.logging_config import ContextFilter, JsonFormatter, request_id_var


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("auth", logging.INFO, __file__, 1, "Login succeeded", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestContextFilter:
    def test_masks_credentials_passed_as_extra(self):
        record = _record(password="hunter2", refresh_token="abc", user_id="u-1")

        ContextFilter().filter(record)

        assert record.password == "***"
        assert record.refresh_token == "***"
        assert record.user_id == "u-1"

    def test_masks_nested_credentials(self):
        record = _record(body={"email": "a@x.com", "new_password": "secret"})

        ContextFilter().filter(record)

        assert record.body == {"email": "a@x.com", "new_password": "***"}

    def test_stamps_request_id(self):
        token = request_id_var.set("req-42")
        try:
            record = _record()
            ContextFilter().filter(record)
        finally:
            request_id_var.reset(token)

        assert record.request_id == "req-42"


class TestJsonFormatter:
    def test_extras_are_top_level_fields(self):
        record = _record(user_id="u-1", duration_ms=3.5)
        ContextFilter().filter(record)

        entry = json.loads(JsonFormatter().format(record))

        assert entry["message"] == "Login succeeded"
        assert entry["user_id"] == "u-1"
        assert entry["duration_ms"] == 3.5
        assert "request_id" not in entry
