"""Tests for structured logging configuration."""

import json
import logging
import sys

import pytest

from bulkupload.logging_config import JSONFormatter, configure_logging


def _record(msg="hello %s", args=("world",), **extra):
    record = logging.LogRecord("bulkupload.test", logging.INFO, __file__, 1, msg, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture
def restore_root():
    root = logging.getLogger()
    before = root.handlers[:]
    level = root.level
    yield root
    for handler in root.handlers[:]:
        if handler not in before:
            root.removeHandler(handler)
    root.setLevel(level)


class TestJSONFormatter:
    """Tests for JSONFormatter."""

    def test_base_fields(self):
        entry = json.loads(JSONFormatter().format(_record()))
        assert entry["level"] == "INFO"
        assert entry["logger"] == "bulkupload.test"
        assert entry["message"] == "hello world"
        assert entry["timestamp"].endswith("+00:00")

    def test_known_extras_included(self):
        record = _record(count=7, destination="gs://b/k", duration_ms=1.5)
        entry = json.loads(JSONFormatter().format(record))
        assert entry["count"] == 7
        assert entry["destination"] == "gs://b/k"
        assert entry["duration_ms"] == 1.5

    def test_unknown_extras_ignored(self):
        entry = json.loads(JSONFormatter().format(_record(secret="x")))
        assert "secret" not in entry

    def test_exception_included(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = logging.LogRecord(
                "bulkupload.test", logging.ERROR, __file__, 1, "failed", (), sys.exc_info()
            )
        entry = json.loads(JSONFormatter().format(record))
        assert "ValueError: boom" in entry["exception"]


class TestConfigureLogging:
    """Tests for configure_logging()."""

    def test_replaces_root_handlers(self, restore_root):
        configure_logging("DEBUG", "text")
        assert restore_root.level == logging.DEBUG
        assert len(restore_root.handlers) == 1
        assert not isinstance(restore_root.handlers[0].formatter, JSONFormatter)

    def test_json_format(self, restore_root):
        configure_logging("warning", "json")
        assert restore_root.level == logging.WARNING
        assert isinstance(restore_root.handlers[0].formatter, JSONFormatter)

    def test_unknown_level_falls_back_to_info(self, restore_root):
        configure_logging("chatty", "text")
        assert restore_root.level == logging.INFO
