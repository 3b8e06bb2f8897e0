"""Tests for structured logging."""

import io
import json
import logging

import pytest

from llm_switchboard.errors import ConfigurationError
from llm_switchboard.observability.logging import (
    JSONFormatter,
    KeyValueFormatter,
    setup_logging,
)


def _record(msg="hello", **extra):
    record = logging.LogRecord("llm_switchboard.engine", logging.INFO, __file__, 1,
                               msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture
def restore_root():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    yield root
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)


class TestJSONFormatter:
    def test_basic_fields(self):
        entry = json.loads(JSONFormatter().format(_record()))
        assert entry["level"] == "INFO"
        assert entry["logger"] == "llm_switchboard.engine"
        assert entry["message"] == "hello"
        assert "timestamp" in entry

    def test_dispatch_fields_included(self):
        entry = json.loads(JSONFormatter().format(
            _record(backend="groq", model="mixtral-8x7b-32768", latency_ms=120.5, cost=0.002)
        ))
        assert entry["backend"] == "groq"
        assert entry["model"] == "mixtral-8x7b-32768"
        assert entry["latency_ms"] == 120.5
        assert entry["cost"] == 0.002

    def test_empty_and_unknown_extras_dropped(self):
        entry = json.loads(JSONFormatter().format(
            _record(user_id="", status_code=None, password="hunter2")
        ))
        assert "user_id" not in entry
        assert "status_code" not in entry
        assert "password" not in entry


class TestKeyValueFormatter:
    def test_appends_dispatch_fields(self):
        line = KeyValueFormatter().format(_record(backend="ollama", model="llama2"))
        assert line.endswith("llm_switchboard.engine: hello backend=ollama model=llama2")

    def test_plain_message(self):
        line = KeyValueFormatter().format(_record())
        assert line.endswith("[INFO] llm_switchboard.engine: hello")


class TestSetupLogging:
    def test_replaces_root_handlers(self, restore_root):
        setup_logging(level="debug", fmt="text")
        assert restore_root.level == logging.DEBUG
        assert len(restore_root.handlers) == 1
        assert isinstance(restore_root.handlers[0].formatter, KeyValueFormatter)

        setup_logging(level="warning", fmt="json")
        assert restore_root.level == logging.WARNING
        assert isinstance(restore_root.handlers[0].formatter, JSONFormatter)

    def test_writes_to_stream(self, restore_root):
        stream = io.StringIO()
        setup_logging(level="INFO", fmt="json", stream=stream)
        logging.getLogger("llm_switchboard.test").info(
            "dispatched", extra={"backend": "openai"}
        )
        entry = json.loads(stream.getvalue().strip().splitlines()[-1])
        assert entry["message"] == "dispatched"
        assert entry["backend"] == "openai"

    def test_unknown_level(self, restore_root):
        with pytest.raises(ConfigurationError):
            setup_logging(level="chatty")
