"""Logging setup for the switchboard.

Dispatch code attaches request context through ``extra=`` (backend, model,
request id, latency, cost, ...). Both formatters render those fields: the
JSON formatter as top-level keys, the text formatter as ``key=value`` pairs
after the message.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import IO, Any

from ..errors import ConfigurationError

DISPATCH_FIELDS = (
    "request_id", "backend", "model", "source", "user_id",
    "latency_ms", "cost", "status_code", "score",
)

LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _dispatch_fields(record: logging.LogRecord) -> dict[str, Any]:
    fields = {}
    for key in DISPATCH_FIELDS:
        value = getattr(record, key, None)
        if value is not None and value != "":
            fields[key] = value
    return fields


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(_dispatch_fields(record))
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class KeyValueFormatter(logging.Formatter):
    """Human-readable lines with dispatch context appended as key=value."""

    def __init__(self):
        super().__init__("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = _dispatch_fields(record)
        if not fields:
            return line
        pairs = " ".join(f"{k}={v}" for k, v in fields.items())
        head, sep, tail = line.partition("\n")
        return f"{head} {pairs}{sep}{tail}"


def setup_logging(level: str = "INFO", fmt: str = "json", stream: IO[str] | None = None) -> None:
    """Install a single root handler; ``fmt`` is ``json`` or ``text``."""
    level_name = level.upper()
    if level_name not in LEVELS:
        raise ConfigurationError(f"Unknown log level {level!r}")

    root = logging.getLogger()
    root.setLevel(level_name)
    root.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(JSONFormatter() if fmt == "json" else KeyValueFormatter())
    root.addHandler(handler)

    # Request lines from the HTTP client duplicate the adapters' own logging
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
