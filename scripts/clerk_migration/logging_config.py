"""Process logging for a migration run.

Progress and rate-limit waits go to stderr, either as JSON lines for
unattended runs or as short text lines for a terminal. Per-record failures
that must survive a crash go to the run's MigrationLog file instead.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

# ``extra=`` keys set by the pipeline, with their short console labels
RECORD_FIELDS = {
    "user_id": "user",
    "login_id": "login",
    "organization_id": "org",
    "attempt": "attempt",
    "delay_s": "wait_s",
}


def _record_context(record: logging.LogRecord) -> dict:
    return {
        key: getattr(record, key)
        for key in RECORD_FIELDS
        if getattr(record, key, None) is not None
    }


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_record_context(record),
        }
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """``12:00:01 WARNING Rate limit reached ... [user=4 attempt=2]``."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)-7s %(message)s", datefmt="%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = _record_context(record)
        if not context:
            return line
        tags = " ".join(f"{RECORD_FIELDS[k]}={v}" for k, v in context.items())
        first, sep, rest = line.partition("\n")
        return f"{first} [{tags}]{sep}{rest}"


def configure_logging(level: str = "INFO", json_output: bool = True) -> None:
    """Attach a single stderr handler to the ``clerk_migration`` logger tree."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter() if json_output else ConsoleFormatter())
    root = logging.getLogger("clerk_migration")
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()
    root.addHandler(handler)
    root.propagate = False
