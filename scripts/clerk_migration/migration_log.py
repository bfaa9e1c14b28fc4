"""Append-only JSON failure log, one file per run.

The file is a sequence of pretty-printed JSON objects, each preceded by a
newline. It is not a single JSON document; use ``read_entries`` to load it.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Union

logger = logging.getLogger("clerk_migration.log")

LOG_FILE_PREFIX = "migration-log-"


def log_file_name(started_at: datetime) -> str:
    """``migration-log-YYYY-MM-DDTHH:MM:SS.json`` for the given run start."""
    stamp = started_at.replace(microsecond=0, tzinfo=None).isoformat()
    return f"{LOG_FILE_PREFIX}{stamp}.json"


class MigrationLog:
    """Durable append-only sink for per-record failures and notices."""

    def __init__(
        self,
        directory: Union[str, Path] = ".",
        started_at: Optional[datetime] = None,
    ) -> None:
        self.started_at = started_at or datetime.now(timezone.utc)
        self.path = Path(directory) / log_file_name(self.started_at)
        self.entries_written = 0

    def append(self, payload: dict[str, Any]) -> None:
        """Append one entry; the data is fsynced before returning."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as fh:
            fh.write("\n" + json.dumps(payload, indent=2, default=str))
            fh.flush()
            os.fsync(fh.fileno())
        self.entries_written += 1

    def user_failed(self, user_id: int, message: str) -> None:
        self.append({"userId": user_id, "error": message})

    def login_failed(self, login_id: int, message: str) -> None:
        self.append({"loginId": login_id, "error": message})

    def login_exists(self, login_id: int) -> None:
        self.append({"loginId": login_id, "error": "User already exists"})

    def membership_missing(
        self, login_id: int, clerk_user_id: str, organization_id: str, message: str
    ) -> None:
        """A Clerk user was created but could not be added to its organization."""
        self.append({
            "loginId": login_id,
            "clerkUserId": clerk_user_id,
            "organizationId": organization_id,
            "error": f"Membership not created: {message}",
        })

    def organization_not_persisted(
        self, user_id: int, organization_id: str, message: str
    ) -> None:
        """A Clerk organization exists that the users table does not reference."""
        self.append({
            "userId": user_id,
            "organizationId": organization_id,
            "error": f"Organization created but not saved: {message}",
        })


def read_entries(path: Union[str, Path]) -> list[dict[str, Any]]:
    """Parse a migration log back into a list of entries."""
    text = Path(path).read_text(encoding="utf-8")
    decoder = json.JSONDecoder()
    entries: list[dict[str, Any]] = []
    pos = 0
    while True:
        # Skip the newline separators
        while pos < len(text) and text[pos].isspace():
            pos += 1
        if pos >= len(text):
            break
        obj, pos = decoder.raw_decode(text, pos)
        entries.append(obj)
    return entries


def summarize_entries(entries: list[dict[str, Any]]) -> dict[str, int]:
    """Count entries by category for ``clerk-migration inspect-log``."""
    summary = {"user_failures": 0, "login_failures": 0, "already_exists": 0}
    for entry in entries:
        if "userId" in entry:
            summary["user_failures"] += 1
        elif entry.get("error") == "User already exists":
            summary["already_exists"] += 1
        elif "loginId" in entry:
            summary["login_failures"] += 1
    return summary
