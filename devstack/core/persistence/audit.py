"""
Audit ledger — append-only record of provisioning runs.

Every install, teardown and scaffold run appends one entry to an NDJSON
(newline-delimited JSON) file: what ran, which services or project it
touched, how it ended, and which security warnings were raised.

The ledger is append-only: entries are never modified or deleted.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

ENV_AUDIT_FILE = "DEVSTACK_AUDIT_FILE"
DEFAULT_AUDIT_PATH = Path("~/.local/state/devstack/audit.ndjson")


class AuditEntry(BaseModel):
    """A single audit log entry."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    operation_type: str = ""       # install, teardown, scaffold

    # What happened
    targets: list[str] = Field(default_factory=list)
    config_source: str = ""

    # Results
    status: str = ""               # ok, failed
    duration_ms: int = 0
    warnings: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    context: dict[str, Any] = Field(default_factory=dict)


def default_audit_path() -> Path:
    return Path(os.environ.get(ENV_AUDIT_FILE) or DEFAULT_AUDIT_PATH).expanduser()


class AuditWriter:
    """Append-only audit ledger writer.

    Each call to write() appends a single JSON line to the ledger file.
    The file is created if it doesn't exist. Write failures are logged,
    never raised: a run that provisioned the host is not failed by its
    bookkeeping.
    """

    def __init__(self, path: Path | None = None):
        self._path = path or default_audit_path()

    @property
    def path(self) -> Path:
        return self._path

    def write(self, entry: AuditEntry) -> None:
        line = json.dumps(entry.model_dump(mode="json"), ensure_ascii=False) + "\n"
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line)
            logger.debug("Audit entry written: %s", entry.operation_type)
        except OSError as e:
            logger.error("Failed to write audit entry to %s: %s", self._path, e)

    def read_all(self) -> list[AuditEntry]:
        """Read all entries from the ledger, oldest first."""
        if not self._path.is_file():
            return []

        entries = []
        try:
            with self._path.open("r", encoding="utf-8") as f:
                for line_num, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        entries.append(AuditEntry.model_validate(json.loads(line)))
                    except (json.JSONDecodeError, ValidationError) as e:
                        logger.warning("Skipping corrupt audit entry at line %d: %s", line_num, e)
        except OSError as e:
            logger.error("Failed to read audit ledger: %s", e)

        return entries
