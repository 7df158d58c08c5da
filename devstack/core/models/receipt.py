"""
Receipt model — the execution contract of the command executor.

Every external command produces a Receipt. The runner NEVER raises for
a failing command: failures, warnings and timeouts are captured here,
and the caller decides whether the outcome aborts the run.
"""

from __future__ import annotations

import shlex
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from devstack.core.errors import ExternalToolError

Outcome = Literal["ok", "warning", "fatal"]

# Output tails kept on receipts and errors
_TAIL = 2000


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Receipt(BaseModel):
    """Result of one external command."""

    command: list[str] = Field(default_factory=list)
    status: Literal["ok", "warning", "failed", "timed_out"] = "ok"
    return_code: int | None = None

    started_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    stdout: str = ""
    stderr: str = ""
    error: str | None = None

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Whether the command succeeded, possibly with a warning."""
        return self.status in ("ok", "warning")

    @property
    def failed(self) -> bool:
        return self.status in ("failed", "timed_out")

    @property
    def timed_out(self) -> bool:
        return self.status == "timed_out"

    @property
    def command_line(self) -> str:
        return shlex.join(self.command)

    def raise_for_status(self, step: str, resource: str = "") -> Receipt:
        """Raise ExternalToolError if this receipt is fatal, else return self."""
        if not self.failed:
            return self
        if self.timed_out:
            message = f"operation timed out: {self.command_line}"
        else:
            message = self.error or f"command exited with code {self.return_code}"
        raise ExternalToolError(
            message,
            step=step,
            resource=resource or self.command_line,
            command=self.command_line,
            stdout=self.stdout[-_TAIL:],
            stderr=self.stderr[-_TAIL:],
            timed_out=self.timed_out,
        )

    @classmethod
    def success(cls, command: list[str], stdout: str = "", **kwargs: Any) -> Receipt:
        """Create a success receipt."""
        return cls(command=command, status="ok", return_code=0, stdout=stdout, **kwargs)

    @classmethod
    def failure(
        cls,
        command: list[str],
        error: str,
        return_code: int | None = 1,
        **kwargs: Any,
    ) -> Receipt:
        """Create a failure receipt."""
        return cls(
            command=command,
            status="failed",
            return_code=return_code,
            error=error,
            **kwargs,
        )
