"""
Service manager adapter — systemd unit control.

Any fatal failure of a service-management command gets the unit's
recent journal attached before it reaches the operator.
"""

from __future__ import annotations

import logging

from devstack.adapters.shell.command import ROOT, CommandRunner, tolerant
from devstack.core.errors import ExternalToolError
from devstack.core.models.receipt import Receipt

logger = logging.getLogger(__name__)

JOURNAL_LINES = 50


class SystemdServiceManager:
    """systemctl / journalctl wrapper."""

    name = "systemd"

    def __init__(self, runner: CommandRunner, timeout: float = 120):
        self._runner = runner
        self._timeout = timeout

    # ── Queries ─────────────────────────────────────────────────

    def is_active(self, unit: str) -> bool:
        receipt = self._runner.run(
            ["systemctl", "is-active", "--quiet", unit],
            classify=tolerant,
            timeout=10,
        )
        return receipt.status == "ok"

    def recent_logs(self, unit: str, lines: int = JOURNAL_LINES) -> str:
        """Last journal lines for a unit, or an explanation of why not."""
        receipt = self._runner.run(
            ["journalctl", "-u", unit, "-n", str(lines), "--no-pager"],
            privilege=ROOT,
            classify=tolerant,
            timeout=15,
        )
        if receipt.status == "ok":
            return receipt.stdout.strip()
        return f"(journal unavailable: {receipt.error or 'unknown error'})"

    # ── Control ─────────────────────────────────────────────────

    def enable(self, unit: str) -> Receipt:
        return self._control("enable", unit)

    def restart(self, unit: str) -> Receipt:
        return self._control("restart", unit)

    def stop(self, unit: str) -> Receipt:
        """Best-effort stop (teardown): failure is a warning."""
        return self._runner.run(
            ["systemctl", "stop", unit],
            privilege=ROOT,
            classify=tolerant,
            timeout=self._timeout,
        )

    def require(self, receipt: Receipt, step: str, unit: str) -> Receipt:
        """Raise for a fatal receipt, attaching the unit's journal."""
        try:
            return receipt.raise_for_status(step, unit)
        except ExternalToolError as e:
            self.attach_logs(e, unit)
            raise

    def attach_logs(self, error: ExternalToolError, unit: str) -> None:
        logger.debug("Fetching journal for %s", unit)
        error.attach_logs(self.recent_logs(unit))

    def _control(self, action: str, unit: str) -> Receipt:
        logger.info("systemctl %s %s", action, unit)
        return self._runner.run(
            ["systemctl", action, unit], privilege=ROOT, timeout=self._timeout,
        )
