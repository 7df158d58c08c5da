"""
Package manager adapter — apt/dpkg operations.

Install is fatal on failure; purge and autoremove are best-effort
(teardown) and classify every non-zero exit as a warning.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from devstack.adapters.shell.command import ROOT, CommandRunner, tolerant
from devstack.core.models.receipt import Receipt

logger = logging.getLogger(__name__)

# apt under sudo does not inherit the caller's environment
_APT = ["env", "DEBIAN_FRONTEND=noninteractive", "apt-get"]


class AptPackageManager:
    """Debian/Ubuntu package management through apt-get and dpkg-query."""

    name = "apt"

    def __init__(self, runner: CommandRunner, timeout: float | None = None):
        self._runner = runner
        self._timeout = timeout

    def is_installed(self, package: str) -> bool:
        """Check a single package with ``dpkg-query``."""
        receipt = self._runner.run(
            ["dpkg-query", "-W", "-f=${Status}", package],
            classify=tolerant,
            timeout=10,
        )
        return "install ok installed" in receipt.stdout

    def all_installed(self, packages: Sequence[str]) -> bool:
        return bool(packages) and all(self.is_installed(p) for p in packages)

    def update(self) -> Receipt:
        return self._runner.run([*_APT, "update"], privilege=ROOT, timeout=self._timeout)

    def upgrade(self) -> Receipt:
        return self._runner.run([*_APT, "upgrade", "-y"], privilege=ROOT, timeout=self._timeout)

    def install(self, packages: Sequence[str]) -> Receipt:
        logger.info("Installing packages: %s", " ".join(packages))
        return self._runner.run(
            [*_APT, "install", "-y", *packages], privilege=ROOT, timeout=self._timeout,
        )

    def purge(self, patterns: Sequence[str]) -> Receipt:
        """Purge packages matching apt patterns (e.g. ``postgresql*``).

        A pattern that matches nothing makes apt exit non-zero; that is a
        warning, not an error.
        """
        logger.info("Purging packages: %s", " ".join(patterns))
        return self._runner.run(
            [*_APT, "purge", "-y", *patterns],
            privilege=ROOT,
            classify=tolerant,
            timeout=self._timeout,
        )

    def autoremove(self) -> Receipt:
        return self._runner.run(
            [*_APT, "autoremove", "-y"],
            privilege=ROOT,
            classify=tolerant,
            timeout=self._timeout,
        )
