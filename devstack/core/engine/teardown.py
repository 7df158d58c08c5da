"""
Teardown stage — best-effort removal of prior installations.

Runs before an install to guarantee a clean slate. Nothing here aborts
the run: every failure or timeout is recorded as a warning and the
stage moves on.

Per service, in order:
    stop unit → purge packages → remove directories → strip profile
    blocks → remove dotfiles
followed by a single ``apt-get autoremove``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from devstack.adapters.host import Host
from devstack.adapters.shell.command import ROOT, tolerant
from devstack.core.errors import ProvisioningError
from devstack.core.models.receipt import Receipt
from devstack.core.models.service import ManagedService
from devstack.core.services.profile_block import strip_block

logger = logging.getLogger(__name__)


@dataclass
class TeardownReport:
    """What the teardown did and what it could not do."""

    services: list[str] = field(default_factory=list)
    actions: int = 0
    warnings: list[str] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.warnings

    def record(self, receipt: Receipt, what: str) -> None:
        self.actions += 1
        if receipt.status != "ok":
            message = f"{what}: {receipt.error or receipt.status}"
            logger.warning("Teardown: %s", message)
            self.warnings.append(message)

    def to_dict(self) -> dict:
        return {
            "services": self.services,
            "actions": self.actions,
            "warnings": self.warnings,
        }


def teardown(services: list[ManagedService], host: Host, profile: Path) -> TeardownReport:
    """Remove every service's prior installation. Never raises for tool failures."""
    report = TeardownReport()
    for service in services:
        logger.info("Removing %s", service.name)
        report.services.append(service.name)
        _teardown_one(service, host, profile, report)

    report.record(host.packages.autoremove(), "autoremove")
    logger.info(
        "Teardown finished: %d action(s), %d warning(s)",
        report.actions, len(report.warnings),
    )
    return report


def _teardown_one(service: ManagedService, host: Host, profile: Path, report: TeardownReport) -> None:
    spec = service.teardown

    if spec.unit:
        report.record(host.services.stop(spec.unit), f"stop {spec.unit}")

    if spec.purge:
        report.record(host.packages.purge(spec.purge), f"purge {' '.join(spec.purge)}")

    for path in spec.system_paths:
        report.record(
            host.runner.run(
                ["rm", "-rf", str(path)], privilege=ROOT, classify=tolerant, timeout=120,
            ),
            f"remove {path}",
        )

    for path in spec.paths:
        if host.files.exists(path):
            report.record(host.files.remove(path), f"remove {path}")

    for begin, end in spec.profile_markers:
        try:
            if strip_block(host.files, profile, begin, end):
                report.actions += 1
        except (OSError, ProvisioningError) as e:
            report.actions += 1
            message = f"strip {begin} from {profile}: {e}"
            logger.warning("Teardown: %s", message)
            report.warnings.append(message)

    for dotfile in spec.dotfiles:
        if host.files.exists(dotfile):
            report.record(host.files.remove(dotfile), f"remove {dotfile}")
