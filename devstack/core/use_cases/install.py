"""
Install use case — provision every managed service on this host.

This is the top-level orchestrator of an install run: it takes the host
lock, tears down prior installations, refreshes the package index, walks
each service through the installer state machine, creates the projects
directory, and appends the outcome to the audit ledger.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from devstack.adapters.host import Host
from devstack.core.engine.installer import ServiceInstaller
from devstack.core.engine.lock import host_lock
from devstack.core.engine.teardown import TeardownReport, teardown as run_teardown_stage
from devstack.core.errors import ProvisioningError
from devstack.core.models.service import ManagedService, ServiceReport
from devstack.core.models.settings import InstallSettings
from devstack.core.persistence.audit import AuditEntry, AuditWriter
from devstack.core.services.catalog import build_catalog, select

logger = logging.getLogger(__name__)


@dataclass
class RunReport:
    """Outcome of an install run."""

    services: list[ServiceReport] = field(default_factory=list)
    teardown: TeardownReport | None = None
    duration_ms: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def security_warnings(self) -> list[str]:
        return [w for s in self.services for w in s.warnings]

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "error": self.error,
            "duration_ms": self.duration_ms,
            "teardown": self.teardown.to_dict() if self.teardown else None,
            "services": [s.to_dict() for s in self.services],
            "security_warnings": self.security_warnings,
        }


def run_install(
    settings: InstallSettings,
    host: Host,
    *,
    teardown: bool = True,
    upgrade: bool = True,
    only: tuple[str, ...] | None = None,
    services: list[ManagedService] | None = None,
    lock_path: Path | None = None,
    audit: AuditWriter | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> RunReport:
    """Install, configure, start and verify the managed services.

    Args:
        settings: Validated install settings.
        host: Host capabilities.
        teardown: Remove prior installations first.
        upgrade: Run ``apt-get upgrade`` after refreshing the index.
        only: Restrict the run to these service names.
        services: Override the service catalog (tests).
        lock_path: Override the host lock file.
        audit: Override the audit ledger.
        sleep: Sleep used while waiting for units to come up.

    Returns:
        RunReport with one ServiceReport per service.

    Raises:
        ProvisioningError: On the first fatal step. The audit entry is
            written either way.
    """
    report = RunReport()
    start = time.monotonic()
    general = settings.general

    try:
        with host_lock(lock_path):
            selected = select(services or build_catalog(settings, host), only)

            if teardown:
                logger.info("Removing prior installations")
                report.teardown = run_teardown_stage(selected, host, general.profile)

            host.packages.update().raise_for_status("update package index", "apt")
            if upgrade:
                host.packages.upgrade().raise_for_status("upgrade packages", "apt")

            installer = ServiceInstaller(
                host,
                profile=general.profile,
                service_timeout=general.service_timeout,
                sleep=sleep,
            )
            for service in selected:
                service_report = ServiceReport(name=service.name)
                report.services.append(service_report)
                installer.install(service, service_report)

            host.files.make_dirs(general.projects_dir)
            logger.info("Projects directory ready: %s", general.projects_dir)
    except ProvisioningError as e:
        report.error = e.describe()
        raise
    finally:
        report.duration_ms = int((time.monotonic() - start) * 1000)
        (audit or AuditWriter()).write(AuditEntry(
            operation_type="install",
            targets=[s.name for s in report.services],
            status="ok" if report.ok else "failed",
            duration_ms=report.duration_ms,
            warnings=[
                *(report.teardown.warnings if report.teardown else []),
                *report.security_warnings,
            ],
            errors=[report.error] if report.error else [],
            context={"teardown": teardown, "upgrade": upgrade},
        ))

    return report
