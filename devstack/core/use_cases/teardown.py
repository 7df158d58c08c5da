"""
Teardown use case — remove the managed services without reinstalling.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path

from devstack.adapters.host import Host
from devstack.core.engine.lock import host_lock
from devstack.core.engine.teardown import TeardownReport, teardown
from devstack.core.models.service import ManagedService
from devstack.core.models.settings import InstallSettings
from devstack.core.persistence.audit import AuditEntry, AuditWriter
from devstack.core.services.catalog import build_catalog, select

logger = logging.getLogger(__name__)


def run_teardown(
    settings: InstallSettings,
    host: Host,
    *,
    only: tuple[str, ...] | None = None,
    services: list[ManagedService] | None = None,
    lock_path: Path | None = None,
    audit: AuditWriter | None = None,
) -> TeardownReport:
    """Tear down the selected services under the host lock."""
    start = time.monotonic()
    with host_lock(lock_path):
        selected = select(services or build_catalog(settings, host), only)
        report = teardown(selected, host, settings.general.profile)

    (audit or AuditWriter()).write(AuditEntry(
        operation_type="teardown",
        targets=report.services,
        status="ok",
        duration_ms=int((time.monotonic() - start) * 1000),
        warnings=report.warnings,
    ))
    return report
