"""
Per-service installer — drives one ManagedService through its states.

    NOT_INSTALLED → INSTALLED → CONFIGURED → ENABLED → RUNNING → VERIFIED

Transitions are linear. A failed transition raises and aborts the run;
the report passed in keeps the last state reached, so the caller can
tell how far each service got.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path

from devstack.adapters.host import Host
from devstack.core.errors import ExternalToolError
from devstack.core.models.service import (
    ConfigTarget,
    ManagedService,
    ServiceReport,
    ServiceState,
)
from devstack.core.reliability.backoff import wait_until
from devstack.core.services.config_patch import patch_file
from devstack.core.services.profile_block import install_block

logger = logging.getLogger(__name__)


class ServiceInstaller:
    """Runs the install state machine against one host.

    Args:
        host: Host capabilities.
        profile: Shell profile that receives profile blocks.
        service_timeout: Seconds to wait for a unit to become active.
        sleep: Injectable sleep (tests pass a no-op).
        clock: Injectable monotonic clock.
    """

    def __init__(
        self,
        host: Host,
        profile: Path,
        service_timeout: float = 30.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._host = host
        self._profile = profile
        self._service_timeout = service_timeout
        self._sleep = sleep
        self._clock = clock

    def install(self, service: ManagedService, report: ServiceReport | None = None) -> ServiceReport:
        """Take a service from wherever it is to VERIFIED."""
        report = report or ServiceReport(name=service.name)
        start = time.monotonic()
        logger.info("── %s ──", service.name)
        try:
            self._ensure_installed(service, report)
            report.state = ServiceState.INSTALLED

            self._configure(service, report)
            report.state = ServiceState.CONFIGURED

            if service.is_daemon:
                self._enable(service)
                report.state = ServiceState.ENABLED

                self._start(service)
                report.state = ServiceState.RUNNING
            else:
                report.state = ServiceState.RUNNING

            if service.post_start:
                self._post_start(service)

            self._verify(service, report)
            report.state = ServiceState.VERIFIED
        finally:
            report.duration_ms = int((time.monotonic() - start) * 1000)

        logger.info("%s verified (%dms)", service.name, report.duration_ms)
        return report

    # ── Stages ──────────────────────────────────────────────────

    def _ensure_installed(self, service: ManagedService, report: ServiceReport) -> None:
        is_installed = service.is_installed or (
            lambda: self._host.packages.all_installed(service.packages)
        )
        if is_installed():
            logger.info("%s already installed, skipping install", service.name)
            report.skipped_install = True
            return

        if service.pre_install:
            service.pre_install()
        if service.install:
            service.install()
        elif service.packages:
            self._host.packages.install(service.packages).raise_for_status(
                "install", service.name,
            )

    def _configure(self, service: ManagedService, report: ServiceReport) -> None:
        files = self._host.files
        for target in service.config_targets:
            path = self._locate(target)
            if patch_file(files, path, target.rules):
                report.files_changed.append(str(path))
            if target.owner:
                files.chown(path, target.owner)
            if target.mode:
                files.chmod(path, target.mode)

        for block in service.profile_blocks:
            if install_block(files, self._profile, block):
                report.files_changed.append(str(self._profile))

        if service.configure:
            service.configure()

    def _locate(self, target: ConfigTarget) -> Path:
        """Resolve a target to one file; not found is fatal."""
        if target.path is not None:
            if not self._host.files.exists(target.path):
                raise ExternalToolError(
                    "configuration file not found", step="configure", resource=str(target.path),
                )
            return target.path

        matches = self._host.files.glob(str(target.locate))
        if not matches:
            raise ExternalToolError(
                "no configuration file matches", step="configure", resource=target.label,
            )
        chosen = matches[-1]
        if len(matches) > 1:
            logger.info("Several matches for %s, using %s", target.locate, chosen)
        return chosen

    def _enable(self, service: ManagedService) -> None:
        services = self._host.services
        services.require(services.enable(service.unit), "enable", service.unit)

    def _start(self, service: ManagedService) -> None:
        services = self._host.services
        unit = service.unit
        services.require(services.restart(unit), "restart", unit)

        active = wait_until(
            lambda: services.is_active(unit),
            self._service_timeout,
            sleep=self._sleep,
            clock=self._clock,
        )
        if not active:
            error = ExternalToolError(
                f"unit not active after {self._service_timeout:g}s",
                step="start",
                resource=unit,
                timed_out=True,
            )
            services.attach_logs(error, unit)
            raise error

    def _post_start(self, service: ManagedService) -> None:
        """Run the post-start hook; a failure carries the unit's journal."""
        try:
            service.post_start()
        except ExternalToolError as e:
            if service.is_daemon and not e.logs:
                self._host.services.attach_logs(e, service.unit)
            raise

    def _verify(self, service: ManagedService, report: ServiceReport) -> None:
        if service.verify:
            service.verify()
        if service.security_check:
            warning = service.security_check()
            if warning:
                logger.warning("⚠️  %s: %s", service.name, warning)
                report.warnings.append(warning)
