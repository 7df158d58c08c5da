"""
Verify use case — re-run every service's health probe without changing
anything on the host.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from devstack.adapters.host import Host
from devstack.core.errors import ProvisioningError
from devstack.core.models.service import ManagedService
from devstack.core.models.settings import InstallSettings
from devstack.core.services.catalog import build_catalog, select

logger = logging.getLogger(__name__)


@dataclass
class ServiceCheck:
    name: str
    ok: bool = True
    message: str = ""
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "ok": self.ok,
            "message": self.message,
            "warnings": self.warnings,
        }


@dataclass
class VerifyResult:
    """Per-service probe outcomes."""

    checks: list[ServiceCheck] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(c.ok for c in self.checks)

    @property
    def failed(self) -> list[ServiceCheck]:
        return [c for c in self.checks if not c.ok]

    def to_dict(self) -> dict:
        return {"ok": self.ok, "checks": [c.to_dict() for c in self.checks]}


def verify_services(
    settings: InstallSettings,
    host: Host,
    *,
    only: tuple[str, ...] | None = None,
    services: list[ManagedService] | None = None,
) -> VerifyResult:
    """Probe every selected service; one failure does not stop the others."""
    result = VerifyResult()
    for service in select(services or build_catalog(settings, host), only):
        check = ServiceCheck(name=service.name)
        result.checks.append(check)
        try:
            if service.verify:
                service.verify()
            if service.security_check:
                warning = service.security_check()
                if warning:
                    logger.warning("⚠️  %s: %s", service.name, warning)
                    check.warnings.append(warning)
        except ProvisioningError as e:
            check.ok = False
            check.message = e.describe()
            logger.debug("%s check failed: %s", service.name, check.message)
    return result
