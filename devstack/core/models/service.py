"""
Managed service models — what the installer and teardown operate on.

A ManagedService is pure description: which packages, which unit,
which files to patch, how to verify. Every per-service difference
lives here as data or as a small hook, so a single state machine can
install all of them.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from devstack.core.services.config_patch import PatchRule
from devstack.core.services.profile_block import ProfileBlock

Hook = Callable[[], None]


class ServiceState(str, Enum):
    """Install lifecycle, in order."""

    NOT_INSTALLED = "not_installed"
    INSTALLED = "installed"
    CONFIGURED = "configured"
    ENABLED = "enabled"
    RUNNING = "running"
    VERIFIED = "verified"


@dataclass(frozen=True)
class ConfigTarget:
    """A config file to patch.

    ``locate`` is a glob used when the path depends on the installed
    version (e.g. ``/etc/postgresql/*/main/pg_hba.conf``); the highest
    match wins. Exactly one of ``path`` / ``locate`` is set.
    """

    rules: Sequence[PatchRule]
    path: Path | None = None
    locate: str | None = None
    owner: str | None = None
    mode: str | None = None

    @property
    def label(self) -> str:
        return str(self.path) if self.path is not None else str(self.locate)


@dataclass(frozen=True)
class TeardownSpec:
    """What removing a prior installation means for one service.

    ``paths`` belong to the invoking user and are removed directly;
    ``system_paths`` are removed with ``rm -rf`` as root.
    """

    unit: str | None = None
    purge: Sequence[str] = ()
    paths: Sequence[Path] = ()
    system_paths: Sequence[Path] = ()
    profile_markers: Sequence[tuple[str, str]] = ()
    dotfiles: Sequence[Path] = ()


@dataclass
class ManagedService:
    """Descriptor of one externally installed subsystem."""

    name: str
    packages: Sequence[str] = ()
    unit: str | None = None
    is_installed: Callable[[], bool] | None = None
    install: Hook | None = None
    pre_install: Hook | None = None
    config_targets: Sequence[ConfigTarget] = ()
    configure: Hook | None = None
    profile_blocks: Sequence[ProfileBlock] = ()
    post_start: Hook | None = None
    verify: Hook | None = None
    security_check: Callable[[], str | None] | None = None
    teardown: TeardownSpec = field(default_factory=TeardownSpec)

    @property
    def is_daemon(self) -> bool:
        """Whether the service has a unit to enable/start."""
        return self.unit is not None


@dataclass
class ServiceReport:
    """Outcome of installing one service."""

    name: str
    state: ServiceState = ServiceState.NOT_INSTALLED
    skipped_install: bool = False
    files_changed: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    duration_ms: int = 0

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "state": self.state.value,
            "skipped_install": self.skipped_install,
            "files_changed": self.files_changed,
            "warnings": self.warnings,
            "duration_ms": self.duration_ms,
        }
