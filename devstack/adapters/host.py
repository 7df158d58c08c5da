"""
Host capabilities — the single bundle the core talks to.

The orchestrator never shells out directly: it receives a Host and
goes through its package manager, service manager, database client,
language toolchains and probes. Tests build a Host around a fake
runner and fake probes; the CLI builds one around the real runner.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from devstack.adapters.database.postgres import PostgresAdmin
from devstack.adapters.languages.node import NodeToolchain
from devstack.adapters.languages.python import CondaManager
from devstack.adapters.probes import Probes
from devstack.adapters.shell.command import CommandRunner
from devstack.adapters.shell.filesystem import HostFiles
from devstack.adapters.system.packages import AptPackageManager
from devstack.adapters.system.services import SystemdServiceManager
from devstack.adapters.vcs.git import GitRepository


@dataclass
class Host:
    """External-system capabilities of the local host."""

    runner: CommandRunner
    files: HostFiles
    packages: AptPackageManager
    services: SystemdServiceManager
    postgres: PostgresAdmin
    node: NodeToolchain
    git: GitRepository
    probes: Probes
    home: Path

    @classmethod
    def build(
        cls,
        runner: CommandRunner,
        probes: Probes | None = None,
        home: Path | None = None,
        timeout: float | None = None,
    ) -> Host:
        """Wire every capability around one command runner."""
        return cls(
            runner=runner,
            files=HostFiles(runner),
            packages=AptPackageManager(runner, timeout=timeout),
            services=SystemdServiceManager(runner),
            postgres=PostgresAdmin(runner),
            node=NodeToolchain(runner, timeout=timeout),
            git=GitRepository(runner),
            probes=probes or Probes(),
            home=home or Path.home(),
        )

    def conda(self, install_dir: Path) -> CondaManager:
        return CondaManager(self.runner, install_dir, timeout=self.runner.default_timeout)
