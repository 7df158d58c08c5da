"""
Node.js adapter — npm, the ``n`` version manager, and project packages.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from devstack.adapters.shell.command import ROOT, CommandRunner
from devstack.core.models.receipt import Receipt

logger = logging.getLogger(__name__)


class NodeToolchain:
    """npm operations, global (runtime install) and per project."""

    name = "npm"

    def __init__(self, runner: CommandRunner, timeout: float | None = None):
        self._runner = runner
        self._timeout = timeout

    # ── Runtime ─────────────────────────────────────────────────

    def install_version_manager(self) -> Receipt:
        return self._runner.run(
            ["npm", "install", "-g", "n"], privilege=ROOT, timeout=self._timeout,
        )

    def install_node(self, version: str) -> Receipt:
        logger.info("Installing Node.js %s with n", version)
        return self._runner.run(["n", version], privilege=ROOT, timeout=self._timeout)

    def set_prefix(self, prefix: Path) -> Receipt:
        return self._runner.run(
            ["npm", "config", "set", "prefix", str(prefix)], timeout=60,
        )

    def version(self) -> Receipt:
        return self._runner.run(["npm", "--version"], timeout=60)

    @staticmethod
    def profile_lines(prefix: Path) -> list[str]:
        return [f'export PATH="{prefix}/bin:$PATH"']

    # ── Projects ────────────────────────────────────────────────

    def init(self, cwd: Path) -> Receipt:
        return self._runner.run(["npm", "init", "-y"], cwd=cwd, timeout=120)

    def add_dependency(self, cwd: Path, package: str) -> Receipt:
        logger.info("Adding npm dependency %s in %s", package, cwd)
        return self._runner.run(
            ["npm", "install", package, "--save"], cwd=cwd, timeout=self._timeout,
        )

    def list_dependency(self, cwd: Path, package: str) -> Receipt:
        return self._runner.run(["npm", "ls", package], cwd=cwd, timeout=120)

    @staticmethod
    def declared_dependencies(cwd: Path) -> dict[str, str]:
        """Runtime dependencies declared in ``package.json`` (empty if none)."""
        manifest = cwd / "package.json"
        if not manifest.is_file():
            return {}
        try:
            data = json.loads(manifest.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Cannot read %s: %s", manifest, e)
            return {}
        deps = data.get("dependencies") or {}
        return deps if isinstance(deps, dict) else {}
