"""
Git adapter — repository initialisation. Uses the git CLI.
"""

from __future__ import annotations

import logging
from pathlib import Path

from devstack.adapters.shell.command import CommandRunner
from devstack.core.models.receipt import Receipt

logger = logging.getLogger(__name__)


class GitRepository:
    name = "git"

    def __init__(self, runner: CommandRunner):
        self._runner = runner

    @staticmethod
    def is_repository(path: Path) -> bool:
        return (path / ".git").exists()

    def init(self, path: Path) -> Receipt:
        """``git init`` — re-running on an existing repository is harmless."""
        logger.info("Initialising git repository in %s", path)
        return self._runner.run(["git", "init"], cwd=path, timeout=60)
