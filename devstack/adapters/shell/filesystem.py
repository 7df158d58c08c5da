"""
Host filesystem adapter — file and directory operations on the host.

Operates directly on the filesystem when the invoking user has access,
and falls back to privileged commands (``tee``, ``cp``, ``rm``, ...)
through the command runner when it does not. Paths under /etc are the
usual reason for the fallback.
"""

from __future__ import annotations

import glob as _glob
import logging
import os
import re
import shutil
from pathlib import Path

from devstack.adapters.shell.command import ROOT, CommandRunner, tolerant
from devstack.core.models.receipt import Receipt

logger = logging.getLogger(__name__)


def _natural_key(path: Path) -> list:
    """Sort key that orders ``.../9/...`` before ``.../16/...``."""
    return [int(part) if part.isdigit() else part for part in re.split(r"(\d+)", str(path))]


class HostFiles:
    """Read, write and remove host files with a privileged fallback."""

    def __init__(self, runner: CommandRunner):
        self._runner = runner

    # ── Queries ─────────────────────────────────────────────────

    def exists(self, path: Path) -> bool:
        try:
            return path.exists() or path.is_symlink()
        except PermissionError:
            return self._runner.run(["test", "-e", str(path)], privilege=ROOT, timeout=10).ok

    def glob(self, pattern: str) -> list[Path]:
        """Matches of a glob pattern, in natural (version-aware) order."""
        return sorted((Path(p) for p in _glob.glob(pattern)), key=_natural_key)

    def read_text(self, path: Path) -> str:
        try:
            return path.read_text(encoding="utf-8")
        except PermissionError:
            logger.debug("Reading %s with elevated privileges", path)
            receipt = self._runner.run(["cat", str(path)], privilege=ROOT, timeout=30)
            receipt.raise_for_status("read file", str(path))
            return receipt.stdout

    # ── Mutations ───────────────────────────────────────────────

    def write_text(self, path: Path, content: str) -> None:
        """Write a file, creating parent directories."""
        if self._writable(path):
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
            return
        logger.debug("Writing %s with elevated privileges", path)
        self.make_dirs(path.parent)
        receipt = self._runner.run(
            ["tee", str(path)], privilege=ROOT, input=content, timeout=30,
        )
        receipt.raise_for_status("write file", str(path))

    def copy(self, source: Path, target: Path) -> None:
        """Copy a file preserving mode and ownership where possible."""
        if self._writable(target) and os.access(source, os.R_OK):
            shutil.copy2(source, target)
            return
        receipt = self._runner.run(
            ["cp", "-p", str(source), str(target)], privilege=ROOT, timeout=30,
        )
        receipt.raise_for_status("back up file", str(source))

    def make_dirs(self, path: Path) -> None:
        if path.is_dir():
            return
        try:
            path.mkdir(parents=True, exist_ok=True)
        except PermissionError:
            receipt = self._runner.run(["mkdir", "-p", str(path)], privilege=ROOT, timeout=30)
            receipt.raise_for_status("create directory", str(path))

    def symlink(self, target: Path, link: Path) -> None:
        """Point ``link`` at ``target``, replacing any existing link."""
        if link.is_symlink() and os.readlink(link) == str(target):
            return
        if self._writable(link):
            if link.is_symlink() or link.exists():
                link.unlink()
            link.symlink_to(target)
            return
        receipt = self._runner.run(
            ["ln", "-sfn", str(target), str(link)], privilege=ROOT, timeout=30,
        )
        receipt.raise_for_status("link file", str(link))

    def chown(self, path: Path, owner: str, recursive: bool = False) -> None:
        cmd = ["chown", *(["-R"] if recursive else []), owner, str(path)]
        self._runner.run(cmd, privilege=ROOT, timeout=60).raise_for_status(
            "set ownership", str(path),
        )

    def chmod(self, path: Path, mode: str, recursive: bool = False) -> None:
        cmd = ["chmod", *(["-R"] if recursive else []), mode, str(path)]
        self._runner.run(cmd, privilege=ROOT, timeout=60).raise_for_status(
            "set permissions", str(path),
        )

    def remove(self, path: Path) -> Receipt:
        """Best-effort removal of a file or directory tree.

        Never raises. A missing path yields a warning receipt.
        """
        command = ["rm", "-rf", str(path)]
        if not self.exists(path):
            return Receipt(command=command, status="warning", error=f"{path} not found")
        try:
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            else:
                path.unlink()
            return Receipt.success(command)
        except PermissionError:
            return self._runner.run(command, privilege=ROOT, classify=tolerant, timeout=120)
        except OSError as e:
            return Receipt(command=command, status="warning", error=str(e))

    # ── Helpers ─────────────────────────────────────────────────

    @staticmethod
    def _writable(path: Path) -> bool:
        if path.exists():
            return os.access(path, os.W_OK)
        parent = path.parent
        while not parent.exists() and parent != parent.parent:
            parent = parent.parent
        return os.access(parent, os.W_OK)
