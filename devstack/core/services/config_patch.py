"""
Config patch rules — idempotent edits to text configuration files.

A rule either sets a directive (replace the existing line in place,
else insert or append it) or ensures an exact line is present. Applying
a rule set to its own output changes nothing, so re-running an install
never accumulates duplicate or conflicting directives.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from devstack.adapters.shell.filesystem import HostFiles

logger = logging.getLogger(__name__)

BACKUP_SUFFIX = ".bak"


class PatchRule(Protocol):
    def apply(self, lines: list[str]) -> list[str]: ...


@dataclass(frozen=True)
class SetDirective:
    """Make ``line`` the single active occurrence of directive ``key``.

    - Active line(s) present: the first is replaced in place (keeping its
      indentation), later ones are dropped.
    - Otherwise, with ``match_commented``, a commented-out occurrence is
      replaced in place.
    - Otherwise the line is inserted after the first ``insert_after``
      match (with ``indent``) or appended at the end of the file.
    """

    key: str
    line: str
    match_commented: bool = False
    insert_after: str | None = None
    indent: str = ""

    def _active(self) -> re.Pattern[str]:
        return re.compile(rf"^(\s*){re.escape(self.key)}(?=[\s=;]|$)")

    def _commented(self) -> re.Pattern[str]:
        return re.compile(rf"^(\s*)#\s*{re.escape(self.key)}(?=[\s=;]|$)")

    def apply(self, lines: list[str]) -> list[str]:
        active = self._active()
        hits = [i for i, ln in enumerate(lines) if active.match(ln)]
        if hits:
            first = hits[0]
            indent = active.match(lines[first]).group(1)
            out = [ln for i, ln in enumerate(lines) if i not in hits[1:]]
            out[first] = indent + self.line
            return out

        if self.match_commented:
            commented = self._commented()
            for i, ln in enumerate(lines):
                m = commented.match(ln)
                if m:
                    out = list(lines)
                    out[i] = m.group(1) + self.line
                    return out

        if self.insert_after:
            anchor = re.compile(self.insert_after)
            for i, ln in enumerate(lines):
                if anchor.search(ln):
                    return [*lines[:i + 1], self.indent + self.line, *lines[i + 1:]]

        return [*lines, self.indent + self.line]


@dataclass(frozen=True)
class EnsureLine:
    """Append an exact line unless it is already present."""

    line: str

    def apply(self, lines: list[str]) -> list[str]:
        if any(ln.strip() == self.line.strip() for ln in lines):
            return list(lines)
        return [*lines, self.line]


def apply_rules(text: str, rules: Sequence[PatchRule]) -> str:
    """Apply rules in order to ``text`` and return the new text."""
    lines = text.splitlines()
    for rule in rules:
        lines = rule.apply(lines)
    if not lines:
        return ""
    return "\n".join(lines) + "\n"


def backup_path(path: Path) -> Path:
    return path.with_name(path.name + BACKUP_SUFFIX)


def patch_file(files: HostFiles, path: Path, rules: Sequence[PatchRule]) -> bool:
    """Apply rules to a file on disk.

    The pre-modification state is copied to ``<file>.bak`` before the
    first mutation; an existing backup is never overwritten. Nothing is
    written when the rules change nothing.

    Returns:
        True if the file was modified.
    """
    original = files.read_text(path)
    patched = apply_rules(original, rules)
    if patched == original:
        logger.debug("%s already up to date", path)
        return False

    backup = backup_path(path)
    if not files.exists(backup):
        files.copy(path, backup)
        logger.info("Backed up %s → %s", path, backup)

    files.write_text(path, patched)
    logger.info("Patched %s", path)
    return True
