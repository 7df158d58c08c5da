"""
Shell-profile blocks — marker-delimited, idempotent profile edits.

Lines added to ``~/.bashrc`` live between a unique begin/end marker
pair. Upserting replaces the block body; removal deletes exactly the
marked range, so unrelated profile content is never touched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from devstack.adapters.shell.filesystem import HostFiles

logger = logging.getLogger(__name__)

CONDA_INIT_MARKERS = ("# >>> conda initialize >>>", "# <<< conda initialize <<<")


@dataclass(frozen=True)
class ProfileBlock:
    name: str
    lines: tuple[str, ...] = field(default_factory=tuple)

    @property
    def begin(self) -> str:
        return f"# >>> devstack {self.name} >>>"

    @property
    def end(self) -> str:
        return f"# <<< devstack {self.name} <<<"

    @property
    def markers(self) -> tuple[str, str]:
        return self.begin, self.end

    def render(self) -> list[str]:
        return [self.begin, *self.lines, self.end]


def _find(lines: list[str], begin: str, end: str, start: int = 0) -> tuple[int, int] | None:
    """Index range of the next complete marker pair at or after ``start``."""
    for i in range(start, len(lines)):
        if lines[i].strip() == begin:
            for j in range(i + 1, len(lines)):
                if lines[j].strip() == end:
                    return i, j
            return None
    return None


def upsert_block(text: str, block: ProfileBlock) -> str:
    """Insert the block, or replace the body of an existing one."""
    lines = text.splitlines()
    span = _find(lines, block.begin, block.end)
    if span is not None:
        i, j = span
        lines[i:j + 1] = block.render()
    else:
        if lines and lines[-1].strip():
            lines.append("")
        lines.extend(block.render())
    return "\n".join(lines) + "\n"


def remove_block(text: str, begin: str, end: str) -> str:
    """Remove every complete ``begin``..``end`` range.

    A begin marker without a matching end is left alone.
    """
    lines = text.splitlines()
    start = 0
    while (span := _find(lines, begin, end, start)) is not None:
        i, j = span
        del lines[i:j + 1]
        # Drop the blank separator line upsert_block added
        if i > 0 and i <= len(lines) and not lines[i - 1].strip() and (
            i == len(lines) or not lines[i].strip()
        ):
            del lines[i - 1]
            i -= 1
        start = i
    if not lines:
        return ""
    return "\n".join(lines) + "\n"


def install_block(files: HostFiles, profile: Path, block: ProfileBlock) -> bool:
    """Write a block into a profile file. Returns True if it changed."""
    current = files.read_text(profile) if files.exists(profile) else ""
    updated = upsert_block(current, block)
    if updated == current:
        return False
    files.write_text(profile, updated)
    logger.info("Updated %s block in %s", block.name, profile)
    return True


def strip_block(files: HostFiles, profile: Path, begin: str, end: str) -> bool:
    """Remove a marked block from a profile file. Returns True if it changed."""
    if not files.exists(profile):
        return False
    current = files.read_text(profile)
    updated = remove_block(current, begin, end)
    if updated == current:
        return False
    files.write_text(profile, updated)
    logger.info("Removed %s block from %s", begin, profile)
    return True
