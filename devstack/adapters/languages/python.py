"""
Conda adapter — Miniconda installation and isolated Python environments.

The installer is fetched over HTTPS and run in batch mode into the
configured prefix. Project environments are prefix environments
(``conda create -p``) so they live inside the project tree.
"""

from __future__ import annotations

import logging
import re
import tempfile
from pathlib import Path

import requests

from devstack.adapters.shell.command import CommandRunner, tolerant
from devstack.core.errors import ExternalToolError
from devstack.core.models.receipt import Receipt

logger = logging.getLogger(__name__)

# Channels whose terms of service must be accepted before ``conda create``
TOS_CHANNELS = (
    "https://repo.anaconda.com/pkgs/main",
    "https://repo.anaconda.com/pkgs/r",
)

_VERSION_RE = re.compile(r"Python\s+(\d+(?:\.\d+)*)")


class CondaManager:
    """Miniconda toolchain rooted at ``install_dir``."""

    name = "conda"

    def __init__(self, runner: CommandRunner, install_dir: Path, timeout: float | None = None):
        self._runner = runner
        self.install_dir = install_dir
        self._timeout = timeout

    @property
    def conda_bin(self) -> Path:
        return self.install_dir / "bin" / "conda"

    def is_installed(self) -> bool:
        return self.conda_bin.is_file()

    # ── Installation ────────────────────────────────────────────

    def download_installer(self, url: str, target_dir: Path | None = None) -> Path:
        """Download the Miniconda installer script.

        Raises:
            ExternalToolError: On any HTTP or I/O failure.
        """
        directory = target_dir or Path(tempfile.gettempdir())
        target = directory / "miniconda.sh"
        logger.info("Downloading Miniconda installer from %s", url)
        try:
            with requests.get(url, stream=True, timeout=60) as response:
                response.raise_for_status()
                with target.open("wb") as f:
                    for chunk in response.iter_content(chunk_size=1 << 20):
                        f.write(chunk)
        except (requests.RequestException, OSError) as e:
            raise ExternalToolError(
                f"download failed: {e}", step="install", resource=url,
            ) from e
        return target

    def run_installer(self, script: Path) -> Receipt:
        return self._runner.run(
            ["bash", str(script), "-b", "-p", str(self.install_dir)],
            timeout=self._timeout,
        )

    def set_auto_activate_base(self, enabled: bool) -> Receipt:
        return self._runner.run(
            [str(self.conda_bin), "config", "--set", "auto_activate_base",
             "true" if enabled else "false"],
            timeout=60,
        )

    def version(self) -> Receipt:
        return self._runner.run([str(self.conda_bin), "--version"], timeout=60)

    def profile_lines(self) -> list[str]:
        """Shell-profile lines that put conda on PATH."""
        return [
            f'export PATH="{self.install_dir}/bin:$PATH"',
            f". {self.install_dir}/etc/profile.d/conda.sh",
        ]

    # ── Environments ────────────────────────────────────────────

    def accept_tos(self) -> list[Receipt]:
        """Accept channel terms of service. Older conda lacks the command."""
        return [
            self._runner.run(
                [str(self.conda_bin), "tos", "accept", "--override-channels",
                 "--channel", channel],
                classify=tolerant,
                timeout=120,
            )
            for channel in TOS_CHANNELS
        ]

    @staticmethod
    def env_exists(prefix: Path) -> bool:
        return (prefix / "conda-meta").is_dir()

    def create_env(self, prefix: Path, python_version: str) -> Receipt:
        logger.info("Creating conda environment %s (python=%s)", prefix, python_version)
        return self._runner.run(
            [str(self.conda_bin), "create", "-p", str(prefix),
             f"python={python_version}", "-y"],
            timeout=self._timeout,
        )

    def python_version(self, prefix: Path) -> Receipt:
        """Run ``python --version`` inside the activated environment."""
        return self._runner.run(
            [str(self.conda_bin), "run", "-p", str(prefix), "python", "--version"],
            timeout=120,
        )

    @staticmethod
    def parse_python_version(output: str) -> str | None:
        """``"Python 3.12.8"`` → ``"3.12.8"``."""
        match = _VERSION_RE.search(output)
        return match.group(1) if match else None
