"""
Command executor — the SINGLE PLACE where ``subprocess.run`` is called.

Every external operation (package install, service control, psql,
npm, conda, git) goes through ``CommandRunner.run`` so that privilege
escalation, timeouts and exit-code interpretation are centralised.

Security invariants:
    - A sudo password is piped via stdin only (``sudo -S -k``)
    - The password never appears in argv and is never logged
    - Without a password, ``sudo -n`` is used: it fails instead of
      hanging on a prompt nobody can see
"""

from __future__ import annotations

import logging
import os
import subprocess
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from devstack.core.models.receipt import Outcome, Receipt

logger = logging.getLogger(__name__)

# Exit status → outcome
Classifier = Callable[[int, str, str], Outcome]

DEFAULT_TIMEOUT = 600.0


def strict(returncode: int, stdout: str, stderr: str) -> Outcome:
    """Zero is success, anything else aborts the run."""
    return "ok" if returncode == 0 else "fatal"


def tolerant(returncode: int, stdout: str, stderr: str) -> Outcome:
    """Zero is success, anything else is an acceptable warning (teardown)."""
    return "ok" if returncode == 0 else "warning"


@dataclass(frozen=True)
class Privilege:
    """Who a command runs as. ``user=None`` means the invoking user."""

    user: str | None = None

    def __str__(self) -> str:
        return self.user or "self"


USER = Privilege()
ROOT = Privilege("root")


def as_user(name: str) -> Privilege:
    """Run as another system account (e.g. ``postgres``)."""
    return Privilege(name)


class CommandRunner:
    """Run external commands and classify their results into receipts.

    Args:
        sudo_password: Optional password piped to ``sudo -S``.
        default_timeout: Seconds allowed for a command that does not
            pass its own timeout.
    """

    def __init__(self, sudo_password: str = "", default_timeout: float = DEFAULT_TIMEOUT):
        self._sudo_password = sudo_password
        self.default_timeout = default_timeout

    @staticmethod
    def is_root() -> bool:
        return os.geteuid() == 0

    def prime_sudo(self) -> bool:
        """Validate sudo credentials once, interactively, before a run.

        Later commands use ``sudo -n`` and rely on the cached credentials.
        """
        if self.is_root() or self._sudo_password:
            return True
        logger.debug("Priming sudo credentials")
        try:
            return subprocess.run(["sudo", "-v"], timeout=120).returncode == 0
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning("Cannot prime sudo credentials: %s", e)
            return False

    def run(
        self,
        cmd: Sequence[str],
        *,
        privilege: Privilege = USER,
        classify: Classifier = strict,
        timeout: float | None = None,
        cwd: str | os.PathLike | None = None,
        env: dict[str, str] | None = None,
        input: str | None = None,
    ) -> Receipt:
        """Execute a command and return its receipt. Never raises."""
        command = list(cmd)
        full_cmd, stdin_data = self._wrap(command, privilege, input)
        limit = timeout if timeout is not None else self.default_timeout

        run_env = os.environ.copy()
        if env:
            run_env.update(env)

        logger.debug("Executing as %s: %s (cwd=%s)", privilege, " ".join(command), cwd)
        start = time.monotonic()

        try:
            result = subprocess.run(
                full_cmd,
                capture_output=True,
                text=True,
                timeout=limit,
                input=stdin_data,
                env=run_env,
                cwd=cwd,
            )
        except subprocess.TimeoutExpired as e:
            return Receipt(
                command=command,
                status="timed_out",
                duration_ms=_elapsed_ms(start),
                stdout=_decode(e.stdout),
                stderr=_decode(e.stderr),
                error=f"Command timed out after {limit:g}s",
                metadata={"timeout": limit, "privilege": str(privilege)},
            )
        except OSError as e:
            # Binary missing or not executable
            outcome = classify(127, "", str(e))
            return Receipt(
                command=command,
                status="warning" if outcome == "warning" else "failed",
                return_code=127,
                duration_ms=_elapsed_ms(start),
                stderr=str(e),
                error=f"Cannot execute {command[0]}: {e}",
                metadata={"privilege": str(privilege)},
            )

        stdout = result.stdout or ""
        stderr = result.stderr or ""
        outcome = classify(result.returncode, stdout, stderr)
        status = {"ok": "ok", "warning": "warning", "fatal": "failed"}[outcome]

        if outcome != "ok":
            logger.debug(
                "Command %s exited %d (%s): %s",
                command[0], result.returncode, outcome, stderr.strip()[-500:],
            )

        return Receipt(
            command=command,
            status=status,
            return_code=result.returncode,
            duration_ms=_elapsed_ms(start),
            stdout=stdout,
            stderr=stderr,
            error=None if outcome == "ok" else (
                stderr.strip().splitlines()[-1] if stderr.strip()
                else f"Command exited with code {result.returncode}"
            ),
            metadata={"privilege": str(privilege)},
        )

    def _wrap(
        self,
        command: list[str],
        privilege: Privilege,
        input: str | None,
    ) -> tuple[list[str], str | None]:
        """Prefix sudo where needed and build stdin."""
        if privilege.user is None:
            return command, input
        if privilege.user == "root" and self.is_root():
            return command, input

        target = [] if privilege.user == "root" else ["-u", privilege.user]
        if self._sudo_password and not self.is_root():
            stdin = self._sudo_password + "\n" + (input or "")
            return ["sudo", "-S", "-k", "-p", "", *target, *command], stdin
        return ["sudo", "-n", *target, *command], input


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _decode(data: bytes | str | None) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data
