"""
Error taxonomy — every fatal path ends in one of these.

Core code raises; adapters return receipts and never raise for tool
failures. The CLI is the only place that turns an error into a
process exit code.

Exit codes:
    1  ConfigError        missing/empty/invalid configuration
    2  ExternalToolError  package manager, service manager, psql, ...
    3  VerificationError  post-step health or connectivity check
    4  RunLockedError     another provisioning run holds the host lock
"""

from __future__ import annotations


class ProvisioningError(Exception):
    """Base class for errors that abort a provisioning run."""

    exit_code = 1

    def __init__(self, message: str, *, step: str = "", resource: str = ""):
        super().__init__(message)
        self.step = step
        self.resource = resource

    @property
    def message(self) -> str:
        return str(self.args[0]) if self.args else ""

    def describe(self) -> str:
        """One-line diagnostic naming the step and resource."""
        if self.step and self.resource:
            return f"{self.step} failed for {self.resource}: {self.message}"
        if self.step:
            return f"{self.step} failed: {self.message}"
        return self.message


class ConfigError(ProvisioningError):
    """Raised when configuration is missing, empty, or invalid.

    ``raw_source`` holds the full text of the configuration source so the
    operator can see what was actually read.
    """

    exit_code = 1

    def __init__(
        self,
        message: str,
        *,
        section: str = "",
        key: str = "",
        source: str = "",
        raw_source: str = "",
    ):
        super().__init__(message, step="configuration", resource=source)
        self.section = section
        self.key = key
        self.raw_source = raw_source


class ExternalToolError(ProvisioningError):
    """A command against an external tool failed or timed out."""

    exit_code = 2

    def __init__(
        self,
        message: str,
        *,
        step: str = "",
        resource: str = "",
        command: str = "",
        stdout: str = "",
        stderr: str = "",
        timed_out: bool = False,
    ):
        super().__init__(message, step=step, resource=resource)
        self.command = command
        self.stdout = stdout
        self.stderr = stderr
        self.timed_out = timed_out
        self.logs = ""

    def attach_logs(self, logs: str) -> None:
        """Attach recent service log output for the operator."""
        self.logs = logs


class VerificationError(ProvisioningError):
    """A post-step health or connectivity check failed."""

    exit_code = 3


class RunLockedError(ProvisioningError):
    """Another provisioning run already holds the host lock."""

    exit_code = 4
