"""
Fakes — test doubles for the command runner and protocol probes.

``FakeRunner`` records every command and answers from scripted rules
(success by default), so the whole orchestrator can run against a fake
host. ``FakeProbes`` does the same for live protocol checks.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from devstack.adapters.probes import Probes
from devstack.adapters.shell.command import (
    USER,
    Classifier,
    CommandRunner,
    Privilege,
    strict,
)
from devstack.core.errors import VerificationError
from devstack.core.models.receipt import Receipt

NGINX_TEST_BODY = "<html><body><h1>Hello, Nginx!</h1></body></html>"


@dataclass
class CommandCall:
    """One recorded ``run`` invocation."""

    command: list[str]
    privilege: Privilege = USER
    cwd: str | None = None
    input: str | None = None
    timeout: float | None = None

    @property
    def line(self) -> str:
        return " ".join(self.command)


@dataclass
class _Rule:
    pattern: tuple[str, ...]
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    handler: Callable[[CommandCall], None] | None = None
    times: int | None = None


def _contains(command: Sequence[str], pattern: Sequence[str]) -> bool:
    """Whether ``pattern`` occurs as a contiguous run of tokens in ``command``."""
    n = len(pattern)
    return any(tuple(command[i:i + n]) == tuple(pattern) for i in range(len(command) - n + 1))


class FakeRunner(CommandRunner):
    """Command runner that never touches the host.

    Rules match when their tokens appear contiguously in the command;
    the most recently added matching rule wins. Unmatched commands succeed.
    """

    def __init__(self, root: bool = True):
        super().__init__()
        self.calls: list[CommandCall] = []
        self._rules: list[_Rule] = []
        self._root = root

    def is_root(self) -> bool:
        return self._root

    def prime_sudo(self) -> bool:
        return True

    def on(
        self,
        *pattern: str,
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
        timed_out: bool = False,
        handler: Callable[[CommandCall], None] | None = None,
        times: int | None = None,
    ) -> FakeRunner:
        """Script the answer for commands containing ``pattern``.

        ``times`` limits how many calls the rule answers before it is
        skipped; ``handler`` runs for its side effects (e.g. creating
        files a real tool would create).
        """
        self._rules.append(_Rule(
            pattern=pattern,
            returncode=returncode,
            stdout=stdout,
            stderr=stderr,
            timed_out=timed_out,
            handler=handler,
            times=times,
        ))
        return self

    def run(
        self,
        cmd: Sequence[str],
        *,
        privilege: Privilege = USER,
        classify: Classifier = strict,
        timeout: float | None = None,
        cwd=None,
        env: dict[str, str] | None = None,
        input: str | None = None,
    ) -> Receipt:
        call = CommandCall(
            command=list(cmd),
            privilege=privilege,
            cwd=str(cwd) if cwd is not None else None,
            input=input,
            timeout=timeout,
        )
        self.calls.append(call)

        rule = self._match(call.command)
        if rule is None:
            return Receipt.success(call.command)
        if rule.times is not None:
            rule.times -= 1
        if rule.handler is not None:
            rule.handler(call)
        if rule.timed_out:
            return Receipt(
                command=call.command,
                status="timed_out",
                error=f"Command timed out after {timeout}s",
            )

        outcome = classify(rule.returncode, rule.stdout, rule.stderr)
        status = {"ok": "ok", "warning": "warning", "fatal": "failed"}[outcome]
        return Receipt(
            command=call.command,
            status=status,
            return_code=rule.returncode,
            stdout=rule.stdout,
            stderr=rule.stderr,
            error=None if outcome == "ok" else (
                rule.stderr or f"Command exited with code {rule.returncode}"
            ),
        )

    def _match(self, command: list[str]) -> _Rule | None:
        for rule in reversed(self._rules):
            if rule.times is not None and rule.times <= 0:
                continue
            if _contains(command, rule.pattern):
                return rule
        return None

    # ── Inspection ──────────────────────────────────────────────

    @property
    def lines(self) -> list[str]:
        return [c.line for c in self.calls]

    def ran(self, *pattern: str) -> bool:
        return any(_contains(c.command, pattern) for c in self.calls)

    def count(self, *pattern: str) -> int:
        return sum(1 for c in self.calls if _contains(c.command, pattern))

    def index(self, *pattern: str) -> int:
        """Position of the first call containing ``pattern`` (-1 if none)."""
        for i, c in enumerate(self.calls):
            if _contains(c.command, pattern):
                return i
        return -1

    def reset(self) -> None:
        self.calls.clear()
        self._rules.clear()


@dataclass
class FakeProbes(Probes):
    """Probe double: everything healthy unless told otherwise."""

    failing: set[str] = field(default_factory=set)
    reachable: set[str] = field(default_factory=set)
    body: str = NGINX_TEST_BODY
    calls: list[tuple[str, str]] = field(default_factory=list)

    def __post_init__(self):
        super().__init__()

    def postgres(self, *, host, port, user, password, database) -> None:
        resource = f"postgresql://{user}@{host}:{port}/{database}"
        self.calls.append(("postgres", resource))
        if "postgres" in self.failing or resource in self.failing:
            raise VerificationError("connection refused", step="verify", resource=resource)

    def redis_ping(self, *, host, port, password) -> None:
        resource = f"redis://{host}:{port}"
        self.calls.append(("redis", resource))
        if "redis" in self.failing:
            raise VerificationError("PING failed", step="verify", resource=resource)

    def http_get(self, url: str, expect: str | None = None) -> str:
        self.calls.append(("http_get", url))
        if "http" in self.failing or url in self.failing:
            raise VerificationError("GET failed", step="verify", resource=url)
        if expect is not None and expect not in self.body:
            raise VerificationError(
                f"response does not contain {expect!r}", step="verify", resource=url,
            )
        return self.body

    def http_reachable(self, url: str) -> bool:
        self.calls.append(("http_reachable", url))
        return url in self.reachable or "*" in self.reachable
