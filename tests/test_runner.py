"""
Tests for the command executor, receipts and the error taxonomy.
"""

import pytest

from devstack.adapters.mock import FakeRunner
from devstack.adapters.shell.command import (
    ROOT,
    USER,
    CommandRunner,
    as_user,
    strict,
    tolerant,
)
from devstack.core.errors import (
    ConfigError,
    ExternalToolError,
    RunLockedError,
    VerificationError,
)
from devstack.core.models.receipt import Receipt


class TestClassifiers:

    def test_strict(self):
        assert strict(0, "", "") == "ok"
        assert strict(1, "", "") == "fatal"

    def test_tolerant(self):
        assert tolerant(0, "", "") == "ok"
        assert tolerant(100, "", "E: Unable to locate package") == "warning"


class TestCommandRunner:
    """Tests against real processes (sh, sleep)."""

    def test_success(self):
        receipt = CommandRunner().run(["sh", "-c", "echo hello"])
        assert receipt.status == "ok"
        assert receipt.return_code == 0
        assert receipt.stdout.strip() == "hello"

    def test_failure_is_captured(self):
        receipt = CommandRunner().run(["sh", "-c", "echo boom >&2; exit 3"])
        assert receipt.status == "failed"
        assert receipt.return_code == 3
        assert receipt.error == "boom"

    def test_tolerant_failure_is_warning(self):
        receipt = CommandRunner().run(["sh", "-c", "exit 1"], classify=tolerant)
        assert receipt.status == "warning"
        assert receipt.ok

    def test_timeout_distinct_from_failure(self):
        receipt = CommandRunner().run(["sleep", "5"], timeout=0.2)
        assert receipt.status == "timed_out"
        assert receipt.timed_out
        assert receipt.failed
        assert receipt.return_code is None

    def test_missing_binary(self):
        receipt = CommandRunner().run(["devstack-no-such-binary"])
        assert receipt.status == "failed"
        assert receipt.return_code == 127

    def test_input_and_cwd(self, tmp_path):
        receipt = CommandRunner().run(["sh", "-c", "cat; pwd"], input="abc\n", cwd=tmp_path)
        assert receipt.stdout.splitlines() == ["abc", str(tmp_path.resolve())]


class TestPrivilegeWrapping:
    """sudo prefixes, without running anything."""

    @pytest.fixture
    def non_root(self, monkeypatch):
        monkeypatch.setattr(CommandRunner, "is_root", staticmethod(lambda: False))

    def test_user_is_untouched(self, non_root):
        cmd, stdin = CommandRunner()._wrap(["ls"], USER, None)
        assert cmd == ["ls"]
        assert stdin is None

    def test_root_without_password(self, non_root):
        cmd, _ = CommandRunner()._wrap(["apt-get", "update"], ROOT, None)
        assert cmd == ["sudo", "-n", "apt-get", "update"]

    def test_password_goes_to_stdin(self, non_root):
        cmd, stdin = CommandRunner(sudo_password="pw")._wrap(["tee", "/etc/x"], ROOT, "data")
        assert cmd == ["sudo", "-S", "-k", "-p", "", "tee", "/etc/x"]
        assert "pw" not in cmd
        assert stdin == "pw\ndata"

    def test_other_user(self, non_root):
        cmd, _ = CommandRunner()._wrap(["psql"], as_user("postgres"), None)
        assert cmd == ["sudo", "-n", "-u", "postgres", "psql"]

    def test_root_adds_nothing_when_root(self, monkeypatch):
        monkeypatch.setattr(CommandRunner, "is_root", staticmethod(lambda: True))
        cmd, _ = CommandRunner()._wrap(["systemctl", "restart", "nginx"], ROOT, None)
        assert cmd == ["systemctl", "restart", "nginx"]

    def test_root_still_switches_user(self, monkeypatch):
        monkeypatch.setattr(CommandRunner, "is_root", staticmethod(lambda: True))
        cmd, _ = CommandRunner()._wrap(["psql"], as_user("postgres"), None)
        assert cmd == ["sudo", "-n", "-u", "postgres", "psql"]


class TestReceipt:

    def test_raise_for_status_ok(self):
        receipt = Receipt.success(["true"])
        assert receipt.raise_for_status("noop") is receipt

    def test_warning_does_not_raise(self):
        Receipt(command=["apt-get", "purge"], status="warning").raise_for_status("purge")

    def test_failure_raises_with_output(self):
        receipt = Receipt.failure(["nginx", "-t"], "emerg: unknown directive", return_code=1)
        receipt = receipt.model_copy(update={"stderr": "nginx: [emerg] unknown directive"})
        with pytest.raises(ExternalToolError) as exc:
            receipt.raise_for_status("validate configuration", "nginx")
        err = exc.value
        assert err.describe() == "validate configuration failed for nginx: emerg: unknown directive"
        assert "[emerg]" in err.stderr
        assert err.command == "nginx -t"
        assert not err.timed_out

    def test_timeout_raises_timed_out(self):
        receipt = Receipt(command=["apt-get", "install", "-y", "nginx"], status="timed_out")
        with pytest.raises(ExternalToolError) as exc:
            receipt.raise_for_status("install", "nginx")
        assert exc.value.timed_out
        assert "timed out" in exc.value.message


class TestErrors:

    def test_exit_codes(self):
        assert ConfigError("x").exit_code == 1
        assert ExternalToolError("x").exit_code == 2
        assert VerificationError("x").exit_code == 3
        assert RunLockedError("x").exit_code == 4

    def test_describe_without_step(self):
        assert VerificationError("bad").describe() == "bad"


class TestFakeRunner:

    def test_default_success_and_recording(self):
        runner = FakeRunner()
        assert runner.run(["systemctl", "restart", "nginx"], privilege=ROOT).ok
        assert runner.ran("restart", "nginx")
        assert runner.calls[0].privilege == ROOT

    def test_latest_rule_wins(self):
        runner = FakeRunner()
        runner.on("nginx", returncode=1)
        runner.on("nginx", "-t", returncode=0)
        assert runner.run(["nginx", "-t"]).ok
        assert runner.run(["nginx", "-s", "reload"]).failed

    def test_times_limits_rule(self):
        runner = FakeRunner().on("systemctl", "is-active", returncode=3, times=2)
        results = [runner.run(["systemctl", "is-active", "x"], classify=tolerant).status
                   for _ in range(3)]
        assert results == ["warning", "warning", "ok"]

    def test_timed_out_rule(self):
        runner = FakeRunner().on("apt-get", timed_out=True)
        assert runner.run(["apt-get", "update"]).status == "timed_out"
