"""
Tests for the per-service install state machine.
"""

from pathlib import Path

import pytest

from devstack.adapters.host import Host
from devstack.adapters.mock import FakeRunner
from devstack.core.engine.installer import ServiceInstaller
from devstack.core.errors import ExternalToolError, VerificationError
from devstack.core.models.service import (
    ConfigTarget,
    ManagedService,
    ServiceReport,
    ServiceState,
)
from devstack.core.services.config_patch import SetDirective
from devstack.core.services.profile_block import ProfileBlock

from tests.conftest import FakeClock


@pytest.fixture
def conf(tmp_path: Path) -> Path:
    path = tmp_path / "svc.conf"
    path.write_text("port 1\n")
    return path


@pytest.fixture
def installer(host: Host, home: Path, clock: FakeClock) -> ServiceInstaller:
    return ServiceInstaller(
        host, home / ".bashrc", service_timeout=10, sleep=clock.sleep, clock=clock,
    )


def daemon(conf: Path, **kwargs) -> ManagedService:
    defaults = dict(
        name="svc",
        packages=("svc-server",),
        unit="svc-server",
        config_targets=(ConfigTarget(rules=(SetDirective("port", "port 2"),), path=conf),),
    )
    defaults.update(kwargs)
    return ManagedService(**defaults)


class TestHappyPath:

    def test_reaches_verified(self, installer, runner: FakeRunner, conf: Path):
        calls = []
        service = daemon(
            conf,
            post_start=lambda: calls.append("post_start"),
            verify=lambda: calls.append("verify"),
        )
        report = installer.install(service)

        assert report.state == ServiceState.VERIFIED
        assert not report.skipped_install
        assert report.files_changed == [str(conf)]
        assert calls == ["post_start", "verify"]
        assert conf.read_text() == "port 2\n"

        order = [
            runner.index("apt-get", "install", "-y", "svc-server"),
            runner.index("systemctl", "enable", "svc-server"),
            runner.index("systemctl", "restart", "svc-server"),
            runner.index("systemctl", "is-active", "--quiet", "svc-server"),
        ]
        assert -1 not in order
        assert order == sorted(order)

    def test_skips_install_when_present(self, installer, runner: FakeRunner, conf: Path):
        runner.on("dpkg-query", stdout="install ok installed")
        report = installer.install(daemon(conf))
        assert report.skipped_install
        assert not runner.ran("apt-get", "install")
        # Configuration is still reconciled
        assert conf.read_text() == "port 2\n"
        assert report.state == ServiceState.VERIFIED

    def test_unchanged_config_not_reported(self, installer, conf: Path):
        conf.write_text("port 2\n")
        assert installer.install(daemon(conf)).files_changed == []

    def test_custom_install_hooks(self, installer, runner: FakeRunner, conf: Path):
        calls = []
        service = daemon(
            conf,
            is_installed=lambda: False,
            pre_install=lambda: calls.append("pre"),
            install=lambda: calls.append("install"),
        )
        installer.install(service)
        assert calls == ["pre", "install"]
        assert not runner.ran("apt-get", "install")

    def test_owner_and_mode(self, installer, runner: FakeRunner, conf: Path):
        target = ConfigTarget(
            rules=(SetDirective("port", "port 2"),), path=conf, owner="svc:svc", mode="640",
        )
        installer.install(daemon(conf, config_targets=(target,)))
        assert runner.ran("chown", "svc:svc", str(conf))
        assert runner.ran("chmod", "640", str(conf))

    def test_located_target_uses_highest_version(self, installer, tmp_path: Path):
        for version in ("9", "16"):
            d = tmp_path / "pg" / version / "main"
            d.mkdir(parents=True)
            (d / "x.conf").write_text("")
        target = ConfigTarget(
            rules=(SetDirective("a", "a = 1"),), locate=str(tmp_path / "pg" / "*" / "main" / "x.conf"),
        )
        report = installer.install(daemon(tmp_path, config_targets=(target,)))
        assert report.files_changed == [str(tmp_path / "pg" / "16" / "main" / "x.conf")]
        assert (tmp_path / "pg" / "9" / "main" / "x.conf").read_text() == ""

    def test_profile_block_installed_once(self, installer, home: Path, conf: Path):
        block = ProfileBlock("svc", ("export SVC=1",))
        first = installer.install(daemon(conf, profile_blocks=(block,)))
        second = installer.install(daemon(conf, profile_blocks=(block,)))
        assert str(home / ".bashrc") in first.files_changed
        assert second.files_changed == []
        assert (home / ".bashrc").read_text().count(block.begin) == 1

    def test_non_daemon_skips_unit_control(self, installer, runner: FakeRunner, conf: Path):
        report = installer.install(daemon(conf, unit=None))
        assert report.state == ServiceState.VERIFIED
        assert not runner.ran("systemctl")

    def test_waits_for_activation(self, installer, runner: FakeRunner, clock: FakeClock, conf: Path):
        runner.on("systemctl", "is-active", returncode=3, times=2)
        report = installer.install(daemon(conf))
        assert report.state == ServiceState.VERIFIED
        assert len(clock.sleeps) == 2

    def test_security_warning_recorded(self, installer, conf: Path):
        service = daemon(conf, security_check=lambda: "reachable from the network")
        report = installer.install(service)
        assert report.warnings == ["reachable from the network"]
        assert report.state == ServiceState.VERIFIED


class TestFailures:

    def test_missing_config_file(self, installer, tmp_path: Path):
        report = ServiceReport(name="svc")
        with pytest.raises(ExternalToolError) as exc:
            installer.install(daemon(tmp_path / "absent.conf"), report)
        assert exc.value.step == "configure"
        assert report.state == ServiceState.INSTALLED

    def test_no_glob_match(self, installer, tmp_path: Path):
        target = ConfigTarget(rules=(), locate=str(tmp_path / "none" / "*" / "x.conf"))
        with pytest.raises(ExternalToolError, match="no configuration file matches"):
            installer.install(daemon(tmp_path, config_targets=(target,)))

    def test_package_install_failure(self, installer, runner: FakeRunner, conf: Path):
        runner.on("apt-get", "install", returncode=100, stderr="E: Unable to locate package")
        report = ServiceReport(name="svc")
        with pytest.raises(ExternalToolError) as exc:
            installer.install(daemon(conf), report)
        assert exc.value.step == "install"
        assert "Unable to locate package" in exc.value.stderr
        assert report.state == ServiceState.NOT_INSTALLED

    def test_restart_failure_attaches_journal(self, installer, runner: FakeRunner, conf: Path):
        runner.on("systemctl", "restart", returncode=1, stderr="Job failed")
        runner.on("journalctl", stdout="svc-server: bad config line 3")
        report = ServiceReport(name="svc")
        with pytest.raises(ExternalToolError) as exc:
            installer.install(daemon(conf), report)
        assert exc.value.step == "restart"
        assert "bad config line 3" in exc.value.logs
        assert report.state == ServiceState.ENABLED

    def test_never_active_times_out(self, installer, runner: FakeRunner, clock: FakeClock, conf: Path):
        runner.on("systemctl", "is-active", returncode=3)
        runner.on("journalctl", stdout="svc-server crashed")
        with pytest.raises(ExternalToolError) as exc:
            installer.install(daemon(conf))
        err = exc.value
        assert err.timed_out
        assert err.step == "start"
        assert err.logs == "svc-server crashed"
        assert clock.now == pytest.approx(10)

    def test_verification_failure(self, installer, conf: Path):
        def fail():
            raise VerificationError("PING failed", step="verify", resource="redis://127.0.0.1:6379")

        report = ServiceReport(name="svc")
        with pytest.raises(VerificationError):
            installer.install(daemon(conf, verify=fail), report)
        assert report.state == ServiceState.RUNNING
        assert report.duration_ms >= 0

    def test_post_start_failure_stops_before_verify(self, installer, runner: FakeRunner, conf: Path):
        verified = []
        runner.on("journalctl", stdout="svc-server: FATAL: role bootstrap refused")

        def fail():
            raise ExternalToolError("role creation failed", step="create role")

        with pytest.raises(ExternalToolError) as exc:
            installer.install(daemon(conf, post_start=fail, verify=lambda: verified.append(1)))
        assert verified == []
        assert "role bootstrap refused" in exc.value.logs
        assert runner.ran("journalctl", "-u", "svc-server")

    def test_post_start_failure_without_unit_has_no_journal(self, installer, runner: FakeRunner, conf: Path):
        def fail():
            raise ExternalToolError("hook failed", step="post-start")

        with pytest.raises(ExternalToolError) as exc:
            installer.install(daemon(conf, unit=None, post_start=fail))
        assert exc.value.logs == ""
        assert not runner.ran("journalctl")


def test_report_to_dict(installer, conf: Path):
    data = installer.install(daemon(conf)).to_dict()
    assert data["state"] == "verified"
    assert data["name"] == "svc"
