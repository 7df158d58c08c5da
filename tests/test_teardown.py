"""
Tests for the best-effort teardown stage.
"""

from pathlib import Path

from devstack.adapters.host import Host
from devstack.adapters.mock import FakeRunner
from devstack.core.engine.teardown import teardown
from devstack.core.models.service import ManagedService, TeardownSpec
from devstack.core.persistence.audit import AuditWriter
from devstack.core.services.catalog import build_catalog
from devstack.core.services.profile_block import ProfileBlock, upsert_block
from devstack.core.use_cases.teardown import run_teardown

CONDA_INIT = (
    "# >>> conda initialize >>>\n"
    "__conda_setup=\"$('/opt/conda/bin/conda' 'shell.bash' 'hook')\"\n"
    "# <<< conda initialize <<<\n"
)


class TestTeardownStage:

    def test_order_per_service(self, settings, host: Host, runner: FakeRunner):
        teardown(build_catalog(settings, host), host, settings.general.profile)
        stop = runner.index("systemctl", "stop", "redis-server")
        purge = runner.index("apt-get", "purge", "-y", "redis*")
        assert -1 < stop < purge

    def test_autoremove_once_at_end(self, settings, host: Host, runner: FakeRunner):
        teardown(build_catalog(settings, host), host, settings.general.profile)
        assert runner.count("apt-get", "autoremove", "-y") == 1
        assert "autoremove" in runner.lines[-1]

    def test_system_paths_removed_as_root(self, settings, host: Host, runner: FakeRunner, host_tree: Path):
        teardown(build_catalog(settings, host), host, settings.general.profile)
        removal = [c for c in runner.calls if c.command[:2] == ["rm", "-rf"]]
        targets = {c.command[2] for c in removal}
        assert str(host_tree / "postgresql") in targets
        assert "/var/lib/postgresql" in targets
        assert "/usr/local/bin/node" in targets
        assert all(c.privilege.user == "root" for c in removal)

    def test_failures_are_warnings(self, settings, host: Host, runner: FakeRunner):
        runner.on("apt-get", "purge", returncode=100, stderr="E: Unable to locate package redis*")
        runner.on("systemctl", "stop", timed_out=True)
        report = teardown(build_catalog(settings, host), host, settings.general.profile)
        assert not report.clean
        assert any("purge redis*" in w for w in report.warnings)
        assert any("stop nginx" in w for w in report.warnings)
        # Still reached the end
        assert runner.count("apt-get", "autoremove", "-y") == 1

    def test_user_paths_profile_blocks_and_dotfiles(self, settings, host: Host, home: Path, tmp_path: Path):
        profile = home / ".bashrc"
        original = profile.read_text()
        text = original + CONDA_INIT
        text = upsert_block(text, ProfileBlock("miniconda", ("export PATH=/x:$PATH",)))
        text = upsert_block(text, ProfileBlock("npm", ("export PATH=/y:$PATH",)))
        profile.write_text(text)

        (tmp_path / "miniconda3" / "bin").mkdir(parents=True)
        (home / ".npm-global" / "lib").mkdir(parents=True)
        (home / ".condarc").write_text("auto_activate_base: false\n")
        (home / ".npmrc").write_text("prefix=/x\n")

        report = teardown(build_catalog(settings, host), host, profile)

        assert report.clean
        assert not (tmp_path / "miniconda3").exists()
        assert not (home / ".npm-global").exists()
        assert not (home / ".condarc").exists()
        assert not (home / ".npmrc").exists()
        # Surrounding profile content survives; blank separators may remain
        remaining = profile.read_text()
        assert remaining.startswith(original)
        assert "conda initialize" not in remaining
        assert "devstack" not in remaining

    def test_nothing_to_remove_is_clean(self, settings, host: Host):
        report = teardown(build_catalog(settings, host), host, settings.general.profile)
        assert report.clean
        assert report.services == ["postgresql", "miniconda", "redis", "nginx", "node"]

    def test_unreadable_profile_is_a_warning(self, host: Host, tmp_path: Path):
        profile = tmp_path / "profile-dir"
        profile.mkdir()
        service = ManagedService(
            name="x", teardown=TeardownSpec(profile_markers=(ProfileBlock("x").markers,)),
        )
        report = teardown([service], host, profile)
        assert len(report.warnings) == 1
        assert report.warnings[0].startswith("strip # >>> devstack x >>>")


class TestRunTeardown:

    def test_only_and_audit(self, settings, host: Host, runner: FakeRunner, tmp_path: Path):
        audit = AuditWriter(tmp_path / "audit.ndjson")
        report = run_teardown(settings, host, only=("redis",), audit=audit)

        assert report.services == ["redis"]
        assert not runner.ran("systemctl", "stop", "nginx")
        entries = audit.read_all()
        assert len(entries) == 1
        assert entries[0].operation_type == "teardown"
        assert entries[0].targets == ["redis"]
