"""
Shared test fixtures and configuration.

Every test runs against a fake host: commands go to a FakeRunner, probes
to FakeProbes, and every path the configuration names lives under
``tmp_path``.
"""

import textwrap
from pathlib import Path

import pytest

from devstack.adapters.host import Host
from devstack.adapters.languages.python import CondaManager
from devstack.adapters.mock import FakeProbes, FakeRunner
from devstack.core.config.loader import INSTALL_SCHEMA, load_settings
from devstack.core.models.settings import InstallSettings

REDIS_CONF = textwrap.dedent("""\
    # Redis configuration file example.
    bind 127.0.0.1 ::1
    protected-mode no
    port 6379
    # requirepass foobared
    daemonize yes
""")

NGINX_CONF = textwrap.dedent("""\
    user www-data;
    worker_processes auto;

    events {
    \tworker_connections 768;
    }

    http {
    \tsendfile on;
    \t# server_tokens off;
    \tinclude /etc/nginx/sites-enabled/*;
    }
""")

POSTGRESQL_CONF = textwrap.dedent("""\
    data_directory = '/var/lib/postgresql/16/main'
    #listen_addresses = 'localhost'\t\t# what IP address(es) to listen on;
    port = 5432
""")

PG_HBA_CONF = textwrap.dedent("""\
    local   all             postgres                                peer
    local   all             all                                     peer
""")


class FakeClock:
    """Monotonic clock that only moves when something sleeps."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture(autouse=True)
def isolated_state(tmp_path: Path, monkeypatch) -> None:
    """Keep the lock file, audit ledger and run logs inside the test's tmp dir."""
    monkeypatch.setenv("DEVSTACK_LOCK_FILE", str(tmp_path / "devstack.lock"))
    monkeypatch.setenv("DEVSTACK_AUDIT_FILE", str(tmp_path / "state" / "audit.ndjson"))
    monkeypatch.setenv("DEVSTACK_LOG_DIR", str(tmp_path / "state" / "logs"))


@pytest.fixture
def home(tmp_path: Path) -> Path:
    home = tmp_path / "home"
    home.mkdir()
    (home / ".bashrc").write_text("export EDITOR=vim\n")
    return home


@pytest.fixture
def host_tree(tmp_path: Path) -> Path:
    """Config files a freshly installed host would have."""
    etc = tmp_path / "etc"
    (etc / "redis").mkdir(parents=True)
    (etc / "redis" / "redis.conf").write_text(REDIS_CONF)

    (etc / "nginx" / "sites-available").mkdir(parents=True)
    (etc / "nginx" / "sites-enabled").mkdir(parents=True)
    (etc / "nginx" / "nginx.conf").write_text(NGINX_CONF)
    (etc / "nginx" / "sites-available" / "default").write_text("server { listen 80; }\n")

    pg = etc / "postgresql" / "16" / "main"
    pg.mkdir(parents=True)
    (pg / "postgresql.conf").write_text(POSTGRESQL_CONF)
    (pg / "pg_hba.conf").write_text(PG_HBA_CONF)
    return etc


@pytest.fixture
def install_ini(tmp_path: Path, home: Path, host_tree: Path) -> Path:
    """An install_tools.ini whose every path points into tmp_path."""
    content = textwrap.dedent(f"""\
        [General]
        projects_dir = {tmp_path}/projects
        service_timeout = 5
        profile = {home}/.bashrc

        [PostgreSQL]
        user = devuser
        password = pg-secret
        database = devdb
        conf_dir = {host_tree}/postgresql

        [Redis]
        config = {host_tree}/redis/redis.conf
        password = redis-secret
        port = 6380

        [Nginx]
        config = {host_tree}/nginx/nginx.conf
        sites_available = {host_tree}/nginx/sites-available/default
        sites_enabled = {host_tree}/nginx/sites-enabled/default
        port = 8080
        html_dir = {tmp_path}/www
        index_file = index.html

        [Miniconda]
        install_dir = {tmp_path}/miniconda3
        auto_activate_base = false

        [npm]
        install_dir = {home}/.npm-global
        node_version = 20
    """)
    path = tmp_path / "install_tools.ini"
    path.write_text(content)
    return path


@pytest.fixture
def settings(install_ini: Path) -> InstallSettings:
    return InstallSettings.from_settings(load_settings(install_ini, INSTALL_SCHEMA))


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def probes() -> FakeProbes:
    return FakeProbes()


@pytest.fixture
def host(runner: FakeRunner, probes: FakeProbes, home: Path) -> Host:
    return Host.build(runner, probes=probes, home=home)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def conda_installer(tmp_path: Path, runner: FakeRunner, monkeypatch) -> Path:
    """Serve the Miniconda installer locally and make running it create conda."""
    script = tmp_path / "miniconda.sh"
    script.write_text("#!/bin/bash\n")
    monkeypatch.setattr(
        CondaManager, "download_installer", lambda self, url, target_dir=None: script,
    )

    def _install(call) -> None:
        prefix = Path(call.command[call.command.index("-p") + 1])
        (prefix / "bin").mkdir(parents=True, exist_ok=True)
        (prefix / "bin" / "conda").write_text("#!/bin/sh\n")

    runner.on("bash", str(script), handler=_install)
    return script
