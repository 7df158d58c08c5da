"""
Service catalog — the five managed services, described as data.

Each builder turns typed settings plus host capabilities into a
ManagedService. The installer and the teardown stage never special-case
a service by name; everything that differs between PostgreSQL, Redis,
Nginx, Miniconda and Node.js is expressed here.

Install order matters: PostgreSQL, Miniconda, Redis, Nginx, Node.js.
"""

from __future__ import annotations

import logging
import socket
from pathlib import Path

from devstack.adapters.host import Host
from devstack.adapters.shell.command import ROOT, tolerant
from devstack.core.errors import ConfigError, VerificationError
from devstack.core.models.receipt import Receipt
from devstack.core.models.service import ConfigTarget, ManagedService, TeardownSpec
from devstack.core.models.settings import InstallSettings
from devstack.core.services.config_patch import EnsureLine, SetDirective, backup_path
from devstack.core.services.database import BootstrapPolicy, DatabaseBootstrap
from devstack.core.services.profile_block import CONDA_INIT_MARKERS, ProfileBlock

logger = logging.getLogger(__name__)

POSTGRES_DATA_DIR = Path("/var/lib/postgresql")
POSTGRES_RUN_DIR = Path("/var/run/postgresql")
POSTGRES_LOG_DIR = Path("/var/log/postgresql")

NGINX_GREETING = "Hello, Nginx!"
NGINX_INDEX_BODY = f"<html><body><h1>{NGINX_GREETING}</h1></body></html>\n"
NGINX_USER = "www-data:www-data"

INSTALL_ORDER = ("postgresql", "miniconda", "redis", "nginx", "node")


def build_catalog(settings: InstallSettings, host: Host) -> list[ManagedService]:
    """All managed services, in install order."""
    return [
        postgres_service(settings, host),
        miniconda_service(settings, host),
        redis_service(settings, host),
        nginx_service(settings, host),
        node_service(settings, host),
    ]


def _verified(receipt: Receipt, resource: str) -> None:
    """Turn a failed version check into a VerificationError."""
    if receipt.failed:
        raise VerificationError(
            receipt.error or f"{receipt.command_line} failed",
            step="verify",
            resource=resource,
        )
    logger.info("%s: %s", resource, receipt.stdout.strip())


# ── PostgreSQL ──────────────────────────────────────────────────


def postgres_service(settings: InstallSettings, host: Host) -> ManagedService:
    db = settings.database
    conf_root = db.conf_dir
    runner = host.runner

    def pre_install() -> None:
        # The packages expect the account and run directories to exist
        if runner.run(["id", "postgres"], classify=tolerant, timeout=10).status != "ok":
            runner.run(
                ["adduser", "--system", "--group", "--no-create-home", "postgres"],
                privilege=ROOT,
                timeout=60,
            ).raise_for_status("create system user", "postgres")
        for path, mode in ((POSTGRES_DATA_DIR, "700"), (POSTGRES_RUN_DIR, "775")):
            runner.run(
                ["install", "-d", "-o", "postgres", "-g", "postgres", "-m", mode, str(path)],
                privilege=ROOT,
                timeout=60,
            ).raise_for_status("prepare directory", str(path))

    def bootstrap() -> None:
        DatabaseBootstrap(host.postgres, BootstrapPolicy.DROP_THEN_CREATE).provision(
            database=db.database, role=db.user, password=db.password,
        )

    def verify() -> None:
        host.probes.postgres(
            host=db.host,
            port=db.port,
            user=db.user,
            password=db.password,
            database=db.database,
        )

    return ManagedService(
        name="postgresql",
        packages=("postgresql", "postgresql-contrib"),
        unit="postgresql",
        pre_install=pre_install,
        config_targets=(
            ConfigTarget(
                locate=str(conf_root / "*" / "main" / "postgresql.conf"),
                rules=(SetDirective(
                    "listen_addresses",
                    "listen_addresses = 'localhost'",
                    match_commented=True,
                ),),
            ),
            ConfigTarget(
                locate=str(conf_root / "*" / "main" / "pg_hba.conf"),
                rules=(EnsureLine("host all all 127.0.0.1/32 md5"),),
            ),
        ),
        post_start=bootstrap,
        verify=verify,
        teardown=TeardownSpec(
            unit="postgresql",
            purge=("postgresql*",),
            system_paths=(conf_root, POSTGRES_DATA_DIR, POSTGRES_LOG_DIR, POSTGRES_RUN_DIR),
        ),
    )


# ── Miniconda ───────────────────────────────────────────────────


def miniconda_service(settings: InstallSettings, host: Host) -> ManagedService:
    env = settings.python_env
    conda = host.conda(env.install_dir)

    def install() -> None:
        script = conda.download_installer(env.installer_url)
        try:
            conda.run_installer(script).raise_for_status("install", "miniconda")
        finally:
            host.files.remove(script)

    def configure() -> None:
        conda.set_auto_activate_base(env.auto_activate_base).raise_for_status(
            "configure", "miniconda",
        )

    def verify() -> None:
        _verified(conda.version(), "conda")

    return ManagedService(
        name="miniconda",
        is_installed=conda.is_installed,
        install=install,
        configure=configure,
        profile_blocks=(ProfileBlock("miniconda", tuple(conda.profile_lines())),),
        verify=verify,
        teardown=TeardownSpec(
            paths=(env.install_dir,),
            profile_markers=(CONDA_INIT_MARKERS, ProfileBlock("miniconda").markers),
            dotfiles=(host.home / ".condarc",),
        ),
    )


# ── Redis ───────────────────────────────────────────────────────


def redis_service(settings: InstallSettings, host: Host) -> ManagedService:
    cache = settings.cache

    def verify() -> None:
        host.probes.redis_ping(host=cache.host, port=cache.port, password=cache.password)

    return ManagedService(
        name="redis",
        packages=("redis-server",),
        unit="redis-server",
        config_targets=(
            ConfigTarget(
                path=cache.config,
                rules=(
                    SetDirective("bind", "bind 127.0.0.1"),
                    SetDirective("protected-mode", "protected-mode yes"),
                    SetDirective("requirepass", f"requirepass {cache.password}"),
                    SetDirective("port", f"port {cache.port}"),
                ),
                owner="redis:redis",
                mode="640",
            ),
        ),
        verify=verify,
        teardown=TeardownSpec(unit="redis-server", purge=("redis*",)),
    )


# ── Nginx ───────────────────────────────────────────────────────


def render_site(settings: InstallSettings) -> str:
    """Default server block: loopback only, static files from html_dir."""
    web = settings.web_server
    return (
        "server {\n"
        f"    listen 127.0.0.1:{web.port} default_server;\n"
        "    server_name localhost;\n"
        "\n"
        f"    root {web.html_dir};\n"
        f"    index {web.index_file};\n"
        "\n"
        "    location / {\n"
        f"        try_files $uri $uri/ /{web.index_file};\n"
        "    }\n"
        "}\n"
    )


def nginx_service(settings: InstallSettings, host: Host) -> ManagedService:
    web = settings.web_server
    files = host.files

    def configure() -> None:
        files.make_dirs(web.html_dir)
        files.write_text(web.html_dir / web.index_file, NGINX_INDEX_BODY)
        files.chown(web.html_dir, NGINX_USER, recursive=True)
        files.chmod(web.html_dir, "755", recursive=True)

        site = render_site(settings)
        current = files.read_text(web.sites_available) if files.exists(web.sites_available) else None
        if current != site:
            if current is not None:
                backup = backup_path(web.sites_available)
                if not files.exists(backup):
                    files.copy(web.sites_available, backup)
            files.write_text(web.sites_available, site)
            logger.info("Wrote site %s", web.sites_available)
        files.symlink(web.sites_available, web.sites_enabled)

        host.runner.run(["nginx", "-t"], privilege=ROOT, timeout=60).raise_for_status(
            "validate configuration", "nginx",
        )

    def verify() -> None:
        host.probes.http_get(f"http://127.0.0.1:{web.port}/", expect=NGINX_GREETING)

    def security_check() -> str | None:
        url = f"http://{socket.gethostname()}:{web.port}/"
        if host.probes.http_reachable(url):
            return f"nginx answers on a non-loopback address ({url}); check the listen directives"
        return None

    return ManagedService(
        name="nginx",
        packages=("nginx",),
        unit="nginx",
        config_targets=(
            ConfigTarget(
                path=web.config,
                rules=(SetDirective(
                    "server_tokens",
                    "server_tokens off;",
                    match_commented=True,
                    insert_after=r"^\s*http\s*\{",
                    indent="    ",
                ),),
            ),
        ),
        configure=configure,
        verify=verify,
        security_check=security_check,
        teardown=TeardownSpec(unit="nginx", purge=("nginx*",)),
    )


# ── Node.js / npm ───────────────────────────────────────────────


def node_service(settings: InstallSettings, host: Host) -> ManagedService:
    npm = settings.package_manager
    node = host.node

    def configure() -> None:
        node.install_version_manager().raise_for_status("install n", "npm")
        node.install_node(npm.node_version).raise_for_status(
            "install node", npm.node_version,
        )
        host.files.make_dirs(npm.install_dir)
        node.set_prefix(npm.install_dir).raise_for_status("configure", "npm")

    def verify() -> None:
        _verified(node.version(), "npm")

    return ManagedService(
        name="node",
        packages=("nodejs", "npm"),
        configure=configure,
        profile_blocks=(ProfileBlock("npm", tuple(node.profile_lines(npm.install_dir))),),
        verify=verify,
        teardown=TeardownSpec(
            purge=("nodejs", "npm"),
            paths=(npm.install_dir, host.home / ".nvm"),
            system_paths=(Path("/usr/local/bin/node"), Path("/usr/local/bin/npm")),
            profile_markers=(ProfileBlock("npm").markers,),
            dotfiles=(host.home / ".npmrc",),
        ),
    )


def select(
    services: list[ManagedService],
    only: tuple[str, ...] | None,
) -> list[ManagedService]:
    """Restrict a catalog to the named services, keeping install order.

    Raises:
        ConfigError: If a name matches no service.
    """
    if not only:
        return services
    known = {s.name for s in services}
    unknown = sorted(set(only) - known)
    if unknown:
        raise ConfigError(
            f"unknown service(s): {', '.join(unknown)} "
            f"(choose from {', '.join(s.name for s in services)})",
        )
    return [s for s in services if s.name in only]
