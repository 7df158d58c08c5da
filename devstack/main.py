"""
devstack — CLI entrypoint.

Usage:
    devstack --help
    devstack install
    devstack scaffold myproject
    devstack verify
    devstack config check
"""

from __future__ import annotations

import functools
import json
import os
import sys
from pathlib import Path

import click

from devstack import __version__
from devstack.adapters.host import Host
from devstack.adapters.shell.command import CommandRunner
from devstack.core.config.loader import (
    INSTALL_CONFIG_FILE,
    INSTALL_SCHEMA,
    SCAFFOLD_SCHEMA,
    load_settings,
)
from devstack.core.errors import ConfigError, ExternalToolError, ProvisioningError
from devstack.core.models.settings import GeneralSettings, InstallSettings, Scope, section_view
from devstack.core.observability.logging_config import resolve_level, run_trail, setup_logging
from devstack.core.services.catalog import INSTALL_ORDER

ENV_SUDO_PASSWORD = "DEVSTACK_SUDO_PASSWORD"

_STATE_COLORS = {"verified": "green", "running": "yellow"}


@click.group()
@click.version_option(version=__version__, prog_name="devstack")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help=f"Path to the install configuration (default: ./{INSTALL_CONFIG_FILE}).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """devstack — provision a local development host."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else Path.cwd() / INSTALL_CONFIG_FILE

    # ── Logging setup (once, at process start) ──────────────────
    setup_logging(
        level=resolve_level(verbose=verbose, quiet=quiet, debug=debug),
        quiet_third_party=not debug,
    )


# ── Helpers ─────────────────────────────────────────────────────


def _exit_on_error(func):
    """Turn a ProvisioningError into a diagnostic and its exit code."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except ProvisioningError as e:
            _report_error(e)
            trail = click.get_current_context().obj.get("run_log")
            if trail:
                click.echo(f"   full log: {trail}", err=True)
            sys.exit(e.exit_code)

    return wrapper


def _report_error(error: ProvisioningError) -> None:
    click.secho(f"❌ {error.describe()}", fg="red", err=True)

    if isinstance(error, ConfigError) and error.raw_source:
        click.echo(f"\n--- {error.resource} ---", err=True)
        click.echo(error.raw_source.rstrip(), err=True)
        click.echo("---", err=True)

    if isinstance(error, ExternalToolError):
        if error.command:
            click.echo(f"   command: {error.command}", err=True)
        for label, text in (("stdout", error.stdout), ("stderr", error.stderr)):
            if text.strip():
                click.echo(f"   {label}:", err=True)
                click.echo(_indent(text.strip()), err=True)
        if error.logs:
            click.secho("   recent service logs:", fg="yellow", err=True)
            click.echo(_indent(error.logs), err=True)


def _indent(text: str, prefix: str = "     ") -> str:
    return "\n".join(prefix + line for line in text.splitlines())


def _install_settings(ctx: click.Context) -> InstallSettings:
    return InstallSettings.from_settings(load_settings(ctx.obj["config_path"], INSTALL_SCHEMA))


def _host(ctx: click.Context, timeout: float | None = None, privileged: bool = True) -> Host:
    """The host to act on. Tests inject one through ``ctx.obj['host']``."""
    host = ctx.obj.get("host")
    if host is None:
        runner = CommandRunner(sudo_password=os.environ.get(ENV_SUDO_PASSWORD, ""))
        if timeout is not None:
            runner.default_timeout = timeout
        host = Host.build(runner, timeout=timeout)
        ctx.obj["host"] = host

    if privileged and not host.runner.is_root() and not host.runner.prime_sudo():
        click.secho(
            "⚠️  Could not validate sudo credentials; privileged steps may fail.",
            fg="yellow",
            err=True,
        )
    return host


_only_option = click.option(
    "--only",
    multiple=True,
    type=click.Choice(INSTALL_ORDER),
    help="Restrict to a service (repeatable).",
)


# ── Commands ────────────────────────────────────────────────────


@cli.command()
@click.option("--no-teardown", is_flag=True, help="Keep prior installations in place.")
@click.option("--no-upgrade", is_flag=True, help="Skip apt-get upgrade.")
@_only_option
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
@_exit_on_error
def install(
    ctx: click.Context,
    no_teardown: bool,
    no_upgrade: bool,
    only: tuple[str, ...],
    as_json: bool,
) -> None:
    """Install, configure and verify every managed service."""
    from devstack.core.use_cases.install import run_install
    from devstack.core.use_cases.report import manual_commands

    settings = _install_settings(ctx)
    host = _host(ctx, timeout=settings.general.command_timeout)

    with run_trail("install") as trail:
        ctx.obj["run_log"] = trail
        report = run_install(
            settings,
            host,
            teardown=not no_teardown,
            upgrade=not no_upgrade,
            only=only or None,
        )

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
        return

    click.secho("\n✅ Installation complete", fg="green", bold=True)
    for service in report.services:
        note = " (already installed)" if service.skipped_install else ""
        click.echo(f"   • {service.name}: ", nl=False)
        click.secho(service.state.value, fg=_STATE_COLORS.get(service.state.value, "white"), nl=False)
        click.echo(f"{note}  {service.duration_ms}ms")

    if report.teardown and report.teardown.warnings:
        click.echo()
        click.secho(f"   Teardown warnings: {len(report.teardown.warnings)}", fg="yellow")

    if report.security_warnings:
        click.echo()
        click.secho("⚠️  Security warnings:", fg="yellow", bold=True)
        for warning in report.security_warnings:
            click.echo(f"   • {warning}")

    if not ctx.obj.get("quiet"):
        click.echo()
        click.secho("Manual test commands:", bold=True)
        for i, cmd in enumerate(manual_commands(settings), start=1):
            click.echo(f"  {i}. {cmd.title}")
            click.echo(f"     {cmd.command}")
            click.echo(f"     (expect: {cmd.expect})")
    click.echo()


@cli.command()
@_only_option
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
@_exit_on_error
def teardown(ctx: click.Context, only: tuple[str, ...], yes: bool) -> None:
    """Remove the managed services and their data."""
    from devstack.core.use_cases.teardown import run_teardown

    settings = _install_settings(ctx)
    targets = ", ".join(only) if only else "all services"
    if not yes:
        click.confirm(f"Remove {targets} and their data?", abort=True)

    host = _host(ctx, timeout=settings.general.command_timeout)
    with run_trail("teardown") as trail:
        ctx.obj["run_log"] = trail
        report = run_teardown(settings, host, only=only or None)

    click.secho(f"🧹 Removed {', '.join(report.services)}", fg="green")
    if report.warnings:
        click.secho(f"⚠️  {len(report.warnings)} warning(s):", fg="yellow")
        for warning in report.warnings:
            click.echo(f"   • {warning}")


@cli.command()
@click.argument("name", required=False)
@click.option(
    "--project-config",
    type=click.Path(exists=False),
    default=None,
    help="Project configuration (default: <NAME>.ini next to the install config).",
)
@click.pass_context
@_exit_on_error
def scaffold(ctx: click.Context, name: str | None, project_config: str | None) -> None:
    """Create a project with its database and environments."""
    from devstack.core.use_cases.scaffold import run_scaffold, validate_project_name

    if name is None:
        name = click.prompt("Project name", default="", show_default=False)
    name = validate_project_name(name)

    general = section_view(
        GeneralSettings, load_settings(ctx.obj["config_path"], SCAFFOLD_SCHEMA), Scope.GENERAL,
    )
    host = _host(ctx, timeout=general.command_timeout)
    with run_trail("scaffold") as trail:
        ctx.obj["run_log"] = trail
        layout = run_scaffold(
            name,
            ctx.obj["config_path"],
            host,
            project_config=Path(project_config) if project_config else None,
        )

    click.secho(f"\n✅ Project {layout.name} created in {layout.root}", fg="green", bold=True)
    click.echo(f"   frontend:   {layout.frontend}")
    click.echo(f"   python env: {layout.python_env}")
    click.echo(f"   database:   {layout.database} (owner {layout.role})")
    click.echo()


@cli.command()
@_only_option
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
@_exit_on_error
def verify(ctx: click.Context, only: tuple[str, ...], as_json: bool) -> None:
    """Probe every service without changing anything."""
    from devstack.core.errors import VerificationError
    from devstack.core.use_cases.verify import verify_services

    settings = _install_settings(ctx)
    result = verify_services(settings, _host(ctx, privileged=False), only=only or None)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        for check in result.checks:
            if check.ok:
                click.secho(f"   ✓ {check.name}", fg="green")
            else:
                click.secho(f"   ✗ {check.name}: {check.message}", fg="red")
            for warning in check.warnings:
                click.secho(f"     ⚠️  {warning}", fg="yellow")

    if not result.ok:
        sys.exit(VerificationError.exit_code)


@cli.command()
@click.pass_context
@_exit_on_error
def report(ctx: click.Context) -> None:
    """Print the manual test commands for the configured services."""
    from devstack.core.use_cases.report import manual_commands

    for i, cmd in enumerate(manual_commands(_install_settings(ctx)), start=1):
        click.echo(f"{i}. {cmd.title}")
        click.echo(f"   {cmd.command}")
        click.echo(f"   (expect: {cmd.expect})")


@cli.group()
def config() -> None:
    """Configuration commands."""


@config.command("check")
@click.option(
    "--project",
    "project_path",
    type=click.Path(exists=False),
    default=None,
    help="Check a project file instead of the install file.",
)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_check(ctx: click.Context, project_path: str | None, as_json: bool) -> None:
    """Validate a configuration file without touching the host."""
    from devstack.core.use_cases.config_check import check_config

    if project_path:
        result = check_config(Path(project_path), kind="project")
    else:
        result = check_config(ctx.obj["config_path"], kind="install")

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else 1)

    if result.valid:
        click.secho("✅ Configuration is valid", fg="green", bold=True)
        click.echo(f"   File: {result.config_path}")
        click.echo(f"   Keys: {result.key_count}")
    else:
        click.secho("❌ Configuration errors:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err}")
        if result.raw_source:
            click.echo(f"\n--- {result.config_path} ---", err=True)
            click.echo(result.raw_source.rstrip(), err=True)

    if result.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    if not result.valid:
        click.echo()
        sys.exit(1)

    click.echo()


if __name__ == "__main__":
    cli()
