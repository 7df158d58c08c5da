"""
Scaffold use case — create a project wired to its own database and
isolated JS/Python environments.

Re-running for an existing project converges instead of failing: missing
pieces are created, existing ones are reconciled (role password reset,
dependency re-installed, ignore block rewritten).

Layout::

    <projects_dir>/<name>/
        .gitignore              managed block
        frontend/               npm project + <dependency>
        backend/conda_<name>/   conda prefix env, python=<version>
"""

from __future__ import annotations

import logging
import time
from pathlib import Path

from devstack.adapters.database.postgres import quote_identifier
from devstack.adapters.host import Host
from devstack.adapters.languages.python import CondaManager
from devstack.core.config.loader import (
    PROJECT_SCHEMA,
    SCAFFOLD_SCHEMA,
    load_settings,
    project_config_path,
)
from devstack.core.engine.lock import host_lock
from devstack.core.errors import ConfigError, ExternalToolError, ProvisioningError, VerificationError
from devstack.core.models.project import ProjectLayout
from devstack.core.models.settings import ProjectSettings, Scope, Settings
from devstack.core.persistence.audit import AuditEntry, AuditWriter
from devstack.core.services.config_patch import EnsureLine, apply_rules
from devstack.core.services.database import BootstrapPolicy, DatabaseBootstrap
from devstack.core.services.profile_block import ProfileBlock, install_block

logger = logging.getLogger(__name__)

DEFAULT_DB_HOST = "127.0.0.1"
DEFAULT_DB_PORT = 5432


def validate_project_name(name: str) -> str:
    """A project name becomes a directory and part of SQL identifiers."""
    name = name.strip()
    if not name:
        raise ConfigError("project name cannot be empty")
    if "/" in name or name in (".", ".."):
        raise ConfigError(f"'{name}' is not a valid project name")
    return name


def scaffold(
    name: str,
    settings: Settings,
    project_settings: ProjectSettings,
    host: Host,
) -> ProjectLayout:
    """Create (or converge) one project and verify it.

    Args:
        name: Project name.
        settings: Install settings (``General.projects_dir``,
            ``Miniconda.install_dir``).
        project_settings: Per-project settings.
        host: Host capabilities.

    Returns:
        The project layout.

    Raises:
        ConfigError: Invalid name or derived identifiers.
        ExternalToolError: A tool step failed.
        VerificationError: A post-scaffold check failed.
    """
    name = validate_project_name(name)
    projects_dir = Path(settings.require(Scope.GENERAL, "projects_dir")).expanduser()
    conda_dir = Path(settings.require(Scope.PYTHON_ENV, "install_dir")).expanduser()
    layout = ProjectLayout.plan(name, projects_dir, project_settings)

    # Fail before touching anything if the names cannot be SQL identifiers
    quote_identifier(layout.role)
    quote_identifier(layout.database)

    conda = host.conda(conda_dir)
    if not conda.is_installed():
        raise ExternalToolError(
            "conda not found; run the install first",
            step="scaffold",
            resource=str(conda.conda_bin),
        )

    logger.info("Scaffolding project %s in %s", name, layout.root)
    for directory in (layout.root, layout.frontend, layout.backend):
        host.files.make_dirs(directory)

    _frontend(layout, project_settings, host)
    _backend(layout, project_settings, conda)
    DatabaseBootstrap(host.postgres, BootstrapPolicy.CREATE_IF_ABSENT).provision(
        database=layout.database, role=layout.role, password=layout.password,
    )
    _repository(layout, host)

    db = settings.section(Scope.DATABASE)
    verify_project(
        layout,
        project_settings,
        host,
        conda,
        db_host=db.get("host", DEFAULT_DB_HOST),
        db_port=int(db.get("port", DEFAULT_DB_PORT)),
    )
    logger.info("Project %s ready", name)
    return layout


# ── Steps ───────────────────────────────────────────────────────


def _frontend(layout: ProjectLayout, project_settings: ProjectSettings, host: Host) -> None:
    node = host.node
    if not (layout.frontend / "package.json").is_file():
        node.init(layout.frontend).raise_for_status("npm init", str(layout.frontend))
    node.add_dependency(layout.frontend, project_settings.dependency).raise_for_status(
        "npm install", project_settings.dependency,
    )

    ignore = layout.frontend / ".gitignore"
    current = host.files.read_text(ignore) if host.files.exists(ignore) else ""
    updated = apply_rules(current, [EnsureLine("node_modules/")])
    if updated != current:
        host.files.write_text(ignore, updated)


def _backend(layout: ProjectLayout, project_settings: ProjectSettings, conda: CondaManager) -> None:
    for receipt in conda.accept_tos():
        if receipt.status != "ok":
            logger.warning("Could not accept channel terms: %s", receipt.error)

    if conda.env_exists(layout.python_env):
        logger.info("Conda environment %s already exists", layout.python_env)
        return
    conda.create_env(layout.python_env, project_settings.python_version).raise_for_status(
        "conda create", str(layout.python_env),
    )


def _repository(layout: ProjectLayout, host: Host) -> None:
    if not host.git.is_repository(layout.root):
        host.git.init(layout.root).raise_for_status("git init", str(layout.root))
    install_block(
        host.files,
        layout.gitignore,
        ProfileBlock("ignore", tuple(layout.ignore_patterns())),
    )


# ── Verification ────────────────────────────────────────────────


def verify_project(
    layout: ProjectLayout,
    project_settings: ProjectSettings,
    host: Host,
    conda: CondaManager,
    db_host: str = DEFAULT_DB_HOST,
    db_port: int = DEFAULT_DB_PORT,
) -> None:
    """Check every environment the scaffold created.

    Raises:
        VerificationError: Naming the failing sub-check.
    """
    dependency = project_settings.dependency

    listed = host.node.list_dependency(layout.frontend, dependency)
    if listed.failed:
        raise VerificationError(
            listed.error or "npm ls failed", step="verify npm", resource=dependency,
        )
    if dependency not in host.node.declared_dependencies(layout.frontend):
        raise VerificationError(
            "dependency missing from package.json", step="verify npm", resource=dependency,
        )

    version_receipt = conda.python_version(layout.python_env)
    if version_receipt.failed:
        raise VerificationError(
            version_receipt.error or "python --version failed",
            step="verify conda",
            resource=str(layout.python_env),
        )
    reported = conda.parse_python_version(version_receipt.stdout + version_receipt.stderr)
    pinned = project_settings.python_version
    if reported is None or not (reported == pinned or reported.startswith(pinned + ".")):
        raise VerificationError(
            f"environment reports python {reported or '?'}, expected {pinned}",
            step="verify conda",
            resource=str(layout.python_env),
        )

    host.probes.postgres(
        host=db_host,
        port=db_port,
        user=layout.role,
        password=layout.password,
        database=layout.database,
    )


# ── Orchestration ───────────────────────────────────────────────


def run_scaffold(
    name: str,
    install_config: Path,
    host: Host,
    *,
    project_config: Path | None = None,
    lock_path: Path | None = None,
    audit: AuditWriter | None = None,
) -> ProjectLayout:
    """Load both configuration files, then scaffold under the host lock."""
    name = validate_project_name(name)
    settings = load_settings(install_config, SCAFFOLD_SCHEMA)
    project_path = project_config or project_config_path(name, install_config.parent)
    project_settings = ProjectSettings.from_settings(load_settings(project_path, PROJECT_SCHEMA))

    start = time.monotonic()
    error: str | None = None
    try:
        with host_lock(lock_path):
            return scaffold(name, settings, project_settings, host)
    except ProvisioningError as e:
        error = e.describe()
        raise
    finally:
        (audit or AuditWriter()).write(AuditEntry(
            operation_type="scaffold",
            targets=[name],
            config_source=str(project_path),
            status="failed" if error else "ok",
            duration_ms=int((time.monotonic() - start) * 1000),
            errors=[error] if error else [],
        ))
