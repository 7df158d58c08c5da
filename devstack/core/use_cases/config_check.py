"""
Config check use case — validate an install or project file and report
issues without touching the host.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from devstack.core.config.loader import INSTALL_SCHEMA, PROJECT_SCHEMA, load_settings
from devstack.core.errors import ConfigError
from devstack.core.models.settings import InstallSettings, ProjectSettings, Scope, Settings


@dataclass
class ConfigCheckResult:
    """Result of configuration validation."""

    valid: bool = False
    kind: str = "install"
    config_path: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    raw_source: str = ""
    key_count: int = 0

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "kind": self.kind,
            "config_path": str(self.config_path) if self.config_path else None,
            "errors": self.errors,
            "warnings": self.warnings,
            "key_count": self.key_count,
        }


def check_config(config_path: Path, kind: str = "install") -> ConfigCheckResult:
    """Validate a configuration file.

    Args:
        config_path: Path to the INI/YAML file.
        kind: ``install`` for install_tools.ini, ``project`` for <name>.ini.

    Returns:
        ConfigCheckResult with validation status and any issues.
    """
    result = ConfigCheckResult(kind=kind, config_path=config_path)
    schema = PROJECT_SCHEMA if kind == "project" else INSTALL_SCHEMA

    try:
        settings = load_settings(config_path, schema)
        result.key_count = len(settings)
        if kind == "project":
            ProjectSettings.from_settings(settings)
        else:
            _install_warnings(InstallSettings.from_settings(settings), result)
    except ConfigError as e:
        result.errors.append(str(e))
        result.raw_source = e.raw_source
        return result

    _unused_sections(settings, result)
    result.valid = not result.errors
    return result


def _install_warnings(settings: InstallSettings, result: ConfigCheckResult) -> None:
    ports = {
        "PostgreSQL": settings.database.port,
        "Redis": settings.cache.port,
        "Nginx": settings.web_server.port,
    }
    seen: dict[int, str] = {}
    for name, port in ports.items():
        if port in seen:
            result.errors.append(f"{name} and {seen[port]} both use port {port}")
        seen[port] = name

    if settings.database.password == settings.cache.password:
        result.warnings.append("PostgreSQL and Redis share the same password")

    if settings.python_env.auto_activate_base:
        result.warnings.append(
            "auto_activate_base is on: the conda base env activates in every shell",
        )


def _unused_sections(settings: Settings, result: ConfigCheckResult) -> None:
    known = {section for section, _ in settings}
    expected = {scope.value for scope in Scope}
    for section in sorted(known - expected):
        result.warnings.append(f"Section [{section}] is not used")
