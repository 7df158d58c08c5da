"""
Configuration loader — reads an INI (or YAML) source into Settings.

Every required (section, key) of a schema is checked before the caller
gets anything back: a run never starts mutating the host and then trips
over a missing key. The only substitution performed is ``$USER`` →
the invoking OS user.
"""

from __future__ import annotations

import configparser
import getpass
import logging
import re
from collections.abc import Iterable
from pathlib import Path

import yaml

from devstack.core.errors import ConfigError
from devstack.core.models.settings import Scope, Settings

logger = logging.getLogger(__name__)

# Default config filename (looked up in the working directory)
INSTALL_CONFIG_FILE = "install_tools.ini"

Schema = tuple[tuple[str, str], ...]

INSTALL_SCHEMA: Schema = (
    (Scope.GENERAL.value, "projects_dir"),
    (Scope.DATABASE.value, "user"),
    (Scope.DATABASE.value, "password"),
    (Scope.DATABASE.value, "database"),
    (Scope.PYTHON_ENV.value, "install_dir"),
    (Scope.PYTHON_ENV.value, "auto_activate_base"),
    (Scope.CACHE.value, "config"),
    (Scope.CACHE.value, "password"),
    (Scope.CACHE.value, "port"),
    (Scope.WEB_SERVER.value, "config"),
    (Scope.WEB_SERVER.value, "sites_available"),
    (Scope.WEB_SERVER.value, "sites_enabled"),
    (Scope.WEB_SERVER.value, "port"),
    (Scope.WEB_SERVER.value, "html_dir"),
    (Scope.WEB_SERVER.value, "index_file"),
    (Scope.PACKAGE_MANAGER.value, "install_dir"),
    (Scope.PACKAGE_MANAGER.value, "node_version"),
)

# Keys of the install file that project scaffolding needs
SCAFFOLD_SCHEMA: Schema = (
    (Scope.GENERAL.value, "projects_dir"),
    (Scope.PYTHON_ENV.value, "install_dir"),
)

PROJECT_SCHEMA: Schema = (
    (Scope.GENERAL.value, "python_version"),
    (Scope.DATABASE.value, "database_prefix"),
    (Scope.DATABASE.value, "user_prefix"),
    (Scope.DATABASE.value, "password_default"),
)

_USER_TOKEN = re.compile(r"\$\{USER\}|\$USER\b")


def current_user() -> str:
    """The OS user name substituted for ``$USER``."""
    return getpass.getuser()


def substitute_user(value: str, user: str | None = None) -> str:
    """Replace ``$USER`` / ``${USER}`` tokens with the invoking user."""
    if "$" not in value:
        return value
    name = user if user is not None else current_user()
    return _USER_TOKEN.sub(lambda _m: name, value)


def load_settings(
    path: Path,
    schema: Iterable[tuple[str, str]] = (),
    user: str | None = None,
) -> Settings:
    """Load and validate a configuration source.

    Args:
        path: INI file, or YAML file (``.yml``/``.yaml``) with the same
            section → key → value shape.
        schema: Required (section, key) pairs. All are checked before
            returning.
        user: Override for ``$USER`` substitution (default: current user).

    Returns:
        Immutable Settings.

    Raises:
        ConfigError: If the file is missing, unparsable, or a required key
            is absent or empty. ``raw_source`` holds the file content.
    """
    if not path.is_file():
        raise ConfigError(f"configuration file {path} does not exist", source=str(path))

    logger.debug("Loading configuration from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"cannot read {path}: {e}", source=str(path)) from e

    if path.suffix in (".yml", ".yaml"):
        sections = _parse_yaml(raw, path)
    else:
        sections = _parse_ini(raw, path)

    values: dict[tuple[str, str], str] = {}
    for section, entries in sections.items():
        for key, value in entries.items():
            values[(section, key)] = substitute_user(value.strip(), user)

    settings = Settings(values, source=str(path), raw_source=raw)

    for section, key in schema:
        settings.require(section, key)

    logger.info("Loaded %d configuration values from %s", len(settings), path)
    return settings


def _parse_ini(raw: str, path: Path) -> dict[str, dict[str, str]]:
    parser = configparser.ConfigParser(interpolation=None)
    try:
        parser.read_string(raw, source=str(path))
    except configparser.Error as e:
        raise ConfigError(
            f"invalid INI in {path}: {e}", source=str(path), raw_source=raw,
        ) from e
    return {name: dict(parser.items(name)) for name in parser.sections()}


def _parse_yaml(raw: str, path: Path) -> dict[str, dict[str, str]]:
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(
            f"invalid YAML in {path}: {e}", source=str(path), raw_source=raw,
        ) from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"expected a YAML mapping in {path}, got {type(data).__name__}",
            source=str(path),
            raw_source=raw,
        )

    sections: dict[str, dict[str, str]] = {}
    for name, entries in data.items():
        if not isinstance(entries, dict):
            raise ConfigError(
                f"section [{name}] in {path} must be a mapping",
                section=str(name),
                source=str(path),
                raw_source=raw,
            )
        sections[str(name)] = {
            str(k).lower(): _yaml_scalar(v) for k, v in entries.items()
        }
    return sections


def _yaml_scalar(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def project_config_path(project_name: str, directory: Path | None = None) -> Path:
    """Path of the per-project configuration file (``<name>.ini``)."""
    return (directory or Path.cwd()) / f"{project_name}.ini"
