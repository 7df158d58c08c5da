"""
Settings models — validated configuration for install and scaffold runs.

``Settings`` is the raw, immutable (section, key) → string mapping the
loader produces. The frozen pydantic views below give typed access to
one scope each; building a view that fails validation is a ConfigError
naming the offending (section, key).
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from enum import Enum
from pathlib import Path
from typing import Annotated, TypeVar

from pydantic import AfterValidator, BaseModel, ConfigDict, ValidationError

from devstack.core.errors import ConfigError

ExpandedPath = Annotated[Path, AfterValidator(lambda p: p.expanduser())]

MINICONDA_INSTALLER_URL = (
    "https://repo.anaconda.com/miniconda/Miniconda3-latest-Linux-x86_64.sh"
)


class Scope(str, Enum):
    """Configuration scopes and the source sections that hold them."""

    GENERAL = "General"
    DATABASE = "PostgreSQL"
    CACHE = "Redis"
    WEB_SERVER = "Nginx"
    PYTHON_ENV = "Miniconda"
    PACKAGE_MANAGER = "npm"


class Settings(Mapping[tuple[str, str], str]):
    """Immutable mapping of (section, key) to string value."""

    def __init__(
        self,
        values: Mapping[tuple[str, str], str],
        source: str = "",
        raw_source: str = "",
    ):
        self._values = dict(values)
        self.source = source
        self.raw_source = raw_source

    def __getitem__(self, item: tuple[str, str]) -> str:
        return self._values[item]

    def __iter__(self) -> Iterator[tuple[str, str]]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"<Settings source={self.source!r} keys={len(self)}>"

    def section(self, section: str | Scope) -> dict[str, str]:
        """All non-empty keys of one section."""
        name = section.value if isinstance(section, Scope) else section
        return {k: v for (s, k), v in self._values.items() if s == name and v != ""}

    def require(self, section: str | Scope, key: str) -> str:
        """Return a non-empty value or raise ConfigError."""
        name = section.value if isinstance(section, Scope) else section
        value = self._values.get((name, key), "")
        if not value:
            raise ConfigError(
                f"key '{key}' in section [{name}] is empty or not defined",
                section=name,
                key=key,
                source=self.source,
                raw_source=self.raw_source,
            )
        return value


class _SectionView(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class GeneralSettings(_SectionView):
    projects_dir: ExpandedPath
    command_timeout: int = 600
    service_timeout: float = 30.0
    profile: ExpandedPath = Path("~/.bashrc").expanduser()


class DatabaseSettings(_SectionView):
    user: str
    password: str
    database: str
    host: str = "127.0.0.1"
    port: int = 5432
    conf_dir: ExpandedPath = Path("/etc/postgresql")


class CacheSettings(_SectionView):
    config: ExpandedPath
    password: str
    port: int
    host: str = "127.0.0.1"


class WebServerSettings(_SectionView):
    config: ExpandedPath
    sites_available: ExpandedPath
    sites_enabled: ExpandedPath
    port: int
    html_dir: ExpandedPath
    index_file: str
    host: str = "127.0.0.1"


class PythonEnvSettings(_SectionView):
    install_dir: ExpandedPath
    auto_activate_base: bool
    installer_url: str = MINICONDA_INSTALLER_URL


class PackageManagerSettings(_SectionView):
    install_dir: ExpandedPath
    node_version: str


class ProjectSettings(_SectionView):
    """Per-project scaffold settings (``<project>.ini``)."""

    python_version: str
    database_prefix: str
    user_prefix: str
    password_default: str
    dependency: str = "express"

    @classmethod
    def from_settings(cls, settings: Settings) -> ProjectSettings:
        data = {
            **settings.section(Scope.GENERAL),
            **settings.section(Scope.DATABASE),
        }
        dependency = settings.section(Scope.PACKAGE_MANAGER).get("dependency")
        if dependency:
            data["dependency"] = dependency
        return _validate(cls, data, settings, Scope.GENERAL)


class InstallSettings(_SectionView):
    """Typed view over every scope an install run touches."""

    general: GeneralSettings
    database: DatabaseSettings
    cache: CacheSettings
    web_server: WebServerSettings
    python_env: PythonEnvSettings
    package_manager: PackageManagerSettings

    @classmethod
    def from_settings(cls, settings: Settings) -> InstallSettings:
        return cls(
            general=section_view(GeneralSettings, settings, Scope.GENERAL),
            database=section_view(DatabaseSettings, settings, Scope.DATABASE),
            cache=section_view(CacheSettings, settings, Scope.CACHE),
            web_server=section_view(WebServerSettings, settings, Scope.WEB_SERVER),
            python_env=section_view(PythonEnvSettings, settings, Scope.PYTHON_ENV),
            package_manager=section_view(
                PackageManagerSettings, settings, Scope.PACKAGE_MANAGER,
            ),
        )


_View = TypeVar("_View", bound=_SectionView)


def section_view(model: type[_View], settings: Settings, scope: Scope) -> _View:
    """Build one typed section view from raw settings."""
    return _validate(model, settings.section(scope), settings, scope)


def _validate(
    model: type[_View],
    data: dict[str, str],
    settings: Settings,
    scope: Scope,
) -> _View:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        key = str(first["loc"][0]) if first.get("loc") else ""
        raise ConfigError(
            f"invalid value for '{key}' in section [{scope.value}]: {first['msg']}",
            section=scope.value,
            key=key,
            source=settings.source,
            raw_source=settings.raw_source,
        ) from e
