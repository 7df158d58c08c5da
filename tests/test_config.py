"""
Tests for configuration loading and typed settings views.
"""

import textwrap
from pathlib import Path

import pytest
from pydantic import ValidationError

from devstack.core.config.loader import (
    INSTALL_SCHEMA,
    PROJECT_SCHEMA,
    load_settings,
    project_config_path,
    substitute_user,
)
from devstack.core.errors import ConfigError
from devstack.core.models.settings import InstallSettings, ProjectSettings, Scope


class TestLoadSettings:
    """Tests for load_settings()."""

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigError) as exc:
            load_settings(tmp_path / "nope.ini", INSTALL_SCHEMA)
        assert "does not exist" in str(exc.value)
        assert exc.value.section == ""
        assert exc.value.exit_code == 1

    def test_complete_install_file(self, install_ini: Path):
        settings = load_settings(install_ini, INSTALL_SCHEMA)
        assert settings[("PostgreSQL", "user")] == "devuser"
        assert settings.source == str(install_ini)
        assert "[Redis]" in settings.raw_source

    def test_missing_key_names_section_and_key(self, tmp_path: Path):
        path = tmp_path / "install_tools.ini"
        path.write_text("[General]\nprojects_dir = /tmp/p\n\n[PostgreSQL]\nuser = u\n")
        with pytest.raises(ConfigError) as exc:
            load_settings(path, INSTALL_SCHEMA)
        assert exc.value.section == "PostgreSQL"
        assert exc.value.key == "password"
        assert exc.value.raw_source == path.read_text()

    def test_empty_value_is_missing(self, tmp_path: Path):
        path = tmp_path / "demo.ini"
        path.write_text(textwrap.dedent("""\
            [General]
            python_version =

            [PostgreSQL]
            database_prefix = db_
            user_prefix = user_
            password_default = pw
        """))
        with pytest.raises(ConfigError) as exc:
            load_settings(path, PROJECT_SCHEMA)
        assert (exc.value.section, exc.value.key) == ("General", "python_version")
        assert "empty or not defined" in str(exc.value)

    def test_invalid_ini(self, tmp_path: Path):
        path = tmp_path / "broken.ini"
        path.write_text("no section header here\n")
        with pytest.raises(ConfigError, match="invalid INI"):
            load_settings(path)

    def test_user_substitution(self, tmp_path: Path):
        path = tmp_path / "u.ini"
        path.write_text("[General]\nprojects_dir = /home/$USER/projects\nother = ${USER}x\n")
        settings = load_settings(path, user="alice")
        assert settings[("General", "projects_dir")] == "/home/alice/projects"
        assert settings[("General", "other")] == "alicex"

    def test_no_interpolation(self, tmp_path: Path):
        path = tmp_path / "p.ini"
        path.write_text("[PostgreSQL]\npassword = 100%secret\n")
        assert load_settings(path)[("PostgreSQL", "password")] == "100%secret"

    def test_yaml_source(self, tmp_path: Path):
        path = tmp_path / "install.yml"
        path.write_text(textwrap.dedent("""\
            General:
              projects_dir: /srv/projects
            Miniconda:
              install_dir: /opt/conda
              auto_activate_base: false
        """))
        settings = load_settings(path, [("General", "projects_dir"), ("Miniconda", "install_dir")])
        assert settings[("Miniconda", "auto_activate_base")] == "false"

    def test_yaml_section_must_be_mapping(self, tmp_path: Path):
        path = tmp_path / "bad.yaml"
        path.write_text("General: just-a-string\n")
        with pytest.raises(ConfigError, match="must be a mapping"):
            load_settings(path)


class TestSubstituteUser:

    def test_only_user_token(self):
        assert substitute_user("$HOME/$USER", user="bob") == "$HOME/bob"

    def test_word_boundary(self):
        assert substitute_user("$USERNAME", user="bob") == "$USERNAME"


class TestTypedViews:
    """Tests for the pydantic section views."""

    def test_install_settings(self, settings: InstallSettings, tmp_path: Path, home: Path):
        assert settings.cache.port == 6380
        assert settings.web_server.port == 8080
        assert settings.python_env.auto_activate_base is False
        assert settings.general.projects_dir == tmp_path / "projects"
        assert settings.general.profile == home / ".bashrc"
        assert settings.general.service_timeout == 5
        assert settings.general.command_timeout == 600

    def test_non_integer_port(self, install_ini: Path):
        install_ini.write_text(install_ini.read_text().replace("port = 6380", "port = six"))
        raw = load_settings(install_ini, INSTALL_SCHEMA)
        with pytest.raises(ConfigError) as exc:
            InstallSettings.from_settings(raw)
        assert (exc.value.section, exc.value.key) == ("Redis", "port")

    def test_frozen(self, settings: InstallSettings):
        with pytest.raises(ValidationError):
            settings.cache.port = 1

    def test_section_skips_empty(self, tmp_path: Path):
        path = tmp_path / "s.ini"
        path.write_text("[npm]\ndependency =\nnode_version = 20\n")
        assert load_settings(path).section(Scope.PACKAGE_MANAGER) == {"node_version": "20"}

    def test_project_settings(self, tmp_path: Path):
        path = tmp_path / "demo.ini"
        path.write_text(textwrap.dedent("""\
            [General]
            python_version = 3.12

            [PostgreSQL]
            database_prefix = db_
            user_prefix = user_
            password_default = pw

            [npm]
            dependency = fastify
        """))
        project = ProjectSettings.from_settings(load_settings(path, PROJECT_SCHEMA))
        assert project.python_version == "3.12"
        assert project.dependency == "fastify"

    def test_project_dependency_default(self, tmp_path: Path):
        path = tmp_path / "demo.ini"
        path.write_text(
            "[General]\npython_version = 3.11\n[PostgreSQL]\n"
            "database_prefix = d_\nuser_prefix = u_\npassword_default = p\n"
        )
        project = ProjectSettings.from_settings(load_settings(path, PROJECT_SCHEMA))
        assert project.dependency == "express"


def test_project_config_path(tmp_path: Path):
    assert project_config_path("demo", tmp_path) == tmp_path / "demo.ini"
