"""
PostgreSQL admin adapter — role and database DDL through ``psql``.

Statements run as the ``postgres`` superuser over the local socket
(``sudo -u postgres psql``). Identifiers are validated and always
double-quoted; passwords are rendered as SQL string literals.
"""

from __future__ import annotations

import logging
import re

from devstack.adapters.shell.command import CommandRunner, as_user
from devstack.core.errors import ConfigError
from devstack.core.models.receipt import Receipt

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_MAX_IDENTIFIER = 63

SUPERUSER = "postgres"


def quote_identifier(name: str) -> str:
    """Validate and double-quote a role or database name."""
    if not _IDENTIFIER.match(name) or len(name) > _MAX_IDENTIFIER:
        raise ConfigError(
            f"'{name}' is not a valid PostgreSQL identifier "
            f"(letters, digits and underscores, at most {_MAX_IDENTIFIER} characters)",
        )
    return f'"{name}"'


def quote_literal(value: str) -> str:
    """Render a string as a SQL literal."""
    return "'" + value.replace("'", "''") + "'"


class PostgresAdmin:
    """Superuser DDL via psql."""

    name = "postgres"

    def __init__(self, runner: CommandRunner, timeout: float = 60):
        self._runner = runner
        self._timeout = timeout

    def execute(self, sql: str) -> Receipt:
        """Run one statement; ``ON_ERROR_STOP`` makes SQL errors fatal."""
        return self._runner.run(
            ["psql", "-v", "ON_ERROR_STOP=1", "-X", "-q", "-c", sql],
            privilege=as_user(SUPERUSER),
            timeout=self._timeout,
            cwd="/",
        )

    def query_value(self, sql: str) -> Receipt:
        """Run a query and return its unaligned, tuples-only output."""
        return self._runner.run(
            ["psql", "-v", "ON_ERROR_STOP=1", "-X", "-tAc", sql],
            privilege=as_user(SUPERUSER),
            timeout=self._timeout,
            cwd="/",
        )

    # ── Existence checks ────────────────────────────────────────

    def role_exists(self, name: str) -> bool:
        receipt = self.query_value(
            f"SELECT 1 FROM pg_roles WHERE rolname = {quote_literal(name)}",
        )
        receipt.raise_for_status("query roles", name)
        return receipt.stdout.strip() == "1"

    def database_owner(self, name: str) -> str | None:
        """Owner of a database, or None if it does not exist."""
        receipt = self.query_value(
            "SELECT pg_get_userbyid(datdba) FROM pg_database "
            f"WHERE datname = {quote_literal(name)}",
        )
        receipt.raise_for_status("query databases", name)
        owner = receipt.stdout.strip()
        return owner or None

    # ── DDL ─────────────────────────────────────────────────────

    def create_role(self, name: str, password: str) -> Receipt:
        return self.execute(
            f"CREATE ROLE {quote_identifier(name)} WITH LOGIN PASSWORD {quote_literal(password)};",
        )

    def alter_role_password(self, name: str, password: str) -> Receipt:
        return self.execute(
            f"ALTER ROLE {quote_identifier(name)} WITH LOGIN PASSWORD {quote_literal(password)};",
        )

    def grant_createdb(self, name: str) -> Receipt:
        return self.execute(f"ALTER ROLE {quote_identifier(name)} CREATEDB;")

    def drop_role(self, name: str) -> Receipt:
        return self.execute(f"DROP ROLE IF EXISTS {quote_identifier(name)};")

    def create_database(self, name: str, owner: str) -> Receipt:
        return self.execute(
            f"CREATE DATABASE {quote_identifier(name)} OWNER {quote_identifier(owner)};",
        )

    def drop_database(self, name: str) -> Receipt:
        return self.execute(f"DROP DATABASE IF EXISTS {quote_identifier(name)};")
