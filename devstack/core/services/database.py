"""
Database bootstrap — role and database creation under a named policy.

Two policies:

    DROP_THEN_CREATE   install run: drop database and role if they exist,
                       then create both from scratch
    CREATE_IF_ABSENT   project scaffold: create what is missing, reset the
                       role password if the role exists, refuse a database
                       owned by someone else
"""

from __future__ import annotations

import logging
from enum import Enum

from devstack.adapters.database.postgres import PostgresAdmin, quote_identifier
from devstack.core.errors import ExternalToolError

logger = logging.getLogger(__name__)


class BootstrapPolicy(str, Enum):
    DROP_THEN_CREATE = "drop_then_create"
    CREATE_IF_ABSENT = "create_if_absent"


class DatabaseBootstrap:
    """Create a login role and a database it owns."""

    def __init__(self, admin: PostgresAdmin, policy: BootstrapPolicy):
        self._admin = admin
        self.policy = policy

    def ensure_role(self, name: str, password: str) -> None:
        quote_identifier(name)
        if self.policy is BootstrapPolicy.DROP_THEN_CREATE:
            self._admin.drop_role(name).raise_for_status("drop role", name)
            self._admin.create_role(name, password).raise_for_status("create role", name)
            logger.info("Created role %s", name)
            return

        if self._admin.role_exists(name):
            self._admin.alter_role_password(name, password).raise_for_status(
                "reset role password", name,
            )
            logger.info("Role %s exists, password reset", name)
        else:
            self._admin.create_role(name, password).raise_for_status("create role", name)
            logger.info("Created role %s", name)

    def grant_createdb(self, name: str) -> None:
        self._admin.grant_createdb(name).raise_for_status("grant CREATEDB", name)

    def ensure_database(self, name: str, owner: str) -> None:
        quote_identifier(name)
        if self.policy is BootstrapPolicy.DROP_THEN_CREATE:
            self._admin.create_database(name, owner).raise_for_status("create database", name)
            logger.info("Created database %s owned by %s", name, owner)
            return

        current = self._admin.database_owner(name)
        if current is None:
            self._admin.create_database(name, owner).raise_for_status("create database", name)
            logger.info("Created database %s owned by %s", name, owner)
        elif current != owner:
            raise ExternalToolError(
                f"database exists and is owned by '{current}', not '{owner}'",
                step="create database",
                resource=name,
            )
        else:
            logger.info("Database %s already exists", name)

    def provision(self, database: str, role: str, password: str) -> None:
        """Role, CREATEDB, database: the full sequence for one owner.

        Under DROP_THEN_CREATE the database goes first, since a role
        cannot be dropped while it owns one.
        """
        if self.policy is BootstrapPolicy.DROP_THEN_CREATE:
            self._admin.drop_database(database).raise_for_status("drop database", database)
        self.ensure_role(role, password)
        self.grant_createdb(role)
        self.ensure_database(database, role)
