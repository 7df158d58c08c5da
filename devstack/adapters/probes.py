"""
Protocol probes — round trips against running services.

Each probe raises VerificationError with the failing resource on
failure. These are read-only: they never change host state.
"""

from __future__ import annotations

import logging

import psycopg2
import redis
import requests

from devstack.core.errors import VerificationError

logger = logging.getLogger(__name__)

DEFAULT_PROBE_TIMEOUT = 5


class Probes:
    """Live protocol probes for PostgreSQL, Redis and HTTP."""

    def __init__(self, timeout: float = DEFAULT_PROBE_TIMEOUT):
        self._timeout = timeout

    def postgres(
        self,
        *,
        host: str,
        port: int,
        user: str,
        password: str,
        database: str,
    ) -> None:
        """Connect as ``user`` to ``database`` and run ``SELECT 1``."""
        resource = f"postgresql://{user}@{host}:{port}/{database}"
        logger.debug("Probing %s", resource)
        try:
            conn = psycopg2.connect(
                host=host,
                port=port,
                user=user,
                password=password,
                dbname=database,
                connect_timeout=max(1, int(self._timeout)),
            )
        except psycopg2.Error as e:
            raise VerificationError(
                f"connection failed: {str(e).strip()}", step="verify", resource=resource,
            ) from e
        try:
            with conn.cursor() as cur:
                cur.execute("SELECT 1")
                row = cur.fetchone()
        except psycopg2.Error as e:
            raise VerificationError(
                f"SELECT 1 failed: {str(e).strip()}", step="verify", resource=resource,
            ) from e
        finally:
            conn.close()
        if not row or row[0] != 1:
            raise VerificationError(
                f"SELECT 1 returned {row!r}", step="verify", resource=resource,
            )

    def redis_ping(self, *, host: str, port: int, password: str) -> None:
        """Authenticate and PING; anything but PONG fails."""
        resource = f"redis://{host}:{port}"
        logger.debug("Probing %s", resource)
        client = redis.Redis(
            host=host,
            port=port,
            password=password,
            socket_timeout=self._timeout,
            socket_connect_timeout=self._timeout,
        )
        try:
            if not client.ping():
                raise VerificationError("PING got no PONG", step="verify", resource=resource)
        except redis.RedisError as e:
            raise VerificationError(
                f"PING failed: {e}", step="verify", resource=resource,
            ) from e
        finally:
            client.close()

    def http_get(self, url: str, expect: str | None = None) -> str:
        """GET a URL; optionally require ``expect`` in the body."""
        logger.debug("Probing %s", url)
        try:
            response = requests.get(url, timeout=self._timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise VerificationError(f"GET failed: {e}", step="verify", resource=url) from e
        if expect is not None and expect not in response.text:
            raise VerificationError(
                f"response does not contain {expect!r}", step="verify", resource=url,
            )
        return response.text

    def http_reachable(self, url: str) -> bool:
        """Whether anything answers HTTP at ``url``. Never raises."""
        try:
            requests.get(url, timeout=self._timeout)
        except requests.RequestException:
            return False
        return True
