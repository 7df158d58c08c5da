"""
Report use case — the manual test commands printed after an install.
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass

from devstack.core.models.settings import InstallSettings
from devstack.core.services.catalog import NGINX_GREETING


@dataclass(frozen=True)
class ManualCommand:
    title: str
    command: str
    expect: str


def manual_commands(settings: InstallSettings) -> list[ManualCommand]:
    """Literal commands an operator can paste to check each service."""
    web = settings.web_server
    cache = settings.cache
    db = settings.database
    q = shlex.quote
    return [
        ManualCommand(
            title="Nginx",
            command=f"curl http://127.0.0.1:{web.port}",
            expect=f"response contains '{NGINX_GREETING}'",
        ),
        ManualCommand(
            title="Redis",
            command=f"redis-cli -h {cache.host} -p {cache.port} -a {q(cache.password)} ping",
            expect="PONG",
        ),
        ManualCommand(
            title="PostgreSQL",
            command=(
                f"PGPASSWORD={q(db.password)} psql -U {q(db.user)} -d {q(db.database)} "
                f"-h {db.host} -c 'SELECT 1;'"
            ),
            expect="one row, no error",
        ),
    ]
