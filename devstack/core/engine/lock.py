"""
Host run lock — one mutating provisioning run per host at a time.

An advisory ``flock`` on a well-known file. The lock is released when
the holder exits, however it exits, so a crashed run never leaves a
stale lock behind.
"""

from __future__ import annotations

import fcntl
import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from devstack.core.errors import RunLockedError

logger = logging.getLogger(__name__)

ENV_LOCK_FILE = "DEVSTACK_LOCK_FILE"
DEFAULT_LOCK_FILE = Path("/tmp/devstack.lock")


def default_lock_path() -> Path:
    return Path(os.environ.get(ENV_LOCK_FILE) or DEFAULT_LOCK_FILE)


@contextmanager
def host_lock(path: Path | None = None) -> Iterator[Path]:
    """Hold the host lock for the duration of the block.

    Raises:
        RunLockedError: If another process holds the lock, or the lock
            file cannot be opened (e.g. left behind by a root run).
    """
    lock_path = path or default_lock_path()
    try:
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        handle = lock_path.open("a+")
    except OSError as e:
        raise RunLockedError(
            f"cannot open the lock file: {e.strerror or e}",
            step="acquire lock",
            resource=str(lock_path),
        ) from e

    with handle:
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as e:
            raise RunLockedError(
                "another provisioning run is in progress on this host",
                step="acquire lock",
                resource=str(lock_path),
            ) from e
        logger.debug("Acquired host lock %s", lock_path)
        try:
            handle.seek(0)
            handle.truncate()
            handle.write(f"{os.getpid()}\n")
            handle.flush()
            yield lock_path
        finally:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
            logger.debug("Released host lock %s", lock_path)
