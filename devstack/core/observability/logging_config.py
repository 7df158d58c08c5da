"""
Logging configuration — console output plus a per-run command trail.

Called once at startup by main.py.  Every module that does
``logger = logging.getLogger(__name__)`` inherits this config.

Console level, in precedence order:
    CLI flag  >  DEVSTACK_LOG_LEVEL env var  >  WARNING (default)

A provisioning run is long and mostly silent at WARNING, so each
mutating run (install, teardown, scaffold) also writes a DEBUG trail of
every command it ran to its own file under ``$DEVSTACK_LOG_DIR``
(default ``~/.local/state/devstack/logs``). The CLI prints that path
when a run fails. Only the newest trails per operation are kept.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)

ENV_LOG_LEVEL = "DEVSTACK_LOG_LEVEL"
ENV_LOG_DIR = "DEVSTACK_LOG_DIR"
DEFAULT_LOG_DIR = Path("~/.local/state/devstack/logs")

# Trails kept per operation
TRAIL_KEEP = 20

_FMT_CONSOLE_INFO = "%(asctime)s [%(name)s] %(message)s"
_FMT_CONSOLE_DEBUG = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d: %(message)s"
_FMT_TRAIL = "%(asctime)s %(levelname)-5s [%(name)s] %(message)s"

# Client libraries that are chatty below WARNING
_NOISY_LOGGERS = ("urllib3", "charset_normalizer", "redis")


def resolve_level(verbose: bool = False, quiet: bool = False, debug: bool = False) -> str:
    """Pick the console level from CLI flags, then the environment."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    return os.environ.get(ENV_LOG_LEVEL, "WARNING")


def default_log_dir() -> Path:
    return Path(os.environ.get(ENV_LOG_DIR) or DEFAULT_LOG_DIR).expanduser()


def setup_logging(level: str = "WARNING", quiet_third_party: bool = True) -> None:
    """Install the console handler on the root logger.

    Args:
        level: Console level name. Unknown names fall back to WARNING.
        quiet_third_party: Keep client-library loggers at WARNING unless
            the console itself is at DEBUG.
    """
    numeric_level = _parse_level(level)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(numeric_level)
    console.setFormatter(_console_formatter(numeric_level))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    root.setLevel(numeric_level)

    if quiet_third_party and numeric_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.raiseExceptions = False


@contextmanager
def run_trail(operation: str, log_dir: Path | None = None) -> Iterator[Path | None]:
    """Record one run at DEBUG in its own file, whatever the console level.

    Yields the trail path, or None when the log directory is not
    writable; the run itself goes ahead either way.
    """
    directory = log_dir or default_log_dir()
    path = directory / f"{operation}-{datetime.now():%Y%m%d-%H%M%S}.log"
    handler: logging.Handler | None = None
    try:
        directory.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, encoding="utf-8")
    except OSError as e:
        logger.warning("No run log for %s: %s", operation, e)

    if handler is None:
        yield None
        return

    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(_FMT_TRAIL, datefmt="%Y-%m-%d %H:%M:%S"))

    root = logging.getLogger()
    previous_level = root.level
    root.addHandler(handler)
    root.setLevel(logging.DEBUG)
    logger.debug("%s run started (argv: %s)", operation, " ".join(sys.argv))
    try:
        yield path
    except Exception:
        logger.debug("%s run failed", operation, exc_info=True)
        raise
    finally:
        root.removeHandler(handler)
        root.setLevel(previous_level)
        handler.close()
        _prune(directory, operation)


def _prune(directory: Path, operation: str, keep: int = TRAIL_KEEP) -> None:
    # Timestamped names sort oldest first
    for old in sorted(directory.glob(f"{operation}-*.log"))[:-keep]:
        try:
            old.unlink()
        except OSError as e:
            logger.debug("Could not remove old run log %s: %s", old, e)


def _console_formatter(level: int) -> logging.Formatter:
    if level <= logging.DEBUG:
        return logging.Formatter(_FMT_CONSOLE_DEBUG, datefmt="%H:%M:%S")
    if level <= logging.INFO:
        return logging.Formatter(_FMT_CONSOLE_INFO, datefmt="%H:%M:%S")
    return logging.Formatter("%(message)s")


def _parse_level(level: str | None) -> int:
    """Convert a level name string to its numeric constant."""
    if not level:
        return logging.WARNING
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        return logging.WARNING
    return numeric
