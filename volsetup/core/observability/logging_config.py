"""
Logging configuration — console output plus the install log.

``setup_logging`` runs once, first thing in the CLI. Modules only ever
call ``logging.getLogger(__name__)`` and inherit what is set here.

Console level, highest precedence first:
    --debug / --verbose / --quiet  >  VOLSETUP_LOG_LEVEL  >  WARNING

The install log is a second handler added by ``attach_log_file`` once
the run is known to be privileged and confirmed; a refused run leaves
no log file behind.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

# ── Formats ─────────────────────────────────────────────────────

# (format, datefmt) per console level; the first threshold that fits wins
_CONSOLE_FORMATS: tuple[tuple[int, str, str | None], ...] = (
    (logging.DEBUG, "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d  %(message)s", "%H:%M:%S"),
    (logging.INFO, "%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
)
_CONSOLE_DEFAULT = "%(message)s"

_LOG_FILE_FORMAT = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d  %(message)s"
_LOG_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Lets attach_log_file find and replace its own handler
_INSTALL_LOG_HANDLER = "volsetup-install-log"


def _console_formatter(level: int) -> logging.Formatter:
    for threshold, fmt, datefmt in _CONSOLE_FORMATS:
        if level <= threshold:
            return logging.Formatter(fmt, datefmt=datefmt)
    return logging.Formatter(_CONSOLE_DEFAULT)


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Install the stderr handler on the root logger.

    Calling it again replaces the previous configuration.

    Args:
        level: Console level name; unknown names fall back to WARNING.
        log_file: Attach the install log right away (used by tests and
            scripts; the CLI attaches it later).
        log_file_level: Level for ``log_file``; defaults to ``level``.
    """
    console_level = _parse_level(level)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(console_level)
    handler.setFormatter(_console_formatter(console_level))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(console_level)

    if log_file:
        attach_log_file(log_file, log_file_level or level)

    # A broken stderr must not take the install down with it
    logging.raiseExceptions = False


def attach_log_file(path: str | Path, level: str | None = "DEBUG") -> logging.Handler:
    """Start writing records at ``level`` and above to ``path``.

    Any install-log handler already attached is closed first. The root
    logger is opened up to ``level`` so the file sees records the
    console filters out.
    """
    detach_log_file()

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    threshold = _parse_level(level)

    handler = logging.FileHandler(path, encoding="utf-8")
    handler.set_name(_INSTALL_LOG_HANDLER)
    handler.setLevel(threshold)
    handler.setFormatter(logging.Formatter(_LOG_FILE_FORMAT, datefmt=_LOG_FILE_DATEFMT))

    root = logging.getLogger()
    root.addHandler(handler)
    if root.level == logging.NOTSET or root.level > threshold:
        root.setLevel(threshold)
    return handler


def detach_log_file() -> None:
    """Flush, close and remove the install-log handler. Safe to call twice."""
    root = logging.getLogger()
    for handler in [h for h in root.handlers if h.get_name() == _INSTALL_LOG_HANDLER]:
        root.removeHandler(handler)
        handler.close()


def resolve_level(debug: bool, verbose: bool, quiet: bool, env_level: str | None) -> str:
    """Pick the console level from CLI flags, then the environment."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    return env_level or "WARNING"


def _parse_level(name: str | None) -> int:
    value = logging.getLevelName(name.upper()) if name else None
    return value if isinstance(value, int) else logging.WARNING
