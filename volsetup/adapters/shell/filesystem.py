"""
Filesystem prober — locate files and move prior installs aside.

Pure filesystem probing: no subprocesses. Search order is always
deterministic (first root, first pattern, lexicographically first
match) so the same system yields the same answer on every run.
"""

from __future__ import annotations

import fnmatch
import logging
import os
import time
from collections.abc import Iterable
from pathlib import Path

logger = logging.getLogger(__name__)

BACKUP_MARKER = "_backup_"
TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


def find_first(patterns: Iterable[str], roots: Iterable[str | Path]) -> Path | None:
    """Return the first existing match of ``patterns`` under ``roots``.

    Roots are tried in order, then patterns in order; within one
    pattern the lexicographically first match wins. Patterns are
    globs relative to each root (``"usr/lib/libyara.so"``).

    Returns:
        The matching path, or None when nothing matches.
    """
    patterns = list(patterns)
    for root in roots:
        root_path = Path(root)
        if not root_path.is_dir():
            continue
        for pattern in patterns:
            for match in sorted(root_path.glob(pattern)):
                if match.is_file():
                    return match
    return None


def search(
    roots: Iterable[str | Path],
    name: str,
    path_glob: str | None = None,
) -> Path | None:
    """Walk ``roots`` recursively for a file called ``name``.

    Equivalent to ``find ROOTS -name NAME -path GLOB | head -1`` with a
    stable order: roots in order, directory entries sorted. Unreadable
    directories are skipped silently.

    Args:
        roots: Directories to search, in priority order.
        name: Exact file name to look for.
        path_glob: Optional fnmatch pattern the full path must match
            (``"*/volatility/vol.py"``).
    """
    for root in roots:
        if not os.path.isdir(root):
            continue
        for dirpath, dirnames, filenames in os.walk(root, onerror=lambda _e: None):
            dirnames.sort()
            if name not in filenames:
                continue
            candidate = os.path.join(dirpath, name)
            if path_glob and not fnmatch.fnmatch(candidate, path_glob):
                continue
            return Path(candidate)
    return None


def backup_name(path: Path, timestamp: str | None = None) -> Path:
    """Compute a free ``<path>_backup_<timestamp>`` name.

    A numeric suffix is appended when the timestamped name is taken
    (two runs within the same second).
    """
    ts = timestamp or time.strftime(TIMESTAMP_FORMAT)
    candidate = path.with_name(f"{path.name}{BACKUP_MARKER}{ts}")
    counter = 1
    while candidate.exists() or candidate.is_symlink():
        candidate = path.with_name(f"{path.name}{BACKUP_MARKER}{ts}_{counter}")
        counter += 1
    return candidate


def backup(path: str | Path, timestamp: str | None = None) -> Path | None:
    """Move ``path`` aside to a timestamped backup name.

    Safe to call when ``path`` does not exist: returns None
    ("nothing to back up"). Content is moved, never copied or
    modified, so the backup is byte-identical to the original.

    Returns:
        The new backup path, or None.
    """
    path = Path(path)
    if not path.exists() and not path.is_symlink():
        logger.debug("Nothing to back up at %s", path)
        return None

    dest = backup_name(path, timestamp)
    os.replace(path, dest)
    logger.info("Backed up %s → %s", path, dest)
    return dest


def replace_symlink(target: str | Path, link: str | Path) -> Path:
    """Point ``link`` at ``target``, replacing an existing symlink or file."""
    link = Path(link)
    if link.is_symlink() or link.is_file():
        link.unlink()
    link.parent.mkdir(parents=True, exist_ok=True)
    link.symlink_to(target)
    return link
