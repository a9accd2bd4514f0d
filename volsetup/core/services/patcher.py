"""
Patcher — narrow, verifiable text edits to the toolkit's files.

The legacy entry point declares ``#!/usr/bin/env python``, which now
resolves to Python 3. ``patch_first_line`` swaps that directive for the
legacy interpreter without touching a single other byte of the file.
"""

from __future__ import annotations

import logging
import os
import re
import stat
from pathlib import Path

from volsetup.core.models.errors import ErrorKind, ProvisionError

logger = logging.getLogger(__name__)

# Interpreter directive mentioning python (any version)
PYTHON_SHEBANG = r"^#!.*python.*"


def _split_first_line(data: bytes) -> tuple[bytes, bytes, bytes]:
    """Split into (first line, its line ending, remainder)."""
    idx = data.find(b"\n")
    if idx == -1:
        return data, b"", b""
    line = data[:idx]
    if line.endswith(b"\r"):
        return line[:-1], b"\r\n", data[idx + 1 :]
    return line, b"\n", data[idx + 1 :]


def read_first_line(path: str | Path) -> str:
    data = Path(path).read_bytes()
    line, _, _ = _split_first_line(data)
    return line.decode("utf-8", errors="replace")


def patch_first_line(path: str | Path, match_pattern: str, replacement: str) -> bool:
    """Replace the first line of ``path`` when it matches ``match_pattern``.

    Only the first line changes; its original line ending and the rest
    of the file are preserved byte-for-byte. A file whose first line
    does not match is left untouched.

    Returns:
        True if the file was rewritten.

    Raises:
        ProvisionError: NotFound when ``path`` does not exist.
    """
    path = Path(path)
    if not path.is_file():
        raise ProvisionError(ErrorKind.NOT_FOUND, f"Cannot patch missing file: {path}")

    data = path.read_bytes()
    line, ending, rest = _split_first_line(data)
    text = line.decode("utf-8", errors="surrogateescape")

    if not re.search(match_pattern, text):
        logger.debug("First line of %s does not match %r", path, match_pattern)
        return False

    if text == replacement:
        return False

    new_line = replacement.encode("utf-8", errors="surrogateescape")
    path.write_bytes(new_line + ending + rest)
    logger.info("Patched first line of %s: %s", path, replacement)
    return True


def verify_first_line(path: str | Path, expected: str) -> str:
    """Assert the first line of ``path`` equals ``expected``.

    Returns:
        The first line.

    Raises:
        ProvisionError: PatchVerificationFailed on mismatch.
    """
    actual = read_first_line(path)
    if actual != expected:
        raise ProvisionError(
            ErrorKind.PATCH_VERIFICATION_FAILED,
            f"First line of {path} is {actual!r}, expected {expected!r}",
        )
    return actual


def ensure_executable(path: str | Path) -> None:
    """Add execute permission wherever read permission is set (``chmod +x``)."""
    path = Path(path)
    mode = path.stat().st_mode
    exec_bits = 0
    if mode & stat.S_IRUSR:
        exec_bits |= stat.S_IXUSR
    if mode & stat.S_IRGRP:
        exec_bits |= stat.S_IXGRP
    if mode & stat.S_IROTH:
        exec_bits |= stat.S_IXOTH
    os.chmod(path, mode | exec_bits)
