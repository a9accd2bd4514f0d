"""
Shell command adapter — the real process executor.

This is the SINGLE PLACE where ``subprocess.run`` is called. All
timeout handling, output capture and failure classification is
centralised here.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import time
from collections.abc import Mapping, Sequence

from volsetup.adapters.base import CommandRunner
from volsetup.core.models.command import CommandResult
from volsetup.core.models.errors import ErrorKind

logger = logging.getLogger(__name__)

# Keep the tail of very chatty commands (apt, setup.py)
_MAX_CAPTURE = 20_000


def _tail(text: str | bytes | None) -> str:
    if not text:
        return ""
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")
    return text[-_MAX_CAPTURE:]


class SubprocessRunner(CommandRunner):
    """Run commands with ``subprocess.run`` and capture their output.

    Args:
        default_timeout: Timeout used when ``run`` is called without one.
    """

    def __init__(self, default_timeout: float | None = 1800) -> None:
        self._default_timeout = default_timeout

    @property
    def name(self) -> str:
        return "subprocess"

    def which(self, name: str) -> str | None:
        return shutil.which(name)

    def run(
        self,
        command: str,
        args: Sequence[str] = (),
        *,
        env: Mapping[str, str] | None = None,
        cwd: str | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        cmd = [command, *args]
        timeout = timeout if timeout is not None else self._default_timeout

        full_env = None
        if env:
            full_env = os.environ.copy()
            full_env.update(env)

        logger.debug("Executing: %s (cwd=%s)", " ".join(cmd), cwd)
        start = time.monotonic()

        try:
            result = subprocess.run(
                cmd,
                cwd=cwd,
                env=full_env,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except FileNotFoundError as e:
            return CommandResult.failure(
                cmd,
                exit_code=127,
                stderr=f"Command not found: {command} ({e})",
                error_kind=ErrorKind.NOT_FOUND,
            )
        except subprocess.TimeoutExpired as e:
            return CommandResult.failure(
                cmd,
                exit_code=-1,
                stderr=_tail(e.stderr) or f"Command timed out after {timeout}s",
                error_kind=ErrorKind.TIMEOUT,
                stdout=_tail(e.stdout),
                duration_ms=int((time.monotonic() - start) * 1000),
            )
        except PermissionError as e:
            return CommandResult.failure(
                cmd,
                exit_code=126,
                stderr=f"Permission denied: {command} ({e})",
                error_kind=ErrorKind.PERMISSION_DENIED,
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        if result.returncode == 0:
            return CommandResult.success(
                cmd,
                stdout=_tail(result.stdout),
                stderr=_tail(result.stderr),
                duration_ms=elapsed_ms,
            )

        logger.debug("Command exited %d: %s", result.returncode, " ".join(cmd))
        return CommandResult.failure(
            cmd,
            exit_code=result.returncode,
            stderr=_tail(result.stderr),
            stdout=_tail(result.stdout),
            duration_ms=elapsed_ms,
        )
