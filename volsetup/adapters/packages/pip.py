"""
Pip adapter — packages for the legacy interpreter.

Always invoked as ``<interpreter> -m pip`` so the packages land in
the legacy runtime, never the system Python 3. Every install's output
is appended to the dependency log.
"""

from __future__ import annotations

import logging
from pathlib import Path

from volsetup.adapters.base import CommandRunner
from volsetup.core.models.command import CommandResult
from volsetup.core.persistence.report_file import append_command_output

logger = logging.getLogger(__name__)


class PipPackages:
    """pip operations bound to one interpreter.

    Args:
        runner: Process executor.
        interpreter: Legacy interpreter (``python2``).
        log_path: Dependency log; install output is appended here.
        timeout: Per-command timeout in seconds.
    """

    name = "pip"

    def __init__(
        self,
        runner: CommandRunner,
        interpreter: str = "python2",
        log_path: str | Path | None = None,
        timeout: float | None = None,
    ) -> None:
        self._runner = runner
        self._interpreter = interpreter
        self._log_path = Path(log_path) if log_path else None
        self._timeout = timeout

    def _pip(self, *args: str, timeout: float | None = None) -> CommandResult:
        return self._runner.run(
            self._interpreter,
            ["-m", "pip", *args],
            timeout=timeout if timeout is not None else self._timeout,
        )

    def is_installed(self, package: str) -> bool:
        return self._pip("show", package, timeout=60).ok

    def install(self, package: str, upgrade: bool = False) -> CommandResult:
        args = ["install"]
        if upgrade:
            args.append("-U")
        args.append(package)
        logger.info("pip install %s", package)
        result = self._pip(*args)
        self._append_log(result)
        return result

    def upgrade_tooling(self) -> CommandResult:
        """``pip install --upgrade pip setuptools``."""
        result = self._pip("install", "--upgrade", "pip", "setuptools")
        self._append_log(result)
        return result

    def _append_log(self, result: CommandResult) -> None:
        if self._log_path is not None:
            append_command_output(self._log_path, result)
