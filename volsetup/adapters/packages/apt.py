"""
APT adapter — Debian system packages.

Probes with ``dpkg-query`` and installs with ``apt-get install -y``.
"""

from __future__ import annotations

import logging

from volsetup.adapters.base import CommandRunner
from volsetup.core.models.command import CommandResult

logger = logging.getLogger(__name__)

_NONINTERACTIVE = {"DEBIAN_FRONTEND": "noninteractive"}


class AptPackages:
    """System package manager operations."""

    name = "apt"

    def __init__(self, runner: CommandRunner, timeout: float | None = None) -> None:
        self._runner = runner
        self._timeout = timeout

    def is_installed(self, package: str) -> bool:
        """Check ``dpkg-query -W -f=${Status} PKG`` for an installed package."""
        result = self._runner.run(
            "dpkg-query",
            ["-W", "-f=${Status}", package],
            timeout=10,
        )
        return result.ok and "install ok installed" in result.stdout

    def install(self, package: str) -> CommandResult:
        logger.info("apt-get install %s", package)
        return self._runner.run(
            "apt-get",
            ["install", "-y", package],
            env=_NONINTERACTIVE,
            timeout=self._timeout,
        )

    def update_index(self) -> CommandResult:
        """Refresh the package index (``apt-get update -y``)."""
        return self._runner.run(
            "apt-get",
            ["update", "-y"],
            env=_NONINTERACTIVE,
            timeout=self._timeout,
        )
