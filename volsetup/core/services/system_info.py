"""
System information — read-only probes shown before confirmation.
"""

from __future__ import annotations

import platform
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from volsetup.adapters.base import CommandRunner

OS_RELEASE = Path("/etc/os-release")


@dataclass
class SystemInfo:
    """Snapshot of the host before provisioning."""

    os_name: str = ""
    interpreters: dict[str, str] = field(default_factory=dict)
    user: str = ""
    invoking_user: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "os_name": self.os_name,
            "interpreters": self.interpreters,
            "user": self.user,
            "invoking_user": self.invoking_user,
        }


def read_os_name(os_release: Path = OS_RELEASE) -> str:
    """PRETTY_NAME from os-release, falling back to ``uname``."""
    try:
        for line in os_release.read_text(encoding="utf-8").splitlines():
            if line.startswith("PRETTY_NAME="):
                return line.split("=", 1)[1].strip().strip('"')
    except OSError:
        pass
    uname = platform.uname()
    return f"{uname.system} {uname.release} {uname.machine}"


def interpreter_version(runner: CommandRunner, name: str) -> str:
    """``<name> --version`` output, or a not-found marker."""
    if runner.which(name) is None:
        return "not installed"
    result = runner.run(name, ["--version"], timeout=10)
    # Python 2 prints its version on stderr
    text = (result.stdout + result.stderr).strip()
    return text or "unknown"


def collect_system_info(
    runner: CommandRunner,
    user: str,
    invoking_user: str,
    os_release: Path = OS_RELEASE,
) -> SystemInfo:
    return SystemInfo(
        os_name=read_os_name(os_release),
        interpreters={
            name: interpreter_version(runner, name) for name in ("python", "python2", "python3")
        },
        user=user,
        invoking_user=invoking_user,
    )
