"""Adapters — bindings to processes, package managers, git and the filesystem.

Public re-exports for convenient access.
"""

from volsetup.adapters.base import CommandRunner
from volsetup.adapters.mock import MockCommandRunner
from volsetup.adapters.shell.command import SubprocessRunner

__all__ = [
    "CommandRunner",
    "MockCommandRunner",
    "SubprocessRunner",
]
