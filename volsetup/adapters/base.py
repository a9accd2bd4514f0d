"""
Adapter base — the contract between services and external processes.

Every service that touches the outside world (apt, pip, git, the
legacy interpreter) goes through a ``CommandRunner``. Services never
call ``subprocess`` directly, which keeps the whole plan runnable
against ``MockCommandRunner`` in tests and ``--mock`` mode.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence

from volsetup.core.models.command import CommandResult


class CommandRunner(ABC):
    """Abstract process executor.

    Implementations NEVER raise for a failed command. Non-zero exits,
    missing executables and timeouts are all reported in the
    CommandResult.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The runner identifier (``subprocess``, ``mock``)."""

    @abstractmethod
    def run(
        self,
        command: str,
        args: Sequence[str] = (),
        *,
        env: Mapping[str, str] | None = None,
        cwd: str | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        """Run ``command`` with ``args`` and capture the outcome.

        Args:
            command: Executable name or path.
            args: Arguments, passed through unchanged.
            env: Extra environment variables layered over os.environ.
            cwd: Working directory.
            timeout: Seconds before the process is killed.
        """

    @abstractmethod
    def which(self, name: str) -> str | None:
        """Resolve an executable on PATH, or None."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
