"""
CommandResult — the outcome of one external process invocation.

The executor never raises for a non-zero exit. Callers inspect the
result, or call ``check()`` to turn a failure into a ProvisionError.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field

from volsetup.core.models.errors import ErrorKind, ProvisionError


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class CommandResult(BaseModel):
    """Captured exit code, output and failure class of a command."""

    command: list[str] = Field(default_factory=list)
    exit_code: int = 0
    stdout: str = ""
    stderr: str = ""
    error_kind: ErrorKind | None = None
    started_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        """Whether the command ran and exited 0."""
        return self.error_kind is None and self.exit_code == 0

    @property
    def command_line(self) -> str:
        return " ".join(self.command)

    @property
    def combined_output(self) -> str:
        """stdout and stderr joined, stderr last."""
        parts = [p for p in (self.stdout.strip(), self.stderr.strip()) if p]
        return "\n".join(parts)

    def check(self, message: str = "") -> CommandResult:
        """Return self when ok, otherwise raise a ProvisionError."""
        if self.ok:
            return self
        kind = self.error_kind or ErrorKind.NON_ZERO_EXIT
        summary = message or f"`{self.command_line}` failed"
        if kind == ErrorKind.NON_ZERO_EXIT:
            summary = f"{summary} (exit {self.exit_code})"
        raise ProvisionError(kind, summary, output=self.combined_output)

    @classmethod
    def success(cls, command: list[str], stdout: str = "", **kwargs) -> CommandResult:
        return cls(command=command, exit_code=0, stdout=stdout, **kwargs)

    @classmethod
    def failure(
        cls,
        command: list[str],
        exit_code: int = 1,
        stderr: str = "",
        error_kind: ErrorKind = ErrorKind.NON_ZERO_EXIT,
        **kwargs,
    ) -> CommandResult:
        return cls(
            command=command,
            exit_code=exit_code,
            stderr=stderr,
            error_kind=error_kind,
            **kwargs,
        )
