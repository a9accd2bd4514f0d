"""
Mock command runner — universal test double for process execution.

Used by ``--mock`` mode and the test suite to simulate apt, pip, git
and the legacy interpreter without touching the system. Responses are
matched on a command prefix; the most recently registered match wins.
Handlers may perform side effects (e.g. create a fake checkout).
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field

from volsetup.adapters.base import CommandRunner
from volsetup.core.models.command import CommandResult

Handler = Callable[["MockCall"], CommandResult]


@dataclass
class MockCall:
    """One recorded invocation."""

    command: list[str]
    cwd: str | None = None
    env: dict[str, str] = field(default_factory=dict)
    timeout: float | None = None


class MockCommandRunner(CommandRunner):
    """Scriptable CommandRunner.

    By default every command succeeds with ``default_output`` and every
    executable resolves to ``/usr/bin/<name>``.
    """

    def __init__(self, default_output: str = "[mock] executed") -> None:
        self._default_output = default_output
        self._responses: list[tuple[tuple[str, ...], CommandResult | Handler]] = []
        self._missing: set[str] = set()
        self._call_log: list[MockCall] = []

    @property
    def name(self) -> str:
        return "mock"

    @property
    def call_log(self) -> list[MockCall]:
        """All calls this mock has received, oldest first."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def commands(self) -> list[list[str]]:
        return [c.command for c in self._call_log]

    def calls_matching(self, *prefix: str) -> list[MockCall]:
        return [c for c in self._call_log if tuple(c.command[: len(prefix)]) == prefix]

    # ── Scripting ───────────────────────────────────────────────

    def on(self, *prefix: str, result: CommandResult | Handler) -> None:
        """Respond to commands starting with ``prefix``."""
        self._responses.append((tuple(prefix), result))

    def fail(self, *prefix: str, stderr: str = "Mock failure", exit_code: int = 1) -> None:
        """Make commands starting with ``prefix`` exit non-zero."""
        self.on(
            *prefix,
            result=lambda call: CommandResult.failure(
                call.command, exit_code=exit_code, stderr=stderr
            ),
        )

    def set_missing(self, *names: str) -> None:
        """Make ``which`` fail for these executables."""
        self._missing.update(names)

    def set_available(self, *names: str) -> None:
        self._missing.difference_update(names)

    def reset(self) -> None:
        """Clear call log and scripted responses."""
        self._call_log.clear()
        self._responses.clear()
        self._missing.clear()

    # ── CommandRunner ───────────────────────────────────────────

    def which(self, name: str) -> str | None:
        if name in self._missing:
            return None
        return f"/usr/bin/{name}"

    def run(
        self,
        command: str,
        args: Sequence[str] = (),
        *,
        env: Mapping[str, str] | None = None,
        cwd: str | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        call = MockCall(
            command=[command, *args],
            cwd=cwd,
            env=dict(env or {}),
            timeout=timeout,
        )
        self._call_log.append(call)

        for prefix, response in reversed(self._responses):
            if tuple(call.command[: len(prefix)]) != prefix:
                continue
            if isinstance(response, CommandResult):
                return response.model_copy(update={"command": call.command})
            return response(call)

        return CommandResult.success(call.command, stdout=self._default_output)
