"""
Step and StepResult — the provisioning contract.

A Step is one unit of the plan: an optional precondition, an action
and an optional verification. The runner executes it and records a
StepResult. Step actions raise ProvisionError on failure; results are
the only thing that leaves the runner.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from volsetup.core.models.errors import ErrorKind


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class StepStatus(StrEnum):
    """Lifecycle states of a step."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class RunStatus(StrEnum):
    """Overall status of a provisioning run."""

    SUCCEEDED = "succeeded"
    ABORTED = "aborted"


@dataclass
class StepOutput:
    """What a step action hands back to the runner."""

    output: str = ""
    warnings: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Step:
    """One unit of the provisioning plan.

    Args:
        id: Stable identifier (``backup``, ``fetch-source`` ...).
        description: Human-readable label for progress output.
        action: Does the work. Raises ProvisionError on failure.
        precondition: When it returns False the step is skipped,
            or failed if ``required`` is set.
        verify: Runs only after ``action`` succeeded. Returning False
            fails the step with VerificationFailed.
        fatal: Whether a failure aborts the run.
        required: Whether a false precondition is a failure.
    """

    id: str
    description: str
    action: Callable[[], StepOutput]
    precondition: Callable[[], bool] | None = None
    verify: Callable[[], bool] | None = None
    fatal: bool = True
    required: bool = False


class StepResult(BaseModel):
    """Immutable record of one finished step."""

    step_id: str
    description: str = ""
    status: StepStatus
    fatal: bool = True

    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    output: str = ""
    warnings: list[str] = Field(default_factory=list)
    error: str | None = None
    error_kind: ErrorKind | None = None
    data: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    @property
    def ok(self) -> bool:
        return self.status == StepStatus.SUCCEEDED

    @property
    def failed(self) -> bool:
        return self.status == StepStatus.FAILED

    @property
    def skipped(self) -> bool:
        return self.status == StepStatus.SKIPPED

    @classmethod
    def success(cls, step: Step, output: StepOutput, **kwargs: Any) -> StepResult:
        return cls(
            step_id=step.id,
            description=step.description,
            status=StepStatus.SUCCEEDED,
            fatal=step.fatal,
            output=output.output,
            warnings=list(output.warnings),
            data=dict(output.data),
            **kwargs,
        )

    @classmethod
    def failure(
        cls,
        step: Step,
        kind: ErrorKind,
        error: str,
        output: str = "",
        **kwargs: Any,
    ) -> StepResult:
        return cls(
            step_id=step.id,
            description=step.description,
            status=StepStatus.FAILED,
            fatal=step.fatal,
            error=error,
            error_kind=kind,
            output=output,
            **kwargs,
        )

    @classmethod
    def skip(cls, step: Step, reason: str = "", **kwargs: Any) -> StepResult:
        return cls(
            step_id=step.id,
            description=step.description,
            status=StepStatus.SKIPPED,
            fatal=step.fatal,
            output=reason,
            **kwargs,
        )
