"""
Step runner — the central provisioning loop.

Takes an ordered plan of Steps, executes them strictly in order and
collects StepResults into a RunReport.

Per step:
    Pending → (precondition false) → Skipped
    Pending → Running → Succeeded
    Pending → Running → Failed

A failed fatal step aborts the run: the remaining steps are not
started. Cancellation (SIGINT or run timeout) is observed between
steps; the step that would have started next is recorded as
Failed(Interrupted). A step that fails after Ctrl+C was requested is
recorded as Interrupted too, since the signal reached its child process.
"""

from __future__ import annotations

import logging
import signal
import time
import uuid
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from volsetup.core.models.errors import ErrorKind, ProvisionError
from volsetup.core.models.step import RunStatus, Step, StepOutput, StepResult, StepStatus

logger = logging.getLogger(__name__)


class CancelToken:
    """Run-level cancellation: an explicit cancel, SIGINT, or a deadline.

    Args:
        timeout: Seconds from construction until the run is cancelled.
        clock: Monotonic clock (injectable for tests).
    """

    def __init__(
        self,
        timeout: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._deadline = clock() + timeout if timeout is not None else None
        self._reason = ""
        self._requested = False

    @property
    def cancelled(self) -> bool:
        if self._reason:
            return True
        if self._deadline is not None and self._clock() >= self._deadline:
            self._reason = "run timeout exceeded"
            return True
        return False

    @property
    def reason(self) -> str:
        return self._reason

    @property
    def requested(self) -> bool:
        """Whether ``cancel`` was called (SIGINT, Ctrl+C, caller), as opposed to the deadline."""
        return self._requested

    def cancel(self, reason: str = "cancelled") -> None:
        self._requested = True
        if not self._reason:
            self._reason = reason

    @contextmanager
    def handle_sigint(self) -> Iterator[CancelToken]:
        """Turn Ctrl+C into a cancellation observed before the next step."""

        def _handler(signum: int, frame: Any) -> None:
            logger.warning("Interrupt received; stopping after the current step")
            self.cancel("interrupted by signal")

        previous = signal.signal(signal.SIGINT, _handler)
        try:
            yield self
        finally:
            signal.signal(signal.SIGINT, previous)


@dataclass
class RunReport:
    """Ordered StepResults plus the overall outcome of a run."""

    operation_id: str = ""
    started_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())
    ended_at: str = ""
    results: list[StepResult] = field(default_factory=list)
    interrupted: bool = False
    # Live state of every planned step, in plan order
    states: dict[str, StepStatus] = field(default_factory=dict)

    @property
    def status(self) -> RunStatus:
        if self.interrupted or any(r.failed and r.fatal for r in self.results):
            return RunStatus.ABORTED
        return RunStatus.SUCCEEDED

    @property
    def succeeded(self) -> bool:
        return self.status == RunStatus.SUCCEEDED

    @property
    def failed_step(self) -> StepResult | None:
        """The first failure that aborted the run, if any."""
        for r in self.results:
            if r.failed and (r.fatal or r.error_kind == ErrorKind.INTERRUPTED):
                return r
        return None

    @property
    def warnings(self) -> list[str]:
        out: list[str] = []
        for r in self.results:
            out.extend(f"{r.step_id}: {w}" for w in r.warnings)
            if r.failed and not r.fatal and r.error_kind != ErrorKind.INTERRUPTED:
                out.append(f"{r.step_id}: {r.error}")
        return out

    def count(self, status: StepStatus) -> int:
        return sum(1 for r in self.results if r.status == status)

    @property
    def not_started(self) -> list[str]:
        """Planned steps still Pending when the run ended."""
        return [sid for sid, state in self.states.items() if state == StepStatus.PENDING]

    def result_for(self, step_id: str) -> StepResult | None:
        for r in self.results:
            if r.step_id == step_id:
                return r
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation_id": self.operation_id,
            "status": str(self.status),
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "interrupted": self.interrupted,
            "succeeded": self.count(StepStatus.SUCCEEDED),
            "failed": self.count(StepStatus.FAILED),
            "skipped": self.count(StepStatus.SKIPPED),
            "not_started": self.not_started,
            "warnings": self.warnings,
            "steps": [r.model_dump(mode="json") for r in self.results],
        }


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def execute_step(step: Step, cancel: CancelToken | None = None) -> StepResult:
    """Run one step through its lifecycle. Never raises."""
    started_at = datetime.now(UTC).isoformat()
    start = time.monotonic()

    def timing() -> dict[str, Any]:
        return {
            "started_at": started_at,
            "ended_at": datetime.now(UTC).isoformat(),
            "duration_ms": _elapsed_ms(start),
        }

    # ── Precondition ─────────────────────────────────────────────
    if step.precondition is not None:
        try:
            ready = step.precondition()
        except Exception as e:
            logger.debug("Precondition of %s raised", step.id, exc_info=True)
            return StepResult.failure(
                step, ErrorKind.UNEXPECTED, f"Precondition error: {e}", **timing()
            )
        if not ready:
            if step.required:
                return StepResult.failure(
                    step,
                    ErrorKind.PRECONDITION_FAILED,
                    f"Precondition not met for required step '{step.id}'",
                    **timing(),
                )
            return StepResult.skip(step, "precondition not met", **timing())

    # ── Action ───────────────────────────────────────────────────
    logger.debug("Running step %s", step.id)
    try:
        output = step.action()
        if output is None:
            output = StepOutput()
    except ProvisionError as e:
        return StepResult.failure(step, e.kind, e.message, output=e.output, **timing())
    except KeyboardInterrupt:
        if cancel is not None:
            cancel.cancel("interrupted")
        return StepResult.failure(
            step, ErrorKind.INTERRUPTED, "Interrupted while running", **timing()
        )
    except Exception as e:
        logger.debug("Step %s raised", step.id, exc_info=True)
        return StepResult.failure(
            step, ErrorKind.UNEXPECTED, f"Unexpected error: {e}", **timing()
        )

    # ── Verification (only after a successful action) ────────────
    if step.verify is not None:
        try:
            verified = step.verify()
        except ProvisionError as e:
            return StepResult.failure(
                step, e.kind, e.message, output=e.output or output.output, **timing()
            )
        except Exception as e:
            logger.debug("Verification of %s raised", step.id, exc_info=True)
            return StepResult.failure(
                step, ErrorKind.UNEXPECTED, f"Verification error: {e}", **timing()
            )
        if not verified:
            return StepResult.failure(
                step,
                ErrorKind.VERIFICATION_FAILED,
                f"Verification failed for step '{step.id}'",
                output=output.output,
                **timing(),
            )

    return StepResult.success(step, output, **timing())


def run_plan(
    steps: Sequence[Step],
    *,
    stop_on_failure: bool = True,
    cancel: CancelToken | None = None,
    operation_id: str | None = None,
    on_step_start: Callable[[Step], None] | None = None,
    on_step_end: Callable[[Step, StepResult], None] | None = None,
) -> RunReport:
    """Execute ``steps`` in declared order.

    Args:
        steps: The plan. Executed exactly in this order.
        stop_on_failure: Stop after a failed fatal step. When False the
            runner keeps going, but the run is still aborted.
        cancel: Cancellation token checked before every step.
        operation_id: Identifier recorded in the report.
        on_step_start: Progress callback.
        on_step_end: Progress callback with the finished result.

    Returns:
        RunReport with one result per executed step.
    """
    report = RunReport(operation_id=operation_id or generate_operation_id())
    cancel = cancel or CancelToken()
    report.states = {step.id: StepStatus.PENDING for step in steps}

    for step in steps:
        if cancel.cancelled:
            result = StepResult.failure(
                step,
                ErrorKind.INTERRUPTED,
                f"Not started: {cancel.reason}",
            )
            report.results.append(result)
            report.states[step.id] = result.status
            report.interrupted = True
            if on_step_end:
                on_step_end(step, result)
            logger.warning("✗ %s → interrupted (%s)", step.id, cancel.reason)
            break

        report.states[step.id] = StepStatus.RUNNING
        if on_step_start:
            on_step_start(step)

        result = execute_step(step, cancel)
        if result.failed and result.error_kind != ErrorKind.INTERRUPTED and cancel.requested:
            # The signal that cancelled the run also reached the step's child process
            result = result.model_copy(
                update={
                    "error_kind": ErrorKind.INTERRUPTED,
                    "error": f"{result.error} ({cancel.reason})",
                }
            )
        report.results.append(result)
        report.states[step.id] = result.status

        marker = "✓" if result.ok else "✗" if result.failed else "⊘"
        logger.info("%s %s → %s", marker, step.id, result.status)
        if on_step_end:
            on_step_end(step, result)

        # A deadline passing during a step that then fails on its own is an abort
        if result.error_kind == ErrorKind.INTERRUPTED:
            report.interrupted = True
            break

        if result.failed and step.fatal and stop_on_failure:
            logger.error("Fatal step '%s' failed: %s", step.id, result.error)
            break

    report.ended_at = datetime.now(UTC).isoformat()
    return report


def generate_operation_id() -> str:
    """Generate a unique operation ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"op-{now}-{short}"
