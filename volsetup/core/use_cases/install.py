"""
Install use case — provision the legacy toolkit end to end.

The full vertical slice from user intent to a persisted report:
privilege check, system summary, confirmation, file logging, plan
execution, report. Nothing on disk is touched before the privilege
check passes and the user confirmed.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from contextlib import nullcontext
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from volsetup.adapters.base import CommandRunner
from volsetup.adapters.mock import MockCall, MockCommandRunner
from volsetup.core.engine.runner import CancelToken, RunReport, generate_operation_id, run_plan
from volsetup.core.models.command import CommandResult
from volsetup.core.models.errors import ErrorKind
from volsetup.core.models.step import Step, StepResult
from volsetup.core.models.target import ProvisionConfig
from volsetup.core.observability.logging_config import attach_log_file, detach_log_file
from volsetup.core.persistence.report_file import save_report
from volsetup.core.services.plan import build_plan
from volsetup.core.services.system_info import SystemInfo, collect_system_info

logger = logging.getLogger(__name__)

# ── Exit codes ──────────────────────────────────────────────────

EXIT_OK = 0
EXIT_ABORTED = 1
EXIT_USAGE = 2
EXIT_PERMISSION_DENIED = 77
EXIT_INTERRUPTED = 130


@dataclass
class InstallResult:
    """Result of one install run."""

    config: ProvisionConfig | None = None
    system: SystemInfo | None = None
    report: RunReport | None = None
    report_path: Path | None = None
    cancelled: bool = False
    error: str | None = None
    error_kind: ErrorKind | None = None

    @property
    def exit_code(self) -> int:
        if self.error_kind == ErrorKind.PERMISSION_DENIED:
            return EXIT_PERMISSION_DENIED
        if self.error_kind == ErrorKind.CONFIG_INVALID:
            return EXIT_USAGE
        if self.cancelled:
            return EXIT_INTERRUPTED
        if self.report is None:
            return EXIT_ABORTED
        if self.report.interrupted:
            return EXIT_INTERRUPTED
        return EXIT_OK if self.report.succeeded else EXIT_ABORTED

    @property
    def succeeded(self) -> bool:
        return self.exit_code == EXIT_OK

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"exit_code": self.exit_code}
        if self.error:
            result["error"] = self.error
            result["error_kind"] = str(self.error_kind) if self.error_kind else None
        if self.cancelled:
            result["cancelled"] = True
        if self.system:
            result["system"] = self.system.to_dict()
        if self.report:
            result["report"] = self.report.to_dict()
        if self.report_path:
            result["report_path"] = str(self.report_path)
        return result


def is_root() -> bool:
    """Whether the process runs with an effective UID of 0."""
    return os.geteuid() == 0


def run_install(
    config: ProvisionConfig,
    runner: CommandRunner,
    *,
    is_privileged: Callable[[], bool] = is_root,
    confirm: Callable[[SystemInfo], bool] | None = None,
    cancel: CancelToken | None = None,
    handle_signals: bool = False,
    timestamp: str | None = None,
    on_step_start: Callable[[Step], None] | None = None,
    on_step_end: Callable[[Step, StepResult], None] | None = None,
) -> InstallResult:
    """Provision the toolkit described by ``config``.

    Args:
        config: Resolved configuration.
        runner: Process executor (real or mock).
        is_privileged: Privilege probe, checked before anything else.
        confirm: Called with the system summary; returning False
            cancels the run before any mutation. None skips the prompt.
        cancel: Cancellation token (run timeout, SIGINT).
        handle_signals: Install a SIGINT handler for the run.
        timestamp: Backup suffix override.
        on_step_start: Progress callback.
        on_step_end: Progress callback.

    Returns:
        InstallResult; never raises for provisioning failures.
    """
    result = InstallResult(config=config)

    # ── Privilege ───────────────────────────────────────────────
    if not is_privileged():
        result.error = "This installer must be run as root (try: sudo volsetup)"
        result.error_kind = ErrorKind.PERMISSION_DENIED
        logger.error("%s: %s", result.error_kind, result.error)
        return result

    # ── Summary & confirmation ──────────────────────────────────
    result.system = collect_system_info(
        runner,
        user=os.environ.get("USER", "root"),
        invoking_user=config.invoking_user,
    )
    if confirm is not None and not confirm(result.system):
        result.cancelled = True
        logger.info("Installation cancelled by user")
        return result

    # ── Execute ─────────────────────────────────────────────────
    attach_log_file(config.install_log)
    try:
        operation_id = generate_operation_id()
        logger.info("Starting %s (%s) via %s", config.target.name, operation_id, runner.name)
        plan = build_plan(config, runner, timestamp=timestamp)
        token = cancel or CancelToken(timeout=config.run_timeout)

        guard = token.handle_sigint() if handle_signals else nullcontext(token)
        with guard:
            report = run_plan(
                plan,
                stop_on_failure=config.stop_on_failure,
                cancel=token,
                operation_id=operation_id,
                on_step_start=on_step_start,
                on_step_end=on_step_end,
            )
        result.report = report

        logger.info("Run %s finished: %s", operation_id, report.status)
        try:
            result.report_path = save_report(
                {**report.to_dict(), **_context(config, result.system)},
                config.report_path,
            )
        except OSError as e:
            logger.warning("Report not written: %s", e)
    finally:
        detach_log_file()

    return result


def _context(config: ProvisionConfig, system: SystemInfo | None) -> dict[str, Any]:
    return {
        "target": {
            "name": config.target.name,
            "repo_url": config.target.repo_url,
            "revision": config.target.revision,
        },
        "install_dir": str(config.install_dir),
        "wrapper_path": config.wrapper_path,
        "install_log": config.install_log,
        "deps_log": config.deps_log,
        "system": system.to_dict() if system else {},
    }


# ── Mock mode ───────────────────────────────────────────────────


def simulated_runner(config: ProvisionConfig) -> MockCommandRunner:
    """A MockCommandRunner that behaves like a healthy host.

    ``git clone`` lays down a stub checkout with a Python 3 interpreter
    directive, and the toolkit's help output lists every expected
    capability, so the whole plan can run without touching the system.
    Use with a rebased config (``ProvisionConfig.rebased``).
    """
    runner = MockCommandRunner()
    target = config.target
    help_text = f"{target.name} {target.revision}\n\nSupported Plugin Commands:\n\n" + "\n".join(
        f"\t\t{name}" for name in target.capabilities
    )

    def clone(call: MockCall) -> CommandResult:
        dest = Path(call.command[-1])
        entry = dest / target.entry_point
        entry.parent.mkdir(parents=True, exist_ok=True)
        entry.write_text("#!/usr/bin/env python\nimport sys\n", encoding="utf-8")
        return CommandResult.success(call.command, stdout=f"Cloning into '{dest.name}'...")

    help_result = CommandResult.success([], stdout=help_text)
    runner.on("git", "clone", result=clone)
    commit = CommandResult.success([], stdout="0" * 40)
    runner.on("git", "-C", str(config.install_dir), "rev-parse", result=commit)
    runner.on(config.interpreter, str(config.entry_point_path), "-h", result=help_result)
    runner.on(config.wrapper_path, "-h", result=help_result)
    runner.on(config.interpreter, "-c", result=CommandResult.success([], stdout="3.8.0"))
    return runner
