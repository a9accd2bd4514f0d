"""
Install plan — the ordered list of Steps that provisions the toolkit.

Order matters and is fixed: prior installs are moved aside first, the
legacy runtime exists before any package is installed into it, and the
entry point is patched before the wrapper that invokes it is written.

    backup → update-index → install-git → install-runtime →
    bootstrap-pip → upgrade-pip → install-python-deps → link-library →
    fetch-source → install-toolkit → fix-ownership →
    patch-entry-point → generate-wrapper → verify → cleanup
"""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path

from volsetup.adapters.base import CommandRunner
from volsetup.adapters.packages import (
    AptPackages,
    PackageInstaller,
    PackageOutcome,
    PackageStatus,
    PipPackages,
)
from volsetup.adapters.shell import filesystem
from volsetup.adapters.vcs.git import GitFetcher
from volsetup.core.models.errors import ErrorKind, ProvisionError
from volsetup.core.models.step import Step, StepOutput
from volsetup.core.models.target import ProvisionConfig
from volsetup.core.persistence.report_file import append_command_output
from volsetup.core.services import patcher, verifier, wrapper

logger = logging.getLogger(__name__)


def _outcome_lines(outcomes: list[PackageOutcome]) -> str:
    marks = {
        PackageStatus.ALREADY_PRESENT: "= already present",
        PackageStatus.INSTALLED: "+ installed",
        PackageStatus.FAILED: "✗ failed",
    }
    return "\n".join(f"{o.name}: {marks[o.status]}" for o in outcomes)


def _outcome_warnings(outcomes: list[PackageOutcome]) -> list[str]:
    return [
        f"{ErrorKind.NON_CRITICAL_CHECK_FAILED}: {o.name} ({o.manager}) not installed: {o.reason}"
        for o in outcomes
        if o.failed and not o.critical
    ]


class InstallSteps:
    """Step actions bound to one config and one runner.

    Every action raises ProvisionError on failure and returns a
    StepOutput otherwise; the runner turns both into StepResults.
    """

    def __init__(
        self,
        config: ProvisionConfig,
        runner: CommandRunner,
        timestamp: str | None = None,
    ) -> None:
        self.config = config
        self.runner = runner
        self.timestamp = timestamp
        timeout = config.command_timeout
        self.apt = AptPackages(runner, timeout=timeout)
        self.pip = PipPackages(
            runner,
            interpreter=config.interpreter,
            log_path=config.deps_log,
            timeout=timeout,
        )
        self.packages = PackageInstaller(self.apt, self.pip)
        self.git = GitFetcher(runner, timeout=timeout)

    # ── Preparation ─────────────────────────────────────────────

    def backup(self) -> StepOutput:
        ts = self.timestamp or time.strftime(filesystem.TIMESTAMP_FORMAT)
        moved: dict[str, str] = {}
        for path in self.config.backup_paths:
            dest = filesystem.backup(path, ts)
            if dest is not None:
                moved[str(path)] = str(dest)
        if not moved:
            return StepOutput(output="No existing installation found")
        lines = [f"{src} → {dst}" for src, dst in moved.items()]
        return StepOutput(output="\n".join(lines), data={"backups": moved})

    def update_index(self) -> StepOutput:
        result = self.apt.update_index()
        result.check("Package index refresh failed")
        return StepOutput(output="Package index updated")

    def git_missing(self) -> bool:
        return not self.git.is_available()

    def install_git(self) -> StepOutput:
        self.apt.install("git").check("Could not install git")
        return StepOutput(output="git installed")

    def git_present(self) -> bool:
        return self.git.is_available()

    # ── Legacy runtime ──────────────────────────────────────────

    def install_runtime(self) -> StepOutput:
        outcomes = self.packages.ensure_all(self.config.target.packages_for("apt"))
        return StepOutput(
            output=_outcome_lines(outcomes),
            warnings=_outcome_warnings(outcomes),
            data={"packages": [o.model_dump(mode="json") for o in outcomes]},
        )

    def interpreter_present(self) -> bool:
        return self.runner.which(self.config.interpreter) is not None

    def pip_missing(self) -> bool:
        return self.runner.which(self.config.pip_binary) is None

    def bootstrap_pip(self) -> StepOutput:
        cfg = self.config
        script = Path(cfg.get_pip_path)
        if not script.is_file():
            self.runner.run(
                "wget",
                ["-q", cfg.get_pip_url, "-O", str(script)],
                timeout=cfg.command_timeout,
            ).check(f"Could not download {cfg.get_pip_url}")
        result = self.runner.run(cfg.interpreter, [str(script)], timeout=cfg.command_timeout)
        append_command_output(cfg.deps_log, result)
        result.check(f"pip bootstrap for {cfg.interpreter} failed")
        script.unlink(missing_ok=True)
        return StepOutput(output=f"{cfg.pip_binary} installed")

    def upgrade_pip(self) -> StepOutput:
        self.pip.upgrade_tooling().check("Could not upgrade pip and setuptools")
        return StepOutput(output="pip and setuptools upgraded")

    def install_python_deps(self) -> StepOutput:
        outcomes = self.packages.ensure_all(self.config.target.packages_for("pip"))
        return StepOutput(
            output=_outcome_lines(outcomes),
            warnings=_outcome_warnings(outcomes),
            data={"packages": [o.model_dump(mode="json") for o in outcomes]},
        )

    def link_library(self) -> StepOutput:
        cfg = self.config
        link = Path(cfg.library_link)
        found = filesystem.find_first(cfg.library_patterns, cfg.library_search_roots[:1])
        if found is None:
            found = filesystem.search(cfg.library_search_roots, cfg.library_name)
        if found == link:
            # The walk reached the link path itself
            if not link.is_symlink():
                return StepOutput(output=f"{link} already present", data={"library": str(link)})
            found = link.resolve() if link.resolve().is_file() else None
        if found is None:
            roots = ", ".join(cfg.library_search_roots)
            return StepOutput(
                output=f"{cfg.library_name} not found",
                warnings=[
                    f"{ErrorKind.NOT_FOUND}: {cfg.library_name} not found under {roots}; "
                    f"{cfg.target.integration_module} scanning may not work"
                ],
            )
        filesystem.replace_symlink(found, cfg.library_link)
        return StepOutput(
            output=f"{cfg.library_link} → {found}",
            data={"library": str(found), "link": cfg.library_link},
        )

    # ── Toolkit ─────────────────────────────────────────────────

    def fetch_source(self) -> StepOutput:
        target = self.config.target
        fetched = self.git.fetch(target.repo_url, target.revision, self.config.install_dir)
        return StepOutput(
            output=f"{target.name} {fetched.revision} at {fetched.path}",
            data=fetched.model_dump(),
        )

    def install_toolkit(self) -> StepOutput:
        cfg = self.config
        result = self.runner.run(
            cfg.interpreter,
            ["setup.py", "install"],
            cwd=str(cfg.install_dir),
            timeout=cfg.command_timeout,
        )
        append_command_output(cfg.install_log, result)
        result.check(f"{cfg.target.name} setup.py install failed (see {cfg.install_log})")
        return StepOutput(output=f"{cfg.target.name} installed into {cfg.interpreter}")

    def fix_ownership(self) -> StepOutput:
        user = self.config.invoking_user
        self.runner.run(
            "chown",
            ["-R", f"{user}:{user}", str(self.config.install_dir)],
            timeout=120,
        ).check(f"Could not hand {self.config.install_dir} back to {user}")
        return StepOutput(output=f"Owned by {user}")

    def patch_entry_point(self) -> StepOutput:
        path = self.config.entry_point_path
        directive = self.directive
        changed = patcher.patch_first_line(path, patcher.PYTHON_SHEBANG, directive)
        patcher.ensure_executable(path)
        state = "updated" if changed else "unchanged"
        return StepOutput(output=f"Interpreter directive {state}: {directive}")

    @property
    def directive(self) -> str:
        return f"#!/usr/bin/env {self.config.interpreter}"

    def entry_point_patched(self) -> bool:
        patcher.verify_first_line(self.config.entry_point_path, self.directive)
        return True

    def generate_wrapper(self) -> StepOutput:
        cfg = self.config
        target = cfg.target
        path = wrapper.generate_wrapper(
            cfg.wrapper_path,
            cfg.interpreter,
            cfg.candidate_locations,
            search_roots=cfg.entry_point_search_roots,
            entry_point_name=Path(target.entry_point).name,
            entry_point_glob=f"*/{target.checkout_dir_name}/{target.entry_point}",
            name=target.name,
        )
        aliases = wrapper.link_aliases(path, cfg.wrapper_aliases)
        names = [path.name, *(a.name for a in aliases)]
        return StepOutput(
            output=f"Wrapper {path} (aliases: {', '.join(a.name for a in aliases) or 'none'})",
            data={"wrapper": str(path), "commands": names},
        )

    def wrapper_executable(self) -> bool:
        return os.access(self.config.wrapper_path, os.X_OK)

    # ── Verification & cleanup ──────────────────────────────────

    def verify(self) -> StepOutput:
        cfg = self.config
        target = cfg.target
        report = verifier.run_checks(
            verifier.toolkit_checks(
                self.runner,
                interpreter=cfg.interpreter,
                entry_point=str(cfg.entry_point_path),
                wrapper_path=cfg.wrapper_path,
                capabilities=target.capabilities,
                integration_module=target.integration_module,
                import_checks=target.import_checks,
            )
        )
        if not report.passed:
            names = ", ".join(r.name for r in report.critical_failures)
            raise ProvisionError(
                ErrorKind.VERIFICATION_FAILED,
                f"Smoke tests failed: {names}",
                output=report.summary(),
            )
        return StepOutput(
            output=report.summary(),
            warnings=[f"{ErrorKind.NON_CRITICAL_CHECK_FAILED}: {w}" for w in report.warnings],
            data={"verification": report.to_dict()},
        )

    def cleanup(self) -> StepOutput:
        script = Path(self.config.get_pip_path)
        if script.exists():
            script.unlink()
            return StepOutput(output=f"Removed {script}")
        return StepOutput(output="Nothing to clean up")


def build_plan(
    config: ProvisionConfig,
    runner: CommandRunner,
    timestamp: str | None = None,
) -> list[Step]:
    """Build the fixed, ordered install plan.

    Args:
        config: Resolved provisioning configuration.
        runner: Process executor every step goes through.
        timestamp: Backup suffix override (tests); defaults to now.
    """
    s = InstallSteps(config, runner, timestamp=timestamp)
    target = config.target
    return [
        Step(
            "backup",
            "Move prior installations aside",
            s.backup,
        ),
        Step(
            "update-index",
            "Refresh the package index",
            s.update_index,
        ),
        Step(
            "install-git",
            "Install git",
            s.install_git,
            precondition=s.git_missing,
            verify=s.git_present,
        ),
        Step(
            "install-runtime",
            f"Install {config.interpreter} and build tools",
            s.install_runtime,
            verify=s.interpreter_present,
        ),
        Step(
            "bootstrap-pip",
            f"Bootstrap {config.pip_binary}",
            s.bootstrap_pip,
            precondition=s.pip_missing,
        ),
        Step(
            "upgrade-pip",
            "Upgrade pip and setuptools",
            s.upgrade_pip,
            fatal=False,
        ),
        Step(
            "install-python-deps",
            f"Install {target.name} Python dependencies",
            s.install_python_deps,
        ),
        Step(
            "link-library",
            f"Link {config.library_name}",
            s.link_library,
            fatal=False,
        ),
        Step(
            "fetch-source",
            f"Fetch {target.name} {target.revision}",
            s.fetch_source,
        ),
        Step(
            "install-toolkit",
            f"Install {target.name}",
            s.install_toolkit,
        ),
        Step(
            "fix-ownership",
            f"Hand checkout back to {config.invoking_user}",
            s.fix_ownership,
            precondition=lambda: config.runs_via_sudo,
            fatal=False,
        ),
        Step(
            "patch-entry-point",
            f"Pin {target.entry_point} to {config.interpreter}",
            s.patch_entry_point,
            verify=s.entry_point_patched,
        ),
        Step(
            "generate-wrapper",
            f"Generate wrapper {config.wrapper_path}",
            s.generate_wrapper,
            verify=s.wrapper_executable,
        ),
        Step(
            "verify",
            "Run smoke tests",
            s.verify,
        ),
        Step(
            "cleanup",
            "Remove temporary files",
            s.cleanup,
            fatal=False,
        ),
    ]
