"""
End-to-end install runs against a simulated host.

Every path is rebased into tmp_path and every command goes through the
simulated runner, so these exercise the full plan: backup, packages,
fetch, patch, wrapper, verification and the persisted report.
"""

import json
import os
from pathlib import Path

import pytest

from volsetup.core.engine.runner import CancelToken
from volsetup.core.models.errors import ErrorKind
from volsetup.core.models.step import RunStatus, StepStatus
from volsetup.core.use_cases.install import (
    EXIT_ABORTED,
    EXIT_INTERRUPTED,
    EXIT_OK,
    EXIT_PERMISSION_DENIED,
    run_install,
    simulated_runner,
)


@pytest.fixture(autouse=True)
def _detach_install_log():
    from volsetup.core.observability.logging_config import detach_log_file

    yield
    detach_log_file()


def _install(config, runner, **kw):
    kw.setdefault("is_privileged", lambda: True)
    return run_install(config, runner, **kw)


def _report(config) -> dict:
    return json.loads(Path(config.report_path).read_text(encoding="utf-8"))


def _backups(path) -> list[Path]:
    path = Path(path)
    return sorted(path.parent.glob(f"{path.name}_backup_*"))


# ── Fresh install ────────────────────────────────────────────────────


class TestFreshInstall:
    def test_succeeds(self, config, healthy_runner):
        result = _install(config, healthy_runner, timestamp="20260101_000000")

        assert result.exit_code == EXIT_OK
        assert result.report.status == RunStatus.SUCCEEDED
        assert result.report.result_for("backup").status == StepStatus.SUCCEEDED
        assert result.report.result_for("backup").output == "No existing installation found"
        assert result.report.result_for("install-git").skipped

    def test_artifacts(self, config, healthy_runner):
        _install(config, healthy_runner)

        entry = config.entry_point_path
        assert entry.read_text().splitlines()[0] == "#!/usr/bin/env python2"
        assert os.access(entry, os.X_OK)

        wrapper = Path(config.wrapper_path)
        assert os.access(wrapper, os.X_OK)
        assert "INTERPRETER=python2" in wrapper.read_text()
        assert (wrapper.parent / "vol2.py").is_symlink()
        assert (wrapper.parent / "volatility").is_symlink()

    def test_report_and_logs(self, config, healthy_runner):
        result = _install(config, healthy_runner)

        report = _report(config)
        assert result.report_path == Path(config.report_path)
        assert report["status"] == "succeeded"
        assert report["operation_id"] == result.report.operation_id
        assert report["target"]["revision"] == "2.6.1"
        assert report["install_dir"] == str(config.install_dir)
        assert [s["step_id"] for s in report["steps"]][-1] == "cleanup"

        install_log = Path(config.install_log).read_text()
        assert "Starting Volatility" in install_log
        assert "$ python2 setup.py install" in install_log
        assert "$ python2 -m pip install -U yara" in Path(config.deps_log).read_text()

    def test_missing_library_is_only_a_warning(self, config, healthy_runner):
        result = _install(config, healthy_runner)
        assert result.succeeded
        assert any(w.startswith("link-library: NotFound") for w in result.report.warnings)

    def test_pinned_revision_checked_out(self, config, healthy_runner):
        _install(config, healthy_runner)
        checkout = healthy_runner.calls_matching("git", "-C", str(config.install_dir), "checkout")
        assert checkout[0].command[-1] == "2.6.1"


# ── Prior installs ───────────────────────────────────────────────────


class TestPriorInstall:
    def test_prior_install_backed_up(self, config, healthy_runner):
        config.install_dir.mkdir(parents=True)
        (config.install_dir / "vol.py").write_text("previous install")

        result = _install(config, healthy_runner, timestamp="20260101_000000")

        assert result.succeeded
        backups = _backups(config.install_dir)
        assert [b.name for b in backups] == ["volatility_backup_20260101_000000"]
        assert (backups[0] / "vol.py").read_text() == "previous install"
        assert config.entry_point_path.read_text().startswith("#!/usr/bin/env python2")

    def test_rerun_is_idempotent(self, config, healthy_runner):
        first = _install(config, healthy_runner, timestamp="20260101_000000")
        second = _install(config, healthy_runner, timestamp="20260101_000001")

        assert first.succeeded and second.succeeded
        backups = _backups(config.install_dir)
        assert [b.name for b in backups] == ["volatility_backup_20260101_000001"]
        assert any(backups[0].iterdir())
        assert _backups(config.wrapper_path)
        assert second.report.result_for("backup").data["backups"]


# ── Failures ─────────────────────────────────────────────────────────


class TestFailures:
    def test_missing_revision_aborts(self, config, healthy_runner):
        healthy_runner.fail(
            "git", "-C", str(config.install_dir), "checkout",
            stderr="error: pathspec '2.6.1' did not match any file(s) known to git",
        )

        result = _install(config, healthy_runner)

        assert result.exit_code == EXIT_ABORTED
        failed = result.report.failed_step
        assert failed.step_id == "fetch-source"
        assert failed.error_kind == ErrorKind.REVISION_NOT_FOUND
        assert "pathspec" in failed.output
        assert result.report.result_for("generate-wrapper") is None
        assert not Path(config.wrapper_path).exists()
        assert _report(config)["status"] == "aborted"

    def test_critical_package_failure_aborts(self, config, healthy_runner):
        healthy_runner.fail("apt-get", "install", "-y", "python2", stderr="E: Unable to locate package")
        result = _install(config, healthy_runner)
        assert result.exit_code == EXIT_ABORTED
        assert result.report.failed_step.step_id == "install-runtime"

    def test_smoke_test_failure_aborts(self, config, healthy_runner):
        healthy_runner.fail(config.wrapper_path, "-h", stderr="python2: not found")
        result = _install(config, healthy_runner)
        assert result.report.failed_step.step_id == "verify"
        assert result.report.failed_step.error_kind == ErrorKind.VERIFICATION_FAILED

    def test_keep_going_runs_later_steps(self, config, healthy_runner):
        healthy_runner.fail("python2", "setup.py", stderr="error")
        config = config.model_copy(update={"stop_on_failure": False})
        result = _install(config, healthy_runner)
        assert result.exit_code == EXIT_ABORTED
        assert result.report.result_for("generate-wrapper").ok


# ── Guards ───────────────────────────────────────────────────────────


class TestGuards:
    def test_unprivileged_run_touches_nothing(self, config, tmp_path: Path):
        runner = simulated_runner(config)
        config.install_dir.mkdir(parents=True)
        before = sorted(p for p in tmp_path.rglob("*"))

        result = run_install(config, runner, is_privileged=lambda: False)

        assert result.exit_code == EXIT_PERMISSION_DENIED
        assert result.error_kind == ErrorKind.PERMISSION_DENIED
        assert runner.call_count == 0
        assert sorted(p for p in tmp_path.rglob("*")) == before
        assert not _backups(config.install_dir)

    def test_declined_confirmation(self, config, healthy_runner):
        seen = []

        def confirm(info):
            seen.append(info)
            return False

        result = _install(config, healthy_runner, confirm=confirm)

        assert result.exit_code == EXIT_INTERRUPTED
        assert result.cancelled
        assert seen and seen[0].invoking_user == "root"
        assert not Path(config.install_log).exists()
        assert not Path(config.report_path).exists()

    def test_cancel_between_steps(self, config, healthy_runner):
        token = CancelToken()

        def on_end(step, result):
            if step.id == "update-index":
                token.cancel("interrupted by signal")

        result = _install(config, healthy_runner, cancel=token, on_step_end=on_end)

        assert result.exit_code == EXIT_INTERRUPTED
        assert result.report.interrupted
        assert result.report.result_for("install-git").error_kind == ErrorKind.INTERRUPTED
        assert _report(config)["interrupted"] is True

    def test_deadline_during_failing_clone_reports_the_clone(self, config, healthy_runner):
        now = [0.0]
        token = CancelToken(timeout=60, clock=lambda: now[0])
        healthy_runner.fail("git", "clone", stderr="fatal: unable to access repository")

        def on_start(step):
            if step.id == "fetch-source":
                now[0] = 120.0

        result = _install(config, healthy_runner, cancel=token, on_step_start=on_start)

        assert result.exit_code == EXIT_ABORTED
        assert not result.report.interrupted
        assert result.report.failed_step.error_kind == ErrorKind.CLONE_FAILED
        assert _report(config)["not_started"][0] == "install-toolkit"
