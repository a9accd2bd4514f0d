"""
Tests for the install plan — step order and individual step actions.
"""

import os
from pathlib import Path

import pytest

from volsetup.core.engine.runner import execute_step
from volsetup.core.models.command import CommandResult
from volsetup.core.models.errors import ErrorKind, ProvisionError
from volsetup.core.models.step import StepStatus
from volsetup.core.services.plan import InstallSteps, build_plan
from volsetup.core.services.system_info import collect_system_info, read_os_name


def _write(path: Path, content: str = "") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


def _step(plan, step_id):
    return next(s for s in plan if s.id == step_id)


# ── Order ────────────────────────────────────────────────────────────


class TestPlanOrder:
    def test_fixed_order(self, config, mock_runner):
        assert [s.id for s in build_plan(config, mock_runner)] == [
            "backup",
            "update-index",
            "install-git",
            "install-runtime",
            "bootstrap-pip",
            "upgrade-pip",
            "install-python-deps",
            "link-library",
            "fetch-source",
            "install-toolkit",
            "fix-ownership",
            "patch-entry-point",
            "generate-wrapper",
            "verify",
            "cleanup",
        ]

    def test_optional_steps_are_not_fatal(self, config, mock_runner):
        plan = build_plan(config, mock_runner)
        non_fatal = {s.id for s in plan if not s.fatal}
        assert non_fatal == {"upgrade-pip", "link-library", "fix-ownership", "cleanup"}


# ── Backup ───────────────────────────────────────────────────────────


class TestBackupStep:
    def test_nothing_to_back_up(self, config, mock_runner):
        out = InstallSteps(config, mock_runner).backup()
        assert out.output == "No existing installation found"
        assert out.data == {}

    def test_moves_prior_install_and_wrapper(self, config, mock_runner):
        config.install_dir.mkdir(parents=True)
        (config.install_dir / "vol.py").write_text("old")
        wrapper = Path(config.wrapper_path)
        wrapper.parent.mkdir(parents=True)
        wrapper.write_text("old wrapper")

        out = InstallSteps(config, mock_runner, timestamp="20240101_000000").backup()

        assert not config.install_dir.exists()
        moved = Path(out.data["backups"][str(config.install_dir)])
        assert moved.name == "volatility_backup_20240101_000000"
        assert (moved / "vol.py").read_text() == "old"
        assert Path(out.data["backups"][str(wrapper)]).read_text() == "old wrapper"

    def test_sudo_run_also_backs_up_root_install(self, sudo_config, mock_runner):
        root_install = Path(sudo_config.root_home) / "volatility"
        root_install.mkdir(parents=True)
        out = InstallSteps(sudo_config, mock_runner, timestamp="20240101_000000").backup()
        assert str(root_install) in out.data["backups"]


# ── Package steps ────────────────────────────────────────────────────


class TestPackageSteps:
    def test_git_skipped_when_present(self, config, mock_runner):
        r = execute_step(_step(build_plan(config, mock_runner), "install-git"))
        assert r.status == StepStatus.SKIPPED
        assert not mock_runner.calls_matching("apt-get")

    def test_git_installed_when_missing(self, config, mock_runner):
        mock_runner.set_missing("git")
        r = execute_step(_step(build_plan(config, mock_runner), "install-git"))
        # which() still reports git missing afterwards
        assert r.error_kind == ErrorKind.VERIFICATION_FAILED
        assert mock_runner.calls_matching("apt-get", "install", "-y", "git")

    def test_runtime_critical_failure(self, config, mock_runner):
        mock_runner.fail("apt-get", "install", "-y", "python2-dev", stderr="E: broken")
        r = execute_step(_step(build_plan(config, mock_runner), "install-runtime"))
        assert r.failed
        assert r.error_kind == ErrorKind.NON_ZERO_EXIT
        assert "python2-dev" in r.error

    def test_optional_pip_failure_is_warning(self, config, mock_runner):
        mock_runner.fail("python2", "-m", "pip", "install", "-U", "capstone")
        r = execute_step(_step(build_plan(config, mock_runner), "install-python-deps"))
        assert r.ok
        assert any("capstone" in w for w in r.warnings)
        assert Path(config.deps_log).is_file()

    def test_critical_pip_failure(self, config, mock_runner):
        mock_runner.fail("python2", "-m", "pip", "install", "-U", "yara")
        r = execute_step(_step(build_plan(config, mock_runner), "install-python-deps"))
        assert r.failed

    def test_bootstrap_pip(self, config, mock_runner):
        mock_runner.set_missing("pip2")
        r = execute_step(_step(build_plan(config, mock_runner), "bootstrap-pip"))
        assert r.ok
        assert mock_runner.commands() == [
            ["wget", "-q", config.get_pip_url, "-O", config.get_pip_path],
            ["python2", config.get_pip_path],
        ]

    def test_bootstrap_pip_skipped_when_present(self, config, mock_runner):
        r = execute_step(_step(build_plan(config, mock_runner), "bootstrap-pip"))
        assert r.skipped


# ── Library link ─────────────────────────────────────────────────────


class TestLinkLibrary:
    def test_links_found_library(self, config, mock_runner):
        lib = Path(config.library_search_roots[0]) / "yara" / "libyara.so"
        lib.parent.mkdir(parents=True)
        lib.write_text("")
        out = InstallSteps(config, mock_runner).link_library()
        link = Path(config.library_link)
        assert link.is_symlink()
        assert link.resolve() == lib.resolve()
        assert out.warnings == []

    def test_known_layout_beats_deeper_match(self, config, mock_runner):
        dist = Path(config.library_search_roots[0])
        _write(dist / "aaa" / "deep" / "libyara.so")
        known = _write(dist / "usr" / "lib" / "libyara.so")
        out = InstallSteps(config, mock_runner).link_library()
        assert out.data["library"] == str(known)

    def test_falls_back_to_second_root(self, config, mock_runner):
        lib = _write(Path(config.library_search_roots[1]) / "share" / "yara" / "libyara.so")
        out = InstallSteps(config, mock_runner).link_library()
        assert out.data["library"] == str(lib)
        assert Path(config.library_link).resolve() == lib.resolve()

    def test_rerun_keeps_link_pointing_at_library(self, config, mock_runner):
        lib = _write(Path(config.library_search_roots[1]) / "share" / "yara" / "libyara.so")
        steps = InstallSteps(config, mock_runner)
        steps.link_library()
        out = steps.link_library()
        link = Path(config.library_link)
        assert link.is_symlink()
        assert link.resolve() == lib.resolve()
        assert out.data["library"] == str(lib.resolve())

    def test_real_library_at_link_path_left_alone(self, config, mock_runner):
        link = _write(Path(config.library_link), "ELF")
        out = InstallSteps(config, mock_runner).link_library()
        assert not link.is_symlink()
        assert link.read_text() == "ELF"
        assert "already present" in out.output

    def test_missing_library_is_warning(self, config, mock_runner):
        r = execute_step(_step(build_plan(config, mock_runner), "link-library"))
        assert r.ok
        assert r.warnings and "libyara.so" in r.warnings[0]
        assert not Path(config.library_link).exists()


# ── Toolkit steps ────────────────────────────────────────────────────


class TestToolkitSteps:
    def test_install_toolkit_logs_output(self, config, mock_runner):
        mock_runner.on("python2", "setup.py", result=CommandResult.success([], stdout="running install"))
        InstallSteps(config, mock_runner).install_toolkit()
        call = mock_runner.calls_matching("python2", "setup.py", "install")[0]
        assert call.cwd == str(config.install_dir)
        assert "running install" in Path(config.install_log).read_text()

    def test_install_toolkit_failure(self, config, mock_runner):
        mock_runner.fail("python2", "setup.py", stderr="error: invalid command")
        with pytest.raises(ProvisionError) as exc:
            InstallSteps(config, mock_runner).install_toolkit()
        assert config.install_log in exc.value.message

    def test_fix_ownership_skipped_for_root(self, config, mock_runner):
        r = execute_step(_step(build_plan(config, mock_runner), "fix-ownership"))
        assert r.skipped

    def test_fix_ownership_under_sudo(self, sudo_config, mock_runner):
        r = execute_step(_step(build_plan(sudo_config, mock_runner), "fix-ownership"))
        assert r.ok
        assert mock_runner.commands() == [
            ["chown", "-R", "analyst:analyst", str(sudo_config.install_dir)],
        ]

    def test_patch_entry_point(self, config, mock_runner):
        entry = config.entry_point_path
        entry.parent.mkdir(parents=True)
        entry.write_text("#!/usr/bin/env python\nimport sys\n")
        r = execute_step(_step(build_plan(config, mock_runner), "patch-entry-point"))
        assert r.ok
        assert entry.read_text() == "#!/usr/bin/env python2\nimport sys\n"
        assert os.access(entry, os.X_OK)

    def test_patch_entry_point_unexpected_directive(self, config, mock_runner):
        entry = config.entry_point_path
        entry.parent.mkdir(parents=True)
        entry.write_text("#!/bin/sh\n")
        r = execute_step(_step(build_plan(config, mock_runner), "patch-entry-point"))
        assert r.error_kind == ErrorKind.PATCH_VERIFICATION_FAILED
        assert entry.read_text() == "#!/bin/sh\n"

    def test_patch_missing_entry_point(self, config, mock_runner):
        r = execute_step(_step(build_plan(config, mock_runner), "patch-entry-point"))
        assert r.error_kind == ErrorKind.NOT_FOUND

    def test_generate_wrapper_and_aliases(self, config, mock_runner):
        r = execute_step(_step(build_plan(config, mock_runner), "generate-wrapper"))
        assert r.ok
        assert r.data["commands"] == ["vol.py", "vol2.py", "volatility"]
        bin_dir = Path(config.wrapper_path).parent
        assert (bin_dir / "vol2.py").is_symlink()
        assert (bin_dir / "volatility").is_symlink()

    def test_verify_step_fails_on_critical_check(self, config, mock_runner):
        mock_runner.fail(config.wrapper_path, "-h", stderr="python2: command not found")
        r = execute_step(_step(build_plan(config, mock_runner), "verify"))
        assert r.error_kind == ErrorKind.VERIFICATION_FAILED
        assert "wrapper invocation" in r.error

    def test_cleanup(self, config, mock_runner):
        script = Path(config.get_pip_path)
        script.parent.mkdir(parents=True, exist_ok=True)
        script.write_text("# get-pip")
        assert InstallSteps(config, mock_runner).cleanup().output.startswith("Removed")
        assert not script.exists()
        assert InstallSteps(config, mock_runner).cleanup().output == "Nothing to clean up"


# ── System info ──────────────────────────────────────────────────────


class TestSystemInfo:
    def test_os_release(self, tmp_path: Path):
        f = tmp_path / "os-release"
        f.write_text('NAME="Kali GNU/Linux"\nPRETTY_NAME="Kali GNU/Linux Rolling"\n')
        assert read_os_name(f) == "Kali GNU/Linux Rolling"

    def test_os_release_missing_falls_back(self, tmp_path: Path):
        assert read_os_name(tmp_path / "absent")

    def test_interpreters(self, mock_runner, tmp_path: Path):
        mock_runner.set_missing("python")
        mock_runner.on("python2", "--version", result=CommandResult.success([], stderr="Python 2.7.18"))
        info = collect_system_info(mock_runner, "root", "analyst", os_release=tmp_path / "none")
        assert info.interpreters["python"] == "not installed"
        assert info.interpreters["python2"] == "Python 2.7.18"
        assert info.to_dict()["invoking_user"] == "analyst"
