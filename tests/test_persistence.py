"""
Tests for report persistence — atomic JSON report and command transcripts.
"""

import json
from pathlib import Path

import pytest

from volsetup.core.models.command import CommandResult
from volsetup.core.persistence.report_file import (
    append_command_output,
    save_report,
)


class TestReportFile:
    def test_save(self, tmp_path: Path):
        path = tmp_path / "nested" / "report.json"
        data = {"operation_id": "op-1", "status": "succeeded", "warnings": ["a: ✗ missing"]}

        assert save_report(data, path) == path
        assert json.loads(path.read_text(encoding="utf-8")) == data
        assert "✗ missing" in path.read_text(encoding="utf-8")

    def test_overwrite_leaves_no_temp_files(self, tmp_path: Path):
        path = tmp_path / "report.json"
        save_report({"run": 1}, path)
        save_report({"run": 2}, path)
        assert json.loads(path.read_text(encoding="utf-8")) == {"run": 2}
        assert list(tmp_path.glob(".report_*")) == []

    def test_unserializable_leaves_previous_report(self, tmp_path: Path):
        path = tmp_path / "report.json"
        save_report({"run": 1}, path)
        with pytest.raises(TypeError):
            save_report({"run": object()}, path)
        assert json.loads(path.read_text(encoding="utf-8")) == {"run": 1}


class TestCommandTranscript:
    def test_appends_each_command(self, tmp_path: Path):
        log = tmp_path / "logs" / "deps.log"
        append_command_output(log, CommandResult.success(["pip", "install", "yara"], stdout="done\n"))
        append_command_output(
            log,
            CommandResult.failure(["pip", "install", "capstone"], exit_code=2, stderr="boom"),
        )

        assert log.read_text() == (
            "$ pip install yara\ndone\n[exit 0]\n\n"
            "$ pip install capstone\nboom\n[exit 2]\n\n"
        )

    def test_unwritable_log_is_ignored(self, tmp_path: Path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        # parent is a regular file, so the log cannot be created
        append_command_output(blocker / "deps.log", CommandResult.success(["true"]))
        assert blocker.read_text() == ""
