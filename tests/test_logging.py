"""
Tests for logging setup — level precedence and the install-log handler.
"""

import logging
from pathlib import Path

import pytest

from volsetup.core.observability.logging_config import (
    attach_log_file,
    detach_log_file,
    resolve_level,
    setup_logging,
)


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    detach_log_file()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestResolveLevel:
    @pytest.mark.parametrize(
        ("debug", "verbose", "quiet", "env", "expected"),
        [
            (True, True, True, "ERROR", "DEBUG"),
            (False, True, False, "ERROR", "INFO"),
            (False, False, True, "DEBUG", "ERROR"),
            (False, False, False, "DEBUG", "DEBUG"),
            (False, False, False, None, "WARNING"),
        ],
    )
    def test_precedence(self, debug, verbose, quiet, env, expected):
        assert resolve_level(debug, verbose, quiet, env) == expected


class TestSetupLogging:
    def test_single_console_handler(self, restore_root_logger):
        setup_logging("INFO")
        setup_logging("INFO")
        assert len(restore_root_logger.handlers) == 1
        assert restore_root_logger.level == logging.INFO

    def test_unknown_level_falls_back_to_warning(self, restore_root_logger):
        setup_logging("CHATTY")
        assert restore_root_logger.level == logging.WARNING


class TestInstallLog:
    def test_attach_writes_debug_records(self, tmp_path: Path, restore_root_logger):
        setup_logging("WARNING")
        log = tmp_path / "tmp" / "install.log"
        attach_log_file(log)

        logging.getLogger("volsetup.test").debug("fetching revision %s", "2.6.1")
        detach_log_file()

        text = log.read_text()
        assert "fetching revision 2.6.1" in text
        assert "volsetup.test" in text

    def test_reattach_does_not_duplicate(self, tmp_path: Path, restore_root_logger):
        setup_logging("WARNING")
        attach_log_file(tmp_path / "a.log")
        attach_log_file(tmp_path / "b.log")
        names = [h.get_name() for h in restore_root_logger.handlers]
        assert names.count("volsetup-install-log") == 1

    def test_detach_without_attach(self, restore_root_logger):
        detach_log_file()
