"""
Report file persistence — the JSON record of one provisioning run.

Written to a well-known temporary path after every run, successful or
not. Writes are atomic (write to temp file, then rename) so a reader
never sees a half-written report.
"""

from __future__ import annotations

import json
import logging
import tempfile
from pathlib import Path
from typing import Any

from volsetup.core.models.command import CommandResult

logger = logging.getLogger(__name__)


def save_report(data: dict[str, Any], path: str | Path) -> Path:
    """Save a report mapping as JSON (atomic write).

    Args:
        data: JSON-serializable report (``RunReport.to_dict()`` plus extras).
        path: Target path for the report file.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    content = json.dumps(data, indent=2, ensure_ascii=False) + "\n"

    try:
        _fd, tmp_path = tempfile.mkstemp(
            dir=path.parent,
            prefix=".report_",
            suffix=".tmp",
        )
        tmp = Path(tmp_path)
        try:
            with open(_fd, "w", encoding="utf-8") as f:
                f.write(content)
            tmp.replace(path)
            logger.debug("Report saved to %s", path)
        except Exception:
            tmp.unlink(missing_ok=True)
            raise
    except Exception as e:
        logger.error("Failed to save report to %s: %s", path, e)
        raise
    return path


def append_command_output(path: str | Path, result: CommandResult) -> None:
    """Append one command's transcript to a plain-text log.

    Format::

        $ python2 -m pip install -U yara
        <stdout>
        <stderr>
        [exit 0]
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as f:
            f.write(f"$ {result.command_line}\n")
            if result.stdout:
                f.write(result.stdout.rstrip() + "\n")
            if result.stderr:
                f.write(result.stderr.rstrip() + "\n")
            f.write(f"[exit {result.exit_code}]\n\n")
    except OSError as e:
        logger.warning("Cannot write command log %s: %s", path, e)
