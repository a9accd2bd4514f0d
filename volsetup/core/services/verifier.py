"""
Verifier — smoke tests for a finished installation.

Each Check returns ``(passed, detail)``. The aggregate passes only if
every critical check passes; non-critical failures are carried as
warnings and never abort the run on their own.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from volsetup.adapters.base import CommandRunner

logger = logging.getLogger(__name__)


@dataclass
class Check:
    """A named smoke test."""

    name: str
    run: Callable[[], tuple[bool, str]]
    critical: bool = True


@dataclass
class CheckResult:
    """Outcome of one check."""

    name: str
    passed: bool
    detail: str = ""
    critical: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "passed": self.passed,
            "detail": self.detail,
            "critical": self.critical,
        }


@dataclass
class VerificationReport:
    """Aggregate of all check results."""

    results: list[CheckResult] = field(default_factory=list)

    @property
    def status(self) -> str:
        return "fail" if self.critical_failures else "pass"

    @property
    def passed(self) -> bool:
        return self.status == "pass"

    @property
    def critical_failures(self) -> list[CheckResult]:
        return [r for r in self.results if not r.passed and r.critical]

    @property
    def warnings(self) -> list[str]:
        return [
            f"{r.name}: {r.detail}" if r.detail else r.name
            for r in self.results
            if not r.passed and not r.critical
        ]

    def summary(self) -> str:
        lines = []
        for r in self.results:
            marker = "✓" if r.passed else "✗"
            detail = f" ({r.detail})" if r.detail else ""
            lines.append(f"{marker} {r.name}{detail}")
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "results": [r.to_dict() for r in self.results],
        }


def run_checks(checks: Iterable[Check]) -> VerificationReport:
    """Run every check in order. A check that raises counts as failed."""
    report = VerificationReport()
    for check in checks:
        try:
            passed, detail = check.run()
        except Exception as e:
            logger.warning("Check %s raised: %s", check.name, e)
            passed, detail = False, f"error: {e}"
        marker = "✓" if passed else "✗"
        logger.info("%s %s %s", marker, check.name, detail)
        report.results.append(
            CheckResult(name=check.name, passed=passed, detail=detail, critical=check.critical)
        )
    return report


def missing_capabilities(help_text: str, expected: Sequence[str]) -> list[str]:
    """Capability names from ``expected`` that do not appear in ``help_text``."""
    return [name for name in expected if name not in help_text]


def toolkit_checks(
    runner: CommandRunner,
    *,
    interpreter: str,
    entry_point: str,
    wrapper_path: str,
    capabilities: Sequence[str],
    integration_module: str,
    import_checks: Sequence[str],
) -> list[Check]:
    """Build the standard battery of checks for an installed toolkit."""
    captured: dict[str, str] = {}

    def direct() -> tuple[bool, str]:
        result = runner.run(interpreter, [entry_point, "-h"], timeout=120)
        captured["direct"] = result.combined_output
        if result.ok:
            return True, f"{interpreter} {entry_point} -h"
        return False, f"exit {result.exit_code}: {_last_line(result.combined_output)}"

    def wrapper() -> tuple[bool, str]:
        result = runner.run(wrapper_path, ["-h"], timeout=120)
        captured["wrapper"] = result.combined_output
        if result.ok:
            return True, f"{wrapper_path} -h"
        return False, f"exit {result.exit_code}: {_last_line(result.combined_output)}"

    def capability_names() -> tuple[bool, str]:
        help_text = captured.get("wrapper") or captured.get("direct", "")
        missing = missing_capabilities(help_text, capabilities)
        if missing:
            return False, "missing: " + ", ".join(missing)
        return True, f"{len(capabilities)} found"

    def integration() -> tuple[bool, str]:
        code = f"import {integration_module}; print({integration_module}.__version__)"
        result = runner.run(interpreter, ["-c", code], timeout=60)
        if result.ok and result.stdout.strip():
            return True, f"{integration_module} {result.stdout.strip()}"
        return False, _last_line(result.combined_output) or "no version reported"

    def imports() -> tuple[bool, str]:
        code = "; ".join(f"import {name}" for name in import_checks)
        result = runner.run(interpreter, ["-c", code], timeout=60)
        if result.ok:
            return True, ", ".join(import_checks)
        return False, _last_line(result.combined_output) or f"exit {result.exit_code}"

    return [
        Check("direct invocation", direct, critical=True),
        Check("wrapper invocation", wrapper, critical=True),
        Check("plugins available", capability_names, critical=False),
        Check(f"{integration_module} integration", integration, critical=False),
        Check("package imports", imports, critical=False),
    ]


def _last_line(text: str) -> str:
    lines = [line for line in text.strip().splitlines() if line.strip()]
    return lines[-1] if lines else ""
