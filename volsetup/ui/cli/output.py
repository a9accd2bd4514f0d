"""
CLI output — progress lines, failure report and the usage block.

Pure presentation: everything here reads results and writes with
``click.secho``. No decisions about the run are made here.
"""

from __future__ import annotations

import click

from volsetup.core.models.step import Step, StepResult
from volsetup.core.models.target import ProvisionConfig
from volsetup.core.services.system_info import SystemInfo
from volsetup.core.use_cases.install import InstallResult

_RULE = "━" * 40


def render_system_info(info: SystemInfo) -> None:
    click.secho("\n🖥  System information", fg="cyan", bold=True)
    click.echo(f"   OS:            {info.os_name}")
    for name, version in info.interpreters.items():
        click.echo(f"   {name + ':':<14} {version}")
    click.echo(f"   Running as:    {info.user}")
    click.echo(f"   Installing for: {info.invoking_user}")
    click.echo()


class ProgressPrinter:
    """Step-by-step progress for ``run_plan`` callbacks."""

    def __init__(self, total: int, verbose: bool = False, quiet: bool = False) -> None:
        self.total = total
        self.verbose = verbose
        self.quiet = quiet
        self._index = 0

    def start(self, step: Step) -> None:
        self._index += 1
        if self.quiet:
            return
        click.secho(f"   [{self._index}/{self.total}] {step.description}…", fg="blue")

    def end(self, step: Step, result: StepResult) -> None:
        if self.quiet and not result.failed:
            return
        timing = f" ({result.duration_ms}ms)" if result.duration_ms else ""
        if result.ok:
            click.secho(f"   ✓ {step.id}", fg="green", nl=False)
            click.echo(timing)
            if self.verbose and result.output:
                for line in result.output.split("\n")[:10]:
                    click.echo(f"     │ {line}")
        elif result.failed:
            click.secho(f"   ✗ {step.id}", fg="red", nl=False)
            click.echo(f"{timing} [{result.error_kind}]")
        else:
            click.secho(f"   ⊘ {step.id} ", fg="yellow", nl=False)
            click.echo(f"({result.output})")
        for warning in result.warnings:
            click.secho(f"     ⚠ {warning}", fg="yellow")


def render_failure(result: InstallResult) -> None:
    """Failed step, its captured output and where to look next."""
    report = result.report
    config = result.config
    failed = report.failed_step if report else None
    if failed is None:
        return

    click.echo()
    click.secho(f"❌ Step '{failed.step_id}' failed: {failed.error}", fg="red", bold=True)
    if failed.output:
        click.secho("   Captured output:", fg="white", bold=True)
        for line in failed.output.strip().split("\n")[-20:]:
            click.echo(f"     │ {line}")
    if report.not_started:
        click.echo(f"   Not started:      {', '.join(report.not_started)}")
    if config is not None:
        click.echo(f"   Install log:      {config.install_log}")
        click.echo(f"   Dependencies log: {config.deps_log}")
        click.echo(f"   Report:           {config.report_path}")
    click.secho(
        "   Re-running is safe: existing installations are backed up, not deleted.",
        fg="yellow",
    )


def render_summary(result: InstallResult) -> None:
    report = result.report
    if report is None:
        return
    click.echo()
    warnings = report.warnings
    if warnings:
        click.secho(f"   ⚠ {len(warnings)} warning(s):", fg="yellow")
        for w in warnings:
            click.echo(f"     • {w}")
    status_color = "green" if report.succeeded else "red"
    click.secho(f"   Status: {report.status}", fg=status_color, bold=True, nl=False)
    click.echo(f"  ({report.operation_id})")


def render_usage(config: ProvisionConfig) -> None:
    """Static reference block printed after a successful install."""
    target = config.target
    commands = [config.wrapper_path.rsplit("/", 1)[-1], *config.wrapper_aliases]
    click.echo()
    click.secho(
        f"✅ {target.name} {target.revision} is installed and ready to use",
        fg="green",
        bold=True,
    )
    click.echo()
    click.echo("Run it with any of:")
    click.echo()
    for name in commands:
        click.secho(f"  {name} -h", fg="cyan")
    click.secho(f"  {config.interpreter} {config.entry_point_path} -h", fg="cyan")
    click.echo()
    click.echo(_RULE)
    click.echo("QUICK START EXAMPLES:")
    click.echo(_RULE)
    click.echo()
    click.echo("1. Identify memory image:")
    click.echo("   vol.py -f memory.mem imageinfo")
    click.echo("2. List processes:")
    click.echo("   vol.py -f memory.mem --profile=Win7SP1x64 pslist")
    click.echo("3. Find hidden processes:")
    click.echo("   vol.py -f memory.mem --profile=Win7SP1x64 psxview")
    click.echo("4. Scan for injected code:")
    click.echo("   vol.py -f memory.mem --profile=Win7SP1x64 malfind")
    click.echo("5. List file objects:")
    click.echo("   vol.py -f memory.mem --profile=Win7SP1x64 filescan")
    click.echo()
    click.echo("All profiles: vol.py --info | grep Profile")
    click.echo()
    click.echo(_RULE)
    click.echo("LOG FILES:")
    click.echo(_RULE)
    click.echo(f"  Installation log: {config.install_log}")
    click.echo(f"  Dependencies log: {config.deps_log}")
    click.echo(f"  Report:           {config.report_path}")
    click.echo()
