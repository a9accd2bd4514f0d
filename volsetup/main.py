"""
volsetup — CLI entrypoint.

Usage:
    sudo volsetup
    sudo volsetup --yes --json
    volsetup --mock --yes

Installs Volatility 2.6.1 under Python 2 on a Python 3 system. Runs
must not overlap: there is no locking between concurrent invocations.
"""

from __future__ import annotations

import json
import os
import sys
import tempfile
from pathlib import Path

import click

from volsetup import __version__
from volsetup.core.observability.logging_config import resolve_level, setup_logging


@click.command()
@click.version_option(version=__version__, prog_name="volsetup")
@click.option("--yes", "-y", "assume_yes", is_flag=True, help="Do not ask for confirmation.")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False, dir_okay=False),
    default=None,
    help="Path to volsetup.yml (default: $VOLSETUP_CONFIG, ./volsetup.yml, /etc/volsetup/config.yml).",
)
@click.option("--mock", is_flag=True, help="Simulate every command inside a scratch directory.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output the report as JSON.")
@click.option("--keep-going", is_flag=True, help="Continue past failed steps (run still fails).")
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Abort before the next step once this many seconds have passed.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
def cli(
    assume_yes: bool,
    config_path: str | None,
    mock: bool,
    as_json: bool,
    keep_going: bool,
    timeout: float | None,
    verbose: bool,
    quiet: bool,
    debug: bool,
) -> None:
    """Install Volatility 2.6.1 with a Python 2 wrapper.

    Must be run as root. Prior installations are moved aside with a
    timestamp suffix, never deleted. Do not run two installs at once.

    Examples:

        sudo volsetup

        sudo volsetup --yes --verbose

        volsetup --mock --yes
    """
    from volsetup.adapters.shell.command import SubprocessRunner
    from volsetup.core.config.loader import ConfigError, find_config_file, load_config
    from volsetup.core.services.plan import build_plan
    from volsetup.core.services.system_info import SystemInfo
    from volsetup.core.use_cases.install import (
        EXIT_USAGE,
        is_root,
        run_install,
        simulated_runner,
    )
    from volsetup.ui.cli.output import (
        ProgressPrinter,
        render_failure,
        render_summary,
        render_system_info,
        render_usage,
    )

    # ── Logging setup (once, at process start) ──────────────────
    setup_logging(resolve_level(debug, verbose, quiet, os.environ.get("VOLSETUP_LOG_LEVEL")))

    # ── Config ──────────────────────────────────────────────────
    overrides: dict[str, object] = {"run_timeout": timeout}
    if keep_going:
        overrides["stop_on_failure"] = False
    try:
        path = find_config_file(Path(config_path) if config_path else None)
        config = load_config(path, overrides=overrides)
    except ConfigError as e:
        click.secho(f"❌ ConfigInvalid: {e}", fg="red", err=True)
        sys.exit(EXIT_USAGE)

    if mock:
        sandbox = tempfile.mkdtemp(prefix="volsetup-mock-")
        config = config.rebased(sandbox)
        runner = simulated_runner(config)
        if not quiet and not as_json:
            click.secho(f"[mock] Simulating inside {sandbox}", fg="yellow")
    else:
        runner = SubprocessRunner(default_timeout=config.command_timeout)

    # ── Confirmation ────────────────────────────────────────────
    def confirm(info: SystemInfo) -> bool:
        if not as_json:
            render_system_info(info)
        if assume_yes:
            return True
        click.echo(f"This will install {config.target.name} {config.target.revision}", err=as_json)
        click.echo(f"into {config.install_dir} and write {config.wrapper_path}.", err=as_json)
        try:
            return click.confirm("Continue?", default=False, err=as_json)
        except click.Abort:
            return False

    plan_size = len(build_plan(config, runner))
    progress = ProgressPrinter(plan_size, verbose=verbose or debug, quiet=quiet or as_json)

    if not as_json and not quiet:
        click.secho(
            f"\n⚡ {'[mock] ' if mock else ''}{config.target.name} {config.target.revision}"
            f" — {config.invoking_user}",
            fg="cyan",
            bold=True,
        )

    result = run_install(
        config,
        runner,
        is_privileged=(lambda: True) if mock else is_root,
        confirm=confirm,
        handle_signals=True,
        on_step_start=progress.start,
        on_step_end=progress.end,
    )

    # ── Output ──────────────────────────────────────────────────
    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    if result.error:
        click.secho(f"❌ {result.error_kind}: {result.error}", fg="red", err=True)
        sys.exit(result.exit_code)

    if result.cancelled:
        click.secho("Installation cancelled.", fg="yellow")
        sys.exit(result.exit_code)

    render_summary(result)
    if result.succeeded:
        if not quiet:
            render_usage(config)
    elif result.report and result.report.interrupted:
        click.secho("\n⚠ Interrupted before completion.", fg="yellow", bold=True)
        render_failure(result)
    else:
        render_failure(result)

    sys.exit(result.exit_code)


if __name__ == "__main__":
    cli()
