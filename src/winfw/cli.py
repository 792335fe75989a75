"""The winfw command line.

Host-level commands (check, backend, compare) and the config group live
here; the rule and policy groups come from winfw.commands.
"""

import sys
from datetime import datetime
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console

from winfw import __version__
from winfw.core.audit import configure_audit_logger
from winfw.core.config import AppConfig, FirewallConfig, get_example_config, init_config
from winfw.core.exceptions import PrerequisiteError, WinFWError
from winfw.core.safety import PreflightRunner, check_system_requirements, run_preflight_checks
from winfw.commands.common import (
    BackendOption,
    ConfigOption,
    ForceOption,
    NoColorOption,
    QuietOption,
    VerboseOption,
    get_context,
    handle_error,
    run_async,
)
from winfw.commands.policy import app as policy_app
from winfw.commands.rule import app as rule_app
from winfw.services.comparison import ComparisonRunner
from winfw.services.factory import BackendKind, build_backend, format_version, resolve_selection


app = typer.Typer(
    name="winfw",
    help="Windows Firewall management through netsh or PowerShell.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_enable=True,
    pretty_exceptions_show_locals=False,
)

config_app = typer.Typer(
    name="config",
    help="Inspect and create the winfw config file.",
    no_args_is_help=True,
)

app.add_typer(rule_app, name="rule")
app.add_typer(policy_app, name="policy")
app.add_typer(config_app, name="config")


def version_callback(value: bool) -> None:
    """Handle --version."""
    if value:
        console = Console()
        console.print(f"winfw version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """Windows Firewall management through netsh or PowerShell.

    Every command runs against one backend, picked from the configuration
    or the OS version and overridable with --backend.

    [bold]Examples:[/bold]
        winfw check
        winfw rule add-port Web 8080
        winfw rule list --filter Web
        winfw policy export C:\\backup\\firewall.wfw
        winfw compare --report report.txt
    """
    pass


# ============================================================================
# Host commands
# ============================================================================

@app.command("check")
def check_cmd(
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
) -> None:
    """Run pre-flight checks.

    Verifies the host is Windows, the firewall service is running and the
    process has administrator rights.
    """
    ctx = get_context(verbose=verbose, no_color=no_color)

    try:
        run_preflight_checks(verbose=True)
        ctx.console.success("All pre-flight checks passed")
    except WinFWError as e:
        handle_error(e)


@app.command("backend")
def backend_cmd(
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
    backend: BackendOption = None,
) -> None:
    """Show which backend would be used and why."""
    ctx = get_context(verbose=verbose, no_color=no_color, config=config, backend=backend)

    try:
        selection = resolve_selection(ctx)
        ctx.console.summary("Backend selection", {
            "Requested": ctx.backend_choice.value,
            "OS version": format_version(selection.os_version),
            "Minimum for PowerShell": format_version(ctx.config.min_powershell_version),
            "Selected": selection.kind.value,
            "Reason": selection.reason,
        })
    except WinFWError as e:
        handle_error(e)


@app.command("compare")
def compare_cmd(
    program: Annotated[
        Optional[Path],
        typer.Option("--program", help="Executable used for program rules (default: the running interpreter)"),
    ] = None,
    report: Annotated[
        Optional[Path],
        typer.Option("--report", "-o", help="Where to write the report"),
    ] = None,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Run the same rule scenario against both backends.

    Adds, checks, toggles, lists, exports and deletes TEST_-prefixed rules
    with netsh and with PowerShell, timing every step. The report is
    printed and saved to a file.
    """
    ctx = get_context(verbose=verbose, quiet=quiet, no_color=no_color, config=config)

    try:
        passed, message = check_system_requirements(PreflightRunner())
        if not passed:
            raise PrerequisiteError(message, hint="Run 'winfw check' for details")

        audit_config = ctx.config.audit
        audit = configure_audit_logger(log_path=audit_config.log_path, enabled=audit_config.enabled)
        backends = [build_backend(ctx, kind, audit=audit) for kind in BackendKind]

        runner = ComparisonRunner(backends, str(program or sys.executable))
        with audit.correlation("compare"):
            result = run_async(runner.run())

        text = result.to_text()
        ctx.console.print(text, markup=False, highlight=False)

        report_path = report or Path.cwd() / f"winfw-comparison-{datetime.now():%Y%m%d_%H%M%S}.txt"
        report_path.write_text(text, encoding="utf-8")
        ctx.console.success(f"Report saved to: {report_path}")

        if not result.all_passed:
            raise typer.Exit(1)
    except WinFWError as e:
        handle_error(e)


# ============================================================================
# Config commands
# ============================================================================

@config_app.command("show")
def config_show(
    config: ConfigOption = None,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
) -> None:
    """Print the effective settings and where they came from."""
    ctx = get_context(verbose=verbose, no_color=no_color, config=config)

    try:
        app_config = ctx.config
        source = ctx.config_path if ctx.config_path.exists() else "built-in defaults"

        ctx.console.yaml(app_config.config.to_yaml(), title=f"winfw settings ({source})")

        overrides = app_config.overrides
        ctx.console.summary("Environment overrides", {
            "WINFW_BACKEND": overrides.backend.value if overrides.backend else "Not set",
            "WINFW_ENCODING": overrides.encoding or "Not set",
            "WINFW_TIMEOUT": overrides.timeout if overrides.timeout is not None else "Not set",
        })

    except WinFWError as e:
        handle_error(e)


@config_app.command("init")
def config_init(
    config: ConfigOption = None,
    force: ForceOption = False,
    no_color: NoColorOption = False,
) -> None:
    """Write the commented example config to --config.

    An existing file is kept unless --force is given.
    """
    ctx = get_context(force=force, no_color=no_color, config=config)

    try:
        init_config(ctx.config_path, force=force)
        ctx.console.success(f"Wrote {ctx.config_path}")
        ctx.console.info("Check the effective settings with: winfw config show")
    except WinFWError as e:
        handle_error(e)


@config_app.command("validate")
def config_validate(
    config: ConfigOption = None,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
) -> None:
    """Load --config strictly and report the first problem found.

    Unlike other commands, a missing file is an error here.
    """
    ctx = get_context(verbose=verbose, no_color=no_color, config=config)

    try:
        # Raises ConfigurationError if missing or invalid
        app_config = AppConfig(
            config_path=ctx.config_path,
            config=FirewallConfig.load(ctx.config_path),
        )

        ctx.console.success(f"{ctx.config_path} is a valid winfw config")

        if ctx.is_verbose:
            ctx.console.yaml(app_config.config.to_yaml())

        if app_config.timeout is None:
            ctx.console.warn("Command timeout is disabled; a hung netsh or powershell.exe will block forever")

    except WinFWError as e:
        handle_error(e)


@config_app.command("example")
def config_example(no_color: NoColorOption = False) -> None:
    """Print the commented example config."""
    ctx = get_context(no_color=no_color)
    ctx.console.print(get_example_config(), markup=False, highlight=False)


if __name__ == "__main__":
    app()
