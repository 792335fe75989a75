"""Firewall policy commands - export, import and reset."""

from typing import Annotated

import typer

from winfw.core.exceptions import WinFWError
from winfw.commands.common import (
    BackendOption,
    ConfigOption,
    DryRunOption,
    ForceOption,
    NoColorOption,
    QuietOption,
    VerboseOption,
    get_backend,
    get_context,
    handle_error,
    raise_for_result,
    run_async,
)


app = typer.Typer(
    name="policy",
    help="Export, import and reset the firewall policy.",
    no_args_is_help=True,
)


@app.command("export")
def policy_export(
    path: Annotated[str, typer.Argument(help="Destination file")],
    dry_run: DryRunOption = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
    backend: BackendOption = None,
) -> None:
    """Export the firewall policy to a file.

    netsh writes a native .wfw policy file; PowerShell writes Clixml.
    The formats are not interchangeable.
    """
    ctx = get_context(dry_run=dry_run, verbose=verbose, quiet=quiet,
                      no_color=no_color, config=config, backend=backend)

    try:
        fw = get_backend(ctx)
        result = run_async(fw.export_policy(path))
        raise_for_result(result, backend=fw.name)
        ctx.console.success(result.message)
    except WinFWError as e:
        handle_error(e)


@app.command("import")
def policy_import(
    path: Annotated[str, typer.Argument(help="Policy file previously exported by the same backend")],
    dry_run: DryRunOption = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
    backend: BackendOption = None,
) -> None:
    """Import a firewall policy file.

    With netsh the file replaces the whole policy. With PowerShell the
    rules in the file are added, skipping names that already exist.
    """
    ctx = get_context(dry_run=dry_run, verbose=verbose, quiet=quiet,
                      no_color=no_color, config=config, backend=backend)

    try:
        fw = get_backend(ctx)
        result = run_async(fw.import_policy(path))
        raise_for_result(result, backend=fw.name)
        ctx.console.success(result.message)
    except WinFWError as e:
        handle_error(e)


@app.command("reset")
def policy_reset(
    force: ForceOption = False,
    dry_run: DryRunOption = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
    backend: BackendOption = None,
) -> None:
    """Reset the firewall to its default policy.

    Removes every rule, enables all profiles, blocks inbound and allows
    outbound traffic by default. Requires --force.
    """
    ctx = get_context(dry_run=dry_run, force=force, verbose=verbose, quiet=quiet,
                      no_color=no_color, config=config, backend=backend)

    if not force and not dry_run:
        ctx.console.error("Resetting the firewall policy removes every rule")
        ctx.console.hint("Re-run with --force to proceed, or --dry-run to preview")
        raise typer.Exit(1)

    try:
        fw = get_backend(ctx)
        result = run_async(fw.reset_policy())
        raise_for_result(result, backend=fw.name)
        ctx.console.success(result.message)
    except WinFWError as e:
        handle_error(e)
