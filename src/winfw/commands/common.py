"""Options and helpers shared by the command groups."""

import asyncio
from pathlib import Path
from typing import Annotated, Any, Coroutine, Optional, TypeVar

import typer

from winfw.core.audit import configure_audit_logger
from winfw.core.config import DEFAULT_CONFIG_PATH, BackendChoice
from winfw.core.context import ExecutionContext, create_context
from winfw.core.exceptions import (
    FirewallError,
    PrerequisiteError,
    ValidationError,
    WinFWError,
)
from winfw.core.output import console
from winfw.services.backend import FirewallBackend
from winfw.services.factory import create_backend
from winfw.services.rules import OperationResult, Outcome


T = TypeVar("T")


# Type aliases for common options
DryRunOption = Annotated[
    bool,
    typer.Option(
        "--dry-run",
        help="Preview commands without executing them.",
        is_flag=True,
    ),
]

ForceOption = Annotated[
    bool,
    typer.Option(
        "--force",
        "-f",
        help="Allow destructive operations.",
        is_flag=True,
    ),
]

VerboseOption = Annotated[
    int,
    typer.Option(
        "--verbose",
        "-v",
        count=True,
        help="Increase output verbosity. Can be repeated (-v, -vv).",
    ),
]

QuietOption = Annotated[
    bool,
    typer.Option(
        "--quiet",
        "-q",
        help="Suppress non-essential output. Only show errors.",
        is_flag=True,
    ),
]

NoColorOption = Annotated[
    bool,
    typer.Option(
        "--no-color",
        help="Disable colored output.",
        is_flag=True,
    ),
]

ConfigOption = Annotated[
    Optional[Path],
    typer.Option(
        "--config",
        "-c",
        help=f"Path to configuration file. Default: {DEFAULT_CONFIG_PATH}",
        exists=False,
        file_okay=True,
        dir_okay=False,
    ),
]

BackendOption = Annotated[
    Optional[BackendChoice],
    typer.Option(
        "--backend",
        "-b",
        help="Backend to use (overrides configuration).",
        case_sensitive=False,
    ),
]


def get_context(
    dry_run: bool = False,
    force: bool = False,
    verbose: int = 0,
    quiet: bool = False,
    no_color: bool = False,
    config: Optional[Path] = None,
    backend: Optional[BackendChoice] = None,
) -> ExecutionContext:
    """Create execution context from CLI options."""
    return create_context(
        dry_run=dry_run,
        force=force,
        verbose=verbose,
        quiet=quiet,
        no_color=no_color,
        config=config,
        backend=backend,
    )


def get_backend(ctx: ExecutionContext) -> FirewallBackend:
    """Build the process backend after preconditions pass.

    Raises:
        PrerequisiteError: If the host does not meet the requirements
    """
    audit_config = ctx.config.audit
    audit = configure_audit_logger(
        log_path=audit_config.log_path,
        enabled=audit_config.enabled,
    )
    return create_backend(ctx, audit=audit)


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run a backend coroutine to completion from a synchronous command."""
    return asyncio.run(coro)


def raise_for_result(
    result: OperationResult,
    *,
    rule: Optional[str] = None,
    backend: Optional[str] = None,
) -> None:
    """Turn a failed operation result into the matching CLI error."""
    if result.success:
        return

    if result.outcome == Outcome.INVALID:
        raise ValidationError(result.message)

    if result.outcome == Outcome.DENIED:
        raise PrerequisiteError(
            result.message,
            hint="Run winfw from an elevated (Run as administrator) prompt",
        )

    hint = None
    if result.outcome == Outcome.ABSENT:
        hint = "List existing rules with: winfw rule list"

    raise FirewallError(result.message, rule=rule, backend=backend, hint=hint)


def handle_error(error: WinFWError) -> None:
    """Handle a WinFWError by printing formatted error and exiting."""
    console.error(error.message)

    if error.details:
        for detail in error.details:
            console.print(f"  [dim]{detail}[/dim]")

    if error.hint:
        console.hint(error.hint)

    raise typer.Exit(error.exit_code)
