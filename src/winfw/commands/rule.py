"""Firewall rule commands.

Add program, port and IP rules, delete them by name, list, check and
toggle existing rules.
"""

from typing import Annotated, Optional

import typer

from winfw.core.exceptions import FirewallError, WinFWError
from winfw.commands.common import (
    BackendOption,
    ConfigOption,
    DryRunOption,
    NoColorOption,
    QuietOption,
    VerboseOption,
    get_backend,
    get_context,
    handle_error,
    raise_for_result,
    run_async,
)
from winfw.services.rules import Outcome


app = typer.Typer(
    name="rule",
    help="Add, remove and inspect firewall rules.",
    no_args_is_help=True,
)


NameArgument = Annotated[str, typer.Argument(help="Rule display name")]

OutboundOption = Annotated[
    bool,
    typer.Option("--outbound", help="Apply to outbound traffic instead of inbound"),
]


# =============================================================================
# Add commands
# =============================================================================

@app.command("add-program")
def rule_add_program(
    name: NameArgument,
    path: Annotated[str, typer.Argument(help="Full path to the program executable")],
    outbound: OutboundOption = False,
    dry_run: DryRunOption = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
    backend: BackendOption = None,
) -> None:
    """Allow a program through the firewall.

    [bold]Examples:[/bold]

        winfw rule add-program MyApp "C:\\Program Files\\MyApp\\app.exe"
        winfw rule add-program MyApp C:\\Tools\\agent.exe --outbound
    """
    ctx = get_context(dry_run=dry_run, verbose=verbose, quiet=quiet,
                      no_color=no_color, config=config, backend=backend)

    try:
        fw = get_backend(ctx)
        if outbound:
            result = run_async(fw.add_outbound_program_rule(name, path))
        else:
            result = run_async(fw.add_inbound_program_rule(name, path))
        raise_for_result(result, rule=name, backend=fw.name)
        ctx.console.success(f"{result.message}: {name}")
    except WinFWError as e:
        handle_error(e)


@app.command("add-port")
def rule_add_port(
    name: NameArgument,
    port: Annotated[int, typer.Argument(help="Local port number (1-65535)")],
    outbound: OutboundOption = False,
    protocol: Annotated[
        str,
        typer.Option("--protocol", "-p", help="Protocol: TCP or UDP"),
    ] = "TCP",
    dry_run: DryRunOption = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
    backend: BackendOption = None,
) -> None:
    """Allow traffic on a local port.

    [bold]Examples:[/bold]

        winfw rule add-port Web 8080
        winfw rule add-port Dns 53 --protocol UDP --outbound
    """
    ctx = get_context(dry_run=dry_run, verbose=verbose, quiet=quiet,
                      no_color=no_color, config=config, backend=backend)

    try:
        fw = get_backend(ctx)
        result = run_async(fw.add_port_rule(name, port, inbound=not outbound, protocol=protocol))
        raise_for_result(result, rule=name, backend=fw.name)
        ctx.console.success(f"{result.message}: {name} ({protocol.upper()}/{port})")
    except WinFWError as e:
        handle_error(e)


@app.command("add-ip")
def rule_add_ip(
    name: NameArgument,
    ip: Annotated[
        str,
        typer.Argument(help="Address, A-B range, A/n subnet or keyword (Any, LocalSubnet, ...)"),
    ],
    local: Annotated[
        bool,
        typer.Option("--local", help="Match the local address instead of the remote one"),
    ] = False,
    outbound: OutboundOption = False,
    block: Annotated[
        bool,
        typer.Option("--block", help="Block matching traffic instead of allowing it"),
    ] = False,
    dry_run: DryRunOption = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
    backend: BackendOption = None,
) -> None:
    """Allow or block traffic by IP address.

    [bold]Examples:[/bold]

        winfw rule add-ip Office 192.168.1.0/24
        winfw rule add-ip BadRange 10.0.0.1-10.0.0.255 --block
        winfw rule add-ip Lan LocalSubnet --local
    """
    ctx = get_context(dry_run=dry_run, verbose=verbose, quiet=quiet,
                      no_color=no_color, config=config, backend=backend)

    try:
        fw = get_backend(ctx)
        add = fw.add_local_ip_rule if local else fw.add_remote_ip_rule
        result = run_async(add(name, ip, inbound=not outbound, allow=not block))
        raise_for_result(result, rule=name, backend=fw.name)
        ctx.console.success(f"{result.message}: {name}")
    except WinFWError as e:
        handle_error(e)


# =============================================================================
# Management commands
# =============================================================================

@app.command("delete")
def rule_delete(
    name: NameArgument,
    dry_run: DryRunOption = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
    backend: BackendOption = None,
) -> None:
    """Delete every rule with the given name.

    Exits with an error if no rule matches.
    """
    ctx = get_context(dry_run=dry_run, verbose=verbose, quiet=quiet,
                      no_color=no_color, config=config, backend=backend)

    try:
        fw = get_backend(ctx)
        result = run_async(fw.delete_rule(name))
        raise_for_result(result, rule=name, backend=fw.name)
        ctx.console.success(f"{result.message}: {name}")
    except WinFWError as e:
        handle_error(e)


@app.command("list")
def rule_list(
    prefix: Annotated[
        Optional[str],
        typer.Option("--filter", help="Only show rules whose name starts with this prefix"),
    ] = None,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
    backend: BackendOption = None,
) -> None:
    """List firewall rule names.

    netsh lists every rule; PowerShell lists enabled rules only.
    """
    ctx = get_context(verbose=verbose, quiet=quiet, no_color=no_color,
                      config=config, backend=backend)

    try:
        fw = get_backend(ctx)
        result = run_async(fw.list_rules())
        if not result.success:
            raise FirewallError(result.message, backend=fw.name)

        rules = result.rules
        if prefix:
            rules = [rule for rule in rules if rule.startswith(prefix)]

        if not rules:
            ctx.console.info("No rules found")
            return

        ctx.console.table(
            f"Firewall rules ({fw.display_name})",
            ["#", "Name"],
            [[str(i), rule] for i, rule in enumerate(rules, 1)],
        )
        ctx.console.info(f"{len(rules)} rule(s)")
    except WinFWError as e:
        handle_error(e)


@app.command("exists")
def rule_exists(
    name: NameArgument,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
    backend: BackendOption = None,
) -> None:
    """Check whether a rule exists.

    Exits with code 0 when the rule exists and 1 when it does not.
    """
    ctx = get_context(verbose=verbose, quiet=quiet, no_color=no_color,
                      config=config, backend=backend)

    try:
        fw = get_backend(ctx)
        result = run_async(fw.rule_exists(name))
        if result.exists:
            ctx.console.success(f"{result.message}: {name}")
            return
        if result.outcome == Outcome.ABSENT:
            ctx.console.warn(result.message)
            raise typer.Exit(1)
        raise FirewallError(result.message, rule=name, backend=fw.name)
    except WinFWError as e:
        handle_error(e)


def _set_enabled(
    name: str,
    enabled: bool,
    dry_run: bool,
    verbose: int,
    quiet: bool,
    no_color: bool,
    config,
    backend,
) -> None:
    ctx = get_context(dry_run=dry_run, verbose=verbose, quiet=quiet,
                      no_color=no_color, config=config, backend=backend)

    try:
        fw = get_backend(ctx)
        result = run_async(fw.set_rule_enabled(name, enabled))
        raise_for_result(result, rule=name, backend=fw.name)
        ctx.console.success(f"{result.message}: {name}")
    except WinFWError as e:
        handle_error(e)


@app.command("enable")
def rule_enable(
    name: NameArgument,
    dry_run: DryRunOption = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
    backend: BackendOption = None,
) -> None:
    """Enable every rule with the given name."""
    _set_enabled(name, True, dry_run, verbose, quiet, no_color, config, backend)


@app.command("disable")
def rule_disable(
    name: NameArgument,
    dry_run: DryRunOption = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
    backend: BackendOption = None,
) -> None:
    """Disable every rule with the given name."""
    _set_enabled(name, False, dry_run, verbose, quiet, no_color, config, backend)
