"""Console output for winfw, rendered with Rich.

Normal messages go to stdout and warnings and errors to stderr. Verbosity
decides what is shown, and in dry-run mode the commands and scripts that
would have run are printed instead.
"""

from enum import IntEnum
from typing import Any

from rich import box
from rich.console import Console as RichConsole
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table


class Verbosity(IntEnum):
    """Output verbosity levels."""
    QUIET = 0
    NORMAL = 1
    VERBOSE = 2   # backend selection, command descriptions
    DEBUG = 3     # full command lines, captured output, rendered scripts


class Console:
    """Process-wide console shared by the CLI, executor and backends."""

    def __init__(self) -> None:
        self._out = RichConsole(highlight=False)
        self._err = RichConsole(stderr=True, highlight=False)
        self.verbosity = Verbosity.NORMAL
        self.dry_run = False
        self.no_color = False

    def configure(
        self,
        verbosity: int = 1,
        dry_run: bool = False,
        no_color: bool = False,
    ) -> None:
        """Apply the flags of the current command."""
        self.verbosity = Verbosity(max(Verbosity.QUIET, min(verbosity, Verbosity.DEBUG)))
        self.dry_run = dry_run
        self.no_color = no_color
        if no_color:
            self._out = RichConsole(highlight=False, no_color=True)
            self._err = RichConsole(stderr=True, highlight=False, no_color=True)

    def _shows(self, level: Verbosity) -> bool:
        return self.verbosity >= level

    def info(self, message: str) -> None:
        if self._shows(Verbosity.NORMAL):
            self._out.print(f"[green][INFO][/green] {message}")

    def success(self, message: str) -> None:
        if self._shows(Verbosity.NORMAL):
            self._out.print(f"[green][OK][/green] {message}")

    def warn(self, message: str) -> None:
        self._err.print(f"[yellow][WARN][/yellow] {message}")

    def error(self, message: str) -> None:
        self._err.print(f"[red][ERROR][/red] {message}")

    def hint(self, message: str) -> None:
        self._err.print(f"[cyan]Hint:[/cyan] {message}")

    def verbose(self, message: str) -> None:
        if self._shows(Verbosity.VERBOSE):
            self._out.print(f"[dim]{message}[/dim]")

    def debug(self, message: str) -> None:
        if self._shows(Verbosity.DEBUG):
            self._out.print(f"[cyan][DEBUG][/cyan] {message}")

    def step(self, description: str) -> None:
        """Announce an external call about to be made."""
        if self._shows(Verbosity.VERBOSE):
            self._out.print(f"[blue]->[/blue] {description}")

    def planned(self, command_line: str) -> None:
        """Show a command that dry-run mode skipped."""
        if self.dry_run:
            self._out.print(f"[blue][DRY-RUN][/blue] Would run: {command_line}")

    def print(self, message: Any = "", **kwargs: Any) -> None:
        self._out.print(message, **kwargs)

    def rule(self, title: str = "") -> None:
        self._out.rule(title)

    def table(self, title: str, columns: list[str], rows: list[list[str]]) -> None:
        """Print rows under a titled table."""
        table = Table(title=title, box=box.SIMPLE_HEAVY)
        for column in columns:
            table.add_column(column)
        for row in rows:
            table.add_row(*row)
        self._out.print(table)

    def script(self, text: str, title: str = "PowerShell") -> None:
        """Print a rendered PowerShell script."""
        self._out.print(Panel(
            Syntax(text, "powershell", theme="monokai", line_numbers=True),
            title=title,
            border_style="green",
        ))

    def yaml(self, yaml_text: str, title: str = "Configuration") -> None:
        self._out.print(Panel(
            Syntax(yaml_text, "yaml", theme="monokai"),
            title=title,
            border_style="cyan",
        ))

    def summary(self, title: str, items: dict[str, Any]) -> None:
        """Print key-value pairs in a panel; booleans render as Yes/No."""
        lines = []
        for key, value in items.items():
            if isinstance(value, bool):
                value = "[green]Yes[/green]" if value else "[red]No[/red]"
            lines.append(f"[bold]{key}:[/bold] {value}")
        self._out.print(Panel("\n".join(lines), title=title, border_style="blue"))


console = Console()
