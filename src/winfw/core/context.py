"""Per-invocation state shared by the CLI, executor and backends."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from winfw.core.config import AppConfig, BackendChoice, DEFAULT_CONFIG_PATH
from winfw.core.output import Console, console, Verbosity


@dataclass
class ExecutionContext:
    """Flags of one winfw invocation plus its lazily loaded config.

    Attributes:
        dry_run: Print commands and scripts instead of running them
        force: If True, allow destructive operations (policy reset)
        verbosity: Output verbosity level (0-3)
        no_color: If True, disable colored output
        config_path: Path to configuration file
        backend_override: Backend forced from the command line
    """

    dry_run: bool = False
    force: bool = False
    verbosity: int = 1
    no_color: bool = False

    config_path: Path = field(default_factory=lambda: DEFAULT_CONFIG_PATH)
    backend_override: Optional[BackendChoice] = None

    _config: Optional[AppConfig] = field(default=None, repr=False)
    _console: Console = field(default_factory=lambda: console, repr=False)

    def __post_init__(self) -> None:
        self._console.configure(
            verbosity=self.verbosity,
            dry_run=self.dry_run,
            no_color=self.no_color,
        )

    @property
    def config(self) -> AppConfig:
        if self._config is None:
            self._config = AppConfig(config_path=self.config_path)
        return self._config

    @property
    def console(self) -> Console:
        return self._console

    @property
    def backend_choice(self) -> BackendChoice:
        """Backend requested by CLI override, environment or config file."""
        return self.backend_override or self.config.backend

    @property
    def is_verbose(self) -> bool:
        return self.verbosity >= Verbosity.VERBOSE

    @property
    def is_debug(self) -> bool:
        return self.verbosity >= Verbosity.DEBUG


def create_context(
    dry_run: bool = False,
    force: bool = False,
    verbose: int = 0,
    quiet: bool = False,
    no_color: bool = False,
    config: Optional[Path] = None,
    backend: Optional[BackendChoice] = None,
) -> ExecutionContext:
    """Turn the common CLI options into a context.

    ``quiet`` wins over any number of ``-v`` flags.
    """
    if quiet:
        verbosity = Verbosity.QUIET
    else:
        verbosity = min(Verbosity.NORMAL + verbose, Verbosity.DEBUG)

    return ExecutionContext(
        dry_run=dry_run,
        force=force,
        verbosity=verbosity,
        no_color=no_color,
        config_path=config or DEFAULT_CONFIG_PATH,
        backend_override=backend,
    )
