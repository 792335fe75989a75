"""Backend selection and construction.

The backend is chosen once per process: preconditions are checked first,
then the configured choice (or the OS version, for ``auto``) decides
between netsh and PowerShell. The resulting instance is handed to callers
explicitly; nothing here is cached.
"""

import platform
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from winfw.core.audit import AuditLogger
from winfw.core.config import BackendChoice
from winfw.core.context import ExecutionContext
from winfw.core.exceptions import PrerequisiteError
from winfw.core.executor import CommandExecutor
from winfw.core.safety import PreflightRunner, check_system_requirements
from winfw.services.backend import FirewallBackend
from winfw.services.netsh import NetshBackend
from winfw.services.powershell import PowerShellBackend


_VERSION_PATTERN = re.compile(r"(\d+)(?:\.(\d+))?")


class BackendKind(str, Enum):
    """Concrete backend implementations."""
    NETSH = "netsh"
    POWERSHELL = "powershell"


BACKENDS: dict[BackendKind, type[FirewallBackend]] = {
    BackendKind.NETSH: NetshBackend,
    BackendKind.POWERSHELL: PowerShellBackend,
}


@dataclass(frozen=True)
class BackendSelection:
    """Which backend was picked and why."""
    kind: BackendKind
    reason: str
    os_version: tuple[int, ...]


def parse_os_version(text: str) -> tuple[int, ...]:
    """Extract (major, minor) from an OS version string such as '10.0.19045'.

    Unparseable input yields (0, 0), which never satisfies a minimum.
    """
    match = _VERSION_PATTERN.search(text or "")
    if match is None:
        return (0, 0)
    return (int(match.group(1)), int(match.group(2) or 0))


def current_os_version() -> tuple[int, ...]:
    return parse_os_version(platform.version())


def format_version(version: tuple[int, ...]) -> str:
    return ".".join(str(part) for part in version)


def select_backend(
    choice: BackendChoice,
    os_version: tuple[int, ...],
    min_powershell_version: tuple[int, ...] = (10, 0),
) -> BackendSelection:
    """Decide which backend to build.

    Args:
        choice: Configured or overridden backend choice
        os_version: Host OS version as a tuple
        min_powershell_version: Lowest OS version that gets PowerShell under auto

    Returns:
        BackendSelection with the chosen kind and a readable reason
    """
    if choice == BackendChoice.NETSH:
        return BackendSelection(BackendKind.NETSH, "netsh requested explicitly", os_version)

    if choice == BackendChoice.POWERSHELL:
        return BackendSelection(BackendKind.POWERSHELL, "PowerShell requested explicitly", os_version)

    found = format_version(os_version)
    required = format_version(min_powershell_version)
    if os_version >= min_powershell_version:
        return BackendSelection(
            BackendKind.POWERSHELL,
            f"OS version {found} >= {required}",
            os_version,
        )
    return BackendSelection(
        BackendKind.NETSH,
        f"OS version {found} < {required}",
        os_version,
    )


def resolve_selection(
    ctx: ExecutionContext,
    os_version: Optional[tuple[int, ...]] = None,
) -> BackendSelection:
    """Select a backend from the context's configuration."""
    return select_backend(
        ctx.backend_choice,
        os_version if os_version is not None else current_os_version(),
        ctx.config.min_powershell_version,
    )


def build_backend(
    ctx: ExecutionContext,
    kind: BackendKind,
    *,
    executor: Optional[CommandExecutor] = None,
    elevated: Optional[bool] = None,
    audit: Optional[AuditLogger] = None,
) -> FirewallBackend:
    """Instantiate a backend without checking preconditions."""
    backend_cls = BACKENDS[kind]
    return backend_cls(
        ctx,
        executor or CommandExecutor(ctx),
        elevated=elevated,
        audit=audit,
    )


def create_backend(
    ctx: ExecutionContext,
    *,
    runner: Optional[PreflightRunner] = None,
    executor: Optional[CommandExecutor] = None,
    os_version: Optional[tuple[int, ...]] = None,
    elevated: Optional[bool] = None,
    audit: Optional[AuditLogger] = None,
) -> FirewallBackend:
    """Check preconditions and build the backend for this process.

    Raises:
        PrerequisiteError: If the host does not meet the requirements
    """
    passed, message = check_system_requirements(runner)
    if not passed:
        raise PrerequisiteError(
            message,
            hint="Run 'winfw check' for details",
        )

    selection = resolve_selection(ctx, os_version)
    ctx.console.verbose(f"Using {selection.kind.value} backend ({selection.reason})")

    return build_backend(
        ctx,
        selection.kind,
        executor=executor,
        elevated=elevated,
        audit=audit,
    )
