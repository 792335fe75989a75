"""Error types raised by winfw.

Each class fixes the process exit code the CLI uses when it reaches the
top level. A hint and detail lines are printed under the message.
"""

from typing import Optional


class WinFWError(Exception):
    """Root of the winfw error hierarchy.

    Attributes:
        message: One-line description shown after [ERROR]
        hint: What the operator can do about it
        details: Extra lines, one per item
        exit_code: Process exit status for this class
    """

    exit_code: int = 1

    def __init__(
        self,
        message: str,
        *,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.details = details or []

    def __str__(self) -> str:
        return self.message


class ConfigurationError(WinFWError):
    """The config file or WINFW_* overrides are unusable.

    Raised for:
    - Config file unreadable
    - Invalid YAML syntax
    - Invalid configuration values
    - Malformed WINFW_* environment variables
    """
    exit_code = 2


class ValidationError(WinFWError):
    """Rejected rule or policy arguments.

    Raised for:
    - Empty or malformed rule name
    - Port outside 1-65535
    - Malformed IP expression
    - Program or policy file missing
    """
    exit_code = 3


class PrerequisiteError(WinFWError):
    """Host preconditions not met.

    Raised for:
    - Host is not Windows
    - Windows Firewall service (MpsSvc) is not running
    - Process lacks administrator privileges
    """
    exit_code = 6


class FirewallError(WinFWError):
    """Firewall operation errors surfaced to the CLI.

    Raised for:
    - A rule operation reports failure
    - A rule targeted by name does not exist
    - Backend cannot be constructed
    """
    exit_code = 15

    def __init__(
        self,
        message: str,
        *,
        rule: Optional[str] = None,
        backend: Optional[str] = None,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        super().__init__(message, hint=hint, details=details)
        self.rule = rule
        self.backend = backend
