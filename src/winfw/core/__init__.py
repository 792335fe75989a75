"""Core framework components for winfw."""

from winfw.core.exceptions import (
    WinFWError,
    ConfigurationError,
    ValidationError,
    PrerequisiteError,
    FirewallError,
)

from winfw.core.context import ExecutionContext, create_context
from winfw.core.output import console, Console, Verbosity
from winfw.core.config import AppConfig, BackendChoice, FirewallConfig
from winfw.core.safety import (
    PreflightRunner,
    check_system_requirements,
    run_preflight_checks,
    is_elevated,
)
from winfw.core.audit import AuditLogger, AuditEvent, AuditEventType, AuditResult, get_audit_logger
from winfw.core.executor import CommandExecutor, CommandResult

__all__ = [
    # Exceptions
    "WinFWError",
    "ConfigurationError",
    "ValidationError",
    "PrerequisiteError",
    "FirewallError",
    # Context
    "ExecutionContext",
    "create_context",
    # Output
    "console",
    "Console",
    "Verbosity",
    # Config
    "AppConfig",
    "BackendChoice",
    "FirewallConfig",
    # Safety
    "PreflightRunner",
    "check_system_requirements",
    "run_preflight_checks",
    "is_elevated",
    # Audit
    "AuditLogger",
    "AuditEvent",
    "AuditEventType",
    "AuditResult",
    "get_audit_logger",
    # Executor
    "CommandExecutor",
    "CommandResult",
]
