"""Host preconditions for firewall management.

Provides:
- Pre-flight checks run once before any backend is constructed
- The (passed, message) precondition call used by the backend factory
- Elevation detection
"""

import ctypes
import re
import subprocess
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from winfw.core.exceptions import PrerequisiteError
from winfw.core.output import console


FIREWALL_SERVICE = "MpsSvc"

# sc.exe prints "STATE : 4  RUNNING"; the numeric code survives localization
SERVICE_RUNNING_PATTERN = re.compile(r":\s*4\b|\bRUNNING\b", re.IGNORECASE)


class CheckResult(Enum):
    PASS = "pass"
    FAIL = "fail"


@dataclass(frozen=True)
class PreflightResult:
    """Outcome of one pre-flight check."""
    check_name: str
    result: CheckResult
    message: str
    remediation: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.result == CheckResult.FAIL


def is_windows() -> bool:
    """Return True on Windows NT hosts."""
    return sys.platform == "win32"


def is_elevated() -> bool:
    """Return True if the current process has administrator rights."""
    try:
        return bool(ctypes.windll.shell32.IsUserAnAdmin())  # type: ignore[attr-defined]
    except (AttributeError, OSError):
        return False


def query_service_running(service: str = FIREWALL_SERVICE) -> bool:
    """Ask the service control manager whether a service is running."""
    try:
        result = subprocess.run(
            ["sc", "query", service],
            capture_output=True,
            text=True,
            errors="replace",
            timeout=10,
        )
    except (subprocess.TimeoutExpired, FileNotFoundError, OSError):
        return False

    if result.returncode != 0:
        return False

    for line in result.stdout.splitlines():
        if "STATE" in line.upper() or "状态" in line:
            return bool(SERVICE_RUNNING_PATTERN.search(line))
    return False


class PreflightCheck(ABC):
    """A single host precondition.

    Every check is critical: a failure stops backend construction.
    """

    name: str = "check"

    @abstractmethod
    def run(self) -> PreflightResult:
        ...

    def passed(self, message: str) -> PreflightResult:
        return PreflightResult(self.name, CheckResult.PASS, message)

    def failed(self, message: str, remediation: Optional[str] = None) -> PreflightResult:
        return PreflightResult(self.name, CheckResult.FAIL, message, remediation)


class WindowsPlatformCheck(PreflightCheck):
    name = "Windows Platform"

    def run(self) -> PreflightResult:
        if not is_windows():
            return self.failed("Only Windows is supported", "Run winfw on a Windows host")
        return self.passed(f"Platform: {sys.platform}")


class FirewallServiceCheck(PreflightCheck):
    name = "Firewall Service"

    def run(self) -> PreflightResult:
        if not query_service_running(FIREWALL_SERVICE):
            return self.failed(
                "Windows Firewall service is not running",
                f"Start it with: sc start {FIREWALL_SERVICE}",
            )
        return self.passed(f"{FIREWALL_SERVICE} is running")


class AdministratorCheck(PreflightCheck):
    name = "Administrator Privileges"

    def run(self) -> PreflightResult:
        if not is_elevated():
            return self.failed(
                "Administrator privileges required",
                "Run from an elevated prompt (Run as administrator)",
            )
        return self.passed("Running with administrator privileges")


class PreflightRunner:
    """Runs a fixed list of checks in order."""

    DEFAULT_CHECKS: list[type[PreflightCheck]] = [
        WindowsPlatformCheck,
        FirewallServiceCheck,
        AdministratorCheck,
    ]

    def __init__(self, checks: Optional[list[type[PreflightCheck]]] = None) -> None:
        self.checks = [check_cls() for check_cls in (checks or self.DEFAULT_CHECKS)]

    def run_all(self, fail_fast: bool = True) -> list[PreflightResult]:
        """Run the checks, stopping at the first failure when fail_fast is set."""
        results = []
        for check in self.checks:
            result = check.run()
            results.append(result)
            if fail_fast and result.failed:
                break
        return results

    def all_passed(self, results: list[PreflightResult]) -> bool:
        return not any(r.failed for r in results)

    def display_results(self, results: list[PreflightResult]) -> None:
        console.print()
        console.rule("Pre-flight Checks")

        for result in results:
            status = "[red]FAIL[/red]" if result.failed else "[green]PASS[/green]"
            console.print(f"  {status} {result.check_name}: {result.message}")
            if result.failed and result.remediation:
                console.print(f"        [dim]Fix: {result.remediation}[/dim]")

        console.print()


def check_system_requirements(
    runner: Optional[PreflightRunner] = None,
) -> tuple[bool, str]:
    """Run the preconditions once and summarize them.

    Returns:
        (passed, message) where message names the first failing check
    """
    runner = runner or PreflightRunner()
    for result in runner.run_all(fail_fast=True):
        if result.failed:
            return False, result.message
    return True, "System requirements satisfied"


def run_preflight_checks(
    runner: Optional[PreflightRunner] = None,
    verbose: bool = False,
) -> bool:
    """Run every check and raise if any failed.

    Raises:
        PrerequisiteError: If a check fails
    """
    runner = runner or PreflightRunner()
    results = runner.run_all(fail_fast=False)

    if verbose:
        runner.display_results(results)

    if not runner.all_passed(results):
        raise PrerequisiteError(
            "Pre-flight checks failed",
            details=[f"{r.check_name}: {r.message}" for r in results if r.failed],
            hint="Fix the issues above and try again",
        )

    return True
