"""Side-by-side exercise of the firewall backends.

Runs the same scenario against each backend, times every step and
renders a plain-text report. Rules created by the scenario share a fixed
prefix and are removed again even if the run is interrupted.
"""

import tempfile
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Awaitable, Optional, Union

from winfw.services.backend import FirewallBackend
from winfw.services.rules import (
    ExistenceResult,
    OperationResult,
    Outcome,
    RuleListResult,
)


TEST_RULE_PREFIX = "TEST_"

AnyResult = Union[OperationResult, RuleListResult, ExistenceResult]


@dataclass
class StepResult:
    """Outcome and timing of one scenario step."""
    step: str
    outcome: Outcome
    expected: Outcome
    message: str
    duration_ms: float

    @property
    def passed(self) -> bool:
        return self.outcome == self.expected


@dataclass
class BackendReport:
    """All steps run against one backend."""
    backend: str
    display_name: str
    steps: list[StepResult] = field(default_factory=list)

    @property
    def total_ms(self) -> float:
        return sum(step.duration_ms for step in self.steps)

    @property
    def passed(self) -> int:
        return sum(1 for step in self.steps if step.passed)

    @property
    def all_passed(self) -> bool:
        return self.passed == len(self.steps)


@dataclass
class ComparisonReport:
    """Reports for every backend in a comparison run."""
    program: str
    started_at: datetime = field(default_factory=datetime.now)
    backends: list[BackendReport] = field(default_factory=list)

    @property
    def all_passed(self) -> bool:
        return all(report.all_passed for report in self.backends)

    def to_text(self) -> str:
        """Render the report as plain text."""
        lines = [
            "winfw backend comparison",
            f"Started: {self.started_at.isoformat(timespec='seconds')}",
            f"Program: {self.program}",
        ]

        for report in self.backends:
            lines.append("")
            lines.append(f"=== {report.display_name} ({report.backend}) ===")
            for step in report.steps:
                mark = "PASS" if step.passed else "FAIL"
                lines.append(
                    f"[{mark}] {step.step:<32} {step.outcome.value:<8} "
                    f"{step.duration_ms:>8.0f} ms  {step.message}"
                )
                if not step.passed:
                    lines.append(f"       expected: {step.expected.value}")
            lines.append(
                f"Total: {report.total_ms:.0f} ms, "
                f"{report.passed}/{len(report.steps)} steps as expected"
            )

        lines.append("")
        lines.append("=== Summary ===")
        for report in self.backends:
            lines.append(f"{report.backend:<12} {report.total_ms:>10.0f} ms")

        return "\n".join(lines) + "\n"


class ComparisonRunner:
    """Runs the rule-management scenario against each backend in turn."""

    def __init__(
        self,
        backends: list[FirewallBackend],
        program: str,
        prefix: str = TEST_RULE_PREFIX,
        export_dir: Optional[Path] = None,
    ) -> None:
        self.backends = backends
        self.program = program
        self.prefix = prefix
        self.export_dir = export_dir

    def rule_names(self, backend: FirewallBackend) -> dict[str, str]:
        """Names of the rules the scenario creates on a backend."""
        base = f"{self.prefix}{backend.name.upper()}"
        return {
            "inbound_program": f"{base}_IN_PROGRAM",
            "outbound_program": f"{base}_OUT_PROGRAM",
            "tcp_port": f"{base}_TCP_PORT",
            "udp_port": f"{base}_UDP_PORT",
            "remote_ip": f"{base}_REMOTE_IP",
            "local_ip": f"{base}_LOCAL_IP",
        }

    async def run(self) -> ComparisonReport:
        report = ComparisonReport(program=self.program)
        for backend in self.backends:
            report.backends.append(await self.run_backend(backend))
        return report

    async def run_backend(self, backend: FirewallBackend) -> BackendReport:
        """Run the full scenario against one backend."""
        report = BackendReport(backend=backend.name, display_name=backend.display_name)
        names = self.rule_names(backend)
        pending = set(names.values())

        async def step(label: str, call: Awaitable[AnyResult], expected: Outcome = Outcome.SUCCESS) -> Outcome:
            start = time.perf_counter()
            result = await call
            elapsed = (time.perf_counter() - start) * 1000
            report.steps.append(StepResult(label, result.outcome, expected, result.message, elapsed))
            return result.outcome

        try:
            await step("add inbound program rule",
                       backend.add_inbound_program_rule(names["inbound_program"], self.program))
            await step("add outbound program rule",
                       backend.add_outbound_program_rule(names["outbound_program"], self.program))
            await step("add TCP port rule",
                       backend.add_port_rule(names["tcp_port"], 8080, inbound=True, protocol="TCP"))
            await step("add UDP port rule",
                       backend.add_port_rule(names["udp_port"], 8081, inbound=False, protocol="UDP"))
            await step("add remote IP rule",
                       backend.add_remote_ip_rule(names["remote_ip"], "192.168.1.0/24", inbound=True, allow=False))
            await step("add local IP rule",
                       backend.add_local_ip_rule(names["local_ip"], "10.0.0.1-10.0.0.255", inbound=False, allow=True))

            await step("check rule exists", backend.rule_exists(names["inbound_program"]))
            await step("disable rule", backend.set_rule_enabled(names["tcp_port"], False))
            await step("enable rule", backend.set_rule_enabled(names["tcp_port"], True))
            await step("list rules", backend.list_rules())

            with tempfile.TemporaryDirectory(prefix="winfw-compare-", dir=self.export_dir) as tmp:
                export_path = Path(tmp) / f"policy{backend.policy_suffix}"
                await step("export policy", backend.export_policy(str(export_path)))

            for name in names.values():
                if await step(f"delete {name}", backend.delete_rule(name)) == Outcome.SUCCESS:
                    pending.discard(name)
            for name in names.values():
                await step(f"delete {name} again", backend.delete_rule(name), expected=Outcome.ABSENT)
        finally:
            for name in sorted(pending):
                await backend.delete_rule(name)

        return report
