"""Rule management contract shared by the netsh and PowerShell backends.

Callers code against FirewallBackend only. Every operation applies the
same guard order before anything is executed:

1. Elevation - without administrator rights the call fails immediately.
2. Validation - names, paths, ports and IP expressions are checked.
3. Execution - the concrete backend builds and runs its command.
4. Translation - captured output is turned into a structured result,
   separating "rule absent" from "command failed".

No exception crosses this boundary; every failure comes back as a result.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from winfw.core.audit import AuditEventType, AuditLogger, AuditResult, get_audit_logger
from winfw.core.context import ExecutionContext
from winfw.core.exceptions import ValidationError
from winfw.core.executor import CommandExecutor, CommandResult
from winfw.core.safety import is_elevated
from winfw.core.validation import (
    validate_export_path,
    validate_import_file,
    validate_ip_expression,
    validate_port,
    validate_program_path,
    validate_protocol,
    validate_rule_name,
)
from winfw.services.output_parser import AbsentPhrases
from winfw.services.rules import (
    Direction,
    ExistenceResult,
    MSG_ELEVATION_REQUIRED,
    MSG_POLICY_EXPORTED,
    MSG_POLICY_IMPORTED,
    MSG_POLICY_RESET,
    MSG_RULE_ADDED,
    MSG_RULE_DELETED,
    MSG_RULE_EXISTS,
    MSG_RULES_LISTED,
    OperationResult,
    Outcome,
    RuleAction,
    RuleIntent,
    RuleKind,
    RuleListResult,
    rule_not_found,
    rule_toggled,
)


class FirewallBackend(ABC):
    """Abstract rule-management contract.

    Subclasses implement the command construction hooks; the public
    coroutines here own the guard order and result translation.
    """

    name: str = "backend"
    display_name: str = "Firewall backend"
    policy_suffix: str = ".policy"
    absent_phrases: AbsentPhrases

    def __init__(
        self,
        ctx: ExecutionContext,
        executor: CommandExecutor,
        *,
        elevated: Optional[bool] = None,
        audit: Optional[AuditLogger] = None,
    ) -> None:
        """Initialize backend.

        Args:
            ctx: Execution context
            executor: Command executor used for every external call
            elevated: Elevation flag; detected once when not given
            audit: Audit logger (defaults to the global one)
        """
        self.ctx = ctx
        self.executor = executor
        self._elevated = is_elevated() if elevated is None else elevated
        self.audit = audit if audit is not None else get_audit_logger()

    def is_elevated(self) -> bool:
        """Whether the process held administrator rights at construction."""
        return self._elevated

    # -------------------------------------------------------------------------
    # Program rules
    # -------------------------------------------------------------------------

    async def add_inbound_program_rule(self, name: str, path: str) -> OperationResult:
        """Allow inbound traffic for a program."""
        return await self._add_program_rule(name, path, Direction.INBOUND)

    async def add_outbound_program_rule(self, name: str, path: str) -> OperationResult:
        """Allow outbound traffic for a program."""
        return await self._add_program_rule(name, path, Direction.OUTBOUND)

    async def _add_program_rule(
        self,
        name: str,
        path: str,
        direction: Direction,
    ) -> OperationResult:
        if not self._elevated:
            return self._denied(AuditEventType.FIREWALL_RULE_ADD, name)

        try:
            intent = RuleIntent(
                name=validate_rule_name(name),
                direction=direction,
                kind=RuleKind.PROGRAM,
                action=RuleAction.ALLOW,
                program_path=validate_program_path(path),
            )
        except ValidationError as e:
            return self._invalid(e)

        return await self._create(intent)

    # -------------------------------------------------------------------------
    # Port rules
    # -------------------------------------------------------------------------

    async def add_port_rule(
        self,
        name: str,
        port: int,
        inbound: bool = True,
        protocol: str = "TCP",
    ) -> OperationResult:
        """Allow traffic on a local port."""
        if not self._elevated:
            return self._denied(AuditEventType.FIREWALL_RULE_ADD, name)

        try:
            intent = RuleIntent(
                name=validate_rule_name(name),
                direction=Direction.from_flag(inbound),
                kind=RuleKind.PORT,
                action=RuleAction.ALLOW,
                port=validate_port(port),
                protocol=validate_protocol(protocol),
            )
        except ValidationError as e:
            return self._invalid(e)

        return await self._create(intent)

    # -------------------------------------------------------------------------
    # IP rules
    # -------------------------------------------------------------------------

    async def add_remote_ip_rule(
        self,
        name: str,
        ip: str,
        inbound: bool = True,
        allow: bool = True,
    ) -> OperationResult:
        """Allow or block traffic to/from a remote address expression."""
        return await self._add_ip_rule(name, ip, RuleKind.REMOTE_IP, inbound, allow)

    async def add_local_ip_rule(
        self,
        name: str,
        ip: str,
        inbound: bool = True,
        allow: bool = True,
    ) -> OperationResult:
        """Allow or block traffic on a local address expression."""
        return await self._add_ip_rule(name, ip, RuleKind.LOCAL_IP, inbound, allow)

    async def _add_ip_rule(
        self,
        name: str,
        ip: str,
        kind: RuleKind,
        inbound: bool,
        allow: bool,
    ) -> OperationResult:
        if not self._elevated:
            return self._denied(AuditEventType.FIREWALL_RULE_ADD, name)

        try:
            intent = RuleIntent(
                name=validate_rule_name(name),
                direction=Direction.from_flag(inbound),
                kind=kind,
                action=RuleAction.from_flag(allow),
                ip_expression=validate_ip_expression(ip),
            )
        except ValidationError as e:
            return self._invalid(e)

        return await self._create(intent)

    async def _create(self, intent: RuleIntent) -> OperationResult:
        try:
            result = await self._add_rule(intent)
        except Exception as e:
            return self._record(
                AuditEventType.FIREWALL_RULE_ADD,
                intent.name,
                OperationResult(False, f"Error: {e}", Outcome.FAILED),
                parameters=self._intent_parameters(intent),
            )

        if result.success:
            outcome = OperationResult(True, MSG_RULE_ADDED)
        else:
            outcome = OperationResult(False, f"Add failed: {result.output.strip()}", Outcome.FAILED)

        return self._record(
            AuditEventType.FIREWALL_RULE_ADD,
            intent.name,
            outcome,
            parameters=self._intent_parameters(intent),
        )

    # -------------------------------------------------------------------------
    # Rule management
    # -------------------------------------------------------------------------

    async def delete_rule(self, name: str) -> OperationResult:
        """Delete every rule with the given name.

        A missing rule is reported with ``Outcome.ABSENT`` so repeated
        deletes can be told apart from genuine failures.
        """
        if not self._elevated:
            return self._denied(AuditEventType.FIREWALL_RULE_REMOVE, name)

        try:
            name = validate_rule_name(name)
        except ValidationError as e:
            return self._invalid(e)

        try:
            result = await self._delete_rule(name)
        except Exception as e:
            return self._record(
                AuditEventType.FIREWALL_RULE_REMOVE,
                name,
                OperationResult(False, f"Error: {e}", Outcome.FAILED),
            )

        if self.absent_phrases.matches(result.output):
            outcome = OperationResult(False, rule_not_found(name), Outcome.ABSENT)
        elif result.success:
            outcome = OperationResult(True, MSG_RULE_DELETED)
        else:
            outcome = OperationResult(False, f"Delete failed: {result.output.strip()}", Outcome.FAILED)

        return self._record(AuditEventType.FIREWALL_RULE_REMOVE, name, outcome)

    async def list_rules(self) -> RuleListResult:
        """Enumerate rule display names as reported by the backend."""
        if not self._elevated:
            return RuleListResult(False, [], MSG_ELEVATION_REQUIRED, Outcome.DENIED)

        try:
            result = await self._show_rules()
        except Exception as e:
            return RuleListResult(False, [], f"Error: {e}", Outcome.FAILED)

        if result.success:
            rules = self._parse_rule_list(result.stdout)
        elif self.absent_phrases.matches(result.output):
            rules = []
        else:
            return RuleListResult(
                False,
                [],
                f"Listing rules failed: {result.output.strip()}",
                Outcome.FAILED,
            )

        return RuleListResult(True, rules, MSG_RULES_LISTED.format(count=len(rules)))

    async def rule_exists(self, name: str) -> ExistenceResult:
        """Check whether a rule with the given name exists."""
        if not self._elevated:
            return ExistenceResult(False, MSG_ELEVATION_REQUIRED, Outcome.DENIED)

        try:
            name = validate_rule_name(name)
        except ValidationError as e:
            return ExistenceResult(False, e.message, Outcome.INVALID)

        try:
            result = await self._query_rule(name)
        except Exception as e:
            return ExistenceResult(False, f"Check failed: {e}", Outcome.FAILED)

        outcome = self._classify_existence(result)
        if outcome == Outcome.SUCCESS:
            return ExistenceResult(True, MSG_RULE_EXISTS)
        if outcome == Outcome.ABSENT:
            return ExistenceResult(False, rule_not_found(name), Outcome.ABSENT)
        return ExistenceResult(False, f"Check failed: {result.output.strip()}", Outcome.FAILED)

    async def set_rule_enabled(self, name: str, enabled: bool) -> OperationResult:
        """Enable or disable every rule with the given name."""
        event_type = (
            AuditEventType.FIREWALL_RULE_ENABLE if enabled
            else AuditEventType.FIREWALL_RULE_DISABLE
        )
        if not self._elevated:
            return self._denied(event_type, name)

        try:
            name = validate_rule_name(name)
        except ValidationError as e:
            return self._invalid(e)

        try:
            result = await self._set_rule_enabled(name, enabled)
        except Exception as e:
            return self._record(
                event_type, name, OperationResult(False, f"Error: {e}", Outcome.FAILED)
            )

        if self.absent_phrases.matches(result.output):
            outcome = OperationResult(False, rule_not_found(name), Outcome.ABSENT)
        elif result.success:
            outcome = OperationResult(True, rule_toggled(enabled))
        else:
            outcome = OperationResult(False, f"Operation failed: {result.output.strip()}", Outcome.FAILED)

        return self._record(event_type, name, outcome, parameters={"enabled": enabled})

    # -------------------------------------------------------------------------
    # Firewall policy
    # -------------------------------------------------------------------------

    async def export_policy(self, path: str) -> OperationResult:
        """Export the firewall policy to a backend-specific file."""
        if not self._elevated:
            return self._denied(AuditEventType.FIREWALL_EXPORT, str(path))

        try:
            path = validate_export_path(path)
        except ValidationError as e:
            return self._invalid(e)

        return await self._policy_call(
            AuditEventType.FIREWALL_EXPORT,
            path,
            self._export_policy(path),
            MSG_POLICY_EXPORTED.format(path=path),
            "Export failed",
        )

    async def import_policy(self, path: str) -> OperationResult:
        """Import a policy file previously written by this backend."""
        if not self._elevated:
            return self._denied(AuditEventType.FIREWALL_IMPORT, str(path))

        try:
            path = validate_import_file(path)
        except ValidationError as e:
            return self._invalid(e)

        return await self._policy_call(
            AuditEventType.FIREWALL_IMPORT,
            path,
            self._import_policy(path),
            MSG_POLICY_IMPORTED.format(path=path),
            "Import failed",
        )

    async def reset_policy(self) -> OperationResult:
        """Restore the default firewall policy."""
        if not self._elevated:
            return self._denied(AuditEventType.FIREWALL_RESET, None)

        return await self._policy_call(
            AuditEventType.FIREWALL_RESET,
            None,
            self._reset_policy(),
            MSG_POLICY_RESET,
            "Reset failed",
        )

    async def _policy_call(
        self,
        event_type: AuditEventType,
        target: Optional[str],
        pending: Any,
        success_message: str,
        failure_prefix: str,
    ) -> OperationResult:
        try:
            result = await pending
        except Exception as e:
            return self._record(
                event_type, target, OperationResult(False, f"Error: {e}", Outcome.FAILED),
                target_type="policy",
            )

        if result.success:
            outcome = OperationResult(True, success_message)
        else:
            outcome = OperationResult(False, f"{failure_prefix}: {result.output.strip()}", Outcome.FAILED)

        return self._record(event_type, target, outcome, target_type="policy")

    # -------------------------------------------------------------------------
    # Backend hooks
    # -------------------------------------------------------------------------

    @abstractmethod
    async def _add_rule(self, intent: RuleIntent) -> CommandResult:
        """Create a rule from a validated intent."""
        ...

    @abstractmethod
    async def _delete_rule(self, name: str) -> CommandResult:
        ...

    @abstractmethod
    async def _show_rules(self) -> CommandResult:
        ...

    @abstractmethod
    def _parse_rule_list(self, output: str) -> list[str]:
        ...

    @abstractmethod
    async def _query_rule(self, name: str) -> CommandResult:
        ...

    @abstractmethod
    async def _set_rule_enabled(self, name: str, enabled: bool) -> CommandResult:
        ...

    @abstractmethod
    async def _export_policy(self, path: str) -> CommandResult:
        ...

    @abstractmethod
    async def _import_policy(self, path: str) -> CommandResult:
        ...

    @abstractmethod
    async def _reset_policy(self) -> CommandResult:
        ...

    def _classify_existence(self, result: CommandResult) -> Outcome:
        """Map a rule query to SUCCESS (present), ABSENT or FAILED."""
        if self.absent_phrases.matches(result.output):
            return Outcome.ABSENT
        if result.success:
            return Outcome.SUCCESS
        return Outcome.FAILED

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _denied(self, event_type: AuditEventType, target: Optional[str]) -> OperationResult:
        self.audit.log_operation(
            event_type=event_type,
            result=AuditResult.BLOCKED,
            target_type="rule",
            target_name=target,
            operation=event_type.value,
            backend=self.name,
            message=MSG_ELEVATION_REQUIRED,
        )
        return OperationResult(False, MSG_ELEVATION_REQUIRED, Outcome.DENIED)

    @staticmethod
    def _invalid(error: ValidationError) -> OperationResult:
        return OperationResult(False, error.message, Outcome.INVALID)

    def _record(
        self,
        event_type: AuditEventType,
        target: Optional[str],
        outcome: OperationResult,
        *,
        target_type: str = "rule",
        parameters: Optional[dict[str, Any]] = None,
    ) -> OperationResult:
        """Write the audit entry for a completed mutating operation."""
        if self.ctx.dry_run:
            audit_result = AuditResult.DRY_RUN
        elif outcome.success:
            audit_result = AuditResult.SUCCESS
        else:
            audit_result = AuditResult.FAILURE

        self.audit.log_operation(
            event_type=event_type,
            result=audit_result,
            target_type=target_type,
            target_name=target,
            operation=event_type.value,
            backend=self.name,
            parameters=parameters,
            message=outcome.message if outcome.success else None,
            error=None if outcome.success else outcome.message,
        )
        return outcome

    @staticmethod
    def _intent_parameters(intent: RuleIntent) -> dict[str, Any]:
        params: dict[str, Any] = {
            "direction": intent.direction.value,
            "kind": intent.kind.value,
            "action": intent.action.value,
        }
        if intent.program_path:
            params["program"] = intent.program_path
        if intent.port is not None:
            params["port"] = intent.port
            params["protocol"] = intent.protocol
        if intent.ip_expression:
            params["address"] = intent.ip_expression
        return params
