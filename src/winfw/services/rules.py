"""Rule intents and operation results shared by all backends."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class Direction(str, Enum):
    """Traffic direction a rule applies to."""
    INBOUND = "inbound"
    OUTBOUND = "outbound"

    @classmethod
    def from_flag(cls, inbound: bool) -> "Direction":
        return cls.INBOUND if inbound else cls.OUTBOUND


class RuleKind(str, Enum):
    """What a rule matches on."""
    PROGRAM = "program"
    PORT = "port"
    REMOTE_IP = "remote-ip"
    LOCAL_IP = "local-ip"


class RuleAction(str, Enum):
    """Firewall rule action."""
    ALLOW = "allow"
    BLOCK = "block"

    @classmethod
    def from_flag(cls, allow: bool) -> "RuleAction":
        return cls.ALLOW if allow else cls.BLOCK


class Outcome(str, Enum):
    """Classification of an operation's result."""
    SUCCESS = "success"
    ABSENT = "absent"    # target rule does not exist
    DENIED = "denied"    # not elevated, nothing executed
    INVALID = "invalid"  # validation failed, nothing executed
    FAILED = "failed"    # external tool reported an error


@dataclass(frozen=True)
class RuleIntent:
    """A request to create a firewall rule.

    Built per call and never persisted; the Windows firewall store is the
    system of record.
    """
    name: str
    direction: Direction
    kind: RuleKind
    action: RuleAction = RuleAction.ALLOW
    program_path: Optional[str] = None
    port: Optional[int] = None
    protocol: Optional[str] = None
    ip_expression: Optional[str] = None


@dataclass(frozen=True)
class OperationResult:
    """Outcome of a rule or policy operation."""
    success: bool
    message: str
    outcome: Outcome = Outcome.SUCCESS


@dataclass(frozen=True)
class RuleListResult:
    """Outcome of a rule enumeration.

    Order and duplicates follow what the backend reports.
    """
    success: bool
    rules: list[str] = field(default_factory=list)
    message: str = ""
    outcome: Outcome = Outcome.SUCCESS


@dataclass(frozen=True)
class ExistenceResult:
    """Outcome of a rule existence check."""
    exists: bool
    message: str
    outcome: Outcome = Outcome.SUCCESS


# Result messages
MSG_ELEVATION_REQUIRED = "Administrator privileges required"
MSG_RULE_ADDED = "Rule added"
MSG_RULE_DELETED = "Rule deleted"
MSG_RULE_EXISTS = "Rule exists"
MSG_RULES_LISTED = "Found {count} rule(s)"
MSG_POLICY_EXPORTED = "Policy exported to: {path}"
MSG_POLICY_IMPORTED = "Policy imported from: {path}"
MSG_POLICY_RESET = "Firewall policy reset"


def rule_not_found(name: str) -> str:
    return f"Rule not found: {name}"


def rule_toggled(enabled: bool) -> str:
    return "Rule enabled" if enabled else "Rule disabled"
