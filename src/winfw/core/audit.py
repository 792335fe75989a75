"""Audit trail of firewall changes.

Every mutating backend operation appends one JSON object per line to the
audit log, including refused (blocked) and dry-run attempts. Entries from
one process share a session id; ``correlation()`` groups the entries of a
multi-step run such as ``winfw compare``.
"""

import getpass
import json
import os
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Iterator, Optional

from winfw.core.config import DEFAULT_AUDIT_LOG_PATH
from winfw.core.output import console


DEFAULT_MAX_SIZE_MB = 20
DEFAULT_BACKUP_COUNT = 5


class AuditEventType(Enum):
    """Firewall changes that are audited."""
    FIREWALL_RULE_ADD = "firewall.rule_add"
    FIREWALL_RULE_REMOVE = "firewall.rule_remove"
    FIREWALL_RULE_ENABLE = "firewall.rule_enable"
    FIREWALL_RULE_DISABLE = "firewall.rule_disable"
    FIREWALL_EXPORT = "firewall.export"
    FIREWALL_IMPORT = "firewall.import"
    FIREWALL_RESET = "firewall.reset"


class AuditResult(Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    BLOCKED = "blocked"   # refused before anything ran
    DRY_RUN = "dry_run"


def _whoami() -> str:
    try:
        return getpass.getuser()
    except Exception:
        return "unknown"


@dataclass
class AuditEvent:
    """One audit log entry."""
    event_type: AuditEventType
    result: AuditResult
    target_type: Optional[str] = None
    target_name: Optional[str] = None
    operation: Optional[str] = None
    backend: Optional[str] = None
    parameters: dict[str, Any] = field(default_factory=dict)
    message: Optional[str] = None
    error: Optional[str] = None
    username: str = field(default_factory=_whoami)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    session_id: Optional[str] = None
    correlation_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "result": self.result.value,
            "backend": self.backend,
            "operation": self.operation,
            "target": {"type": self.target_type, "name": self.target_name},
            "parameters": self.parameters,
            "message": self.message,
            "error": self.error,
            "actor": {"username": self.username, "pid": os.getpid()},
            "session_id": self.session_id,
            "correlation_id": self.correlation_id,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str, ensure_ascii=False)


class AuditLogger:
    """Append-only JSON-lines audit log with size-based rotation.

    Rotated files are named ``audit.1`` (newest) to ``audit.N``. Failing
    to write is reported at debug level and never interrupts the
    operation being audited.
    """

    def __init__(
        self,
        log_path: Optional[Path] = None,
        max_size_mb: int = DEFAULT_MAX_SIZE_MB,
        backup_count: int = DEFAULT_BACKUP_COUNT,
        enabled: bool = True,
    ) -> None:
        self.log_path = Path(log_path) if log_path else DEFAULT_AUDIT_LOG_PATH
        self.max_size_bytes = max_size_mb * 1024 * 1024
        self.backup_count = backup_count
        self.enabled = enabled
        self.session_id = str(uuid.uuid4())
        self._correlations: list[str] = []
        self._lock = threading.Lock()

    def log(self, event: AuditEvent) -> None:
        """Stamp the event with session and correlation ids and append it."""
        if not self.enabled:
            return

        event.session_id = self.session_id
        event.correlation_id = self._correlations[-1] if self._correlations else None

        with self._lock:
            try:
                self.log_path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.log_path, "a", encoding="utf-8") as f:
                    f.write(event.to_json() + "\n")
            except OSError as e:
                console.debug(f"Audit log not written ({self.log_path}): {e}")
                return

            try:
                if self.log_path.stat().st_size > self.max_size_bytes:
                    self._rotate()
            except OSError as e:
                console.debug(f"Audit log rotation failed: {e}")

    def _backup(self, index: int) -> Path:
        return self.log_path.with_suffix(f".{index}")

    def _rotate(self) -> None:
        self._backup(self.backup_count).unlink(missing_ok=True)
        for index in range(self.backup_count - 1, 0, -1):
            if self._backup(index).exists():
                self._backup(index).replace(self._backup(index + 1))
        self.log_path.replace(self._backup(1))

    def log_operation(
        self,
        event_type: AuditEventType,
        result: AuditResult,
        target_type: Optional[str] = None,
        target_name: Optional[str] = None,
        operation: Optional[str] = None,
        backend: Optional[str] = None,
        parameters: Optional[dict[str, Any]] = None,
        message: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        """Build and log an event from keyword fields."""
        self.log(AuditEvent(
            event_type=event_type,
            result=result,
            target_type=target_type,
            target_name=target_name,
            operation=operation,
            backend=backend,
            parameters=parameters or {},
            message=message,
            error=error,
        ))

    @contextmanager
    def correlation(self, operation: str) -> Iterator[str]:
        """Tag every event logged inside the block with one correlation id."""
        correlation_id = f"{operation}_{uuid.uuid4().hex[:8]}"
        self._correlations.append(correlation_id)
        try:
            yield correlation_id
        finally:
            self._correlations.pop()


_audit_logger: Optional[AuditLogger] = None


def get_audit_logger() -> AuditLogger:
    """Return the process audit logger, creating a default one if needed."""
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = AuditLogger()
    return _audit_logger


def configure_audit_logger(
    log_path: Optional[Path] = None,
    enabled: bool = True,
) -> AuditLogger:
    """Replace the process audit logger with one using these settings."""
    global _audit_logger
    _audit_logger = AuditLogger(log_path=log_path, enabled=enabled)
    return _audit_logger
