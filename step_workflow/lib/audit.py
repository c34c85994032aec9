"""
Step audit trail.
Structured audit events keyed by session id. Sink failures are logged
and never affect the step outcome.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Protocol
logger = logging.getLogger(__name__)
class AuditSeverity(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
_LOG_LEVELS = {
    AuditSeverity.DEBUG: logging.DEBUG,
    AuditSeverity.INFO: logging.INFO,
    AuditSeverity.WARNING: logging.WARNING,
    AuditSeverity.ERROR: logging.ERROR,
}
@dataclass
class AuditEntry:
    """A single audit event."""
    event_type: str
    severity: AuditSeverity
    message: str
    session_id: str
    workflow_id: str
    step_name: str
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)
class AuditSink(Protocol):
    def log(self, entry: AuditEntry) -> None:
        ...
class LoggingAuditSink:
    """Writes audit entries to a dedicated logger."""
    def __init__(self, logger_name: str = "step_workflow.audit"):
        self._logger = logging.getLogger(logger_name)
    def log(self, entry: AuditEntry) -> None:
        self._logger.log(
            _LOG_LEVELS[entry.severity],
            f"[{entry.event_type}] {entry.message} "
            f"(workflow={entry.workflow_id}, session={entry.session_id}, data={entry.data})",
        )
class StepAuditLogger:
    """
    Audit helper bound to one step type.
    Event names are prefixed with the step name, e.g. ``planning_started``.
    """
    def __init__(self, step_name: str, sink: Optional[AuditSink] = None):
        self.step_name = step_name
        self.sink = sink or LoggingAuditSink()
    def record(
        self,
        event: str,
        severity: AuditSeverity,
        session_id: str,
        workflow_id: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        entry = AuditEntry(
            event_type=f"{self.step_name}_{event}",
            severity=severity,
            message=message,
            session_id=session_id,
            workflow_id=workflow_id,
            step_name=self.step_name,
            data=dict(data or {}),
        )
        try:
            self.sink.log(entry)
        except Exception as e:
            logger.warning(f"Audit sink failed for {entry.event_type}: {e}")
    def started(self, session_id: str, workflow_id: str, data: Optional[Dict[str, Any]] = None) -> None:
        self.record("started", AuditSeverity.INFO, session_id, workflow_id, f"{self.step_name} step started", data)
    def agent_loaded(self, session_id: str, workflow_id: str, agent_id: str, agent_name: str) -> None:
        self.record(
            "agent_loaded", AuditSeverity.DEBUG, session_id, workflow_id,
            f"Loaded agent {agent_name}", {"agent_id": agent_id, "agent_name": agent_name},
        )
    def exploring(self, session_id: str, workflow_id: str, data: Optional[Dict[str, Any]] = None) -> None:
        self.record("exploring", AuditSeverity.DEBUG, session_id, workflow_id, "Agent execution started", data)
    def completed(self, session_id: str, workflow_id: str, outcome_type: str, data: Optional[Dict[str, Any]] = None) -> None:
        self.record(
            "completed", AuditSeverity.INFO, session_id, workflow_id,
            f"{self.step_name} step completed with {outcome_type}",
            {"outcome_type": outcome_type, **(data or {})},
        )
    def error(self, session_id: str, workflow_id: str, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        self.record("error", AuditSeverity.ERROR, session_id, workflow_id, message, data)
    def timeout(self, session_id: str, workflow_id: str, elapsed_seconds: float) -> None:
        self.record(
            "timeout", AuditSeverity.WARNING, session_id, workflow_id,
            f"{self.step_name} step timed out after {elapsed_seconds} seconds",
            {"elapsed_seconds": elapsed_seconds},
        )
    def cancelled(self, session_id: str, workflow_id: str, reason: str) -> None:
        self.record("cancelled", AuditSeverity.INFO, session_id, workflow_id, reason)
    def retry_started(self, session_id: str, workflow_id: str, retry_count: int, delay_ms: int) -> None:
        self.record(
            "retry_started", AuditSeverity.INFO, session_id, workflow_id,
            f"Retry attempt {retry_count} after {delay_ms}ms",
            {"retry_count": retry_count, "delay_ms": delay_ms},
        )
    def retry_limit_reached(self, session_id: str, workflow_id: str, retry_count: int, max_retries: int) -> None:
        self.record(
            "retry_limit_reached", AuditSeverity.WARNING, session_id, workflow_id,
            f"Retry limit reached ({retry_count}/{max_retries})",
            {"retry_count": retry_count, "max_retries": max_retries},
        )
    def skipped(self, session_id: str, workflow_id: str, reason: str) -> None:
        self.record("skipped", AuditSeverity.INFO, session_id, workflow_id, reason)
