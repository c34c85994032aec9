"""
Step outcomes and orchestration metadata.
Every terminal path of a step produces exactly one Outcome. The
OutcomeComposer wraps it with pause/retry/usage metadata without
touching the step-specific fields.
"""
import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Optional
from pydantic import BaseModel
from .types import PauseBehavior, ProviderResult, UsageStats
logger = logging.getLogger(__name__)
FAILURE_TYPES = frozenset({"ERROR", "TIMEOUT"})
def _serialize(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: _serialize(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, (list, tuple)):
        return [_serialize(item) for item in value]
    if isinstance(value, dict):
        return {key: _serialize(item) for key, item in value.items()}
    return value
@dataclass(frozen=True)
class Outcome:
    """Base for tagged step outcomes; the tag is a class attribute."""
    type: ClassVar[str] = ""
    @property
    def is_failure(self) -> bool:
        """True for outcomes that should keep retry history."""
        return self.type in FAILURE_TYPES
    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type}
        for f in dataclasses.fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            data[f.name] = _serialize(value)
        return data
@dataclass(frozen=True)
class ErrorOutcome(Outcome):
    type: ClassVar[str] = "ERROR"
    error: str
    stack: Optional[str] = None
@dataclass(frozen=True)
class TimeoutOutcome(Outcome):
    type: ClassVar[str] = "TIMEOUT"
    error: str
    elapsed_seconds: float
@dataclass(frozen=True)
class CancelledOutcome(Outcome):
    type: ClassVar[str] = "CANCELLED"
    reason: str
@dataclass(frozen=True)
class OutcomeWithPause:
    """An outcome plus the metadata the workflow engine needs to continue."""
    outcome: Outcome
    pause_requested: bool = False
    retry_count: int = 0
    sdk_session_id: Optional[str] = None
    usage: Optional[UsageStats] = None
    skip_fallback_available: Optional[bool] = None
    @property
    def type(self) -> str:
        return self.outcome.type
    def with_retry_count(self, retry_count: int) -> "OutcomeWithPause":
        return dataclasses.replace(self, retry_count=retry_count)
    def to_dict(self) -> Dict[str, Any]:
        data = self.outcome.to_dict()
        data["pause_requested"] = self.pause_requested
        data["retry_count"] = self.retry_count
        if self.sdk_session_id is not None:
            data["sdk_session_id"] = self.sdk_session_id
        if self.usage is not None:
            data["usage"] = self.usage.to_dict()
        if self.skip_fallback_available is not None:
            data["skip_fallback_available"] = self.skip_fallback_available
        return data
class OutcomeComposer:
    """
    Attaches pause, retry and usage metadata to step outcomes.
    Args:
        pause_resolver: Object with get_pause_behavior(workflow_id)
    """
    def __init__(self, pause_resolver: Any):
        self.pause_resolver = pause_resolver
    def should_pause(self, workflow_id: str, is_gate_step: bool = False) -> bool:
        behavior = PauseBehavior(self.pause_resolver.get_pause_behavior(workflow_id))
        if behavior == PauseBehavior.AUTO_PAUSE:
            return True
        if behavior == PauseBehavior.CONTINUOUS:
            return False
        return is_gate_step
    def build_outcome_with_pause_info(
        self,
        outcome: Outcome,
        workflow_id: str,
        execution_result: Optional[ProviderResult] = None,
        skip_fallback_available: Optional[bool] = None,
        is_gate_step: bool = False,
    ) -> OutcomeWithPause:
        """
        Wrap a completed outcome.
        A completed outcome resets retry history, so retry_count is zero.
        """
        return OutcomeWithPause(
            outcome=outcome,
            pause_requested=self.should_pause(workflow_id, is_gate_step),
            retry_count=0,
            sdk_session_id=execution_result.session_id if execution_result else None,
            usage=execution_result.usage if execution_result else None,
            skip_fallback_available=skip_fallback_available,
        )
    @staticmethod
    def build_failure_outcome(
        outcome: Outcome,
        retry_count: int,
        skip_fallback_available: Optional[bool] = None,
    ) -> OutcomeWithPause:
        """Wrap a timeout, cancellation or validation failure without resetting retries."""
        return OutcomeWithPause(
            outcome=outcome,
            retry_count=retry_count,
            skip_fallback_available=skip_fallback_available,
        )
    @staticmethod
    def build_error_outcome_with_retry(
        message: str,
        retry_count: int,
        skip_fallback_available: Optional[bool] = None,
        stack: Optional[str] = None,
    ) -> OutcomeWithPause:
        """Wrap an error, carrying the current retry count."""
        return OutcomeWithPause(
            outcome=ErrorOutcome(error=message, stack=stack),
            retry_count=retry_count,
            skip_fallback_available=skip_fallback_available,
        )
