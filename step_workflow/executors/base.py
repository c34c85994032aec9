"""
Step Strategy - extension points for a concrete step type.
The orchestration engine is parameterized over a strategy: the strategy
decides what to ask the agent and how to read its answer, the engine
owns the session lifecycle, timeouts, retries and outcome metadata.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Optional, Type
from pydantic import BaseModel
from ..core.outcomes import CancelledOutcome, ErrorOutcome, Outcome, TimeoutOutcome
from ..core.types import ProviderResult, Session, StepPhase
from ..core.validator import StructuredOutputValidator
@dataclass
class StepOptions:
    """Options common to every step start request."""
    workflow_id: str
    agent_id: str
    repository_path: Optional[str] = None
    # Overrides the configured timeout for this step
    timeout_seconds: Optional[float] = None
class StepStrategy(ABC):
    """
    Abstract base class for step types.
    Subclasses must set:
    - step_name: short identifier used for config, logs and audit events
    - display_name: label used in user-facing messages
    - output_model: pydantic model of the structured output
    and implement build_prompt() and process_structured_output().
    """
    step_name: ClassVar[str] = "step"
    display_name: ClassVar[str] = "Step"
    output_model: ClassVar[Type[BaseModel]]
    # None means the step does not advertise a skip path
    skip_fallback_available: ClassVar[Optional[bool]] = None
    is_gate_step: ClassVar[bool] = False
    supports_feedback: ClassVar[bool] = False
    @abstractmethod
    def build_prompt(self, options: Any, session: Session) -> str:
        """
        Build the prompt sent to the agent.
        Args:
            options: Step-specific StepOptions subclass
            session: The active session (holds working state)
        Returns:
            Prompt text
        """
        ...
    @abstractmethod
    def process_structured_output(
        self,
        result: ProviderResult,
        session: Session,
        validator: StructuredOutputValidator,
    ) -> Outcome:
        """
        Turn a provider result into a step outcome.
        Validation failures become an ErrorOutcome; they are not raised.
        """
        ...
    def create_session(self, options: StepOptions) -> Session:
        return Session(workflow_id=options.workflow_id, options=options)
    def extract_state(self, session: Session) -> Dict[str, Any]:
        """Step-specific working state exposed through get_state()."""
        return dict(session.state)
    def execution_phase(self, options: Any) -> StepPhase:
        """Phase entered once the agent is loaded."""
        return StepPhase.EXECUTING
    def completion_phase(self, outcome: Outcome) -> StepPhase:
        """Phase a session enters after a non-failure outcome."""
        return StepPhase.COMPLETE
    def retains_session(self, outcome: Outcome) -> bool:
        """Whether the session stays registered after this outcome."""
        return False
    def apply_feedback(self, session: Session, feedback: str) -> None:
        """
        Fold reviewer feedback into session.options before regeneration.
        Only called for steps with supports_feedback set; the default keeps
        the options unchanged.
        """
    def build_cancelled_outcome(self, session: Session) -> Outcome:
        return CancelledOutcome(reason=f"User cancelled {self.display_name.lower()}")
    def build_timeout_outcome(self, elapsed_seconds: float) -> Outcome:
        return TimeoutOutcome(
            error=f"{self.display_name} timed out after {elapsed_seconds:g} seconds",
            elapsed_seconds=elapsed_seconds,
        )
    def build_not_found_outcome(self) -> Outcome:
        return ErrorOutcome(error="Session not found")
    def build_max_retries_message(self, max_retries: int) -> str:
        return (
            f"Maximum retry attempts ({max_retries}) reached. "
            f"Please skip {self.display_name.lower()} or try again later."
        )
    def build_skipped_outcome(self, reason: Optional[str]) -> Optional[Outcome]:
        """Outcome returned by a manual skip, or None if skipping is unsupported."""
        return None
    @staticmethod
    def validation_error(message: Optional[str]) -> ErrorOutcome:
        return ErrorOutcome(error=message or "Structured output validation failed")
