"""
Planning step - produce an implementation plan and iterate on user feedback.
A generated plan keeps its session registered in the awaiting_review phase.
Feedback regenerates the plan in the same session with earlier iterations
included in the prompt.
"""
import dataclasses
from dataclasses import dataclass, field
from typing import ClassVar, List, Literal, Optional
from pydantic import BaseModel, Field
from ..core.outcomes import Outcome
from ..core.types import ProviderResult, Session, StepPhase
from ..core.validator import StructuredOutputValidator
from .base import StepOptions, StepStrategy
from .discovery import DiscoveredFile
class PlanStep(BaseModel):
    order: int = Field(ge=1)
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    files: List[str] = Field(min_length=1)
    success_criteria: List[str] = Field(default_factory=list)
    validation_commands: List[str] = Field(default_factory=list)
class ImplementationPlan(BaseModel):
    summary: str = Field(min_length=1)
    approach: str = Field(min_length=1)
    estimated_complexity: Literal["low", "medium", "high"]
    risks: Optional[List[str]] = None
    steps: List[PlanStep] = Field(min_length=1, max_length=20)
class PlanningAgentOutput(BaseModel):
    type: Literal["PLAN_GENERATED", "CANNOT_PLAN"]
    plan: Optional[ImplementationPlan] = None
    reason: Optional[str] = None
@dataclass(frozen=True)
class PlanGeneratedOutcome(Outcome):
    type: ClassVar[str] = "PLAN_GENERATED"
    plan: ImplementationPlan
@dataclass(frozen=True)
class CannotPlanOutcome(Outcome):
    type: ClassVar[str] = "CANNOT_PLAN"
    reason: str
@dataclass
class PlanIteration:
    version: int
    plan: ImplementationPlan
    feedback: Optional[str] = None
    edited_by_user: bool = False
@dataclass
class PlanningOptions(StepOptions):
    refined_feature_request: str = ""
    discovered_files: List[DiscoveredFile] = field(default_factory=list)
    previous_iterations: List[PlanIteration] = field(default_factory=list)
    user_feedback: Optional[str] = None
def format_iterations(iterations: List[PlanIteration]) -> str:
    if not iterations:
        return ""
    lines = ["", "", "## Previous Plan Iterations", ""]
    for iteration in iterations:
        edited = " (User Edited)" if iteration.edited_by_user else ""
        lines.append(f"### Version {iteration.version}{edited}")
        lines.append("")
        lines.append(f"**Summary:** {iteration.plan.summary}")
        lines.append(f"**Approach:** {iteration.plan.approach}")
        lines.append(f"**Complexity:** {iteration.plan.estimated_complexity}")
        lines.append(f"**Steps:** {', '.join(s.title for s in iteration.plan.steps)}")
        if iteration.feedback:
            lines.append("")
            lines.append(f"**User Feedback:** {iteration.feedback}")
        lines.append("")
    return "\n".join(lines)
class PlanningStep(StepStrategy):
    step_name = "planning"
    display_name = "Planning"
    output_model = PlanningAgentOutput
    skip_fallback_available = False
    is_gate_step = True
    supports_feedback = True
    def build_prompt(self, options: PlanningOptions, session: Session) -> str:
        if options.discovered_files:
            files_context = "\n".join(
                f"- `{f.file_path}` [{f.priority}]: {f.relevance_explanation}"
                for f in options.discovered_files
            )
        else:
            files_context = "No files discovered yet."
        feedback_context = ""
        if options.user_feedback:
            feedback_context = (
                f"\n\n## User Feedback on Previous Plan\n\n{options.user_feedback}\n\n"
                "Revise the plan based on this feedback. Address the user's concerns "
                "while maintaining plan quality."
            )
        return (
            "Generate a structured implementation plan for the following feature request.\n\n"
            f"## Refined Feature Request\n\n{options.refined_feature_request}\n\n"
            "## Discovered Files\n\n"
            "The following files have been identified as relevant to this feature:\n\n"
            f"{files_context}"
            f"{format_iterations(options.previous_iterations)}{feedback_context}\n\n"
            "## Your Task\n\n"
            "Set type to PLAN_GENERATED and return a plan with a one or two sentence summary, "
            "the architectural approach, an estimated complexity (low, medium, high), optional "
            "risks and ordered steps. Each step needs a title, a description, the files it "
            "touches, success criteria and validation commands that can run in this project. "
            "Order steps by dependency and keep each one independently verifiable. "
            "If no sensible plan is possible, set type to CANNOT_PLAN and explain why in reason."
        )
    def process_structured_output(
        self,
        result: ProviderResult,
        session: Session,
        validator: StructuredOutputValidator,
    ) -> Outcome:
        validation = validator.validate(result, session.session_id)
        if not validation.success:
            return self.validation_error(validation.error)
        output: PlanningAgentOutput = validation.data
        if output.type == "CANNOT_PLAN":
            check = validator.validate_field(output, "reason")
            if not check.success:
                return self.validation_error(check.error)
            return CannotPlanOutcome(reason=output.reason)
        check = validator.validate_field(output, "plan")
        if not check.success:
            return self.validation_error(check.error)
        plan = output.plan.model_copy(update={"steps": sorted(output.plan.steps, key=lambda s: s.order)})
        session.state["current_plan"] = plan
        return PlanGeneratedOutcome(plan=plan)
    def execution_phase(self, options: PlanningOptions) -> StepPhase:
        return StepPhase.REGENERATING if options.user_feedback else StepPhase.EXECUTING
    def completion_phase(self, outcome: Outcome) -> StepPhase:
        if isinstance(outcome, PlanGeneratedOutcome):
            return StepPhase.AWAITING_REVIEW
        return StepPhase.COMPLETE
    def retains_session(self, outcome: Outcome) -> bool:
        return isinstance(outcome, PlanGeneratedOutcome)
    def apply_feedback(self, session: Session, feedback: str) -> None:
        options: PlanningOptions = session.options
        iterations = list(options.previous_iterations)
        current = session.state.get("current_plan")
        if current is not None:
            iterations.append(PlanIteration(version=len(iterations) + 1, plan=current, feedback=feedback))
        session.options = dataclasses.replace(options, previous_iterations=iterations, user_feedback=feedback)
    def extract_state(self, session: Session) -> dict:
        plan = session.state.get("current_plan")
        options: PlanningOptions = session.options
        return {
            "current_plan": plan.model_dump() if plan is not None else None,
            "iteration_count": len(options.previous_iterations) if options else 0,
        }
    def build_max_retries_message(self, max_retries: int) -> str:
        return f"Maximum retry attempts ({max_retries}) reached. Please try again later."
