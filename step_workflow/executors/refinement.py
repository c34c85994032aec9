"""Refinement step - fold clarification answers into a refined feature request."""
from dataclasses import dataclass, field
from typing import ClassVar, Dict, List, Optional, Union
from pydantic import BaseModel, Field
from ..core.outcomes import Outcome
from ..core.types import ProviderResult, Session
from ..core.validator import StructuredOutputValidator
from .base import StepOptions, StepStrategy
from .clarification import ClarificationAssessment, ClarificationQuestion
class RefinementAgentOutput(BaseModel):
    refined_text: str = Field(min_length=1)
@dataclass(frozen=True)
class RefinementSuccessOutcome(Outcome):
    type: ClassVar[str] = "SUCCESS"
    refined_text: str
@dataclass
class ClarificationAnswer:
    """
    A user's answer to one clarification question.
    kind is "text", "radio" or "checkbox"; `other` holds free-text additions.
    """
    kind: str
    text: Optional[str] = None
    selected: Union[str, List[str], None] = None
    other: Optional[str] = None
    def render(self) -> str:
        if self.kind == "text":
            return self.text or "No response"
        if self.kind == "radio":
            if self.selected and self.other:
                return f"{self.selected} (Additional: {self.other})"
            return self.selected or self.other or "No response"
        if self.kind == "checkbox":
            selections = ", ".join(self.selected or [])
            return f"{selections} (Additional: {self.other})" if self.other else selections
        return "No response"
@dataclass
class ClarificationContext:
    questions: List[ClarificationQuestion] = field(default_factory=list)
    # Keyed by question index as a string
    answers: Dict[str, ClarificationAnswer] = field(default_factory=dict)
    assessment: Optional[ClarificationAssessment] = None
@dataclass
class RefinementOptions(StepOptions):
    feature_request: str = ""
    clarification_context: ClarificationContext = field(default_factory=ClarificationContext)
def format_clarification_pairs(context: ClarificationContext) -> str:
    """Render answered questions as Q/A blocks; unanswered ones are left out."""
    pairs = []
    for index, question in enumerate(context.questions):
        answer = context.answers.get(str(index))
        if answer is None:
            continue
        pairs.append(f"**{question.header}**\nQ: {question.question}\nA: {answer.render()}")
    return "\n\n".join(pairs)
class RefinementStep(StepStrategy):
    step_name = "refinement"
    display_name = "Refinement"
    output_model = RefinementAgentOutput
    skip_fallback_available = True
    def build_prompt(self, options: RefinementOptions, session: Session) -> str:
        context = options.clarification_context
        assessment = ""
        if context.assessment is not None:
            assessment = (
                f"\n\n## Initial Assessment\n\nClarity Score: {context.assessment.score}/5\n"
                f"Reason: {context.assessment.reason}"
            )
        return (
            "You are refining a feature request based on user-provided clarifications.\n\n"
            f"## Original Feature Request\n\n{options.feature_request}{assessment}\n\n"
            "## Clarification Context\n\n"
            "The following questions were asked to clarify the feature request, "
            "along with the user's answers:\n\n"
            f"{format_clarification_pairs(context)}\n\n"
            "## Your Task\n\n"
            "Produce a refined feature request that incorporates all clarifications, "
            "resolves ambiguities with the specific answers, reads as a single coherent "
            "description rather than a list of Q&A, preserves the user's intent and is "
            "detailed enough for implementation planning. Return it in refined_text."
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
        check = validator.validate_field(validation.data, "refined_text")
        if not check.success:
            return self.validation_error(check.error)
        refined_text = validation.data.refined_text.strip()
        session.state["refined_text"] = refined_text
        return RefinementSuccessOutcome(refined_text=refined_text)
