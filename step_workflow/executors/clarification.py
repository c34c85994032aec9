"""
Clarification step - assess a feature request and ask targeted questions.
The agent scores the request's clarity and either asks the user 2-4
multiple choice questions or recommends skipping clarification.
"""
from dataclasses import dataclass
from typing import ClassVar, List, Literal, Optional
from pydantic import BaseModel, Field
from ..core.outcomes import Outcome
from ..core.types import ProviderResult, Session, StepPhase
from ..core.validator import StructuredOutputValidator
from .base import StepOptions, StepStrategy
DEFAULT_SKIP_REASON = "User skipped clarification"
class ClarificationAssessment(BaseModel):
    score: int = Field(ge=1, le=5)
    reason: str = Field(min_length=1)
class ClarificationOption(BaseModel):
    label: str = Field(min_length=1)
    description: str
class ClarificationQuestion(BaseModel):
    header: str = Field(min_length=1)
    question: str = Field(min_length=1)
    options: List[ClarificationOption] = Field(min_length=2, max_length=4)
class ClarificationAgentOutput(BaseModel):
    """Flat output schema; `type` selects which optional fields must be set."""
    type: Literal["QUESTIONS_FOR_USER", "SKIP_CLARIFICATION"]
    assessment: ClarificationAssessment
    questions: Optional[List[ClarificationQuestion]] = None
    reason: Optional[str] = None
@dataclass(frozen=True)
class QuestionsForUserOutcome(Outcome):
    type: ClassVar[str] = "QUESTIONS_FOR_USER"
    assessment: ClarificationAssessment
    questions: List[ClarificationQuestion]
@dataclass(frozen=True)
class SkipClarificationOutcome(Outcome):
    type: ClassVar[str] = "SKIP_CLARIFICATION"
    assessment: ClarificationAssessment
    reason: str
@dataclass
class ClarificationOptions(StepOptions):
    feature_request: str = ""
class ClarificationStep(StepStrategy):
    step_name = "clarification"
    display_name = "Clarification"
    output_model = ClarificationAgentOutput
    skip_fallback_available = True
    def build_prompt(self, options: ClarificationOptions, session: Session) -> str:
        return f"""Analyze the following feature request for clarity and completeness.
## Feature Request
{options.feature_request}
## Your Task
1. **Assess Clarity**: Score the feature request from 1-5 based on how clear and complete it is:
   - Score 1-2: Very vague, missing critical details, multiple interpretations possible
   - Score 3: Has some details but lacks specifics about scope or approach
   - Score 4-5: Clear scope, references specific patterns/files, includes technical details
2. **Decide the Outcome**:
   - If score >= 4: Set type to "SKIP_CLARIFICATION" and explain why in the reason field.
   - If score < 4: Set type to "QUESTIONS_FOR_USER" and generate targeted questions.
3. **If Generating Questions** (for scores 1-3):
   - Create 2-4 focused questions that will meaningfully impact implementation
   - Each question needs a short header (e.g., "Storage", "Scope", "UI Pattern")
   - Provide 2-4 concrete options per question with descriptions
   - Reference existing codebase patterns when relevant
Gather just enough information to enable high-quality implementation planning."""
    def process_structured_output(
        self,
        result: ProviderResult,
        session: Session,
        validator: StructuredOutputValidator,
    ) -> Outcome:
        validation = validator.validate(result, session.session_id)
        if not validation.success:
            return self.validation_error(validation.error)
        output: ClarificationAgentOutput = validation.data
        if output.type == "SKIP_CLARIFICATION":
            check = validator.validate_field(output, "reason")
            if not check.success:
                return self.validation_error(check.error)
            return SkipClarificationOutcome(assessment=output.assessment, reason=output.reason)
        check = validator.validate_field(output, "questions")
        if not check.success:
            return self.validation_error(check.error)
        session.state["questions"] = output.questions
        return QuestionsForUserOutcome(assessment=output.assessment, questions=output.questions)
    def completion_phase(self, outcome: Outcome) -> StepPhase:
        if isinstance(outcome, QuestionsForUserOutcome):
            return StepPhase.WAITING_FOR_USER
        return StepPhase.COMPLETE
    def extract_state(self, session: Session) -> dict:
        questions = session.state.get("questions") or []
        return {"questions": [q.model_dump() for q in questions]}
    def build_skipped_outcome(self, reason: Optional[str]) -> Outcome:
        reason = reason or DEFAULT_SKIP_REASON
        return SkipClarificationOutcome(
            assessment=ClarificationAssessment(score=5, reason=reason),
            reason=reason,
        )
