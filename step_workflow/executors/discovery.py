"""
File discovery step - find the files relevant to a refined feature request.
A cancelled run reports how many files the session had recorded.
"""
from dataclasses import dataclass
from typing import ClassVar, List, Literal
from pydantic import BaseModel, Field, field_validator
from ..core.outcomes import Outcome
from ..core.types import ProviderResult, Session
from ..core.validator import StructuredOutputValidator
from .base import StepOptions, StepStrategy
class DiscoveredFile(BaseModel):
    file_path: str = Field(min_length=1)
    priority: Literal["high", "medium", "low"]
    action: Literal["create", "modify", "delete", "reference"]
    relevance_explanation: str = Field(min_length=1)
    role: str = Field(min_length=1)
    @field_validator("file_path")
    @classmethod
    def normalize_path(cls, v: str) -> str:
        """Store paths relative to the repository root."""
        v = v.strip()
        return v[2:] if v.startswith("./") else v
class DiscoveryAgentOutput(BaseModel):
    discovered_files: List[DiscoveredFile]
    summary: str = Field(min_length=1)
@dataclass(frozen=True)
class DiscoverySuccessOutcome(Outcome):
    type: ClassVar[str] = "SUCCESS"
    discovered_files: List[DiscoveredFile]
    summary: str
    total_count: int
@dataclass(frozen=True)
class DiscoveryCancelledOutcome(Outcome):
    type: ClassVar[str] = "CANCELLED"
    reason: str
    partial_count: int
@dataclass
class DiscoveryOptions(StepOptions):
    refined_feature_request: str = ""
PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}
class FileDiscoveryStep(StepStrategy):
    step_name = "discovery"
    display_name = "File discovery"
    output_model = DiscoveryAgentOutput
    skip_fallback_available = True
    def build_prompt(self, options: DiscoveryOptions, session: Session) -> str:
        return (
            "Analyze the following refined feature request and discover all files in this "
            "codebase that are relevant to implementing it.\n\n"
            f"## Refined Feature Request\n\n{options.refined_feature_request}\n\n"
            "## Your Task\n\n"
            "1. Explore the codebase with the available tools (Read, Grep, Glob).\n"
            "2. For each relevant file report its path relative to the repository root, "
            "a priority (high, medium, low), an action (create, modify, delete, reference), "
            "its role and why it matters for the feature.\n"
            "3. Consider every layer: schemas, handlers, UI, utilities, types, tests and configuration.\n"
            "4. Follow the existing naming conventions and directory structure.\n"
            "5. Finish with a brief summary of the scope of changes."
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
        check = validator.validate_field(validation.data, "discovered_files")
        if not check.success:
            return self.validation_error(check.error)
        # Later duplicates of a path are dropped
        files: List[DiscoveredFile] = []
        seen = set()
        for discovered in validation.data.discovered_files:
            if discovered.file_path in seen:
                continue
            seen.add(discovered.file_path)
            files.append(discovered)
        files.sort(key=lambda f: PRIORITY_ORDER[f.priority])
        session.state["discovered_files"] = files
        return DiscoverySuccessOutcome(
            discovered_files=files,
            summary=validation.data.summary,
            total_count=len(files),
        )
    def extract_state(self, session: Session) -> dict:
        files = session.state.get("discovered_files") or []
        return {"discovered_files": [f.model_dump() for f in files], "partial_count": len(files)}
    def build_cancelled_outcome(self, session: Session) -> Outcome:
        return DiscoveryCancelledOutcome(
            reason="User cancelled file discovery",
            partial_count=len(session.state.get("discovered_files") or []),
        )
