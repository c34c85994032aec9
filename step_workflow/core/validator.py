"""
Structured output validation for provider results.
Distinguishes provider-level failures (exhausted structured output retries,
non-success subtypes, missing payloads) from schema mismatches against a
step's pydantic output model. Failures are logged and returned, never raised.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Generic, Optional, Type, TypeVar
from pydantic import BaseModel, ValidationError
from .types import ProviderResult
logger = logging.getLogger(__name__)
ModelT = TypeVar("ModelT", bound=BaseModel)
MAX_STRUCTURED_OUTPUT_RETRIES_SUBTYPE = "error_max_structured_output_retries"
@dataclass
class ValidationResult(Generic[ModelT]):
    """Outcome of validating a provider result."""
    success: bool
    data: Optional[ModelT] = None
    error: Optional[str] = None
    @classmethod
    def ok(cls, data: ModelT) -> "ValidationResult[ModelT]":
        return cls(success=True, data=data)
    @classmethod
    def fail(cls, error: str) -> "ValidationResult[ModelT]":
        return cls(success=False, error=error)
@dataclass
class FieldValidationResult:
    success: bool
    error: Optional[str] = None
def format_validation_error(error: ValidationError) -> str:
    """Flatten pydantic errors into a single readable line."""
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "<root>"
        parts.append(f"{location}: {item.get('msg', 'invalid')}")
    return "; ".join(parts)
class StructuredOutputValidator(Generic[ModelT]):
    """
    Validates provider results against a step's output model.
    Args:
        model: Pydantic model describing the structured output
        step_name: Used in log context only
    """
    def __init__(self, model: Type[ModelT], step_name: str = "step"):
        self.model = model
        self.step_name = step_name
    @property
    def json_schema(self) -> Dict[str, Any]:
        return self.model.model_json_schema()
    def validate(self, result: ProviderResult, session_id: str) -> ValidationResult[ModelT]:
        """
        Validate a provider result.
        Checks, in order: exhausted structured output retries, non-success
        subtype, missing structured output, then schema conformance.
        """
        if result.subtype == MAX_STRUCTURED_OUTPUT_RETRIES_SUBTYPE:
            error = (
                "Agent could not produce valid structured output: "
                f"{', '.join(result.errors) or 'unknown error'}"
            )
            self._log_failure(session_id, error, result)
            return ValidationResult.fail(error)
        if result.subtype != "success":
            detail = ", ".join(result.errors) or "unknown error"
            error = f"Agent execution failed: {result.subtype} - {detail}"
            self._log_failure(session_id, error, result)
            return ValidationResult.fail(error)
        if result.structured_output is None:
            error = "Agent completed successfully but no structured output was returned"
            self._log_failure(session_id, error, result)
            return ValidationResult.fail(error)
        try:
            data = self.model.model_validate(result.structured_output)
        except ValidationError as e:
            error = f"Structured output validation failed: {format_validation_error(e)}"
            self._log_failure(session_id, error, result)
            return ValidationResult.fail(error)
        logger.debug(f"[{self.step_name}] Structured output validated for session {session_id}")
        return ValidationResult.ok(data)
    def validate_field(self, data: Any, field_name: str) -> FieldValidationResult:
        """
        Check that a field is present and, for lists and strings, non-empty.
        Works on dicts and on model instances.
        """
        if isinstance(data, BaseModel):
            value = getattr(data, field_name, None)
        elif isinstance(data, dict):
            value = data.get(field_name)
        else:
            value = None
        if value is None:
            return FieldValidationResult(False, f'Missing required field: "{field_name}"')
        if isinstance(value, (list, tuple)) and len(value) == 0:
            return FieldValidationResult(False, f'Required field "{field_name}" is an empty array')
        if isinstance(value, str) and not value.strip():
            return FieldValidationResult(False, f'Required field "{field_name}" is an empty string')
        return FieldValidationResult(True)
    def _log_failure(self, session_id: str, error: str, result: ProviderResult) -> None:
        logger.warning(
            f"[{self.step_name}] Structured output rejected for session {session_id}: {error} "
            f"(subtype={result.subtype}, has_output={result.structured_output is not None})"
        )
