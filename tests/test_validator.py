"""Tests for StructuredOutputValidator."""
from typing import List
import pytest
from pydantic import BaseModel, Field
from step_workflow.core.types import ProviderResult
from step_workflow.core.validator import StructuredOutputValidator
class SampleOutput(BaseModel):
    title: str
    items: List[str] = Field(min_length=1)
@pytest.fixture
def validator():
    return StructuredOutputValidator(SampleOutput, "sample")
class TestValidate:
    """Test validate() ordering and messages."""
    def test_max_structured_output_retries_names_errors(self, validator):
        result = ProviderResult(
            subtype="error_max_structured_output_retries",
            errors=["parse error 1", "parse error 2"],
        )
        validation = validator.validate(result, "session-1")
        assert validation.success is False
        assert validation.error.startswith("Agent could not produce valid structured output")
        assert "parse error 1" in validation.error
        assert "parse error 2" in validation.error
    @pytest.mark.parametrize("subtype", ["error_during_execution", "error_max_turns", "error_max_budget_usd"])
    def test_non_success_subtype(self, validator, subtype):
        result = ProviderResult(subtype=subtype, errors=["boom"], structured_output={"title": "x", "items": ["a"]})
        validation = validator.validate(result, "session-1")
        assert validation.success is False
        assert validation.error == f"Agent execution failed: {subtype} - boom"
    def test_missing_structured_output(self, validator):
        validation = validator.validate(ProviderResult(subtype="success"), "session-1")
        assert validation.success is False
        assert "no structured output" in validation.error
    def test_schema_mismatch(self, validator):
        result = ProviderResult(subtype="success", structured_output={"title": "x", "items": []})
        validation = validator.validate(result, "session-1")
        assert validation.success is False
        assert validation.error.startswith("Structured output validation failed:")
        assert "items" in validation.error
    def test_valid_payload_is_returned_unchanged(self, validator):
        payload = {"title": "Plan", "items": ["a", "b"]}
        validation = validator.validate(ProviderResult(subtype="success", structured_output=payload), "session-1")
        assert validation.success is True
        assert validation.error is None
        assert validation.data.model_dump() == payload
    def test_never_raises_on_garbage(self, validator):
        result = ProviderResult(subtype="success", structured_output="not an object")
        validation = validator.validate(result, "session-1")
        assert validation.success is False
    def test_json_schema_comes_from_model(self, validator):
        schema = validator.json_schema
        assert schema["type"] == "object"
        assert set(schema["required"]) == {"title", "items"}
class TestValidateField:
    """Test validate_field() messages."""
    def test_missing_field(self, validator):
        check = validator.validate_field({"title": "x"}, "items")
        assert check.success is False
        assert check.error == 'Missing required field: "items"'
    def test_empty_array(self, validator):
        check = validator.validate_field({"items": []}, "items")
        assert check.error == 'Required field "items" is an empty array'
    def test_whitespace_string(self, validator):
        check = validator.validate_field({"title": "   "}, "title")
        assert check.error == 'Required field "title" is an empty string'
    def test_model_instance(self, validator):
        model = SampleOutput(title="x", items=["a"])
        assert validator.validate_field(model, "title").success is True
        assert validator.validate_field(model, "missing").success is False
