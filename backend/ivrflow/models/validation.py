"""Pydantic models for flow validation reports."""

from enum import Enum

from pydantic import BaseModel
from pydantic import Field as PydanticField


class IssueType(str, Enum):
    """Codes for validation errors and warnings."""

    # Errors
    MISSING_INIT = "missing_init"
    MISSING_TARGET = "missing_target"
    INVALID_CONTEXT_OVERRIDE_TARGET = "invalid_context_override_target"
    INVALID_DEFAULT_TARGET = "invalid_default_target"
    DUPLICATE_TRANSITION = "duplicate_transition"
    DUPLICATE_SEGMENT = "duplicate_segment"
    UNKNOWN_SEGMENT_TYPE = "unknown_segment_type"
    EMPTY_FLOW = "empty_flow"

    # Warnings
    TERMINAL_WITH_TRANSITIONS = "terminal_with_transitions"
    UNREACHABLE_SEGMENT = "unreachable_segment"
    CIRCULAR_REFERENCE = "circular_reference"
    CONTEXT_KEY_WITHOUT_DEFAULT = "context_key_without_default"
    INVALID_ROUTING_ID_FORMAT = "invalid_routing_id_format"


class ValidationIssue(BaseModel):
    """A single validation error or warning.

    ``segment`` and ``field`` together locate the issue inside the flow.
    """

    type: IssueType
    segment: str | None = None
    field: str | None = None
    message: str
    suggestion: str | None = None


class FlowValidation(BaseModel):
    """Validation report for a flow. Errors block save/publish, warnings never do."""

    is_valid: bool = PydanticField(alias="isValid")
    errors: list[ValidationIssue] = []
    warnings: list[ValidationIssue] = []

    model_config = {"populate_by_name": True}

    @classmethod
    def from_issues(
        cls, errors: list[ValidationIssue], warnings: list[ValidationIssue]
    ) -> "FlowValidation":
        return cls(is_valid=not errors, errors=errors, warnings=warnings)

    def merged_with(self, other: "FlowValidation") -> "FlowValidation":
        """Combine two reports; the result is valid only if both are."""
        return FlowValidation.from_issues(
            self.errors + other.errors, self.warnings + other.warnings
        )

    def error_types(self) -> list[IssueType]:
        return [e.type for e in self.errors]

    def warning_types(self) -> list[IssueType]:
        return [w.type for w in self.warnings]
