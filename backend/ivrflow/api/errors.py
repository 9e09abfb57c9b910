"""Translation of domain errors into HTTP responses."""

from typing import Any

from fastapi import HTTPException

from ivrflow.errors import FlowStudioError, FlowValidationError, InvalidHooksError


def to_http_exception(error: FlowStudioError) -> HTTPException:
    """Map a FlowStudioError to an HTTPException with a structured detail."""
    detail: dict[str, Any] = {"message": error.message, "retriable": error.retriable}
    if isinstance(error, FlowValidationError):
        detail["errors"] = [e.model_dump(mode="json") for e in error.validation.errors]
        detail["warnings"] = [w.model_dump(mode="json") for w in error.validation.warnings]
    elif isinstance(error, InvalidHooksError):
        detail["segment"] = error.segment_name
    return HTTPException(status_code=error.status_code, detail=detail)
