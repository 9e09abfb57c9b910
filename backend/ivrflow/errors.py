"""Exception hierarchy for flow authoring operations."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ivrflow.models.validation import FlowValidation


class FlowStudioError(Exception):
    """Base exception for flow authoring errors."""

    status_code = 400

    def __init__(self, message: str, retriable: bool = False):
        super().__init__(message)
        self.message = message
        self.retriable = retriable


class NotFoundError(FlowStudioError):
    """Routing, segment, transition, change set or version not found."""

    status_code = 404


class ConflictError(FlowStudioError):
    """A uniqueness rule would be violated (duplicate segment, open draft, ...)."""

    status_code = 409


class FlowValidationError(FlowStudioError):
    """The flow has structural errors and was not persisted."""

    status_code = 400

    def __init__(self, message: str, validation: FlowValidation):
        super().__init__(message)
        self.validation = validation


class InvalidHooksError(FlowStudioError):
    """Segment hooks do not match the segment type's hooks schema."""

    status_code = 400

    def __init__(self, message: str, segment_name: str):
        super().__init__(message)
        self.segment_name = segment_name


class StateTransitionError(FlowStudioError):
    """Illegal change set status transition.

    Not retriable: the change set has to be inspected by an operator.
    """

    status_code = 409

    def __init__(self, current: str, target: str, allowed: list[str] | None = None):
        allowed_text = ", ".join(allowed) if allowed else "none"
        super().__init__(
            f"Invalid state transition from '{current}' to '{target}'. "
            f"Allowed transitions: {allowed_text}"
        )
        self.current = current
        self.target = target


class ConcurrentModificationError(FlowStudioError):
    """Another writer changed the change set between read and write."""

    status_code = 409

    def __init__(self, message: str):
        super().__init__(message, retriable=True)


class PersistenceError(FlowStudioError):
    """The database rejected the transaction; nothing was written."""

    status_code = 503

    def __init__(self, message: str):
        super().__init__(message, retriable=True)
