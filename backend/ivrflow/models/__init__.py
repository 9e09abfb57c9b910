"""Pydantic models for IVR Flow Studio."""

from ivrflow.models.changeset import (
    ALLOWED_TRANSITIONS,
    EDITABLE_STATUSES,
    OPEN_STATUSES,
    PUBLISHED,
    ChangeSet,
    ChangeSetCreate,
    ChangeSetStatus,
    DraftScope,
    PublishedScope,
    Scope,
    can_transition,
    scope_for,
)
from ivrflow.models.flow import (
    CONTEXT_DEFAULT,
    DEFAULT_RESULT,
    FLOW_DOCUMENT_VERSION,
    CompleteFlow,
    ConfigItem,
    FlowDocument,
    FlowImportRequest,
    FlowSnapshot,
    ImportPreview,
    ImportResult,
    PublishResult,
    SaveFlowResult,
    SegmentSnapshot,
    Transition,
    TransitionOutcome,
    TransitionTarget,
)
from ivrflow.models.routing import (
    RollbackRequest,
    RoutingEntry,
    RoutingEntryCreate,
    RoutingEntryUpdate,
    SnapshotCreate,
    VersionSnapshot,
)
from ivrflow.models.segment import (
    ConfigUpdate,
    GraphEdge,
    Segment,
    SegmentCreate,
    SegmentGraph,
    SegmentOrderItem,
    SegmentUpdate,
    TransitionCreate,
    TransitionRecord,
    TransitionUpdate,
)
from ivrflow.models.segment_type import ConfigKeyDefinition, KeyType, SegmentTypeCapability
from ivrflow.models.validation import FlowValidation, IssueType, ValidationIssue

__all__ = [
    # Flow snapshot / portable document
    "ConfigItem",
    "TransitionTarget",
    "TransitionOutcome",
    "Transition",
    "SegmentSnapshot",
    "FlowSnapshot",
    "CompleteFlow",
    "FlowDocument",
    "SaveFlowResult",
    "PublishResult",
    "FlowImportRequest",
    "ImportPreview",
    "ImportResult",
    "DEFAULT_RESULT",
    "CONTEXT_DEFAULT",
    "FLOW_DOCUMENT_VERSION",
    # Validation
    "FlowValidation",
    "IssueType",
    "ValidationIssue",
    # Change sets and scopes
    "ChangeSet",
    "ChangeSetCreate",
    "ChangeSetStatus",
    "ALLOWED_TRANSITIONS",
    "OPEN_STATUSES",
    "EDITABLE_STATUSES",
    "can_transition",
    "Scope",
    "PublishedScope",
    "DraftScope",
    "PUBLISHED",
    "scope_for",
    # Stored segments
    "Segment",
    "SegmentCreate",
    "SegmentUpdate",
    "ConfigUpdate",
    "TransitionRecord",
    "TransitionCreate",
    "TransitionUpdate",
    "SegmentOrderItem",
    "GraphEdge",
    "SegmentGraph",
    # Segment types
    "SegmentTypeCapability",
    "ConfigKeyDefinition",
    "KeyType",
    # Routing
    "RoutingEntry",
    "RoutingEntryCreate",
    "RoutingEntryUpdate",
    "VersionSnapshot",
    "SnapshotCreate",
    "RollbackRequest",
]
