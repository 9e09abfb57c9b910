"""Pydantic models for flow snapshots and the portable flow document.

A flow snapshot is the editor's view of one scope (published or a draft):
an ordered list of segments, each with an ordered config list and an
ordered transition list. Transitions reference their targets by segment
name, never by object, so a snapshot can be copied between scopes as-is.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, computed_field, field_validator
from pydantic import Field as PydanticField

from ivrflow.models.validation import FlowValidation

DEFAULT_RESULT = "default"
CONTEXT_DEFAULT = "default"
FLOW_DOCUMENT_VERSION = "1.0.0"


class ConfigItem(BaseModel):
    """A config key/value pair. List position is the display order."""

    key: str = PydanticField(min_length=1)
    value: Any = None
    is_displayed: bool = PydanticField(default=True, alias="isDisplayed")
    is_editable: bool = PydanticField(default=True, alias="isEditable")

    model_config = {"populate_by_name": True}


class TransitionTarget(BaseModel):
    """Where a transition goes. ``next_segment=None`` is a terminal exit."""

    next_segment: str | None = PydanticField(default=None, alias="nextSegment")
    params: dict[str, Any] | None = None

    model_config = {"populate_by_name": True}


class TransitionOutcome(BaseModel):
    """Outcome of a transition.

    Either a plain target (``next_segment``) or a context-aware map from
    runtime context value to target, with an optional ``default`` fallback.
    """

    next_segment: str | None = PydanticField(default=None, alias="nextSegment")
    params: dict[str, Any] | None = None
    context_key: dict[str, TransitionTarget] | None = PydanticField(
        default=None, alias="contextKey"
    )
    default: TransitionTarget | None = None

    model_config = {"populate_by_name": True}

    @field_validator("context_key")
    @classmethod
    def context_values_not_blank(
        cls, v: dict[str, TransitionTarget] | None
    ) -> dict[str, TransitionTarget] | None:
        if v is None:
            return v
        if not v:
            raise ValueError("contextKey must map at least one context value")
        for context_value in v:
            if not context_value.strip():
                raise ValueError("context values must be non-empty strings")
            if context_value == CONTEXT_DEFAULT:
                raise ValueError(
                    f"'{CONTEXT_DEFAULT}' is reserved; set the fallback with 'default' instead"
                )
        return v

    @property
    def is_context_aware(self) -> bool:
        return self.context_key is not None

    def targets(self) -> list[str]:
        """All non-null targets: plain, then context map, then default."""
        found: list[str] = []
        if self.next_segment:
            found.append(self.next_segment)
        if self.context_key:
            found.extend(t.next_segment for t in self.context_key.values() if t.next_segment)
        if self.default and self.default.next_segment:
            found.append(self.default.next_segment)
        return found


class Transition(BaseModel):
    """A labelled edge leaving a segment."""

    result_name: str = PydanticField(alias="resultName", min_length=1)
    outcome: TransitionOutcome = PydanticField(default_factory=TransitionOutcome)

    model_config = {"populate_by_name": True}

    @computed_field(alias="isDefault")  # type: ignore[prop-decorator]
    @property
    def is_default(self) -> bool:
        return self.result_name == DEFAULT_RESULT

    def rows(self) -> list[tuple[str | None, TransitionTarget]]:
        """``(context_key, target)`` pairs this transition is stored as.

        The plain row (``context_key=None``) is kept for context-aware
        transitions only when they also carry a plain target.
        """
        outcome = self.outcome
        rows: list[tuple[str | None, TransitionTarget]] = []
        if not outcome.is_context_aware or outcome.next_segment is not None:
            rows.append(
                (None, TransitionTarget(next_segment=outcome.next_segment, params=outcome.params))
            )
        for value, target in (outcome.context_key or {}).items():
            rows.append((value, target))
        if outcome.default is not None:
            rows.append((CONTEXT_DEFAULT, outcome.default))
        return rows

    def row_keys(self) -> list[tuple[str, str | None]]:
        """The ``(result_name, context_key)`` rows this transition is stored as."""
        return [(self.result_name, context) for context, _ in self.rows()]


class SegmentSnapshot(BaseModel):
    """A segment with its config and transitions."""

    segment_name: str = PydanticField(alias="segmentName", min_length=1)
    segment_type: str = PydanticField(alias="segmentType", min_length=1)
    display_name: str | None = PydanticField(default=None, alias="displayName")
    config: list[ConfigItem] = []
    transitions: list[Transition] = []
    hooks: dict[str, str] | None = None
    segment_order: int | None = PydanticField(default=None, alias="segmentOrder")
    is_active: bool = PydanticField(default=True, alias="isActive")
    is_terminal: bool | None = PydanticField(default=None, alias="isTerminal")
    category: str | None = None

    model_config = {"populate_by_name": True}


class FlowSnapshot(BaseModel):
    """Segments plus the entry point; the unit of save and validation."""

    init_segment: str = PydanticField(alias="initSegment")
    segments: list[SegmentSnapshot] = []

    model_config = {"populate_by_name": True}


class CompleteFlow(FlowSnapshot):
    """A loaded flow with routing metadata and its validation report."""

    version: str = FLOW_DOCUMENT_VERSION
    routing_id: str = PydanticField(alias="routingId")
    change_set_id: str | None = PydanticField(default=None, alias="changeSetId")
    source_id: str | None = PydanticField(default=None, alias="sourceId")
    language_code: str | None = PydanticField(default=None, alias="languageCode")
    message_store_id: int | None = PydanticField(default=None, alias="messageStoreId")
    scheduler_id: int | None = PydanticField(default=None, alias="schedulerId")
    feature_flags: dict[str, Any] | None = PydanticField(default=None, alias="featureFlags")
    config: dict[str, Any] | None = None
    validation: FlowValidation | None = None


class FlowDocument(CompleteFlow):
    """Portable export document used for backup and migration."""

    exported_at: datetime | None = PydanticField(default=None, alias="exportedAt")
    exported_by: str | None = PydanticField(default=None, alias="exportedBy")


class SaveFlowResult(BaseModel):
    """Result of a successful save."""

    change_set_id: str = PydanticField(alias="changeSetId")
    validation: FlowValidation
    created: int = 0
    updated: int = 0
    pruned: int = 0

    model_config = {"populate_by_name": True}


class PublishResult(BaseModel):
    """Result of publishing a change set."""

    routing_id: str = PydanticField(alias="routingId")
    change_set_id: str = PydanticField(alias="changeSetId")
    published: bool
    segment_count: int = PydanticField(default=0, alias="segmentCount")
    validation: FlowValidation

    model_config = {"populate_by_name": True}


class FlowImportRequest(BaseModel):
    """Request to import a flow document into a routing."""

    routing_id: str = PydanticField(alias="routingId")
    change_set_id: str | None = PydanticField(default=None, alias="changeSetId")
    imported_by: str | None = PydanticField(default=None, alias="importedBy")
    flow_data: FlowDocument = PydanticField(alias="flowData")

    model_config = {"populate_by_name": True}


class ImportPreview(BaseModel):
    """What an import would do to the target scope."""

    will_create: int = PydanticField(alias="willCreate")
    will_update: int = PydanticField(alias="willUpdate")
    will_delete: int = PydanticField(alias="willDelete")
    conflicts: list[str] = []
    validation: FlowValidation

    model_config = {"populate_by_name": True}


class ImportResult(BaseModel):
    """Outcome of an import."""

    success: bool
    routing_id: str = PydanticField(alias="routingId")
    change_set_id: str | None = PydanticField(default=None, alias="changeSetId")
    imported_count: int = PydanticField(default=0, alias="importedCount")
    updated_count: int = PydanticField(default=0, alias="updatedCount")
    deleted_count: int = PydanticField(default=0, alias="deletedCount")
    validation: FlowValidation

    model_config = {"populate_by_name": True}
