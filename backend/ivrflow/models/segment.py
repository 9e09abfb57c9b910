"""Pydantic models for stored segments and granular segment edits."""

from typing import Any

from pydantic import BaseModel
from pydantic import Field as PydanticField

from ivrflow.models.flow import ConfigItem


class TransitionRecord(BaseModel):
    """A stored transition row."""

    transition_id: str = PydanticField(alias="transitionId")
    result_name: str = PydanticField(alias="resultName")
    context_key: str | None = PydanticField(default=None, alias="contextKey")
    next_segment_name: str | None = PydanticField(default=None, alias="nextSegmentName")
    params: dict[str, Any] | None = None
    transition_order: int = PydanticField(default=0, alias="transitionOrder")

    model_config = {"populate_by_name": True}


class Segment(BaseModel):
    """A stored segment row with its configs and transition rows."""

    segment_id: str = PydanticField(alias="segmentId")
    routing_id: str = PydanticField(alias="routingId")
    segment_name: str = PydanticField(alias="segmentName")
    segment_type: str = PydanticField(alias="segmentType")
    display_name: str | None = PydanticField(default=None, alias="displayName")
    change_set_id: str | None = PydanticField(default=None, alias="changeSetId")
    segment_order: int | None = PydanticField(default=None, alias="segmentOrder")
    hooks: dict[str, str] | None = None
    is_active: bool = PydanticField(default=True, alias="isActive")
    config: list[ConfigItem] = []
    transitions: list[TransitionRecord] = []
    created_at: str = PydanticField(alias="createdAt")
    created_by: str | None = PydanticField(default=None, alias="createdBy")
    updated_at: str = PydanticField(alias="updatedAt")
    updated_by: str | None = PydanticField(default=None, alias="updatedBy")

    model_config = {"populate_by_name": True}


class TransitionCreate(BaseModel):
    """Request model for adding one transition row."""

    result_name: str = PydanticField(alias="resultName", min_length=1)
    context_key: str | None = PydanticField(default=None, alias="contextKey")
    next_segment_name: str | None = PydanticField(default=None, alias="nextSegmentName")
    params: dict[str, Any] | None = None

    model_config = {"populate_by_name": True}


class TransitionUpdate(BaseModel):
    """Request model for retargeting one transition row."""

    next_segment_name: str | None = PydanticField(default=None, alias="nextSegmentName")
    params: dict[str, Any] | None = None

    model_config = {"populate_by_name": True}


class SegmentCreate(BaseModel):
    """Request model for creating a single segment."""

    routing_id: str = PydanticField(alias="routingId")
    change_set_id: str | None = PydanticField(default=None, alias="changeSetId")
    segment_name: str = PydanticField(alias="segmentName", min_length=1)
    segment_type: str = PydanticField(alias="segmentType", min_length=1)
    display_name: str | None = PydanticField(default=None, alias="displayName")
    config: list[ConfigItem] = []
    transitions: list[TransitionCreate] = []
    hooks: dict[str, str] | None = None
    created_by: str | None = PydanticField(default=None, alias="createdBy")

    model_config = {"populate_by_name": True}


class SegmentUpdate(BaseModel):
    """Request model for updating segment metadata."""

    display_name: str | None = PydanticField(default=None, alias="displayName")
    hooks: dict[str, str] | None = None
    updated_by: str | None = PydanticField(default=None, alias="updatedBy")

    model_config = {"populate_by_name": True}


class ConfigUpdate(BaseModel):
    """Request model for replacing a segment's config list."""

    config: list[ConfigItem]
    updated_by: str | None = PydanticField(default=None, alias="updatedBy")

    model_config = {"populate_by_name": True}


class SegmentOrderItem(BaseModel):
    """Manual execution-order override for one segment."""

    segment_name: str = PydanticField(alias="segmentName")
    segment_order: int = PydanticField(alias="segmentOrder", ge=1)

    model_config = {"populate_by_name": True}


class GraphEdge(BaseModel):
    """An edge in the graph view of a scope."""

    from_segment: str = PydanticField(alias="fromSegment")
    to_segment: str | None = PydanticField(default=None, alias="toSegment")
    result_name: str = PydanticField(alias="resultName")
    context_key: str | None = PydanticField(default=None, alias="contextKey")

    model_config = {"populate_by_name": True}


class SegmentGraph(BaseModel):
    """Nodes and edges of a scope, for visualization."""

    segments: list[str]
    edges: list[GraphEdge]
