"""Pydantic models for routing entries and their version history."""

from typing import Any

from pydantic import BaseModel
from pydantic import Field as PydanticField


class RoutingEntryCreate(BaseModel):
    """Request model for creating a routing entry."""

    source_id: str = PydanticField(alias="sourceId", min_length=1)
    routing_id: str = PydanticField(alias="routingId", min_length=1)
    init_segment: str = PydanticField(default="init", alias="initSegment")
    language_code: str | None = PydanticField(default=None, alias="languageCode")
    message_store_id: int | None = PydanticField(default=None, alias="messageStoreId")
    scheduler_id: int | None = PydanticField(default=None, alias="schedulerId")
    feature_flags: dict[str, Any] = PydanticField(default_factory=dict, alias="featureFlags")
    config: dict[str, Any] = PydanticField(default_factory=dict)
    created_by: str | None = PydanticField(default=None, alias="createdBy")

    model_config = {"populate_by_name": True}


class RoutingEntryUpdate(BaseModel):
    """Request model for updating a routing entry. ``None`` leaves a field as is."""

    init_segment: str | None = PydanticField(default=None, alias="initSegment")
    language_code: str | None = PydanticField(default=None, alias="languageCode")
    message_store_id: int | None = PydanticField(default=None, alias="messageStoreId")
    scheduler_id: int | None = PydanticField(default=None, alias="schedulerId")
    feature_flags: dict[str, Any] | None = PydanticField(default=None, alias="featureFlags")
    config: dict[str, Any] | None = None
    updated_by: str | None = PydanticField(default=None, alias="updatedBy")

    model_config = {"populate_by_name": True}


class RoutingEntry(BaseModel):
    """Entry point binding a source identifier to a routing."""

    routing_entry_id: str = PydanticField(alias="routingEntryId")
    source_id: str = PydanticField(alias="sourceId")
    routing_id: str = PydanticField(alias="routingId")
    init_segment: str = PydanticField(alias="initSegment")
    language_code: str | None = PydanticField(default=None, alias="languageCode")
    message_store_id: int | None = PydanticField(default=None, alias="messageStoreId")
    scheduler_id: int | None = PydanticField(default=None, alias="schedulerId")
    feature_flags: dict[str, Any] = PydanticField(default_factory=dict, alias="featureFlags")
    config: dict[str, Any] = PydanticField(default_factory=dict)
    is_active: bool = PydanticField(default=True, alias="isActive")
    created_at: str = PydanticField(alias="createdAt")
    created_by: str | None = PydanticField(default=None, alias="createdBy")
    updated_at: str = PydanticField(alias="updatedAt")
    updated_by: str | None = PydanticField(default=None, alias="updatedBy")

    model_config = {"populate_by_name": True}


class SnapshotCreate(BaseModel):
    """Request model for capturing a version snapshot."""

    comment: str | None = None
    created_by: str | None = PydanticField(default=None, alias="createdBy")

    model_config = {"populate_by_name": True}


class RollbackRequest(BaseModel):
    """Request model for rolling back to a version."""

    rolled_back_by: str | None = PydanticField(default=None, alias="rolledBackBy")

    model_config = {"populate_by_name": True}


class VersionSnapshot(BaseModel):
    """Immutable capture of a routing's active entries."""

    version_id: str = PydanticField(alias="versionId")
    routing_id: str = PydanticField(alias="routingId")
    version_number: int = PydanticField(alias="versionNumber")
    is_active: bool = PydanticField(default=False, alias="isActive")
    snapshot: list[dict[str, Any]]
    comment: str | None = None
    created_at: str = PydanticField(alias="createdAt")
    created_by: str | None = PydanticField(default=None, alias="createdBy")

    model_config = {"populate_by_name": True}
