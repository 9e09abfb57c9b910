"""Routing entry and routing version API routes."""

from fastapi import APIRouter, Query

from ivrflow.api.errors import to_http_exception
from ivrflow.errors import FlowStudioError
from ivrflow.models import (
    RollbackRequest,
    RoutingEntry,
    RoutingEntryCreate,
    RoutingEntryUpdate,
    SnapshotCreate,
    VersionSnapshot,
)
from ivrflow.services import version_history

router = APIRouter()


# ==================== Routing entries ====================


@router.post("/routing-entries")
async def create_routing_entry(data: RoutingEntryCreate) -> RoutingEntry:
    """Route a source id (e.g. a dialled number) to a routing."""
    try:
        return await version_history.create_entry(data)
    except FlowStudioError as e:
        raise to_http_exception(e) from e


@router.get("/routing-entries")
async def list_routing_entries(
    routing_id: str | None = Query(default=None, alias="routingId"),
    include_inactive: bool = Query(default=False, alias="includeInactive"),
) -> list[RoutingEntry]:
    return await version_history.list_entries(routing_id, include_inactive)


@router.get("/routing-entries/by-source/{source_id}")
async def lookup_routing_entry(source_id: str) -> RoutingEntry:
    """Find the active routing entry for a source id."""
    try:
        return await version_history.lookup_by_source_id(source_id)
    except FlowStudioError as e:
        raise to_http_exception(e) from e


@router.get("/routing-entries/{routing_entry_id}")
async def get_routing_entry(routing_entry_id: str) -> RoutingEntry:
    try:
        return await version_history.get_entry(routing_entry_id)
    except FlowStudioError as e:
        raise to_http_exception(e) from e


@router.patch("/routing-entries/{routing_entry_id}")
async def update_routing_entry(routing_entry_id: str, update: RoutingEntryUpdate) -> RoutingEntry:
    try:
        return await version_history.update_entry(routing_entry_id, update)
    except FlowStudioError as e:
        raise to_http_exception(e) from e


@router.delete("/routing-entries/{routing_entry_id}")
async def delete_routing_entry(
    routing_entry_id: str,
    deleted_by: str | None = Query(default=None, alias="deletedBy"),
) -> dict[str, str]:
    try:
        await version_history.soft_delete_entry(routing_entry_id, deleted_by)
    except FlowStudioError as e:
        raise to_http_exception(e) from e
    return {"status": "deleted"}


# ==================== Versions ====================


@router.post("/routings/{routing_id}/versions")
async def create_version(routing_id: str, data: SnapshotCreate) -> VersionSnapshot:
    """Snapshot the active routing entries as a new version."""
    try:
        return await version_history.snapshot(
            routing_id, comment=data.comment, created_by=data.created_by
        )
    except FlowStudioError as e:
        raise to_http_exception(e) from e


@router.get("/routings/{routing_id}/versions")
async def list_versions(routing_id: str) -> list[VersionSnapshot]:
    return await version_history.list_versions(routing_id)


@router.post("/routings/{routing_id}/versions/cleanup")
async def cleanup_versions(
    routing_id: str, keep: int | None = Query(default=None, ge=1)
) -> dict[str, int]:
    """Delete old versions, keeping the most recent and the active one."""
    deleted = await version_history.cleanup(routing_id, keep)
    return {"deleted": deleted}


@router.get("/versions/{version_id}")
async def get_version(version_id: str) -> VersionSnapshot:
    try:
        return await version_history.get_version(version_id)
    except FlowStudioError as e:
        raise to_http_exception(e) from e


@router.post("/versions/{version_id}/rollback")
async def rollback_version(
    version_id: str, request: RollbackRequest | None = None
) -> list[RoutingEntry]:
    """Restore the routing entries captured by a version."""
    rolled_back_by = request.rolled_back_by if request else None
    try:
        return await version_history.rollback(version_id, rolled_back_by)
    except FlowStudioError as e:
        raise to_http_exception(e) from e
