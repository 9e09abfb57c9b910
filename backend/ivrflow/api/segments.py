"""Segment API routes: granular edits, execution order and graph view.

Every route addresses one scope: the published flow, or a draft when the
``changeSetId`` query parameter is given. Writes to a draft require it to
still accept edits.
"""

from fastapi import APIRouter, HTTPException, Query

from ivrflow import config
from ivrflow.api.errors import to_http_exception
from ivrflow.db import routing_store, segment_store, transaction
from ivrflow.errors import ConflictError, FlowStudioError, NotFoundError
from ivrflow.models import (
    EDITABLE_STATUSES,
    ConfigUpdate,
    DraftScope,
    Scope,
    Segment,
    SegmentCreate,
    SegmentGraph,
    SegmentOrderItem,
    SegmentUpdate,
    TransitionCreate,
    TransitionRecord,
    TransitionUpdate,
    scope_for,
)
from ivrflow.services import changeset_manager

router = APIRouter()


async def _writable_scope(routing_id: str, change_set_id: str | None) -> Scope:
    scope = scope_for(change_set_id)
    if isinstance(scope, DraftScope):
        change_set = await changeset_manager.get(routing_id, scope.change_set_id)
        if change_set.status not in EDITABLE_STATUSES:
            raise ConflictError(
                f"Change set {scope.change_set_id} is {change_set.status.value} "
                "and no longer accepts edits"
            )
    return scope


async def _check_transition_writable(transition_id: str) -> None:
    routing_id, change_set_id = await segment_store.transition_owner(transition_id)
    await _writable_scope(routing_id, change_set_id)


# ==================== Segments ====================


@router.get("/routings/{routing_id}/segments")
async def list_segments(
    routing_id: str,
    change_set_id: str | None = Query(default=None, alias="changeSetId"),
    include_inactive: bool = Query(default=False, alias="includeInactive"),
) -> list[Segment]:
    return await segment_store.list_segments(
        routing_id, scope_for(change_set_id), include_inactive=include_inactive
    )


@router.post("/segments")
async def create_segment(data: SegmentCreate) -> Segment:
    """Create a single segment with its config and transitions."""
    try:
        if not await routing_store.routing_exists(data.routing_id):
            raise NotFoundError(f"Routing '{data.routing_id}' not found")
        await _writable_scope(data.routing_id, data.change_set_id)
        async with transaction(config.SAVE_TRANSACTION_TIMEOUT):
            return await segment_store.create_segment(data)
    except FlowStudioError as e:
        raise to_http_exception(e) from e


@router.put("/routings/{routing_id}/segments/order")
async def update_segment_order(
    routing_id: str,
    items: list[SegmentOrderItem],
    change_set_id: str | None = Query(default=None, alias="changeSetId"),
) -> dict[str, int]:
    """Override the computed execution order of segments."""
    try:
        scope = await _writable_scope(routing_id, change_set_id)
        async with transaction(config.SAVE_TRANSACTION_TIMEOUT):
            updated = await segment_store.update_segment_order(routing_id, scope, items)
    except FlowStudioError as e:
        raise to_http_exception(e) from e
    return {"updated": updated}


@router.get("/routings/{routing_id}/segments/{segment_name}")
async def get_segment(
    routing_id: str,
    segment_name: str,
    change_set_id: str | None = Query(default=None, alias="changeSetId"),
) -> Segment:
    segment = await segment_store.get_segment(routing_id, segment_name, scope_for(change_set_id))
    if segment is None:
        raise HTTPException(status_code=404, detail="Segment not found")
    return segment


@router.patch("/routings/{routing_id}/segments/{segment_name}")
async def update_segment(
    routing_id: str,
    segment_name: str,
    update: SegmentUpdate,
    change_set_id: str | None = Query(default=None, alias="changeSetId"),
) -> Segment:
    """Update display name and/or hooks."""
    try:
        scope = await _writable_scope(routing_id, change_set_id)
        async with transaction(config.SAVE_TRANSACTION_TIMEOUT):
            return await segment_store.update_segment(routing_id, segment_name, scope, update)
    except FlowStudioError as e:
        raise to_http_exception(e) from e


@router.put("/routings/{routing_id}/segments/{segment_name}/config")
async def update_config(
    routing_id: str,
    segment_name: str,
    update: ConfigUpdate,
    change_set_id: str | None = Query(default=None, alias="changeSetId"),
) -> Segment:
    """Replace the config list of a segment."""
    try:
        scope = await _writable_scope(routing_id, change_set_id)
        async with transaction(config.SAVE_TRANSACTION_TIMEOUT):
            return await segment_store.update_config(routing_id, segment_name, scope, update)
    except FlowStudioError as e:
        raise to_http_exception(e) from e


@router.delete("/routings/{routing_id}/segments/{segment_name}")
async def delete_segment(
    routing_id: str,
    segment_name: str,
    change_set_id: str | None = Query(default=None, alias="changeSetId"),
    deleted_by: str | None = Query(default=None, alias="deletedBy"),
) -> dict[str, str]:
    """Soft-delete a segment."""
    try:
        scope = await _writable_scope(routing_id, change_set_id)
        async with transaction(config.SAVE_TRANSACTION_TIMEOUT):
            await segment_store.soft_delete_segment(routing_id, segment_name, scope, deleted_by)
    except FlowStudioError as e:
        raise to_http_exception(e) from e
    return {"status": "deleted"}


@router.delete("/segments/{segment_id}")
async def purge_segment(segment_id: str) -> dict[str, str]:
    """Hard-delete a segment row. Used to clean up tombstones."""
    try:
        async with transaction(config.SAVE_TRANSACTION_TIMEOUT):
            await segment_store.purge_segment(segment_id)
    except FlowStudioError as e:
        raise to_http_exception(e) from e
    return {"status": "purged"}


@router.get("/routings/{routing_id}/graph")
async def get_graph(
    routing_id: str,
    change_set_id: str | None = Query(default=None, alias="changeSetId"),
) -> SegmentGraph:
    return await segment_store.get_graph(routing_id, scope_for(change_set_id))


# ==================== Transitions ====================


@router.post("/routings/{routing_id}/segments/{segment_name}/transitions")
async def add_transition(
    routing_id: str,
    segment_name: str,
    data: TransitionCreate,
    change_set_id: str | None = Query(default=None, alias="changeSetId"),
) -> TransitionRecord:
    try:
        scope = await _writable_scope(routing_id, change_set_id)
        async with transaction(config.SAVE_TRANSACTION_TIMEOUT):
            return await segment_store.add_transition(routing_id, segment_name, scope, data)
    except FlowStudioError as e:
        raise to_http_exception(e) from e


@router.patch("/transitions/{transition_id}")
async def update_transition(transition_id: str, update: TransitionUpdate) -> TransitionRecord:
    try:
        async with transaction(config.SAVE_TRANSACTION_TIMEOUT):
            await _check_transition_writable(transition_id)
            return await segment_store.update_transition(transition_id, update)
    except FlowStudioError as e:
        raise to_http_exception(e) from e


@router.delete("/transitions/{transition_id}")
async def delete_transition(transition_id: str) -> dict[str, str]:
    try:
        async with transaction(config.SAVE_TRANSACTION_TIMEOUT):
            await _check_transition_writable(transition_id)
            await segment_store.delete_transition(transition_id)
    except FlowStudioError as e:
        raise to_http_exception(e) from e
    return {"status": "deleted"}
