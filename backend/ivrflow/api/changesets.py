"""ChangeSet API routes."""

from fastapi import APIRouter, Query

from ivrflow.api.errors import to_http_exception
from ivrflow.errors import FlowStudioError
from ivrflow.models import ChangeSet, ChangeSetCreate, ChangeSetStatus, FlowValidation
from ivrflow.services import changeset_manager

router = APIRouter()


@router.post("/changesets")
async def create_changeset(data: ChangeSetCreate) -> ChangeSet:
    """Open a draft for a routing, seeded from the published flow by default."""
    try:
        return await changeset_manager.create_draft(
            data.routing_id,
            version_name=data.version_name,
            description=data.description,
            created_by=data.created_by,
            seed_from_published=data.seed_from_published,
        )
    except FlowStudioError as e:
        raise to_http_exception(e) from e


@router.post("/routings/{routing_id}/changesets/open")
async def get_or_create_changeset(
    routing_id: str,
    created_by: str | None = Query(default=None, alias="createdBy"),
) -> ChangeSet:
    """Return the open draft of a routing, opening one if there is none."""
    try:
        return await changeset_manager.get_or_create_draft(routing_id, created_by=created_by)
    except FlowStudioError as e:
        raise to_http_exception(e) from e


@router.get("/routings/{routing_id}/changesets")
async def list_changesets(
    routing_id: str, status: ChangeSetStatus | None = Query(default=None)
) -> list[ChangeSet]:
    return await changeset_manager.list_for_routing(routing_id, status)


@router.get("/routings/{routing_id}/changesets/{change_set_id}")
async def get_changeset(routing_id: str, change_set_id: str) -> ChangeSet:
    try:
        return await changeset_manager.get(routing_id, change_set_id)
    except FlowStudioError as e:
        raise to_http_exception(e) from e


@router.post("/routings/{routing_id}/changesets/{change_set_id}/validate")
async def validate_changeset(routing_id: str, change_set_id: str) -> FlowValidation:
    """Validate the stored draft. An error-free draft moves to 'validated'."""
    try:
        return await changeset_manager.validate(routing_id, change_set_id)
    except FlowStudioError as e:
        raise to_http_exception(e) from e
