"""Flow API routes: load, save, validate, publish, discard, export and import."""

from fastapi import APIRouter, Query
from pydantic import BaseModel
from pydantic import Field as PydanticField

from ivrflow.api.errors import to_http_exception
from ivrflow.errors import FlowStudioError
from ivrflow.models import (
    ChangeSet,
    CompleteFlow,
    FlowDocument,
    FlowImportRequest,
    FlowSnapshot,
    FlowValidation,
    ImportPreview,
    ImportResult,
    PublishResult,
    SaveFlowResult,
)
from ivrflow.services import flow_exporter, flow_importer, flow_service

router = APIRouter()


class SaveFlowRequest(FlowSnapshot):
    """Flow snapshot plus save metadata."""

    saved_by: str | None = PydanticField(default=None, alias="savedBy")


class PublishRequest(BaseModel):
    """Request to publish a change set."""

    published_by: str | None = PydanticField(default=None, alias="publishedBy")

    model_config = {"populate_by_name": True}


class DiscardRequest(BaseModel):
    """Request to discard a change set."""

    discarded_by: str | None = PydanticField(default=None, alias="discardedBy")

    model_config = {"populate_by_name": True}


@router.get("/routings/{routing_id}/flow")
async def load_flow(
    routing_id: str,
    change_set_id: str | None = Query(default=None, alias="changeSetId"),
) -> CompleteFlow:
    """Load the published flow, or a draft when changeSetId is given."""
    try:
        return await flow_service.load_flow(routing_id, change_set_id)
    except FlowStudioError as e:
        raise to_http_exception(e) from e


@router.put("/routings/{routing_id}/changesets/{change_set_id}/flow")
async def save_flow(
    routing_id: str,
    change_set_id: str,
    request: SaveFlowRequest,
    prune: bool = Query(default=False),
) -> SaveFlowResult:
    """Validate and save a flow into a draft.

    Returns 400 with the validation errors when the flow is invalid;
    nothing is written in that case.
    """
    flow = FlowSnapshot(init_segment=request.init_segment, segments=request.segments)
    try:
        return await flow_service.save_flow(
            routing_id, change_set_id, flow, saved_by=request.saved_by, prune=prune
        )
    except FlowStudioError as e:
        raise to_http_exception(e) from e


@router.post("/routings/{routing_id}/flow/validate")
async def validate_flow(routing_id: str, flow: FlowSnapshot) -> FlowValidation:
    """Validate a flow without saving it."""
    return await flow_service.validate_only(routing_id, flow)


@router.post("/routings/{routing_id}/changesets/{change_set_id}/publish")
async def publish(
    routing_id: str, change_set_id: str, request: PublishRequest | None = None
) -> PublishResult:
    """Publish a draft, making it the live configuration."""
    published_by = request.published_by if request else None
    try:
        return await flow_service.publish(routing_id, change_set_id, published_by=published_by)
    except FlowStudioError as e:
        raise to_http_exception(e) from e


@router.post("/routings/{routing_id}/changesets/{change_set_id}/discard")
async def discard(
    routing_id: str, change_set_id: str, request: DiscardRequest | None = None
) -> ChangeSet:
    """Discard a draft. Published segments are not touched."""
    discarded_by = request.discarded_by if request else None
    try:
        return await flow_service.discard_draft(
            routing_id, change_set_id, discarded_by=discarded_by
        )
    except FlowStudioError as e:
        raise to_http_exception(e) from e


# ==================== Export / import ====================


@router.get("/routings/{routing_id}/flow/export")
async def export_flow(
    routing_id: str,
    change_set_id: str | None = Query(default=None, alias="changeSetId"),
    exported_by: str | None = Query(default=None, alias="exportedBy"),
) -> FlowDocument:
    """Export a flow as a portable document."""
    try:
        return await flow_exporter.export(routing_id, change_set_id, exported_by=exported_by)
    except FlowStudioError as e:
        raise to_http_exception(e) from e


@router.post("/flows/import/validate")
async def validate_import(request: FlowImportRequest) -> FlowValidation:
    """Validate an import document without touching storage."""
    return await flow_importer.validate_import(request)


@router.post("/flows/import/preview")
async def preview_import(
    request: FlowImportRequest,
    overwrite: bool = Query(default=False),
) -> ImportPreview:
    """Preview the segments an import would create, update and delete."""
    return await flow_importer.preview_import(request, overwrite=overwrite)


@router.post("/flows/import")
async def import_flow(
    request: FlowImportRequest,
    overwrite: bool = Query(default=False),
    validate_only: bool = Query(default=False, alias="validateOnly"),
) -> ImportResult:
    """Import a flow document into a draft of the target routing."""
    try:
        return await flow_importer.import_flow(
            request, overwrite=overwrite, validate_only=validate_only
        )
    except FlowStudioError as e:
        raise to_http_exception(e) from e
