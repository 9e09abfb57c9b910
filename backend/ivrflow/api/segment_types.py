"""Segment type dictionary API routes."""

from fastapi import APIRouter, HTTPException

from ivrflow import config
from ivrflow.api.errors import to_http_exception
from ivrflow.db import transaction, type_registry
from ivrflow.errors import FlowStudioError
from ivrflow.models import SegmentTypeCapability

router = APIRouter()


@router.get("/segment-types")
async def list_segment_types() -> list[SegmentTypeCapability]:
    return await type_registry.list_types()


@router.get("/segment-types/{segment_type_name}")
async def get_segment_type(segment_type_name: str) -> SegmentTypeCapability:
    capability = await type_registry.resolve_type(segment_type_name)
    if capability is None:
        raise HTTPException(status_code=404, detail="Segment type not found")
    return capability


@router.post("/segment-types")
async def register_segment_type(capability: SegmentTypeCapability) -> SegmentTypeCapability:
    """Create or replace a segment type and its config keys."""
    try:
        async with transaction(config.SAVE_TRANSACTION_TIMEOUT):
            return await type_registry.register_type(capability)
    except FlowStudioError as e:
        raise to_http_exception(e) from e


@router.delete("/segment-types/{segment_type_name}")
async def deactivate_segment_type(segment_type_name: str) -> dict[str, str]:
    """Deactivate a segment type. Existing segments keep their type name."""
    async with transaction(config.SAVE_TRANSACTION_TIMEOUT):
        deactivated = await type_registry.deactivate_type(segment_type_name)
    if not deactivated:
        raise HTTPException(status_code=404, detail="Segment type not found")
    return {"status": "deactivated"}
