"""Flow facade: the load / save / validate / publish / discard surface used by the API."""

import logging

from ivrflow.db import RoutingStore, SegmentGraphStore, SegmentTypeRegistry
from ivrflow.errors import NotFoundError
from ivrflow.models import (
    ChangeSet,
    CompleteFlow,
    DraftScope,
    FlowSnapshot,
    FlowValidation,
    PublishResult,
    SaveFlowResult,
    scope_for,
)
from ivrflow.rules import FlowValidator
from ivrflow.services.changeset_manager import ChangeSetLifecycleManager

logger = logging.getLogger(__name__)


class FlowService:
    """Whole-flow operations over one routing."""

    def __init__(
        self,
        manager: ChangeSetLifecycleManager,
        segments: SegmentGraphStore,
        routing: RoutingStore,
        types: SegmentTypeRegistry,
    ) -> None:
        self._manager = manager
        self._segments = segments
        self._routing = routing
        self._types = types

    async def load_flow(self, routing_id: str, change_set_id: str | None = None) -> CompleteFlow:
        """Load the published flow, or a draft when ``change_set_id`` is given.

        The routing entry's init segment is the flow's entry point.
        """
        entry = await self._routing.primary_entry(routing_id)
        if entry is None:
            raise NotFoundError(f"Routing '{routing_id}' not found")

        scope = scope_for(change_set_id)
        if isinstance(scope, DraftScope):
            await self._manager.get(routing_id, scope.change_set_id)

        segments = await self._segments.load_scope(routing_id, scope)
        type_table = await self._types.capability_table()
        validation = FlowValidator(type_table).validate(segments, entry.init_segment)

        return CompleteFlow(
            routing_id=routing_id,
            change_set_id=change_set_id,
            init_segment=entry.init_segment,
            segments=segments,
            source_id=entry.source_id,
            language_code=entry.language_code,
            message_store_id=entry.message_store_id,
            scheduler_id=entry.scheduler_id,
            feature_flags=entry.feature_flags,
            config=entry.config,
            validation=validation,
        )

    async def save_flow(
        self,
        routing_id: str,
        change_set_id: str,
        flow: FlowSnapshot,
        saved_by: str | None = None,
        prune: bool = False,
    ) -> SaveFlowResult:
        return await self._manager.save(
            routing_id, change_set_id, flow, saved_by=saved_by, prune=prune
        )

    async def validate_only(self, routing_id: str, flow: FlowSnapshot) -> FlowValidation:
        """Validate a flow without persisting anything."""
        type_table = await self._types.capability_table()
        validation = FlowValidator(type_table).validate_flow(flow)
        logger.debug(
            "Validated %s: %d errors, %d warnings",
            routing_id,
            len(validation.errors),
            len(validation.warnings),
        )
        return validation

    async def publish(
        self, routing_id: str, change_set_id: str, published_by: str | None = None
    ) -> PublishResult:
        return await self._manager.publish(routing_id, change_set_id, published_by=published_by)

    async def discard_draft(
        self, routing_id: str, change_set_id: str, discarded_by: str | None = None
    ) -> ChangeSet:
        return await self._manager.discard(routing_id, change_set_id, discarded_by=discarded_by)
