"""Import a portable flow document into a routing's draft."""

import logging
import re
from datetime import datetime, timezone

from ivrflow import config
from ivrflow.db import RoutingStore, SegmentGraphStore, SegmentTypeRegistry, transaction
from ivrflow.errors import ConflictError, FlowValidationError
from ivrflow.graph import apply_order
from ivrflow.models import (
    EDITABLE_STATUSES,
    ChangeSet,
    DraftScope,
    FlowImportRequest,
    FlowValidation,
    ImportPreview,
    ImportResult,
    IssueType,
    RoutingEntryCreate,
    ValidationIssue,
    scope_for,
)
from ivrflow.rules import FlowValidator
from ivrflow.services.changeset_manager import ChangeSetLifecycleManager, check_hooks

logger = logging.getLogger(__name__)

ROUTING_ID_PATTERN = re.compile(r"^[A-Z0-9]+-[A-Z0-9]+-[A-Z0-9]+$")


class FlowImporter:
    """Validates, previews and applies flow document imports."""

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

    async def validate_import(self, request: FlowImportRequest) -> FlowValidation:
        """Document-level checks plus the full structural validation."""
        document = request.flow_data
        errors: list[ValidationIssue] = []
        warnings: list[ValidationIssue] = []

        if not document.segments:
            errors.append(
                ValidationIssue(
                    type=IssueType.EMPTY_FLOW,
                    field="segments",
                    message="Flow has no segments",
                    suggestion="Export a flow with at least one segment",
                )
            )

        if not ROUTING_ID_PATTERN.match(request.routing_id):
            warnings.append(
                ValidationIssue(
                    type=IssueType.INVALID_ROUTING_ID_FORMAT,
                    field="routingId",
                    message=(
                        f"Routing id '{request.routing_id}' does not follow the "
                        "CUSTOMER-PROJECT-NAME convention"
                    ),
                    suggestion="Use upper-case letters and digits, e.g. ACME-IVR-MAIN",
                )
            )

        type_table = await self._types.capability_table()
        structural = FlowValidator(type_table).validate_flow(document)
        return FlowValidation.from_issues(errors, warnings).merged_with(structural)

    async def preview_import(
        self, request: FlowImportRequest, overwrite: bool = False
    ) -> ImportPreview:
        """Counts of what an import would create, update and (with overwrite) delete."""
        validation = await self.validate_import(request)

        scope = scope_for(request.change_set_id)
        existing = await self._segments.segment_names(request.routing_id, scope)
        incoming = {s.segment_name for s in request.flow_data.segments}
        overlapping = incoming & existing

        return ImportPreview(
            will_create=len(incoming - existing),
            will_update=len(overlapping),
            will_delete=len(existing - incoming) if overwrite else 0,
            conflicts=sorted(overlapping),
            validation=validation,
        )

    async def import_flow(
        self,
        request: FlowImportRequest,
        overwrite: bool = False,
        validate_only: bool = False,
    ) -> ImportResult:
        """Import a flow document into a draft of the target routing.

        The routing entry is created from the document metadata when the
        routing does not exist yet. Without ``change_set_id`` the open draft
        is reused, or a new one is opened. ``overwrite`` prunes segments the
        document does not carry.

        Raises:
            FlowValidationError: Nothing was written
        """
        validation = await self.validate_import(request)
        if not validation.is_valid:
            raise FlowValidationError(
                f"Import has {len(validation.errors)} validation error(s)", validation
            )
        if validate_only:
            return ImportResult(
                success=True,
                routing_id=request.routing_id,
                change_set_id=request.change_set_id,
                validation=validation,
            )

        document = request.flow_data
        type_table = await self._types.capability_table()
        check_hooks(document.segments, type_table)
        ordered = apply_order(document.segments, document.init_segment)

        async with transaction(config.IMPORT_TRANSACTION_TIMEOUT):
            if not await self._routing.routing_exists(request.routing_id):
                await self._create_routing(request)

            change_set = await self._target_draft(request)
            result = await self._segments.replace_scope(
                request.routing_id,
                DraftScope(change_set.change_set_id),
                ordered,
                type_table,
                prune=overwrite,
                saved_by=request.imported_by,
            )

        logger.info(
            "Imported %d segments into draft %s of %s",
            len(ordered),
            change_set.change_set_id,
            request.routing_id,
        )
        return ImportResult(
            success=True,
            routing_id=request.routing_id,
            change_set_id=change_set.change_set_id,
            imported_count=result.created,
            updated_count=result.updated,
            deleted_count=result.pruned,
            validation=validation,
        )

    async def _target_draft(self, request: FlowImportRequest) -> ChangeSet:
        if request.change_set_id is None:
            stamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M")
            return await self._manager.prepare_draft(
                request.routing_id,
                version_name=f"Import {stamp}",
                description="Imported flow",
                created_by=request.imported_by,
                reuse_open=True,
            )

        change_set = await self._manager.get(request.routing_id, request.change_set_id)
        if change_set.status not in EDITABLE_STATUSES:
            raise ConflictError(
                f"Change set {change_set.change_set_id} is {change_set.status.value}; "
                "import needs a draft or validated change set"
            )
        return change_set

    async def _create_routing(self, request: FlowImportRequest) -> None:
        """Create the routing entry of a new routing from document metadata."""
        document = request.flow_data
        source_id = document.source_id
        if not source_id or await self._routing.lookup_by_source_id(source_id) is not None:
            # Source id is owned by the exporting routing; route by routing id instead
            source_id = request.routing_id

        await self._routing.create_entry(
            RoutingEntryCreate(
                source_id=source_id,
                routing_id=request.routing_id,
                init_segment=document.init_segment,
                language_code=document.language_code,
                message_store_id=document.message_store_id,
                scheduler_id=document.scheduler_id,
                feature_flags=document.feature_flags or {},
                config=document.config or {},
                created_by=request.imported_by,
            )
        )
        logger.info("Created routing %s for import (source %s)", request.routing_id, source_id)
