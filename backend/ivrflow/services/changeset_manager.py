"""ChangeSet lifecycle: draft creation, save, validation, publish and discard.

A change set is a draft scope holding a full copy of the segments of one
routing. Edits land in the draft; publish copies the draft into the
published scope in a single transaction, so the live configuration is
never partially updated.

Status machine::

    draft -----> validated -----> publishing -----> published
      |              |                 |
      +--------------+-----------------+----------> discarded

``validating`` is accepted as a stored status (it may only move on to
``validated`` or ``discarded``). ``published`` and ``discarded`` are final.
"""

from __future__ import annotations

import logging

from ivrflow import config
from ivrflow.db import (
    ChangeSetStore,
    RoutingStore,
    SegmentGraphStore,
    SegmentTypeRegistry,
    transaction,
)
from ivrflow.db.type_dictionary import validate_hooks
from ivrflow.errors import (
    ConcurrentModificationError,
    ConflictError,
    FlowValidationError,
    NotFoundError,
    StateTransitionError,
)
from ivrflow.graph import apply_order
from ivrflow.models import (
    ALLOWED_TRANSITIONS,
    EDITABLE_STATUSES,
    PUBLISHED,
    ChangeSet,
    ChangeSetStatus,
    DraftScope,
    FlowSnapshot,
    FlowValidation,
    PublishResult,
    SaveFlowResult,
    SegmentSnapshot,
    SegmentTypeCapability,
    can_transition,
)
from ivrflow.rules import FlowValidator

logger = logging.getLogger(__name__)


def ensure_transition(current: ChangeSetStatus, target: ChangeSetStatus) -> None:
    """Raise StateTransitionError unless ``current -> target`` is allowed."""
    if not can_transition(current, target):
        raise StateTransitionError(
            current.value, target.value, [s.value for s in ALLOWED_TRANSITIONS[current]]
        )


def check_hooks(
    segments: list[SegmentSnapshot], type_table: dict[str, SegmentTypeCapability]
) -> None:
    """Validate every segment's hooks against its type's hooks schema."""
    for seg in segments:
        capability = type_table.get(seg.segment_type)
        if capability is not None:
            validate_hooks(capability, seg.hooks, seg.segment_name)


class ChangeSetLifecycleManager:
    """Owns the change set status machine and the draft/published copy rules."""

    def __init__(
        self,
        segments: SegmentGraphStore,
        change_sets: ChangeSetStore,
        routing: RoutingStore,
        types: SegmentTypeRegistry,
    ) -> None:
        self._segments = segments
        self._change_sets = change_sets
        self._routing = routing
        self._types = types

    # ==================== Queries ====================

    async def get(self, routing_id: str, change_set_id: str) -> ChangeSet:
        """Get a change set of a routing.

        Raises:
            NotFoundError: No such change set, or it belongs to another routing
        """
        change_set = await self._change_sets.get(change_set_id)
        if change_set is None or change_set.routing_id != routing_id:
            raise NotFoundError(f"Change set {change_set_id} not found for routing {routing_id}")
        return change_set

    async def list_for_routing(
        self, routing_id: str, status: ChangeSetStatus | None = None
    ) -> list[ChangeSet]:
        return await self._change_sets.list_for_routing(routing_id, status)

    async def init_segment(self, routing_id: str) -> str:
        """Entry segment of a routing, from its routing entry."""
        entry = await self._routing.primary_entry(routing_id)
        return entry.init_segment if entry else "init"

    # ==================== Drafts ====================

    async def prepare_draft(
        self,
        routing_id: str,
        version_name: str | None = None,
        description: str | None = None,
        created_by: str | None = None,
        seed_from_published: bool = True,
        reuse_open: bool = False,
    ) -> ChangeSet:
        """Open a draft inside the caller's transaction.

        Raises:
            NotFoundError: The routing does not exist
            ConflictError: The routing already has an open draft and
                ``reuse_open`` is false
        """
        if not await self._routing.routing_exists(routing_id):
            raise NotFoundError(f"Routing '{routing_id}' not found")

        open_draft = await self._change_sets.find_open(routing_id)
        if open_draft is not None:
            if reuse_open:
                return open_draft
            raise ConflictError(
                f"Routing '{routing_id}' already has an open draft "
                f"({open_draft.change_set_id}, status {open_draft.status.value})"
            )

        if version_name is None:
            count = await self._change_sets.count_for_routing(routing_id)
            version_name = f"Draft {count + 1}"

        change_set = await self._change_sets.create(
            routing_id, version_name, description=description, created_by=created_by
        )
        seeded = 0
        if seed_from_published:
            seeded = await self._segments.copy_scope(
                routing_id, PUBLISHED, DraftScope(change_set.change_set_id), created_by
            )

        logger.info(
            "Opened draft %s for %s (%d segments seeded)",
            change_set.change_set_id,
            routing_id,
            seeded,
        )
        return change_set

    async def create_draft(
        self,
        routing_id: str,
        version_name: str | None = None,
        description: str | None = None,
        created_by: str | None = None,
        seed_from_published: bool = True,
    ) -> ChangeSet:
        """Open a new draft, seeded with the published segments."""
        async with transaction(config.SAVE_TRANSACTION_TIMEOUT):
            return await self.prepare_draft(
                routing_id,
                version_name=version_name,
                description=description,
                created_by=created_by,
                seed_from_published=seed_from_published,
            )

    async def get_or_create_draft(
        self, routing_id: str, created_by: str | None = None
    ) -> ChangeSet:
        """Return the open draft of a routing, opening one if needed."""
        async with transaction(config.SAVE_TRANSACTION_TIMEOUT):
            return await self.prepare_draft(routing_id, created_by=created_by, reuse_open=True)

    # ==================== Save / validate ====================

    async def save(
        self,
        routing_id: str,
        change_set_id: str,
        flow: FlowSnapshot,
        saved_by: str | None = None,
        prune: bool = False,
    ) -> SaveFlowResult:
        """Validate then persist a flow into a draft.

        Nothing is written when validation fails or hooks are invalid.

        Raises:
            FlowValidationError: The flow has structural errors
            InvalidHooksError: Hooks do not match their type's schema
            ConflictError: The change set no longer accepts edits
        """
        change_set = await self.get(routing_id, change_set_id)
        if change_set.status not in EDITABLE_STATUSES:
            raise ConflictError(
                f"Change set {change_set_id} is {change_set.status.value}; "
                "only draft or validated change sets accept edits"
            )

        type_table = await self._types.capability_table()
        validation = FlowValidator(type_table).validate_flow(flow)
        if not validation.is_valid:
            raise FlowValidationError(
                f"Flow has {len(validation.errors)} validation error(s)", validation
            )
        check_hooks(flow.segments, type_table)

        ordered = apply_order(flow.segments, flow.init_segment)
        async with transaction(config.SAVE_TRANSACTION_TIMEOUT):
            await self._check_unchanged(change_set)
            result = await self._segments.replace_scope(
                routing_id,
                DraftScope(change_set_id),
                ordered,
                type_table,
                prune=prune,
                saved_by=saved_by,
            )

        logger.info(
            "Saved %d segments to draft %s of %s",
            len(ordered),
            change_set_id,
            routing_id,
        )
        return SaveFlowResult(
            change_set_id=change_set_id,
            validation=validation,
            created=result.created,
            updated=result.updated,
            pruned=result.pruned,
        )

    async def validate(self, routing_id: str, change_set_id: str) -> FlowValidation:
        """Validate the stored draft; an error-free draft becomes ``validated``."""
        change_set = await self.get(routing_id, change_set_id)
        validation = await self._validate_stored(routing_id, change_set_id)

        if validation.is_valid and change_set.status == ChangeSetStatus.DRAFT:
            async with transaction(config.SAVE_TRANSACTION_TIMEOUT):
                await self._change_sets.set_status(change_set, ChangeSetStatus.VALIDATED)
            logger.info("Draft %s of %s validated", change_set_id, routing_id)
        return validation

    # ==================== Publish / discard ====================

    async def publish(
        self, routing_id: str, change_set_id: str, published_by: str | None = None
    ) -> PublishResult:
        """Make a draft the live configuration.

        Inside one transaction: walk the status to ``published``, deactivate
        the published copy of every segment the draft carries or deleted, and
        copy the draft segments into the published scope. Any failure rolls
        the whole publish back.

        Raises:
            FlowValidationError: The stored draft has structural errors
            StateTransitionError: The change set cannot be published
            ConcurrentModificationError: Another writer changed the change set
        """
        change_set = await self.get(routing_id, change_set_id)
        path = self._publish_path(change_set.status)

        draft = DraftScope(change_set_id)
        async with transaction(config.PUBLISH_TRANSACTION_TIMEOUT):
            current = await self._check_unchanged(change_set)
            # Validated and copied under the same write lock
            validation = await self._validate_stored(routing_id, change_set_id)
            if not validation.is_valid:
                raise FlowValidationError(
                    f"Draft has {len(validation.errors)} validation error(s)", validation
                )

            for target in path[:-1]:
                current = await self._change_sets.set_status(current, target)

            draft_segments = await self._segments.list_segments(routing_id, draft)
            for seg in draft_segments:
                await self._segments.deactivate_published_segment(
                    routing_id, seg.segment_name, published_by
                )
            for name in await self._segments.list_tombstoned_names(routing_id, change_set_id):
                await self._segments.deactivate_published_segment(routing_id, name, published_by)
            for seg in draft_segments:
                await self._segments.copy_segment_to_published(seg, published_by)

            await self._change_sets.set_status(current, path[-1], published_by=published_by)

        logger.info(
            "Published draft %s of %s (%d segments)",
            change_set_id,
            routing_id,
            len(draft_segments),
        )
        return PublishResult(
            routing_id=routing_id,
            change_set_id=change_set_id,
            published=True,
            segment_count=len(draft_segments),
            validation=validation,
        )

    async def discard(
        self, routing_id: str, change_set_id: str, discarded_by: str | None = None
    ) -> ChangeSet:
        """Drop a draft. Published rows are never touched."""
        change_set = await self.get(routing_id, change_set_id)
        ensure_transition(change_set.status, ChangeSetStatus.DISCARDED)

        async with transaction(config.SAVE_TRANSACTION_TIMEOUT):
            current = await self._check_unchanged(change_set)
            removed = await self._segments.soft_delete_scope(
                routing_id, DraftScope(change_set_id), discarded_by
            )
            discarded = await self._change_sets.set_status(current, ChangeSetStatus.DISCARDED)

        logger.info(
            "Discarded draft %s of %s (%d segments)", change_set_id, routing_id, removed
        )
        return discarded

    # ==================== Internals ====================

    @staticmethod
    def _publish_path(status: ChangeSetStatus) -> list[ChangeSetStatus]:
        """Statuses a publish walks through from ``status``."""
        steps = [ChangeSetStatus.VALIDATED, ChangeSetStatus.PUBLISHING, ChangeSetStatus.PUBLISHED]
        if status == ChangeSetStatus.VALIDATED:
            steps = steps[1:]
        ensure_transition(status, steps[0])
        return steps

    async def _validate_stored(self, routing_id: str, change_set_id: str) -> FlowValidation:
        segments = await self._segments.load_scope(routing_id, DraftScope(change_set_id))
        init_segment = await self.init_segment(routing_id)
        type_table = await self._types.capability_table()
        return FlowValidator(type_table).validate(segments, init_segment)

    async def _check_unchanged(self, change_set: ChangeSet) -> ChangeSet:
        """Re-read a change set inside the transaction and compare revisions."""
        current = await self._change_sets.get(change_set.change_set_id)
        if current is None or current.revision != change_set.revision:
            raise ConcurrentModificationError(
                f"Change set {change_set.change_set_id} was modified concurrently"
            )
        return current
