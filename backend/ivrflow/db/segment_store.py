"""SegmentGraphStore - scoped storage for segments, configs and transitions."""

import json
import logging
import uuid
from collections.abc import Mapping, Sequence
from datetime import datetime, timezone
from typing import Any, NamedTuple

import aiosqlite

from ivrflow.db.database import get_db
from ivrflow.db.type_dictionary import (
    SegmentTypeRegistry,
    parse_config_value,
    serialize_config_value,
    validate_hooks,
)
from ivrflow.errors import ConflictError, NotFoundError
from ivrflow.models import (
    CONTEXT_DEFAULT,
    PUBLISHED,
    ConfigItem,
    ConfigUpdate,
    DraftScope,
    GraphEdge,
    KeyType,
    Scope,
    Segment,
    SegmentCreate,
    SegmentGraph,
    SegmentOrderItem,
    SegmentSnapshot,
    SegmentTypeCapability,
    SegmentUpdate,
    Transition,
    TransitionCreate,
    TransitionOutcome,
    TransitionRecord,
    TransitionTarget,
    TransitionUpdate,
)

logger = logging.getLogger(__name__)


def _generate_id() -> str:
    """Generate a unique ID."""
    return str(uuid.uuid4())


def _now() -> str:
    """Get current timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat()


def _scope_clause(scope: Scope, column: str = "change_set_id") -> tuple[str, tuple[Any, ...]]:
    """SQL predicate selecting the rows of ``scope``."""
    if isinstance(scope, DraftScope):
        return f"{column} = ?", (scope.change_set_id,)
    return f"{column} IS NULL", ()


def _instance_hooks(
    hooks: dict[str, str] | None, capability: SegmentTypeCapability | None
) -> dict[str, str] | None:
    """Strip hooks that merely repeat the type defaults."""
    if not hooks:
        return None
    defaults = capability.hooks if capability else {}
    own = {k: v for k, v in hooks.items() if defaults.get(k) != v}
    return own or None


def _group_transitions(records: Sequence[TransitionRecord]) -> list[Transition]:
    """Regroup stored rows (ordered by transition_order) into portable transitions."""
    grouped: dict[str, TransitionOutcome] = {}
    for record in records:
        outcome = grouped.setdefault(record.result_name, TransitionOutcome())
        target = TransitionTarget(next_segment=record.next_segment_name, params=record.params)
        if record.context_key is None:
            outcome.next_segment = target.next_segment
            outcome.params = target.params
            continue
        if record.context_key == CONTEXT_DEFAULT:
            outcome.default = target
        else:
            outcome.context_key = {**(outcome.context_key or {}), record.context_key: target}
    return [Transition(result_name=name, outcome=outcome) for name, outcome in grouped.items()]


class ReplaceScopeResult(NamedTuple):
    created: int
    updated: int
    pruned: int


class SegmentGraphStore:
    """Storage abstraction for the segments of one routing and scope.

    A scope is either the published configuration or one draft. Methods
    never commit; every write runs inside ``transaction()`` owned by the
    caller, so multi-step edits apply all-or-nothing.
    """

    def __init__(self, types: SegmentTypeRegistry | None = None):
        self._types = types or SegmentTypeRegistry()

    # ==================== Whole-scope operations ====================

    async def replace_scope(
        self,
        routing_id: str,
        scope: Scope,
        segments: Sequence[SegmentSnapshot],
        type_table: Mapping[str, SegmentTypeCapability],
        prune: bool = False,
        saved_by: str | None = None,
    ) -> ReplaceScopeResult:
        """Upsert every segment of ``segments`` into ``scope``.

        Config and transition rows of each written segment are replaced.
        Segments of the scope missing from ``segments`` are left alone
        unless ``prune`` is set, in which case they are soft-deleted.
        """
        db = await get_db()
        existing = await self._active_ids_by_name(routing_id, scope)
        now = _now()
        created = updated = 0

        for seg in segments:
            capability = type_table.get(seg.segment_type)
            hooks = _instance_hooks(seg.hooks, capability)
            hooks_json = json.dumps(hooks) if hooks else None
            segment_id = existing.get(seg.segment_name)

            if segment_id is None:
                segment_id = _generate_id()
                await db.execute(
                    """
                    INSERT INTO segments (segment_id, routing_id, segment_name, segment_type,
                                          display_name, change_set_id, segment_order, hooks_json,
                                          is_active, created_at, created_by, updated_at, updated_by)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, 1, ?, ?, ?, ?)
                    """,
                    (
                        segment_id,
                        routing_id,
                        seg.segment_name,
                        seg.segment_type,
                        seg.display_name,
                        scope.change_set_id,
                        seg.segment_order,
                        hooks_json,
                        now,
                        saved_by,
                        now,
                        saved_by,
                    ),
                )
                existing[seg.segment_name] = segment_id
                created += 1
            else:
                await db.execute(
                    """
                    UPDATE segments
                    SET segment_type = ?, display_name = ?, segment_order = ?, hooks_json = ?,
                        updated_at = ?, updated_by = ?
                    WHERE segment_id = ?
                    """,
                    (
                        seg.segment_type,
                        seg.display_name,
                        seg.segment_order,
                        hooks_json,
                        now,
                        saved_by,
                        segment_id,
                    ),
                )
                await db.execute("DELETE FROM segment_configs WHERE segment_id = ?", (segment_id,))
                await db.execute(
                    "DELETE FROM segment_transitions WHERE segment_id = ?", (segment_id,)
                )
                updated += 1

            await self._write_configs(segment_id, seg.segment_name, seg.config, capability)
            await self._write_transitions(segment_id, seg.transitions)

        pruned = 0
        if prune:
            keep = {s.segment_name for s in segments}
            for name, segment_id in existing.items():
                if name not in keep:
                    await self._soft_delete_by_id(segment_id, saved_by)
                    pruned += 1

        logger.debug(
            "Replaced %s of %s: %d created, %d updated, %d pruned",
            scope.describe(),
            routing_id,
            created,
            updated,
            pruned,
        )
        return ReplaceScopeResult(created, updated, pruned)

    async def load_scope(self, routing_id: str, scope: Scope) -> list[SegmentSnapshot]:
        """Load the active segments of a scope as flow snapshots.

        Hooks are merged over the type defaults and terminal/category hints
        are filled from the type dictionary.
        """
        segments = await self.list_segments(routing_id, scope)
        type_table = await self._types.capability_table()

        snapshots = []
        for seg in segments:
            capability = type_table.get(seg.segment_type)
            snapshots.append(
                SegmentSnapshot(
                    segment_name=seg.segment_name,
                    segment_type=seg.segment_type,
                    display_name=seg.display_name,
                    config=seg.config,
                    transitions=_group_transitions(seg.transitions),
                    hooks=capability.merge_hooks(seg.hooks) if capability else seg.hooks,
                    segment_order=seg.segment_order,
                    is_active=seg.is_active,
                    is_terminal=capability.is_terminal if capability else None,
                    category=capability.category if capability else None,
                )
            )
        return snapshots

    async def segment_names(self, routing_id: str, scope: Scope) -> set[str]:
        return set(await self._active_ids_by_name(routing_id, scope))

    # ==================== Segments ====================

    async def create_segment(self, data: SegmentCreate) -> Segment:
        """Create a single segment with its configs and transitions."""
        capability = await self._types.resolve_type(data.segment_type)
        if capability is None:
            raise NotFoundError(f"Segment type '{data.segment_type}' not found")
        validate_hooks(capability, data.hooks, data.segment_name)

        scope = DraftScope(data.change_set_id) if data.change_set_id else PUBLISHED
        if await self.get_segment(data.routing_id, data.segment_name, scope) is not None:
            raise ConflictError(
                f"Segment '{data.segment_name}' already exists in {scope.describe()} "
                f"of {data.routing_id}"
            )

        seen: set[tuple[str, str | None]] = set()
        for t in data.transitions:
            key = (t.result_name, t.context_key)
            if key in seen:
                raise ConflictError(
                    f"Duplicate transition '{t.result_name}' "
                    f"(context {t.context_key!r}) on segment '{data.segment_name}'"
                )
            seen.add(key)

        db = await get_db()
        segment_id = _generate_id()
        now = _now()
        hooks = _instance_hooks(data.hooks, capability)
        await db.execute(
            """
            INSERT INTO segments (segment_id, routing_id, segment_name, segment_type, display_name,
                                  change_set_id, segment_order, hooks_json, is_active,
                                  created_at, created_by, updated_at, updated_by)
            VALUES (?, ?, ?, ?, ?, ?, NULL, ?, 1, ?, ?, ?, ?)
            """,
            (
                segment_id,
                data.routing_id,
                data.segment_name,
                data.segment_type,
                data.display_name,
                data.change_set_id,
                json.dumps(hooks) if hooks else None,
                now,
                data.created_by,
                now,
                data.created_by,
            ),
        )
        await self._write_configs(segment_id, data.segment_name, data.config, capability)
        for order, t in enumerate(data.transitions):
            await self._insert_transition_row(
                segment_id, t.result_name, t.context_key, t.next_segment_name, t.params, order
            )

        return await self._require_segment_by_id(segment_id)

    async def get_segment(self, routing_id: str, segment_name: str, scope: Scope) -> Segment | None:
        """Get the active segment with this name in ``scope``."""
        db = await get_db()
        clause, params = _scope_clause(scope)
        cursor = await db.execute(
            f"""
            SELECT * FROM segments
            WHERE routing_id = ? AND segment_name = ? AND {clause} AND is_active = 1
            """,
            (routing_id, segment_name, *params),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return await self._hydrate(row)

    async def get_segment_by_id(self, segment_id: str) -> Segment | None:
        db = await get_db()
        cursor = await db.execute("SELECT * FROM segments WHERE segment_id = ?", (segment_id,))
        row = await cursor.fetchone()
        if row is None:
            return None
        return await self._hydrate(row)

    async def list_segments(
        self, routing_id: str, scope: Scope, include_inactive: bool = False
    ) -> list[Segment]:
        """List the segments of a scope ordered by execution order, then name."""
        db = await get_db()
        clause, params = _scope_clause(scope, "s.change_set_id")
        active = "" if include_inactive else " AND s.is_active = 1"

        cursor = await db.execute(
            f"""
            SELECT s.* FROM segments s
            WHERE s.routing_id = ? AND {clause}{active}
            ORDER BY s.segment_order IS NULL, s.segment_order, s.segment_name
            """,
            (routing_id, *params),
        )
        rows = await cursor.fetchall()

        # Children for the whole scope in two queries
        cursor = await db.execute(
            f"""
            SELECT c.* FROM segment_configs c
            JOIN segments s ON s.segment_id = c.segment_id
            WHERE s.routing_id = ? AND {clause}{active}
            ORDER BY c.segment_id, c.config_order
            """,
            (routing_id, *params),
        )
        configs: dict[str, list[ConfigItem]] = {}
        for config_row in await cursor.fetchall():
            configs.setdefault(config_row["segment_id"], []).append(
                self._row_to_config(config_row)
            )

        cursor = await db.execute(
            f"""
            SELECT t.* FROM segment_transitions t
            JOIN segments s ON s.segment_id = t.segment_id
            WHERE s.routing_id = ? AND {clause}{active} AND t.is_active = 1
            ORDER BY t.segment_id, t.transition_order
            """,
            (routing_id, *params),
        )
        transitions: dict[str, list[TransitionRecord]] = {}
        for transition_row in await cursor.fetchall():
            transitions.setdefault(transition_row["segment_id"], []).append(
                self._row_to_transition(transition_row)
            )

        return [
            self._row_to_segment(
                row,
                configs.get(row["segment_id"], []),
                transitions.get(row["segment_id"], []),
            )
            for row in rows
        ]

    async def update_segment(
        self, routing_id: str, segment_name: str, scope: Scope, update: SegmentUpdate
    ) -> Segment:
        """Update display name and/or hooks of a segment."""
        segment = await self._require_segment(routing_id, segment_name, scope)
        capability = await self._types.resolve_type(segment.segment_type)

        display_name = segment.display_name
        hooks = segment.hooks
        if update.display_name is not None:
            display_name = update.display_name
        if update.hooks is not None:
            if capability is not None:
                validate_hooks(capability, update.hooks, segment_name)
            hooks = _instance_hooks(update.hooks, capability)

        db = await get_db()
        await db.execute(
            """
            UPDATE segments SET display_name = ?, hooks_json = ?, updated_at = ?, updated_by = ?
            WHERE segment_id = ?
            """,
            (
                display_name,
                json.dumps(hooks) if hooks else None,
                _now(),
                update.updated_by,
                segment.segment_id,
            ),
        )
        return await self._require_segment_by_id(segment.segment_id)

    async def update_config(
        self, routing_id: str, segment_name: str, scope: Scope, update: ConfigUpdate
    ) -> Segment:
        """Replace the config list of a segment, leaving transitions alone."""
        segment = await self._require_segment(routing_id, segment_name, scope)
        capability = await self._types.resolve_type(segment.segment_type)

        db = await get_db()
        await db.execute(
            "DELETE FROM segment_configs WHERE segment_id = ?", (segment.segment_id,)
        )
        await self._write_configs(segment.segment_id, segment_name, update.config, capability)
        await db.execute(
            "UPDATE segments SET updated_at = ?, updated_by = ? WHERE segment_id = ?",
            (_now(), update.updated_by, segment.segment_id),
        )
        return await self._require_segment_by_id(segment.segment_id)

    async def soft_delete_segment(
        self, routing_id: str, segment_name: str, scope: Scope, deleted_by: str | None = None
    ) -> None:
        """Deactivate a segment and its transitions. The row stays as a tombstone."""
        segment = await self._require_segment(routing_id, segment_name, scope)
        await self._soft_delete_by_id(segment.segment_id, deleted_by)

    async def purge_segment(self, segment_id: str) -> None:
        """Hard-delete a segment row with its configs and transitions."""
        db = await get_db()
        cursor = await db.execute("DELETE FROM segments WHERE segment_id = ?", (segment_id,))
        if cursor.rowcount == 0:
            raise NotFoundError(f"Segment {segment_id} not found")

    async def update_segment_order(
        self, routing_id: str, scope: Scope, items: Sequence[SegmentOrderItem]
    ) -> int:
        """Apply a manual execution-order override. Returns the count updated."""
        db = await get_db()
        ids = await self._active_ids_by_name(routing_id, scope)
        missing = [item.segment_name for item in items if item.segment_name not in ids]
        if missing:
            raise NotFoundError(f"Segments not found in {scope.describe()}: {', '.join(missing)}")

        for item in items:
            await db.execute(
                "UPDATE segments SET segment_order = ?, updated_at = ? WHERE segment_id = ?",
                (item.segment_order, _now(), ids[item.segment_name]),
            )
        return len(items)

    async def get_graph(self, routing_id: str, scope: Scope) -> SegmentGraph:
        """Nodes and edges of a scope. Terminal exits have ``to_segment=None``."""
        segments = await self.list_segments(routing_id, scope)
        edges = [
            GraphEdge(
                from_segment=seg.segment_name,
                to_segment=t.next_segment_name,
                result_name=t.result_name,
                context_key=t.context_key,
            )
            for seg in segments
            for t in seg.transitions
        ]
        return SegmentGraph(segments=[s.segment_name for s in segments], edges=edges)

    # ==================== Transitions ====================

    async def add_transition(
        self, routing_id: str, segment_name: str, scope: Scope, data: TransitionCreate
    ) -> TransitionRecord:
        """Add one transition row; ``(result_name, context_key)`` must be unused."""
        segment = await self._require_segment(routing_id, segment_name, scope)
        for existing in segment.transitions:
            if (existing.result_name, existing.context_key) == (data.result_name, data.context_key):
                raise ConflictError(
                    f"Transition '{data.result_name}' (context {data.context_key!r}) "
                    f"already exists on segment '{segment_name}'"
                )

        order = max((t.transition_order for t in segment.transitions), default=-1) + 1
        transition_id = await self._insert_transition_row(
            segment.segment_id,
            data.result_name,
            data.context_key,
            data.next_segment_name,
            data.params,
            order,
        )
        return TransitionRecord(
            transition_id=transition_id,
            result_name=data.result_name,
            context_key=data.context_key,
            next_segment_name=data.next_segment_name,
            params=data.params,
            transition_order=order,
        )

    async def update_transition(
        self, transition_id: str, update: TransitionUpdate
    ) -> TransitionRecord:
        """Retarget a transition row. Fields absent from ``update`` keep their value."""
        row = await self._require_transition_row(transition_id)
        fields = update.model_dump(exclude_unset=True)

        next_segment_name = fields.get("next_segment_name", row["next_segment_name"])
        params_json = row["params_json"]
        if "params" in fields:
            params_json = json.dumps(update.params) if update.params is not None else None

        db = await get_db()
        await db.execute(
            """
            UPDATE segment_transitions SET next_segment_name = ?, params_json = ?
            WHERE transition_id = ?
            """,
            (next_segment_name, params_json, transition_id),
        )
        return self._row_to_transition(await self._require_transition_row(transition_id))

    async def transition_owner(self, transition_id: str) -> tuple[str, str | None]:
        """``(routing_id, change_set_id)`` of the segment holding an active transition."""
        db = await get_db()
        cursor = await db.execute(
            """
            SELECT s.routing_id, s.change_set_id FROM segment_transitions t
            JOIN segments s ON s.segment_id = t.segment_id
            WHERE t.transition_id = ? AND t.is_active = 1
            """,
            (transition_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            raise NotFoundError(f"Transition {transition_id} not found")
        return row["routing_id"], row["change_set_id"]

    async def delete_transition(self, transition_id: str) -> None:
        db = await get_db()
        cursor = await db.execute(
            "UPDATE segment_transitions SET is_active = 0 WHERE transition_id = ? AND is_active = 1",
            (transition_id,),
        )
        if cursor.rowcount == 0:
            raise NotFoundError(f"Transition {transition_id} not found")

    # ==================== Lifecycle helpers ====================

    async def copy_scope(
        self, routing_id: str, source: Scope, target: Scope, copied_by: str | None = None
    ) -> int:
        """Copy every active segment of ``source`` into ``target``. Returns the count."""
        segments = await self.list_segments(routing_id, source)
        for seg in segments:
            await self._copy_segment(seg, target, copied_by)
        return len(segments)

    async def copy_segment_to_published(
        self, segment: Segment, published_by: str | None = None
    ) -> str:
        """Copy a draft segment (configs and transitions by name) into published scope."""
        return await self._copy_segment(segment, PUBLISHED, published_by)

    async def deactivate_published_segment(
        self, routing_id: str, segment_name: str, updated_by: str | None = None
    ) -> bool:
        """Deactivate the live published segment with this name, if any."""
        segment = await self.get_segment(routing_id, segment_name, PUBLISHED)
        if segment is None:
            return False
        await self._soft_delete_by_id(segment.segment_id, updated_by)
        return True

    async def soft_delete_scope(
        self, routing_id: str, scope: Scope, deleted_by: str | None = None
    ) -> int:
        """Deactivate every active segment of a scope. Returns the count."""
        ids = await self._active_ids_by_name(routing_id, scope)
        for segment_id in ids.values():
            await self._soft_delete_by_id(segment_id, deleted_by)
        return len(ids)

    async def list_tombstoned_names(self, routing_id: str, change_set_id: str) -> list[str]:
        """Names deleted inside a draft: inactive rows with no active row of the same name."""
        db = await get_db()
        cursor = await db.execute(
            """
            SELECT DISTINCT segment_name FROM segments
            WHERE routing_id = ? AND change_set_id = ? AND is_active = 0
              AND segment_name NOT IN (
                  SELECT segment_name FROM segments
                  WHERE routing_id = ? AND change_set_id = ? AND is_active = 1
              )
            ORDER BY segment_name
            """,
            (routing_id, change_set_id, routing_id, change_set_id),
        )
        return [row["segment_name"] for row in await cursor.fetchall()]

    async def count_rows(self, routing_id: str) -> int:
        """Total segment rows of a routing across all scopes, active or not."""
        db = await get_db()
        cursor = await db.execute(
            "SELECT COUNT(*) AS n FROM segments WHERE routing_id = ?", (routing_id,)
        )
        row = await cursor.fetchone()
        return row["n"]

    # ==================== Internals ====================

    async def _require_segment(self, routing_id: str, segment_name: str, scope: Scope) -> Segment:
        segment = await self.get_segment(routing_id, segment_name, scope)
        if segment is None:
            raise NotFoundError(
                f"Segment '{segment_name}' not found in {scope.describe()} of {routing_id}"
            )
        return segment

    async def _require_segment_by_id(self, segment_id: str) -> Segment:
        segment = await self.get_segment_by_id(segment_id)
        if segment is None:
            raise NotFoundError(f"Segment {segment_id} not found")
        return segment

    async def _require_transition_row(self, transition_id: str) -> aiosqlite.Row:
        db = await get_db()
        cursor = await db.execute(
            "SELECT * FROM segment_transitions WHERE transition_id = ? AND is_active = 1",
            (transition_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            raise NotFoundError(f"Transition {transition_id} not found")
        return row

    async def _active_ids_by_name(self, routing_id: str, scope: Scope) -> dict[str, str]:
        db = await get_db()
        clause, params = _scope_clause(scope)
        cursor = await db.execute(
            f"""
            SELECT segment_id, segment_name FROM segments
            WHERE routing_id = ? AND {clause} AND is_active = 1
            """,
            (routing_id, *params),
        )
        return {row["segment_name"]: row["segment_id"] for row in await cursor.fetchall()}

    async def _soft_delete_by_id(self, segment_id: str, deleted_by: str | None) -> None:
        db = await get_db()
        await db.execute(
            """
            UPDATE segments SET is_active = 0, updated_at = ?, updated_by = ?
            WHERE segment_id = ?
            """,
            (_now(), deleted_by, segment_id),
        )
        await db.execute(
            "UPDATE segment_transitions SET is_active = 0 WHERE segment_id = ?",
            (segment_id,),
        )

    async def _copy_segment(self, segment: Segment, target: Scope, copied_by: str | None) -> str:
        db = await get_db()
        new_id = _generate_id()
        now = _now()
        await db.execute(
            """
            INSERT INTO segments (segment_id, routing_id, segment_name, segment_type, display_name,
                                  change_set_id, segment_order, hooks_json, is_active,
                                  created_at, created_by, updated_at, updated_by)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, 1, ?, ?, ?, ?)
            """,
            (
                new_id,
                segment.routing_id,
                segment.segment_name,
                segment.segment_type,
                segment.display_name,
                target.change_set_id,
                segment.segment_order,
                json.dumps(segment.hooks) if segment.hooks else None,
                now,
                copied_by,
                now,
                copied_by,
            ),
        )
        # Raw rows, so stored value types survive the copy
        await db.execute(
            """
            INSERT INTO segment_configs (segment_id, config_key, config_value, value_type,
                                         is_displayed, is_editable, config_order)
            SELECT ?, config_key, config_value, value_type, is_displayed, is_editable, config_order
            FROM segment_configs WHERE segment_id = ?
            """,
            (new_id, segment.segment_id),
        )
        for t in segment.transitions:
            await self._insert_transition_row(
                new_id,
                t.result_name,
                t.context_key,
                t.next_segment_name,
                t.params,
                t.transition_order,
            )
        return new_id

    async def _write_configs(
        self,
        segment_id: str,
        segment_name: str,
        config: Sequence[ConfigItem],
        capability: SegmentTypeCapability | None,
    ) -> None:
        db = await get_db()
        key_schema = capability.config_key_schema if capability else {}
        order = 0
        for item in config:
            definition = key_schema.get(item.key)
            if key_schema and definition is None:
                logger.warning(
                    "Skipping unknown config key '%s' on segment '%s' (type %s)",
                    item.key,
                    segment_name,
                    capability.segment_type_name if capability else "?",
                )
                continue
            key_type = definition.key_type if definition else KeyType.JSON
            await db.execute(
                """
                INSERT INTO segment_configs (segment_id, config_key, config_value, value_type,
                                             is_displayed, is_editable, config_order)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    segment_id,
                    item.key,
                    serialize_config_value(item.value, key_type),
                    key_type.value,
                    1 if item.is_displayed else 0,
                    1 if item.is_editable else 0,
                    order,
                ),
            )
            order += 1

    async def _write_transitions(self, segment_id: str, transitions: Sequence[Transition]) -> None:
        order = 0
        for transition in transitions:
            for context_key, target in transition.rows():
                await self._insert_transition_row(
                    segment_id,
                    transition.result_name,
                    context_key,
                    target.next_segment,
                    target.params,
                    order,
                )
                order += 1

    async def _insert_transition_row(
        self,
        segment_id: str,
        result_name: str,
        context_key: str | None,
        next_segment_name: str | None,
        params: dict[str, Any] | None,
        order: int,
    ) -> str:
        db = await get_db()
        transition_id = _generate_id()
        await db.execute(
            """
            INSERT INTO segment_transitions (transition_id, segment_id, result_name, context_key,
                                             next_segment_name, params_json, transition_order,
                                             is_active, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, 1, ?)
            """,
            (
                transition_id,
                segment_id,
                result_name,
                context_key,
                next_segment_name,
                json.dumps(params) if params is not None else None,
                order,
                _now(),
            ),
        )
        return transition_id

    async def _hydrate(self, row: aiosqlite.Row) -> Segment:
        db = await get_db()
        cursor = await db.execute(
            "SELECT * FROM segment_configs WHERE segment_id = ? ORDER BY config_order",
            (row["segment_id"],),
        )
        configs = [self._row_to_config(r) for r in await cursor.fetchall()]
        cursor = await db.execute(
            """
            SELECT * FROM segment_transitions
            WHERE segment_id = ? AND is_active = 1 ORDER BY transition_order
            """,
            (row["segment_id"],),
        )
        transitions = [self._row_to_transition(r) for r in await cursor.fetchall()]
        return self._row_to_segment(row, configs, transitions)

    @staticmethod
    def _row_to_config(row: aiosqlite.Row) -> ConfigItem:
        return ConfigItem(
            key=row["config_key"],
            value=parse_config_value(row["config_value"], KeyType(row["value_type"])),
            is_displayed=bool(row["is_displayed"]),
            is_editable=bool(row["is_editable"]),
        )

    @staticmethod
    def _row_to_transition(row: aiosqlite.Row) -> TransitionRecord:
        return TransitionRecord(
            transition_id=row["transition_id"],
            result_name=row["result_name"],
            context_key=row["context_key"],
            next_segment_name=row["next_segment_name"],
            params=json.loads(row["params_json"]) if row["params_json"] else None,
            transition_order=row["transition_order"],
        )

    @staticmethod
    def _row_to_segment(
        row: aiosqlite.Row, configs: list[ConfigItem], transitions: list[TransitionRecord]
    ) -> Segment:
        return Segment(
            segment_id=row["segment_id"],
            routing_id=row["routing_id"],
            segment_name=row["segment_name"],
            segment_type=row["segment_type"],
            display_name=row["display_name"],
            change_set_id=row["change_set_id"],
            segment_order=row["segment_order"],
            hooks=json.loads(row["hooks_json"]) if row["hooks_json"] else None,
            is_active=bool(row["is_active"]),
            config=configs,
            transitions=transitions,
            created_at=row["created_at"],
            created_by=row["created_by"],
            updated_at=row["updated_at"],
            updated_by=row["updated_by"],
        )
