"""Tests for SegmentGraphStore."""

import logging

import pytest
from pydantic import ValidationError

from ivrflow.db import changeset_store, get_db, segment_store, transaction, type_registry
from ivrflow.errors import ConflictError, InvalidHooksError, NotFoundError
from ivrflow.models import (
    PUBLISHED,
    ConfigItem,
    ConfigUpdate,
    DraftScope,
    SegmentCreate,
    SegmentOrderItem,
    SegmentSnapshot,
    SegmentUpdate,
    Transition,
    TransitionCreate,
    TransitionOutcome,
    TransitionTarget,
    TransitionUpdate,
)

ROUTING_ID = "ACME-IVR-MAIN"


async def _save(segments, scope=PUBLISHED, prune=False):
    table = await type_registry.capability_table()
    async with transaction():
        return await segment_store.replace_scope(ROUTING_ID, scope, segments, table, prune=prune)


async def _draft() -> DraftScope:
    async with transaction():
        change_set = await changeset_store.create(ROUTING_ID, "v-test")
    return DraftScope(change_set.change_set_id)


class TestReplaceScope:
    """Tests for whole-scope save and load."""

    async def test_round_trip(self, segment_types, sample_flow):
        result = await _save(sample_flow.segments)
        assert result == (5, 0, 0)

        loaded = {s.segment_name: s for s in await segment_store.load_scope(ROUTING_ID, PUBLISHED)}
        assert set(loaded) == {"init", "menu", "sales", "support", "support_fr"}

        menu = loaded["menu"]
        assert menu.display_name == "Main Menu"
        assert menu.is_terminal is False
        assert menu.category == "interaction"
        assert [(c.key, c.value) for c in menu.config] == [
            ("prompt", "welcome"),
            ("max_retries", 3),
            ("interruptible", False),
        ]
        assert [t.model_dump() for t in menu.transitions] == [
            t.model_dump() for t in sample_flow.segments[1].transitions
        ]

        assert loaded["sales"].is_terminal is True

    async def test_type_default_hooks_merged_on_load(self, segment_types, sample_flow):
        await _save(sample_flow.segments)

        stored = await segment_store.get_segment(ROUTING_ID, "init", PUBLISHED)
        assert stored.hooks is None

        loaded = {s.segment_name: s for s in await segment_store.load_scope(ROUTING_ID, PUBLISHED)}
        assert loaded["init"].hooks == {"onEnter": "log_call_start"}

    async def test_instance_hook_override_kept(self, segment_types):
        init = SegmentSnapshot(
            segment_name="init",
            segment_type="init",
            hooks={"onEnter": "log_call_start", "onExit": "log_call_end"},
        )
        await _save([init])

        stored = await segment_store.get_segment(ROUTING_ID, "init", PUBLISHED)
        assert stored.hooks == {"onExit": "log_call_end"}

    async def test_second_save_updates_in_place(self, segment_types, sample_flow):
        await _save(sample_flow.segments)
        before = await segment_store.get_segment(ROUTING_ID, "menu", PUBLISHED)

        result = await _save(sample_flow.segments)
        after = await segment_store.get_segment(ROUTING_ID, "menu", PUBLISHED)

        assert result == (0, 5, 0)
        assert after.segment_id == before.segment_id
        assert len(after.transitions) == len(before.transitions)

    async def test_prune_soft_deletes_missing(self, segment_types, sample_flow):
        await _save(sample_flow.segments)
        result = await _save(sample_flow.segments[:2], prune=True)

        assert result.pruned == 3
        assert await segment_store.segment_names(ROUTING_ID, PUBLISHED) == {"init", "menu"}
        # Tombstones remain as rows
        assert await segment_store.count_rows(ROUTING_ID) == 5

    async def test_without_prune_keeps_missing(self, segment_types, sample_flow):
        await _save(sample_flow.segments)
        await _save(sample_flow.segments[:2])
        assert len(await segment_store.segment_names(ROUTING_ID, PUBLISHED)) == 5

    async def test_unknown_config_key_skipped(self, segment_types, caplog):
        menu = SegmentSnapshot(
            segment_name="menu",
            segment_type="menu",
            config=[ConfigItem(key="prompt", value="hi"), ConfigItem(key="colour", value="red")],
        )
        with caplog.at_level(logging.WARNING, logger="ivrflow.db.segment_store"):
            await _save([menu])

        stored = await segment_store.get_segment(ROUTING_ID, "menu", PUBLISHED)
        assert [c.key for c in stored.config] == ["prompt"]
        assert "colour" in caplog.text

    async def test_undeclared_type_stores_json(self):
        seg = SegmentSnapshot(
            segment_name="free",
            segment_type="unregistered",
            config=[ConfigItem(key="anything", value={"a": [1, 2]})],
        )
        await _save([seg])

        stored = await segment_store.get_segment(ROUTING_ID, "free", PUBLISHED)
        assert stored.config[0].value == {"a": [1, 2]}

    async def test_scopes_are_isolated(self, segment_types, sample_flow):
        await _save(sample_flow.segments)
        draft = await _draft()
        await _save(sample_flow.segments[:1], scope=draft)

        assert await segment_store.segment_names(ROUTING_ID, draft) == {"init"}
        assert len(await segment_store.segment_names(ROUTING_ID, PUBLISHED)) == 5


class TestGranularEdits:
    """Tests for single-segment and single-transition edits."""

    async def test_create_segment(self, segment_types):
        async with transaction():
            segment = await segment_store.create_segment(
                SegmentCreate(
                    routing_id=ROUTING_ID,
                    segment_name="menu",
                    segment_type="menu",
                    config=[ConfigItem(key="max_retries", value="2")],
                    transitions=[TransitionCreate(result_name="1", next_segment_name="sales")],
                )
            )

        assert segment.change_set_id is None
        assert segment.config[0].value == 2
        assert segment.transitions[0].next_segment_name == "sales"

    async def test_create_duplicate_name(self, segment_types):
        data = SegmentCreate(routing_id=ROUTING_ID, segment_name="menu", segment_type="menu")
        async with transaction():
            await segment_store.create_segment(data)

        with pytest.raises(ConflictError):
            async with transaction():
                await segment_store.create_segment(data)

    async def test_create_duplicate_transition(self, segment_types):
        data = SegmentCreate(
            routing_id=ROUTING_ID,
            segment_name="menu",
            segment_type="menu",
            transitions=[
                TransitionCreate(result_name="1", next_segment_name="a"),
                TransitionCreate(result_name="1", next_segment_name="b"),
            ],
        )
        with pytest.raises(ConflictError):
            async with transaction():
                await segment_store.create_segment(data)
        assert await segment_store.count_rows(ROUTING_ID) == 0

    async def test_create_unknown_type(self, segment_types):
        with pytest.raises(NotFoundError):
            async with transaction():
                await segment_store.create_segment(
                    SegmentCreate(routing_id=ROUTING_ID, segment_name="x", segment_type="nope")
                )

    async def test_create_with_invalid_hooks(self, segment_types):
        with pytest.raises(InvalidHooksError) as exc_info:
            async with transaction():
                await segment_store.create_segment(
                    SegmentCreate(
                        routing_id=ROUTING_ID,
                        segment_name="init",
                        segment_type="init",
                        hooks={"onEnter": "Not-A-Handler"},
                    )
                )
        assert exc_info.value.segment_name == "init"

    async def test_update_segment_and_config(self, segment_types, sample_flow):
        await _save(sample_flow.segments)

        async with transaction():
            await segment_store.update_segment(
                ROUTING_ID, "menu", PUBLISHED, SegmentUpdate(display_name="Top Menu")
            )
            updated = await segment_store.update_config(
                ROUTING_ID,
                "menu",
                PUBLISHED,
                ConfigUpdate(config=[ConfigItem(key="prompt", value="bonjour")]),
            )

        assert updated.display_name == "Top Menu"
        assert [(c.key, c.value) for c in updated.config] == [("prompt", "bonjour")]
        assert len(updated.transitions) == 3

    async def test_update_missing_segment(self, segment_types):
        with pytest.raises(NotFoundError):
            async with transaction():
                await segment_store.update_segment(
                    ROUTING_ID, "ghost", PUBLISHED, SegmentUpdate(display_name="x")
                )

    async def test_transition_edits(self, segment_types, sample_flow):
        await _save(sample_flow.segments)

        async with transaction():
            added = await segment_store.add_transition(
                ROUTING_ID, "menu", PUBLISHED,
                TransitionCreate(result_name="timeout", next_segment_name="sales"),
            )
        assert added.transition_order == 3

        with pytest.raises(ConflictError):
            async with transaction():
                await segment_store.add_transition(
                    ROUTING_ID, "menu", PUBLISHED,
                    TransitionCreate(result_name="timeout", next_segment_name="support"),
                )

        async with transaction():
            retargeted = await segment_store.update_transition(
                added.transition_id, TransitionUpdate(next_segment_name="support")
            )
        assert retargeted.next_segment_name == "support"

        async with transaction():
            await segment_store.delete_transition(added.transition_id)
        menu = await segment_store.get_segment(ROUTING_ID, "menu", PUBLISHED)
        assert "timeout" not in {t.result_name for t in menu.transitions}

        with pytest.raises(NotFoundError):
            async with transaction():
                await segment_store.delete_transition(added.transition_id)

    async def test_update_transition_keeps_unset_fields(self, segment_types, sample_flow):
        await _save(sample_flow.segments)
        init = await segment_store.get_segment(ROUTING_ID, "init", PUBLISHED)
        transition_id = init.transitions[0].transition_id

        async with transaction():
            updated = await segment_store.update_transition(
                transition_id, TransitionUpdate(params={"retries": 2})
            )
        assert updated.next_segment_name == "menu"
        assert updated.params == {"retries": 2}

        async with transaction():
            updated = await segment_store.update_transition(
                transition_id, TransitionUpdate(next_segment_name=None)
            )
        # An explicit null makes the row a terminal exit
        assert updated.next_segment_name is None
        assert updated.params == {"retries": 2}

    async def test_transition_owner(self, segment_types, sample_flow):
        scope = await _draft()
        await _save(sample_flow.segments, scope=scope)
        init = await segment_store.get_segment(ROUTING_ID, "init", scope)
        transition_id = init.transitions[0].transition_id

        assert await segment_store.transition_owner(transition_id) == (
            ROUTING_ID,
            scope.change_set_id,
        )
        async with transaction():
            await segment_store.delete_transition(transition_id)
        with pytest.raises(NotFoundError):
            await segment_store.transition_owner(transition_id)

    async def test_soft_delete_leaves_tombstone(self, segment_types, sample_flow):
        draft = await _draft()
        await _save(sample_flow.segments, scope=draft)

        async with transaction():
            await segment_store.soft_delete_segment(ROUTING_ID, "sales", draft)

        assert "sales" not in await segment_store.segment_names(ROUTING_ID, draft)
        assert await segment_store.list_tombstoned_names(
            ROUTING_ID, draft.change_set_id
        ) == ["sales"]

    async def test_recreated_name_is_not_tombstoned(self, segment_types, sample_flow):
        draft = await _draft()
        await _save(sample_flow.segments, scope=draft)
        async with transaction():
            await segment_store.soft_delete_segment(ROUTING_ID, "sales", draft)
        await _save(sample_flow.segments[2:3], scope=draft)

        assert await segment_store.list_tombstoned_names(ROUTING_ID, draft.change_set_id) == []

    async def test_purge(self, segment_types, sample_flow):
        await _save(sample_flow.segments)
        menu = await segment_store.get_segment(ROUTING_ID, "menu", PUBLISHED)

        async with transaction():
            await segment_store.purge_segment(menu.segment_id)

        assert await segment_store.get_segment_by_id(menu.segment_id) is None
        db = await get_db()
        cursor = await db.execute(
            "SELECT COUNT(*) AS n FROM segment_configs WHERE segment_id = ?", (menu.segment_id,)
        )
        assert (await cursor.fetchone())["n"] == 0

        with pytest.raises(NotFoundError):
            async with transaction():
                await segment_store.purge_segment(menu.segment_id)

    async def test_order_override(self, segment_types, sample_flow):
        await _save(sample_flow.segments)

        async with transaction():
            count = await segment_store.update_segment_order(
                ROUTING_ID,
                PUBLISHED,
                [
                    SegmentOrderItem(segment_name="sales", segment_order=1),
                    SegmentOrderItem(segment_name="init", segment_order=2),
                ],
            )
        assert count == 2

        names = [s.segment_name for s in await segment_store.list_segments(ROUTING_ID, PUBLISHED)]
        assert names[:2] == ["sales", "init"]

        with pytest.raises(NotFoundError):
            async with transaction():
                await segment_store.update_segment_order(
                    ROUTING_ID, PUBLISHED, [SegmentOrderItem(segment_name="ghost", segment_order=1)]
                )

    async def test_graph(self, segment_types, sample_flow):
        await _save(sample_flow.segments)
        graph = await segment_store.get_graph(ROUTING_ID, PUBLISHED)

        assert set(graph.segments) == {"init", "menu", "sales", "support", "support_fr"}
        menu_edges = {
            (e.result_name, e.context_key, e.to_segment)
            for e in graph.edges
            if e.from_segment == "menu"
        }
        assert menu_edges == {
            ("1", None, "sales"),
            ("2", "FR", "support_fr"),
            ("2", "default", "support"),
        }


class TestTransactions:
    """Tests for all-or-nothing writes."""

    async def test_rollback_on_error(self, segment_types, sample_flow):
        with pytest.raises(RuntimeError):
            async with transaction():
                table = await type_registry.capability_table()
                await segment_store.replace_scope(
                    ROUTING_ID, PUBLISHED, sample_flow.segments, table
                )
                raise RuntimeError("boom")

        assert await segment_store.count_rows(ROUTING_ID) == 0

    async def test_unique_violation_maps_to_conflict(self, segment_types):
        db = await get_db()
        insert = """
            INSERT INTO segments (segment_id, routing_id, segment_name, segment_type, is_active)
            VALUES (?, ?, 'menu', 'menu', 1)
        """
        with pytest.raises(ConflictError):
            async with transaction():
                await db.execute(insert, ("id-1", ROUTING_ID))
                await db.execute(insert, ("id-2", ROUTING_ID))

        assert await segment_store.count_rows(ROUTING_ID) == 0


class TestTransitionRows:
    """Tests for how transitions map to stored rows."""

    async def test_same_key_reusable_after_delete(self, segment_types):
        async with transaction():
            segment = await segment_store.create_segment(
                SegmentCreate(
                    routing_id=ROUTING_ID,
                    segment_name="menu",
                    segment_type="menu",
                    transitions=[TransitionCreate(result_name="1", next_segment_name="a")],
                )
            )
        async with transaction():
            await segment_store.delete_transition(segment.transitions[0].transition_id)
            readded = await segment_store.add_transition(
                ROUTING_ID, "menu", PUBLISHED,
                TransitionCreate(result_name="1", next_segment_name="b"),
            )
        assert readded.next_segment_name == "b"

    async def test_context_rows_regroup(self, segment_types):
        transitions = [
            Transition(
                result_name="2",
                outcome=TransitionOutcome(
                    next_segment="sales",
                    context_key={"FR": TransitionTarget(next_segment="support_fr")},
                ),
            ),
            Transition(
                result_name="3",
                outcome=TransitionOutcome(default=TransitionTarget(next_segment="support")),
            ),
        ]
        await _save([SegmentSnapshot(segment_name="menu", segment_type="menu", transitions=transitions)])

        loaded = await segment_store.load_scope(ROUTING_ID, PUBLISHED)
        assert [t.model_dump() for t in loaded[0].transitions] == [
            t.model_dump() for t in transitions
        ]

    @pytest.mark.parametrize(
        "context_key",
        [{}, {"default": TransitionTarget(next_segment="support")}, {" ": TransitionTarget()}],
    )
    def test_unstorable_context_maps_rejected(self, context_key):
        with pytest.raises(ValidationError):
            TransitionOutcome(context_key=context_key)
