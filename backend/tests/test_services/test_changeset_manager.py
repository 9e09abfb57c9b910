"""Tests for the change set lifecycle: draft, save, validate, publish, discard."""

import pytest

from ivrflow.db import changeset_store, segment_store, transaction
from ivrflow.errors import (
    ConflictError,
    FlowValidationError,
    InvalidHooksError,
    NotFoundError,
    StateTransitionError,
)
from ivrflow.models import (
    PUBLISHED,
    ChangeSetStatus,
    DraftScope,
    FlowSnapshot,
    IssueType,
    SegmentSnapshot,
    Transition,
    TransitionOutcome,
)
from ivrflow.services import changeset_manager, ensure_transition

ROUTING_ID = "ACME-IVR-MAIN"


async def _published_names() -> set[str]:
    return await segment_store.segment_names(ROUTING_ID, PUBLISHED)


async def _publish_sample(sample_flow) -> str:
    draft = await changeset_manager.create_draft(ROUTING_ID, created_by="alice")
    await changeset_manager.save(ROUTING_ID, draft.change_set_id, sample_flow, saved_by="alice")
    await changeset_manager.publish(ROUTING_ID, draft.change_set_id, published_by="alice")
    return draft.change_set_id


class TestStatusMachine:
    """Tests for allowed status transitions."""

    @pytest.mark.parametrize(
        "current,target",
        [
            (ChangeSetStatus.DRAFT, ChangeSetStatus.VALIDATED),
            (ChangeSetStatus.DRAFT, ChangeSetStatus.DISCARDED),
            (ChangeSetStatus.VALIDATED, ChangeSetStatus.PUBLISHING),
            (ChangeSetStatus.PUBLISHING, ChangeSetStatus.PUBLISHED),
        ],
    )
    def test_allowed(self, current, target):
        ensure_transition(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (ChangeSetStatus.DRAFT, ChangeSetStatus.PUBLISHED),
            (ChangeSetStatus.PUBLISHED, ChangeSetStatus.DRAFT),
            (ChangeSetStatus.PUBLISHED, ChangeSetStatus.DISCARDED),
            (ChangeSetStatus.DISCARDED, ChangeSetStatus.DRAFT),
        ],
    )
    def test_rejected(self, current, target):
        with pytest.raises(StateTransitionError) as exc_info:
            ensure_transition(current, target)
        assert not exc_info.value.retriable


class TestDrafts:
    """Tests for opening drafts."""

    async def test_create_draft(self, routing):
        draft = await changeset_manager.create_draft(ROUTING_ID, created_by="alice")

        assert draft.status == ChangeSetStatus.DRAFT
        assert draft.version_name == "Draft 1"
        assert draft.created_by == "alice"

    async def test_unknown_routing(self, segment_types):
        with pytest.raises(NotFoundError):
            await changeset_manager.create_draft("NOPE-IVR-MAIN")

    async def test_one_open_draft_per_routing(self, routing):
        await changeset_manager.create_draft(ROUTING_ID)
        with pytest.raises(ConflictError):
            await changeset_manager.create_draft(ROUTING_ID)

    async def test_get_or_create_reuses_open(self, routing):
        first = await changeset_manager.get_or_create_draft(ROUTING_ID)
        second = await changeset_manager.get_or_create_draft(ROUTING_ID)
        assert first.change_set_id == second.change_set_id

    async def test_draft_seeded_from_published(self, routing, sample_flow):
        await _publish_sample(sample_flow)

        draft = await changeset_manager.create_draft(ROUTING_ID)
        names = await segment_store.segment_names(ROUTING_ID, DraftScope(draft.change_set_id))
        assert names == await _published_names()

    async def test_unseeded_draft_is_empty(self, routing, sample_flow):
        await _publish_sample(sample_flow)

        draft = await changeset_manager.create_draft(ROUTING_ID, seed_from_published=False)
        assert await segment_store.segment_names(ROUTING_ID, DraftScope(draft.change_set_id)) == set()

    async def test_get_checks_routing(self, routing):
        draft = await changeset_manager.create_draft(ROUTING_ID)
        with pytest.raises(NotFoundError):
            await changeset_manager.get("OTHER-IVR-MAIN", draft.change_set_id)


class TestSave:
    """Tests for saving a flow into a draft."""

    async def test_save_orders_segments(self, routing, sample_flow):
        draft = await changeset_manager.create_draft(ROUTING_ID)
        result = await changeset_manager.save(ROUTING_ID, draft.change_set_id, sample_flow)

        assert result.created == 5
        assert result.validation.is_valid
        segments = await segment_store.list_segments(ROUTING_ID, DraftScope(draft.change_set_id))
        assert [(s.segment_name, s.segment_order) for s in segments] == [
            ("init", 1),
            ("menu", 2),
            ("sales", 3),
            ("support_fr", 4),
            ("support", 5),
        ]

    async def test_invalid_flow_writes_nothing(self, routing, sample_flow):
        draft = await changeset_manager.create_draft(ROUTING_ID)
        before = await segment_store.count_rows(ROUTING_ID)

        broken = sample_flow.model_copy(deep=True)
        broken.segments[0].transitions[0].outcome.next_segment = "ghost"

        with pytest.raises(FlowValidationError) as exc_info:
            await changeset_manager.save(ROUTING_ID, draft.change_set_id, broken)

        assert exc_info.value.validation.error_types() == [IssueType.MISSING_TARGET]
        assert await segment_store.count_rows(ROUTING_ID) == before

    async def test_invalid_hooks_write_nothing(self, routing, sample_flow):
        draft = await changeset_manager.create_draft(ROUTING_ID)
        bad = sample_flow.model_copy(deep=True)
        bad.segments[0].hooks = {"onEnter": "Bad Handler"}

        with pytest.raises(InvalidHooksError) as exc_info:
            await changeset_manager.save(ROUTING_ID, draft.change_set_id, bad)

        assert exc_info.value.segment_name == "init"
        assert await segment_store.count_rows(ROUTING_ID) == 0

    async def test_warnings_do_not_block(self, routing):
        draft = await changeset_manager.create_draft(ROUTING_ID)
        flow = FlowSnapshot(
            init_segment="init",
            segments=[
                SegmentSnapshot(
                    segment_name="init",
                    segment_type="init",
                    transitions=[
                        Transition(result_name="retry", outcome=TransitionOutcome(next_segment="init"))
                    ],
                ),
                SegmentSnapshot(segment_name="orphan", segment_type="transfer"),
            ],
        )

        result = await changeset_manager.save(ROUTING_ID, draft.change_set_id, flow)

        assert result.validation.is_valid
        assert set(result.validation.warning_types()) == {
            IssueType.UNREACHABLE_SEGMENT,
            IssueType.CIRCULAR_REFERENCE,
        }

    async def test_save_after_publish_rejected(self, routing, sample_flow):
        change_set_id = await _publish_sample(sample_flow)
        with pytest.raises(ConflictError):
            await changeset_manager.save(ROUTING_ID, change_set_id, sample_flow)


class TestValidate:
    """Tests for validating a stored draft."""

    async def test_clean_draft_becomes_validated(self, routing, sample_flow):
        draft = await changeset_manager.create_draft(ROUTING_ID)
        await changeset_manager.save(ROUTING_ID, draft.change_set_id, sample_flow)

        validation = await changeset_manager.validate(ROUTING_ID, draft.change_set_id)

        assert validation.is_valid
        stored = await changeset_manager.get(ROUTING_ID, draft.change_set_id)
        assert stored.status == ChangeSetStatus.VALIDATED

    async def test_empty_draft_stays_draft(self, routing):
        draft = await changeset_manager.create_draft(ROUTING_ID)

        validation = await changeset_manager.validate(ROUTING_ID, draft.change_set_id)

        assert validation.error_types() == [IssueType.MISSING_INIT]
        stored = await changeset_manager.get(ROUTING_ID, draft.change_set_id)
        assert stored.status == ChangeSetStatus.DRAFT


class TestPublish:
    """Tests for publishing a draft."""

    async def test_publish_copies_draft(self, routing, sample_flow):
        draft = await changeset_manager.create_draft(ROUTING_ID)
        await changeset_manager.save(ROUTING_ID, draft.change_set_id, sample_flow)

        result = await changeset_manager.publish(ROUTING_ID, draft.change_set_id, published_by="bob")

        assert result.published
        assert result.segment_count == 5
        assert await _published_names() == {"init", "menu", "sales", "support", "support_fr"}

        stored = await changeset_manager.get(ROUTING_ID, draft.change_set_id)
        assert stored.status == ChangeSetStatus.PUBLISHED
        assert stored.published_by == "bob"
        assert not stored.is_active

        menu = await segment_store.get_segment(ROUTING_ID, "menu", PUBLISHED)
        assert menu.change_set_id is None
        assert [(c.key, c.value) for c in menu.config][:2] == [("prompt", "welcome"), ("max_retries", 3)]

    async def test_publish_from_validated(self, routing, sample_flow):
        draft = await changeset_manager.create_draft(ROUTING_ID)
        await changeset_manager.save(ROUTING_ID, draft.change_set_id, sample_flow)
        await changeset_manager.validate(ROUTING_ID, draft.change_set_id)

        result = await changeset_manager.publish(ROUTING_ID, draft.change_set_id)
        assert result.published

    async def test_publish_replaces_and_removes(self, routing, sample_flow):
        await _publish_sample(sample_flow)

        draft = await changeset_manager.create_draft(ROUTING_ID)
        scope = DraftScope(draft.change_set_id)
        async with transaction():
            await segment_store.soft_delete_segment(ROUTING_ID, "sales", scope)
        changed = sample_flow.model_copy(deep=True)
        changed.segments = [s for s in changed.segments if s.segment_name != "sales"]
        changed.segments[1].transitions = changed.segments[1].transitions[1:]
        changed.segments[1].display_name = "Support Only"
        await changeset_manager.save(ROUTING_ID, draft.change_set_id, changed)

        await changeset_manager.publish(ROUTING_ID, draft.change_set_id)

        assert "sales" not in await _published_names()
        menu = await segment_store.get_segment(ROUTING_ID, "menu", PUBLISHED)
        assert menu.display_name == "Support Only"

    async def test_invalid_draft_not_published(self, routing):
        draft = await changeset_manager.create_draft(ROUTING_ID)

        with pytest.raises(FlowValidationError):
            await changeset_manager.publish(ROUTING_ID, draft.change_set_id)

        stored = await changeset_manager.get(ROUTING_ID, draft.change_set_id)
        assert stored.status == ChangeSetStatus.DRAFT

    async def test_failure_mid_publish_rolls_back(self, routing, sample_flow, monkeypatch):
        await _publish_sample(sample_flow)
        published_before = await segment_store.load_scope(ROUTING_ID, PUBLISHED)

        draft = await changeset_manager.create_draft(ROUTING_ID)
        changed = sample_flow.model_copy(deep=True)
        changed.segments[1].display_name = "Changed"
        await changeset_manager.save(ROUTING_ID, draft.change_set_id, changed)
        draft_rows_before = await segment_store.count_rows(ROUTING_ID)

        calls = 0
        original = segment_store.copy_segment_to_published

        async def fail_on_third(segment, published_by=None):
            nonlocal calls
            calls += 1
            if calls == 3:
                raise RuntimeError("disk on fire")
            return await original(segment, published_by)

        monkeypatch.setattr(segment_store, "copy_segment_to_published", fail_on_third)

        with pytest.raises(RuntimeError):
            await changeset_manager.publish(ROUTING_ID, draft.change_set_id)

        stored = await changeset_manager.get(ROUTING_ID, draft.change_set_id)
        assert stored.status == ChangeSetStatus.DRAFT
        assert stored.revision == draft.revision
        assert await segment_store.count_rows(ROUTING_ID) == draft_rows_before

        published_after = await segment_store.load_scope(ROUTING_ID, PUBLISHED)
        assert [s.model_dump() for s in published_after] == [
            s.model_dump() for s in published_before
        ]

    async def test_draft_is_validated_under_the_publish_lock(
        self, routing, sample_flow, monkeypatch
    ):
        draft = await changeset_manager.create_draft(ROUTING_ID)
        await changeset_manager.save(ROUTING_ID, draft.change_set_id, sample_flow)
        scope = DraftScope(draft.change_set_id)
        check_unchanged = changeset_manager._check_unchanged

        async def drop_init_first(change_set):
            # Same effect as a pruning save committed right before publish took the lock
            await segment_store.soft_delete_segment(ROUTING_ID, "init", scope)
            return await check_unchanged(change_set)

        monkeypatch.setattr(changeset_manager, "_check_unchanged", drop_init_first)

        with pytest.raises(FlowValidationError) as exc_info:
            await changeset_manager.publish(ROUTING_ID, draft.change_set_id)

        assert IssueType.MISSING_INIT in exc_info.value.validation.error_types()
        assert await _published_names() == set()
        stored = await changeset_manager.get(ROUTING_ID, draft.change_set_id)
        assert stored.status == ChangeSetStatus.DRAFT
        assert "init" in await segment_store.segment_names(ROUTING_ID, scope)

    async def test_publish_twice_rejected(self, routing, sample_flow):
        change_set_id = await _publish_sample(sample_flow)
        with pytest.raises(StateTransitionError):
            await changeset_manager.publish(ROUTING_ID, change_set_id)

    async def test_new_draft_allowed_after_publish(self, routing, sample_flow):
        await _publish_sample(sample_flow)
        draft = await changeset_manager.create_draft(ROUTING_ID)
        assert draft.version_name == "Draft 2"


class TestDiscard:
    """Tests for discarding a draft."""

    async def test_discard_leaves_published_alone(self, routing, sample_flow):
        await _publish_sample(sample_flow)
        published_before = await _published_names()

        draft = await changeset_manager.create_draft(ROUTING_ID)
        discarded = await changeset_manager.discard(ROUTING_ID, draft.change_set_id)

        assert discarded.status == ChangeSetStatus.DISCARDED
        assert not discarded.is_active
        assert await segment_store.segment_names(ROUTING_ID, DraftScope(draft.change_set_id)) == set()
        assert await _published_names() == published_before
        assert await changeset_store.find_open(ROUTING_ID) is None

    async def test_discard_published_rejected(self, routing, sample_flow):
        change_set_id = await _publish_sample(sample_flow)
        with pytest.raises(StateTransitionError):
            await changeset_manager.discard(ROUTING_ID, change_set_id)
