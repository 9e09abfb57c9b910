"""Tests for the structural flow validator."""

import pytest

from ivrflow.models import (
    IssueType,
    SegmentSnapshot,
    SegmentTypeCapability,
    Transition,
    TransitionOutcome,
    TransitionTarget,
)
from ivrflow.rules import FlowValidator

TYPES = {
    "menu": SegmentTypeCapability(segment_type_name="menu"),
    "transfer": SegmentTypeCapability(segment_type_name="transfer", is_terminal=True),
}


def go(result: str, target: str | None) -> Transition:
    return Transition(result_name=result, outcome=TransitionOutcome(next_segment=target))


def seg(name: str, *transitions: Transition, segment_type: str = "menu") -> SegmentSnapshot:
    return SegmentSnapshot(
        segment_name=name, segment_type=segment_type, transitions=list(transitions)
    )


@pytest.fixture
def validator() -> FlowValidator:
    return FlowValidator(TYPES)


class TestValidFlows:
    """Flows that pass."""

    def test_minimal_flow_is_clean(self, validator):
        result = validator.validate([seg("A", go("ok", "B")), seg("B", segment_type="transfer")], "A")

        assert result.is_valid
        assert result.errors == []
        assert result.warnings == []

    def test_self_loop_is_valid_with_cycle_warning(self, validator):
        result = validator.validate([seg("A", go("retry", "A"))], "A")

        assert result.is_valid
        assert result.warning_types() == [IssueType.CIRCULAR_REFERENCE]
        assert "A -> A" in result.warnings[0].message

    def test_terminal_exit_is_legal(self, validator):
        result = validator.validate([seg("A", go("hangup", None))], "A")
        assert result.is_valid


class TestErrors:
    """Rules that block save and publish."""

    def test_missing_init(self, validator):
        result = validator.validate([seg("A")], "init")

        assert not result.is_valid
        assert IssueType.MISSING_INIT in result.error_types()
        assert result.errors[0].field == "initSegment"

    def test_missing_target(self, validator):
        result = validator.validate([seg("A", go("ok", "ghost"))], "A")

        assert result.error_types() == [IssueType.MISSING_TARGET]
        error = result.errors[0]
        assert error.segment == "A"
        assert error.field == "transitions[ok].nextSegment"
        assert "ghost" in error.message

    def test_invalid_context_override_target(self, validator):
        transition = Transition(
            result_name="2",
            outcome=TransitionOutcome(
                context_key={"FR": TransitionTarget(next_segment="ghost")},
                default=TransitionTarget(next_segment="B"),
            ),
        )
        result = validator.validate([seg("A", transition), seg("B")], "A")

        assert result.error_types() == [IssueType.INVALID_CONTEXT_OVERRIDE_TARGET]
        assert result.errors[0].field == "transitions[2].contextKey.FR"

    def test_invalid_default_target(self, validator):
        transition = Transition(
            result_name="2",
            outcome=TransitionOutcome(
                context_key={"FR": TransitionTarget(next_segment="B")},
                default=TransitionTarget(next_segment="ghost"),
            ),
        )
        result = validator.validate([seg("A", transition), seg("B")], "A")
        assert result.error_types() == [IssueType.INVALID_DEFAULT_TARGET]

    def test_duplicate_transition_reported_once(self, validator):
        result = validator.validate(
            [seg("A", go("ok", "B"), go("ok", "C")), seg("B"), seg("C")], "A"
        )

        assert result.error_types() == [IssueType.DUPLICATE_TRANSITION]
        assert "'ok'" in result.errors[0].message

    def test_duplicate_context_row(self, validator):
        transitions = [
            Transition(
                result_name="2",
                outcome=TransitionOutcome(
                    context_key={"FR": TransitionTarget(next_segment="B")},
                    default=TransitionTarget(next_segment="B"),
                ),
            ),
            Transition(
                result_name="2",
                outcome=TransitionOutcome(
                    context_key={"FR": TransitionTarget(next_segment="B")},
                    default=TransitionTarget(next_segment="B"),
                ),
            ),
        ]
        result = validator.validate([seg("A", *transitions), seg("B")], "A")

        # One error per duplicated (result, context) key: 2:FR and 2:default
        assert result.error_types() == [IssueType.DUPLICATE_TRANSITION] * 2

    def test_same_result_different_context_is_not_duplicate(self, validator):
        transition = Transition(
            result_name="2",
            outcome=TransitionOutcome(
                context_key={
                    "FR": TransitionTarget(next_segment="B"),
                    "fr": TransitionTarget(next_segment="B"),
                },
                default=TransitionTarget(next_segment="B"),
            ),
        )
        result = validator.validate([seg("A", transition), seg("B")], "A")
        assert result.is_valid

    def test_duplicate_segment(self, validator):
        result = validator.validate([seg("A"), seg("A")], "A")
        assert IssueType.DUPLICATE_SEGMENT in result.error_types()

    def test_unknown_segment_type(self, validator):
        result = validator.validate([seg("A", segment_type="mystery")], "A")

        assert result.error_types() == [IssueType.UNKNOWN_SEGMENT_TYPE]
        assert result.errors[0].field == "segmentType"

    def test_types_not_checked_without_table(self):
        result = FlowValidator().validate([seg("A", segment_type="mystery")], "A")
        assert result.is_valid


class TestWarnings:
    """Rules that never block."""

    def test_terminal_with_named_transitions(self, validator):
        result = validator.validate(
            [seg("A", go("ok", "T")), seg("T", go("again", "A"), segment_type="transfer")], "A"
        )

        assert result.is_valid
        assert IssueType.TERMINAL_WITH_TRANSITIONS in result.warning_types()

    def test_terminal_with_only_default_is_fine(self, validator):
        result = validator.validate(
            [seg("A", go("ok", "T")), seg("T", go("default", None), segment_type="transfer")], "A"
        )
        assert result.warnings == []

    def test_terminal_hint_used_without_table(self):
        terminal = SegmentSnapshot(
            segment_name="T",
            segment_type="transfer",
            is_terminal=True,
            transitions=[go("ok", None)],
        )
        result = FlowValidator().validate([terminal], "T")
        assert result.warning_types() == [IssueType.TERMINAL_WITH_TRANSITIONS]

    def test_unreachable_reported_in_one_warning(self, validator):
        result = validator.validate([seg("A"), seg("B"), seg("C")], "A")

        assert result.warning_types() == [IssueType.UNREACHABLE_SEGMENT]
        assert "B, C" in result.warnings[0].message

    def test_context_without_default(self, validator):
        transition = Transition(
            result_name="2",
            outcome=TransitionOutcome(context_key={"FR": TransitionTarget(next_segment="B")}),
        )
        result = validator.validate([seg("A", transition), seg("B")], "A")

        assert result.is_valid
        assert result.warning_types() == [IssueType.CONTEXT_KEY_WITHOUT_DEFAULT]
        assert result.warnings[0].field == "transitions[2].default"

    def test_validation_is_pure(self, validator):
        segments = [seg("A", go("ok", "B")), seg("B")]
        before = [s.model_dump() for s in segments]

        first = validator.validate(segments, "A")
        second = validator.validate(segments, "A")

        assert first == second
        assert [s.model_dump() for s in segments] == before
