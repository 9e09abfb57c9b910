"""Rule engine for structural flow validation.

Evaluates a flow snapshot against the structural rules of a call flow and
reports errors (which block save and publish) and warnings (which never do).
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Mapping, Sequence

from ivrflow.graph.traversal import detect_cycles, reachable_set
from ivrflow.models.flow import FlowSnapshot, SegmentSnapshot
from ivrflow.models.segment_type import SegmentTypeCapability
from ivrflow.models.validation import FlowValidation, IssueType, ValidationIssue


class FlowValidator:
    """Validates flow snapshots.

    The validator is pure: it reads the snapshot and the segment type table
    and never touches storage, so it can back "validate without saving".

    Example:
        validator = FlowValidator(await type_dictionary.capability_table())
        result = validator.validate(flow.segments, flow.init_segment)
        if not result.is_valid:
            for error in result.errors:
                print(f"{error.type}: {error.message}")
    """

    def __init__(self, segment_types: Mapping[str, SegmentTypeCapability] | None = None):
        """Initialize the validator.

        Args:
            segment_types: Capability table keyed by segment type name. When
                omitted, segment types are not checked and terminal segments
                are recognised by the snapshot's own ``is_terminal`` hint.
        """
        self._segment_types = segment_types

    def validate(
        self, segments: Sequence[SegmentSnapshot], init_segment: str
    ) -> FlowValidation:
        """Run every rule against the flow.

        Args:
            segments: All segments of the flow
            init_segment: Name of the entry segment

        Returns:
            FlowValidation with is_valid=True when no errors were found
        """
        names = {s.segment_name for s in segments}

        errors: list[ValidationIssue] = []
        errors.extend(self._check_init_segment(names, init_segment))
        errors.extend(self._check_duplicate_segments(segments))
        errors.extend(self._check_segment_types(segments))
        errors.extend(self._check_targets(segments, names))
        errors.extend(self._check_duplicate_transitions(segments))

        warnings: list[ValidationIssue] = []
        warnings.extend(self._check_terminal_segments(segments))
        warnings.extend(self._check_reachability(segments, init_segment))
        warnings.extend(self._check_cycles(segments, init_segment))
        warnings.extend(self._check_context_defaults(segments))

        return FlowValidation.from_issues(errors, warnings)

    def validate_flow(self, flow: FlowSnapshot) -> FlowValidation:
        return self.validate(flow.segments, flow.init_segment)

    # ==================== Errors ====================

    def _check_init_segment(self, names: set[str], init_segment: str) -> list[ValidationIssue]:
        if init_segment in names:
            return []
        return [
            ValidationIssue(
                type=IssueType.MISSING_INIT,
                field="initSegment",
                message=f"Initial segment '{init_segment}' not found",
                suggestion=f"Add segment '{init_segment}' or update initSegment reference",
            )
        ]

    def _check_duplicate_segments(
        self, segments: Sequence[SegmentSnapshot]
    ) -> list[ValidationIssue]:
        counts = Counter(s.segment_name for s in segments)
        return [
            ValidationIssue(
                type=IssueType.DUPLICATE_SEGMENT,
                segment=name,
                field="segmentName",
                message=f"Segment name '{name}' is used {count} times",
                suggestion="Segment names must be unique within a flow",
            )
            for name, count in counts.items()
            if count > 1
        ]

    def _check_segment_types(
        self, segments: Sequence[SegmentSnapshot]
    ) -> list[ValidationIssue]:
        if self._segment_types is None:
            return []
        return [
            ValidationIssue(
                type=IssueType.UNKNOWN_SEGMENT_TYPE,
                segment=seg.segment_name,
                field="segmentType",
                message=f"Segment type '{seg.segment_type}' not found",
                suggestion="Register the segment type or pick an existing one",
            )
            for seg in segments
            if seg.segment_type not in self._segment_types
        ]

    def _check_targets(
        self, segments: Sequence[SegmentSnapshot], names: set[str]
    ) -> list[ValidationIssue]:
        """Every non-null target must name a segment of the flow."""
        issues: list[ValidationIssue] = []
        for seg in segments:
            for transition in seg.transitions:
                result = transition.result_name
                outcome = transition.outcome

                if outcome.next_segment and outcome.next_segment not in names:
                    issues.append(
                        ValidationIssue(
                            type=IssueType.MISSING_TARGET,
                            segment=seg.segment_name,
                            field=f"transitions[{result}].nextSegment",
                            message=(
                                f"Transition '{result}' targets missing segment "
                                f"'{outcome.next_segment}'"
                            ),
                            suggestion=(
                                f"Create segment '{outcome.next_segment}' or remove transition"
                            ),
                        )
                    )

                for context_value, override in (outcome.context_key or {}).items():
                    if override.next_segment and override.next_segment not in names:
                        issues.append(
                            ValidationIssue(
                                type=IssueType.INVALID_CONTEXT_OVERRIDE_TARGET,
                                segment=seg.segment_name,
                                field=f"transitions[{result}].contextKey.{context_value}",
                                message=(
                                    f"Context override target '{override.next_segment}' "
                                    "not found"
                                ),
                                suggestion=(
                                    f"Create segment '{override.next_segment}' "
                                    "or update override"
                                ),
                            )
                        )

                fallback = outcome.default
                if fallback and fallback.next_segment and fallback.next_segment not in names:
                    issues.append(
                        ValidationIssue(
                            type=IssueType.INVALID_DEFAULT_TARGET,
                            segment=seg.segment_name,
                            field=f"transitions[{result}].default",
                            message=(
                                f"Default fallback target '{fallback.next_segment}' not found"
                            ),
                            suggestion=(
                                f"Create segment '{fallback.next_segment}' or update default"
                            ),
                        )
                    )
        return issues

    def _check_duplicate_transitions(
        self, segments: Sequence[SegmentSnapshot]
    ) -> list[ValidationIssue]:
        """(result_name, context_key) must be unique within a segment."""
        issues: list[ValidationIssue] = []
        for seg in segments:
            counts: Counter[tuple[str, str | None]] = Counter()
            for transition in seg.transitions:
                counts.update(transition.row_keys())

            for (result, context), count in counts.items():
                if count < 2:
                    continue
                key = f"{result}:{context}" if context is not None else result
                issues.append(
                    ValidationIssue(
                        type=IssueType.DUPLICATE_TRANSITION,
                        segment=seg.segment_name,
                        field="transitions",
                        message=(
                            f"Segment '{seg.segment_name}' has duplicate transition "
                            f"combination '{key}' ({count} times)"
                        ),
                        suggestion=(
                            "Each resultName+contextKey combination must be unique "
                            "within a segment"
                        ),
                    )
                )
        return issues

    # ==================== Warnings ====================

    def _is_terminal(self, seg: SegmentSnapshot) -> bool:
        if self._segment_types is not None:
            capability = self._segment_types.get(seg.segment_type)
            return bool(capability and capability.is_terminal)
        return bool(seg.is_terminal)

    def _check_terminal_segments(
        self, segments: Sequence[SegmentSnapshot]
    ) -> list[ValidationIssue]:
        """Terminal segments may only carry the default transition."""
        return [
            ValidationIssue(
                type=IssueType.TERMINAL_WITH_TRANSITIONS,
                segment=seg.segment_name,
                field="transitions",
                message=(
                    "Terminal segment should not have named result transitions "
                    "(only default allowed for error handling)"
                ),
            )
            for seg in segments
            if self._is_terminal(seg) and any(not t.is_default for t in seg.transitions)
        ]

    def _check_reachability(
        self, segments: Sequence[SegmentSnapshot], init_segment: str
    ) -> list[ValidationIssue]:
        reachable = reachable_set(segments, init_segment)
        unreachable: list[str] = []
        for seg in segments:
            if seg.segment_name not in reachable and seg.segment_name not in unreachable:
                unreachable.append(seg.segment_name)
        if not unreachable:
            return []
        return [
            ValidationIssue(
                type=IssueType.UNREACHABLE_SEGMENT,
                message=f"Segments not reachable from init: {', '.join(unreachable)}",
                suggestion="Connect these segments or remove them",
            )
        ]

    def _check_cycles(
        self, segments: Sequence[SegmentSnapshot], init_segment: str
    ) -> list[ValidationIssue]:
        cycles = detect_cycles(segments, init_segment)
        if not cycles:
            return []
        rendered = ", ".join(" -> ".join(cycle) for cycle in cycles)
        return [
            ValidationIssue(
                type=IssueType.CIRCULAR_REFERENCE,
                message=f"Flow contains cycles: {rendered}",
            )
        ]

    def _check_context_defaults(
        self, segments: Sequence[SegmentSnapshot]
    ) -> list[ValidationIssue]:
        return [
            ValidationIssue(
                type=IssueType.CONTEXT_KEY_WITHOUT_DEFAULT,
                segment=seg.segment_name,
                field=f"transitions[{t.result_name}].default",
                message=(
                    f"Transition '{t.result_name}' has contextKey but no default fallback "
                    "(may fail if no context value matches)"
                ),
            )
            for seg in segments
            for t in seg.transitions
            if t.outcome.is_context_aware and t.outcome.default is None
        ]
