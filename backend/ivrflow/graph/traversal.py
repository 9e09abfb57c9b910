"""Graph traversal over flow snapshots.

All functions here are pure: they build a name-indexed adjacency view of
the snapshot on demand and never mutate the segments they are given.
Edges are followed by segment name; a target that names no segment is
simply a dead end for traversal (the validator reports it separately).
"""

from collections import deque
from collections.abc import Iterable, Iterator, Sequence
from typing import NamedTuple

from ivrflow.models.flow import SegmentSnapshot


class OrderedSegment(NamedTuple):
    """A segment name with its 1-based execution order."""

    name: str
    order: int
    reachable: bool


class FlowGraph:
    """Name-indexed adjacency view of a flow snapshot.

    If a name appears twice in the snapshot the first occurrence wins.
    """

    def __init__(self, segments: Iterable[SegmentSnapshot]) -> None:
        self._segments: dict[str, SegmentSnapshot] = {}
        for segment in segments:
            self._segments.setdefault(segment.segment_name, segment)

    def __contains__(self, name: object) -> bool:
        return name in self._segments

    def __len__(self) -> int:
        return len(self._segments)

    @property
    def names(self) -> list[str]:
        return list(self._segments)

    def get(self, name: str) -> SegmentSnapshot | None:
        return self._segments.get(name)

    def successors(self, name: str) -> list[str]:
        """Targets of every transition of ``name``, in transition order.

        For each transition: the plain target, then each context-map target,
        then the context ``default`` target.
        """
        segment = self._segments.get(name)
        if segment is None:
            return []
        targets: list[str] = []
        for transition in segment.transitions:
            targets.extend(transition.outcome.targets())
        return targets

    def bfs(self, start: str) -> Iterator[str]:
        """Yield segment names in first-dequeue order."""
        if start not in self._segments:
            return
        visited: set[str] = set()
        queue: deque[str] = deque([start])
        while queue:
            current = queue.popleft()
            if current in visited or current not in self._segments:
                continue
            visited.add(current)
            yield current
            queue.extend(self.successors(current))


def compute_order(
    segments: Sequence[SegmentSnapshot], init_segment: str
) -> list[OrderedSegment]:
    """Breadth-first execution order starting at ``init_segment``.

    Unreached segments follow, sorted by name, continuing the sequence.
    """
    graph = FlowGraph(segments)
    ordered: list[OrderedSegment] = []
    visited: set[str] = set()
    for index, name in enumerate(graph.bfs(init_segment), start=1):
        ordered.append(OrderedSegment(name, index, True))
        visited.add(name)

    next_index = len(ordered) + 1
    for offset, name in enumerate(sorted(n for n in graph.names if n not in visited)):
        ordered.append(OrderedSegment(name, next_index + offset, False))
    return ordered


def reachable_set(segments: Sequence[SegmentSnapshot], init_segment: str) -> set[str]:
    """Names of the segments reachable from ``init_segment`` (inclusive)."""
    return set(FlowGraph(segments).bfs(init_segment))


def detect_cycles(
    segments: Sequence[SegmentSnapshot], init_segment: str
) -> list[list[str]]:
    """Cycles found by a depth-first walk from ``init_segment``.

    Each time the walk reaches a segment already on the current path, the
    path slice from that segment's first occurrence plus the segment again
    is recorded, so a self-loop on ``A`` is ``["A", "A"]``. The walk is
    iterative; deep flows do not hit the recursion limit.
    """
    graph = FlowGraph(segments)
    cycles: list[list[str]] = []
    if init_segment not in graph:
        return cycles

    visited: set[str] = {init_segment}
    path: list[str] = [init_segment]
    on_path: set[str] = {init_segment}
    stack: list[Iterator[str]] = [iter(graph.successors(init_segment))]

    while stack:
        child = next(stack[-1], None)
        if child is None:
            stack.pop()
            on_path.discard(path.pop())
            continue
        if child in on_path:
            cycles.append(path[path.index(child):] + [child])
            continue
        if child in visited or child not in graph:
            continue
        visited.add(child)
        path.append(child)
        on_path.add(child)
        stack.append(iter(graph.successors(child)))

    return cycles


def apply_order(
    segments: Sequence[SegmentSnapshot], init_segment: str
) -> list[SegmentSnapshot]:
    """Copies of ``segments`` with ``segment_order`` set, sorted by it."""
    graph = FlowGraph(segments)
    result: list[SegmentSnapshot] = []
    for entry in compute_order(segments, init_segment):
        segment = graph.get(entry.name)
        if segment is not None:
            result.append(segment.model_copy(update={"segment_order": entry.order}))
    return result
