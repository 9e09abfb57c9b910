"""Pure graph algorithms over flow snapshots."""

from ivrflow.graph.traversal import (
    FlowGraph,
    OrderedSegment,
    apply_order,
    compute_order,
    detect_cycles,
    reachable_set,
)

__all__ = [
    "FlowGraph",
    "OrderedSegment",
    "apply_order",
    "compute_order",
    "detect_cycles",
    "reachable_set",
]
