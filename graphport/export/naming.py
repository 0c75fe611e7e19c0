from __future__ import annotations

from collections.abc import Mapping

from graphport.graph import ComputationNode


def allocate(node: ComputationNode, counters: Mapping[str, int]) -> tuple[str, dict[str, int]]:
    """Name ``node`` from the current count of its kind, then bump that count.

    Returns a new counters mapping; the one passed in is left untouched.
    """
    name = node.name_for(counters)
    updated = dict(counters)
    updated[node.op] = updated.get(node.op, 0) + 1
    return name, updated
