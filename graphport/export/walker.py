from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from graphport.errors import GraphError, ValidationError
from graphport.graph import ComputationNode, Graph, NodeId, ShapeQuery, StaticShapeInference
from graphport.utils.logging import get_logger, log_event

from .ir import LoweredNode, ValueInfo
from .lowering import LoweringContext, lowering_rule
from .naming import allocate

LOGGER = get_logger(__name__)


@dataclass(slots=True)
class TraversalState:
    """Accumulators threaded through one export.

    ``cache`` maps node id to its assigned name; presence in it is the only
    signal that a node has been lowered. ``owners`` indexes every emitted
    name back to the node that produced it.
    """

    graph_inputs: list[ValueInfo] = field(default_factory=list)
    param_names: list[str] = field(default_factory=list)
    nodes: list[LoweredNode] = field(default_factory=list)
    counters: dict[str, int] = field(default_factory=dict)
    cache: dict[NodeId, str] = field(default_factory=dict)
    owners: dict[str, NodeId] = field(default_factory=dict)


class GraphWalker:
    """Postorder walk that lowers every reachable node exactly once.

    Parents are visited in their declared order before the node itself, so
    names are handed out in a deterministic first-visit order and every input
    a lowered node references is already emitted. The walk runs on an explicit
    stack; graph depth is not bounded by the interpreter recursion limit.
    """

    def __init__(self, shape_query: ShapeQuery | None = None) -> None:
        self._shape_query = shape_query if shape_query is not None else StaticShapeInference()

    @property
    def shape_query(self) -> ShapeQuery:
        return self._shape_query

    def walk(self, graph: Graph, templates: Any) -> TraversalState:
        # Shapes never carry over from an earlier walk.
        reset = getattr(self._shape_query, "reset", None)
        if reset is not None:
            reset()
        return self.lower(graph.output_node, graph, templates, TraversalState())

    def lower(
        self,
        node: ComputationNode,
        graph: Graph,
        templates: Any,
        state: TraversalState,
    ) -> TraversalState:
        stack: list[tuple[NodeId, bool]] = [(node.id, False)]
        pending: set[NodeId] = set()
        while stack:
            node_id, ready = stack.pop()
            if node_id in state.cache:
                continue
            current = graph.node(node_id)
            if ready:
                self._lower_node(current, graph, templates, state)
                pending.discard(node_id)
                continue
            if node_id in pending:
                raise GraphError("graph contains a cycle", node_id=node_id, op=current.op)
            pending.add(node_id)
            stack.append((node_id, True))
            for parent_id in reversed(current.parents):
                if parent_id not in state.cache:
                    stack.append((parent_id, False))
        return state

    def _lower_node(
        self,
        node: ComputationNode,
        graph: Graph,
        templates: Any,
        state: TraversalState,
    ) -> None:
        rule = lowering_rule(node)
        name, state.counters = allocate(node, state.counters)
        _claim(state, name, node)

        ctx = LoweringContext(
            node=node,
            name=name,
            input_names=tuple(state.cache[parent_id] for parent_id in node.parents),
            graph=graph,
            templates=templates,
            shape_query=self._shape_query,
        )
        lowering = rule(ctx)
        for lowered in lowering.nodes:
            for output in lowered.outputs:
                if output != name:
                    _claim(state, output, node)

        state.nodes.extend(lowering.nodes)
        state.param_names.extend(lowering.param_names)
        state.graph_inputs.extend(lowering.graph_inputs)
        state.cache[node.id] = name

        log_event(
            LOGGER,
            "node_lowered",
            level="DEBUG",
            fields={
                "node_id": node.id,
                "op": node.op,
                "name": name,
                "emitted": [n.op_type for n in lowering.nodes],
            },
        )


def _claim(state: TraversalState, name: str, node: ComputationNode) -> None:
    owner = state.owners.get(name)
    if owner is not None and owner != node.id:
        raise ValidationError(
            f"name {name!r} is already used by node {owner!r}",
            node_id=node.id,
            op=node.op,
        )
    state.owners[name] = node.id
