from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from graphport.errors import GraphError

NodeId = int
OpCounters = Mapping[str, int]

ACTIVATION_OPS: dict[str, str] = {
    "celu": "Celu",
    "elu": "Elu",
    "exp": "Exp",
    "hard_sigmoid": "HardSigmoid",
    "leaky_relu": "LeakyRelu",
    "linear": "Identity",
    "relu": "Relu",
    "sigmoid": "Sigmoid",
    "selu": "Selu",
    "softmax": "Softmax",
    "softplus": "Softplus",
    "softsign": "Softsign",
    "tanh": "Tanh",
}
DROPOUT_OPS = frozenset({"dropout", "spatial_dropout", "feature_alpha_dropout", "alpha_dropout"})
COMBINATOR_OPS: dict[str, str] = {"add": "Add", "subtract": "Sub", "multiply": "Mul"}
POOLING_OPS = frozenset({"max_pool", "avg_pool", "lp_pool"})
GLOBAL_POOLING_OPS = frozenset({"global_avg_pool", "global_lp_pool", "global_max_pool"})
OP_KINDS = frozenset(
    {"input", "constant", "dense", "conv"}
    | POOLING_OPS
    | GLOBAL_POOLING_OPS
    | set(ACTIVATION_OPS)
    | set(COMBINATOR_OPS)
    | {"concatenate"}
    | DROPOUT_OPS
)


@dataclass(frozen=True, slots=True)
class AutoName:
    """Names a node ``<kind>_<count>`` from the per-kind counter."""

    def __call__(self, op: str, counters: OpCounters) -> str:
        return f"{op}_{counters.get(op, 0)}"


@dataclass(frozen=True, slots=True)
class FixedName:
    """Names a node with a caller-chosen name regardless of counters."""

    name: str

    def __call__(self, op: str, counters: OpCounters) -> str:
        return self.name


NamingStrategy = AutoName | FixedName


@dataclass(frozen=True, slots=True)
class ParamSpec:
    name: str
    shape: tuple[int, ...] | None = None


@dataclass(frozen=True, slots=True)
class ComputationNode:
    id: NodeId
    op: str
    parents: tuple[NodeId, ...] = ()
    parameters: tuple[ParamSpec, ...] = ()
    opts: Mapping[str, Any] = field(default_factory=dict)
    naming: NamingStrategy = field(default_factory=AutoName)

    def __post_init__(self) -> None:
        object.__setattr__(self, "parents", tuple(self.parents))
        object.__setattr__(self, "parameters", tuple(self.parameters))
        object.__setattr__(self, "opts", MappingProxyType(dict(self.opts)))

    def name_for(self, counters: OpCounters) -> str:
        return self.naming(self.op, counters)

    def opt(self, key: str, default: Any = None) -> Any:
        return self.opts.get(key, default)


@dataclass(frozen=True, slots=True)
class Graph:
    """Immutable source graph with a single designated output node."""

    nodes: Mapping[NodeId, ComputationNode]
    output: NodeId

    def __post_init__(self) -> None:
        object.__setattr__(self, "nodes", MappingProxyType(dict(self.nodes)))

    def node(self, node_id: NodeId) -> ComputationNode:
        try:
            return self.nodes[node_id]
        except KeyError:
            raise GraphError("graph references an unknown node", node_id=node_id) from None

    @property
    def output_node(self) -> ComputationNode:
        return self.node(self.output)

    def input_nodes(self) -> list[ComputationNode]:
        return [node for node in self.nodes.values() if node.op == "input"]

    def validate(self) -> None:
        self.node(self.output)
        for node in self.nodes.values():
            if node.id in node.parents:
                raise GraphError("node lists itself as a parent", node_id=node.id, op=node.op)
            for parent_id in node.parents:
                if parent_id not in self.nodes:
                    raise GraphError(
                        f"parent {parent_id!r} is not part of the graph",
                        node_id=node.id,
                        op=node.op,
                    )

    def postorder(self) -> list[NodeId]:
        """Ids reachable from the output, parents in declared order before each node."""
        order: list[NodeId] = []
        done: set[NodeId] = set()
        pending: set[NodeId] = set()
        stack: list[tuple[NodeId, bool]] = [(self.output, False)]
        while stack:
            node_id, ready = stack.pop()
            if node_id in done:
                continue
            node = self.node(node_id)
            if ready:
                order.append(node_id)
                done.add(node_id)
                pending.discard(node_id)
                continue
            if node_id in pending:
                raise GraphError("graph contains a cycle", node_id=node_id, op=node.op)
            pending.add(node_id)
            stack.append((node_id, True))
            for parent_id in reversed(node.parents):
                if parent_id not in done:
                    stack.append((parent_id, False))
        return order


def assign_names(graph: Graph) -> dict[NodeId, str]:
    """Names every reachable node the way one export walk hands them out."""
    counters: dict[str, int] = {}
    names: dict[NodeId, str] = {}
    for node_id in graph.postorder():
        node = graph.node(node_id)
        names[node_id] = node.name_for(counters)
        counters[node.op] = counters.get(node.op, 0) + 1
    return names
