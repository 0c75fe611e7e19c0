from __future__ import annotations

import pytest

from graphport.errors import GraphError, UnsupportedOperatorError, ValidationError
from graphport.export import GraphWalker
from graphport.graph import ComputationNode, Graph, GraphBuilder


def _residual_graph() -> Graph:
    b = GraphBuilder()
    x = b.input("input", shape=(1, 4))
    h = b.dense(x, 4)
    a = b.relu(h)
    s = b.sigmoid(h)
    return b.build(b.add(a, s))


def test_shared_node_is_emitted_once() -> None:
    state = GraphWalker().walk(_residual_graph(), {"input": (1, 4)})

    assert [n.op_type for n in state.nodes] == ["Gemm", "Relu", "Sigmoid", "Add"]
    assert sum("dense_0" in n.outputs for n in state.nodes) == 1
    references = [name for n in state.nodes for name in n.inputs]
    assert references.count("dense_0") == 2
    assert state.param_names == ["dense_0_kernel", "dense_0_bias"]


def test_nodes_are_topologically_ordered() -> None:
    state = GraphWalker().walk(_residual_graph(), {"input": (1, 4)})

    available = {v.name for v in state.graph_inputs} | set(state.param_names)
    for node in state.nodes:
        for name in node.inputs:
            assert name in available, name
        available.update(node.outputs)


def test_output_names_are_unique() -> None:
    state = GraphWalker().walk(_residual_graph(), {"input": (1, 4)})
    outputs = [name for n in state.nodes for name in n.outputs]
    assert len(outputs) == len(set(outputs))


def test_names_follow_first_visit_order_and_are_deterministic() -> None:
    graph = _residual_graph()
    first = GraphWalker().walk(graph, {"input": (1, 4)})
    second = GraphWalker().walk(graph, {"input": (1, 4)})

    assert first.cache == second.cache
    assert first.cache == {0: "input", 1: "dense_0", 2: "relu_0", 3: "sigmoid_0", 4: "add_0"}
    assert first.counters == {"input": 1, "dense": 1, "relu": 1, "sigmoid": 1, "add": 1}


def test_lower_on_cached_node_leaves_state_unchanged() -> None:
    graph = _residual_graph()
    walker = GraphWalker()
    state = walker.walk(graph, {"input": (1, 4)})
    before = (list(state.nodes), dict(state.counters), dict(state.cache))

    walker.lower(graph.node(1), graph, {"input": (1, 4)}, state)

    assert (state.nodes, state.counters, state.cache) == before


def test_unsupported_operator_is_fatal() -> None:
    b = GraphBuilder()
    x = b.input("input", shape=(1, 4))
    graph = b.build(b.relu(b.layer("lstm", [x])))

    with pytest.raises(UnsupportedOperatorError, match="lstm"):
        GraphWalker().walk(graph, None)


def test_cycle_is_rejected() -> None:
    nodes = {
        0: ComputationNode(id=0, op="relu", parents=(1,)),
        1: ComputationNode(id=1, op="relu", parents=(0,)),
    }
    with pytest.raises(GraphError, match="cycle"):
        GraphWalker().walk(Graph(nodes=nodes, output=0), None)


def test_duplicate_fixed_names_are_rejected() -> None:
    b = GraphBuilder()
    x = b.input("input", shape=(1, 4))
    h = b.dense(x, 4, name="fc")
    graph = b.build(b.dense(h, 4, name="fc"))

    with pytest.raises(ValidationError, match="already used"):
        GraphWalker().walk(graph, None)


def test_fixed_name_still_advances_kind_counter() -> None:
    b = GraphBuilder()
    x = b.input("input", shape=(1, 4))
    h = b.dense(x, 4, name="encoder")
    graph = b.build(b.dense(h, 2))

    state = GraphWalker().walk(graph, None)
    assert [n.name for n in state.nodes] == ["encoder", "dense_1"]


def test_deep_chain_does_not_hit_recursion_limit() -> None:
    b = GraphBuilder()
    x = b.input("input", shape=(1, 8))
    for _ in range(5000):
        x = b.relu(x)
    state = GraphWalker().walk(b.build(x), None)

    assert len(state.nodes) == 5000
    assert state.nodes[-1].name == "relu_4999"
    assert state.nodes[-1].inputs == ("relu_4998",)
