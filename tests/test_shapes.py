from __future__ import annotations

import numpy as np
import pytest

from graphport.errors import UnsupportedOperatorError, ValidationError
from graphport.graph import (
    GraphBuilder,
    ShapeQuery,
    StaticShapeInference,
    assign_names,
    infer_shape,
)


def test_static_inference_satisfies_shape_query_protocol() -> None:
    assert isinstance(StaticShapeInference(), ShapeQuery)


@pytest.mark.parametrize(
    ("kwargs", "expected"),
    [
        ({"kernel_size": 3}, (1, 4, 6, 6)),
        ({"kernel_size": 3, "strides": 2, "padding": "same"}, (1, 4, 4, 4)),
        ({"kernel_size": 3, "padding": [(1, 1), (1, 1)]}, (1, 4, 8, 8)),
        ({"kernel_size": [3, 1], "strides": [1, 2]}, (1, 4, 6, 4)),
    ],
)
def test_conv_output_shape(kwargs: dict, expected: tuple[int, ...]) -> None:
    b = GraphBuilder()
    x = b.input("input")
    graph = b.build(b.conv(x, 4, **kwargs))
    assert infer_shape(graph, graph.output, {"input": (1, 3, 8, 8)}) == expected


def test_pooling_strides_default_to_kernel() -> None:
    b = GraphBuilder()
    x = b.input("input")
    graph = b.build(b.max_pool(x, kernel_size=2))
    assert infer_shape(graph, graph.output, (1, 3, 8, 8)) == (1, 3, 4, 4)


def test_dynamic_dimensions_propagate() -> None:
    b = GraphBuilder()
    x = b.input("input")
    graph = b.build(b.avg_pool(x, kernel_size=2))
    assert infer_shape(graph, graph.output, (None, 3, None, 8)) == (None, 3, None, 4)


def test_global_pool_shapes() -> None:
    b = GraphBuilder()
    x = b.input("input")
    kept = b.global_avg_pool(x, keep_axes=True)
    dropped = b.global_avg_pool(x)
    graph = b.build(dropped)
    query = StaticShapeInference()

    assert query(graph, kept, (1, 3, 8, 8)) == (1, 3, 1, 1)
    assert query(graph, dropped, (1, 3, 8, 8)) == (1, 3)


def test_dense_replaces_last_dimension() -> None:
    b = GraphBuilder()
    x = b.input("input")
    graph = b.build(b.dense(x, 3))
    assert infer_shape(graph, graph.output, {"input": (None, 4)}) == (None, 3)


def test_merge_shapes() -> None:
    b = GraphBuilder()
    x = b.input("input")
    c = b.constant(np.ones((4,), dtype=np.float32))
    added = b.add(x, c)
    joined = b.concatenate([x, b.dense(x, 2)], axis=-1)
    graph = b.build(joined)
    query = StaticShapeInference()

    assert query(graph, added, (1, 4)) == (1, 4)
    assert query(graph, joined, (1, 4)) == (1, 6)


def test_incompatible_broadcast_is_rejected() -> None:
    b = GraphBuilder()
    x = b.input("input")
    c = b.constant(np.ones((3,), dtype=np.float32))
    graph = b.build(b.multiply(x, c))

    with pytest.raises(ValidationError, match="broadcast"):
        infer_shape(graph, graph.output, (1, 4))


def test_declared_input_shape_is_used_without_templates() -> None:
    b = GraphBuilder()
    x = b.input("input", shape=(2, 5))
    graph = b.build(b.relu(x))
    assert infer_shape(graph, graph.output, None) == (2, 5)


def test_unknown_operator_has_no_shape() -> None:
    b = GraphBuilder()
    x = b.input("input")
    graph = b.build(b.layer("attention", [x]))

    with pytest.raises(UnsupportedOperatorError, match="attention"):
        infer_shape(graph, graph.output, (1, 4))


def _two_auto_inputs() -> tuple[GraphBuilder, int]:
    b = GraphBuilder()
    first = b.layer("input")
    second = b.layer("input")
    return b, b.concatenate([first, second], axis=1)


def test_auto_named_inputs_use_their_walk_names() -> None:
    b, joined = _two_auto_inputs()
    graph = b.build(joined)

    assert assign_names(graph) == {0: "input_0", 1: "input_1", 2: "concatenate_0"}
    shape = infer_shape(graph, graph.output, {"input_0": (1, 2), "input_1": (1, 5)})
    assert shape == (1, 7)


def test_reset_drops_memoized_shapes() -> None:
    b = GraphBuilder()
    x = b.input("input")
    graph = b.build(b.dense(x, 3))
    templates = {"input": (1, 4)}
    query = StaticShapeInference()

    assert query(graph, graph.output, templates) == (1, 3)
    templates["input"] = (8, 4)
    query.reset()
    assert query(graph, graph.output, templates) == (8, 3)


def test_conv_without_filters_is_rejected() -> None:
    b = GraphBuilder()
    x = b.input("input")
    graph = b.build(b.layer("conv", [x], kernel_size=3))

    with pytest.raises(ValidationError, match="filters") as excinfo:
        infer_shape(graph, graph.output, (1, 3, 8, 8))
    assert excinfo.value.option == "filters"
    assert excinfo.value.node_id == 1
