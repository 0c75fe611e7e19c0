from __future__ import annotations

from typing import Any

import numpy as np
import onnx
import pytest
from onnx import TensorProto, numpy_helper

from graphport import ExportOptions
from graphport.errors import (
    InvariantError,
    UnsupportedDtypeError,
    UnsupportedOperatorError,
    ValidationError,
)
from graphport.export import (
    IR_VERSION,
    OPSET_VERSION,
    PRODUCER_NAME,
    GraphWalker,
    ModelAssembler,
    TraversalState,
    dump,
    flatten_params,
)
from graphport.graph import Graph, GraphBuilder


def _dense_graph() -> Graph:
    b = GraphBuilder()
    x = b.input("input")
    return b.build(b.dense(x, 3))


def _dense_params() -> dict[str, dict[str, np.ndarray]]:
    rng = np.random.default_rng(0)
    return {
        "dense_0": {
            "kernel": rng.standard_normal((4, 3)).astype(np.float32),
            "bias": np.zeros((3,), dtype=np.float32),
        }
    }


def _dims(value: onnx.ValueInfoProto) -> list[Any]:
    return [
        d.dim_param if d.HasField("dim_param") else d.dim_value
        for d in value.type.tensor_type.shape.dim
    ]


def test_dense_model_envelope() -> None:
    result = ModelAssembler().build(_dense_graph(), {"input": (1, 4)}, _dense_params())
    model = result.model

    assert result.output_name == "dense_0"
    assert model.ir_version == IR_VERSION == 3
    assert [(o.domain, o.version) for o in model.opset_import] == [("", OPSET_VERSION)]
    assert model.producer_name == PRODUCER_NAME
    assert model.domain == ""
    assert model.model_version == 1
    assert model.doc_string == "A graphport model"

    graph = model.graph
    assert graph.name == "dense_0"
    assert [n.op_type for n in graph.node] == ["Gemm"]
    assert [v.name for v in graph.input] == ["input", "dense_0_kernel", "dense_0_bias"]
    assert sorted(i.name for i in graph.initializer) == ["dense_0_bias", "dense_0_kernel"]
    assert [v.name for v in graph.output] == ["dense_0"]
    assert _dims(graph.output[0]) == [1, 3]


def test_initializers_hold_parameter_values() -> None:
    params = _dense_params()
    result = ModelAssembler().build(_dense_graph(), {"input": (1, 4)}, params)

    by_name = {init.name: init for init in result.model.graph.initializer}
    np.testing.assert_array_equal(
        numpy_helper.to_array(by_name["dense_0_kernel"]), params["dense_0"]["kernel"]
    )
    assert list(by_name["dense_0_bias"].dims) == [3]


def test_options_override_envelope_metadata() -> None:
    result = ModelAssembler().build(
        _dense_graph(),
        {"input": (1, 4)},
        _dense_params(),
        {"version": 7, "doc_string": "classifier head"},
    )
    assert result.model.model_version == 7
    assert result.model.doc_string == "classifier head"


def test_invalid_options_are_rejected() -> None:
    with pytest.raises(ValueError, match="version"):
        ModelAssembler().build(
            _dense_graph(), {"input": (1, 4)}, _dense_params(), ExportOptions(version=-1)
        )


def test_unreferenced_parameters_are_not_serialized() -> None:
    params = _dense_params()
    params["dense_9"] = {"kernel": np.ones((2, 2), dtype=np.float32)}
    result = ModelAssembler().build(_dense_graph(), {"input": (1, 4)}, params)

    names = {init.name for init in result.model.graph.initializer}
    assert "dense_9_kernel" not in names
    assert "dense_9_kernel" not in {v.name for v in result.model.graph.input}


def test_missing_parameter_is_rejected() -> None:
    params = _dense_params()
    del params["dense_0"]["bias"]

    with pytest.raises(ValidationError, match="dense_0_bias"):
        ModelAssembler().build(_dense_graph(), {"input": (1, 4)}, params)


def test_parameter_with_unsupported_dtype_is_rejected() -> None:
    params = _dense_params()
    params["dense_0"]["bias"] = np.zeros((3,), dtype=np.complex64)

    with pytest.raises(UnsupportedDtypeError) as excinfo:
        ModelAssembler().build(_dense_graph(), {"input": (1, 4)}, params)
    assert excinfo.value.option == "dense_0_bias"


def test_parameter_value_info_uses_parameter_dtype() -> None:
    params = _dense_params()
    params["dense_0"]["bias"] = np.zeros((3,), dtype=np.float64)
    result = ModelAssembler().build(_dense_graph(), {"input": (1, 4)}, params)

    by_name = {v.name: v for v in result.model.graph.input}
    assert by_name["dense_0_bias"].type.tensor_type.elem_type == TensorProto.DOUBLE
    assert by_name["dense_0_kernel"].type.tensor_type.elem_type == TensorProto.FLOAT


def test_serialization_is_deterministic() -> None:
    graph = _dense_graph()
    first, name_a = dump(graph, {"input": (1, 4)}, _dense_params())
    second, name_b = dump(graph, {"input": (1, 4)}, _dense_params())

    assert name_a == name_b == "dense_0"
    assert first == second


def test_serialized_bytes_round_trip_through_onnx() -> None:
    payload, _ = ModelAssembler().dump(_dense_graph(), {"input": (1, 4)}, _dense_params())
    model = onnx.load_from_string(payload)

    assert model.graph.node[0].op_type == "Gemm"
    assert list(model.graph.node[0].input) == ["input", "dense_0_kernel", "dense_0_bias"]


def test_unknown_dimension_becomes_symbolic() -> None:
    result = ModelAssembler().build(_dense_graph(), {"input": (None, 4)}, _dense_params())

    assert _dims(result.model.graph.input[0]) == ["input_dim0", 4]
    assert _dims(result.model.graph.output[0]) == ["dense_0_dim0", 3]


def test_unsupported_operator_aborts_export() -> None:
    b = GraphBuilder()
    x = b.input("input")
    graph = b.build(b.layer("embedding", [x]))

    with pytest.raises(UnsupportedOperatorError, match="embedding"):
        ModelAssembler().build(graph, {"input": (1, 4)})


def test_missing_output_name_is_an_invariant_violation() -> None:
    class _EmptyWalker(GraphWalker):
        def walk(self, graph: Graph, templates: Any) -> TraversalState:
            return TraversalState()

    assembler = ModelAssembler(walker=_EmptyWalker())
    with pytest.raises(InvariantError, match="output"):
        assembler.build(_dense_graph(), {"input": (1, 4)}, _dense_params())


def test_flatten_params_joins_layer_and_param_names() -> None:
    flat = flatten_params({"conv_0": {"kernel": 1, "bias": 2}, "dense_0": {"kernel": 3}})
    assert flat == {"conv_0_kernel": 1, "conv_0_bias": 2, "dense_0_kernel": 3}
    assert flatten_params(None) == {}


def test_auto_named_inputs_get_their_own_templates() -> None:
    b = GraphBuilder()
    first = b.layer("input")
    second = b.layer("input")
    graph = b.build(b.concatenate([first, second], axis=1))

    result = ModelAssembler().build(graph, {"input_0": (1, 2), "input_1": (1, 5)})

    declared = {v.name: _dims(v) for v in result.model.graph.input}
    assert declared == {"input_0": [1, 2], "input_1": [1, 5]}
    assert _dims(result.model.graph.output[0]) == [1, 7]


def test_reused_assembler_sees_edited_templates() -> None:
    assembler = ModelAssembler()
    graph = _dense_graph()
    templates = {"input": (1, 4)}
    assembler.build(graph, templates, _dense_params())

    templates["input"] = (8, 4)
    result = assembler.build(graph, templates, _dense_params())

    assert _dims(result.model.graph.input[0]) == [8, 4]
    assert _dims(result.model.graph.output[0]) == [8, 3]
