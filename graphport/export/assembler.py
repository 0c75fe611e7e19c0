from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from onnx import ModelProto, helper

from graphport._version import __version__
from graphport.config import ExportOptions
from graphport.errors import InvariantError, UnsupportedDtypeError, ValidationError
from graphport.graph import Graph, ShapeQuery
from graphport.utils.logging import get_logger, log_event

from .ir import ValueInfo
from .tensor_codec import as_array, onnx_dtype, to_tensor_proto
from .walker import GraphWalker

LOGGER = get_logger(__name__)

IR_VERSION = 3
OPSET_VERSION = 13
PRODUCER_NAME = "graphport"

ParamStore = Mapping[str, Mapping[str, Any]]


@dataclass(frozen=True, slots=True)
class ExportResult:
    model: ModelProto
    output_name: str

    def serialize(self) -> bytes:
        return self.model.SerializeToString()


def flatten_params(params: ParamStore | None) -> dict[str, Any]:
    """Merge per-layer stores into one ``<layer>_<param>`` keyed mapping."""
    flat: dict[str, Any] = {}
    for layer_name, layer_params in (params or {}).items():
        for param_name, value in layer_params.items():
            flat[f"{layer_name}_{param_name}"] = value
    return flat


def _resolve_options(options: ExportOptions | Mapping[str, Any] | None) -> ExportOptions:
    if isinstance(options, ExportOptions):
        options.validate()
        return options
    return ExportOptions.from_dict(options)


class ModelAssembler:
    """Builds the ONNX model envelope for one source graph."""

    def __init__(
        self,
        *,
        shape_query: ShapeQuery | None = None,
        walker: GraphWalker | None = None,
    ) -> None:
        self._walker = walker if walker is not None else GraphWalker(shape_query)

    def build(
        self,
        graph: Graph,
        templates: Any,
        params: ParamStore | None = None,
        options: ExportOptions | Mapping[str, Any] | None = None,
    ) -> ExportResult:
        opts = _resolve_options(options)
        graph.validate()
        state = self._walker.walk(graph, templates)

        output_name = state.cache.get(graph.output)
        if output_name is None:
            raise InvariantError(
                "output node was not named during the walk",
                node_id=graph.output,
                op=graph.output_node.op,
            )

        flat = flatten_params(params)
        initializers = []
        param_inputs = []
        for name in state.param_names:
            if name not in flat:
                raise ValidationError(
                    f"parameter {name!r} is missing from the parameter store",
                    option=name,
                )
            value = as_array(flat[name])
            try:
                initializers.append(to_tensor_proto(value, name))
            except UnsupportedDtypeError as exc:
                raise UnsupportedDtypeError(str(exc), option=name) from exc
            param_inputs.append(
                ValueInfo(name=name, shape=tuple(value.shape), elem_type=onnx_dtype(value.dtype))
            )

        output_shape = self._walker.shape_query(graph, graph.output, templates)
        output = ValueInfo(name=output_name, shape=tuple(output_shape))

        onnx_graph = helper.make_graph(
            [node.to_proto() for node in state.nodes],
            output_name,
            [value.to_proto() for value in (*state.graph_inputs, *param_inputs)],
            [output.to_proto()],
            initializer=initializers,
        )
        model = helper.make_model(
            onnx_graph,
            opset_imports=[helper.make_opsetid("", OPSET_VERSION)],
            ir_version=IR_VERSION,
            producer_name=PRODUCER_NAME,
            producer_version=__version__,
            domain="",
            model_version=opts.version,
            doc_string=opts.doc_string,
        )
        log_event(
            LOGGER,
            "model_assembled",
            level="DEBUG",
            fields={
                "output_name": output_name,
                "node_count": len(state.nodes),
                "initializer_count": len(initializers),
                "input_count": len(state.graph_inputs),
            },
        )
        return ExportResult(model=model, output_name=output_name)

    def dump(
        self,
        graph: Graph,
        templates: Any,
        params: ParamStore | None = None,
        options: ExportOptions | Mapping[str, Any] | None = None,
    ) -> tuple[bytes, str]:
        """Encode ``graph`` and return the model bytes with the output name."""
        result = self.build(graph, templates, params, options)
        return result.serialize(), result.output_name


def dump(
    graph: Graph,
    templates: Any,
    params: ParamStore | None = None,
    options: ExportOptions | Mapping[str, Any] | None = None,
    *,
    shape_query: ShapeQuery | None = None,
) -> tuple[bytes, str]:
    return ModelAssembler(shape_query=shape_query).dump(graph, templates, params, options)
