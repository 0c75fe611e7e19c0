from .builder import GraphBuilder
from .node import (
    ACTIVATION_OPS,
    COMBINATOR_OPS,
    DROPOUT_OPS,
    GLOBAL_POOLING_OPS,
    OP_KINDS,
    POOLING_OPS,
    AutoName,
    ComputationNode,
    FixedName,
    Graph,
    NamingStrategy,
    NodeId,
    OpCounters,
    ParamSpec,
    assign_names,
)
from .options import conv_windows, list_or_duplicate, normalize_padding, pool_windows
from .shapes import (
    Shape,
    ShapeQuery,
    StaticShapeInference,
    infer_shape,
    input_template,
    resolve_template,
    template_dtype,
    template_shape,
)

__all__ = [
    "ACTIVATION_OPS",
    "COMBINATOR_OPS",
    "DROPOUT_OPS",
    "GLOBAL_POOLING_OPS",
    "OP_KINDS",
    "POOLING_OPS",
    "AutoName",
    "ComputationNode",
    "FixedName",
    "Graph",
    "GraphBuilder",
    "NamingStrategy",
    "NodeId",
    "OpCounters",
    "ParamSpec",
    "Shape",
    "ShapeQuery",
    "StaticShapeInference",
    "assign_names",
    "conv_windows",
    "infer_shape",
    "input_template",
    "list_or_duplicate",
    "normalize_padding",
    "pool_windows",
    "resolve_template",
    "template_dtype",
    "template_shape",
]
