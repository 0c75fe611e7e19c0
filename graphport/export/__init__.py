from .assembler import (
    IR_VERSION,
    OPSET_VERSION,
    PRODUCER_NAME,
    ExportResult,
    ModelAssembler,
    dump,
    flatten_params,
)
from .attributes import Attribute, padding_attribute, to_attribute_proto
from .interfaces import Exporter
from .ir import LoweredNode, ValueInfo
from .lowering import LOWERING_RULES, Lowering, LoweringContext, lowering_rule
from .naming import allocate
from .pipeline import OnnxExporter
from .tensor_codec import DTYPE_TABLE, EncodedTensor, encode, onnx_dtype, to_tensor_proto
from .walker import GraphWalker, TraversalState

__all__ = [
    "DTYPE_TABLE",
    "IR_VERSION",
    "LOWERING_RULES",
    "OPSET_VERSION",
    "PRODUCER_NAME",
    "Attribute",
    "EncodedTensor",
    "ExportResult",
    "Exporter",
    "GraphWalker",
    "Lowering",
    "LoweringContext",
    "LoweredNode",
    "ModelAssembler",
    "OnnxExporter",
    "TraversalState",
    "ValueInfo",
    "allocate",
    "dump",
    "encode",
    "flatten_params",
    "lowering_rule",
    "onnx_dtype",
    "padding_attribute",
    "to_attribute_proto",
    "to_tensor_proto",
]
