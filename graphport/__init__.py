"""graphport public API."""

from ._version import __version__
from .config import ExportOptions, GraphportConfig
from .errors import (
    ExportError,
    GraphError,
    InvariantError,
    UnsupportedDtypeError,
    UnsupportedOperatorError,
    ValidationError,
)
from .export import Exporter, ModelAssembler, OnnxExporter, dump
from .graph import ComputationNode, Graph, GraphBuilder, ShapeQuery, StaticShapeInference

__all__ = [
    "__version__",
    "ComputationNode",
    "ExportError",
    "ExportOptions",
    "Exporter",
    "Graph",
    "GraphBuilder",
    "GraphError",
    "GraphportConfig",
    "InvariantError",
    "ModelAssembler",
    "OnnxExporter",
    "ShapeQuery",
    "StaticShapeInference",
    "UnsupportedDtypeError",
    "UnsupportedOperatorError",
    "ValidationError",
    "dump",
]
