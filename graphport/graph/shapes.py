from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from typing import Any, Protocol, runtime_checkable

import numpy as np

from graphport.errors import (
    GraphError,
    UnsupportedDtypeError,
    UnsupportedOperatorError,
    ValidationError,
)

from .node import (
    ACTIVATION_OPS,
    COMBINATOR_OPS,
    DROPOUT_OPS,
    GLOBAL_POOLING_OPS,
    POOLING_OPS,
    ComputationNode,
    Graph,
    NodeId,
    assign_names,
)
from .options import Padding, conv_windows, pool_windows

Shape = tuple[int | None, ...]
Templates = Mapping[str, Any] | Any


@runtime_checkable
class ShapeQuery(Protocol):
    """Supplies the output shape of any node given the input templates."""

    def __call__(self, graph: Graph, node_id: NodeId, templates: Templates) -> Shape:
        ...


def template_shape(template: Any) -> Shape:
    """Shape of a template: a shape sequence or an array-like with ``.shape``."""
    shape = getattr(template, "shape", None)
    if shape is None:
        shape = template
    if not isinstance(shape, Sequence) or isinstance(shape, str):
        raise ValidationError(f"input template must be a shape or an array, got: {template!r}")
    return tuple(None if dim is None else int(dim) for dim in shape)


def template_dtype(template: Any) -> np.dtype:
    dtype = getattr(template, "dtype", None)
    if dtype is None:
        return np.dtype(np.float32)
    if isinstance(dtype, np.dtype):
        return dtype
    # torch dtypes stringify as "torch.float32"
    dtype_name = str(dtype).rsplit(".", 1)[-1]
    try:
        return np.dtype(dtype_name)
    except TypeError:
        raise UnsupportedDtypeError(f"unsupported element type {dtype_name}") from None


def _is_single_template(templates: Any) -> bool:
    return not isinstance(templates, Mapping)


def resolve_template(templates: Templates, name: str) -> Any:
    """Look up the template of input ``name``.

    A bare template (not a mapping) is accepted for graphs with one input.
    """
    if _is_single_template(templates):
        return templates
    if name not in templates:
        raise ValidationError(
            f"no input template provided for input {name!r}",
            op="input",
            option=name,
        )
    return templates[name]


def input_template(node: ComputationNode, name: str, templates: Templates) -> Any:
    """Template of an input node, falling back to its declared ``shape`` option."""
    if templates is None:
        declared = node.opt("shape")
        if declared is None:
            raise ValidationError(
                "no input template provided and the input declares no shape",
                node_id=node.id,
                op=node.op,
                option=name,
            )
        return tuple(declared)
    return resolve_template(templates, name)


def _window_output(
    size: int | None, kernel: int, stride: int, pads: tuple[int, int] | str
) -> int | None:
    if size is None:
        return None
    if pads == "same":
        return math.ceil(size / stride)
    if pads == "valid":
        return (size - kernel) // stride + 1
    lo, hi = pads
    return (size + lo + hi - kernel) // stride + 1


def _spatial_output(
    input_shape: Shape, kernel: list[int], strides: list[int], padding: Padding
) -> list[int | None]:
    spatial = input_shape[2:]
    pads: Sequence[Any] = [padding] * len(spatial) if isinstance(padding, str) else padding
    return [
        _window_output(size, k, s, p)
        for size, k, s, p in zip(spatial, kernel, strides, pads, strict=True)
    ]


def _broadcast(node: ComputationNode, shapes: list[Shape]) -> Shape:
    rank = max(len(s) for s in shapes)
    padded = [(1,) * (rank - len(s)) + tuple(s) for s in shapes]
    out: list[int | None] = []
    for dims in zip(*padded):
        known = {d for d in dims if d is not None and d != 1}
        if len(known) > 1:
            raise ValidationError(
                f"input shapes {shapes} do not broadcast", node_id=node.id, op=node.op
            )
        if known:
            out.append(known.pop())
        elif None in dims:
            out.append(None)
        else:
            out.append(1)
    return tuple(out)


def _concatenate(node: ComputationNode, shapes: list[Shape]) -> Shape:
    rank = len(shapes[0])
    if any(len(s) != rank for s in shapes):
        raise ValidationError(
            f"concatenated inputs must share a rank, got {shapes}", node_id=node.id, op=node.op
        )
    axis = node.opt("axis", -1)
    if not -rank <= axis < rank:
        raise ValidationError(
            f"axis {axis} is out of range for rank {rank}",
            node_id=node.id,
            op=node.op,
            option="axis",
        )
    axis %= rank
    sizes = [s[axis] for s in shapes]
    total = None if None in sizes else sum(sizes)
    return (*shapes[0][:axis], total, *shapes[0][axis + 1 :])


class StaticShapeInference:
    """Shape inference over the supported operator set.

    Results are memoized per (graph, templates) pair and computed with an
    explicit work stack so deep graphs do not exhaust the call stack. The memo
    does not see in-place edits to a templates mapping; call ``reset()`` before
    reusing one. Input templates are looked up under the names an export walk
    assigns (see ``assign_names``).
    """

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self._graph: Graph | None = None
        self._templates: Any = None
        self._cache: dict[NodeId, Shape] = {}
        self._names: dict[NodeId, str] | None = None

    def __call__(self, graph: Graph, node_id: NodeId, templates: Templates) -> Shape:
        if graph is not self._graph or templates is not self._templates:
            self.reset()
            self._graph = graph
            self._templates = templates

        stack: list[tuple[NodeId, bool]] = [(node_id, False)]
        pending: set[NodeId] = set()
        while stack:
            current, ready = stack.pop()
            if current in self._cache:
                continue
            node = graph.node(current)
            if ready:
                parent_shapes = [self._cache[p] for p in node.parents]
                self._cache[current] = self._infer(node, parent_shapes, templates)
                pending.discard(current)
                continue
            if current in pending:
                raise GraphError("graph contains a cycle", node_id=current, op=node.op)
            pending.add(current)
            stack.append((current, True))
            for parent in reversed(node.parents):
                if parent not in self._cache:
                    stack.append((parent, False))
        return self._cache[node_id]

    def _input_name(self, node: ComputationNode) -> str:
        if self._names is None:
            self._names = assign_names(self._graph)
        # Nodes the output does not depend on are never named by a walk.
        return self._names.get(node.id) or node.name_for({})

    def _infer(self, node: ComputationNode, parents: list[Shape], templates: Templates) -> Shape:
        op = node.op
        if op == "input":
            return template_shape(input_template(node, self._input_name(node), templates))
        if op == "constant":
            return tuple(np.shape(node.opt("value")))

        if not parents:
            raise GraphError("operator requires an input", node_id=node.id, op=op)
        shape = parents[0]

        if op == "dense":
            units = node.opt("units")
            if units is None:
                raise ValidationError(
                    "dense requires 'units'", node_id=node.id, op=op, option="units"
                )
            return (*shape[:-1], int(units))
        if op == "conv":
            kernel, strides, padding = conv_windows(node, shape)
            spatial = _spatial_output(shape, kernel, strides, padding)
            filters = node.opt("filters")
            if filters is None:
                raise ValidationError(
                    "conv requires 'filters'", node_id=node.id, op=op, option="filters"
                )
            return (shape[0], int(filters), *spatial)
        if op in POOLING_OPS:
            kernel, strides, padding = pool_windows(node, shape)
            spatial = _spatial_output(shape, kernel, strides, padding)
            return (shape[0], shape[1], *spatial)
        if op in GLOBAL_POOLING_OPS:
            if node.opt("keep_axes", False):
                return (shape[0], shape[1], *([1] * (len(shape) - 2)))
            return (shape[0], shape[1])
        if op in ACTIVATION_OPS or op in DROPOUT_OPS:
            return shape
        if op in COMBINATOR_OPS:
            return _broadcast(node, parents)
        if op == "concatenate":
            return _concatenate(node, parents)
        raise UnsupportedOperatorError("no shape rule for operator", node_id=node.id, op=op)


def infer_shape(graph: Graph, node_id: NodeId, templates: Templates) -> Shape:
    """One-off shape query without a shared memo table."""
    return StaticShapeInference()(graph, node_id, templates)
