"""Per-operator translation of source nodes into ONNX nodes."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import numpy as np

from graphport.errors import (
    GraphError,
    UnsupportedDtypeError,
    UnsupportedOperatorError,
    ValidationError,
)
from graphport.graph import (
    ACTIVATION_OPS,
    COMBINATOR_OPS,
    DROPOUT_OPS,
    GLOBAL_POOLING_OPS,
    POOLING_OPS,
    ComputationNode,
    Graph,
    Shape,
    ShapeQuery,
    conv_windows,
    input_template,
    pool_windows,
    template_dtype,
    template_shape,
)

from .attributes import Attribute, int_attr, ints_attr, padding_attribute, tensor_attr
from .ir import LoweredNode, ValueInfo
from .tensor_codec import as_array, onnx_dtype


@dataclass(frozen=True, slots=True)
class LoweringContext:
    node: ComputationNode
    name: str
    input_names: tuple[str, ...]
    graph: Graph
    templates: Any
    shape_query: ShapeQuery

    @property
    def input_name(self) -> str:
        if len(self.input_names) != 1:
            raise GraphError(
                f"expected exactly one input, got {len(self.input_names)}",
                node_id=self.node.id,
                op=self.node.op,
            )
        return self.input_names[0]

    def input_shape(self) -> Shape:
        return self.shape_query(self.graph, self.node.parents[0], self.templates)

    def param_names(self) -> tuple[str, ...]:
        return tuple(f"{self.name}_{param.name}" for param in self.node.parameters)


@dataclass(frozen=True, slots=True)
class Lowering:
    nodes: tuple[LoweredNode, ...] = ()
    param_names: tuple[str, ...] = ()
    graph_inputs: tuple[ValueInfo, ...] = ()


LoweringRule = Callable[[LoweringContext], Lowering]


def _single(ctx: LoweringContext, op_type: str) -> Lowering:
    node = LoweredNode(
        op_type=op_type,
        name=ctx.name,
        inputs=(ctx.input_name,),
        outputs=(ctx.name,),
    )
    return Lowering(nodes=(node,))


def _lower_input(ctx: LoweringContext) -> Lowering:
    template = input_template(ctx.node, ctx.name, ctx.templates)
    try:
        elem_type = onnx_dtype(template_dtype(template))
    except UnsupportedDtypeError as exc:
        raise UnsupportedDtypeError(
            str(exc), node_id=ctx.node.id, op=ctx.node.op, option=ctx.name
        ) from exc
    value = ValueInfo(name=ctx.name, shape=template_shape(template), elem_type=elem_type)
    return Lowering(graph_inputs=(value,))


def _lower_constant(ctx: LoweringContext) -> Lowering:
    node = ctx.node
    if "value" not in node.opts:
        raise GraphError("constant has no value", node_id=node.id, op=node.op, option="value")
    value = as_array(node.opt("value"))
    try:
        onnx_dtype(value.dtype)
    except UnsupportedDtypeError as exc:
        raise UnsupportedDtypeError(
            str(exc), node_id=node.id, op=node.op, option="value"
        ) from exc
    lowered = LoweredNode(
        op_type="Constant",
        name=ctx.name,
        inputs=(),
        outputs=(ctx.name,),
        attributes=(tensor_attr("value", value),),
    )
    return Lowering(nodes=(lowered,))


def _lower_dense(ctx: LoweringContext) -> Lowering:
    params = ctx.param_names()
    lowered = LoweredNode(
        op_type="Gemm",
        name=ctx.name,
        inputs=(ctx.input_name, *params),
        outputs=(ctx.name,),
    )
    return Lowering(nodes=(lowered,), param_names=params)


def _lower_conv(ctx: LoweringContext) -> Lowering:
    input_name = ctx.input_name
    _, strides, padding = conv_windows(ctx.node, ctx.input_shape())
    params = ctx.param_names()
    lowered = LoweredNode(
        op_type="Conv",
        name=ctx.name,
        inputs=(input_name, *params),
        outputs=(ctx.name,),
        attributes=(ints_attr("strides", strides), padding_attribute(padding)),
    )
    return Lowering(nodes=(lowered,), param_names=params)


def _norm_attr(ctx: LoweringContext) -> Attribute:
    norm = ctx.node.opt("norm", 2)
    if isinstance(norm, bool) or not isinstance(norm, int):
        raise ValidationError(
            f"expected 'norm' to be an integer, got: {norm!r}",
            node_id=ctx.node.id,
            op=ctx.node.op,
            option="norm",
        )
    return int_attr("p", norm)


_POOL_OP_TYPES = {"max_pool": "MaxPool", "avg_pool": "AveragePool", "lp_pool": "LpPool"}


def _lower_pool(ctx: LoweringContext) -> Lowering:
    input_name = ctx.input_name
    kernel, strides, padding = pool_windows(ctx.node, ctx.input_shape())
    attributes = [
        padding_attribute(padding),
        ints_attr("strides", strides),
        ints_attr("kernel_shape", kernel),
    ]
    op = ctx.node.op
    if op == "lp_pool":
        attributes.append(_norm_attr(ctx))
    elif op == "avg_pool":
        attributes.append(int_attr("count_include_pad", 1))
    lowered = LoweredNode(
        op_type=_POOL_OP_TYPES[op],
        name=ctx.name,
        inputs=(input_name,),
        outputs=(ctx.name,),
        attributes=tuple(attributes),
    )
    return Lowering(nodes=(lowered,))


_GLOBAL_POOL_OP_TYPES = {
    "global_avg_pool": "GlobalAveragePool",
    "global_lp_pool": "GlobalLpPool",
    "global_max_pool": "GlobalMaxPool",
}


def _lower_global_pool(ctx: LoweringContext) -> Lowering:
    input_name = ctx.input_name
    op_type = _GLOBAL_POOL_OP_TYPES[ctx.node.op]
    attributes = (_norm_attr(ctx),) if ctx.node.op == "global_lp_pool" else ()

    if ctx.node.opt("keep_axes", False):
        lowered = LoweredNode(
            op_type=op_type,
            name=ctx.name,
            inputs=(input_name,),
            outputs=(ctx.name,),
            attributes=attributes,
        )
        return Lowering(nodes=(lowered,))

    # Squeeze takes its axes as an input since opset 13, so they ride on a Constant.
    pre_squeeze = f"{ctx.name}_pre_squeeze"
    axes_name = f"{ctx.name}_squeeze_axes"
    rank = len(ctx.input_shape())
    axes = np.arange(2, rank, dtype=np.int64)
    nodes = (
        LoweredNode(
            op_type=op_type,
            name=pre_squeeze,
            inputs=(input_name,),
            outputs=(pre_squeeze,),
            attributes=attributes,
        ),
        LoweredNode(
            op_type="Constant",
            name=axes_name,
            inputs=(),
            outputs=(axes_name,),
            attributes=(tensor_attr("value", axes),),
        ),
        LoweredNode(
            op_type="Squeeze",
            name=ctx.name,
            inputs=(pre_squeeze, axes_name),
            outputs=(ctx.name,),
        ),
    )
    return Lowering(nodes=nodes)


def _activation_rule(op_type: str) -> LoweringRule:
    def rule(ctx: LoweringContext) -> Lowering:
        return _single(ctx, op_type)

    return rule


def _combinator_rule(op_type: str) -> LoweringRule:
    def rule(ctx: LoweringContext) -> Lowering:
        if len(ctx.input_names) != 2:
            raise GraphError(
                f"expected exactly two inputs, got {len(ctx.input_names)}",
                node_id=ctx.node.id,
                op=ctx.node.op,
            )
        lowered = LoweredNode(
            op_type=op_type,
            name=ctx.name,
            inputs=ctx.input_names,
            outputs=(ctx.name,),
        )
        return Lowering(nodes=(lowered,))

    return rule


def _lower_concatenate(ctx: LoweringContext) -> Lowering:
    if not ctx.input_names:
        raise GraphError(
            "concatenate needs at least one input", node_id=ctx.node.id, op=ctx.node.op
        )
    axis = ctx.node.opt("axis", -1)
    if isinstance(axis, bool) or not isinstance(axis, int):
        raise ValidationError(
            f"expected 'axis' to be an integer, got: {axis!r}",
            node_id=ctx.node.id,
            op=ctx.node.op,
            option="axis",
        )
    lowered = LoweredNode(
        op_type="Concat",
        name=ctx.name,
        inputs=ctx.input_names,
        outputs=(ctx.name,),
        attributes=(int_attr("axis", axis),),
    )
    return Lowering(nodes=(lowered,))


def _lower_dropout(ctx: LoweringContext) -> Lowering:
    # Consumers run in inference mode, where dropout is the identity.
    return _single(ctx, "Identity")


LOWERING_RULES: dict[str, LoweringRule] = {
    "input": _lower_input,
    "constant": _lower_constant,
    "dense": _lower_dense,
    "conv": _lower_conv,
    **{op: _lower_pool for op in POOLING_OPS},
    **{op: _lower_global_pool for op in GLOBAL_POOLING_OPS},
    **{op: _activation_rule(op_type) for op, op_type in ACTIVATION_OPS.items()},
    **{op: _lower_dropout for op in DROPOUT_OPS},
    **{op: _combinator_rule(op_type) for op, op_type in COMBINATOR_OPS.items()},
    "concatenate": _lower_concatenate,
}


def lowering_rule(node: ComputationNode) -> LoweringRule:
    rule = LOWERING_RULES.get(node.op)
    if rule is None:
        raise UnsupportedOperatorError(
            "operator has no ONNX lowering rule", node_id=node.id, op=node.op
        )
    return rule
