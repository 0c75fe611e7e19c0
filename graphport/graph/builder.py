from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import numpy as np

from .node import (
    ACTIVATION_OPS,
    DROPOUT_OPS,
    AutoName,
    ComputationNode,
    FixedName,
    Graph,
    NamingStrategy,
    NodeId,
    ParamSpec,
)


def _naming(name: str | None) -> NamingStrategy:
    return AutoName() if name is None else FixedName(name)


class GraphBuilder:
    """Functional construction of a source graph.

    Every layer method returns the id of the new node, which is then passed as
    the parent of the next layer::

        b = GraphBuilder()
        x = b.input("input", shape=(None, 4))
        y = b.relu(b.dense(x, 3))
        graph = b.build(y)
    """

    def __init__(self) -> None:
        self._nodes: dict[NodeId, ComputationNode] = {}
        self._next_id: NodeId = 0

    def layer(
        self,
        op: str,
        parents: Sequence[NodeId] = (),
        *,
        parameters: Sequence[ParamSpec] = (),
        name: str | None = None,
        **opts: Any,
    ) -> NodeId:
        node_id = self._next_id
        self._next_id += 1
        self._nodes[node_id] = ComputationNode(
            id=node_id,
            op=op,
            parents=tuple(parents),
            parameters=tuple(parameters),
            opts=opts,
            naming=_naming(name),
        )
        return node_id

    def build(self, output: NodeId) -> Graph:
        graph = Graph(nodes=self._nodes, output=output)
        graph.validate()
        return graph

    def input(self, name: str, shape: Sequence[int | None] | None = None) -> NodeId:
        opts: dict[str, Any] = {}
        if shape is not None:
            opts["shape"] = tuple(shape)
        return self.layer("input", name=name, **opts)

    def constant(self, value: Any, *, name: str | None = None) -> NodeId:
        return self.layer("constant", name=name, value=np.asarray(value))

    def dense(
        self,
        x: NodeId,
        units: int,
        *,
        use_bias: bool = True,
        name: str | None = None,
    ) -> NodeId:
        params = [ParamSpec("kernel")]
        if use_bias:
            params.append(ParamSpec("bias", (units,)))
        return self.layer("dense", [x], parameters=params, name=name, units=units)

    def conv(
        self,
        x: NodeId,
        filters: int,
        *,
        kernel_size: int | Sequence[int] = 1,
        strides: int | Sequence[int] = 1,
        padding: str | Sequence[tuple[int, int]] = "valid",
        kernel_dilation: int | Sequence[int] = 1,
        use_bias: bool = True,
        name: str | None = None,
    ) -> NodeId:
        params = [ParamSpec("kernel")]
        if use_bias:
            params.append(ParamSpec("bias", (filters,)))
        return self.layer(
            "conv",
            [x],
            parameters=params,
            name=name,
            filters=filters,
            kernel_size=kernel_size,
            strides=strides,
            padding=padding,
            kernel_dilation=kernel_dilation,
        )

    def _pool(
        self,
        op: str,
        x: NodeId,
        kernel_size: int | Sequence[int],
        strides: int | Sequence[int] | None,
        padding: str | Sequence[tuple[int, int]],
        name: str | None,
        **extra: Any,
    ) -> NodeId:
        return self.layer(
            op,
            [x],
            name=name,
            kernel_size=kernel_size,
            strides=strides,
            padding=padding,
            **extra,
        )

    def max_pool(
        self,
        x: NodeId,
        *,
        kernel_size: int | Sequence[int] = 1,
        strides: int | Sequence[int] | None = None,
        padding: str | Sequence[tuple[int, int]] = "valid",
        name: str | None = None,
    ) -> NodeId:
        return self._pool("max_pool", x, kernel_size, strides, padding, name)

    def avg_pool(
        self,
        x: NodeId,
        *,
        kernel_size: int | Sequence[int] = 1,
        strides: int | Sequence[int] | None = None,
        padding: str | Sequence[tuple[int, int]] = "valid",
        name: str | None = None,
    ) -> NodeId:
        return self._pool("avg_pool", x, kernel_size, strides, padding, name)

    def lp_pool(
        self,
        x: NodeId,
        *,
        norm: int = 2,
        kernel_size: int | Sequence[int] = 1,
        strides: int | Sequence[int] | None = None,
        padding: str | Sequence[tuple[int, int]] = "valid",
        name: str | None = None,
    ) -> NodeId:
        return self._pool("lp_pool", x, kernel_size, strides, padding, name, norm=norm)

    def global_avg_pool(
        self, x: NodeId, *, keep_axes: bool = False, name: str | None = None
    ) -> NodeId:
        return self.layer("global_avg_pool", [x], name=name, keep_axes=keep_axes)

    def global_max_pool(
        self, x: NodeId, *, keep_axes: bool = False, name: str | None = None
    ) -> NodeId:
        return self.layer("global_max_pool", [x], name=name, keep_axes=keep_axes)

    def global_lp_pool(
        self,
        x: NodeId,
        *,
        norm: int = 2,
        keep_axes: bool = False,
        name: str | None = None,
    ) -> NodeId:
        return self.layer("global_lp_pool", [x], name=name, keep_axes=keep_axes, norm=norm)

    def activation(self, op: str, x: NodeId, *, name: str | None = None) -> NodeId:
        if op not in ACTIVATION_OPS:
            raise ValueError(f"unknown activation {op!r}")
        return self.layer(op, [x], name=name)

    def dropout(
        self,
        x: NodeId,
        *,
        rate: float = 0.5,
        kind: str = "dropout",
        name: str | None = None,
    ) -> NodeId:
        if kind not in DROPOUT_OPS:
            raise ValueError(f"unknown dropout kind {kind!r}")
        return self.layer(kind, [x], name=name, rate=rate)

    def celu(self, x: NodeId, *, name: str | None = None) -> NodeId:
        return self.activation("celu", x, name=name)

    def elu(self, x: NodeId, *, name: str | None = None) -> NodeId:
        return self.activation("elu", x, name=name)

    def exp(self, x: NodeId, *, name: str | None = None) -> NodeId:
        return self.activation("exp", x, name=name)

    def hard_sigmoid(self, x: NodeId, *, name: str | None = None) -> NodeId:
        return self.activation("hard_sigmoid", x, name=name)

    def leaky_relu(self, x: NodeId, *, name: str | None = None) -> NodeId:
        return self.activation("leaky_relu", x, name=name)

    def linear(self, x: NodeId, *, name: str | None = None) -> NodeId:
        return self.activation("linear", x, name=name)

    def relu(self, x: NodeId, *, name: str | None = None) -> NodeId:
        return self.activation("relu", x, name=name)

    def selu(self, x: NodeId, *, name: str | None = None) -> NodeId:
        return self.activation("selu", x, name=name)

    def sigmoid(self, x: NodeId, *, name: str | None = None) -> NodeId:
        return self.activation("sigmoid", x, name=name)

    def softmax(self, x: NodeId, *, name: str | None = None) -> NodeId:
        return self.activation("softmax", x, name=name)

    def softplus(self, x: NodeId, *, name: str | None = None) -> NodeId:
        return self.activation("softplus", x, name=name)

    def softsign(self, x: NodeId, *, name: str | None = None) -> NodeId:
        return self.activation("softsign", x, name=name)

    def tanh(self, x: NodeId, *, name: str | None = None) -> NodeId:
        return self.activation("tanh", x, name=name)

    def add(self, x: NodeId, y: NodeId, *, name: str | None = None) -> NodeId:
        return self.layer("add", [x, y], name=name)

    def subtract(self, x: NodeId, y: NodeId, *, name: str | None = None) -> NodeId:
        return self.layer("subtract", [x, y], name=name)

    def multiply(self, x: NodeId, y: NodeId, *, name: str | None = None) -> NodeId:
        return self.layer("multiply", [x, y], name=name)

    def concatenate(
        self, inputs: Sequence[NodeId], *, axis: int = -1, name: str | None = None
    ) -> NodeId:
        return self.layer("concatenate", list(inputs), name=name, axis=axis)
