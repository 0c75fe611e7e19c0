"""Normalization of spatial layer options against the input's spatial rank."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from graphport.errors import ValidationError

from .node import ComputationNode

PADDING_MODES = ("valid", "same")

Padding = str | list[tuple[int, int]]


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def spatial_rank(node: ComputationNode, input_shape: Sequence[Any]) -> int:
    rank = len(input_shape) - 2
    if rank < 1:
        raise ValidationError(
            f"expected an input of rank >= 3 (batch, channels, spatial...), "
            f"got shape {tuple(input_shape)}",
            node_id=node.id,
            op=node.op,
        )
    return rank


def list_or_duplicate(node: ComputationNode, key: str, value: Any, rank: int) -> list[int]:
    """Broadcast an integer to ``rank`` entries or check an explicit sequence."""
    if _is_int(value):
        return [value] * rank
    if isinstance(value, Sequence) and not isinstance(value, str):
        values = list(value)
        if len(values) != rank:
            raise ValidationError(
                f"expected {key!r} to be a {rank}-element sequence, got: {value!r}",
                node_id=node.id,
                op=node.op,
                option=key,
            )
        if not all(_is_int(v) for v in values):
            raise ValidationError(
                f"expected {key!r} to contain integers, got: {value!r}",
                node_id=node.id,
                op=node.op,
                option=key,
            )
        return values
    raise ValidationError(
        f"expected {key!r} to be an integer or a sequence, got: {value!r}",
        node_id=node.id,
        op=node.op,
        option=key,
    )


def normalize_padding(node: ComputationNode, padding: Any, rank: int) -> Padding:
    """Return ``"valid"``, ``"same"`` or a list of (leading, trailing) pairs."""
    if isinstance(padding, str):
        mode = padding.lower()
        if mode not in PADDING_MODES:
            raise ValidationError(
                f"padding must be one of {PADDING_MODES} or explicit pairs, got: {padding!r}",
                node_id=node.id,
                op=node.op,
                option="padding",
            )
        return mode
    if isinstance(padding, Sequence):
        pairs = list(padding)
        if len(pairs) != rank:
            raise ValidationError(
                f"expected 'padding' to hold {rank} (leading, trailing) pairs, got: {padding!r}",
                node_id=node.id,
                op=node.op,
                option="padding",
            )
        normalized: list[tuple[int, int]] = []
        for pair in pairs:
            if (
                not isinstance(pair, Sequence)
                or len(pair) != 2
                or not all(_is_int(v) for v in pair)
            ):
                raise ValidationError(
                    f"expected each padding entry to be an integer pair, got: {pair!r}",
                    node_id=node.id,
                    op=node.op,
                    option="padding",
                )
            normalized.append((pair[0], pair[1]))
        return normalized
    raise ValidationError(
        f"unsupported padding value: {padding!r}",
        node_id=node.id,
        op=node.op,
        option="padding",
    )


def pool_windows(
    node: ComputationNode, input_shape: Sequence[Any]
) -> tuple[list[int], list[int], Padding]:
    """Kernel shape, strides and padding of a windowed pooling node."""
    rank = spatial_rank(node, input_shape)
    kernel_size = node.opt("kernel_size")
    if kernel_size is None:
        raise ValidationError(
            "pooling requires 'kernel_size'", node_id=node.id, op=node.op, option="kernel_size"
        )
    kernel = list_or_duplicate(node, "kernel_size", kernel_size, rank)
    strides = node.opt("strides")
    strides = list_or_duplicate(node, "strides", kernel if strides is None else strides, rank)
    padding = normalize_padding(node, node.opt("padding", "valid"), rank)
    return kernel, strides, padding


def conv_windows(
    node: ComputationNode, input_shape: Sequence[Any]
) -> tuple[list[int], list[int], Padding]:
    """Kernel shape, strides and padding of a convolution node."""
    rank = spatial_rank(node, input_shape)
    kernel = list_or_duplicate(node, "kernel_size", node.opt("kernel_size", 1), rank)
    strides = node.opt("strides")
    strides = list_or_duplicate(node, "strides", 1 if strides is None else strides, rank)
    padding = normalize_padding(node, node.opt("padding", "valid"), rank)

    dilation = node.opt("kernel_dilation")
    if dilation is not None:
        dilation = list_or_duplicate(node, "kernel_dilation", dilation, rank)
        # TODO: emit the ONNX "dilations" attribute and account for it in shape inference.
        if any(d != 1 for d in dilation):
            raise ValidationError(
                "kernel dilation other than 1 is not supported yet",
                node_id=node.id,
                op=node.op,
                option="kernel_dilation",
            )
    return kernel, strides, padding
