from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Literal

from onnx import AttributeProto

from graphport.graph.options import Padding

from .tensor_codec import to_tensor_proto

AttributeKind = Literal["INT", "INTS", "STRING", "TENSOR"]

_AUTO_PAD = {"valid": "VALID", "same": "SAME_UPPER"}


@dataclass(frozen=True, slots=True)
class Attribute:
    name: str
    kind: AttributeKind
    value: Any


def int_attr(name: str, value: int) -> Attribute:
    return Attribute(name, "INT", int(value))


def ints_attr(name: str, values: Sequence[int]) -> Attribute:
    return Attribute(name, "INTS", tuple(int(v) for v in values))


def string_attr(name: str, value: str) -> Attribute:
    return Attribute(name, "STRING", value)


def tensor_attr(name: str, value: Any) -> Attribute:
    return Attribute(name, "TENSOR", value)


def padding_attribute(padding: Padding) -> Attribute:
    """``auto_pad`` for symbolic modes, ``pads`` (all begins then all ends) otherwise."""
    if isinstance(padding, str):
        return string_attr("auto_pad", _AUTO_PAD[padding])
    begins = [lo for lo, _ in padding]
    ends = [hi for _, hi in padding]
    return ints_attr("pads", begins + ends)


def to_attribute_proto(attr: Attribute) -> AttributeProto:
    proto = AttributeProto()
    proto.name = attr.name
    if attr.kind == "INT":
        proto.type = AttributeProto.INT
        proto.i = attr.value
    elif attr.kind == "INTS":
        proto.type = AttributeProto.INTS
        proto.ints.extend(attr.value)
    elif attr.kind == "STRING":
        proto.type = AttributeProto.STRING
        proto.s = attr.value.encode("utf-8")
    elif attr.kind == "TENSOR":
        proto.type = AttributeProto.TENSOR
        proto.t.CopyFrom(to_tensor_proto(attr.value))
    else:
        raise ValueError(f"unknown attribute kind {attr.kind!r}")
    return proto
