"""Target-side records produced while lowering, converted to protos at assembly."""

from __future__ import annotations

from dataclasses import dataclass

from onnx import NodeProto, TensorProto, TensorShapeProto, TypeProto, ValueInfoProto

from .attributes import Attribute, to_attribute_proto


@dataclass(frozen=True, slots=True)
class LoweredNode:
    op_type: str
    name: str
    inputs: tuple[str, ...]
    outputs: tuple[str, ...]
    attributes: tuple[Attribute, ...] = ()

    def attribute(self, name: str) -> Attribute:
        for attr in self.attributes:
            if attr.name == name:
                return attr
        raise KeyError(name)

    def to_proto(self) -> NodeProto:
        proto = NodeProto()
        proto.op_type = self.op_type
        proto.name = self.name
        proto.input.extend(self.inputs)
        proto.output.extend(self.outputs)
        proto.attribute.extend(to_attribute_proto(a) for a in self.attributes)
        return proto


@dataclass(frozen=True, slots=True)
class ValueInfo:
    name: str
    shape: tuple[int | None, ...]
    elem_type: int = TensorProto.FLOAT

    def to_proto(self) -> ValueInfoProto:
        proto = ValueInfoProto()
        proto.name = self.name
        tensor_type: TypeProto.Tensor = proto.type.tensor_type
        tensor_type.elem_type = self.elem_type
        # An empty dim list still marks a scalar as shaped.
        tensor_type.shape.SetInParent()
        for axis, value in enumerate(self.shape):
            dim: TensorShapeProto.Dimension = tensor_type.shape.dim.add()
            if value is None:
                dim.dim_param = f"{self.name}_dim{axis}"
            else:
                dim.dim_value = value
        return proto
