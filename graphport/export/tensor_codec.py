from __future__ import annotations

from dataclasses import dataclass
from importlib import import_module
from typing import Any

import numpy as np
from onnx import TensorProto

from graphport.errors import UnsupportedDtypeError

try:
    torch: Any = import_module("torch")
except Exception:  # pragma: no cover - optional dependency in minimal envs
    torch = None


# Element type -> TensorProto.DataType. Anything missing here is rejected.
DTYPE_TABLE: dict[np.dtype, int] = {
    np.dtype(np.float16): TensorProto.FLOAT16,
    np.dtype(np.float32): TensorProto.FLOAT,
    np.dtype(np.float64): TensorProto.DOUBLE,
    np.dtype(np.int8): TensorProto.INT8,
    np.dtype(np.int16): TensorProto.INT16,
    np.dtype(np.int32): TensorProto.INT32,
    np.dtype(np.int64): TensorProto.INT64,
    np.dtype(np.uint8): TensorProto.UINT8,
    np.dtype(np.uint16): TensorProto.UINT16,
    np.dtype(np.uint32): TensorProto.UINT32,
    np.dtype(np.uint64): TensorProto.UINT64,
    np.dtype(np.bool_): TensorProto.BOOL,
}


@dataclass(frozen=True, slots=True)
class EncodedTensor:
    dims: tuple[int, ...]
    data_type: int
    raw_data: bytes


def as_array(tensor: Any) -> np.ndarray:
    """View a numpy array, torch tensor or python value as an ndarray (no copy if possible)."""
    if isinstance(tensor, np.ndarray):
        return tensor
    if torch is not None and isinstance(tensor, torch.Tensor):
        return tensor.detach().cpu().numpy()
    return np.asarray(tensor)


def onnx_dtype(dtype: Any) -> int:
    """Look up the TensorProto data type tag of a numpy dtype."""
    try:
        key = np.dtype(dtype)
    except TypeError:
        raise UnsupportedDtypeError(f"unsupported element type {dtype!r}") from None
    # Normalize byte order so ">f4" and "<f4" share one entry.
    tag = DTYPE_TABLE.get(key.newbyteorder("=")) if key.byteorder in "<>" else DTYPE_TABLE.get(key)
    if tag is None:
        raise UnsupportedDtypeError(f"unsupported element type {key}")
    return tag


def encode(tensor: Any) -> EncodedTensor:
    """Encode a tensor to its dims, dtype tag and little-endian C-order bytes."""
    array = as_array(tensor)
    data_type = onnx_dtype(array.dtype)
    little = np.ascontiguousarray(array, dtype=array.dtype.newbyteorder("<"))
    return EncodedTensor(
        dims=tuple(int(d) for d in array.shape),
        data_type=data_type,
        raw_data=little.tobytes(),
    )


def to_tensor_proto(tensor: Any, name: str = "") -> TensorProto:
    encoded = encode(tensor)
    proto = TensorProto()
    proto.dims.extend(encoded.dims)
    proto.data_type = encoded.data_type
    proto.raw_data = encoded.raw_data
    if name:
        proto.name = name
    return proto
