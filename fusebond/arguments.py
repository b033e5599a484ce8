from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import numpy as np

from .errors import _err


class ArgumentType(str, Enum):
    FLOAT = "float"
    FLOAT2 = "float2"
    FLOAT4 = "float4"
    DOUBLE = "double"
    DOUBLE2 = "double2"
    DOUBLE4 = "double4"
    INT = "int"
    INT2 = "int2"
    INT4 = "int4"
    UINT = "uint"
    REAL = "real"
    REAL2 = "real2"
    REAL4 = "real4"


# tag -> (base kind, components); "real" resolves through the kernel precision
_LAYOUT: dict[ArgumentType, tuple[str, int]] = {
    ArgumentType.FLOAT: ("float32", 1),
    ArgumentType.FLOAT2: ("float32", 2),
    ArgumentType.FLOAT4: ("float32", 4),
    ArgumentType.DOUBLE: ("float64", 1),
    ArgumentType.DOUBLE2: ("float64", 2),
    ArgumentType.DOUBLE4: ("float64", 4),
    ArgumentType.INT: ("int32", 1),
    ArgumentType.INT2: ("int32", 2),
    ArgumentType.INT4: ("int32", 4),
    ArgumentType.UINT: ("uint32", 1),
    ArgumentType.REAL: ("real", 1),
    ArgumentType.REAL2: ("real", 2),
    ArgumentType.REAL4: ("real", 4),
}

_CUDA_SPELLING: dict[ArgumentType, str] = {
    ArgumentType.UINT: "unsigned int",
}

_REAL_DTYPE = {"single": "float32", "double": "float64"}


def parse_argument_type(type_name) -> ArgumentType:
    if isinstance(type_name, ArgumentType):
        return type_name
    key = str(type_name).strip()
    if key == "unsigned int":
        return ArgumentType.UINT
    try:
        return ArgumentType(key)
    except ValueError as exc:
        allowed = [t.value for t in ArgumentType]
        raise _err(f"unsupported argument type {type_name!r}; allowed: {allowed}") from exc


def argument_dtype(tag: ArgumentType, precision: str = "double") -> np.dtype:
    kind, _n = _LAYOUT[tag]
    if kind == "real":
        kind = _REAL_DTYPE[precision]
    return np.dtype(kind)


def argument_components(tag: ArgumentType) -> int:
    return _LAYOUT[tag][1]


def cuda_type_name(tag: ArgumentType) -> str:
    return _CUDA_SPELLING.get(tag, tag.value)


def validate_argument_buffer(buffer, tag: ArgumentType, precision: str = "double") -> None:
    """Check that ``buffer`` has the element layout its type tag declares.

    Scalar tags take 1-D buffers.  Vector tags take buffers whose trailing
    dimension equals the component count.
    """
    dtype = getattr(buffer, "dtype", None)
    shape = getattr(buffer, "shape", None)
    if dtype is None or shape is None:
        raise _err("argument buffer must be an array with dtype and shape")
    want = argument_dtype(tag, precision)
    if np.dtype(dtype) != want:
        raise _err(f"argument of type '{tag.value}' requires dtype {want}, got {np.dtype(dtype)}")
    ncomp = argument_components(tag)
    if ncomp == 1:
        if len(shape) != 1:
            raise _err(f"argument of scalar type '{tag.value}' must be 1-D, got shape {tuple(shape)}")
    else:
        if len(shape) < 2 or int(shape[-1]) != ncomp:
            raise _err(
                f"argument of type '{tag.value}' must have trailing dimension {ncomp}, "
                f"got shape {tuple(shape)}"
            )
    flags = getattr(buffer, "flags", None)
    if flags is not None and not bool(getattr(flags, "c_contiguous", True)):
        raise _err("argument buffer must be C-contiguous")


@dataclass(frozen=True)
class ExtraArgument:
    name: str
    buffer: object
    type_tag: ArgumentType

    @property
    def cuda_type(self) -> str:
        return cuda_type_name(self.type_tag)
