from __future__ import annotations

import numpy as np
import pytest

from fusebond.arguments import (
    ArgumentType,
    argument_dtype,
    cuda_type_name,
    parse_argument_type,
    validate_argument_buffer,
)
from fusebond.errors import BondedValidationError


def test_parse_argument_type_closed_set():
    assert parse_argument_type("float4") is ArgumentType.FLOAT4
    assert parse_argument_type(" real ") is ArgumentType.REAL
    assert parse_argument_type("unsigned int") is ArgumentType.UINT
    assert parse_argument_type(ArgumentType.INT2) is ArgumentType.INT2
    with pytest.raises(BondedValidationError, match="unsupported argument type"):
        parse_argument_type("float3")
    with pytest.raises(BondedValidationError, match="unsupported argument type"):
        parse_argument_type("mystruct")


def test_real_follows_precision():
    assert argument_dtype(ArgumentType.REAL, "double") == np.float64
    assert argument_dtype(ArgumentType.REAL4, "single") == np.float32
    assert argument_dtype(ArgumentType.INT, "single") == np.int32


def test_cuda_spelling():
    assert cuda_type_name(ArgumentType.UINT) == "unsigned int"
    assert cuda_type_name(ArgumentType.DOUBLE2) == "double2"


def test_validate_scalar_and_vector_layouts():
    validate_argument_buffer(np.zeros(10, dtype=np.float32), ArgumentType.FLOAT)
    validate_argument_buffer(np.zeros((10, 4), dtype=np.float32), ArgumentType.FLOAT4)
    validate_argument_buffer(np.zeros((10, 2), dtype=np.float64), ArgumentType.REAL2, "double")
    validate_argument_buffer(np.zeros(3, dtype=np.uint32), ArgumentType.UINT)


@pytest.mark.parametrize(
    "buf, tag, match",
    [
        (np.zeros(10, dtype=np.float64), ArgumentType.FLOAT, "requires dtype float32"),
        (np.zeros((10, 2), dtype=np.float32), ArgumentType.FLOAT, "must be 1-D"),
        (np.zeros((10, 3), dtype=np.float32), ArgumentType.FLOAT4, "trailing dimension 4"),
        (np.zeros(10, dtype=np.int32), ArgumentType.INT2, "trailing dimension 2"),
        (np.zeros((4, 8), dtype=np.float32)[:, ::2], ArgumentType.FLOAT4, "C-contiguous"),
    ],
)
def test_validate_rejects_layout_mismatch(buf, tag, match):
    with pytest.raises(BondedValidationError, match=match):
        validate_argument_buffer(buf, tag)


def test_validate_requires_array():
    with pytest.raises(BondedValidationError, match="dtype and shape"):
        validate_argument_buffer([1.0, 2.0], ArgumentType.DOUBLE)
