"""Host-side mirror of the kernel's fixed-point force arithmetic.

The kernel converts every force component with ``(long long)(f * SCALE)`` and
adds it into a 64-bit integer with ``atomicAdd``.  Integer addition is exact
and associative, so the result does not depend on thread ordering.  The
helpers here reproduce the conversion on the host and decode device buffers.
"""

from __future__ import annotations

import numpy as np

from .backend import to_numpy
from .constants import FIXED_POINT_LIMIT, FIXED_POINT_SCALE


def quantization_unit() -> float:
    return 1.0 / FIXED_POINT_SCALE


def encode_fixed(values) -> np.ndarray:
    """Encode force components the way the kernel does (truncation toward zero)."""
    f = np.asarray(values, dtype=np.float64)
    if not np.all(np.isfinite(f)):
        raise ValueError("fixed-point encoding requires finite values")
    if np.any(np.abs(f) >= FIXED_POINT_LIMIT):
        raise ValueError(
            f"force component outside fixed-point range (|f| must be < {FIXED_POINT_LIMIT:.6g})"
        )
    return np.trunc(f * FIXED_POINT_SCALE).astype(np.int64)


def decode_fixed(acc) -> np.ndarray:
    return np.asarray(to_numpy(acc), dtype=np.int64).astype(np.float64) / FIXED_POINT_SCALE


def accumulate_fixed(contributions) -> np.ndarray:
    """Sum encoded contributions along axis 0 with 64-bit wraparound, like atomicAdd."""
    enc = encode_fixed(contributions)
    if enc.ndim == 0:
        return enc
    return enc.sum(axis=0, dtype=np.int64)


def decode_force_buffer(force_buffer, n_atoms: int, padded_num_atoms: int) -> np.ndarray:
    """Return an (n_atoms, 3) float array from a 3-plane fixed-point force buffer."""
    buf = np.asarray(to_numpy(force_buffer)).reshape(-1)
    if buf.size != 3 * int(padded_num_atoms):
        raise ValueError(
            f"force buffer has {buf.size} entries, expected 3*padded_num_atoms={3 * int(padded_num_atoms)}"
        )
    if int(n_atoms) > int(padded_num_atoms):
        raise ValueError("n_atoms must not exceed padded_num_atoms")
    planes = buf.view(np.int64).reshape(3, int(padded_num_atoms))
    return decode_fixed(planes[:, : int(n_atoms)]).T.copy()
