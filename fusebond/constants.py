"""Named numeric constants for fusebond.

Any change to these values changes the generated kernel text or the meaning
of the device buffers, and must be verified against the GPU test suite.

Categories
----------
FIXED_POINT_SCALE
    Multiplier applied to every force component before it is truncated to a
    64-bit integer and atomically added into the force buffer.  Decoding
    divides by the same value.  One quantization unit is ``1/FIXED_POINT_SCALE``.

FIXED_POINT_LIMIT
    Largest magnitude a single encoded component may take before the signed
    64-bit accumulator risks overflow.

MAX_INDEX_LANES
    Widest vector load used for packed atom indices (``uint4``).

MAX_FORCE_GROUPS
    Number of selector bits in the ``groups`` kernel argument.

PADDED_ATOM_BLOCK
    Atom counts are rounded up to a multiple of this value; it is also the
    stride between the x/y/z planes of the force buffer.

MIN_COMPUTE_CAPABILITY
    Devices below this ``(major, minor)`` are treated as unavailable and the
    backend falls back to CPU.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Fixed-point force accumulation
# ---------------------------------------------------------------------------
FIXED_POINT_SCALE: float = float(0xFFFFFFFF)
FIXED_POINT_LIMIT: float = float(2**63 - 1) / FIXED_POINT_SCALE

# ---------------------------------------------------------------------------
# Index packing
# ---------------------------------------------------------------------------
MAX_INDEX_LANES: int = 4
INDEX_LANE_WIDTHS: tuple[int, ...] = (1, 2, 4)

# ---------------------------------------------------------------------------
# Kernel layout
# ---------------------------------------------------------------------------
MAX_FORCE_GROUPS: int = 32
PADDED_ATOM_BLOCK: int = 32
DEFAULT_THREADS_PER_BLOCK: int = 128
DEFAULT_MAX_BLOCKS: int = 512
KERNEL_NAME: str = "computeBondedForces"

# ---------------------------------------------------------------------------
# Device requirements
# ---------------------------------------------------------------------------
# every kernel feature used (64-bit integer atomicAdd, double arithmetic) exists from here on
MIN_COMPUTE_CAPABILITY: tuple[int, int] = (3, 5)
