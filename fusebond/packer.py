"""Packing of per-term atom tuples into fixed-width index buffers.

A term with arity A is split into blocks of at most four atom slots.  Each
block is a flat ``uint32`` buffer holding ``width`` indices per bond so the
kernel can fetch them with one scalar, ``uint2`` or ``uint4`` load.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Sequence

import numpy as np

from .constants import MAX_INDEX_LANES
from .errors import _err

_INDEX_TYPES = {1: "unsigned int", 2: "uint2", 4: "uint4"}
_LANE_SUFFIXES = {1: ("",), 2: (".x", ".y"), 4: (".x", ".y", ".z", ".w")}
_UINT32_MAX = np.iinfo(np.uint32).max


def index_lane_widths(arity: int) -> list[int]:
    """Lane width of every block for a term of the given arity."""
    a = int(arity)
    if a < 1:
        raise _err("arity must be >= 1")
    widths: list[int] = []
    start = 0
    while start < a:
        width = min(a - start, MAX_INDEX_LANES)
        if width == 3:
            width = 4
        widths.append(width)
        start += width
    return widths


def as_bond_array(bond_records: Sequence[Sequence[int]]) -> np.ndarray:
    """Validate ragged bond records and return them as a (B, A) int64 array."""
    records = list(bond_records)
    if not records:
        return np.zeros((0, 0), dtype=np.int64)
    arity = None
    for i, rec in enumerate(records):
        if isinstance(rec, (str, bytes)) or not hasattr(rec, "__len__"):
            raise _err(f"bond record {i} must be a sequence of atom indices")
        if arity is None:
            arity = len(rec)
            if arity < 1:
                raise _err("bond records must reference at least one atom")
        elif len(rec) != arity:
            raise _err(f"bond record {i} has {len(rec)} atoms, expected arity {arity}")
    arr = np.asarray(records)
    if arr.dtype.kind not in ("i", "u"):
        raise _err(f"atom indices must be integers, got dtype {arr.dtype}")
    arr = arr.astype(np.int64)
    if np.any(arr < 0):
        raise _err("atom indices must be non-negative")
    if np.any(arr > _UINT32_MAX):
        raise _err("atom indices must fit in 32 bits")
    return arr


def pack_term_indices(bonds: np.ndarray) -> list[np.ndarray]:
    """Split a (B, A) index array into flat ``uint32`` buffers, one per block.

    Lanes beyond the arity (only after a width-3 block is promoted to 4) repeat
    the last valid index of the bond; the kernel never reads them.
    """
    arr = np.asarray(bonds, dtype=np.int64)
    if arr.ndim != 2 or arr.shape[0] == 0:
        raise _err("bonds must be a non-empty (B, A) array")
    num_bonds, arity = arr.shape
    out: list[np.ndarray] = []
    start = 0
    for width in index_lane_widths(arity):
        cols = [min(start + lane, arity - 1) for lane in range(width)]
        block = arr[:, cols].astype(np.uint32)
        out.append(np.ascontiguousarray(block).reshape(num_bonds * width))
        start += width
    return out


def unpack_index_block(flat, width: int, num_bonds: int) -> np.ndarray:
    buf = np.asarray(flat, dtype=np.uint32).reshape(-1)
    if buf.size != int(width) * int(num_bonds):
        raise _err(f"index block has {buf.size} entries, expected {int(width) * int(num_bonds)}")
    return buf.reshape(int(num_bonds), int(width))


@dataclass(frozen=True)
class IndexBlock:
    term: int
    block: int
    width: int
    start_slot: int
    lanes_used: int
    num_bonds: int
    data: object

    @property
    def param_name(self) -> str:
        return f"atomIndices{self.term}_{self.block}"

    @property
    def cuda_type(self) -> str:
        return _INDEX_TYPES[self.width]

    @property
    def lane_suffixes(self) -> tuple[str, ...]:
        return _LANE_SUFFIXES[self.width][: self.lanes_used]


class IndexArena:
    """Owned device index buffers keyed by (term, block), released in bulk."""

    def __init__(self):
        self._blocks: dict[tuple[int, int], IndexBlock] = {}
        self._max_bonds = 0

    def pack(self, term: int, bonds: np.ndarray, upload) -> list[IndexBlock]:
        arr = np.asarray(bonds, dtype=np.int64)
        num_bonds, arity = arr.shape
        added: list[IndexBlock] = []
        start = 0
        for b, host in enumerate(pack_term_indices(arr)):
            width = host.size // num_bonds
            key = (int(term), b)
            if key in self._blocks:
                raise _err(f"index block {key} already packed")
            blk = IndexBlock(
                term=int(term),
                block=b,
                width=int(width),
                start_slot=start,
                lanes_used=min(int(width), arity - start),
                num_bonds=int(num_bonds),
                data=upload(host),
            )
            self._blocks[key] = blk
            added.append(blk)
            start += width
        self._max_bonds = max(self._max_bonds, int(num_bonds))
        return added

    def blocks_for(self, term: int) -> list[IndexBlock]:
        return [blk for (t, _b), blk in sorted(self._blocks.items()) if t == int(term)]

    def __iter__(self) -> Iterator[IndexBlock]:
        for _key, blk in sorted(self._blocks.items()):
            yield blk

    def __len__(self) -> int:
        return len(self._blocks)

    @property
    def max_bonds(self) -> int:
        return self._max_bonds

    @property
    def nbytes(self) -> int:
        return int(sum(int(getattr(blk.data, "nbytes", 0)) for blk in self._blocks.values()))

    def release(self) -> None:
        self._blocks.clear()
        self._max_bonds = 0
