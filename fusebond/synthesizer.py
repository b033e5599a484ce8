"""Textual assembly of the fused bonded-force kernel.

Layout of the generated source, in order: prefix fragments, the kernel
signature, one group-guarded grid-stride loop per term, and the energy
epilogue.  Forces leave each term as ``(long long)(f * FIXED_POINT_SCALE)``
integer atomics into three planes of ``forceBuffer`` spaced by
``PADDED_NUM_ATOMS``.
"""

from __future__ import annotations

import re
from typing import Sequence

from .arguments import ExtraArgument
from .constants import FIXED_POINT_SCALE, KERNEL_NAME
from .errors import _err
from .packer import IndexArena, IndexBlock
from .registry import InteractionTerm
from .snippet import KernelSource

_PLANES = (("x", ""), ("y", "+PADDED_NUM_ATOMS"), ("z", "+PADDED_NUM_ATOMS*2"))


def _comment_safe(text: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.:\- ]", "_", str(text))


class KernelSynthesizer:
    def __init__(self, context, *, entry_point: str = KERNEL_NAME):
        self.context = context
        self.entry_point = str(entry_point)

    def _its(self, value: int) -> str:
        return self.context.int_to_string(int(value))

    def signature(self, arena: IndexArena, arguments: Sequence[ExtraArgument]) -> str:
        params = [
            "long long* __restrict__ forceBuffer",
            "real* __restrict__ energyBuffer",
            "const real4* __restrict__ posq",
            "int groups",
        ]
        for blk in arena:
            params.append(f"const {blk.cuda_type}* __restrict__ {blk.param_name}")
        for i, arg in enumerate(arguments):
            params.append(f"{arg.cuda_type}* customArg{self._its(i + 1)}")
        return f'extern "C" __global__ void {self.entry_point}({", ".join(params)}) {{\n'

    def _unpack(self, blocks: list[IndexBlock]) -> list[str]:
        lines: list[str] = []
        for blk in blocks:
            tmp = f"atoms{self._its(blk.block)}"
            lines.append(f"    {blk.cuda_type} {tmp} = {blk.param_name}[index];\n")
            for lane, suffix in enumerate(blk.lane_suffixes):
                lines.append(f"    unsigned int atom{self._its(blk.start_slot + lane + 1)} = {tmp}{suffix};\n")
        return lines

    def term_source(self, term_index: int, term: InteractionTerm, blocks: list[IndexBlock]) -> str:
        covered = sum(blk.lanes_used for blk in blocks)
        if covered != term.arity:
            raise _err(f"index blocks of term {term_index} cover {covered} slots, expected {term.arity}")
        mask = 1 << term.group
        lines = [
            f"// {_comment_safe(term.name)}: group {self._its(term.group)}, "
            f"{self._its(term.num_bonds)} bonds, arity {self._its(term.arity)}\n",
            f"if (((unsigned int) groups & {self._its(mask)}u) != 0)\n",
            f"for (unsigned int index = blockIdx.x*blockDim.x+threadIdx.x; index < {self._its(term.num_bonds)}; "
            "index += blockDim.x*gridDim.x) {\n",
        ]
        lines.extend(self._unpack(blocks))
        for i in range(1, term.arity + 1):
            n = self._its(i)
            lines.append(f"    real4 pos{n} = posq[atom{n}];\n")
        lines.append(term.source)
        if not term.source.endswith("\n"):
            lines.append("\n")
        for i in range(1, term.arity + 1):
            n = self._its(i)
            for comp, offset in _PLANES:
                lines.append(
                    f"    atomicAdd((unsigned long long*) &forceBuffer[atom{n}{offset}], "
                    f"(unsigned long long) ((long long) (((double) force{n}.{comp})*FIXED_POINT_SCALE)));\n"
                )
        lines.append("}\n")
        return "".join(lines)

    def synthesize(
        self,
        terms: Sequence[InteractionTerm],
        arena: IndexArena,
        arguments: Sequence[ExtraArgument],
        prefix_code: Sequence[str] = (),
    ) -> KernelSource:
        if not terms:
            raise _err("cannot synthesize a bonded kernel without interactions")
        src = KernelSource(entry_point=self.entry_point)
        src.defines = {
            "PADDED_NUM_ATOMS": self._its(self.context.padded_num_atoms),
            "FIXED_POINT_SCALE": repr(FIXED_POINT_SCALE),
        }
        for text in prefix_code:
            src.append("prefix", text)
        src.append("signature", self.signature(arena, arguments))
        src.append("body", "real energy = 0;\n")
        for i, term in enumerate(terms):
            src.interfaces[i] = term.interface
            src.append("term", self.term_source(i, term, arena.blocks_for(i)), term=i)
        src.append("epilogue", "energyBuffer[blockIdx.x*blockDim.x+threadIdx.x] += energy;\n}\n")
        return src
