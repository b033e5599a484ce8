from __future__ import annotations

import numpy as np

from .constants import MAX_FORCE_GROUPS
from .errors import _err
from .registry import SealedRegistry
from .trace import DispatchTraceLogger, format_groups

_GROUP_MASK_ALL = (1 << MAX_FORCE_GROUPS) - 1


def groups_to_kernel_int(groups: int) -> np.int32:
    """Reinterpret a 32-bit group mask as the kernel's signed ``int groups``."""
    if isinstance(groups, bool) or not isinstance(groups, (int, np.integer)):
        raise _err(f"groups must be an int bitmask, got {type(groups).__name__}")
    g = int(groups)
    if g < 0 or g > _GROUP_MASK_ALL:
        raise _err(f"groups must be a {MAX_FORCE_GROUPS}-bit mask, got {g}")
    return np.array([g], dtype=np.uint32).view(np.int32)[0]


class BondedDispatcher:
    """Launches the compiled bonded kernel with a runtime group mask."""

    def __init__(
        self,
        context,
        kernel,
        sealed: SealedRegistry,
        *,
        trace: DispatchTraceLogger | None = None,
        verbose: bool = False,
    ):
        self.context = context
        self.kernel = kernel
        self.sealed = sealed
        self.trace = trace
        self.verbose = bool(verbose)
        self.launches = 0

    def kernel_args(self, groups: int) -> tuple:
        ctx = self.context
        args = [ctx.force_buffer, ctx.energy_buffer, ctx.posq, groups_to_kernel_int(groups)]
        args.extend(blk.data for blk in self.sealed.arena)
        args.extend(arg.buffer for arg in self.sealed.arguments)
        return tuple(args)

    def active_terms(self, groups: int) -> list[str]:
        return [lay.name for lay in self.sealed.layouts if (int(groups) >> lay.group) & 1]

    def compute(self, groups: int) -> None:
        args = self.kernel_args(groups)
        if not self.active_terms(groups):
            # no term selected: the kernel would only add zeros
            return
        blocks = self.context.execute_kernel(self.kernel, args, self.sealed.max_bonds)
        self.launches += 1
        if self.verbose:
            print(
                f"[bonded] launch={self.launches} groups={format_groups(groups) or '-'} "
                f"blocks={blocks} threads={self.context.threads_per_block}",
                flush=True,
            )
        if self.trace is not None:
            self.trace.log(
                launch=self.launches,
                groups=groups,
                active_terms=self.active_terms(groups),
                blocks=blocks,
                threads=self.context.threads_per_block,
                max_bonds=self.sealed.max_bonds,
            )
