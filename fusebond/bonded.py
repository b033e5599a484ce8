from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

from .dispatcher import BondedDispatcher
from .errors import RegistryStateError
from .packer import IndexArena
from .registry import InteractionRegistry, SealedRegistry
from .snippet import KernelSource
from .synthesizer import KernelSynthesizer
from .trace import DispatchTraceLogger, dump_kernel_source


class BondedUtilities:
    """Fuses registered bonded interactions into one kernel and launches it.

    Usage is one-shot: register terms, arguments and prefix code, call
    ``initialize`` once, then call ``compute_interactions`` every step.

    Parameters
    ----------
    context:
        Device context providing ``padded_num_atoms``, ``int_to_string``,
        ``upload``, ``create_module``, ``get_kernel``, ``execute_kernel`` and
        the ``force_buffer``/``energy_buffer``/``posq`` buffers.
    verbose:
        Print a tagged summary line after the build and on every launch.
    trace_path:
        Write a CSV row per launch to this file.
    source_dump_path:
        Write the synthesized kernel text here before compiling it.
    """

    def __init__(
        self,
        context,
        *,
        verbose: bool = False,
        trace_path: str | None = None,
        source_dump_path: str | None = None,
        warn_empty: bool = False,
    ):
        self.context = context
        self.verbose = bool(verbose)
        self.trace_path = trace_path
        self.source_dump_path = source_dump_path
        self.registry = InteractionRegistry(
            precision=getattr(context, "precision", "double"), warn_empty=warn_empty
        )
        self.kernel_source: Optional[KernelSource] = None
        self._kernel = None
        self._dispatcher: Optional[BondedDispatcher] = None
        self._trace: Optional[DispatchTraceLogger] = None
        self._initialized = False
        self._released = False

    # registration -----------------------------------------------------------

    def add_interaction(self, bond_records: Sequence[Sequence[int]], source: str, group: int,
                        name: str | None = None) -> int | None:
        return self.registry.add_interaction(bond_records, source, group, name=name)

    def add_argument(self, buffer, type_name) -> str:
        return self.registry.add_argument(buffer, type_name)

    def add_prefix_code(self, source: str) -> None:
        self.registry.add_prefix_code(source)

    # build ------------------------------------------------------------------

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def has_interactions(self) -> bool:
        return self._dispatcher is not None or bool(self.registry.terms)

    @property
    def sealed(self) -> SealedRegistry:
        return self.registry.sealed

    def preview_source(self) -> KernelSource:
        """Synthesize the kernel from the current registrations without uploading or compiling."""
        terms = self.registry.terms
        arena = IndexArena()
        for i, term in enumerate(terms):
            arena.pack(i, term.bonds, np.ascontiguousarray)
        return KernelSynthesizer(self.context).synthesize(
            terms, arena, self.registry.arguments, self.registry.prefix_code
        )

    def initialize(self, system=None) -> None:
        if self._initialized:
            raise RegistryStateError("initialize() was already called; the bonded kernel cannot be rebuilt")
        terms = self.registry.terms
        if not terms:
            return
        n_atoms = getattr(system, "n_atoms", None)
        limit = int(self.context.n_atoms) if n_atoms is None else min(int(n_atoms), int(self.context.n_atoms))
        self.registry.check_atom_range(limit)

        arena = IndexArena()
        try:
            for i, term in enumerate(terms):
                arena.pack(i, term.bonds, self.context.upload)
            synth = KernelSynthesizer(self.context)
            src = synth.synthesize(terms, arena, self.registry.arguments, self.registry.prefix_code)
            text = src.render()
            if self.source_dump_path:
                dump_kernel_source(self.source_dump_path, self.context.kernel_code(text, src.defines))
            module = self.context.create_module(text, src.defines)
            kernel = self.context.get_kernel(module, src.entry_point)
        except Exception:
            arena.release()
            raise

        self.kernel_source = src
        self._kernel = kernel
        sealed = self.registry.seal(arena)
        if self.trace_path:
            self._trace = DispatchTraceLogger(self.trace_path)
        self._dispatcher = BondedDispatcher(
            self.context, kernel, sealed, trace=self._trace, verbose=self.verbose
        )
        self._initialized = True
        if self.verbose:
            print(
                f"[bonded] built {src.entry_point}: terms={len(sealed.layouts)} "
                f"index_blocks={len(arena)} args={len(sealed.arguments)} "
                f"max_bonds={sealed.max_bonds} padded_atoms={self.context.padded_num_atoms}",
                flush=True,
            )

    # dispatch ---------------------------------------------------------------

    def compute_interactions(self, groups: int = 0xFFFFFFFF) -> None:
        if self._released:
            raise RegistryStateError("compute_interactions() called after release()")
        if self._dispatcher is None:
            if self.registry.terms:
                raise RegistryStateError("compute_interactions() called before initialize()")
            return
        self._dispatcher.compute(groups)

    @property
    def launches(self) -> int:
        return 0 if self._dispatcher is None else self._dispatcher.launches

    def release(self) -> None:
        """Free owned index buffers and close the trace; the kernel cannot be launched afterwards."""
        if self._trace is not None:
            self._trace.close()
            self._trace = None
        if self._dispatcher is not None:
            self._dispatcher.sealed.arena.release()
            self._dispatcher = None
        self._kernel = None
        self._released = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False
