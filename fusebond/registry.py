from __future__ import annotations

import warnings
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from .arguments import ExtraArgument, parse_argument_type, validate_argument_buffer
from .constants import MAX_FORCE_GROUPS
from .errors import RegistryStateError, _err
from .packer import IndexArena, as_bond_array
from .snippet import SnippetInterface, validate_snippet


@dataclass(frozen=True)
class InteractionTerm:
    bonds: np.ndarray
    source: str
    group: int
    interface: SnippetInterface
    name: str = ""

    @property
    def num_bonds(self) -> int:
        return int(self.bonds.shape[0])

    @property
    def arity(self) -> int:
        return int(self.bonds.shape[1])


@dataclass(frozen=True)
class TermLayout:
    """What survives of a term after the registry is sealed."""

    name: str
    group: int
    num_bonds: int
    arity: int


@dataclass(frozen=True)
class SealedRegistry:
    layouts: tuple[TermLayout, ...]
    arguments: tuple[ExtraArgument, ...]
    arena: IndexArena

    @property
    def max_bonds(self) -> int:
        return self.arena.max_bonds

    def groups_mask(self) -> int:
        mask = 0
        for lay in self.layouts:
            mask |= 1 << lay.group
        return mask


def _check_group(group) -> int:
    if isinstance(group, bool) or not isinstance(group, (int, np.integer)):
        raise _err(f"group must be an int, got {type(group).__name__}")
    g = int(group)
    if g < 0 or g >= MAX_FORCE_GROUPS:
        raise _err(f"group must be in [0, {MAX_FORCE_GROUPS - 1}], got {g}")
    return g


class InteractionRegistry:
    """Open builder collecting terms, extra arguments and prefix code.

    ``seal`` hands the packed layout to the caller and drops the per-term
    sources and atom tuples; every mutating call afterwards is rejected.
    """

    def __init__(self, *, precision: str = "double", warn_empty: bool = False):
        self.precision = str(precision)
        self.warn_empty = bool(warn_empty)
        self._terms: list[InteractionTerm] = []
        self._arguments: list[ExtraArgument] = []
        self._prefix: list[str] = []
        self._sealed: Optional[SealedRegistry] = None

    @property
    def is_sealed(self) -> bool:
        return self._sealed is not None

    @property
    def sealed(self) -> SealedRegistry:
        if self._sealed is None:
            raise RegistryStateError("registry has not been sealed")
        return self._sealed

    def _require_open(self, op: str) -> None:
        if self._sealed is not None:
            raise RegistryStateError(f"{op}() is not allowed after the bonded kernel was built")

    def add_interaction(
        self,
        bond_records: Sequence[Sequence[int]],
        source: str,
        group: int,
        name: str | None = None,
    ) -> int | None:
        self._require_open("add_interaction")
        bonds = as_bond_array(bond_records)
        if bonds.shape[0] == 0:
            if self.warn_empty:
                warnings.warn(
                    f"interaction {name or len(self._terms)!r} has no bond records; ignored",
                    RuntimeWarning,
                )
            return None
        g = _check_group(group)
        iface = validate_snippet(source, bonds.shape[1])
        index = len(self._terms)
        self._terms.append(
            InteractionTerm(
                bonds=bonds,
                source=str(source),
                group=g,
                interface=iface,
                name=str(name) if name is not None else f"term{index}",
            )
        )
        return index

    def add_argument(self, buffer, type_name) -> str:
        self._require_open("add_argument")
        tag = parse_argument_type(type_name)
        validate_argument_buffer(buffer, tag, self.precision)
        name = f"customArg{len(self._arguments) + 1}"
        self._arguments.append(ExtraArgument(name=name, buffer=buffer, type_tag=tag))
        return name

    def add_prefix_code(self, source: str) -> None:
        self._require_open("add_prefix_code")
        if not isinstance(source, str):
            raise _err("prefix code must be a string")
        self._prefix.append(source)

    @property
    def terms(self) -> tuple[InteractionTerm, ...]:
        return tuple(self._terms)

    @property
    def arguments(self) -> tuple[ExtraArgument, ...]:
        if self._sealed is not None:
            return self._sealed.arguments
        return tuple(self._arguments)

    @property
    def prefix_code(self) -> tuple[str, ...]:
        return tuple(self._prefix)

    def check_atom_range(self, n_atoms: int) -> None:
        n = int(n_atoms)
        for term in self._terms:
            hi = int(term.bonds.max())
            if hi >= n:
                raise _err(f"interaction {term.name!r} references atom {hi} but the system has {n} atoms")

    def seal(self, arena: IndexArena) -> SealedRegistry:
        self._require_open("seal")
        layouts = tuple(
            TermLayout(name=t.name, group=t.group, num_bonds=t.num_bonds, arity=t.arity)
            for t in self._terms
        )
        self._sealed = SealedRegistry(layouts=layouts, arguments=tuple(self._arguments), arena=arena)
        self._terms.clear()
        self._prefix.clear()
        return self._sealed
