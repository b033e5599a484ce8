"""Declared symbol interface of a force snippet and the kernel fragment list.

A snippet for a term of arity A reads ``pos1..posA`` (``real4``), adds its
energy into ``energy`` and leaves the force on atom i in a ``real3 force<i>``
it declares itself.  The synthesizer checks that contract before emitting.
"""

from __future__ import annotations

import re
import warnings
from dataclasses import dataclass, field

from .errors import _err


def _uses(symbol: str, source: str) -> bool:
    return re.search(rf"\b{re.escape(symbol)}\b", source) is not None


@dataclass(frozen=True)
class SnippetInterface:
    arity: int

    @property
    def inputs(self) -> tuple[str, ...]:
        return tuple(f"pos{i}" for i in range(1, self.arity + 1))

    @property
    def outputs(self) -> tuple[str, ...]:
        return ("energy",) + self.force_outputs

    @property
    def force_outputs(self) -> tuple[str, ...]:
        return tuple(f"force{i}" for i in range(1, self.arity + 1))

    def missing_outputs(self, source: str) -> list[str]:
        return [sym for sym in self.outputs if not _uses(sym, source)]


def validate_snippet(source: str, arity: int) -> SnippetInterface:
    if not isinstance(source, str) or not source.strip():
        raise _err("force snippet must be non-empty program text")
    iface = SnippetInterface(arity=int(arity))
    missing = iface.missing_outputs(source)
    if missing:
        hint = ""
        if _uses("force", source):
            hint = " (use one force<i> per atom instead of a single 'force')"
        raise _err(f"force snippet does not define required symbols {missing}{hint}")
    unused = [sym for sym in iface.inputs if not _uses(sym, source)]
    if unused and len(unused) == len(iface.inputs):
        warnings.warn(
            f"force snippet reads none of {list(iface.inputs)}; forces will not depend on positions",
            RuntimeWarning,
        )
    return iface


@dataclass(frozen=True)
class KernelFragment:
    kind: str
    text: str
    term: int | None = None


@dataclass
class KernelSource:
    """Ordered fragment list of one synthesized kernel."""

    entry_point: str
    fragments: list[KernelFragment] = field(default_factory=list)
    interfaces: dict[int, SnippetInterface] = field(default_factory=dict)
    defines: dict[str, str] = field(default_factory=dict)

    def append(self, kind: str, text: str, term: int | None = None) -> None:
        self.fragments.append(KernelFragment(kind=kind, text=text, term=term))

    def of_kind(self, kind: str) -> list[KernelFragment]:
        return [f for f in self.fragments if f.kind == kind]

    def term_body(self, term: int) -> str:
        return "".join(f.text for f in self.fragments if f.kind == "term" and f.term == int(term))

    def render(self) -> str:
        return "".join(f.text for f in self.fragments)
