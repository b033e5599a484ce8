from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np
import yaml

from ..constants import MAX_FORCE_GROUPS
from ..errors import BondedValidationError

_TOP_KEYS = {"prefix", "terms"}
_TERM_KEYS = {"name", "group", "atoms", "source"}


class TermFileValidationError(BondedValidationError):
    pass


@dataclass(frozen=True)
class TermSpec:
    name: str
    group: int
    atoms: list[tuple[int, ...]]
    source: str


@dataclass(frozen=True)
class TermFile:
    prefix: str
    terms: list[TermSpec]


def _err(msg: str) -> TermFileValidationError:
    return TermFileValidationError(msg)


def _expect_dict(d: Any, key: str) -> dict:
    if not isinstance(d, dict):
        raise _err(f"{key} must be a mapping")
    return d


def _expect_seq(x: Any, key: str) -> Sequence[Any]:
    if not isinstance(x, (list, tuple)):
        raise _err(f"{key} must be a list")
    return x


def _expect_str(x: Any, key: str) -> str:
    if not isinstance(x, str):
        raise _err(f"{key} must be a string")
    return x


def _expect_int(x: Any, key: str) -> int:
    if isinstance(x, bool) or not isinstance(x, (int, np.integer)):
        raise _err(f"{key} must be an int")
    return int(x)


def _parse_term(i: int, t: Any) -> TermSpec:
    key = f"terms[{i}]"
    t = _expect_dict(t, key)
    extra = sorted(set(t.keys()) - _TERM_KEYS)
    if extra:
        raise _err(f"{key} contains unsupported keys: {extra}")
    name = _expect_str(t.get("name", f"term{i}"), f"{key}.name").strip()
    if not name:
        raise _err(f"{key}.name must be non-empty")
    group = _expect_int(t.get("group", 0), f"{key}.group")
    if group < 0 or group >= MAX_FORCE_GROUPS:
        raise _err(f"{key}.group must be in [0, {MAX_FORCE_GROUPS - 1}]")
    source = _expect_str(t.get("source", None), f"{key}.source")
    atoms_raw = _expect_seq(t.get("atoms", None), f"{key}.atoms")
    atoms: list[tuple[int, ...]] = []
    arity = None
    for j, rec in enumerate(atoms_raw):
        rec = _expect_seq(rec, f"{key}.atoms[{j}]")
        tup = tuple(_expect_int(a, f"{key}.atoms[{j}][{k}]") for k, a in enumerate(rec))
        if arity is None:
            arity = len(tup)
        elif len(tup) != arity:
            raise _err(f"{key}.atoms[{j}] has {len(tup)} atoms, expected {arity}")
        atoms.append(tup)
    return TermSpec(name=name, group=group, atoms=atoms, source=source)


def parse_terms(d: Any) -> TermFile:
    d = _expect_dict(d, "term file")
    extra = sorted(set(d.keys()) - _TOP_KEYS)
    if extra:
        raise _err(f"term file contains unsupported keys: {extra}")
    prefix = d.get("prefix", "")
    if prefix is None:
        prefix = ""
    prefix = _expect_str(prefix, "prefix")
    terms_raw = _expect_seq(d.get("terms", None), "terms")
    terms = [_parse_term(i, t) for i, t in enumerate(terms_raw)]
    names = [t.name for t in terms]
    dup = sorted({n for n in names if names.count(n) > 1})
    if dup:
        raise _err(f"duplicate term names: {dup}")
    return TermFile(prefix=prefix, terms=terms)


def load_terms(path: str) -> TermFile:
    with open(path, "r", encoding="utf-8") as f:
        d = yaml.safe_load(f)
    return parse_terms(d)


def register_terms(bonded, term_file: TermFile) -> list[int | None]:
    """Feed a parsed term file into a ``BondedUtilities`` (or registry)."""
    if term_file.prefix:
        bonded.add_prefix_code(term_file.prefix)
    return [
        bonded.add_interaction(t.atoms, t.source, t.group, name=t.name)
        for t in term_file.terms
    ]
