from __future__ import annotations

import numpy as np
import pytest

from fusebond.errors import BondedValidationError, RegistryStateError
from fusebond.packer import IndexArena
from fusebond.registry import InteractionRegistry

BOND = """
real3 d = make_real3(pos2.x-pos1.x, pos2.y-pos1.y, pos2.z-pos1.z);
energy += d.x*d.x;
real3 force1 = make_real3(2*d.x, 0, 0);
real3 force2 = make_real3(-2*d.x, 0, 0);
"""


def test_empty_bond_records_are_ignored():
    reg = InteractionRegistry()
    assert reg.add_interaction([], BOND, 0) is None
    assert reg.add_interaction([], "", 99) is None
    assert reg.terms == ()


def test_empty_bond_records_warn_when_requested():
    reg = InteractionRegistry(warn_empty=True)
    with pytest.warns(RuntimeWarning, match="no bond records"):
        reg.add_interaction([], BOND, 0, name="bonds")


def test_add_interaction_stores_term():
    reg = InteractionRegistry()
    idx = reg.add_interaction([[0, 1], [2, 3]], BOND, 5, name="harmonic")
    assert idx == 0
    (term,) = reg.terms
    assert term.name == "harmonic"
    assert term.group == 5
    assert term.num_bonds == 2
    assert term.arity == 2
    assert term.interface.outputs == ("energy", "force1", "force2")
    assert reg.add_interaction([[4, 5]], BOND, 0) == 1
    assert reg.terms[1].name == "term1"


@pytest.mark.parametrize("group", [-1, 32, 1.0, True])
def test_group_out_of_range(group):
    reg = InteractionRegistry()
    with pytest.raises(BondedValidationError, match="group"):
        reg.add_interaction([[0, 1]], BOND, group)


def test_arity_mismatch_rejected():
    reg = InteractionRegistry()
    with pytest.raises(BondedValidationError, match="expected arity"):
        reg.add_interaction([[0, 1], [0, 1, 2]], BOND, 0)


def test_add_argument_names_are_one_based():
    reg = InteractionRegistry()
    a = reg.add_argument(np.zeros(4, dtype=np.float64), "real")
    b = reg.add_argument(np.zeros((4, 4), dtype=np.float32), "float4")
    assert (a, b) == ("customArg1", "customArg2")
    assert [arg.name for arg in reg.arguments] == ["customArg1", "customArg2"]
    assert reg.arguments[1].cuda_type == "float4"


def test_add_argument_uses_registry_precision():
    reg = InteractionRegistry(precision="single")
    with pytest.raises(BondedValidationError, match="float32"):
        reg.add_argument(np.zeros(4, dtype=np.float64), "real")


def test_prefix_code_keeps_order():
    reg = InteractionRegistry()
    reg.add_prefix_code("#define A 1\n")
    reg.add_prefix_code("#define B 2\n")
    assert reg.prefix_code == ("#define A 1\n", "#define B 2\n")
    with pytest.raises(BondedValidationError, match="string"):
        reg.add_prefix_code(3)


def test_check_atom_range():
    reg = InteractionRegistry()
    reg.add_interaction([[0, 7]], BOND, 0, name="long")
    reg.check_atom_range(8)
    with pytest.raises(BondedValidationError, match="references atom 7"):
        reg.check_atom_range(7)


def test_seal_drops_sources_and_rejects_registration():
    reg = InteractionRegistry()
    reg.add_interaction([[0, 1]], BOND, 2, name="b")
    reg.add_interaction([[1, 2], [2, 3]], BOND, 4, name="c")
    reg.add_argument(np.zeros(2, dtype=np.int32), "int")
    reg.add_prefix_code("// shared\n")
    arena = IndexArena()
    for i, t in enumerate(reg.terms):
        arena.pack(i, t.bonds, lambda h: h)

    sealed = reg.seal(arena)
    assert reg.is_sealed
    assert reg.terms == ()
    assert reg.prefix_code == ()
    assert [lay.name for lay in sealed.layouts] == ["b", "c"]
    assert [lay.num_bonds for lay in sealed.layouts] == [1, 2]
    assert sealed.max_bonds == 2
    assert sealed.groups_mask() == (1 << 2) | (1 << 4)
    assert [a.name for a in reg.arguments] == ["customArg1"]

    with pytest.raises(RegistryStateError, match="add_interaction"):
        reg.add_interaction([[0, 1]], BOND, 0)
    with pytest.raises(RegistryStateError, match="add_argument"):
        reg.add_argument(np.zeros(2, dtype=np.int32), "int")
    with pytest.raises(RegistryStateError, match="add_prefix_code"):
        reg.add_prefix_code("x")
    with pytest.raises(RegistryStateError, match="seal"):
        reg.seal(arena)


def test_sealed_before_seal_raises():
    with pytest.raises(RegistryStateError, match="not been sealed"):
        _ = InteractionRegistry().sealed
