import pytest

from sketchsolve import (
    ConstraintError,
    ConstraintIdAllocator,
    ConstraintSystem,
    coincident,
    distance,
    fixed,
    horizontal,
    line_ref,
    point_ref,
)


def _system():
    ids = ConstraintIdAllocator()
    system = ConstraintSystem()
    system.add_constraint(coincident(point_ref(1, 1), point_ref(2, 0), ids=ids))
    system.add_constraint(horizontal(line_ref(1), ids=ids))
    system.add_constraint(fixed(point_ref(1, 0), (0.0, 0.0), ids=ids))
    system.add_constraint(distance(point_ref(2, 0), point_ref(3, 0), 4.0, ids=ids))
    return system


def test_add_and_lookup():
    system = _system()
    assert len(system) == 4
    assert not system.empty()
    assert 2 in system
    assert system.get_constraint(2).type_name == "Horizontal"
    assert system.get_constraint(99) is None
    assert [c.id for c in system] == [1, 2, 3, 4]
    assert [c.id for c in system.constraints] == [1, 2, 3, 4]


def test_duplicate_id_is_rejected():
    system = _system()
    with pytest.raises(ConstraintError):
        system.add_constraint(horizontal(line_ref(2), constraint_id=1))


def test_total_equations_and_row_offsets():
    system = _system()
    assert system.total_equations() == 2 + 1 + 2 + 1
    assert system.row_offsets() == [0, 2, 3, 5]


def test_referenced_entity_ids_in_first_use_order():
    assert _system().referenced_entity_ids() == [1, 2, 3]


def test_remove_constraint_returns_it():
    system = _system()
    removed = system.remove_constraint(2)
    assert removed is not None and removed.id == 2
    assert system.remove_constraint(2) is None
    assert len(system) == 3
    # a removed constraint can be re-added as-is
    system.add_constraint(removed)
    assert [c.id for c in system] == [1, 3, 4, 2]


def test_constraints_for_entity_and_cascade_removal():
    system = _system()
    assert [c.id for c in system.constraints_for_entity(2)] == [1, 4]
    removed = system.remove_constraints_for_entity(1)
    assert sorted(c.id for c in removed) == [1, 2, 3]
    assert [c.id for c in system] == [4]
    assert system.remove_constraints_for_entity(42) == []


def test_clear():
    system = _system()
    system.clear()
    assert system.empty()
    assert system.total_equations() == 0
    assert system.row_offsets() == []
