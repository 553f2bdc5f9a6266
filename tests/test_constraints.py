import math

import numpy as np
import pytest

from sketchsolve import (
    ArcEntity,
    CircleEntity,
    ConstraintError,
    ConstraintIdAllocator,
    ConstraintType,
    LineEntity,
    ParameterTable,
    PolylineEntity,
    angle,
    circle_ref,
    coincident,
    distance,
    equal,
    fixed,
    horizontal,
    line_ref,
    make_constraint,
    parallel,
    perpendicular,
    point_ref,
    tangent,
    vertical,
)


def _table(*entities):
    table = ParameterTable()
    for entity in entities:
        table.register_entity(entity)
    return table


def _generic_table():
    return _table(
        LineEntity(1, (0.3, -0.2), (4.1, 1.7)),
        LineEntity(2, (1.2, 3.4), (-0.8, 6.1)),
        CircleEntity(3, (2.5, 4.0), 1.3),
        CircleEntity(4, (-1.0, 0.5), 0.7),
        PolylineEntity(5, [(0.0, 0.0), (3.0, 0.4), (2.6, 2.9)], closed=True),
        ArcEntity(6, (1.0, -2.0), 1.8, 0.4, 2.3),
    )


def _numeric_jacobian(constraint, table, h=1e-6):
    base = table.values.copy()
    jac = np.zeros((constraint.equation_count, base.size))
    for j in range(base.size):
        table.values[:] = base
        table.values[j] += h
        plus = constraint.residuals(table)
        table.values[:] = base
        table.values[j] -= h
        minus = constraint.residuals(table)
        jac[:, j] = (plus - minus) / (2.0 * h)
    table.values[:] = base
    return jac


def _analytic_jacobian(constraint, table):
    jac = np.zeros((constraint.equation_count, table.parameter_count))
    constraint.jacobian(table, jac, 0)
    return jac


def test_coincident_residual_fixture():
    ids = ConstraintIdAllocator()
    table = _table(LineEntity(1, (0.0, 0.0), (10.0, 0.0)), LineEntity(2, (10.5, 0.5), (20.0, 0.0)))
    c = coincident(point_ref(1, 1), point_ref(2, 0), ids=ids)
    np.testing.assert_allclose(c.residuals(table), [-0.5, -0.5])


def test_distance_residual_fixture():
    ids = ConstraintIdAllocator()
    table = _table(LineEntity(1, (0.0, 0.0), (3.0, 4.0)))
    on_target = distance(point_ref(1, 0), point_ref(1, 1), 5.0, ids=ids)
    off_target = distance(point_ref(1, 0), point_ref(1, 1), 10.0, ids=ids)
    assert on_target.residuals(table)[0] == pytest.approx(0.0, abs=1e-12)
    assert off_target.residuals(table)[0] == pytest.approx(-75.0)


def test_line_relation_residuals():
    ids = ConstraintIdAllocator()
    table = _table(
        LineEntity(1, (0.0, 0.0), (2.0, 0.0)),
        LineEntity(2, (1.0, 1.0), (1.0, 4.0)),
        CircleEntity(3, (1.0, 3.0), 2.0),
        CircleEntity(4, (0.0, 0.0), 1.5),
    )
    assert perpendicular(line_ref(1), line_ref(2), ids=ids).residuals(table)[0] == 0.0
    assert parallel(line_ref(1), line_ref(2), ids=ids).residuals(table)[0] == pytest.approx(6.0)
    assert horizontal(line_ref(1), ids=ids).residuals(table)[0] == 0.0
    assert vertical(line_ref(2), ids=ids).residuals(table)[0] == 0.0
    assert horizontal(point_ref(1, 1), point_ref(2, 1), ids=ids).residuals(table)[0] == pytest.approx(-4.0)
    assert equal(line_ref(1), line_ref(2), ids=ids).residuals(table)[0] == pytest.approx(4.0 - 9.0)
    assert equal(circle_ref(3), circle_ref(4), ids=ids).residuals(table)[0] == pytest.approx(0.5)
    # center (1, 3) is 3 above the x axis, radius 2: 36 - 4 * 4
    assert tangent(line_ref(1), circle_ref(3), ids=ids).residuals(table)[0] == pytest.approx(20.0)


def test_angle_residual_is_wrapped_signed_difference():
    ids = ConstraintIdAllocator()
    table = _table(LineEntity(1, (0.0, 0.0), (1.0, 0.0)), LineEntity(2, (0.0, 0.0), (0.0, 1.0)))
    quarter = angle(line_ref(1), line_ref(2), math.pi / 2, ids=ids)
    assert quarter.residuals(table)[0] == pytest.approx(0.0, abs=1e-12)
    wrapped = angle(line_ref(1), line_ref(2), math.pi / 2 + 2 * math.pi, ids=ids)
    assert wrapped.residuals(table)[0] == pytest.approx(0.0, abs=1e-12)
    reversed_sign = angle(line_ref(2), line_ref(1), math.pi / 2, ids=ids)
    assert abs(reversed_sign.residuals(table)[0]) == pytest.approx(math.pi)


def test_fixed_residual():
    ids = ConstraintIdAllocator()
    table = _table(LineEntity(1, (1.0, 2.0), (3.0, 4.0)))
    c = fixed(point_ref(1, 1), (2.0, 2.0), ids=ids)
    np.testing.assert_allclose(c.residuals(table), [1.0, 2.0])


def test_equation_counts():
    ids = ConstraintIdAllocator()
    assert coincident(point_ref(1, 0), point_ref(2, 0), ids=ids).equation_count == 2
    assert fixed(point_ref(1, 0), (0.0, 0.0), ids=ids).equation_count == 2
    singles = [
        horizontal(line_ref(1), ids=ids),
        vertical(point_ref(1, 0), point_ref(1, 1), ids=ids),
        perpendicular(line_ref(1), line_ref(2), ids=ids),
        parallel(line_ref(1), line_ref(2), ids=ids),
        tangent(line_ref(1), circle_ref(3), ids=ids),
        equal(line_ref(1), line_ref(2), ids=ids),
        distance(point_ref(1, 0), point_ref(2, 0), 1.0, ids=ids),
        angle(line_ref(1), line_ref(2), 0.5, ids=ids),
    ]
    assert all(c.equation_count == 1 for c in singles)


def _every_kind(ids):
    return [
        coincident(point_ref(1, 1), point_ref(2, 0), ids=ids),
        coincident(point_ref(5, 2), point_ref(3, 0), ids=ids),
        horizontal(line_ref(1), ids=ids),
        horizontal(point_ref(1, 0), point_ref(5, 1), ids=ids),
        vertical(line_ref(5, 2), ids=ids),
        vertical(point_ref(2, 1), point_ref(4, 0), ids=ids),
        perpendicular(line_ref(1), line_ref(2), ids=ids),
        perpendicular(line_ref(5, 0), line_ref(5, 2), ids=ids),
        parallel(line_ref(1), line_ref(2), ids=ids),
        parallel(line_ref(2), line_ref(5, 1), ids=ids),
        tangent(line_ref(1), circle_ref(3), ids=ids),
        tangent(line_ref(5, 2), circle_ref(4), ids=ids),
        equal(line_ref(1), line_ref(2), ids=ids),
        equal(line_ref(5, 1), line_ref(5, 2), ids=ids),
        equal(circle_ref(3), circle_ref(4), ids=ids),
        fixed(point_ref(2, 1), (1.0, 1.0), ids=ids),
        distance(point_ref(1, 0), point_ref(2, 1), 4.0, ids=ids),
        distance(point_ref(3, 0), point_ref(5, 0), 2.0, ids=ids),
        angle(line_ref(1), line_ref(2), 1.1, ids=ids),
        angle(line_ref(5, 0), line_ref(1), -0.4, ids=ids),
        coincident(point_ref(6, 1), point_ref(1, 0), ids=ids),
        horizontal(point_ref(6, 2), point_ref(2, 0), ids=ids),
        vertical(point_ref(6, 1), point_ref(6, 2), ids=ids),
        fixed(point_ref(6, 2), (0.5, -1.0), ids=ids),
        distance(point_ref(6, 1), point_ref(3, 0), 2.5, ids=ids),
        distance(point_ref(6, 0), point_ref(6, 2), 1.0, ids=ids),
    ]


_KIND_COUNT = len(_every_kind(ConstraintIdAllocator()))


def test_every_kind_has_a_jacobian_fixture():
    kinds = {c.kind for c in _every_kind(ConstraintIdAllocator())}
    assert kinds == set(ConstraintType)


@pytest.mark.parametrize("index", range(_KIND_COUNT))
def test_jacobian_matches_finite_differences(index):
    table = _generic_table()
    constraint = _every_kind(ConstraintIdAllocator())[index]
    analytic = _analytic_jacobian(constraint, table)
    numeric = _numeric_jacobian(constraint, table)
    np.testing.assert_allclose(analytic, numeric, rtol=1e-5, atol=1e-5)


def test_jacobian_accumulates_into_shared_columns():
    ids = ConstraintIdAllocator()
    table = _table(LineEntity(1, (0.0, 0.0), (1.0, 0.0)))
    c = fixed(point_ref(1, 0), (0.0, 0.0), ids=ids)
    jac = np.zeros((2, 4))
    c.jacobian(table, jac, 0)
    c.jacobian(table, jac, 0)
    assert jac[0, 0] == 2.0
    assert jac[1, 1] == 2.0


def test_angle_with_degenerate_directions_does_not_crash():
    ids = ConstraintIdAllocator()
    table = _table(LineEntity(1, (1.0, 1.0), (1.0, 1.0)), LineEntity(2, (2.0, 2.0), (2.0, 2.0)))
    c = angle(line_ref(1), line_ref(2), 0.3, ids=ids)
    values = c.residuals(table)
    assert np.all(np.isfinite(values))
    jac = _analytic_jacobian(c, table)
    assert not jac.any()


@pytest.mark.parametrize("index", range(_KIND_COUNT))
def test_clone_preserves_identity_and_shape(index):
    table = _generic_table()
    constraint = _every_kind(ConstraintIdAllocator())[index]
    copy = constraint.clone()
    assert copy is not constraint
    assert copy.kind is constraint.kind
    assert copy.id == constraint.id
    assert copy.refs == constraint.refs
    assert copy.equation_count == constraint.equation_count
    np.testing.assert_array_equal(copy.residuals(table), constraint.residuals(table))


def test_clone_is_independent():
    ids = ConstraintIdAllocator()
    original = distance(point_ref(1, 0), point_ref(1, 1), 5.0, ids=ids)
    copy = original.clone()
    assert copy is not original
    assert copy.kind is original.kind
    assert copy.id == original.id
    assert copy.equation_count == original.equation_count
    copy.set_dimensional_value(7.0)
    assert original.dimensional_value == 5.0
    assert copy.dimensional_value == 7.0


def test_dimensional_value_accessors():
    ids = ConstraintIdAllocator()
    d = distance(point_ref(1, 0), point_ref(1, 1), 5.0, ids=ids)
    a = angle(line_ref(1), line_ref(2), 0.25, ids=ids)
    c = coincident(point_ref(1, 0), point_ref(2, 0), ids=ids)
    assert d.has_dimensional_value and a.has_dimensional_value
    assert not c.has_dimensional_value
    assert c.dimensional_value == 0.0
    a.set_dimensional_value(0.5)
    assert a.dimensional_value == 0.5
    with pytest.raises(ConstraintError):
        c.set_dimensional_value(1.0)
    with pytest.raises(ConstraintError):
        d.set_dimensional_value(float("nan"))


def test_construction_validates_references():
    ids = ConstraintIdAllocator()
    with pytest.raises(ConstraintError):
        tangent(circle_ref(3), line_ref(1), ids=ids)
    with pytest.raises(ConstraintError):
        perpendicular(point_ref(1, 0), line_ref(2), ids=ids)
    with pytest.raises(ConstraintError):
        coincident(point_ref(0, 0), point_ref(1, 0), ids=ids)
    with pytest.raises(ConstraintError):
        distance(point_ref(1, 0), point_ref(1, 1), float("inf"), ids=ids)
    with pytest.raises(ConstraintError):
        make_constraint(ConstraintType.FIXED, (point_ref(1, 0),), ids=ids)
    # rejected constructions do not consume ids
    assert ids.peek() == 1


def test_id_allocation():
    ids = ConstraintIdAllocator()
    first = coincident(point_ref(1, 0), point_ref(2, 0), ids=ids)
    second = horizontal(line_ref(1), ids=ids)
    assert (first.id, second.id) == (1, 2)

    restored = vertical(line_ref(1), ids=ids, constraint_id=40)
    assert restored.id == 40
    assert parallel(line_ref(1), line_ref(2), ids=ids).id == 41

    ids.advance_past(10)
    assert ids.peek() == 42

    with pytest.raises(ConstraintError):
        horizontal(line_ref(1))
    assert horizontal(line_ref(1), constraint_id=7).id == 7


def test_referenced_entity_ids_and_describe():
    ids = ConstraintIdAllocator()
    c = distance(point_ref(1, 0), point_ref(1, 1), 5.0, ids=ids)
    assert c.referenced_entity_ids() == [1]
    assert c.references_entity(1)
    assert not c.references_entity(2)
    assert c.type_name == "Distance"
    assert c.describe() == "Distance#1 | point[0]@1, point[1]@1 | value=5"
    t = tangent(line_ref(2), circle_ref(3), ids=ids)
    assert t.referenced_entity_ids() == [2, 3]
