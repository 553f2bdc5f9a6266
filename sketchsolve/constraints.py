"""Geometric constraints: residual equations and their analytic derivatives.

The set of constraint kinds is closed.  A single :class:`Constraint` record
carries the kind tag, and every per-kind operation (equation count, residual
evaluation, Jacobian accumulation) is looked up in a dispatch table keyed by
:class:`ConstraintType`.  Import fails if a kind is missing from a table.

Residuals are written into a caller-owned vector at a row offset; Jacobian
entries are *added* into a caller-owned matrix because several constraints
may depend on the same parameter.  Nothing here validates references at
evaluation time: the parameter table must already contain every referenced
entity.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .params import ParameterTable
from .refs import FeatureType, GeometryRef, Point2D

_ANGLE_DENOM_EPS = 1e-30


class ConstraintError(ValueError):
    """Raised when a constraint is constructed or managed incorrectly."""


class ConstraintType(Enum):
    COINCIDENT = "Coincident"
    HORIZONTAL = "Horizontal"
    VERTICAL = "Vertical"
    PERPENDICULAR = "Perpendicular"
    PARALLEL = "Parallel"
    TANGENT = "Tangent"
    EQUAL = "Equal"
    FIXED = "Fixed"
    DISTANCE = "Distance"
    ANGLE = "Angle"


_DIMENSIONAL = frozenset({ConstraintType.DISTANCE, ConstraintType.ANGLE})


class ConstraintIdAllocator:
    """Monotonic source of constraint ids, owned by a document or session."""

    def __init__(self, start: int = 1) -> None:
        if start < 1:
            raise ValueError("constraint ids start at 1")
        self._next = int(start)

    def next_id(self) -> int:
        value = self._next
        self._next += 1
        return value

    def peek(self) -> int:
        return self._next

    def advance_past(self, min_id: int) -> None:
        """Ensure ids handed out from now on are greater than ``min_id``."""

        if self._next <= min_id:
            self._next = int(min_id) + 1


# ----------------------------------------------------------------------
# Reference shape checks, applied once at construction time

_P, _L, _C = FeatureType.POINT, FeatureType.LINE, FeatureType.CIRCLE

_REF_SHAPES: Dict[ConstraintType, Tuple[Tuple[FeatureType, ...], ...]] = {
    ConstraintType.COINCIDENT: ((_P, _P),),
    ConstraintType.HORIZONTAL: ((_P, _P), (_L,)),
    ConstraintType.VERTICAL: ((_P, _P), (_L,)),
    ConstraintType.PERPENDICULAR: ((_L, _L),),
    ConstraintType.PARALLEL: ((_L, _L),),
    ConstraintType.TANGENT: ((_L, _C),),
    ConstraintType.EQUAL: ((_L, _L), (_C, _C)),
    ConstraintType.FIXED: ((_P,),),
    ConstraintType.DISTANCE: ((_P, _P),),
    ConstraintType.ANGLE: ((_L, _L),),
}


@dataclass
class Constraint:
    """One constraint instance.

    ``value`` is the dimensional target of Distance (length) and Angle
    (radians) constraints; ``target`` is the absolute position of a Fixed
    constraint.
    """

    kind: ConstraintType
    refs: Tuple[GeometryRef, ...]
    id: int
    value: Optional[float] = None
    target: Optional[Point2D] = None

    def __post_init__(self) -> None:
        self.refs = tuple(self.refs)
        shape = tuple(ref.feature_type for ref in self.refs)
        allowed = _REF_SHAPES[self.kind]
        if shape not in allowed:
            expected = " or ".join(
                "(" + ", ".join(ft.value for ft in option) + ")" for option in allowed
            )
            got = "(" + ", ".join(ft.value for ft in shape) + ")"
            raise ConstraintError(f"{self.kind.value} expects {expected}, got {got}")
        if any(not ref.is_valid for ref in self.refs):
            raise ConstraintError(f"{self.kind.value} references an unset entity")
        if self.kind in _DIMENSIONAL:
            if self.value is None or not math.isfinite(self.value):
                raise ConstraintError(f"{self.kind.value} needs a finite value, got {self.value!r}")
            self.value = float(self.value)
        if self.kind is ConstraintType.FIXED:
            if self.target is None:
                raise ConstraintError("Fixed needs a target position")
            self.target = (float(self.target[0]), float(self.target[1]))

    @property
    def type_name(self) -> str:
        return self.kind.value

    @property
    def equation_count(self) -> int:
        return _EQUATION_COUNTS[self.kind]

    def referenced_entity_ids(self) -> List[int]:
        ids: List[int] = []
        for ref in self.refs:
            if ref.entity_id not in ids:
                ids.append(ref.entity_id)
        return ids

    def references_entity(self, entity_id: int) -> bool:
        return any(ref.entity_id == entity_id for ref in self.refs)

    def evaluate(self, params: ParameterTable, residuals: np.ndarray, row: int) -> None:
        _EVALUATORS[self.kind](self, params, residuals, row)

    def jacobian(self, params: ParameterTable, jac: np.ndarray, row: int) -> None:
        _JACOBIANS[self.kind](self, params, jac, row)

    def residuals(self, params: ParameterTable) -> np.ndarray:
        """Standalone residual vector of this constraint."""

        out = np.zeros(self.equation_count, dtype=float)
        self.evaluate(params, out, 0)
        return out

    @property
    def has_dimensional_value(self) -> bool:
        return self.kind in _DIMENSIONAL

    @property
    def dimensional_value(self) -> float:
        return float(self.value) if self.kind in _DIMENSIONAL else 0.0

    def set_dimensional_value(self, value: float) -> None:
        if self.kind not in _DIMENSIONAL:
            raise ConstraintError(f"{self.kind.value} has no dimensional value")
        if not math.isfinite(value):
            raise ConstraintError(f"dimensional value must be finite, got {value!r}")
        self.value = float(value)

    def clone(self) -> "Constraint":
        """Independent copy carrying the same id."""

        return replace(self)

    def describe(self) -> str:
        parts = [f"{self.kind.value}#{self.id}", ", ".join(str(ref) for ref in self.refs)]
        if self.kind is ConstraintType.DISTANCE:
            parts.append(f"value={self.value:.6g}")
        elif self.kind is ConstraintType.ANGLE:
            parts.append(f"value={math.degrees(self.value):.6g}deg")
        elif self.kind is ConstraintType.FIXED:
            parts.append(f"target=({self.target[0]:.6g}, {self.target[1]:.6g})")
        return " | ".join(parts)


# ----------------------------------------------------------------------
# Shared geometry reads


def _direction(params: ParameterTable, ref: GeometryRef) -> Tuple[float, float]:
    (sx, sy), (ex, ey) = params.line_endpoints(ref)
    return ex - sx, ey - sy


def _point_pair(c: Constraint, params: ParameterTable) -> Tuple[Point2D, Point2D]:
    """The two points a Horizontal/Vertical compares."""

    if len(c.refs) == 1:
        return params.line_endpoints(c.refs[0])
    return params.point_position(c.refs[0]), params.point_position(c.refs[1])


# ----------------------------------------------------------------------
# Residuals


def _eval_coincident(c: Constraint, params: ParameterTable, out: np.ndarray, row: int) -> None:
    ax, ay = params.point_position(c.refs[0])
    bx, by = params.point_position(c.refs[1])
    out[row] = ax - bx
    out[row + 1] = ay - by


def _eval_horizontal(c: Constraint, params: ParameterTable, out: np.ndarray, row: int) -> None:
    a, b = _point_pair(c, params)
    out[row] = a[1] - b[1]


def _eval_vertical(c: Constraint, params: ParameterTable, out: np.ndarray, row: int) -> None:
    a, b = _point_pair(c, params)
    out[row] = a[0] - b[0]


def _eval_perpendicular(c: Constraint, params: ParameterTable, out: np.ndarray, row: int) -> None:
    dx1, dy1 = _direction(params, c.refs[0])
    dx2, dy2 = _direction(params, c.refs[1])
    out[row] = dx1 * dx2 + dy1 * dy2


def _eval_parallel(c: Constraint, params: ParameterTable, out: np.ndarray, row: int) -> None:
    dx1, dy1 = _direction(params, c.refs[0])
    dx2, dy2 = _direction(params, c.refs[1])
    out[row] = dx1 * dy2 - dy1 * dx2


def _eval_tangent(c: Constraint, params: ParameterTable, out: np.ndarray, row: int) -> None:
    (sx, sy), (ex, ey) = params.line_endpoints(c.refs[0])
    (cx, cy), radius = params.circle_data(c.refs[1])
    dx, dy = ex - sx, ey - sy
    cross = (cx - sx) * dy - (cy - sy) * dx
    out[row] = cross * cross - radius * radius * (dx * dx + dy * dy)


def _eval_equal(c: Constraint, params: ParameterTable, out: np.ndarray, row: int) -> None:
    ref_a, ref_b = c.refs
    if ref_a.feature_type is FeatureType.LINE:
        dxa, dya = _direction(params, ref_a)
        dxb, dyb = _direction(params, ref_b)
        out[row] = (dxa * dxa + dya * dya) - (dxb * dxb + dyb * dyb)
    else:
        _, ra = params.circle_data(ref_a)
        _, rb = params.circle_data(ref_b)
        out[row] = ra - rb


def _eval_fixed(c: Constraint, params: ParameterTable, out: np.ndarray, row: int) -> None:
    px, py = params.point_position(c.refs[0])
    tx, ty = c.target
    out[row] = px - tx
    out[row + 1] = py - ty


def _eval_distance(c: Constraint, params: ParameterTable, out: np.ndarray, row: int) -> None:
    ax, ay = params.point_position(c.refs[0])
    bx, by = params.point_position(c.refs[1])
    dx, dy = ax - bx, ay - by
    out[row] = dx * dx + dy * dy - c.value * c.value


def _signed_angle(params: ParameterTable, c: Constraint) -> Tuple[float, float, float, float, float, float]:
    dx1, dy1 = _direction(params, c.refs[0])
    dx2, dy2 = _direction(params, c.refs[1])
    dot = dx1 * dx2 + dy1 * dy2
    cross = dx1 * dy2 - dy1 * dx2
    return dx1, dy1, dx2, dy2, dot, cross


def _eval_angle(c: Constraint, params: ParameterTable, out: np.ndarray, row: int) -> None:
    _, _, _, _, dot, cross = _signed_angle(params, c)
    out[row] = math.remainder(math.atan2(cross, dot) - c.value, 2.0 * math.pi)


# ----------------------------------------------------------------------
# Jacobians


def _add_point_row(
    jac: np.ndarray, row: int, params: ParameterTable, ref: GeometryRef, wx: float, wy: float
) -> None:
    """Accumulate ``wx * dx/dp + wy * dy/dp`` of a point feature into ``row``."""

    for col, dx, dy in params.point_partials(ref):
        jac[row, col] += wx * dx + wy * dy


def _jac_coincident(c: Constraint, params: ParameterTable, jac: np.ndarray, row: int) -> None:
    ref_a, ref_b = c.refs
    _add_point_row(jac, row, params, ref_a, 1.0, 0.0)
    _add_point_row(jac, row, params, ref_b, -1.0, 0.0)
    _add_point_row(jac, row + 1, params, ref_a, 0.0, 1.0)
    _add_point_row(jac, row + 1, params, ref_b, 0.0, -1.0)


def _add_pair_row(
    c: Constraint, params: ParameterTable, jac: np.ndarray, row: int, wx: float, wy: float
) -> None:
    """Row of ``(a - b) . (wx, wy)`` for the two points of a Horizontal/Vertical."""

    if len(c.refs) == 1:
        i_start, i_end = params.line_indices(c.refs[0])
        jac[row, i_start] += wx
        jac[row, i_start + 1] += wy
        jac[row, i_end] -= wx
        jac[row, i_end + 1] -= wy
        return
    _add_point_row(jac, row, params, c.refs[0], wx, wy)
    _add_point_row(jac, row, params, c.refs[1], -wx, -wy)


def _jac_horizontal(c: Constraint, params: ParameterTable, jac: np.ndarray, row: int) -> None:
    _add_pair_row(c, params, jac, row, 0.0, 1.0)


def _jac_vertical(c: Constraint, params: ParameterTable, jac: np.ndarray, row: int) -> None:
    _add_pair_row(c, params, jac, row, 1.0, 0.0)


def _add_line_row(
    jac: np.ndarray,
    row: int,
    cols: Tuple[int, int],
    d_start: Tuple[float, float],
    d_end: Tuple[float, float],
) -> None:
    i_start, i_end = cols
    jac[row, i_start] += d_start[0]
    jac[row, i_start + 1] += d_start[1]
    jac[row, i_end] += d_end[0]
    jac[row, i_end + 1] += d_end[1]


def _jac_perpendicular(c: Constraint, params: ParameterTable, jac: np.ndarray, row: int) -> None:
    dx1, dy1 = _direction(params, c.refs[0])
    dx2, dy2 = _direction(params, c.refs[1])
    # F = d1 . d2
    _add_line_row(jac, row, params.line_indices(c.refs[0]), (-dx2, -dy2), (dx2, dy2))
    _add_line_row(jac, row, params.line_indices(c.refs[1]), (-dx1, -dy1), (dx1, dy1))


def _jac_parallel(c: Constraint, params: ParameterTable, jac: np.ndarray, row: int) -> None:
    dx1, dy1 = _direction(params, c.refs[0])
    dx2, dy2 = _direction(params, c.refs[1])
    # F = dx1*dy2 - dy1*dx2
    _add_line_row(jac, row, params.line_indices(c.refs[0]), (-dy2, dx2), (dy2, -dx2))
    _add_line_row(jac, row, params.line_indices(c.refs[1]), (dy1, -dx1), (-dy1, dx1))


def _jac_tangent(c: Constraint, params: ParameterTable, jac: np.ndarray, row: int) -> None:
    (sx, sy), (ex, ey) = params.line_endpoints(c.refs[0])
    (cx, cy), radius = params.circle_data(c.refs[1])
    dx, dy = ex - sx, ey - sy
    dcx, dcy = cx - sx, cy - sy
    cross = dcx * dy - dcy * dx
    len_sq = dx * dx + dy * dy
    r2 = radius * radius
    two_cross = 2.0 * cross

    # F = cross^2 - r^2 * |d|^2, cross = dcx*dy - dcy*dx
    d_start = (
        two_cross * (dcy - dy) + r2 * 2.0 * dx,
        two_cross * (dx - dcx) + r2 * 2.0 * dy,
    )
    d_end = (
        two_cross * (-dcy) - r2 * 2.0 * dx,
        two_cross * dcx - r2 * 2.0 * dy,
    )
    _add_line_row(jac, row, params.line_indices(c.refs[0]), d_start, d_end)

    ic = params.parameter_index(c.refs[1])
    jac[row, ic] += two_cross * dy
    jac[row, ic + 1] += two_cross * (-dx)
    jac[row, ic + 2] += -2.0 * radius * len_sq


def _jac_equal(c: Constraint, params: ParameterTable, jac: np.ndarray, row: int) -> None:
    ref_a, ref_b = c.refs
    if ref_a.feature_type is FeatureType.LINE:
        dxa, dya = _direction(params, ref_a)
        dxb, dyb = _direction(params, ref_b)
        _add_line_row(jac, row, params.line_indices(ref_a), (-2.0 * dxa, -2.0 * dya), (2.0 * dxa, 2.0 * dya))
        _add_line_row(jac, row, params.line_indices(ref_b), (2.0 * dxb, 2.0 * dyb), (-2.0 * dxb, -2.0 * dyb))
    else:
        jac[row, params.parameter_index(ref_a) + 2] += 1.0
        jac[row, params.parameter_index(ref_b) + 2] -= 1.0


def _jac_fixed(c: Constraint, params: ParameterTable, jac: np.ndarray, row: int) -> None:
    _add_point_row(jac, row, params, c.refs[0], 1.0, 0.0)
    _add_point_row(jac, row + 1, params, c.refs[0], 0.0, 1.0)


def _jac_distance(c: Constraint, params: ParameterTable, jac: np.ndarray, row: int) -> None:
    ax, ay = params.point_position(c.refs[0])
    bx, by = params.point_position(c.refs[1])
    dx, dy = ax - bx, ay - by
    _add_point_row(jac, row, params, c.refs[0], 2.0 * dx, 2.0 * dy)
    _add_point_row(jac, row, params, c.refs[1], -2.0 * dx, -2.0 * dy)


def _jac_angle(c: Constraint, params: ParameterTable, jac: np.ndarray, row: int) -> None:
    dx1, dy1, dx2, dy2, dot, cross = _signed_angle(params, c)
    denom = dot * dot + cross * cross
    if denom < _ANGLE_DENOM_EPS:
        # degenerate directions: leave the row empty this iteration
        return

    def d_theta(d_dot: float, d_cross: float) -> float:
        return (dot * d_cross - cross * d_dot) / denom

    _add_line_row(
        jac,
        row,
        params.line_indices(c.refs[0]),
        (d_theta(-dx2, -dy2), d_theta(-dy2, dx2)),
        (d_theta(dx2, dy2), d_theta(dy2, -dx2)),
    )
    _add_line_row(
        jac,
        row,
        params.line_indices(c.refs[1]),
        (d_theta(-dx1, dy1), d_theta(-dy1, -dx1)),
        (d_theta(dx1, -dy1), d_theta(dy1, dx1)),
    )


# ----------------------------------------------------------------------
# Dispatch tables

_Op = Callable[[Constraint, ParameterTable, np.ndarray, int], None]

_EQUATION_COUNTS: Dict[ConstraintType, int] = {
    ConstraintType.COINCIDENT: 2,
    ConstraintType.HORIZONTAL: 1,
    ConstraintType.VERTICAL: 1,
    ConstraintType.PERPENDICULAR: 1,
    ConstraintType.PARALLEL: 1,
    ConstraintType.TANGENT: 1,
    ConstraintType.EQUAL: 1,
    ConstraintType.FIXED: 2,
    ConstraintType.DISTANCE: 1,
    ConstraintType.ANGLE: 1,
}

_EVALUATORS: Dict[ConstraintType, _Op] = {
    ConstraintType.COINCIDENT: _eval_coincident,
    ConstraintType.HORIZONTAL: _eval_horizontal,
    ConstraintType.VERTICAL: _eval_vertical,
    ConstraintType.PERPENDICULAR: _eval_perpendicular,
    ConstraintType.PARALLEL: _eval_parallel,
    ConstraintType.TANGENT: _eval_tangent,
    ConstraintType.EQUAL: _eval_equal,
    ConstraintType.FIXED: _eval_fixed,
    ConstraintType.DISTANCE: _eval_distance,
    ConstraintType.ANGLE: _eval_angle,
}

_JACOBIANS: Dict[ConstraintType, _Op] = {
    ConstraintType.COINCIDENT: _jac_coincident,
    ConstraintType.HORIZONTAL: _jac_horizontal,
    ConstraintType.VERTICAL: _jac_vertical,
    ConstraintType.PERPENDICULAR: _jac_perpendicular,
    ConstraintType.PARALLEL: _jac_parallel,
    ConstraintType.TANGENT: _jac_tangent,
    ConstraintType.EQUAL: _jac_equal,
    ConstraintType.FIXED: _jac_fixed,
    ConstraintType.DISTANCE: _jac_distance,
    ConstraintType.ANGLE: _jac_angle,
}

for _table_name, _table in (
    ("equation counts", _EQUATION_COUNTS),
    ("evaluators", _EVALUATORS),
    ("jacobians", _JACOBIANS),
    ("reference shapes", _REF_SHAPES),
):
    _missing = set(ConstraintType) - set(_table)
    if _missing:
        raise RuntimeError(
            f"constraint {_table_name} table lacks: {sorted(kind.value for kind in _missing)}"
        )


# ----------------------------------------------------------------------
# Factories


def _resolve_id(ids: Optional[ConstraintIdAllocator], constraint_id: Optional[int]) -> int:
    if constraint_id is not None:
        if ids is not None:
            ids.advance_past(constraint_id)
        return int(constraint_id)
    if ids is None:
        raise ConstraintError("pass an id allocator or an explicit constraint_id")
    return ids.next_id()


def make_constraint(
    kind: ConstraintType,
    refs: Sequence[GeometryRef],
    *,
    ids: Optional[ConstraintIdAllocator] = None,
    constraint_id: Optional[int] = None,
    value: Optional[float] = None,
    target: Optional[Point2D] = None,
) -> Constraint:
    """Build a constraint, taking its id from ``ids`` unless one is given.

    An explicit ``constraint_id`` (restoring a stored constraint) also moves
    ``ids`` past it so later ids cannot collide.
    """

    # shape errors must not consume an id
    Constraint(kind, tuple(refs), 0 if constraint_id is None else constraint_id, value, target)
    return Constraint(kind, tuple(refs), _resolve_id(ids, constraint_id), value, target)


def coincident(point_a: GeometryRef, point_b: GeometryRef, **kw) -> Constraint:
    return make_constraint(ConstraintType.COINCIDENT, (point_a, point_b), **kw)


def horizontal(ref_a: GeometryRef, ref_b: Optional[GeometryRef] = None, **kw) -> Constraint:
    """Two points share Y; a single line reference constrains its own endpoints."""

    refs = (ref_a,) if ref_b is None else (ref_a, ref_b)
    return make_constraint(ConstraintType.HORIZONTAL, refs, **kw)


def vertical(ref_a: GeometryRef, ref_b: Optional[GeometryRef] = None, **kw) -> Constraint:
    refs = (ref_a,) if ref_b is None else (ref_a, ref_b)
    return make_constraint(ConstraintType.VERTICAL, refs, **kw)


def perpendicular(line_a: GeometryRef, line_b: GeometryRef, **kw) -> Constraint:
    return make_constraint(ConstraintType.PERPENDICULAR, (line_a, line_b), **kw)


def parallel(line_a: GeometryRef, line_b: GeometryRef, **kw) -> Constraint:
    return make_constraint(ConstraintType.PARALLEL, (line_a, line_b), **kw)


def tangent(line: GeometryRef, circle: GeometryRef, **kw) -> Constraint:
    return make_constraint(ConstraintType.TANGENT, (line, circle), **kw)


def equal(ref_a: GeometryRef, ref_b: GeometryRef, **kw) -> Constraint:
    return make_constraint(ConstraintType.EQUAL, (ref_a, ref_b), **kw)


def fixed(point: GeometryRef, position: Point2D, **kw) -> Constraint:
    return make_constraint(ConstraintType.FIXED, (point,), target=position, **kw)


def distance(point_a: GeometryRef, point_b: GeometryRef, value: float, **kw) -> Constraint:
    return make_constraint(ConstraintType.DISTANCE, (point_a, point_b), value=value, **kw)


def angle(line_a: GeometryRef, line_b: GeometryRef, radians: float, **kw) -> Constraint:
    """Signed angle from ``line_a`` to ``line_b`` equals ``radians``."""

    return make_constraint(ConstraintType.ANGLE, (line_a, line_b), value=radians, **kw)


__all__ = [
    "Constraint",
    "ConstraintError",
    "ConstraintIdAllocator",
    "ConstraintType",
    "angle",
    "coincident",
    "distance",
    "equal",
    "fixed",
    "horizontal",
    "make_constraint",
    "parallel",
    "perpendicular",
    "tangent",
    "vertical",
]
