"""SolveSpace backend used to cross-check sketch solves."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

from python_solvespace import slvs

from ..constraints import Constraint, ConstraintError, ConstraintType
from ..entities import ArcEntity, CircleEntity, LineEntity, PolylineEntity
from ..refs import FeatureType, GeometryRef
from ..system import ConstraintSystem

logger = logging.getLogger(__name__)

Point2D = Tuple[float, float]
PointKey = Tuple[int, int]  # (entity id, point index)

# How each constraint kind is emitted into SolveSpace.
CAD_MAPPING_TABLE: Mapping[str, str] = {
    "Coincident": "coincident(pointA, pointB, wp)",
    "Distance": "distance(pointA, pointB, value)",
    "Parallel": "parallel(lineA, lineB)",
    "Perpendicular": "perpendicular(lineA, lineB)",
    "Angle": "angle(lineA, lineB, degrees(value))",
    "Equal": "length_diff(lineA, lineB, 0) for lines; circles unsupported",
    "Fixed": "point seeded at target and dragged",
    "Horizontal": "horizontal(line, wp) or horizontal(pointA, wp, pointB)",
    "Vertical": "vertical(line, wp) or vertical(pointA, wp, pointB)",
    "Tangent": "unsupported",
}

_SUPPORTED = frozenset(
    {
        ConstraintType.COINCIDENT,
        ConstraintType.HORIZONTAL,
        ConstraintType.VERTICAL,
        ConstraintType.DISTANCE,
        ConstraintType.PARALLEL,
        ConstraintType.PERPENDICULAR,
        ConstraintType.ANGLE,
        ConstraintType.EQUAL,
        ConstraintType.FIXED,
    }
)


@dataclass
class SlvsAdapterOptions:
    """Options controlling the SolveSpace adapter."""

    # raise instead of skipping constraints SolveSpace cannot express
    strict: bool = False


@dataclass
class AdapterOK:
    """Successful SolveSpace solve."""

    coords: Dict[PointKey, Point2D]
    dof: int
    unsupported: List[int] = field(default_factory=list)


@dataclass
class AdapterFail:
    """Failure information when SolveSpace cannot satisfy the constraints."""

    failures: List[int]
    dof: int
    unsupported: List[int] = field(default_factory=list)


AdapterResult = Union[AdapterOK, AdapterFail]


def _is_supported(constraint: Constraint, registry: "_SketchRegistry") -> bool:
    if constraint.kind not in _SUPPORTED:
        return False
    # arc endpoints hang off a fixed angle that has no SolveSpace counterpart here
    if any(registry.is_arc_endpoint(ref) for ref in constraint.refs):
        return False
    if constraint.kind is ConstraintType.EQUAL:
        return constraint.refs[0].feature_type is FeatureType.LINE
    return True


class _SketchRegistry:
    """Creates SolveSpace points and lines for sketch entities on demand."""

    def __init__(self, system: slvs.SolverSystem, wp: slvs.Entity, entities: Iterable[object]):
        self._system = system
        self._wp = wp
        self._entities = {getattr(entity, "id", None): entity for entity in entities}
        self.points: Dict[PointKey, slvs.Entity] = {}
        self._lines: Dict[Tuple[int, int], slvs.Entity] = {}

    def _seed(self, key: PointKey) -> Point2D:
        entity_id, index = key
        entity = self._entities.get(entity_id)
        if isinstance(entity, LineEntity):
            return entity.start if index == 0 else entity.end
        if isinstance(entity, (CircleEntity, ArcEntity)):
            return entity.center
        if isinstance(entity, PolylineEntity):
            return entity.points[index]
        raise KeyError(f"unknown entity {entity_id}")

    def is_arc_endpoint(self, ref: GeometryRef) -> bool:
        entity = self._entities.get(ref.entity_id)
        return (
            isinstance(entity, ArcEntity)
            and ref.feature_type is FeatureType.POINT
            and ref.feature_index != 0
        )

    def point_key(self, ref: GeometryRef) -> PointKey:
        entity = self._entities.get(ref.entity_id)
        if isinstance(entity, (CircleEntity, ArcEntity)):
            # only the center of a circle-like entity is a SolveSpace point
            return ref.entity_id, 0
        return ref.entity_id, ref.feature_index

    def point(self, ref: GeometryRef) -> slvs.Entity:
        return self.point_at(self.point_key(ref))

    def point_at(self, key: PointKey) -> slvs.Entity:
        if key not in self.points:
            u, v = self._seed(key)
            self.points[key] = self._system.add_point_2d(wp=self._wp, u=u, v=v)
        return self.points[key]

    def line(self, ref: GeometryRef) -> slvs.Entity:
        key = (ref.entity_id, ref.feature_index)
        if key in self._lines:
            return self._lines[key]
        entity = self._entities.get(ref.entity_id)
        if isinstance(entity, PolylineEntity):
            count = len(entity.points)
            first, second = ref.feature_index, (ref.feature_index + 1) % count
        elif isinstance(entity, LineEntity):
            first, second = 0, 1
        else:
            raise KeyError(f"entity {ref.entity_id} has no line feature")
        line = self._system.add_line_2d(
            wp=self._wp,
            p1=self.point_at((ref.entity_id, first)),
            p2=self.point_at((ref.entity_id, second)),
        )
        self._lines[key] = line
        return line


class SlvsAdapter:
    """Re-solves a sketch with SolveSpace so results can be compared."""

    def solve(
        self,
        entities: Iterable[object],
        system: ConstraintSystem,
        options: Optional[SlvsAdapterOptions] = None,
    ) -> AdapterResult:
        options = options or SlvsAdapterOptions()
        solver = slvs.SolverSystem()
        wp = solver.create_2d_base()
        registry = _SketchRegistry(solver, wp, entities)
        unsupported: List[int] = []
        for constraint in system:
            if not _is_supported(constraint, registry):
                if options.strict:
                    raise ConstraintError(
                        f"SolveSpace cannot express {constraint.describe()}"
                    )
                unsupported.append(constraint.id)
        skipped = set(unsupported)
        dragged: List[slvs.Entity] = []

        # fixed points are seeded at their targets before anything else uses them
        for constraint in system:
            if constraint.kind is ConstraintType.FIXED and constraint.id not in skipped:
                key = registry.point_key(constraint.refs[0])
                if key not in registry.points:
                    tx, ty = constraint.target
                    registry.points[key] = solver.add_point_2d(wp=wp, u=tx, v=ty)
                dragged.append(registry.points[key])

        for constraint in system:
            if constraint.kind is ConstraintType.FIXED or constraint.id in skipped:
                continue
            refs = constraint.refs
            kind = constraint.kind
            if kind is ConstraintType.COINCIDENT:
                solver.coincident(registry.point(refs[0]), registry.point(refs[1]), wp)
            elif kind in (ConstraintType.HORIZONTAL, ConstraintType.VERTICAL):
                emit = solver.horizontal if kind is ConstraintType.HORIZONTAL else solver.vertical
                if len(refs) == 1:
                    emit(registry.line(refs[0]), wp)
                else:
                    emit(registry.point(refs[0]), wp, registry.point(refs[1]))
            elif kind is ConstraintType.DISTANCE:
                solver.distance(registry.point(refs[0]), registry.point(refs[1]), constraint.value)
            elif kind is ConstraintType.PARALLEL:
                solver.parallel(registry.line(refs[0]), registry.line(refs[1]))
            elif kind is ConstraintType.PERPENDICULAR:
                solver.perpendicular(registry.line(refs[0]), registry.line(refs[1]))
            elif kind is ConstraintType.ANGLE:
                solver.angle(
                    registry.line(refs[0]), registry.line(refs[1]), math.degrees(constraint.value)
                )
            elif kind is ConstraintType.EQUAL:
                solver.length_diff(registry.line(refs[0]), registry.line(refs[1]), 0.0)

        for point in dragged:
            solver.dragged(point)

        if unsupported:
            logger.warning(
                "SolveSpace skipped %d unsupported constraint(s): %s", len(unsupported), unsupported
            )

        result = solver.solve()
        failures = list(solver.failures())
        if failures or result != slvs.ResultFlag.OKAY:
            if not failures:
                failures = [-1]
            logger.info("SolveSpace failed: result=%s failures=%s", result, failures)
            return AdapterFail(failures, solver.dof(), unsupported)

        coords: Dict[PointKey, Point2D] = {}
        for key, entity in registry.points.items():
            params = solver.params(entity.params)
            coords[key] = (float(params[0]), float(params[1]))
        logger.info("SolveSpace solved %d point(s), dof=%d", len(coords), solver.dof())
        return AdapterOK(coords=coords, dof=solver.dof(), unsupported=unsupported)


def max_deviation(coords: Mapping[PointKey, Point2D], entities: Iterable[object]) -> float:
    """Largest distance between SolveSpace points and the matching entity points."""

    by_id = {getattr(entity, "id", None): entity for entity in entities}
    worst = 0.0
    for (entity_id, index), (u, v) in coords.items():
        entity = by_id.get(entity_id)
        if isinstance(entity, LineEntity):
            x, y = entity.start if index == 0 else entity.end
        elif isinstance(entity, (CircleEntity, ArcEntity)):
            x, y = entity.center
        elif isinstance(entity, PolylineEntity):
            x, y = entity.points[index]
        else:
            continue
        worst = max(worst, math.hypot(u - x, v - y))
    return worst
