from __future__ import annotations

import logging
from typing import Iterable, Optional

from .entities import ArcEntity, CircleEntity, LineEntity, PolylineEntity, SketchEntity
from .refs import (
    FeatureType,
    GeometryRef,
    GeometryRefError,
    circle_ref,
    extract_circle,
    extract_line,
    extract_point,
    find_entity,
    line_ref,
    point_ref,
)
from .params import EntitySlots, ParameterTable
from .constraints import (
    Constraint,
    ConstraintError,
    ConstraintIdAllocator,
    ConstraintType,
    angle,
    coincident,
    distance,
    equal,
    fixed,
    horizontal,
    make_constraint,
    parallel,
    perpendicular,
    tangent,
    vertical,
)
from .system import ConstraintSystem
from .model import SolveResult, SolveStatus, SolverOptions
from .config import (
    get_default_solver_options,
    reset_default_solver_options,
    set_default_solver_options,
)
from .solver import SketchSolver

logger = logging.getLogger(__name__)


def solve_sketch(
    entities: Iterable[object],
    system: ConstraintSystem,
    options: Optional[SolverOptions] = None,
    *,
    apply: bool = True,
) -> SolveResult:
    """Solve ``system`` over ``entities`` and commit the geometry when solved.

    Only entities referenced by some constraint become unknowns.  The
    entities are left untouched unless the status is solved and ``apply``
    is true.
    """

    entities = list(entities)
    params = ParameterTable.build_from_entities(entities, system)
    result = SketchSolver(options).solve(params, system)
    if apply and result.status.is_solved:
        params.apply_to_entities(entities)
    elif not result.status.is_solved:
        logger.info("Geometry not committed: %s", result.message)
    return result


__all__ = [
    "ArcEntity",
    "CircleEntity",
    "Constraint",
    "ConstraintError",
    "ConstraintIdAllocator",
    "ConstraintSystem",
    "ConstraintType",
    "EntitySlots",
    "FeatureType",
    "GeometryRef",
    "GeometryRefError",
    "LineEntity",
    "ParameterTable",
    "PolylineEntity",
    "SketchEntity",
    "SketchSolver",
    "SolveResult",
    "SolveStatus",
    "SolverOptions",
    "angle",
    "circle_ref",
    "coincident",
    "distance",
    "equal",
    "extract_circle",
    "extract_line",
    "extract_point",
    "find_entity",
    "fixed",
    "get_default_solver_options",
    "horizontal",
    "line_ref",
    "make_constraint",
    "parallel",
    "perpendicular",
    "point_ref",
    "reset_default_solver_options",
    "set_default_solver_options",
    "solve_sketch",
    "tangent",
    "vertical",
]
