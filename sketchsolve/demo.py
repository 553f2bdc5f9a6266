"""Small ready-made sketches used by the command line and the examples."""

import math
from typing import Callable, Dict, List, Tuple

from . import (
    CircleEntity,
    ConstraintIdAllocator,
    ConstraintSystem,
    LineEntity,
    PolylineEntity,
    circle_ref,
    coincident,
    distance,
    fixed,
    horizontal,
    line_ref,
    point_ref,
    solve_sketch,
    tangent,
    vertical,
)

Scenario = Tuple[List[object], ConstraintSystem]


def fixed_chain() -> Scenario:
    """Two lines; the second one's start is pulled onto the first one's end."""

    ids = ConstraintIdAllocator()
    first = LineEntity(1, (0.0, 0.0), (10.0, 0.0))
    second = LineEntity(2, (10.5, 0.3), (20.0, 0.0))
    system = ConstraintSystem()
    system.add_constraint(fixed(point_ref(1, 0), (0.0, 0.0), ids=ids))
    system.add_constraint(fixed(point_ref(1, 1), (10.0, 0.0), ids=ids))
    system.add_constraint(fixed(point_ref(2, 1), (20.0, 0.0), ids=ids))
    system.add_constraint(coincident(point_ref(2, 0), point_ref(1, 1), ids=ids))
    return [first, second], system


def contradiction() -> Scenario:
    """Both ends fixed ten apart while a distance of five is demanded."""

    ids = ConstraintIdAllocator()
    line = LineEntity(1, (0.0, 0.0), (10.0, 0.0))
    system = ConstraintSystem()
    system.add_constraint(fixed(point_ref(1, 0), (0.0, 0.0), ids=ids))
    system.add_constraint(fixed(point_ref(1, 1), (10.0, 0.0), ids=ids))
    system.add_constraint(distance(point_ref(1, 0), point_ref(1, 1), 5.0, ids=ids))
    return [line], system


def tangent_circle() -> Scenario:
    """A pinned circle center whose radius grows until it touches a pinned line."""

    ids = ConstraintIdAllocator()
    line = LineEntity(1, (0.0, 0.0), (10.0, 0.0))
    circle = CircleEntity(2, (5.0, 3.0), 2.0)
    system = ConstraintSystem()
    system.add_constraint(fixed(point_ref(1, 0), (0.0, 0.0), ids=ids))
    system.add_constraint(fixed(point_ref(1, 1), (10.0, 0.0), ids=ids))
    system.add_constraint(fixed(point_ref(2, 0), (5.0, 3.0), ids=ids))
    system.add_constraint(tangent(line_ref(1), circle_ref(2), ids=ids))
    return [line, circle], system


def rectangle() -> Scenario:
    """A sloppy closed quad squared up between two pinned corners."""

    ids = ConstraintIdAllocator()
    quad = PolylineEntity(1, [(0.5, -0.5), (38.0, 1.0), (41.0, 19.0), (-1.0, 22.0)], closed=True)
    system = ConstraintSystem()
    system.add_constraint(fixed(point_ref(1, 0), (0.0, 0.0), ids=ids))
    system.add_constraint(fixed(point_ref(1, 2), (40.0, 20.0), ids=ids))
    system.add_constraint(horizontal(line_ref(1, 0), ids=ids))
    system.add_constraint(vertical(line_ref(1, 1), ids=ids))
    system.add_constraint(horizontal(line_ref(1, 2), ids=ids))
    system.add_constraint(vertical(line_ref(1, 3), ids=ids))
    return [quad], system


def under_constrained() -> Scenario:
    """A single horizontal line, free to slide and stretch."""

    ids = ConstraintIdAllocator()
    line = LineEntity(1, (0.0, 0.0), (10.0, 1.0))
    system = ConstraintSystem()
    system.add_constraint(horizontal(line_ref(1), ids=ids))
    return [line], system


SCENARIOS: Dict[str, Callable[[], Scenario]] = {
    "fixed-chain": fixed_chain,
    "contradiction": contradiction,
    "tangent": tangent_circle,
    "rectangle": rectangle,
    "under": under_constrained,
}


def format_entity(entity: object) -> str:
    if isinstance(entity, LineEntity):
        (sx, sy), (ex, ey) = entity.start, entity.end
        return f"line {entity.id}: ({sx:.6f}, {sy:.6f}) -> ({ex:.6f}, {ey:.6f})"
    if isinstance(entity, CircleEntity):
        cx, cy = entity.center
        return f"circle {entity.id}: center ({cx:.6f}, {cy:.6f}) radius {entity.radius:.6f}"
    if isinstance(entity, PolylineEntity):
        pts = ", ".join(f"({x:.6f}, {y:.6f})" for x, y in entity.points)
        tag = "closed polyline" if entity.closed else "polyline"
        return f"{tag} {entity.id}: {pts}"
    return repr(entity)


def run():
    entities, system = fixed_chain()
    print("Constraints:")
    for constraint in system:
        print(f"  {constraint.describe()}")
    result = solve_sketch(entities, system)
    print(f"Status: {result.status.value} ({result.message})")
    print(f"Iterations: {result.iterations}, residual {result.residual_norm:.3e}")
    for entity in entities:
        print(f"  {format_entity(entity)}")
    second = entities[1]
    print(f"Second line now starts {math.dist(second.start, entities[0].end):.2e} from the first one's end")


if __name__ == "__main__":
    run()
