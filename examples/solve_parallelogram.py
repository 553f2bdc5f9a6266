"""Example: pull a sketched quad into a 10 x 5 parallelogram with a 60 degree corner."""

import math

from sketchsolve import (
    ConstraintIdAllocator,
    ConstraintSystem,
    PolylineEntity,
    SolverOptions,
    angle,
    distance,
    fixed,
    horizontal,
    line_ref,
    parallel,
    point_ref,
    solve_sketch,
)


def main() -> None:
    ids = ConstraintIdAllocator()
    quad = PolylineEntity(1, [(0.0, 0.0), (9.0, 0.5), (12.0, 5.0), (2.5, 4.0)], closed=True)
    system = ConstraintSystem()
    system.add_constraint(fixed(point_ref(1, 0), (0.0, 0.0), ids=ids))
    system.add_constraint(horizontal(line_ref(1, 0), ids=ids))
    system.add_constraint(parallel(line_ref(1, 0), line_ref(1, 2), ids=ids))
    system.add_constraint(parallel(line_ref(1, 1), line_ref(1, 3), ids=ids))
    system.add_constraint(distance(point_ref(1, 0), point_ref(1, 1), 10.0, ids=ids))
    system.add_constraint(angle(line_ref(1, 0), line_ref(1, 1), math.radians(60.0), ids=ids))
    system.add_constraint(distance(point_ref(1, 1), point_ref(1, 2), 5.0, ids=ids))

    result = solve_sketch([quad], system, SolverOptions(damping=1e-3))
    print("Status:", result.status.value)
    print("Message:", result.message)
    print("Iterations:", result.iterations)
    for x, y in quad.points:
        print(f"({x:.6f}, {y:.6f})")


if __name__ == "__main__":
    main()
