import argparse
import logging
import sys
from typing import Optional, Sequence

from sketchsolve import ParameterTable, SketchSolver, SolverOptions, get_default_solver_options
from sketchsolve.cad import AdapterOK, SlvsAdapter, max_deviation
from sketchsolve.demo import SCENARIOS, format_entity

logger = logging.getLogger(__name__)


def _configure_logging(level: str) -> None:
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(levelname)s:%(name)s:%(message)s",
    )


def _solver_options(args: argparse.Namespace) -> SolverOptions:
    options = get_default_solver_options()
    if args.max_iterations is not None:
        options.max_iterations = args.max_iterations
    if args.tolerance is not None:
        options.tolerance = args.tolerance
    if args.damping is not None:
        options.damping = args.damping
    return options


def _cross_check(scenario: str, solved_entities) -> None:
    # start SolveSpace from the same unsolved geometry
    entities, system = SCENARIOS[scenario]()
    result = SlvsAdapter().solve(entities, system)
    print("SolveSpace:")
    if isinstance(result, AdapterOK):
        print("  ok: True")
        print(f"  dof: {result.dof}")
        print(f"  max deviation: {max_deviation(result.coords, solved_entities):.3e}")
    else:
        print("  ok: False")
        print(f"  dof: {result.dof}")
        print(f"  failures: {result.failures}")
    if result.unsupported:
        print(f"  unsupported constraints: {result.unsupported}")


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Solve built-in 2D sketch scenarios")
    parser.add_argument("scenario", choices=sorted(SCENARIOS), help="Sketch to solve")
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--max-iterations",
        type=int,
        help="Gauss-Newton iteration cap (default: 100)",
    )
    parser.add_argument(
        "--tolerance",
        type=float,
        help="Residual norm accepted as solved (default: 1e-10)",
    )
    parser.add_argument(
        "--damping",
        type=float,
        help="Levenberg-Marquardt damping lambda (default: 1.0)",
    )
    parser.add_argument(
        "--cross-check",
        action="store_true",
        help="Also solve with SolveSpace and report the deviation",
    )
    args = parser.parse_args(argv)

    _configure_logging(args.log_level)

    try:
        options = _solver_options(args)
        solver = SketchSolver(options)
    except ValueError as exc:
        logger.error("Invalid solver options: %s", exc)
        raise SystemExit(2)

    entities, system = SCENARIOS[args.scenario]()
    logger.info("Scenario %s: %d entit(ies), %d constraint(s)", args.scenario, len(entities), len(system))

    params = ParameterTable.build_from_entities(entities, system)
    result = solver.solve(params, system)
    if result.status.is_solved:
        params.apply_to_entities(entities)

    print(f"Scenario: {args.scenario}")
    print(f"Status: {result.status.value}")
    print(f"Iterations: {result.iterations}")
    print(f"Residual norm: {result.residual_norm:.3e}")
    print(f"Degrees of freedom: {result.degrees_of_freedom}")
    print(f"Message: {result.message}")
    print("Residuals:")
    for entry in result.residual_breakdown:
        print(f"  #{entry['id']} {entry['kind']}: max |r| = {entry['max_abs']:.3e}")
    print("Geometry:")
    for entity in entities:
        print(f"  {format_entity(entity)}")

    if args.cross_check:
        _cross_check(args.scenario, entities)

    if not result.status.is_solved:
        raise SystemExit(1)


if __name__ == "__main__":
    main(sys.argv[1:])
