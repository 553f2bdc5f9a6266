"""Example: solve the same sketch natively and with SolveSpace."""

from sketchsolve import solve_sketch
from sketchsolve.cad import AdapterOK, SlvsAdapter, max_deviation
from sketchsolve.demo import fixed_chain


def main() -> None:
    entities, system = fixed_chain()
    reference = SlvsAdapter().solve(entities, system)

    result = solve_sketch(entities, system)
    print("Native:", result.status.value, f"residual={result.residual_norm:.3e}")
    if isinstance(reference, AdapterOK):
        print("SolveSpace dof:", reference.dof)
        print(f"Max deviation: {max_deviation(reference.coords, entities):.3e}")
    else:
        print("SolveSpace failed:", reference.failures)


if __name__ == "__main__":
    main()
