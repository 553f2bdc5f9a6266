"""Damped Gauss-Newton solver over a :class:`ConstraintSystem`."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

import numpy as np
from scipy import linalg

from .config import get_default_solver_options
from .logging_utils import apply_debug_logging
from .model import SolveResult, SolveStatus, SolverOptions
from .params import ParameterTable
from .system import ConstraintSystem

logger = logging.getLogger(__name__)

_INCONSISTENT_FACTOR = 100.0


class SketchSolver:
    """Drives the parameter vector towards a zero residual.

    Every call to :meth:`solve` is a fresh run seeded from the current
    contents of the parameter table; nothing is cached between calls.
    """

    def __init__(self, options: Optional[SolverOptions] = None) -> None:
        self.options = options if options is not None else get_default_solver_options()
        self.options.validate()

    # ------------------------------------------------------------------
    # Assembly

    def build_residuals(self, params: ParameterTable, system: ConstraintSystem) -> np.ndarray:
        residuals = np.zeros(system.total_equations(), dtype=float)
        for constraint, row in zip(system, system.row_offsets()):
            constraint.evaluate(params, residuals, row)
        return residuals

    def build_jacobian(self, params: ParameterTable, system: ConstraintSystem) -> np.ndarray:
        jac = np.zeros((system.total_equations(), params.parameter_count), dtype=float)
        for constraint, row in zip(system, system.row_offsets()):
            constraint.jacobian(params, jac, row)
        return jac

    def numerical_rank(self, jac: np.ndarray) -> int:
        """Rank from a column-pivoted QR of ``jac``.

        A diagonal entry of R counts when it exceeds ``threshold * |R_00|``;
        the default threshold is ``min(m, n) * eps``.
        """

        m, n = jac.shape
        if m == 0 or n == 0:
            return 0
        if not np.all(np.isfinite(jac)):
            logger.warning("Jacobian has non-finite entries; treating rank as 0")
            return 0
        r, _ = linalg.qr(jac, mode="r", pivoting=True)
        diag = np.abs(np.diag(r))
        if diag.size == 0 or diag[0] == 0.0:
            return 0
        threshold = self.options.rank_tolerance
        if threshold is None:
            threshold = min(m, n) * np.finfo(float).eps
        return int(np.count_nonzero(diag > threshold * diag[0]))

    def residual_breakdown(
        self, params: ParameterTable, system: ConstraintSystem
    ) -> List[Dict[str, object]]:
        breakdown: List[Dict[str, object]] = []
        for constraint in system:
            values = constraint.residuals(params)
            breakdown.append(
                {
                    "id": constraint.id,
                    "kind": constraint.type_name,
                    "values": values.tolist(),
                    "max_abs": float(np.max(np.abs(values))) if values.size else 0.0,
                }
            )
        return breakdown

    # ------------------------------------------------------------------
    # Solve

    def _step(self, jac: np.ndarray, residuals: np.ndarray) -> np.ndarray:
        jtj = jac.T @ jac
        jtf = jac.T @ residuals
        if self.options.damping > 0.0:
            jtj[np.diag_indices_from(jtj)] += self.options.damping
        if not (np.all(np.isfinite(jtj)) and np.all(np.isfinite(jtf))):
            return np.full(jtf.shape, np.nan)
        delta, _, _, _ = linalg.lstsq(jtj, -jtf)
        return delta

    def solve(self, params: ParameterTable, system: ConstraintSystem) -> SolveResult:
        opts = self.options
        m = system.total_equations()
        n = params.parameter_count

        if m == 0 or system.empty():
            logger.info("Nothing to solve: no constraints")
            return SolveResult(status=SolveStatus.NO_CONSTRAINTS, message="No constraints to solve")
        if n == 0:
            logger.info("Nothing to solve for: %d equation(s) but no parameters", m)
            return SolveResult(
                status=SolveStatus.OVER_CONSTRAINED,
                message="No parameters but constraints exist",
            )

        logger.info(
            "Solving %d constraint(s): %d equation(s), %d parameter(s)", len(system), m, n
        )
        result = SolveResult()
        stopped_on: Optional[str] = None

        for iteration in range(opts.max_iterations):
            residuals = self.build_residuals(params, system)
            norm = float(np.linalg.norm(residuals))
            result.residual_norm = norm
            result.iterations = iteration + 1
            logger.debug("iteration=%d residual_norm=%.6g", result.iterations, norm)
            if not np.isfinite(norm):
                stopped_on = "non-finite residual"
                logger.warning("Stopping at iteration %d: %s", result.iterations, stopped_on)
                break

            if norm < opts.tolerance:
                rank = self.numerical_rank(self.build_jacobian(params, system))
                result.degrees_of_freedom = n - rank
                if result.degrees_of_freedom > 0:
                    result.status = SolveStatus.UNDER_CONSTRAINED
                    result.message = (
                        f"Solved but {result.degrees_of_freedom} degrees of freedom remain"
                    )
                else:
                    result.status = SolveStatus.SUCCESS
                    result.message = "All constraints satisfied"
                result.residual_breakdown = self.residual_breakdown(params, system)
                logger.info(
                    "Converged in %d iteration(s): %s", result.iterations, result.message
                )
                return result

            delta = self._step(self.build_jacobian(params, system), residuals)
            if not np.all(np.isfinite(delta)):
                stopped_on = "non-finite parameter update"
                logger.warning("Stopping at iteration %d: %s", result.iterations, stopped_on)
                break
            params.values += delta

        final = self.build_residuals(params, system)
        result.residual_norm = float(np.linalg.norm(final))
        rank = self.numerical_rank(self.build_jacobian(params, system))
        result.degrees_of_freedom = n - rank

        if stopped_on is not None:
            result.status = SolveStatus.FAILED_TO_CONVERGE
            result.message = f"Stopped after {result.iterations} iterations: {stopped_on}"
        elif m > rank:
            result.status = SolveStatus.OVER_CONSTRAINED
            result.message = f"Over-constrained: {m} equations, rank {rank}"
        elif result.residual_norm > opts.tolerance * _INCONSISTENT_FACTOR:
            result.status = SolveStatus.INCONSISTENT
            result.message = f"Inconsistent constraints (residual = {result.residual_norm:f})"
        else:
            result.status = SolveStatus.FAILED_TO_CONVERGE
            result.message = (
                f"Failed to converge after {result.iterations} iterations "
                f"(residual = {result.residual_norm:f})"
            )
        result.residual_breakdown = self.residual_breakdown(params, system)
        logger.info(
            "Stopped after %d iteration(s) with status %s: %s",
            result.iterations,
            result.status.value,
            result.message,
        )
        return result


apply_debug_logging(globals(), logger=logger)


__all__ = ["SketchSolver"]
