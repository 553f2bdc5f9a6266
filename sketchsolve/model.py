"""Solver option and result records."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


@dataclass
class SolverOptions:
    """Damped Gauss-Newton settings.

    ``tolerance`` applies to the Euclidean norm of the residual vector and
    ``damping`` is the Levenberg-Marquardt lambda added to the diagonal of
    ``JᵀJ``.  ``rank_tolerance`` is the relative threshold on the pivoted-QR
    diagonal used for rank decisions; ``None`` means ``min(m, n) * eps``.
    """

    max_iterations: int = 100
    tolerance: float = 1e-10
    damping: float = 1.0
    rank_tolerance: Optional[float] = None

    def validate(self) -> None:
        if self.max_iterations < 0:
            raise ValueError(f"max_iterations must be >= 0, got {self.max_iterations}")
        if not (self.tolerance > 0.0 and math.isfinite(self.tolerance)):
            raise ValueError(f"tolerance must be a positive finite number, got {self.tolerance}")
        if not (self.damping >= 0.0 and math.isfinite(self.damping)):
            raise ValueError(f"damping must be a non-negative finite number, got {self.damping}")
        if self.rank_tolerance is not None and not self.rank_tolerance > 0.0:
            raise ValueError(f"rank_tolerance must be positive, got {self.rank_tolerance}")


class SolveStatus(Enum):
    SUCCESS = "success"
    UNDER_CONSTRAINED = "under-constrained"
    OVER_CONSTRAINED = "over-constrained"
    INCONSISTENT = "inconsistent"
    FAILED_TO_CONVERGE = "failed-to-converge"
    NO_CONSTRAINTS = "no-constraints"

    @property
    def is_solved(self) -> bool:
        """Whether the solved geometry should be committed."""

        return self in (SolveStatus.SUCCESS, SolveStatus.UNDER_CONSTRAINED)


@dataclass
class SolveResult:
    status: SolveStatus = SolveStatus.FAILED_TO_CONVERGE
    iterations: int = 0
    residual_norm: float = 0.0
    degrees_of_freedom: int = 0
    message: str = ""
    residual_breakdown: List[Dict[str, object]] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status.is_solved


__all__ = ["SolveResult", "SolveStatus", "SolverOptions"]
