"""Process-wide default solver configuration."""

from __future__ import annotations

import copy

from .model import SolverOptions

_DEFAULT_SOLVER_OPTIONS = SolverOptions()


def get_default_solver_options() -> SolverOptions:
    return copy.deepcopy(_DEFAULT_SOLVER_OPTIONS)


def set_default_solver_options(options: SolverOptions) -> None:
    global _DEFAULT_SOLVER_OPTIONS
    options.validate()
    _DEFAULT_SOLVER_OPTIONS = copy.deepcopy(options)


def reset_default_solver_options() -> None:
    global _DEFAULT_SOLVER_OPTIONS
    _DEFAULT_SOLVER_OPTIONS = SolverOptions()
