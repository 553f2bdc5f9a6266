"""Ordered collection of the constraints active in one sketch."""

from __future__ import annotations

import logging
from typing import Dict, Iterator, List, Optional, Tuple

from .constraints import Constraint, ConstraintError
from .logging_utils import apply_debug_logging

logger = logging.getLogger(__name__)


class ConstraintSystem:
    """Owns the constraints of a sketch.

    Insertion order fixes the row order of the assembled residual vector and
    Jacobian; it has no other meaning.  Removal hands the removed constraint
    objects back so the caller can re-add them later.
    """

    def __init__(self) -> None:
        self._constraints: Dict[int, Constraint] = {}

    def __len__(self) -> int:
        return len(self._constraints)

    def __iter__(self) -> Iterator[Constraint]:
        return iter(list(self._constraints.values()))

    def __contains__(self, constraint_id: object) -> bool:
        return constraint_id in self._constraints

    @property
    def constraints(self) -> Tuple[Constraint, ...]:
        return tuple(self._constraints.values())

    def add_constraint(self, constraint: Constraint) -> int:
        if constraint.id in self._constraints:
            raise ConstraintError(f"duplicate constraint id {constraint.id}")
        self._constraints[constraint.id] = constraint
        logger.debug("Added %s", constraint.describe())
        return constraint.id

    def remove_constraint(self, constraint_id: int) -> Optional[Constraint]:
        return self._constraints.pop(constraint_id, None)

    def get_constraint(self, constraint_id: int) -> Optional[Constraint]:
        return self._constraints.get(constraint_id)

    def constraints_for_entity(self, entity_id: int) -> List[Constraint]:
        return [c for c in self._constraints.values() if c.references_entity(entity_id)]

    def remove_constraints_for_entity(self, entity_id: int) -> List[Constraint]:
        removed = self.constraints_for_entity(entity_id)
        for constraint in removed:
            del self._constraints[constraint.id]
        if removed:
            logger.info(
                "Removed %d constraint(s) referencing entity %d", len(removed), entity_id
            )
        return removed

    def total_equations(self) -> int:
        return sum(c.equation_count for c in self._constraints.values())

    def row_offsets(self) -> List[int]:
        """First residual row of each constraint, in iteration order."""

        offsets: List[int] = []
        row = 0
        for constraint in self._constraints.values():
            offsets.append(row)
            row += constraint.equation_count
        return offsets

    def referenced_entity_ids(self) -> List[int]:
        seen: List[int] = []
        known = set()
        for constraint in self._constraints.values():
            for entity_id in constraint.referenced_entity_ids():
                if entity_id not in known:
                    known.add(entity_id)
                    seen.append(entity_id)
        return seen

    def empty(self) -> bool:
        return not self._constraints

    def clear(self) -> None:
        self._constraints.clear()


apply_debug_logging(globals(), logger=logger)


__all__ = ["ConstraintSystem"]
