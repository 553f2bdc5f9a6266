"""Flat parameter vector backing a solve, and its entity slot layout."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Tuple

import numpy as np

from .entities import ArcEntity, CircleEntity, LineEntity, PolylineEntity
from .refs import FeatureType, GeometryRef, Point2D

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .system import ConstraintSystem

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EntitySlots:
    """Where one registered entity lives in the parameter vector."""

    entity_id: int
    start: int
    length: int
    kind: str  # "line", "circle", "arc" or "polyline"
    # start and end angles of an arc; held constant while solving
    arc_angles: Optional[Tuple[float, float]] = None


def _entity_values(entity: object) -> Optional[Tuple[str, List[float]]]:
    if isinstance(entity, LineEntity):
        (sx, sy), (ex, ey) = entity.start, entity.end
        return "line", [sx, sy, ex, ey]
    if isinstance(entity, ArcEntity):
        cx, cy = entity.center
        return "arc", [cx, cy, entity.radius]
    if isinstance(entity, CircleEntity):
        cx, cy = entity.center
        return "circle", [cx, cy, entity.radius]
    if isinstance(entity, PolylineEntity):
        flat: List[float] = []
        for x, y in entity.points:
            flat.extend((x, y))
        return "polyline", flat
    return None


class ParameterTable:
    """Maps sketch entities onto one vector of scalar unknowns.

    Layout per entity kind: a line takes ``[sx, sy, ex, ey]``, a circle or arc
    takes ``[cx, cy, r]`` and a polyline takes two slots per vertex.  Arc
    start/end points are derived from the center, radius and the arc's
    drawn angles, which stay constant.  The accessors do no validation:
    every reference must name an entity that was registered beforehand.
    """

    def __init__(self) -> None:
        self.values: np.ndarray = np.zeros(0, dtype=float)
        self._slots: Dict[int, EntitySlots] = {}

    @property
    def parameter_count(self) -> int:
        return int(self.values.size)

    def __len__(self) -> int:
        return self.parameter_count

    # ------------------------------------------------------------------
    # Registration

    def register_entity(self, entity: object) -> int:
        """Append ``entity``'s slots and return their start index.

        Unsupported entity kinds are skipped and yield ``-1``.
        """

        entity_id = getattr(entity, "id", None)
        if entity_id is not None and entity_id in self._slots:
            return self._slots[entity_id].start

        extracted = _entity_values(entity)
        if extracted is None:
            logger.debug("Skipping unsupported entity %r", type(entity).__name__)
            return -1
        kind, values = extracted
        arc_angles = None
        if kind == "arc":
            arc_angles = (float(entity.start_angle), float(entity.end_angle))
        start = self.parameter_count
        self.values = np.concatenate([self.values, np.asarray(values, dtype=float)])
        self._slots[int(entity_id)] = EntitySlots(
            int(entity_id), start, len(values), kind, arc_angles
        )
        return start

    @classmethod
    def build_from_entities(
        cls, entities: Iterable[object], system: "ConstraintSystem"
    ) -> "ParameterTable":
        """Register only the entities some constraint in ``system`` references."""

        needed = set(system.referenced_entity_ids())
        table = cls()
        skipped = 0
        for entity in entities:
            if getattr(entity, "id", None) in needed:
                table.register_entity(entity)
            else:
                skipped += 1
        logger.info(
            "Built parameter table: %d entit%s, %d parameter(s), %d unconstrained skipped",
            len(table._slots),
            "y" if len(table._slots) == 1 else "ies",
            table.parameter_count,
            skipped,
        )
        return table

    def has_entity(self, entity_id: int) -> bool:
        return entity_id in self._slots

    def entity_ids(self) -> List[int]:
        return list(self._slots)

    def entity_slots(self, entity_id: int) -> Optional[EntitySlots]:
        return self._slots.get(entity_id)

    # ------------------------------------------------------------------
    # Index resolution

    def parameter_index(self, ref: GeometryRef) -> int:
        slots = self._slots[ref.entity_id]
        if ref.feature_type is FeatureType.CIRCLE:
            return slots.start
        if slots.kind in ("circle", "arc"):
            # center; arc endpoints are derived from it, see point_partials
            return slots.start
        if slots.kind == "line" and ref.feature_type is FeatureType.LINE:
            return slots.start
        return slots.start + 2 * ref.feature_index

    def line_indices(self, ref: GeometryRef) -> Tuple[int, int]:
        """Slot indices of the start and end coordinate pairs of a line feature."""

        slots = self._slots[ref.entity_id]
        if slots.kind == "polyline":
            count = slots.length // 2
            i = ref.feature_index
            return slots.start + 2 * i, slots.start + 2 * ((i + 1) % count)
        return slots.start, slots.start + 2

    # ------------------------------------------------------------------
    # Typed reads

    def _arc_angle(self, ref: GeometryRef) -> Optional[float]:
        slots = self._slots[ref.entity_id]
        if (
            slots.kind == "arc"
            and ref.feature_type is FeatureType.POINT
            and ref.feature_index in (1, 2)
        ):
            return slots.arc_angles[ref.feature_index - 1]
        return None

    def point_position(self, ref: GeometryRef) -> Point2D:
        idx = self.parameter_index(ref)
        x, y = float(self.values[idx]), float(self.values[idx + 1])
        theta = self._arc_angle(ref)
        if theta is None:
            return x, y
        radius = float(self.values[idx + 2])
        return x + radius * math.cos(theta), y + radius * math.sin(theta)

    def point_partials(self, ref: GeometryRef) -> List[Tuple[int, float, float]]:
        """Columns a point feature depends on, as ``(column, dx/dp, dy/dp)``.

        A plain point moves with its own two slots.  An arc's start or end
        point sits at ``center + r * (cos a, sin a)`` and so also moves with
        the radius slot.
        """

        idx = self.parameter_index(ref)
        partials = [(idx, 1.0, 0.0), (idx + 1, 0.0, 1.0)]
        theta = self._arc_angle(ref)
        if theta is not None:
            partials.append((idx + 2, math.cos(theta), math.sin(theta)))
        return partials

    def line_endpoints(self, ref: GeometryRef) -> Tuple[Point2D, Point2D]:
        i_start, i_end = self.line_indices(ref)
        v = self.values
        return (
            (float(v[i_start]), float(v[i_start + 1])),
            (float(v[i_end]), float(v[i_end + 1])),
        )

    def circle_data(self, ref: GeometryRef) -> Tuple[Point2D, float]:
        base = self._slots[ref.entity_id].start
        v = self.values
        return (float(v[base]), float(v[base + 1])), float(v[base + 2])

    # ------------------------------------------------------------------
    # Write-back

    def apply_to_entities(self, entities: Iterable[object]) -> int:
        """Copy solved values into the registered entities; return how many were updated."""

        updated = 0
        v = self.values
        for entity in entities:
            slots = self._slots.get(getattr(entity, "id", None))
            if slots is None:
                continue
            base = slots.start
            if isinstance(entity, LineEntity):
                entity.start = (float(v[base]), float(v[base + 1]))
                entity.end = (float(v[base + 2]), float(v[base + 3]))
            elif isinstance(entity, (CircleEntity, ArcEntity)):
                entity.center = (float(v[base]), float(v[base + 1]))
                entity.radius = float(v[base + 2])
            elif isinstance(entity, PolylineEntity):
                entity.points = [
                    (float(v[base + 2 * i]), float(v[base + 2 * i + 1]))
                    for i in range(slots.length // 2)
                ]
            else:
                continue
            updated += 1
        logger.debug("Applied parameters to %d entit%s", updated, "y" if updated == 1 else "ies")
        return updated

    def copy(self) -> "ParameterTable":
        clone = ParameterTable()
        clone.values = self.values.copy()
        clone._slots = dict(self._slots)
        return clone


__all__ = ["EntitySlots", "ParameterTable"]
