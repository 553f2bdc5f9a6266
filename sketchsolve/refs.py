"""Feature references shared by constraints and the parameter table."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Tuple

from .entities import ArcEntity, CircleEntity, LineEntity, PolylineEntity, SketchEntity

Point2D = Tuple[float, float]


class GeometryRefError(ValueError):
    """Raised when a reference does not name a feature of the given entity."""


class FeatureType(Enum):
    POINT = "point"
    LINE = "line"
    CIRCLE = "circle"


@dataclass(frozen=True)
class GeometryRef:
    """Which feature on which entity.

    ``feature_index`` picks between features of the same type, e.g. the start
    (0) and end (1) point of a line or vertex ``i`` of a polyline.  An
    ``entity_id`` of zero marks an unset reference.
    """

    entity_id: int
    feature_type: FeatureType = FeatureType.POINT
    feature_index: int = 0

    @property
    def is_valid(self) -> bool:
        return self.entity_id != 0

    def __str__(self) -> str:
        return f"{self.feature_type.value}[{self.feature_index}]@{self.entity_id}"


def point_ref(entity_id: int, index: int = 0) -> GeometryRef:
    return GeometryRef(entity_id, FeatureType.POINT, index)


def line_ref(entity_id: int, index: int = 0) -> GeometryRef:
    return GeometryRef(entity_id, FeatureType.LINE, index)


def circle_ref(entity_id: int, index: int = 0) -> GeometryRef:
    return GeometryRef(entity_id, FeatureType.CIRCLE, index)


def _invalid(kind: str, ref: GeometryRef) -> GeometryRefError:
    return GeometryRefError(f"{kind}: invalid reference {ref} for entity {ref.entity_id}")


def extract_point(ref: GeometryRef, entity: SketchEntity) -> Point2D:
    """Return the world position of a point feature read from ``entity``."""

    i = ref.feature_index
    if isinstance(entity, LineEntity):
        if i == 0:
            return entity.start
        if i == 1:
            return entity.end
    elif isinstance(entity, ArcEntity):
        cx, cy = entity.center
        if i == 0:
            return entity.center
        if i in (1, 2):
            angle = entity.start_angle if i == 1 else entity.end_angle
            return (cx + entity.radius * math.cos(angle), cy + entity.radius * math.sin(angle))
    elif isinstance(entity, CircleEntity):
        if i == 0:
            return entity.center
    elif isinstance(entity, PolylineEntity):
        if 0 <= i < len(entity.points):
            return entity.points[i]
    raise _invalid("extract_point", ref)


def extract_line(ref: GeometryRef, entity: SketchEntity) -> Tuple[Point2D, Point2D]:
    """Return ``(start, end)`` of a line feature read from ``entity``."""

    i = ref.feature_index
    if isinstance(entity, LineEntity):
        if i == 0:
            return entity.start, entity.end
    elif isinstance(entity, PolylineEntity):
        pts = entity.points
        n = len(pts)
        if 0 <= i < n - 1:
            return pts[i], pts[i + 1]
        if entity.closed and n > 2 and i == n - 1:
            return pts[n - 1], pts[0]
    raise _invalid("extract_line", ref)


def extract_circle(ref: GeometryRef, entity: SketchEntity) -> Tuple[Point2D, float]:
    """Return ``(center, radius)`` of a circle feature read from ``entity``."""

    if isinstance(entity, (CircleEntity, ArcEntity)) and ref.feature_index == 0:
        return entity.center, entity.radius
    raise _invalid("extract_circle", ref)


def find_entity(entity_id: int, entities: Iterable[SketchEntity]) -> Optional[SketchEntity]:
    for entity in entities:
        if getattr(entity, "id", None) == entity_id:
            return entity
    return None


__all__ = [
    "FeatureType",
    "GeometryRef",
    "GeometryRefError",
    "Point2D",
    "circle_ref",
    "extract_circle",
    "extract_line",
    "extract_point",
    "find_entity",
    "line_ref",
    "point_ref",
]
