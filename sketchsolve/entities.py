"""Minimal mutable sketch entities understood by the solver."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Tuple, Union

Point2D = Tuple[float, float]


@dataclass
class LineEntity:
    id: int
    start: Point2D
    end: Point2D

    @property
    def length(self) -> float:
        dx = self.end[0] - self.start[0]
        dy = self.end[1] - self.start[1]
        return (dx * dx + dy * dy) ** 0.5


@dataclass
class CircleEntity:
    id: int
    center: Point2D
    radius: float


@dataclass
class ArcEntity:
    """Circular arc; center and radius are solved, the angles stay as drawn."""

    id: int
    center: Point2D
    radius: float
    start_angle: float = 0.0
    end_angle: float = 0.0


@dataclass
class PolylineEntity:
    id: int
    points: List[Point2D] = field(default_factory=list)
    closed: bool = False


SketchEntity = Union[LineEntity, CircleEntity, ArcEntity, PolylineEntity]


__all__ = [
    "ArcEntity",
    "CircleEntity",
    "LineEntity",
    "Point2D",
    "PolylineEntity",
    "SketchEntity",
]
