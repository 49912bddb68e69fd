"""Shared 2-D geometry helpers for polylines."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class Point:
    """A 2-D point (or displacement) in diagram pixels."""

    x: float
    y: float

    def __add__(self, other: Point) -> Point:
        return Point(self.x + other.x, self.y + other.y)

    def __sub__(self, other: Point) -> Point:
        return Point(self.x - other.x, self.y - other.y)

    @property
    def is_zero(self) -> bool:
        return self.x == 0 and self.y == 0


ORIGIN = Point(0, 0)


class Orientation(Enum):
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"

    @property
    def other(self) -> Orientation:
        return Orientation.VERTICAL if self is Orientation.HORIZONTAL else Orientation.HORIZONTAL


def segment_orientations(points: list[Point]) -> list[Orientation]:
    """Classify every segment of a polyline as horizontal or vertical.

    A segment is horizontal when |dx| > |dy| and vertical when |dy| > |dx|.
    Ties (including zero-length segments) take the orientation opposite to
    the previous segment so that orientations keep alternating; a tie on the
    first segment counts as horizontal.
    """
    result: list[Orientation] = []
    for a, b in zip(points, points[1:]):
        dx = abs(b.x - a.x)
        dy = abs(b.y - a.y)
        if dx > dy:
            result.append(Orientation.HORIZONTAL)
        elif dy > dx:
            result.append(Orientation.VERTICAL)
        elif result:
            result.append(result[-1].other)
        else:
            result.append(Orientation.HORIZONTAL)
    return result


def dedupe(points: list[Point]) -> list[Point]:
    """Merge consecutive duplicate points, keeping at least two points."""
    result: list[Point] = []
    for p in points:
        if not result or result[-1] != p:
            result.append(p)
    if len(result) == 1 and len(points) >= 2:
        result.append(result[0])
    return result


def simplify(points: list[Point]) -> list[Point]:
    """Drop duplicate points and interior points lying on a straight run."""
    pts = dedupe(points)
    if len(pts) < 3:
        return pts
    result: list[Point] = [pts[0]]
    for i in range(1, len(pts) - 1):
        prev, cur, nxt = result[-1], pts[i], pts[i + 1]
        same_x = prev.x == cur.x == nxt.x
        same_y = prev.y == cur.y == nxt.y
        if not (same_x or same_y):
            result.append(cur)
    result.append(pts[-1])
    return result


def is_orthogonal(points: list[Point]) -> bool:
    """True when every segment of the polyline is axis-aligned."""
    return all(a.x == b.x or a.y == b.y for a, b in zip(points, points[1:]))


def axis_midpoint(a: Point, b: Point) -> Point:
    """Midpoint of an axis-aligned segment."""
    return Point((a.x + b.x) / 2, (a.y + b.y) / 2)
