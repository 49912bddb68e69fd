"""Interactive offset engine.

A drag never touches the base layout. Instead, every dragged table gets an
entry in a ``DisplacementMap`` and the rendered polylines are recomputed from
the base polylines with ``adjust_polyline``, which keeps every segment
axis-aligned by sliding corners along the axis their segment already runs on.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import replace

from erd_layout.geometry import ORIGIN, Orientation, Point, axis_midpoint, segment_orientations
from erd_layout.types import LayoutResult


class DisplacementMap(Mapping[str, Point]):
    """Immutable mapping of node id → accumulated drag displacement.

    Nodes without an entry are not displaced. Zero displacements are not
    stored, so an empty map means "exactly the base layout".
    """

    def __init__(self, offsets: Mapping[str, Point] | None = None) -> None:
        self._offsets: dict[str, Point] = {k: v for k, v in (offsets or {}).items() if not v.is_zero}

    def __getitem__(self, node_id: str) -> Point:
        return self._offsets[node_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._offsets)

    def __len__(self) -> int:
        return len(self._offsets)

    def __repr__(self) -> str:
        return f"DisplacementMap({self._offsets!r})"

    def offset(self, node_id: str) -> Point:
        return self._offsets.get(node_id, ORIGIN)

    def with_offset(self, node_id: str, delta: Point) -> DisplacementMap:
        """A copy where ``node_id`` is displaced by exactly ``delta``."""
        offsets = dict(self._offsets)
        offsets[node_id] = delta
        return DisplacementMap(offsets)

    def moved(self, node_id: str, delta: Point) -> DisplacementMap:
        """A copy where ``delta`` is added to the displacement of ``node_id``."""
        return self.with_offset(node_id, self.offset(node_id) + delta)

    def without(self, node_id: str) -> DisplacementMap:
        offsets = dict(self._offsets)
        offsets.pop(node_id, None)
        return DisplacementMap(offsets)

    def cleared(self) -> DisplacementMap:
        return DisplacementMap()


def _carry(delta: Point, orientation: Orientation) -> Point:
    """The part of ``delta`` that crosses a segment: orthogonal to it."""
    if orientation is Orientation.HORIZONTAL:
        return Point(0, delta.y)
    return Point(delta.x, 0)


def adjust_polyline(points: list[Point], source_delta: Point, target_delta: Point) -> list[Point]:
    """Re-route an orthogonal polyline for displaced endpoint nodes.

    The source displacement is pushed forward from the first point and the
    target displacement backward from the last point. Crossing a segment only
    the component orthogonal to that segment is carried on, so each segment
    keeps its axis and the propagation dies out after two corners.

    A straight two-point polyline first gets a bend at its midpoint (two
    coincident points) so that moving one end sideways produces a dog-leg
    instead of a diagonal.
    """
    if source_delta.is_zero and target_delta.is_zero:
        return points
    if len(points) < 2:
        return [p + source_delta for p in points]

    if len(points) == 2:
        mid = axis_midpoint(points[0], points[1])
        points = [points[0], mid, mid, points[1]]

    orientations = segment_orientations(points)
    n = len(points)

    forward: list[Point] = [source_delta]
    for i in range(1, n):
        forward.append(_carry(forward[-1], orientations[i - 1]))

    backward: list[Point] = [target_delta]
    for i in range(n - 2, -1, -1):
        backward.append(_carry(backward[-1], orientations[i]))
    backward.reverse()

    return [p + f + b for p, f, b in zip(points, forward, backward)]


def apply_displacements(layout: LayoutResult, displacements: Mapping[str, Point]) -> LayoutResult:
    """Compose a base layout with drag displacements.

    Nodes and their ports move by their displacement, edges touching a
    displaced node are re-routed with ``adjust_polyline``. Group boxes keep
    their base geometry. ``layout`` itself is left untouched.
    """
    if all(d.is_zero for d in displacements.values()):
        return layout

    def offset(node_id: str) -> Point:
        return displacements.get(node_id, ORIGIN)

    nodes = []
    for node in layout.nodes:
        delta = offset(node.id)
        nodes.append(node if delta.is_zero else replace(node, x=node.x + delta.x, y=node.y + delta.y))

    ports = []
    for port in layout.ports:
        delta = offset(port.node_id)
        ports.append(port if delta.is_zero else replace(port, x=port.x + delta.x, y=port.y + delta.y))

    edges = [
        replace(edge, points=adjust_polyline(edge.points, offset(edge.source_id), offset(edge.target_id)))
        for edge in layout.edges
    ]
    return replace(layout, nodes=nodes, edges=edges, ports=ports)
