"""Diagram session: the entry point used by a rendering front-end.

A session owns the base layout of one schema and the displacement map of the
tables the user dragged. Relayout replaces the base layout and forgets every
displacement; dragging only ever changes the displacement map.
"""

from __future__ import annotations

import logging

from erd_layout.config import LayoutOptions
from erd_layout.errors import LayoutError
from erd_layout.extract import compute_layout
from erd_layout.geometry import Point
from erd_layout.offsets import DisplacementMap, apply_displacements
from erd_layout.schema import Schema
from erd_layout.solver import LayeredSolver, LayoutSolver
from erd_layout.types import Direction, LayoutResult

logger = logging.getLogger(__name__)


class DiagramSession:
    """Base layout plus drag state for one diagram.

    Example::

        session = DiagramSession(schema)
        await session.relayout()
        session.drag_start("public.users")
        session.drag_move("public.users", 40, 0)
        session.drag_end("public.users")
        frame = session.rendered()
    """

    def __init__(
        self,
        schema: Schema | None = None,
        direction: Direction = Direction.LR,
        solver: LayoutSolver | None = None,
        options: LayoutOptions | None = None,
    ) -> None:
        self.schema = schema or Schema()
        self.direction = direction
        self.solver = solver or LayeredSolver()
        self.options = options
        self.layout = LayoutResult(direction=direction)
        self.displacements = DisplacementMap()
        # node id → displacement when the current gesture started
        self._drags: dict[str, Point] = {}

    async def relayout(self, schema: Schema | None = None, direction: Direction | None = None) -> LayoutResult:
        """Recompute the base layout and clear all displacements.

        On failure the previous layout, schema, direction and displacements
        are all kept and the ``LayoutError`` is re-raised.
        """
        schema = schema if schema is not None else self.schema
        direction = direction if direction is not None else self.direction
        try:
            layout = await compute_layout(schema, direction, self.solver, self.options)
        except LayoutError as exc:
            logger.warning(f"Relayout failed, keeping previous layout: {exc}")
            raise

        self.schema = schema
        self.direction = direction
        self.layout = layout
        self.displacements = self.displacements.cleared()
        self._drags.clear()
        return layout

    def _require_node(self, node_id: str) -> None:
        if self.layout.node(node_id) is None:
            raise KeyError(node_id)

    def drag_start(self, node_id: str) -> None:
        """Begin a gesture; later moves add onto the node's current displacement."""
        self._require_node(node_id)
        self._drags[node_id] = self.displacements.offset(node_id)

    def drag_move(self, node_id: str, dx: float, dy: float) -> DisplacementMap:
        """Update a dragged node; (dx, dy) is the pointer travel since drag_start."""
        if node_id not in self._drags:
            self.drag_start(node_id)
        self.displacements = self.displacements.with_offset(node_id, self._drags[node_id] + Point(dx, dy))
        return self.displacements

    def drag_end(self, node_id: str) -> None:
        self._drags.pop(node_id, None)

    def reset_node(self, node_id: str) -> None:
        """Drop a node's displacement, snapping it back to its base position."""
        self._drags.pop(node_id, None)
        self.displacements = self.displacements.without(node_id)

    def rendered(self) -> LayoutResult:
        """The base layout with the current displacements applied."""
        return apply_displacements(self.layout, self.displacements)
