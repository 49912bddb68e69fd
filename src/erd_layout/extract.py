"""Layout invocation and extraction.

``compute_layout`` builds the solver graph, awaits the solver once and
flattens its nested result into one global coordinate space.
"""

from __future__ import annotations

import logging

from erd_layout.config import LayoutOptions
from erd_layout.errors import LayoutError
from erd_layout.geometry import Point, simplify
from erd_layout.graph import GroupNode, LayoutGraph, TableNode, build_graph
from erd_layout.schema import Schema
from erd_layout.solver import (
    LayeredSolver,
    LayoutSolver,
    PositionedGroup,
    PositionedTable,
    RoutedEdge,
    SolverResult,
)
from erd_layout.types import (
    Direction,
    LayoutEdge,
    LayoutGroup,
    LayoutNode,
    LayoutPort,
    LayoutResult,
)

logger = logging.getLogger(__name__)


async def compute_layout(
    schema: Schema,
    direction: Direction = Direction.LR,
    solver: LayoutSolver | None = None,
    options: LayoutOptions | None = None,
) -> LayoutResult:
    """Lay out ``schema`` with a single solver call.

    Raises:
        LayoutError: the solver failed or returned a result that does not
            match the submitted graph.
    """
    graph = build_graph(schema, direction, options)
    solver = solver or LayeredSolver()
    try:
        result = await solver.layout(graph)
    except LayoutError:
        raise
    except Exception as exc:
        raise LayoutError(f"Layout solver failed: {exc}") from exc

    layout = extract_layout(graph, result)
    logger.info(
        f"Computed {direction.value} layout: {len(layout.nodes)} tables, {len(layout.edges)} edges, "
        f"{len(layout.groups)} groups ({layout.width:.0f}x{layout.height:.0f})"
    )
    return layout


def edge_polyline(edge: RoutedEdge) -> list[Point]:
    """Concatenate start, bend and end points of every section of ``edge``.

    Interior points on a straight run are dropped, so consecutive segments
    always alternate between horizontal and vertical.
    """
    points: list[Point] = []
    for section in edge.sections:
        points.append(section.start)
        points.extend(section.bend_points)
        points.append(section.end)
    return simplify(points)


def extract_layout(graph: LayoutGraph, result: SolverResult) -> LayoutResult:
    """Flatten a solver result into global nodes, groups, ports and edges.

    Raises:
        LayoutError: the result names a node the graph does not contain, or
            its edges do not pair up with the submitted ones.
    """
    tables = {node.id: node for node, _ in graph.table_nodes()}
    groups = {child.id: child for child in graph.children if isinstance(child, GroupNode)}

    def table_for(node_id: str) -> TableNode:
        if node_id not in tables:
            raise LayoutError(f"Solver returned unknown table {node_id!r}")
        return tables[node_id]

    nodes: list[LayoutNode] = []
    layout_groups: list[LayoutGroup] = []
    for child in result.children:
        if isinstance(child, PositionedGroup):
            group_node = groups.get(child.id)
            if group_node is None:
                raise LayoutError(f"Solver returned unknown group {child.id!r}")
            layout_groups.append(
                LayoutGroup(
                    id=child.id,
                    group=group_node.group,
                    x=child.x,
                    y=child.y,
                    width=child.width,
                    height=child.height,
                )
            )
            for member in child.children:
                nodes.append(
                    LayoutNode(
                        id=member.id,
                        table=table_for(member.id).table,
                        x=child.x + member.x,
                        y=child.y + member.y,
                        width=member.width,
                        height=member.height,
                        group=group_node.group.name,
                    )
                )
        elif isinstance(child, PositionedTable):
            nodes.append(
                LayoutNode(
                    id=child.id,
                    table=table_for(child.id).table,
                    x=child.x,
                    y=child.y,
                    width=child.width,
                    height=child.height,
                )
            )
        else:
            raise LayoutError(f"Unexpected solver node {child!r}")

    if len(result.edges) != len(graph.edges):
        raise LayoutError(f"Solver returned {len(result.edges)} edges for {len(graph.edges)} submitted")

    edges: list[LayoutEdge] = []
    for submitted, routed, reference in zip(graph.edges, result.edges, graph.references):
        points = edge_polyline(routed)
        if len(points) < 2:
            raise LayoutError(f"Solver returned no route for edge {submitted.id}")
        edges.append(
            LayoutEdge(
                id=submitted.id,
                reference=reference,
                source_id=submitted.source_node,
                target_id=submitted.target_node,
                points=points,
            )
        )

    return LayoutResult(
        direction=graph.direction,
        nodes=nodes,
        edges=edges,
        groups=layout_groups,
        ports=layout_ports(graph, nodes),
        width=result.width,
        height=result.height,
    )


def layout_ports(graph: LayoutGraph, nodes: list[LayoutNode]) -> list[LayoutPort]:
    """Absolute port anchors for every positioned table."""
    tables = {node.id: node for node, _ in graph.table_nodes()}
    ports: list[LayoutPort] = []
    for node in nodes:
        for port in tables[node.id].ports:
            ports.append(
                LayoutPort(
                    node_id=node.id,
                    column=port.column,
                    role=port.role,
                    side=port.side,
                    x=node.x + port.x,
                    y=node.y + port.y,
                )
            )
    return ports
