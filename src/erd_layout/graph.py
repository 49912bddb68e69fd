"""Graph builder: turns a Schema into a layout-solver input graph.

The graph is a two-level forest: group containers holding table nodes, and
ungrouped table nodes as siblings of the groups. Every table node carries two
ports per column (inbound and outbound) and every edge connects an outbound
port to an inbound port. Edges always live at the root so the solver can route
them across group boundaries.
"""

from __future__ import annotations

import logging
import textwrap
from collections import Counter
from collections.abc import Iterator
from dataclasses import dataclass, field

from erd_layout.config import (
    CHAR_WIDTH,
    COLUMN_ROW_HEIGHT,
    NOTE_LINE_HEIGHT,
    TABLE_HEADER_HEIGHT,
    TABLE_MAX_WIDTH,
    TABLE_MIN_WIDTH,
    TABLE_PADDING_X,
    LayoutOptions,
)
from erd_layout.schema import Group, Reference, Schema, Table
from erd_layout.types import Direction, PortRole, PortSide

logger = logging.getLogger(__name__)

GROUP_PREFIX = "__group_"

# Side of the outbound port for each direction; inbound ports sit opposite.
_OUTWARD_SIDE: dict[Direction, PortSide] = {
    Direction.LR: PortSide.EAST,
    Direction.RL: PortSide.WEST,
    Direction.TB: PortSide.SOUTH,
    Direction.BT: PortSide.NORTH,
}

_OPPOSITE_SIDE: dict[PortSide, PortSide] = {
    PortSide.EAST: PortSide.WEST,
    PortSide.WEST: PortSide.EAST,
    PortSide.NORTH: PortSide.SOUTH,
    PortSide.SOUTH: PortSide.NORTH,
}


# ─── Graph Types ──────────────────────────────────────────────────────────────


@dataclass
class GraphPort:
    """A column attachment point; (x, y) is relative to the node's top-left."""

    id: str
    column: str
    role: PortRole
    side: PortSide
    index: int
    x: float
    y: float


@dataclass
class TableNode:
    id: str
    table: Table
    width: float
    height: float
    ports: list[GraphPort] = field(default_factory=list)


@dataclass
class GroupNode:
    """A compound container laid out with its own local options."""

    id: str
    group: Group
    children: list[TableNode]
    options: LayoutOptions


GraphChild = TableNode | GroupNode


@dataclass
class GraphEdge:
    id: str
    source_port: str
    target_port: str
    source_node: str
    target_node: str


@dataclass
class LayoutGraph:
    """Solver input. ``references[i]`` is the reference behind ``edges[i]``."""

    direction: Direction
    options: LayoutOptions
    children: list[GraphChild] = field(default_factory=list)
    edges: list[GraphEdge] = field(default_factory=list)
    references: list[Reference] = field(default_factory=list)

    def table_nodes(self) -> Iterator[tuple[TableNode, GroupNode | None]]:
        """Yield every table node together with its group (or None)."""
        for child in self.children:
            if isinstance(child, GroupNode):
                for table_node in child.children:
                    yield table_node, child
            else:
                yield child, None

    def ports(self) -> dict[str, tuple[TableNode, GraphPort]]:
        """Map port id → (owning table node, port)."""
        result: dict[str, tuple[TableNode, GraphPort]] = {}
        for table_node, _ in self.table_nodes():
            for port in table_node.ports:
                result[port.id] = (table_node, port)
        return result


# ─── Sizing ───────────────────────────────────────────────────────────────────


def estimate_table_width(table: Table) -> float:
    """Width from the longest row text, clamped to [TABLE_MIN_WIDTH, TABLE_MAX_WIDTH]."""
    max_len = len(table.name)
    for col in table.columns:
        max_len = max(max_len, col.row_length)
    width = max(TABLE_MIN_WIDTH, max_len * CHAR_WIDTH + TABLE_PADDING_X * 2)
    return min(width, TABLE_MAX_WIDTH)


def wrap_note(note: str | None, width: float) -> list[str]:
    """Wrap a table note to the character capacity of a box of ``width``."""
    if not note:
        return []
    capacity = max(1, int((width - 2 * TABLE_PADDING_X) // CHAR_WIDTH))
    lines: list[str] = []
    for paragraph in note.splitlines():
        lines.extend(textwrap.wrap(paragraph, capacity) or [""])
    return lines


def header_height(table: Table, width: float) -> float:
    """Header band height; grows by one note line for each wrapped line past the first."""
    note_lines = len(wrap_note(table.note, width))
    return TABLE_HEADER_HEIGHT + max(0, note_lines - 1) * NOTE_LINE_HEIGHT


def table_height(table: Table, width: float) -> float:
    return header_height(table, width) + len(table.columns) * COLUMN_ROW_HEIGHT


# ─── Ports ────────────────────────────────────────────────────────────────────


def port_id(table_id: str, column: str, role: PortRole) -> str:
    return f"{table_id}.{column}.{role.value}"


def port_sides(direction: Direction) -> tuple[PortSide, PortSide]:
    """(outbound side, inbound side) for a layout direction."""
    outward = _OUTWARD_SIDE[direction]
    return outward, _OPPOSITE_SIDE[outward]


def port_anchor(
    side: PortSide,
    index: int,
    column_count: int,
    width: float,
    height: float,
    header: float,
) -> tuple[float, float]:
    """Relative anchor of a column port on a given side of the table box.

    East/west ports sit at the vertical midpoint of the column's row.
    North/south ports are spread evenly along the edge by column index.
    """
    if side in (PortSide.EAST, PortSide.WEST):
        y = header + index * COLUMN_ROW_HEIGHT + COLUMN_ROW_HEIGHT / 2
        return (width if side is PortSide.EAST else 0, y)
    x = width * (index + 1) / (column_count + 1)
    return (x, height if side is PortSide.SOUTH else 0)


def make_table_node(table: Table, direction: Direction) -> TableNode:
    width = estimate_table_width(table)
    header = header_height(table, width)
    height = table_height(table, width)
    out_side, in_side = port_sides(direction)

    ports: list[GraphPort] = []
    count = len(table.columns)
    for i, col in enumerate(table.columns):
        for role, side in ((PortRole.OUT, out_side), (PortRole.IN, in_side)):
            x, y = port_anchor(side, i, count, width, height, header)
            ports.append(
                GraphPort(
                    id=port_id(table.id, col.name, role),
                    column=col.name,
                    role=role,
                    side=side,
                    index=i,
                    x=x,
                    y=y,
                )
            )
    return TableNode(id=table.id, table=table, width=width, height=height, ports=ports)


# ─── Builder ──────────────────────────────────────────────────────────────────


def _resolve_reference(schema: Schema, ref: Reference) -> tuple[Table, str, Table, str] | None:
    """Return (source table, source column, target table, target column) or None."""
    src = schema.table(ref.source.table_id)
    tgt = schema.table(ref.target.table_id)
    if src is None or tgt is None:
        return None
    src_col = ref.source.anchor_column
    tgt_col = ref.target.anchor_column
    if src_col is None or tgt_col is None:
        return None
    if src.column(src_col) is None or tgt.column(tgt_col) is None:
        return None
    return src, src_col, tgt, tgt_col


def resolve_groups(schema: Schema) -> list[tuple[Group, list[Table]]]:
    """Resolve group members to tables, dropping unknown members and empty groups.

    A table claimed by an earlier group is not added to a later one.
    """
    claimed: set[str] = set()
    seen_names: set[str] = set()
    resolved: list[tuple[Group, list[Table]]] = []
    for group in schema.groups:
        if group.name in seen_names:
            logger.debug(f"Dropping duplicate group {group.name!r}")
            continue
        members: list[Table] = []
        for member in group.members:
            table = schema.table(member.table_id)
            if table is None or table.id in claimed:
                continue
            claimed.add(table.id)
            members.append(table)
        if not members:
            logger.debug(f"Dropping group {group.name!r}: no resolvable members")
            continue
        seen_names.add(group.name)
        resolved.append((group, members))
    return resolved


def build_graph(
    schema: Schema,
    direction: Direction = Direction.LR,
    options: LayoutOptions | None = None,
) -> LayoutGraph:
    """Build the solver input graph for ``schema`` laid out in ``direction``.

    References whose endpoints do not resolve are dropped without error.
    """
    options = options or LayoutOptions()
    graph = LayoutGraph(direction=direction, options=options)
    out_side, _ = port_sides(direction)

    degree: Counter[str] = Counter()
    for ref in schema.references:
        resolved = _resolve_reference(schema, ref)
        if resolved is None:
            logger.debug(
                f"Dropping reference {ref.source.table_id} -> {ref.target.table_id}: endpoint does not resolve"
            )
            continue
        src, src_col, tgt, tgt_col = resolved
        graph.edges.append(
            GraphEdge(
                id=f"e{len(graph.edges)}",
                source_port=port_id(src.id, src_col, PortRole.OUT),
                target_port=port_id(tgt.id, tgt_col, PortRole.IN),
                source_node=src.id,
                target_node=tgt.id,
            )
        )
        graph.references.append(ref)
        degree[src.id] += 1
        degree[tgt.id] += 1

    grouped: set[str] = set()
    group_options = options.for_groups()
    for group, members in resolve_groups(schema):
        grouped.update(t.id for t in members)
        graph.children.append(
            GroupNode(
                id=f"{GROUP_PREFIX}{group.name}",
                group=group,
                children=[make_table_node(t, direction) for t in members],
                options=group_options,
            )
        )

    # Most-referenced tables first; sorted() is stable so ties keep schema order.
    ungrouped: list[Table] = []
    for table in schema.tables:
        if table.id in grouped:
            continue
        if schema.table(table.id) is not table:
            logger.debug(f"Dropping duplicate table {table.id!r}")
            continue
        ungrouped.append(table)
    ungrouped = sorted(ungrouped, key=lambda t: -degree[t.id])
    graph.children.extend(make_table_node(t, direction) for t in ungrouped)

    logger.debug(
        f"Built graph: {len(graph.children)} root children, {len(graph.edges)} edges "
        f"({len(schema.references) - len(graph.edges)} references dropped), outbound side {out_side.value}"
    )
    return graph
