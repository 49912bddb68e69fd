"""Layered layout solver: Sugiyama-style layout for table diagrams.

Phases, run once per graph level (inside every group, then at the root):
  1. Cycle removal  (greedy-FAS approach)
  2. Layer assignment (rank each node)
  3. Dummy node insertion for edges spanning several layers
  4. Crossing minimization (barycenter heuristic)
  5. Coordinate assignment in the flow frame
  6. Orthogonal port-to-port edge routing (root level, global coordinates)

All geometry is computed in a "flow frame" (u runs along the layer axis in
the flow direction, v runs across it) and mapped back to x/y at the end, so
LR, RL, TB and BT share one code path.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Protocol

import networkx as nx

from erd_layout.config import LayoutOptions
from erd_layout.errors import LayoutError
from erd_layout.geometry import Point, simplify
from erd_layout.graph import GraphPort, GroupNode, LayoutGraph, TableNode
from erd_layout.types import Direction

logger = logging.getLogger(__name__)

# ─── Solver Result ────────────────────────────────────────────────────────────


@dataclass
class PositionedTable:
    """A laid-out table. Inside a group, x/y are relative to the group."""

    id: str
    x: float
    y: float
    width: float
    height: float


@dataclass
class PositionedGroup:
    """A laid-out group container with its (group-relative) tables."""

    id: str
    x: float
    y: float
    width: float
    height: float
    children: list[PositionedTable] = field(default_factory=list)


PositionedNode = PositionedTable | PositionedGroup


@dataclass
class EdgeSection:
    start: Point
    end: Point
    bend_points: list[Point] = field(default_factory=list)


@dataclass
class RoutedEdge:
    id: str
    sections: list[EdgeSection] = field(default_factory=list)


@dataclass
class SolverResult:
    """Solver output: a one- or two-level node tree and routed edges.

    ``edges`` is in the same order as the edges of the submitted graph.
    """

    children: list[PositionedNode] = field(default_factory=list)
    edges: list[RoutedEdge] = field(default_factory=list)
    width: float = 0
    height: float = 0


class LayoutSolver(Protocol):
    """Anything that can lay out a ``LayoutGraph``."""

    async def layout(self, graph: LayoutGraph) -> SolverResult: ...


# ─── Cycle Removal (Greedy-FAS) ───────────────────────────────────────────────


def greedy_fas_ordering(graph: nx.DiGraph) -> list[str]:
    """Compute a node ordering using the greedy-FAS heuristic.

    Nodes earlier in the ordering should have outgoing edges going forward.
    Candidates are scanned in node insertion order so the result is
    deterministic.

    Algorithm (Eades, Lin, Smyth 1993):
    - Repeatedly move all sinks to s2, all sources to s1, and otherwise the
      node with the largest (out - in) degree surplus to s1.
    - Final ordering: s1 + reversed(s2).
    """
    active: dict[str, None] = dict.fromkeys(graph.nodes)

    out_deg: dict[str, int] = {n: graph.out_degree(n) for n in graph.nodes}
    in_deg: dict[str, int] = {n: graph.in_degree(n) for n in graph.nodes}

    s1: list[str] = []
    s2: list[str] = []

    def remove(node: str) -> None:
        del active[node]
        for succ in graph.successors(node):
            if succ in active:
                in_deg[succ] -= 1
        for pred in graph.predecessors(node):
            if pred in active:
                out_deg[pred] -= 1

    while active:
        sinks = [n for n in active if out_deg[n] == 0]
        while sinks:
            for sink in sinks:
                remove(sink)
                s2.append(sink)
            sinks = [n for n in active if out_deg[n] == 0]

        sources = [n for n in active if in_deg[n] == 0]
        while sources:
            for source in sources:
                remove(source)
                s1.append(source)
            sources = [n for n in active if in_deg[n] == 0]

        if active:
            best = max(active, key=lambda n: out_deg[n] - in_deg[n])
            remove(best)
            s1.append(best)

    s2.reverse()
    s1.extend(s2)
    return s1


def remove_cycles(graph: nx.DiGraph) -> tuple[nx.DiGraph, set[tuple[str, str]]]:
    """Return a cycle-free copy of ``graph`` and the set of reversed edges.

    Back-edges (source after target in the greedy-FAS ordering) are reversed;
    self-loops are counted as reversed and dropped from the copy.
    """
    if graph.number_of_nodes() == 0:
        return graph.copy(), set()

    position = {node: pos for pos, node in enumerate(greedy_fas_ordering(graph))}

    reversed_edges: set[tuple[str, str]] = set()
    dag: nx.DiGraph = nx.DiGraph()
    dag.add_nodes_from(graph.nodes(data=True))
    for src, tgt in graph.edges():
        if src == tgt:
            reversed_edges.add((src, tgt))
        elif position[src] > position[tgt]:
            reversed_edges.add((src, tgt))
            dag.add_edge(tgt, src)
        else:
            dag.add_edge(src, tgt)
    return dag, reversed_edges


# ─── Layer Assignment ─────────────────────────────────────────────────────────


def assign_layers(dag: nx.DiGraph) -> dict[str, int]:
    """Longest-path layering: rank[v] = max(rank[v], rank[u] + 1) until stable."""
    layers: dict[str, int] = {node: 0 for node in dag.nodes}
    changed = True
    while changed:
        changed = False
        for src, tgt in dag.edges():
            if layers[tgt] < layers[src] + 1:
                layers[tgt] = layers[src] + 1
                changed = True
    return layers


# ─── Dummy Node Insertion ─────────────────────────────────────────────────────

DUMMY_PREFIX = "__dummy_"


@dataclass
class DummyEdge:
    """The chain of dummy nodes that replaced one long edge."""

    original_src: str
    original_tgt: str
    dummy_ids: list[str]


@dataclass
class AugmentedGraph:
    """A layered graph where every edge connects adjacent layers."""

    graph: nx.DiGraph
    layers: dict[str, int]
    layer_count: int
    dummy_edges: list[DummyEdge] = field(default_factory=list)


def insert_dummy_nodes(dag: nx.DiGraph, layers: dict[str, int]) -> AugmentedGraph:
    """Replace every edge u → v spanning more than one layer with u → d₁ → … → v."""
    g: nx.DiGraph = nx.DiGraph()
    g.add_nodes_from(dag.nodes)
    layers = copy.copy(layers)
    dummy_edges: list[DummyEdge] = []

    for src, tgt in list(dag.edges()):
        span = layers[tgt] - layers[src]
        if span <= 1:
            g.add_edge(src, tgt)
            continue

        dummy_ids: list[str] = []
        prev = src
        for i in range(span - 1):
            dummy_id = f"{DUMMY_PREFIX}{len(dummy_edges)}_{i}"
            g.add_node(dummy_id)
            layers[dummy_id] = layers[src] + i + 1
            g.add_edge(prev, dummy_id)
            dummy_ids.append(dummy_id)
            prev = dummy_id
        g.add_edge(prev, tgt)
        dummy_edges.append(DummyEdge(original_src=src, original_tgt=tgt, dummy_ids=dummy_ids))

    layer_count = (max(layers.values()) + 1) if layers else 0
    return AugmentedGraph(graph=g, layers=layers, layer_count=layer_count, dummy_edges=dummy_edges)


# ─── Crossing Minimization (Barycenter) ───────────────────────────────────────


def minimise_crossings(aug: AugmentedGraph, order_hint: list[str] | None = None) -> list[list[str]]:
    """Order the nodes of every layer to reduce edge crossings.

    The initial order inside each layer follows ``order_hint`` (unknown and
    dummy nodes go last in insertion order). Alternating top-down and
    bottom-up barycenter sweeps run until the crossing count stops improving;
    the best ordering seen is returned.
    """
    rank: dict[str, int] = {nid: i for i, nid in enumerate(order_hint or [])}
    fallback = len(rank)
    ordering: list[list[str]] = [[] for _ in range(aug.layer_count)]
    for node_id in sorted(aug.layers, key=lambda n: rank.get(n, fallback)):
        ordering[aug.layers[node_id]].append(node_id)

    best = count_crossings(ordering, aug.graph)
    best_ordering = copy.deepcopy(ordering)

    for _pass in range(24):
        if best == 0:
            break
        for layer_idx in range(1, aug.layer_count):
            prev = {nid: float(i) for i, nid in enumerate(ordering[layer_idx - 1])}
            ordering[layer_idx].sort(key=lambda a, p=prev: _barycenter(a, aug.graph, p, "incoming"))

        for layer_idx in range(aug.layer_count - 2, -1, -1):
            nxt = {nid: float(i) for i, nid in enumerate(ordering[layer_idx + 1])}
            ordering[layer_idx].sort(key=lambda a, n=nxt: _barycenter(a, aug.graph, n, "outgoing"))

        new = count_crossings(ordering, aug.graph)
        if new >= best:
            break
        best = new
        best_ordering = copy.deepcopy(ordering)

    return best_ordering


def _barycenter(
    node_id: str,
    graph: nx.DiGraph,
    neighbor_pos: dict[str, float],
    direction: str,
) -> float:
    """Average position of a node's neighbours in the adjacent layer.

    Returns float('inf') if the node has no neighbours there.
    """
    neighbors = graph.predecessors(node_id) if direction == "incoming" else graph.successors(node_id)
    positions = [neighbor_pos[nb] for nb in neighbors if nb in neighbor_pos]
    if not positions:
        return float("inf")
    return sum(positions) / len(positions)


def count_crossings(ordering: list[list[str]], graph: nx.DiGraph) -> int:
    """Count edge crossings between consecutive layers (inversion count)."""
    total = 0
    for l_idx in range(len(ordering) - 1):
        tgt_pos = {nid: i for i, nid in enumerate(ordering[l_idx + 1])}
        edges: list[tuple[int, int]] = []
        for sp, src_id in enumerate(ordering[l_idx]):
            for nb in graph.successors(src_id):
                if nb in tgt_pos:
                    edges.append((sp, tgt_pos[nb]))
        for i in range(len(edges)):
            for j in range(i + 1, len(edges)):
                ei, ej = edges[i], edges[j]
                if (ei[0] - ej[0]) * (ei[1] - ej[1]) < 0:
                    total += 1
    return total


# ─── Coordinate Assignment ────────────────────────────────────────────────────

# Cross-axis thickness reserved for a dummy node (an edge passing a layer).
DUMMY_SIZE: float = 10


@dataclass
class Box:
    """An axis-aligned box in flow-frame coordinates."""

    u: float
    v: float
    du: float
    dv: float

    @property
    def u_end(self) -> float:
        return self.u + self.du

    @property
    def v_end(self) -> float:
        return self.v + self.dv

    def shifted(self, du: float, dv: float) -> Box:
        return Box(self.u + du, self.v + dv, self.du, self.dv)


@dataclass
class LevelLayout:
    """Placement of one graph level in its own flow frame.

    Attributes:
        boxes: Real (non-dummy) node id → box.
        layers: Real node id → layer index.
        layer_start / layer_end: Extent of every layer along u.
        dummy_vs: (src, tgt) of a long DAG edge → v-centre of each dummy.
        extent_u / extent_v: Size of the laid-out content.
    """

    boxes: dict[str, Box]
    layers: dict[str, int]
    layer_start: list[float]
    layer_end: list[float]
    dummy_vs: dict[tuple[str, str], list[float]]
    extent_u: float
    extent_v: float

    def shifted(self, du: float, dv: float) -> LevelLayout:
        return LevelLayout(
            boxes={nid: box.shifted(du, dv) for nid, box in self.boxes.items()},
            layers=self.layers,
            layer_start=[u + du for u in self.layer_start],
            layer_end=[u + du for u in self.layer_end],
            dummy_vs={key: [v + dv for v in vs] for key, vs in self.dummy_vs.items()},
            extent_u=self.extent_u,
            extent_v=self.extent_v,
        )


def assign_coordinates(
    ordering: list[list[str]],
    aug: AugmentedGraph,
    sizes: dict[str, tuple[float, float]],
    options: LayoutOptions,
) -> LevelLayout:
    """Place layers along u and stack each layer's nodes along v.

    ``sizes`` maps real node id → (du, dv). Every layer is as deep as its
    deepest node and is centred on the widest layer.
    """

    def dims(node_id: str) -> tuple[float, float]:
        return sizes.get(node_id, (0.0, DUMMY_SIZE))

    layer_start: list[float] = []
    layer_end: list[float] = []
    u = 0.0
    for layer_nodes in ordering:
        depth = max((dims(nid)[0] for nid in layer_nodes), default=0.0)
        layer_start.append(u)
        layer_end.append(u + depth)
        u += depth + options.layer_spacing

    totals = [
        sum(dims(nid)[1] for nid in layer_nodes) + max(0, len(layer_nodes) - 1) * options.node_spacing
        for layer_nodes in ordering
    ]
    extent_v = max(totals, default=0.0)

    boxes: dict[str, Box] = {}
    dummy_centre: dict[str, float] = {}
    for layer_idx, layer_nodes in enumerate(ordering):
        v = (extent_v - totals[layer_idx]) / 2
        for node_id in layer_nodes:
            du, dv = dims(node_id)
            if node_id in sizes:
                boxes[node_id] = Box(layer_start[layer_idx], v, du, dv)
            else:
                dummy_centre[node_id] = v + dv / 2
            v += dv + options.node_spacing

    return LevelLayout(
        boxes=boxes,
        layers={nid: aug.layers[nid] for nid in boxes},
        layer_start=layer_start,
        layer_end=layer_end,
        dummy_vs={
            (de.original_src, de.original_tgt): [dummy_centre[d] for d in de.dummy_ids] for de in aug.dummy_edges
        },
        extent_u=layer_end[-1] if layer_end else 0.0,
        extent_v=extent_v,
    )


def layout_level(
    nodes: list[tuple[str, float, float]],
    edges: list[tuple[str, str]],
    options: LayoutOptions,
) -> LevelLayout:
    """Run phases 1–5 on one level. ``nodes`` holds (id, du, dv) in preferred order."""
    g: nx.DiGraph = nx.DiGraph()
    for node_id, _, _ in nodes:
        g.add_node(node_id)
    for src, tgt in edges:
        g.add_edge(src, tgt)

    dag, reversed_edges = remove_cycles(g)
    layers = assign_layers(dag)
    aug = insert_dummy_nodes(dag, layers)
    ordering = minimise_crossings(aug, [nid for nid, _, _ in nodes])
    logger.debug(
        f"Level: {len(nodes)} nodes, {aug.layer_count} layers, {len(reversed_edges)} reversed edges, "
        f"{len(aug.dummy_edges)} long edges"
    )
    return assign_coordinates(ordering, aug, {nid: (du, dv) for nid, du, dv in nodes}, options)


# ─── Flow Frame ───────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Frame:
    """Maps flow-frame (u, v) geometry to diagram (x, y) and back.

    ``extent`` is the total size along u; it is needed to mirror RL and BT.
    """

    direction: Direction
    extent: float

    def size(self, width: float, height: float) -> tuple[float, float]:
        """(du, dv) of a box of the given real size."""
        return (width, height) if self.direction.is_horizontal else (height, width)

    def box_to_xy(self, box: Box) -> tuple[float, float, float, float]:
        d = self.direction
        if d is Direction.LR:
            return box.u, box.v, box.du, box.dv
        if d is Direction.RL:
            return self.extent - box.u_end, box.v, box.du, box.dv
        if d is Direction.TB:
            return box.v, box.u, box.dv, box.du
        return box.v, self.extent - box.u_end, box.dv, box.du

    def box_from_xy(self, x: float, y: float, width: float, height: float) -> Box:
        d = self.direction
        if d is Direction.LR:
            return Box(x, y, width, height)
        if d is Direction.RL:
            return Box(self.extent - x - width, y, width, height)
        if d is Direction.TB:
            return Box(y, x, height, width)
        return Box(self.extent - y - height, x, height, width)

    def point_to_xy(self, u: float, v: float) -> Point:
        d = self.direction
        if d is Direction.LR:
            return Point(u, v)
        if d is Direction.RL:
            return Point(self.extent - u, v)
        if d is Direction.TB:
            return Point(v, u)
        return Point(v, self.extent - u)

    def point_from_xy(self, p: Point) -> tuple[float, float]:
        d = self.direction
        if d is Direction.LR:
            return p.x, p.y
        if d is Direction.RL:
            return self.extent - p.x, p.y
        if d is Direction.TB:
            return p.y, p.x
        return self.extent - p.y, p.x


# ─── Edge Routing (Orthogonal) ────────────────────────────────────────────────

FramePoint = tuple[float, float]


def route_through_gaps(
    start: FramePoint,
    end: FramePoint,
    channels: list[float],
    via_vs: list[float],
) -> list[FramePoint]:
    """Route a forward edge through the inter-layer gaps.

    At every gap the edge runs along u to the gap's ``channel`` and then along
    v to the next dummy's v-centre (or to the end point's v after the last
    dummy), finally running along u into ``end``.
    """
    points: list[FramePoint] = [start]
    cur_v = start[1]
    for gap_idx, channel in enumerate(channels):
        next_v = via_vs[gap_idx] if gap_idx < len(via_vs) else end[1]
        points.append((channel, cur_v))
        points.append((channel, next_v))
        cur_v = next_v
    points.append(end)
    return points


def route_around(
    start: FramePoint,
    end: FramePoint,
    src_box: Box,
    tgt_box: Box,
    margin: float,
) -> list[FramePoint]:
    """Route a backward, same-layer or self edge in a loop past both boxes."""
    out_u = start[0] + margin
    in_u = end[0] - margin
    around_v = max(src_box.v_end, tgt_box.v_end) + margin
    return [
        start,
        (out_u, start[1]),
        (out_u, around_v),
        (in_u, around_v),
        (in_u, end[1]),
        end,
    ]


def route_edge(
    level: LevelLayout,
    src_owner: str,
    tgt_owner: str,
    start: FramePoint,
    end: FramePoint,
    margin: float,
) -> list[FramePoint]:
    """Route one edge between two nodes of the same level."""
    src_layer = level.layers[src_owner]
    tgt_layer = level.layers[tgt_owner]
    if src_owner != tgt_owner and src_layer < tgt_layer:
        channels = [
            (level.layer_end[gap] + level.layer_start[gap + 1]) / 2 for gap in range(src_layer, tgt_layer)
        ]
        via_vs = level.dummy_vs.get((src_owner, tgt_owner), [])
        return route_through_gaps(start, end, channels, via_vs)
    return route_around(start, end, level.boxes[src_owner], level.boxes[tgt_owner], margin)


# ─── Full Layout Pipeline ─────────────────────────────────────────────────────


@dataclass
class _GroupPlacement:
    level: LevelLayout
    options: LayoutOptions
    relative: dict[str, tuple[float, float, float, float]]
    width: float
    height: float


class LayeredSolver:
    """Default layout solver.

    Lays out every group's tables with the group's own options, then the
    root level with groups as fixed-size boxes, then routes every edge from
    port to port with axis-aligned segments only.
    """

    async def layout(self, graph: LayoutGraph) -> SolverResult:
        return self.solve(graph)

    def solve(self, graph: LayoutGraph) -> SolverResult:
        direction = graph.direction
        ports = graph.ports()
        owner: dict[str, str] = {}
        group_of: dict[str, str] = {}
        for table_node, group in graph.table_nodes():
            owner[table_node.id] = group.id if group is not None else table_node.id
            if group is not None:
                group_of[table_node.id] = group.id

        endpoints: list[tuple[TableNode, GraphPort, TableNode, GraphPort]] = []
        for edge in graph.edges:
            if edge.source_port not in ports or edge.target_port not in ports:
                raise LayoutError(f"Edge {edge.id} references an unknown port")
            endpoints.append((*ports[edge.source_port], *ports[edge.target_port]))

        placements = {
            child.id: self._place_group(child, graph, direction)
            for child in graph.children
            if isinstance(child, GroupNode)
        }

        # Root level: groups are opaque boxes, edges connect their owners.
        sizing = Frame(direction, 0)
        root_nodes: list[tuple[str, float, float]] = []
        for child in graph.children:
            if isinstance(child, GroupNode):
                root_nodes.append((child.id, *sizing.size(placements[child.id].width, placements[child.id].height)))
            else:
                root_nodes.append((child.id, *sizing.size(child.width, child.height)))
        root_edges = [(owner[src.id], owner[tgt.id]) for src, _, tgt, _ in endpoints]

        pad = graph.options.padding
        root = layout_level(root_nodes, root_edges, graph.options).shifted(pad, pad)
        extent_u = root.extent_u + 2 * pad
        extent_v = root.extent_v + 2 * pad
        frame = Frame(direction, extent_u)

        children: list[PositionedTable | PositionedGroup] = []
        absolute: dict[str, tuple[float, float, float, float]] = {}
        group_levels: dict[str, LevelLayout] = {}
        for child in graph.children:
            x, y, w, h = frame.box_to_xy(root.boxes[child.id])
            if isinstance(child, GroupNode):
                placement = placements[child.id]
                positioned = PositionedGroup(id=child.id, x=x, y=y, width=w, height=h)
                for table_node in child.children:
                    rx, ry, rw, rh = placement.relative[table_node.id]
                    positioned.children.append(PositionedTable(table_node.id, rx, ry, rw, rh))
                    absolute[table_node.id] = (x + rx, y + ry, rw, rh)
                children.append(positioned)
                if not child.children:
                    continue

                # Move the group's level into the root frame using its first member.
                anchor = child.children[0].id
                global_box = frame.box_from_xy(*absolute[anchor])
                local_box = placement.level.boxes[anchor]
                group_levels[child.id] = placement.level.shifted(
                    global_box.u - local_box.u, global_box.v - local_box.v
                )
            else:
                children.append(PositionedTable(child.id, x, y, w, h))
                absolute[child.id] = (x, y, w, h)

        routed: list[RoutedEdge] = []
        for edge, (src, src_port, tgt, tgt_port) in zip(graph.edges, endpoints):
            start = frame.point_from_xy(_port_point(absolute[src.id], src_port))
            end = frame.point_from_xy(_port_point(absolute[tgt.id], tgt_port))
            shared_group = group_of.get(src.id)
            if shared_group is not None and shared_group == group_of.get(tgt.id):
                margin = placements[shared_group].options.edge_margin
                path = route_edge(group_levels[shared_group], src.id, tgt.id, start, end, margin)
            else:
                margin = graph.options.edge_margin
                path = route_edge(root, owner[src.id], owner[tgt.id], start, end, margin)
            points = simplify([frame.point_to_xy(u, v) for u, v in path])
            routed.append(RoutedEdge(id=edge.id, sections=[EdgeSection(points[0], points[-1], points[1:-1])]))

        width, height = (extent_u, extent_v) if direction.is_horizontal else (extent_v, extent_u)
        return SolverResult(children=children, edges=routed, width=width, height=height)

    def _place_group(self, group: GroupNode, graph: LayoutGraph, direction: Direction) -> _GroupPlacement:
        """Lay out a group's tables and size the group around them."""
        sizing = Frame(direction, 0)
        members = {t.id for t in group.children}
        inner_edges = [
            (e.source_node, e.target_node)
            for e in graph.edges
            if e.source_node in members and e.target_node in members
        ]
        level = layout_level(
            [(t.id, *sizing.size(t.width, t.height)) for t in group.children],
            inner_edges,
            group.options,
        )

        local = Frame(direction, level.extent_u)
        pad = group.options.padding
        top = pad + group.options.label_band
        relative: dict[str, tuple[float, float, float, float]] = {}
        for table_node in group.children:
            x, y, w, h = local.box_to_xy(level.boxes[table_node.id])
            relative[table_node.id] = (x + pad, y + top, w, h)

        if direction.is_horizontal:
            content_w, content_h = level.extent_u, level.extent_v
        else:
            content_w, content_h = level.extent_v, level.extent_u
        return _GroupPlacement(
            level=level,
            options=group.options,
            relative=relative,
            width=content_w + 2 * pad,
            height=content_h + top + pad,
        )


def _port_point(box: tuple[float, float, float, float], port: GraphPort) -> Point:
    return Point(box[0] + port.x, box[1] + port.y)
