"""Tests for solver.py: the layered layout solver.

Covers the per-level phases:
  - remove_cycles / greedy_fas_ordering (cycle removal)
  - assign_layers / insert_dummy_nodes
  - minimise_crossings / count_crossings (barycenter heuristic)
  - assign_coordinates and the flow Frame mapping
  - route_through_gaps / route_around (orthogonal routing)
and LayeredSolver end to end on graphs produced by build_graph.
"""

from __future__ import annotations

import asyncio

import networkx as nx
import pytest

from erd_layout.config import LayoutOptions
from erd_layout.errors import LayoutError
from erd_layout.geometry import Point, is_orthogonal
from erd_layout.graph import GraphEdge, build_graph
from erd_layout.schema import Column, Group, RefEndpoint, Reference, Schema, Table, TableRef
from erd_layout.solver import (
    DUMMY_PREFIX,
    AugmentedGraph,
    Box,
    Frame,
    LayeredSolver,
    PositionedGroup,
    PositionedTable,
    assign_coordinates,
    assign_layers,
    count_crossings,
    greedy_fas_ordering,
    insert_dummy_nodes,
    minimise_crossings,
    remove_cycles,
    route_around,
    route_through_gaps,
)
from erd_layout.types import Direction

# ─── Helpers ──────────────────────────────────────────────────────────────────


def make_graph(*edges: tuple[str, str]) -> nx.DiGraph:
    """Build a DiGraph from a list of (src, tgt) string pairs."""
    g: nx.DiGraph = nx.DiGraph()
    for src, tgt in edges:
        g.add_edge(src, tgt)
    return g


def make_graph_nodes(*nodes: str) -> nx.DiGraph:
    """Build a DiGraph with only nodes (no edges)."""
    g: nx.DiGraph = nx.DiGraph()
    for node in nodes:
        g.add_node(node)
    return g


def make_augmented_graph(
    edges: list[tuple[str, str]],
    layers: dict[str, int],
) -> AugmentedGraph:
    """Build a minimal AugmentedGraph from (src, tgt) edges and explicit layers."""
    g: nx.DiGraph = nx.DiGraph()
    g.add_nodes_from(layers)
    g.add_edges_from(edges)
    layer_count = (max(layers.values()) + 1) if layers else 0
    return AugmentedGraph(graph=g, layers=layers, layer_count=layer_count, dummy_edges=[])


def table(name: str, *columns: str) -> Table:
    return Table(name=name, columns=tuple(Column(c, "int") for c in columns))


def ref(src: str, src_col: str, tgt: str, tgt_col: str) -> Reference:
    return Reference(RefEndpoint(src, (src_col,), "*"), RefEndpoint(tgt, (tgt_col,), "1"))


def two_table_schema() -> Schema:
    return Schema(tables=(table("a", "x"), table("b", "y")), references=(ref("a", "x", "b", "y"),))


def by_id(result) -> dict[str, PositionedTable | PositionedGroup]:
    return {child.id: child for child in result.children}


def polyline(routed) -> list[Point]:
    section = routed.sections[0]
    return [section.start, *section.bend_points, section.end]


# ─── Cycle Removal Tests ──────────────────────────────────────────────────────


class TestCycleRemoval:
    def test_dag_has_no_reversed_edges(self):
        """A → B → C (simple DAG, no cycles): should have zero reversed edges."""
        g = make_graph(("A", "B"), ("B", "C"))
        dag, reversed_edges = remove_cycles(g)
        assert len(reversed_edges) == 0, f"DAG should have no reversed edges, got: {reversed_edges}"
        assert nx.is_directed_acyclic_graph(dag)

    def test_single_cycle_reversed(self):
        """A → B → A (2-cycle): should reverse exactly one edge, result is a DAG."""
        g = make_graph(("A", "B"), ("B", "A"))
        dag, reversed_edges = remove_cycles(g)
        assert len(reversed_edges) == 1, f"Should reverse exactly one edge, got: {reversed_edges}"
        assert nx.is_directed_acyclic_graph(dag), "Result should be a DAG"

    def test_self_loop_reversed(self):
        """A → A (self-loop): counted as reversed, removed from result DAG."""
        g = make_graph(("A", "A"))
        dag, reversed_edges = remove_cycles(g)
        assert reversed_edges == {("A", "A")}
        assert dag.number_of_edges() == 0, "Self-loop should be removed from the DAG"
        assert "A" in dag

    def test_complex_cycle(self):
        """A → B → C → A (3-cycle) plus D → B: result must be a DAG."""
        g = make_graph(("A", "B"), ("B", "C"), ("C", "A"), ("D", "B"))
        dag, reversed_edges = remove_cycles(g)
        assert nx.is_directed_acyclic_graph(dag), "Result should be a DAG"
        assert len(reversed_edges) >= 1, "At least one edge should be reversed"

    def test_empty_graph(self):
        g: nx.DiGraph = nx.DiGraph()
        dag, reversed_edges = remove_cycles(g)
        assert dag.number_of_nodes() == 0
        assert len(reversed_edges) == 0


class TestGreedyFasOrdering:
    def test_chain_ordering(self):
        """A → B → C: ordering puts A before B before C."""
        g = make_graph(("A", "B"), ("B", "C"))
        assert greedy_fas_ordering(g) == ["A", "B", "C"]

    def test_single_node(self):
        assert greedy_fas_ordering(make_graph_nodes("A")) == ["A"]

    def test_empty_graph(self):
        assert greedy_fas_ordering(nx.DiGraph()) == []

    def test_all_nodes_present(self):
        """Ordering must contain all nodes exactly once."""
        g = make_graph(("A", "B"), ("B", "C"), ("C", "A"))
        ordering = greedy_fas_ordering(g)
        assert len(ordering) == 3
        assert set(ordering) == {"A", "B", "C"}

    def test_deterministic(self):
        """Repeated runs on the same cyclic graph give the same ordering."""
        g = make_graph(("A", "B"), ("B", "C"), ("C", "A"), ("C", "D"), ("D", "A"))
        assert len({tuple(greedy_fas_ordering(g)) for _ in range(10)}) == 1


# ─── Layer Assignment & Dummy Nodes ───────────────────────────────────────────


class TestLayering:
    def test_longest_path_layers(self):
        """A → B → C plus A → C puts C two layers below A."""
        dag = make_graph(("A", "B"), ("B", "C"), ("A", "C"))
        assert assign_layers(dag) == {"A": 0, "B": 1, "C": 2}

    def test_isolated_nodes_in_layer_zero(self):
        assert assign_layers(make_graph_nodes("A", "B")) == {"A": 0, "B": 0}

    def test_long_edge_gets_dummy_chain(self):
        dag = make_graph(("A", "B"), ("B", "C"), ("A", "C"))
        aug = insert_dummy_nodes(dag, assign_layers(dag))
        assert len(aug.dummy_edges) == 1
        chain = aug.dummy_edges[0]
        assert (chain.original_src, chain.original_tgt) == ("A", "C")
        assert len(chain.dummy_ids) == 1
        dummy = chain.dummy_ids[0]
        assert dummy.startswith(DUMMY_PREFIX)
        assert aug.layers[dummy] == 1
        assert aug.graph.has_edge("A", dummy) and aug.graph.has_edge(dummy, "C")
        assert not aug.graph.has_edge("A", "C")

    def test_adjacent_edges_untouched(self):
        dag = make_graph(("A", "B"))
        aug = insert_dummy_nodes(dag, assign_layers(dag))
        assert aug.dummy_edges == []
        assert aug.layer_count == 2


# ─── count_crossings / minimise_crossings ─────────────────────────────────────


class TestCountCrossings:
    def test_no_crossings_simple_chain(self):
        aug = make_augmented_graph([("A", "B")], {"A": 0, "B": 1})
        assert count_crossings([["A"], ["B"]], aug.graph) == 0

    def test_no_crossings_parallel(self):
        aug = make_augmented_graph([("A", "C"), ("B", "D")], {"A": 0, "B": 0, "C": 1, "D": 1})
        assert count_crossings([["A", "B"], ["C", "D"]], aug.graph) == 0

    def test_one_crossing(self):
        """A→D and B→C with A before B in layer 0: one crossing because D after C."""
        aug = make_augmented_graph([("A", "D"), ("B", "C")], {"A": 0, "B": 0, "C": 1, "D": 1})
        assert count_crossings([["A", "B"], ["C", "D"]], aug.graph) == 1

    def test_empty_graph_no_crossings(self):
        assert count_crossings([], nx.DiGraph()) == 0


class TestMinimiseCrossings:
    def test_returns_all_nodes(self):
        aug = make_augmented_graph([("A", "B"), ("A", "C")], {"A": 0, "B": 1, "C": 1})
        result = minimise_crossings(aug)
        assert {nid for layer in result for nid in layer} == {"A", "B", "C"}

    def test_each_node_in_correct_layer(self):
        layers = {"A": 0, "B": 1, "C": 1, "D": 2}
        aug = make_augmented_graph([("A", "B"), ("A", "C"), ("B", "D"), ("C", "D")], layers)
        result = minimise_crossings(aug)
        for node_id, expected_layer in layers.items():
            assert node_id in result[expected_layer], f"{node_id} should be in layer {expected_layer}"

    def test_removes_simple_crossing(self):
        aug = make_augmented_graph([("A", "D"), ("B", "C")], {"A": 0, "B": 0, "C": 1, "D": 1})
        result = minimise_crossings(aug, ["A", "B", "C", "D"])
        assert count_crossings(result, aug.graph) == 0

    def test_order_hint_sets_initial_order(self):
        """Without edges the hint order is kept as is."""
        aug = make_augmented_graph([], {"A": 0, "B": 0, "C": 0})
        assert minimise_crossings(aug, ["C", "A", "B"]) == [["C", "A", "B"]]

    def test_empty_graph(self):
        aug = AugmentedGraph(graph=nx.DiGraph(), layers={}, layer_count=0, dummy_edges=[])
        assert minimise_crossings(aug) == []


# ─── Coordinates & Frame ──────────────────────────────────────────────────────


class TestAssignCoordinates:
    def test_layers_spaced_along_u(self):
        opts = LayoutOptions(node_spacing=10, layer_spacing=100)
        aug = make_augmented_graph([("A", "B")], {"A": 0, "B": 1})
        level = assign_coordinates([["A"], ["B"]], aug, {"A": (200, 60), "B": (150, 40)}, opts)
        assert level.layer_start == [0, 300]
        assert level.layer_end == [200, 450]
        assert level.boxes["A"] == Box(0, 0, 200, 60)
        # B is centred on the deeper layer along v.
        assert level.boxes["B"] == Box(300, 10, 150, 40)
        assert (level.extent_u, level.extent_v) == (450, 60)

    def test_nodes_stacked_along_v(self):
        opts = LayoutOptions(node_spacing=10, layer_spacing=100)
        aug = make_augmented_graph([], {"A": 0, "B": 0})
        level = assign_coordinates([["A", "B"]], aug, {"A": (100, 50), "B": (100, 30)}, opts)
        assert level.boxes["A"].v == 0
        assert level.boxes["B"].v == 60
        assert level.extent_v == 90


class TestFrame:
    @pytest.mark.parametrize("direction", list(Direction))
    def test_point_round_trip(self, direction):
        frame = Frame(direction, 500)
        for u, v in [(0, 0), (120, 40), (499, 250)]:
            assert frame.point_from_xy(frame.point_to_xy(u, v)) == (u, v)

    @pytest.mark.parametrize("direction", list(Direction))
    def test_box_round_trip(self, direction):
        frame = Frame(direction, 500)
        box = Box(30, 70, 200, 64)
        assert frame.box_from_xy(*frame.box_to_xy(box)) == box

    def test_rl_mirrors_u(self):
        frame = Frame(Direction.RL, 500)
        assert frame.box_to_xy(Box(0, 0, 100, 50)) == (400, 0, 100, 50)

    def test_tb_swaps_axes(self):
        frame = Frame(Direction.TB, 500)
        assert frame.box_to_xy(Box(10, 20, 100, 50)) == (20, 10, 50, 100)
        assert frame.size(200, 64) == (64, 200)


# ─── Routing ──────────────────────────────────────────────────────────────────


class TestRouting:
    def test_route_through_single_gap(self):
        path = route_through_gaps((0, 10), (100, 40), [50], [])
        assert path == [(0, 10), (50, 10), (50, 40), (100, 40)]

    def test_route_through_dummies(self):
        """Two gaps: the edge crosses the middle layer at the dummy's v."""
        path = route_through_gaps((0, 10), (300, 40), [50, 250], [90])
        assert path == [(0, 10), (50, 10), (50, 90), (250, 90), (250, 40), (300, 40)]

    def test_route_around_loops_below_boxes(self):
        src = Box(0, 0, 100, 50)
        tgt = Box(0, 100, 100, 80)
        path = route_around((100, 25), (0, 140), src, tgt, 20)
        assert path[0] == (100, 25) and path[-1] == (0, 140)
        assert path[2][1] == 200
        assert all(a[0] == b[0] or a[1] == b[1] for a, b in zip(path, path[1:]))


# ─── LayeredSolver ────────────────────────────────────────────────────────────


class TestLayeredSolver:
    def test_two_tables_lr(self):
        graph = build_graph(two_table_schema(), Direction.LR)
        result = LayeredSolver().solve(graph)
        nodes = by_id(result)
        a, b = nodes["public.a"], nodes["public.b"]
        assert b.x >= a.x + a.width, "B should be laid out right of A"
        assert len(result.edges) == 1
        points = polyline(result.edges[0])
        assert points[0] == Point(a.x + a.width, a.y + 50)
        assert points[-1].x == b.x
        assert is_orthogonal(points)

    def test_rl_flows_leftward(self):
        result = LayeredSolver().solve(build_graph(two_table_schema(), Direction.RL))
        nodes = by_id(result)
        a, b = nodes["public.a"], nodes["public.b"]
        assert a.x >= b.x + b.width
        points = polyline(result.edges[0])
        assert points[0].x == a.x
        assert points[-1].x == b.x + b.width

    @pytest.mark.parametrize("direction,axis", [(Direction.TB, 1), (Direction.BT, -1)])
    def test_vertical_directions(self, direction, axis):
        result = LayeredSolver().solve(build_graph(two_table_schema(), direction))
        nodes = by_id(result)
        a, b = nodes["public.a"], nodes["public.b"]
        assert (b.y - a.y) * axis > 0
        points = polyline(result.edges[0])
        assert points[0].y == (a.y + a.height if axis > 0 else a.y)
        assert is_orthogonal(points)

    def test_result_contains_padding(self):
        graph = build_graph(two_table_schema())
        result = LayeredSolver().solve(graph)
        pad = graph.options.padding
        for child in result.children:
            assert child.x >= pad and child.y >= pad
            assert child.x + child.width <= result.width - pad + 1e-9
            assert child.y + child.height <= result.height - pad + 1e-9

    def test_cycle_and_self_reference_routed_orthogonally(self):
        schema = Schema(
            tables=(table("a", "id", "b_id"), table("b", "id", "a_id"), table("c", "id", "parent")),
            references=(
                ref("a", "b_id", "b", "id"),
                ref("b", "a_id", "a", "id"),
                ref("c", "parent", "c", "id"),
            ),
        )
        for direction in Direction:
            graph = build_graph(schema, direction)
            result = LayeredSolver().solve(graph)
            assert [e.id for e in result.edges] == ["e0", "e1", "e2"]
            for routed in result.edges:
                points = polyline(routed)
                assert len(points) >= 2
                assert is_orthogonal(points), f"{direction}: {points}"

    def test_long_edge_routed_through_gaps(self):
        schema = Schema(
            tables=(table("a", "x"), table("b", "x"), table("c", "x")),
            references=(ref("a", "x", "b", "x"), ref("b", "x", "c", "x"), ref("a", "x", "c", "x")),
        )
        result = LayeredSolver().solve(build_graph(schema))
        nodes = by_id(result)
        long_edge = polyline(result.edges[2])
        assert long_edge[0].x == nodes["public.a"].x + nodes["public.a"].width
        assert long_edge[-1].x == nodes["public.c"].x
        assert is_orthogonal(long_edge)

    def test_groups_are_nested_and_relative(self):
        schema = Schema(
            tables=(table("a", "x"), table("b", "y"), table("c", "z")),
            references=(ref("a", "x", "b", "y"), ref("b", "y", "c", "z")),
            groups=(Group("core", (TableRef("a"), TableRef("b"))),),
        )
        graph = build_graph(schema)
        result = LayeredSolver().solve(graph)
        group = by_id(result)["__group_core"]
        assert isinstance(group, PositionedGroup)
        assert {t.id for t in group.children} == {"public.a", "public.b"}
        opts = graph.children[0].options
        for member in group.children:
            assert member.x >= opts.padding
            assert member.y >= opts.padding + opts.label_band
            assert member.x + member.width <= group.width
            assert member.y + member.height <= group.height
        for routed in result.edges:
            assert is_orthogonal(polyline(routed))

    def test_empty_graph(self):
        result = LayeredSolver().solve(build_graph(Schema()))
        assert result.children == []
        assert result.edges == []

    def test_unknown_port_raises(self):
        graph = build_graph(two_table_schema())
        graph.edges.append(GraphEdge("e1", "public.a.nope.out", "public.b.y.in", "public.a", "public.b"))
        with pytest.raises(LayoutError):
            LayeredSolver().solve(graph)

    def test_async_layout_matches_solve(self):
        graph = build_graph(two_table_schema())
        solver = LayeredSolver()
        assert asyncio.run(solver.layout(graph)) == solver.solve(graph)
