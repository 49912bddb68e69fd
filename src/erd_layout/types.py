"""Layout types shared by the builder, the solver, extraction and offsets."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from erd_layout.geometry import Point
from erd_layout.schema import Group, Reference, Table


class Direction(str, Enum):
    """Predominant flow direction of references across the diagram."""

    LR = "LR"
    RL = "RL"
    TB = "TB"
    BT = "BT"

    @property
    def is_horizontal(self) -> bool:
        return self in (Direction.LR, Direction.RL)

    @property
    def is_reversed(self) -> bool:
        """True when the flow runs against the x/y axis (RL, BT)."""
        return self in (Direction.RL, Direction.BT)


class PortSide(str, Enum):
    NORTH = "north"
    SOUTH = "south"
    EAST = "east"
    WEST = "west"


class PortRole(str, Enum):
    """Inbound ports receive references, outbound ports emit them."""

    IN = "in"
    OUT = "out"


@dataclass(frozen=True)
class LayoutNode:
    """A table positioned in global diagram coordinates."""

    id: str
    table: Table
    x: float
    y: float
    width: float
    height: float
    group: str | None = None

    @property
    def position(self) -> Point:
        return Point(self.x, self.y)


@dataclass(frozen=True)
class LayoutPort:
    """Absolute anchor of one column port."""

    node_id: str
    column: str
    role: PortRole
    side: PortSide
    x: float
    y: float


@dataclass(frozen=True)
class LayoutEdge:
    """A reference routed as an orthogonal polyline between two nodes."""

    id: str
    reference: Reference
    source_id: str
    target_id: str
    points: list[Point]


@dataclass(frozen=True)
class LayoutGroup:
    """Bounding box of a group container in global coordinates."""

    id: str
    group: Group
    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class LayoutResult:
    """Everything a renderer needs to draw one diagram."""

    direction: Direction
    nodes: list[LayoutNode] = field(default_factory=list)
    edges: list[LayoutEdge] = field(default_factory=list)
    groups: list[LayoutGroup] = field(default_factory=list)
    ports: list[LayoutPort] = field(default_factory=list)
    width: float = 0
    height: float = 0

    def node(self, node_id: str) -> LayoutNode | None:
        for n in self.nodes:
            if n.id == node_id:
                return n
        return None
