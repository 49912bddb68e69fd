"""Layout and interactive geometry for entity-relationship diagrams."""

from erd_layout.config import LayoutOptions
from erd_layout.errors import ErdLayoutError, LayoutError, SchemaParseError
from erd_layout.extract import compute_layout, extract_layout
from erd_layout.geometry import Point
from erd_layout.graph import LayoutGraph, build_graph
from erd_layout.offsets import DisplacementMap, adjust_polyline, apply_displacements
from erd_layout.schema import (
    Column,
    EnumValue,
    Group,
    ParseDiagnostic,
    RefEndpoint,
    Reference,
    Schema,
    SchemaEnum,
    SchemaParser,
    Severity,
    Table,
    TableRef,
)
from erd_layout.session import DiagramSession
from erd_layout.solver import LayeredSolver, LayoutSolver, SolverResult
from erd_layout.types import (
    Direction,
    LayoutEdge,
    LayoutGroup,
    LayoutNode,
    LayoutPort,
    LayoutResult,
    PortRole,
    PortSide,
)

__all__ = [
    "Column",
    "DiagramSession",
    "Direction",
    "DisplacementMap",
    "EnumValue",
    "ErdLayoutError",
    "Group",
    "LayeredSolver",
    "LayoutEdge",
    "LayoutError",
    "LayoutGraph",
    "LayoutGroup",
    "LayoutNode",
    "LayoutOptions",
    "LayoutPort",
    "LayoutResult",
    "LayoutSolver",
    "ParseDiagnostic",
    "Point",
    "PortRole",
    "PortSide",
    "RefEndpoint",
    "Reference",
    "Schema",
    "SchemaEnum",
    "SchemaParseError",
    "SchemaParser",
    "Severity",
    "SolverResult",
    "Table",
    "TableRef",
    "adjust_polyline",
    "apply_displacements",
    "build_graph",
    "compute_layout",
    "extract_layout",
]
