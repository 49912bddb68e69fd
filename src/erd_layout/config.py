"""Sizing constants and solver options.

All lengths are in diagram pixels.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

# ─── Table Sizing ─────────────────────────────────────────────────────────────

TABLE_HEADER_HEIGHT: int = 36
COLUMN_ROW_HEIGHT: int = 28
TABLE_MIN_WIDTH: int = 200
TABLE_MAX_WIDTH: int = 480
CHAR_WIDTH: int = 8
TABLE_PADDING_X: int = 24
NOTE_LINE_HEIGHT: int = 16

# Square port marker drawn on the table border.
PORT_SIZE: int = 8

DEFAULT_NAMESPACE = "public"


# ─── Solver Options ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class LayoutOptions:
    """Spacing parameters handed to the layout solver for one graph level.

    Attributes:
        node_spacing: Gap between neighbouring nodes inside one layer.
        layer_spacing: Gap between consecutive layers along the flow axis.
        padding: Margin around the laid-out content.
        label_band: Extra space reserved above the content (group titles).
        edge_margin: Clearance kept by edges that loop around node boxes.
    """

    node_spacing: float = 60
    layer_spacing: float = 100
    padding: float = 30
    label_band: float = 0
    edge_margin: float = 20

    def for_groups(self) -> LayoutOptions:
        """Tighter variant used inside group containers."""
        return replace(
            self,
            node_spacing=self.node_spacing / 2,
            layer_spacing=self.layer_spacing / 2,
            padding=self.padding * 2 / 3,
            label_band=28,
        )
