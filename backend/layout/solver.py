"""
Layout solver: given a snapshot, asynchronously returns a position for every node.
The scheduler only depends on the LayoutSolver protocol; SugiyamaSolver is the default.
"""

import asyncio
from typing import Dict, Protocol

from shared import GraphSnapshot

from .constants import GRID_H_GAP, GRID_NODES_PER_ROW, GRID_V_GAP, NODE_H, NODE_W, PADDING
from .sugiyama import compute_layout

NodePositions = Dict[str, Dict[str, float]]


class SolverError(Exception):
    """The solver could not produce a position set."""


class LayoutSolver(Protocol):
    async def solve(self, snapshot: GraphSnapshot) -> NodePositions:
        ...


class SugiyamaSolver:
    """Layered DAG layout, run in a worker thread so the event loop stays responsive."""

    def __init__(self, include_containment: bool = True, **layout_options):
        self.include_containment = include_containment
        self.layout_options = layout_options

    async def solve(self, snapshot: GraphSnapshot) -> NodePositions:
        try:
            return await asyncio.to_thread(
                compute_layout, snapshot, self.include_containment, **self.layout_options
            )
        except (ValueError, KeyError) as e:
            raise SolverError(f"Layout failed: {e}") from e


def default_position(index: int) -> Dict[str, float]:
    """Grid slot for the index-th node without a stored position."""
    row, col = divmod(index, GRID_NODES_PER_ROW)
    return {
        "x": float(PADDING + col * (NODE_W + GRID_H_GAP)),
        "y": float(PADDING + row * (NODE_H + GRID_V_GAP)),
    }


def center_positions(positions: NodePositions, viewport_w: float, viewport_h: float) -> NodePositions:
    """Shift positions so their bounding box sits centred in the viewport (never left/above PADDING)."""
    if not positions:
        return {}
    min_x = min(p["x"] for p in positions.values())
    min_y = min(p["y"] for p in positions.values())
    max_x = max(p["x"] + NODE_W for p in positions.values())
    max_y = max(p["y"] + NODE_H for p in positions.values())

    # offset = max(0, (viewport - content) / 2), shifted so the box starts at PADDING
    off_x = max(0.0, (viewport_w - (max_x - min_x)) / 2) - min_x + PADDING
    off_y = max(0.0, (viewport_h - (max_y - min_y)) / 2) - min_y + PADDING
    return {nid: {"x": p["x"] + off_x, "y": p["y"] + off_y} for nid, p in positions.items()}
