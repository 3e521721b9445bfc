"""Layout module - solver for node positions and the scheduler that decides when to run it."""

from .scheduler import LayoutScheduler, LayoutState, LayoutStatus
from .solver import (
    LayoutSolver,
    NodePositions,
    SolverError,
    SugiyamaSolver,
    center_positions,
    default_position,
)
from .sugiyama import compute_layout

__all__ = [
    "LayoutScheduler",
    "LayoutSolver",
    "LayoutState",
    "LayoutStatus",
    "NodePositions",
    "SolverError",
    "SugiyamaSolver",
    "center_positions",
    "compute_layout",
    "default_position",
]
