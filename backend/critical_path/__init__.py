"""Critical path module - longest dependency chain analysis and per-node queries."""

from .analyzer import (
    EMPTY_RESULT,
    CriticalPathResult,
    analyze,
    analyze_snapshot,
    calculate_slack,
    non_critical_incomplete,
)
from .view import CriticalPathView

__all__ = [
    "EMPTY_RESULT",
    "CriticalPathResult",
    "CriticalPathView",
    "analyze",
    "analyze_snapshot",
    "calculate_slack",
    "non_critical_incomplete",
]
