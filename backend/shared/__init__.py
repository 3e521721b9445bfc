"""Shared graph model for critical_path, layout, db and api."""

from .graph import build_dependency_graph, build_layout_graph
from .models import DependencyEdge, GraphSnapshot, NodeKind, WorkNode, edge_key

__all__ = [
    "DependencyEdge",
    "GraphSnapshot",
    "NodeKind",
    "WorkNode",
    "build_dependency_graph",
    "build_layout_graph",
    "edge_key",
]
