"""
Graph utilities over a GraphSnapshot.
Shared by critical_path (analysis) and layout (solver input).
"""

from typing import Iterable, Optional, Set

import networkx as nx

from .models import DependencyEdge, GraphSnapshot, WorkNode


def build_dependency_graph(
    nodes: Iterable[WorkNode],
    edges: Iterable[DependencyEdge],
    ids: Optional[Set[str]] = None,
) -> nx.DiGraph:
    """Build dependency graph (from -> to). ids: if provided, only include nodes in ids."""
    nodes = list(nodes or [])
    ids = ids if ids is not None else {n.id for n in nodes}
    G = nx.DiGraph()
    for n in nodes:
        if n.id in ids:
            G.add_node(n.id)
    for e in edges or []:
        if e.from_id in ids and e.to_id in ids and e.from_id != e.to_id:
            G.add_edge(e.from_id, e.to_id)
    return G


def build_layout_graph(snapshot: GraphSnapshot, include_containment: bool = True) -> nx.DiGraph:
    """Dependency graph plus parent -> child containment edges, for layout."""
    G = build_dependency_graph(snapshot.nodes.values(), snapshot.dependency_edges)
    if include_containment:
        for parent, child in snapshot.containment_edges():
            G.add_edge(parent, child)
    return G

