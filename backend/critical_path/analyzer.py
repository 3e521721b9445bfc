"""
Critical path: the longest dependency chain through the work-item graph,
measured in edges.

1. Adjacency (from -> to) as a networkx DiGraph
2. Topological order (Kahn); nodes that never reach zero in-degree are
   in or behind a cycle and are left out of the analysis
3. Longest distance per node in topological order
4. Sink = max distance (lowest id on ties), walk predecessors back
"""

import heapq
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

import networkx as nx
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from shared import DependencyEdge, GraphSnapshot, WorkNode, build_dependency_graph, edge_key


class CriticalPathResult(BaseModel):
    """Derived, never persisted. ordered_nodes runs source to sink."""
    model_config = ConfigDict(frozen=True)

    has_path: bool = False
    ordered_nodes: List[WorkNode] = Field(default_factory=list)
    edge_keys: FrozenSet[str] = frozenset()

    @property
    def node_ids(self) -> FrozenSet[str]:
        return frozenset(n.id for n in self.ordered_nodes)

    @property
    def length(self) -> int:
        return len(self.ordered_nodes)

    def rank_of(self, node_id: str) -> int:
        """0-based index on the chain, -1 when not on it."""
        for idx, n in enumerate(self.ordered_nodes):
            if n.id == node_id:
                return idx
        return -1

    def contains(self, node_id: str) -> bool:
        return any(n.id == node_id for n in self.ordered_nodes)

    def contains_edge(self, from_id: str, to_id: str) -> bool:
        return edge_key(from_id, to_id) in self.edge_keys


EMPTY_RESULT = CriticalPathResult()


def _kahn_order(G: nx.DiGraph) -> Tuple[List[str], List[str]]:
    """Topological order with lowest-id-first among ready nodes. Returns (order, excluded)."""
    in_degree = {n: d for n, d in G.in_degree()}
    ready = [n for n, d in in_degree.items() if d == 0]
    heapq.heapify(ready)
    order: List[str] = []
    while ready:
        n = heapq.heappop(ready)
        order.append(n)
        for succ in G.successors(n):
            in_degree[succ] -= 1
            if in_degree[succ] == 0:
                heapq.heappush(ready, succ)
    excluded = sorted(n for n, d in in_degree.items() if d > 0)
    return order, excluded


def _longest_distances(G: nx.DiGraph, order: List[str]) -> Tuple[Dict[str, int], Dict[str, Optional[str]]]:
    dist: Dict[str, int] = {}
    predecessor: Dict[str, Optional[str]] = {}
    for v in order:
        best = 0
        best_pred: Optional[str] = None
        for u in sorted(G.predecessors(v)):
            if u not in dist:
                continue
            if dist[u] + 1 > best:
                best = dist[u] + 1
                best_pred = u
        dist[v] = best
        predecessor[v] = best_pred
    return dist, predecessor


def analyze(
    nodes: Iterable[WorkNode],
    edges: Iterable[DependencyEdge],
    incomplete_only: bool = False,
) -> CriticalPathResult:
    """
    Compute the critical chain. Pure and deterministic; never raises.

    incomplete_only=True: only unfinished tasks/decisions (and edges between
    them) take part, which is what the graph view highlights.
    """
    by_id: Dict[str, WorkNode] = {n.id: n for n in (nodes or [])}
    if not by_id:
        return EMPTY_RESULT

    if incomplete_only:
        ids = {nid for nid, n in by_id.items() if n.can_be_on_critical_path() and n.is_incomplete()}
    else:
        ids = set(by_id)
    if not ids:
        return EMPTY_RESULT

    G = build_dependency_graph(by_id.values(), edges, ids)
    if G.number_of_edges() == 0:
        return EMPTY_RESULT

    order, excluded = _kahn_order(G)
    if excluded:
        logger.debug("Critical path: {} node(s) in or behind a cycle excluded: {}", len(excluded), excluded)
    if not order:
        return EMPTY_RESULT

    dist, predecessor = _longest_distances(G, order)
    sink = min(dist, key=lambda nid: (-dist[nid], nid))
    if dist[sink] <= 0:
        return EMPTY_RESULT

    path_ids: List[str] = []
    current: Optional[str] = sink
    while current is not None:
        path_ids.append(current)
        current = predecessor[current]
    path_ids.reverse()

    keys = frozenset(edge_key(a, b) for a, b in zip(path_ids, path_ids[1:]))
    return CriticalPathResult(
        has_path=True,
        ordered_nodes=[by_id[nid] for nid in path_ids],
        edge_keys=keys,
    )


def analyze_snapshot(snapshot: GraphSnapshot, incomplete_only: bool = False) -> CriticalPathResult:
    return analyze(snapshot.nodes.values(), snapshot.dependency_edges, incomplete_only=incomplete_only)


def non_critical_incomplete(nodes: Mapping[str, WorkNode], result: CriticalPathResult) -> List[str]:
    """Incomplete tasks/decisions that are not on the chain, in id order."""
    on_path = result.node_ids
    return sorted(
        nid for nid, n in nodes.items()
        if n.can_be_on_critical_path() and n.is_incomplete() and nid not in on_path
    )


def calculate_slack(nodes: Mapping[str, WorkNode], result: CriticalPathResult) -> Dict[str, int]:
    """0 for nodes on the chain, 1 for any other incomplete task/decision."""
    # Simplified rule: a marker, not a latest-start computation.
    slack = {nid: 0 for nid in result.node_ids}
    for nid in non_critical_incomplete(nodes, result):
        slack[nid] = 1
    return slack
