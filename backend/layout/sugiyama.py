"""
Sugiyama layered layout for the work-item graph.

Implements the standard Sugiyama framework:
1. Cycle breaking (drop one edge per cycle found)
2. Layer assignment (longest-path)
3. Dummy node insertion (for edges spanning several layers)
4. Crossing minimization (barycenter heuristic, alternating sweeps)
5. Coordinate assignment (median of neighbours, order preserved)

Only node positions are returned; the renderer routes edges itself.
"""

from typing import Dict, List, Set, Tuple

import networkx as nx

from shared import GraphSnapshot, build_layout_graph

from .constants import NODE_H, NODE_SEP, NODE_W, PADDING, RANK_SEP

DUMMY_PREFIX = "__dummy"


def compute_layout(
    snapshot: GraphSnapshot,
    include_containment: bool = True,
    node_w: int = NODE_W,
    node_h: int = NODE_H,
    node_sep: int = NODE_SEP,
    rank_sep: int = RANK_SEP,
    padding: int = PADDING,
    sweeps: int = 24,
) -> Dict[str, Dict[str, float]]:
    """
    Lay out every node of the snapshot. Returns {node_id: {x, y}} with the
    top-left of the bounding box at (padding, padding); {} for an empty graph.
    """
    if not snapshot.nodes:
        return {}

    G = build_layout_graph(snapshot, include_containment=include_containment)
    _break_cycles(G)

    layers = _assign_layers(G)
    dummies = _insert_dummies(G, layers)
    _reduce_crossings(G, layers, sweeps)
    xs = _assign_x(G, layers, dummies, node_w, node_sep)

    positions: Dict[str, Dict[str, float]] = {}
    for depth, layer in enumerate(layers):
        y = depth * (node_h + rank_sep)
        for nid in layer:
            if nid not in dummies:
                positions[nid] = {"x": xs[nid], "y": float(y)}

    min_x = min(p["x"] for p in positions.values())
    min_y = min(p["y"] for p in positions.values())
    return {
        nid: {"x": round(p["x"] - min_x + padding, 1), "y": round(p["y"] - min_y + padding, 1)}
        for nid, p in positions.items()
    }


# ---------------------------------------------------------------------------
# 1. Cycle breaking
# ---------------------------------------------------------------------------

def _break_cycles(G: nx.DiGraph) -> None:
    """Remove the closing edge of each cycle until the graph is a DAG."""
    while True:
        try:
            cycle = nx.find_cycle(G)
        except nx.NetworkXNoCycle:
            return
        u, v = cycle[-1][0], cycle[-1][1]
        G.remove_edge(u, v)


# ---------------------------------------------------------------------------
# 2. Layer assignment (longest path from sources)
# ---------------------------------------------------------------------------

def _assign_layers(G: nx.DiGraph) -> List[List[str]]:
    depth: Dict[str, int] = {}
    for n in nx.lexicographical_topological_sort(G):
        preds = list(G.predecessors(n))
        depth[n] = max(depth[p] for p in preds) + 1 if preds else 0

    layers: List[List[str]] = [[] for _ in range(max(depth.values()) + 1)]
    for n in sorted(depth):
        layers[depth[n]].append(n)
    return layers


# ---------------------------------------------------------------------------
# 3. Dummy nodes for long edges
# ---------------------------------------------------------------------------

def _insert_dummies(G: nx.DiGraph, layers: List[List[str]]) -> Set[str]:
    depth = {n: i for i, layer in enumerate(layers) for n in layer}
    dummies: Set[str] = set()
    counter = 0
    for u, v in sorted(G.edges()):
        span = depth[v] - depth[u]
        if span <= 1:
            continue
        G.remove_edge(u, v)
        prev = u
        for step in range(1, span):
            counter += 1
            d = f"{DUMMY_PREFIX}{counter}"
            dummies.add(d)
            G.add_edge(prev, d)
            layers[depth[u] + step].append(d)
            depth[d] = depth[u] + step
            prev = d
        G.add_edge(prev, v)
    return dummies


# ---------------------------------------------------------------------------
# 4. Crossing minimization (barycenter)
# ---------------------------------------------------------------------------

def _crossings_between(G: nx.DiGraph, upper: List[str], lower: List[str]) -> int:
    lower_idx = {n: i for i, n in enumerate(lower)}
    pairs: List[Tuple[int, int]] = [
        (i, lower_idx[v]) for i, u in enumerate(upper) for v in G.successors(u) if v in lower_idx
    ]
    count = 0
    for a in range(len(pairs)):
        for b in range(a + 1, len(pairs)):
            if (pairs[a][0] - pairs[b][0]) * (pairs[a][1] - pairs[b][1]) < 0:
                count += 1
    return count


def _total_crossings(G: nx.DiGraph, layers: List[List[str]]) -> int:
    return sum(_crossings_between(G, layers[i], layers[i + 1]) for i in range(len(layers) - 1))


def _barycenter_order(G: nx.DiGraph, fixed: List[str], free: List[str], from_above: bool) -> List[str]:
    """Sort free layer by mean index of neighbours in fixed layer. Unconnected nodes keep their slot."""
    fixed_idx = {n: i for i, n in enumerate(fixed)}

    def key(item: Tuple[int, str]) -> Tuple[float, int]:
        idx, n = item
        neighbours = G.predecessors(n) if from_above else G.successors(n)
        hits = [fixed_idx[m] for m in neighbours if m in fixed_idx]
        if not hits:
            return (float(idx), idx)
        return (sum(hits) / len(hits), idx)

    return [n for _, n in sorted(enumerate(free), key=key)]


def _reduce_crossings(G: nx.DiGraph, layers: List[List[str]], sweeps: int) -> None:
    if len(layers) <= 1:
        return
    best = [list(layer) for layer in layers]
    best_count = _total_crossings(G, layers)
    for sweep in range(sweeps):
        if best_count == 0:
            break
        if sweep % 2 == 0:
            for i in range(1, len(layers)):
                layers[i] = _barycenter_order(G, layers[i - 1], layers[i], from_above=True)
        else:
            for i in range(len(layers) - 2, -1, -1):
                layers[i] = _barycenter_order(G, layers[i + 1], layers[i], from_above=False)
        count = _total_crossings(G, layers)
        if count < best_count:
            best_count = count
            best = [list(layer) for layer in layers]
    layers[:] = best


# ---------------------------------------------------------------------------
# 5. Coordinate assignment (median, order preserved)
# ---------------------------------------------------------------------------

def _assign_x(
    G: nx.DiGraph,
    layers: List[List[str]],
    dummies: Set[str],
    node_w: int,
    node_sep: int,
    rounds: int = 8,
) -> Dict[str, float]:
    def width(n: str) -> int:
        return 0 if n in dummies else node_w

    xs: Dict[str, float] = {}
    for layer in layers:
        x = 0.0
        for n in layer:
            xs[n] = x
            x += width(n) + node_sep

    for _ in range(rounds):
        for i in list(range(1, len(layers))) + list(range(len(layers) - 2, -1, -1)):
            _pull_to_median(G, layers[i], xs, width, node_sep)
    return xs


def _pull_to_median(G: nx.DiGraph, layer: List[str], xs: Dict[str, float], width, node_sep: int) -> None:
    ideal: List[float] = []
    for n in layer:
        centres = sorted(xs[m] + width(m) / 2.0 for m in list(G.predecessors(n)) + list(G.successors(n)))
        if not centres:
            ideal.append(xs[n])
            continue
        mid = len(centres) // 2
        median = centres[mid] if len(centres) % 2 else (centres[mid - 1] + centres[mid]) / 2.0
        ideal.append(median - width(n) / 2.0)

    # Push right to honour spacing, then pull left back toward the ideal
    for i in range(1, len(layer)):
        ideal[i] = max(ideal[i], ideal[i - 1] + width(layer[i - 1]) + node_sep)
    for i in range(len(layer) - 2, -1, -1):
        ideal[i] = min(ideal[i], ideal[i + 1] - width(layer[i]) - node_sep)

    for n, x in zip(layer, ideal):
        xs[n] = x
