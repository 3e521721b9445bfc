"""Query facade the rendering layer uses: membership, rank, slack, edge highlighting."""

from typing import Dict, FrozenSet, List

from shared import GraphSnapshot

from .analyzer import CriticalPathResult, analyze_snapshot, calculate_slack, non_critical_incomplete


class CriticalPathView:
    """Recomputed from a snapshot; cheap enough to build on every render."""

    def __init__(self, snapshot: GraphSnapshot, incomplete_only: bool = False):
        self.snapshot = snapshot
        self.critical_path: CriticalPathResult = analyze_snapshot(snapshot, incomplete_only=incomplete_only)
        self._ranks: Dict[str, int] = {n.id: i for i, n in enumerate(self.critical_path.ordered_nodes)}
        self._slack = calculate_slack(snapshot.nodes, self.critical_path)

    @property
    def has_path(self) -> bool:
        return self.critical_path.has_path

    @property
    def edge_keys(self) -> FrozenSet[str]:
        return self.critical_path.edge_keys

    @property
    def path_length(self) -> int:
        return self.critical_path.length

    @property
    def critical_path_node_ids(self) -> List[str]:
        return list(self._ranks)

    @property
    def non_critical_incomplete_ids(self) -> List[str]:
        return non_critical_incomplete(self.snapshot.nodes, self.critical_path)

    def check_is_on_critical_path(self, node_id: str) -> bool:
        return node_id in self._ranks

    def check_is_edge_on_critical_path(self, from_id: str, to_id: str) -> bool:
        return self.critical_path.contains_edge(from_id, to_id)

    def get_node_position(self, node_id: str) -> int:
        """Rank on the chain (0-based), -1 when not on it."""
        return self._ranks.get(node_id, -1)

    def get_slack(self, node_id: str) -> int:
        return self._slack.get(node_id, -1)

    def to_dict(self) -> dict:
        return {
            "hasPath": self.has_path,
            "nodeIds": self.critical_path_node_ids,
            "edgeKeys": sorted(self.edge_keys),
            "length": self.path_length,
            "ranks": dict(self._ranks),
            "nonCriticalIncompleteIds": self.non_critical_incomplete_ids,
        }
