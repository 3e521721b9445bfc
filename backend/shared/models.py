"""Work-item graph model: nodes, dependency edges, and the snapshot both subsystems read."""

from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

import networkx as nx
from pydantic import BaseModel, ConfigDict, Field


class NodeKind(str, Enum):
    TASK = "task"
    DECISION = "decision"
    COMPONENT = "component"
    NOTE = "note"
    SUBSYSTEM = "subsystem"
    ASSEMBLY = "assembly"
    MODULE = "module"


CONTAINER_KINDS = frozenset({NodeKind.SUBSYSTEM, NodeKind.ASSEMBLY, NodeKind.MODULE})


def edge_key(from_id: str, to_id: str) -> str:
    """Lookup key for a directed edge, e.g. ('a', 'b') -> 'a->b'."""
    return f"{from_id}->{to_id}"


class WorkNode(BaseModel):
    """A work item. `depends_on` lists ids that must complete before this node."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., min_length=1)
    kind: NodeKind
    title: str = ""
    status: Optional[str] = None
    parent_id: Optional[str] = Field(None, alias="parentId")
    depends_on: List[str] = Field(default_factory=list, alias="dependsOn")
    position_override: bool = Field(False, alias="positionOverride")

    def is_incomplete(self) -> bool:
        """Tasks until complete, decisions until selected. Other kinds never count."""
        if self.kind == NodeKind.TASK:
            return self.status != "complete"
        if self.kind == NodeKind.DECISION:
            return self.status != "selected"
        return False

    def can_be_on_critical_path(self) -> bool:
        return self.kind in (NodeKind.TASK, NodeKind.DECISION)


class DependencyEdge(BaseModel):
    """from_id must complete before to_id may proceed."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    from_id: str = Field(..., alias="fromId")
    to_id: str = Field(..., alias="toId")

    @property
    def key(self) -> str:
        return edge_key(self.from_id, self.to_id)


class GraphSnapshot(BaseModel):
    """Read-only view of the graph store at one point in time."""

    nodes: Dict[str, WorkNode] = Field(default_factory=dict)
    dependency_edges: List[DependencyEdge] = Field(default_factory=list)

    @classmethod
    def from_nodes(cls, nodes: Iterable[WorkNode]) -> "GraphSnapshot":
        """Derive dependency edges from each node's depends_on list. Unknown ids, self-references and duplicates are dropped."""
        by_id: Dict[str, WorkNode] = {}
        for n in nodes or []:
            by_id[n.id] = n
        edges: List[DependencyEdge] = []
        seen = set()
        for n in by_id.values():
            for dep in n.depends_on or []:
                if dep not in by_id or dep == n.id:
                    continue
                key = edge_key(dep, n.id)
                if key in seen:
                    continue
                seen.add(key)
                edges.append(DependencyEdge(from_id=dep, to_id=n.id))
        return cls(nodes=by_id, dependency_edges=edges)

    def containment_edges(self) -> List[Tuple[str, str]]:
        """(parent_id, child_id) pairs whose parent is present."""
        return [
            (n.parent_id, n.id)
            for n in self.nodes.values()
            if n.parent_id and n.parent_id in self.nodes and n.parent_id != n.id
        ]

    def structural_key(self) -> str:
        """Topology fingerprint: equal keys mean layout-equivalent snapshots."""
        node_ids = ",".join(sorted(self.nodes))
        edge_ids = sorted({e.key for e in self.dependency_edges})
        edge_ids += sorted(f"{p}=>{c}" for p, c in self.containment_edges())
        return node_ids + "|" + ",".join(edge_ids)

    def to_digraph(self) -> nx.DiGraph:
        """Dependency edges as a networkx DiGraph (containment not included)."""
        from .graph import build_dependency_graph

        return build_dependency_graph(self.nodes.values(), self.dependency_edges)
