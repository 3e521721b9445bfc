"""Builders and fake solvers shared by the tests."""

import asyncio
from typing import Dict, List, Optional

from shared import GraphSnapshot, NodeKind, WorkNode


def task(node_id: str, deps=(), status: Optional[str] = None, **kwargs) -> WorkNode:
    kwargs.setdefault("title", node_id.upper())
    return WorkNode(id=node_id, kind=NodeKind.TASK, status=status, depends_on=list(deps), **kwargs)


def snapshot(*nodes: WorkNode) -> GraphSnapshot:
    return GraphSnapshot.from_nodes(nodes)


def chain(*ids: str) -> GraphSnapshot:
    """a -> b -> c ... as tasks."""
    nodes = [task(ids[0])] + [task(nid, deps=[prev]) for prev, nid in zip(ids, ids[1:])]
    return GraphSnapshot.from_nodes(nodes)


class RecordingSolver:
    """Places node i at (i*10, i*10) in id order and records every call."""

    def __init__(self, offset: float = 0.0):
        self.calls: List[GraphSnapshot] = []
        self.offset = offset

    async def solve(self, snap: GraphSnapshot) -> Dict[str, Dict[str, float]]:
        self.calls.append(snap)
        return {
            nid: {"x": self.offset + i * 10.0, "y": self.offset + i * 10.0}
            for i, nid in enumerate(sorted(snap.nodes))
        }


class FailingSolver:
    def __init__(self):
        self.calls = 0

    async def solve(self, snap: GraphSnapshot):
        self.calls += 1
        raise RuntimeError("solver exploded")


class GatedSolver(RecordingSolver):
    """Blocks inside solve() until release() is called."""

    def __init__(self):
        super().__init__()
        self.gate = asyncio.Event()
        self.entered = asyncio.Event()
        self.active = 0
        self.max_active = 0
        self.entries = 0

    def release(self) -> None:
        self.gate.set()

    async def solve(self, snap: GraphSnapshot):
        self.entries += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        self.entered.set()
        try:
            await self.gate.wait()
            return await super().solve(snap)
        finally:
            self.active -= 1


class SlowSolver(RecordingSolver):
    def __init__(self, delay: float):
        super().__init__()
        self.delay = delay

    async def solve(self, snap: GraphSnapshot):
        await asyncio.sleep(self.delay)
        return await super().solve(snap)
