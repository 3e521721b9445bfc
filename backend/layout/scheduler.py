"""
Layout Scheduler - decides when to run the layout solver and merges its output
with positions the user placed by hand.

States: idle -> pending_debounce -> running -> idle.
  - Structural change (node/edge set) arms a debounce timer; bursts coalesce.
  - First observation runs the solver at once unless most nodes already have a position.
  - At most one solver call in flight; a timer firing while running is skipped and
    the change is picked up when the run finishes.
  - Manually placed nodes keep their position across automatic runs.
Single event loop, no threads: the running flag is a re-entrancy guard, not a lock.
"""

import asyncio
import inspect
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Set

from loguru import logger

from shared import GraphSnapshot
from shared.config import LAYOUT_COVERAGE_THRESHOLD, LAYOUT_DEBOUNCE_MS, LAYOUT_SOLVER_TIMEOUT

from .solver import LayoutSolver, NodePositions

PositionsListener = Callable[[NodePositions], Any]


class LayoutStatus(str, Enum):
    IDLE = "idle"
    PENDING_DEBOUNCE = "pending_debounce"
    RUNNING = "running"


@dataclass
class LayoutState:
    """Everything the scheduler mutates. One instance per graph view."""
    status: LayoutStatus = LayoutStatus.IDLE
    structural_key: Optional[str] = None
    manual_ids: Set[str] = field(default_factory=set)
    dragged_during_run: Set[str] = field(default_factory=set)
    positions: NodePositions = field(default_factory=dict)
    graph: Optional[GraphSnapshot] = None
    timer: Optional[asyncio.TimerHandle] = None
    run_task: Optional[asyncio.Task] = None


def _clean_position(pos: Mapping[str, Any]) -> Optional[Dict[str, float]]:
    try:
        return {"x": float(pos["x"]), "y": float(pos["y"])}
    except (KeyError, TypeError, ValueError):
        return None


class LayoutScheduler:
    def __init__(
        self,
        solver: LayoutSolver,
        state: Optional[LayoutState] = None,
        on_positions_change: Optional[PositionsListener] = None,
        on_render: Optional[PositionsListener] = None,
        debounce_ms: int = LAYOUT_DEBOUNCE_MS,
        coverage_threshold: float = LAYOUT_COVERAGE_THRESHOLD,
        solver_timeout: Optional[float] = LAYOUT_SOLVER_TIMEOUT,
    ):
        self.solver = solver
        self.state = state or LayoutState()
        self.on_positions_change = on_positions_change
        self.on_render = on_render
        self.debounce_ms = debounce_ms
        self.coverage_threshold = coverage_threshold
        self.solver_timeout = solver_timeout
        self._idle = asyncio.Event()
        if self.state.status == LayoutStatus.IDLE:
            self._idle.set()

    @classmethod
    def from_metadata(
        cls,
        solver: LayoutSolver,
        node_positions: Optional[Mapping[str, Mapping[str, Any]]],
        **kwargs,
    ) -> "LayoutScheduler":
        """Seed positions from stored project metadata. Seeded nodes are not marked manual."""
        positions: NodePositions = {}
        for nid, pos in (node_positions or {}).items():
            cleaned = _clean_position(pos) if isinstance(pos, Mapping) else None
            if cleaned is not None:
                positions[nid] = cleaned
        return cls(solver, state=LayoutState(positions=positions), **kwargs)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def status(self) -> LayoutStatus:
        return self.state.status

    @property
    def positions(self) -> NodePositions:
        return {nid: dict(p) for nid, p in self.state.positions.items()}

    @property
    def manual_ids(self) -> Set[str]:
        return set(self.state.manual_ids)

    def get_position(self, node_id: str) -> Optional[Dict[str, float]]:
        pos = self.state.positions.get(node_id)
        return dict(pos) if pos else None

    def coverage(self, snapshot: GraphSnapshot) -> float:
        """Fraction of snapshot nodes that already have a position. Empty graph counts as covered."""
        if not snapshot.nodes:
            return 1.0
        placed = sum(1 for nid in snapshot.nodes if nid in self.state.positions)
        return placed / len(snapshot.nodes)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def observe(self, snapshot: GraphSnapshot) -> LayoutStatus:
        """Graph model changed. Returns the status after handling the change."""
        state = self.state
        key = snapshot.structural_key()
        first = state.structural_key is None
        state.graph = snapshot

        if not first and key == state.structural_key:
            logger.debug("Layout: cosmetic change only, positions untouched")
            return state.status

        state.structural_key = key
        if first:
            coverage = self.coverage(snapshot)
            if coverage > self.coverage_threshold:
                logger.info("Layout: {:.0%} of nodes already positioned, solver skipped", coverage)
                return state.status
            logger.info("Layout: {:.0%} of nodes positioned, running initial layout", coverage)
            self._begin_run()
            await self._run(snapshot, reset=False)
            return state.status

        self._arm_timer()
        return state.status

    async def mark_manual(self, node_id: str, position: Mapping[str, Any]) -> bool:
        """Drag ended: pin the node where the user left it. Unknown ids are ignored."""
        state = self.state
        cleaned = _clean_position(position)
        if state.graph is None or node_id not in state.graph.nodes or cleaned is None:
            logger.debug("Layout: ignoring manual position for unknown node {}", node_id)
            return False
        state.manual_ids.add(node_id)
        if state.status == LayoutStatus.RUNNING:
            state.dragged_during_run.add(node_id)
        state.positions = {**state.positions, node_id: cleaned}
        await self._publish(state.positions)
        return True

    async def reset_layout(self) -> bool:
        """
        Re-run the solver for all nodes and adopt its output for every one of them,
        manual nodes included. Clears manual pins, except for nodes dragged while the
        reset run was in flight: those keep the dropped position and stay pinned.
        False when busy or nothing to lay out.
        """
        state = self.state
        if state.status == LayoutStatus.RUNNING:
            logger.debug("Layout: reset ignored, solver already running")
            return False
        if state.graph is None or not state.graph.nodes:
            return False
        self._cancel_timer()
        self._begin_run()
        return await self._run(state.graph, reset=True)

    async def wait_idle(self) -> None:
        await self._idle.wait()

    async def close(self) -> None:
        """Drop a pending timer and stop an in-flight run (shutdown only)."""
        task = self.state.run_task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._cancel_timer()
        self.state.run_task = None
        self.state.status = LayoutStatus.IDLE
        self._idle.set()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _cancel_timer(self) -> None:
        if self.state.timer is not None:
            self.state.timer.cancel()
            self.state.timer = None

    def _arm_timer(self) -> None:
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self.state.timer = loop.call_later(self.debounce_ms / 1000.0, self._on_timer)
        if self.state.status != LayoutStatus.RUNNING:
            self.state.status = LayoutStatus.PENDING_DEBOUNCE
        self._idle.clear()

    def _on_timer(self) -> None:
        state = self.state
        state.timer = None
        if state.status == LayoutStatus.RUNNING:
            logger.debug("Layout: debounce fired while running, skipped")
            return
        if state.graph is None:
            state.status = LayoutStatus.IDLE
            self._idle.set()
            return
        self._begin_run()
        state.run_task = asyncio.ensure_future(self._run(state.graph, reset=False))

    def _begin_run(self) -> None:
        self.state.status = LayoutStatus.RUNNING
        self.state.dragged_during_run.clear()
        self._idle.clear()

    async def _solve(self, snapshot: GraphSnapshot) -> NodePositions:
        if self.solver_timeout:
            return await asyncio.wait_for(self.solver.solve(snapshot), self.solver_timeout)
        return await self.solver.solve(snapshot)

    async def _run(self, snapshot: GraphSnapshot, reset: bool) -> bool:
        """
        Solve, merge, publish. Solver failures leave positions unchanged.
        State is settled in _finish even when the caller is cancelled mid-solve.
        """
        run_key = snapshot.structural_key()
        logger.info("Layout: solving {} node(s){}", len(snapshot.nodes), " (reset)" if reset else "")
        try:
            solved = await self._solve(snapshot)
        except Exception as e:
            logger.warning("Layout solver failed, keeping previous positions: {}", e)
            return False
        else:
            self.state.positions = self._merge(solved or {}, reset)
            await self._publish(self.state.positions)
            return True
        finally:
            self._finish(run_key)

    def _is_pinned(self, node_id: str) -> bool:
        if node_id in self.state.manual_ids:
            return True
        node = self.state.graph.nodes.get(node_id) if self.state.graph else None
        return bool(node and node.position_override)

    def _merge(self, solved: Mapping[str, Mapping[str, Any]], reset: bool) -> NodePositions:
        """
        Solver output for every node except pinned ones. On reset only nodes dragged
        during the run count as pinned. Drops nodes that are gone.
        """
        state = self.state
        current = state.graph.nodes if state.graph else {}
        previous = state.positions
        merged: NodePositions = {}
        for nid in current:
            candidate = _clean_position(solved[nid]) if nid in solved else None
            pinned = nid in state.dragged_during_run if reset else self._is_pinned(nid)
            if pinned and nid in previous:
                merged[nid] = dict(previous[nid])
            elif candidate is not None:
                merged[nid] = candidate
            elif nid in previous:
                merged[nid] = dict(previous[nid])
        if reset:
            state.manual_ids = state.dragged_during_run & set(current)
        else:
            state.manual_ids.intersection_update(current)
        state.dragged_during_run.clear()
        return merged

    def _finish(self, run_key: str) -> None:
        state = self.state
        state.run_task = None
        if state.timer is not None:
            state.status = LayoutStatus.PENDING_DEBOUNCE
        elif state.structural_key is not None and state.structural_key != run_key:
            logger.debug("Layout: graph changed during run, scheduling another pass")
            state.status = LayoutStatus.IDLE
            self._arm_timer()
        else:
            state.status = LayoutStatus.IDLE
            self._idle.set()

    async def _publish(self, positions: NodePositions) -> None:
        for listener in (self.on_positions_change, self.on_render):
            if listener is None:
                continue
            try:
                result = listener({nid: dict(p) for nid, p in positions.items()})
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Layout: positions listener failed")
