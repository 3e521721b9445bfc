"""
Shared API state - sio, layout solver, one LayoutScheduler per project.
Initialized by main.py after creating app and services.
"""

import asyncio
from typing import Any, Dict, Optional

from loguru import logger

from db import get_graph, get_node_positions, save_node_positions
from layout import LayoutScheduler, LayoutSolver
from shared import GraphSnapshot

POSITIONS_EVENT = "layout-positions-update"


class ProjectLayouts:
    """Lazily creates a scheduler per project, seeded from stored metadata."""

    def __init__(self, solver: LayoutSolver, **scheduler_options):
        self.solver = solver
        self.scheduler_options = scheduler_options
        self.schedulers: Dict[str, LayoutScheduler] = {}
        self.lock = asyncio.Lock()

    async def get(self, project_id: str) -> LayoutScheduler:
        async with self.lock:
            scheduler = self.schedulers.get(project_id)
            if scheduler is None:
                scheduler = await self._create(project_id)
                self.schedulers[project_id] = scheduler
        return scheduler

    async def _create(self, project_id: str) -> LayoutScheduler:
        stored = await get_node_positions(project_id)

        async def persist(positions):
            await save_node_positions(positions, project_id)

        async def render(positions):
            if sio is not None:
                await sio.emit(POSITIONS_EVENT, {"projectId": project_id, "positions": positions})

        scheduler = LayoutScheduler.from_metadata(
            self.solver,
            stored,
            on_positions_change=persist,
            on_render=render,
            **self.scheduler_options,
        )
        nodes = await get_graph(project_id)
        await scheduler.observe(GraphSnapshot.from_nodes(nodes))
        logger.info("Layout scheduler ready for project {} ({} node(s))", project_id, len(nodes))
        return scheduler

    async def discard(self, project_id: Optional[str] = None) -> None:
        ids = [project_id] if project_id else list(self.schedulers)
        for pid in ids:
            scheduler = self.schedulers.pop(pid, None)
            if scheduler is not None:
                await scheduler.close()


# Set by main.py
sio: Any = None
project_layouts: Optional[ProjectLayouts] = None


def init_api_state(sio_instance, layouts: ProjectLayouts):
    global sio, project_layouts
    sio = sio_instance
    project_layouts = layouts
