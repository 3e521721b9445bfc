"""Layout API - current positions, drag-end pinning, reset layout."""

from typing import Optional

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse

from layout import LayoutStatus, center_positions, default_position

from .. import state as api_state
from ..schemas import ManualPositionRequest, ProjectRequest

router = APIRouter()


@router.get("/positions")
async def get_positions(
    project_id: str = Query("default", alias="projectId"),
    viewport_w: Optional[float] = Query(None, alias="viewportW"),
    viewport_h: Optional[float] = Query(None, alias="viewportH"),
):
    """Stored snapshot plus `placed`: every current node, grid slot for the unpositioned ones."""
    try:
        scheduler = await api_state.project_layouts.get(project_id)
    except ValueError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})
    positions = scheduler.positions
    graph = scheduler.state.graph
    placed = {}
    for idx, nid in enumerate(graph.nodes if graph else []):
        placed[nid] = positions.get(nid) or default_position(idx)
    if viewport_w is not None and viewport_h is not None:
        placed = center_positions(placed, viewport_w, viewport_h)
    return {
        "positions": positions,
        "placed": placed,
        "manualIds": sorted(scheduler.manual_ids),
        "status": scheduler.status.value,
    }


@router.post("/manual")
async def mark_manual(body: ManualPositionRequest):
    try:
        scheduler = await api_state.project_layouts.get(body.project_id)
    except ValueError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})
    ok = await scheduler.mark_manual(body.node_id, {"x": body.x, "y": body.y})
    return {"success": ok}


@router.post("/reset")
async def reset_layout(body: ProjectRequest):
    try:
        scheduler = await api_state.project_layouts.get(body.project_id)
    except ValueError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})
    if scheduler.status == LayoutStatus.RUNNING:
        return JSONResponse(status_code=409, content={"error": "Layout is already running"})
    ok = await scheduler.reset_layout()
    return {"success": ok, "positions": scheduler.positions}
