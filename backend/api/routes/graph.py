"""Graph API - read and replace a project's work items."""

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse

from db import get_graph, save_graph
from shared import GraphSnapshot

from .. import state as api_state
from ..schemas import GraphUpdateRequest

router = APIRouter()


@router.get("")
async def get_graph_route(project_id: str = Query("default", alias="projectId")):
    try:
        nodes = await get_graph(project_id)
    except ValueError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})
    return {"nodes": [n.model_dump(by_alias=True, mode="json") for n in nodes]}


@router.put("")
async def put_graph(body: GraphUpdateRequest):
    """Replace nodes; the project's layout scheduler observes the new snapshot."""
    try:
        existing = {n.id: n for n in await get_graph(body.project_id)}
    except ValueError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})

    for node in body.nodes:
        old = existing.get(node.id)
        if old is not None and old.kind != node.kind:
            return JSONResponse(
                status_code=400,
                content={"error": f"Node {node.id}: kind cannot change ({old.kind.value} -> {node.kind.value})"},
            )

    snapshot = GraphSnapshot.from_nodes(body.nodes)
    await save_graph(list(snapshot.nodes.values()), body.project_id)
    scheduler = await api_state.project_layouts.get(body.project_id)
    status = await scheduler.observe(snapshot)
    return {
        "success": True,
        "count": len(snapshot.nodes),
        "edges": [e.key for e in snapshot.dependency_edges],
        "layoutStatus": status.value,
    }
