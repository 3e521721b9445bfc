"""Critical path API."""

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse

from critical_path import CriticalPathView
from db import get_graph
from shared import GraphSnapshot

router = APIRouter()


@router.get("")
async def get_critical_path(
    project_id: str = Query("default", alias="projectId"),
    incomplete_only: bool = Query(False, alias="incompleteOnly"),
):
    try:
        nodes = await get_graph(project_id)
    except ValueError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})
    view = CriticalPathView(GraphSnapshot.from_nodes(nodes), incomplete_only=incomplete_only)
    return {
        **view.to_dict(),
        "orderedNodes": [n.model_dump(by_alias=True, mode="json") for n in view.critical_path.ordered_nodes],
    }
