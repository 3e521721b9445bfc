"""DB API routes."""

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from db import clear_db, list_project_ids

from .. import state as api_state
from ..schemas import ClearRequest

router = APIRouter()


@router.get("/projects")
async def projects():
    return {"projectIds": await list_project_ids()}


@router.post("/clear")
async def clear(body: ClearRequest):
    """Clear DB: remove one project folder (or all) and drop their schedulers."""
    try:
        result = await clear_db(body.project_id)
    except ValueError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})
    await api_state.project_layouts.discard(body.project_id)
    return result
