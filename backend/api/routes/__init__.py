"""API route modules."""

from fastapi import FastAPI

from . import analysis, db, graph, positions
from ..state import ProjectLayouts, init_api_state


def register_routes(app: FastAPI, sio, layouts: ProjectLayouts):
    """Register all API routers. Call after app, sio and the project layouts are created."""
    init_api_state(sio, layouts)

    app.include_router(db.router, prefix="/api/db", tags=["db"])
    app.include_router(graph.router, prefix="/api/graph", tags=["graph"])
    app.include_router(analysis.router, prefix="/api/critical-path", tags=["critical-path"])
    app.include_router(positions.router, prefix="/api/layout", tags=["layout"])
