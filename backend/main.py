"""
Forge Graph Backend - FastAPI + Socket.io entry point.
Serves the work-item graph, its critical path and auto-layout positions.
Run with: uvicorn main:asgi_app
"""

from contextlib import asynccontextmanager

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from api import ProjectLayouts, register_routes
from api import state as api_state
from layout import SugiyamaSolver

# Socket.io
sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins="*")

project_layouts = ProjectLayouts(SugiyamaSolver())


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await project_layouts.discard()


app = FastAPI(title="Forge Graph Backend", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_routes(app, sio, project_layouts)


@app.get("/api/health")
async def health():
    return {"status": "ok", "projects": len(api_state.project_layouts.schedulers)}


# Socket.io events
@sio.event
async def connect(sid, environ, auth):
    logger.info("Client connected: {}", sid)


@sio.event
def disconnect(sid):
    logger.info("Client disconnected: {}", sid)


# ASGI app for uvicorn (Socket.io + FastAPI)
asgi_app = socketio.ASGIApp(sio, app)
