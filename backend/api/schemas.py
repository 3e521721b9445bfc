"""Pydantic request/response schemas for API."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from shared import WorkNode


class GraphUpdateRequest(BaseModel):
    """Full replacement of a project's work items."""
    model_config = ConfigDict(populate_by_name=True)
    project_id: str = Field(default="default", alias="projectId")
    nodes: List[WorkNode] = Field(default_factory=list)


class ProjectRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    project_id: str = Field(default="default", alias="projectId")


class ManualPositionRequest(BaseModel):
    """Drag-end: the node's final on-screen position."""
    model_config = ConfigDict(populate_by_name=True)
    project_id: str = Field(default="default", alias="projectId")
    node_id: str = Field(..., alias="nodeId")
    x: float
    y: float


class ClearRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    project_id: Optional[str] = Field(default=None, alias="projectId")
