"""
API module - routes and schemas.
Routes are split by domain: db, graph, critical-path, layout.
"""

from .routes import register_routes
from .state import ProjectLayouts

__all__ = ["ProjectLayouts", "register_routes"]
