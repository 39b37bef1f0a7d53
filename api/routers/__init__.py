"""API routers for the Commitstream application.

This module exports all API routers for inclusion in the main FastAPI app.
"""

from .health import router as health_router
from .repos import router as repos_router
from .stream import router as stream_router

__all__ = [
    "health_router",
    "repos_router",
    "stream_router",
]
