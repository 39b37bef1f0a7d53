"""Commitstream - API module for HTTP endpoints.

This module provides the FastAPI application and all related components
for the Commitstream repository history API.
"""

from .config import Settings, get_settings
from .dependencies import get_orchestrator, get_repository_store
from .main import app, create_app

__all__ = [
    "app",
    "create_app",
    "get_orchestrator",
    "get_repository_store",
    "get_settings",
    "Settings",
]
