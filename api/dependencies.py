"""Dependency injection setup for the Commitstream API.

This module provides FastAPI dependency functions for injecting
services and resources into route handlers.
"""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends

from core.ingestion.pipeline import IngestionOrchestrator
from core.ingestion.repo import RepositoryStore

from .config import Settings, get_settings

# Type aliases for dependency injection
SettingsDep = Annotated[Settings, Depends(get_settings)]


# Process-wide instances shared by all sessions
_repository_store: RepositoryStore | None = None
_orchestrator: IngestionOrchestrator | None = None


async def init_dependencies(settings: Settings) -> None:
    """Initialize global dependencies on application startup.

    Creates the repository store and the orchestrator that will be shared
    across all requests.

    Args:
        settings: Application settings instance.
    """
    global _repository_store, _orchestrator

    _repository_store = RepositoryStore(
        root=settings.repos_root,
        clone_timeout=settings.clone_timeout,
    )
    _repository_store.root.mkdir(parents=True, exist_ok=True)

    _orchestrator = IngestionOrchestrator(
        _repository_store,
        config=settings.ingestion_config(),
    )


async def shutdown_dependencies() -> None:
    """Release dependencies on application shutdown."""
    global _repository_store, _orchestrator

    _repository_store = None
    _orchestrator = None


async def get_repository_store() -> AsyncGenerator[RepositoryStore, None]:
    """Get the repository store.

    Yields:
        The shared RepositoryStore instance.

    Raises:
        RuntimeError: If dependencies have not been initialized.
    """
    if _repository_store is None:
        raise RuntimeError(
            "Repository store not initialized. Ensure init_dependencies() was called on startup."
        )
    yield _repository_store


async def get_orchestrator() -> AsyncGenerator[IngestionOrchestrator, None]:
    """Get the ingestion orchestrator.

    Yields:
        The shared IngestionOrchestrator instance.

    Raises:
        RuntimeError: If dependencies have not been initialized.
    """
    if _orchestrator is None:
        raise RuntimeError(
            "Orchestrator not initialized. Ensure init_dependencies() was called on startup."
        )
    yield _orchestrator


# Type aliases for commonly used dependencies
RepositoryStoreDep = Annotated[RepositoryStore, Depends(get_repository_store)]
OrchestratorDep = Annotated[IngestionOrchestrator, Depends(get_orchestrator)]
