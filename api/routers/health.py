"""Health check endpoints for the Commitstream API.

This module provides endpoints for monitoring application health,
readiness, and liveness. Used by orchestration systems like Kubernetes.
"""

import os
from enum import Enum

import structlog
from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from api.dependencies import RepositoryStoreDep

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])


class HealthStatus(str, Enum):
    """Health check status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DEGRADED = "degraded"


class HealthResponse(BaseModel):
    """Response model for health check endpoints.

    Attributes:
        status: Overall health status.
        message: Optional status message.
    """

    status: HealthStatus = Field(..., description="Health status")
    message: str | None = Field(None, description="Optional status message")


class ReadinessResponse(BaseModel):
    """Response model for readiness check.

    Attributes:
        status: Overall readiness status.
        checks: Individual check results.
    """

    status: HealthStatus = Field(..., description="Overall readiness status")
    checks: dict[str, dict[str, str]] = Field(
        default_factory=dict,
        description="Individual check results",
    )


class LivenessResponse(BaseModel):
    """Response model for liveness check.

    Attributes:
        status: Liveness status.
    """

    status: HealthStatus = Field(..., description="Liveness status")


@router.get(
    "",
    response_model=HealthResponse,
    summary="Basic health check",
    description="Returns basic health status of the API.",
)
async def health_check() -> HealthResponse:
    """Basic health check endpoint.

    Returns a simple healthy status indicating the API is running.
    This endpoint does not check the repository storage.

    Returns:
        HealthResponse with healthy status.
    """
    return HealthResponse(
        status=HealthStatus.HEALTHY,
        message="Commitstream API is running",
    )


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    summary="Readiness check",
    description="Checks if the application is ready to handle requests.",
    responses={
        status.HTTP_200_OK: {"description": "Application is ready"},
    },
)
async def readiness_check(store: RepositoryStoreDep) -> ReadinessResponse:
    """Readiness check endpoint.

    Verifies that the repository storage root exists and is writable, since
    every ingestion session needs it to materialize repositories.

    Args:
        store: Repository store whose root is checked.

    Returns:
        ReadinessResponse with check results.
    """
    checks: dict[str, dict[str, str]] = {}
    root = store.root

    if root.is_dir() and os.access(root, os.W_OK):
        checks["storage"] = {"status": "healthy", "path": str(root)}
        overall_healthy = True
    else:
        logger.warning("Repository storage not writable", path=str(root))
        checks["storage"] = {
            "status": "unhealthy",
            "message": f"Storage root is missing or not writable: {root}",
        }
        overall_healthy = False

    return ReadinessResponse(
        status=HealthStatus.HEALTHY if overall_healthy else HealthStatus.UNHEALTHY,
        checks=checks,
    )


@router.get(
    "/live",
    response_model=LivenessResponse,
    summary="Liveness check",
    description="Checks if the application process is alive.",
)
async def liveness_check() -> LivenessResponse:
    """Liveness check endpoint.

    Returns:
        LivenessResponse with alive status.
    """
    return LivenessResponse(status=HealthStatus.HEALTHY)
