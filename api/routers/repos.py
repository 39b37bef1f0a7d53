"""Repository endpoints for the Commitstream API.

This module provides endpoints for acquiring a repository without streaming
and for reading snapshots (commits, branches, file modifications) of
repositories that have already been acquired.
"""

from datetime import datetime

import structlog
from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field

from api.dependencies import OrchestratorDep, RepositoryStoreDep
from core.ingestion.branches import ReadError
from core.ingestion.history import WalkError
from core.ingestion.models import RepositoryHandle
from core.ingestion.repo import AcquisitionError, RepositoryNotFoundError, derive_repo_id

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/repos", tags=["Repositories"])


class AcquireRepositoryRequest(BaseModel):
    """Request model for acquiring a repository.

    Attributes:
        repo_url: Git repository URL (HTTPS, SSH or local path).
    """

    model_config = ConfigDict(populate_by_name=True)

    repo_url: str = Field(..., alias="repoUrl", min_length=1, description="Repository URL")


class RepositoryResponse(BaseModel):
    """Response model for repository details.

    Attributes:
        id: Repository identifier.
        url: Source URL, if known.
        head: Current HEAD commit SHA.
        default_branch: Checked-out branch.
        cloned: Whether this request performed the clone.
    """

    id: str = Field(..., description="Repository ID")
    url: str | None = Field(None, description="Repository URL")
    head: str | None = Field(None, description="HEAD commit SHA")
    default_branch: str | None = Field(None, description="Checked-out branch")
    cloned: bool = Field(False, description="Whether this request cloned")

    @classmethod
    def from_handle(cls, handle: RepositoryHandle) -> "RepositoryResponse":
        return cls(
            id=handle.identifier,
            url=handle.source_url,
            head=handle.head,
            default_branch=handle.default_branch,
            cloned=handle.cloned,
        )


class CommitSummary(BaseModel):
    """A commit in a history listing."""

    hash: str
    author: str
    email: str
    date: datetime
    message: str


class CommitListResponse(BaseModel):
    """Response model for listing commits.

    Attributes:
        repo_id: Repository identifier.
        commits: Commits, newest first.
        total: Number of commits returned.
    """

    repo_id: str = Field(..., description="Repository ID")
    commits: list[CommitSummary] = Field(..., description="Commits, newest first")
    total: int = Field(..., description="Total count")


class BranchListResponse(BaseModel):
    """Response model for listing branches.

    Attributes:
        repo_id: Repository identifier.
        branches: Sorted local branch names.
        total: Number of branches.
    """

    repo_id: str = Field(..., description="Repository ID")
    branches: list[str] = Field(..., description="Local branch names")
    total: int = Field(..., description="Total count")


class FileModification(BaseModel):
    """Lines changed in one file by one commit."""

    model_config = ConfigDict(populate_by_name=True)

    file: str
    additions: int
    deletions: int
    commit_hash: str = Field(..., alias="commitHash")
    message: str


class ModificationListResponse(BaseModel):
    """Response model for listing file modifications.

    Attributes:
        repo_id: Repository identifier.
        modifications: One entry per file per commit.
        total: Number of entries.
    """

    repo_id: str = Field(..., description="Repository ID")
    modifications: list[FileModification] = Field(..., description="File modifications")
    total: int = Field(..., description="Total count")


def _not_found(repo_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Repository '{repo_id}' not found",
    )


@router.post(
    "",
    response_model=RepositoryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Acquire repository",
    description="Clone a repository, or open it if a local copy already exists.",
)
async def acquire_repository(
    request: AcquireRepositoryRequest,
    store: RepositoryStoreDep,
) -> RepositoryResponse:
    """Materialize a repository without streaming its history.

    Args:
        request: Acquisition request with the repository URL.
        store: Repository store.

    Returns:
        RepositoryResponse describing the local copy.

    Raises:
        HTTPException: If the URL is unusable or the clone fails.
    """
    try:
        repo_id = derive_repo_id(request.repo_url)
    except AcquisitionError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message) from e

    try:
        handle = await store.acquire(repo_id, request.repo_url)
    except AcquisitionError as e:
        logger.error("Failed to acquire repository", repo_id=repo_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to acquire repository: {e.message}",
        ) from e

    logger.info("Repository acquired", repo_id=repo_id, cloned=handle.cloned)
    return RepositoryResponse.from_handle(handle)


@router.get(
    "/{repo_id}",
    response_model=RepositoryResponse,
    summary="Get repository",
    description="Get details of an acquired repository.",
)
async def get_repository(
    repo_id: str,
    store: RepositoryStoreDep,
) -> RepositoryResponse:
    """Get details of an acquired repository.

    Raises:
        HTTPException: If repository not found.
    """
    try:
        handle = await store.get(repo_id)
    except RepositoryNotFoundError as e:
        raise _not_found(repo_id) from e
    except AcquisitionError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=e.message,
        ) from e

    return RepositoryResponse.from_handle(handle)


@router.get(
    "/{repo_id}/commits",
    response_model=CommitListResponse,
    summary="List commits",
    description="List the commit history of an acquired repository, newest first.",
)
async def list_commits(
    repo_id: str,
    orchestrator: OrchestratorDep,
    limit: int | None = Query(None, ge=1, description="Maximum number of commits"),
) -> CommitListResponse:
    """List the commit history of an acquired repository.

    Args:
        repo_id: Repository identifier.
        orchestrator: Orchestrator serving the snapshot.
        limit: Maximum number of commits.

    Returns:
        CommitListResponse with the commits.

    Raises:
        HTTPException: If the repository is unknown or its history unreadable.
    """
    try:
        commits = await orchestrator.list_commits(repo_id, limit=limit)
    except RepositoryNotFoundError as e:
        raise _not_found(repo_id) from e
    except (AcquisitionError, WalkError) as e:
        logger.error("Failed to list commits", repo_id=repo_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to read commit history",
        ) from e

    return CommitListResponse(
        repo_id=repo_id,
        commits=[CommitSummary(**commit) for commit in commits],
        total=len(commits),
    )


@router.get(
    "/{repo_id}/branches",
    response_model=BranchListResponse,
    summary="List branches",
    description="List the local branches of an acquired repository.",
)
async def list_branches(
    repo_id: str,
    orchestrator: OrchestratorDep,
) -> BranchListResponse:
    """List the local branches of an acquired repository.

    Raises:
        HTTPException: If the repository is unknown or its references unreadable.
    """
    try:
        branches = await orchestrator.list_branches(repo_id)
    except RepositoryNotFoundError as e:
        raise _not_found(repo_id) from e
    except (AcquisitionError, ReadError) as e:
        logger.error("Failed to list branches", repo_id=repo_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to read branches",
        ) from e

    return BranchListResponse(repo_id=repo_id, branches=branches, total=len(branches))


@router.get(
    "/{repo_id}/modifications",
    response_model=ModificationListResponse,
    response_model_by_alias=True,
    summary="List file modifications",
    description="List lines added and removed per file for every commit.",
)
async def list_modifications(
    repo_id: str,
    orchestrator: OrchestratorDep,
    limit: int | None = Query(None, ge=1, description="Maximum number of commits"),
) -> ModificationListResponse:
    """List per-file line changes across the history of a repository.

    Args:
        repo_id: Repository identifier.
        orchestrator: Orchestrator serving the snapshot.
        limit: Maximum number of commits to include.

    Returns:
        ModificationListResponse with one entry per file per commit.

    Raises:
        HTTPException: If the repository is unknown or its history unreadable.
    """
    try:
        modifications = await orchestrator.list_modifications(repo_id, limit=limit)
    except RepositoryNotFoundError as e:
        raise _not_found(repo_id) from e
    except (AcquisitionError, WalkError) as e:
        logger.error("Failed to list modifications", repo_id=repo_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to read commit history",
        ) from e

    return ModificationListResponse(
        repo_id=repo_id,
        modifications=[FileModification(**item) for item in modifications],
        total=len(modifications),
    )
