"""Branch enumeration for materialized repositories."""

import structlog

from .models import RepositoryHandle
from .repo import open_repo

logger = structlog.get_logger(__name__)


class ReadError(Exception):
    """Exception raised when repository references cannot be read.

    Attributes:
        message: Explanation of the error.
        repo_path: Path to the repository, if applicable.
    """

    def __init__(self, message: str, repo_path: str | None = None) -> None:
        self.message = message
        self.repo_path = repo_path

        full_message = f"{message} (repo={repo_path})" if repo_path else message
        super().__init__(full_message)


class BranchLister:
    """Lists the local branches of a repository.

    Tags and remote-tracking references are excluded. Names are returned in
    lexicographic order so the output is stable across calls.
    """

    def list_branches(self, handle: RepositoryHandle) -> list[str]:
        """Get the sorted local branch names of a repository.

        Args:
            handle: Repository to read.

        Returns:
            Branch names, e.g. ``["develop", "main"]``.

        Raises:
            ReadError: If the reference storage cannot be read.
        """
        try:
            with open_repo(handle.local_path) as repo:
                names = sorted(head.name for head in repo.heads)
        except Exception as e:
            raise ReadError(f"Failed to list branches: {e}", repo_path=handle.local_path)

        logger.debug("Listed branches", repo_id=handle.identifier, count=len(names))
        return names
