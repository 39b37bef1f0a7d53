"""Commit history traversal.

This module walks the history of a materialized repository lazily, one commit
at a time, so arbitrarily long histories can be streamed without holding them
in memory. A commit that cannot be read is reported and skipped instead of
ending the walk.
"""

from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING

import structlog

from .models import CommitRecord, RepositoryHandle
from .repo import open_repo

if TYPE_CHECKING:
    from git import Commit

logger = structlog.get_logger(__name__)


class WalkError(Exception):
    """Exception raised when history cannot be read.

    Attributes:
        message: Explanation of the error.
        commit: SHA of the unreadable commit, None if the walk itself failed.
    """

    def __init__(self, message: str, commit: str | None = None) -> None:
        self.message = message
        self.commit = commit

        full_message = f"{message} (commit={commit})" if commit else message
        super().__init__(full_message)


WalkErrorCallback = Callable[[WalkError], None]


def commit_to_record(commit: "Commit") -> CommitRecord:
    """Read every field of a GitPython commit into a CommitRecord.

    GitPython loads commit objects lazily, so this is where unreadable
    objects surface.

    Args:
        commit: GitPython commit.

    Returns:
        The fully populated record.
    """
    message = commit.message
    if isinstance(message, bytes):
        message = message.decode("utf-8", errors="replace")

    return CommitRecord(
        hash=commit.hexsha,
        author=commit.author.name or "",
        email=commit.author.email or "",
        message=message,
        date=commit.authored_datetime,
        parents=tuple(parent.hexsha for parent in commit.parents),
    )


class HistoryWalker:
    """Produces the commit history of a repository, newest first.

    Every call to ``walk`` starts a fresh traversal. The returned generator
    may be abandoned at any point; closing it stops the underlying
    ``git rev-list`` and releases the repository.
    """

    def walk(
        self,
        handle: RepositoryHandle,
        start_ref: str | None = None,
        on_error: WalkErrorCallback | None = None,
    ) -> Iterator[CommitRecord]:
        """Walk the history reachable from a reference.

        Args:
            handle: Repository to walk.
            start_ref: Reference or SHA to start from, None for HEAD.
            on_error: Called with the error of each skipped commit.

        Yields:
            CommitRecord for each readable commit, in log order.

        Raises:
            WalkError: If the traversal cannot be started or read.
        """
        try:
            repo = open_repo(handle.local_path)
        except Exception as e:
            raise WalkError(f"Failed to open repository for walking: {e}")

        with repo:
            if start_ref is None and not repo.head.is_valid():
                logger.info("Repository has no commits", repo_id=handle.identifier)
                return

            rev = start_ref or "HEAD"
            try:
                commits = repo.iter_commits(rev)
            except Exception as e:
                raise WalkError(f"Failed to start history walk from '{rev}': {e}")

            count = 0
            skipped = 0
            try:
                while True:
                    try:
                        commit = next(commits)
                    except StopIteration:
                        break
                    except Exception as e:
                        raise WalkError(f"Failed to read history from '{rev}': {e}")

                    try:
                        record = commit_to_record(commit)
                    except Exception as e:
                        skipped += 1
                        error = WalkError(f"Unreadable commit skipped: {e}", commit=commit.hexsha)
                        logger.warning(
                            "Skipping unreadable commit",
                            repo_id=handle.identifier,
                            commit=commit.hexsha,
                            error=str(e),
                        )
                        if on_error is not None:
                            on_error(error)
                        continue

                    count += 1
                    yield record
            finally:
                commits.close()

            logger.debug(
                "History walk finished",
                repo_id=handle.identifier,
                commits=count,
                skipped=skipped,
            )
