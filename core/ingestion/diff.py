"""Per-commit diff statistics.

This module computes how many lines each commit added and removed per file,
relative to its first parent, or to the empty tree for a root commit. Merge
commits are diffed against their first parent only, which reports what the
merge brought into the mainline.
"""

from typing import TYPE_CHECKING

import structlog

from .models import CommitRecord, FileStat

if TYPE_CHECKING:
    from git import Repo

logger = structlog.get_logger(__name__)

_NUMSTAT_OPTIONS = ("--numstat", "--no-renames", "-z")


class StatsError(Exception):
    """Exception raised when a commit's diff cannot be computed.

    Attributes:
        message: Explanation of the error.
        commit: SHA of the commit, if applicable.
    """

    def __init__(self, message: str, commit: str | None = None) -> None:
        """Initialize the StatsError.

        Args:
            message: Explanation of the error.
            commit: SHA of the commit.
        """
        self.message = message
        self.commit = commit

        full_message = f"{message} (commit={commit})" if commit else message
        super().__init__(full_message)


def parse_numstat(output: str) -> list[FileStat]:
    """Parse ``git diff --numstat -z`` output without rename detection.

    Each record is ``<added>\\t<deleted>\\t<path>`` terminated by NUL. Binary
    files report ``-`` for both counts and are counted as zero lines.

    Args:
        output: Raw command output.

    Returns:
        One FileStat per record, in output order.

    Raises:
        ValueError: If a record is malformed.
    """
    stats: list[FileStat] = []

    for record in output.split("\0"):
        record = record.strip("\n")
        if not record:
            continue

        added, deleted, path = record.split("\t", 2)
        stats.append(
            FileStat(
                file=path,
                additions=0 if added == "-" else int(added),
                deletions=0 if deleted == "-" else int(deleted),
            )
        )

    return stats


class StatComputer:
    """Computes per-file line statistics for commits.

    Attributes:
        timeout: Seconds after which a single diff is killed.
    """

    def __init__(self, timeout: float | None = 30.0) -> None:
        """Initialize the StatComputer.

        Args:
            timeout: Seconds after which a single diff is killed, None for no limit.
        """
        self.timeout = timeout
        logger.debug("StatComputer initialized", timeout=timeout)

    def compute(self, repo: "Repo", commit: CommitRecord) -> list[FileStat]:
        """Get the files a commit touched and its line counts per file.

        Args:
            repo: Open GitPython repository containing the commit.
            commit: The commit to diff.

        Returns:
            FileStat for each touched file, ordered by path.

        Raises:
            StatsError: If the diff cannot be computed.
        """
        git_kwargs = {}
        if self.timeout is not None:
            git_kwargs["kill_after_timeout"] = self.timeout

        try:
            if commit.is_root:
                output = repo.git.diff_tree(
                    "--root", "-r", "--no-commit-id", *_NUMSTAT_OPTIONS, commit.hash, **git_kwargs
                )
            else:
                output = repo.git.diff(commit.parents[0], commit.hash, *_NUMSTAT_OPTIONS, **git_kwargs)
        except Exception as e:
            raise StatsError(f"Failed to diff commit: {e}", commit=commit.hash)

        try:
            stats = parse_numstat(output)
        except ValueError as e:
            raise StatsError(f"Unexpected numstat output: {e}", commit=commit.hash)

        logger.debug(
            "Computed commit stats",
            commit=commit.hash[:8],
            files=len(stats),
            merge=commit.is_merge,
        )
        return stats
