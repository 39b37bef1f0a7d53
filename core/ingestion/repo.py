"""Repository materialization for the ingestion module.

This module owns the mapping from a repository identifier to a local clone.
Each identifier is acquired under its own lock so that concurrent requests
for the same repository never clone twice, while unrelated repositories are
acquired in parallel. Uses GitPython for Git operations.
"""

import asyncio
import contextlib
import shutil
import threading
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

import structlog

from .models import RepositoryHandle

if TYPE_CHECKING:
    from git import Repo

logger = structlog.get_logger(__name__)

CloneCallback = Callable[[], Awaitable[None]]

_SEPARATORS = ("/", "\\", "\0")


class AcquisitionError(Exception):
    """Exception raised when a repository cannot be materialized or opened.

    Attributes:
        message: Explanation of the error.
        repo_path: Path to the repository, if applicable.
    """

    def __init__(self, message: str, repo_path: str | None = None) -> None:
        """Initialize the AcquisitionError.

        Args:
            message: Explanation of the error.
            repo_path: Path to the repository.
        """
        self.message = message
        self.repo_path = repo_path

        full_message = f"{message} (repo={repo_path})" if repo_path else message
        super().__init__(full_message)


class RepositoryNotFoundError(AcquisitionError):
    """Raised when no local copy exists for an identifier."""


def derive_repo_id(url: str) -> str:
    """Derive the repository identifier from a source location.

    The identifier is the last path segment with a ``.git`` suffix stripped,
    so ``https://github.com/owner/repo.git``, ``git@github.com:owner/repo.git``
    and ``/srv/git/repo`` all map to ``repo``.

    Args:
        url: Repository URL or local path.

    Returns:
        The repository identifier.

    Raises:
        AcquisitionError: If no usable identifier can be derived.
    """
    # urlparse leaves scp-like ssh locations in the path component
    path = urlparse(url.strip()).path or url.strip()
    path = path.replace("\\", "/").rstrip("/")
    name = path.split("/")[-1].split(":")[-1]
    if name.endswith(".git"):
        name = name[:-4]

    if not is_valid_identifier(name):
        raise AcquisitionError(f"Cannot derive a repository identifier from '{url}'")

    return name


def is_valid_identifier(identifier: str) -> bool:
    """Check that an identifier names a single entry directly under the store root.

    Empty names, names starting with ``.`` (which covers ``.`` and ``..``)
    and names containing a path separator are rejected.
    """
    if not identifier or identifier.startswith("."):
        return False
    return not any(sep in identifier for sep in _SEPARATORS)


class RepositoryStore:
    """Keyed registry of locally materialized repositories.

    Each identifier maps to ``<root>/<identifier>``. The existence of that
    directory is the only signal used to decide between reusing and cloning.
    Acquisitions of the same identifier are serialized: a second caller waits
    for the first and then reuses its clone.

    Attributes:
        root: Directory holding one clone per identifier.
        clone_timeout: Timeout in seconds for clone operations.
    """

    def __init__(self, root: str | Path, clone_timeout: int = 300) -> None:
        """Initialize the RepositoryStore.

        Args:
            root: Directory holding one clone per identifier.
            clone_timeout: Timeout in seconds for clone operations.
        """
        self.root = Path(root).resolve()
        self.clone_timeout = clone_timeout
        # identifier -> (lock, number of tasks holding or waiting for it)
        self._locks: dict[str, tuple[asyncio.Lock, int]] = {}
        logger.debug("RepositoryStore initialized", root=str(self.root))

    def path_for(self, identifier: str) -> Path:
        """Get the local storage path for an identifier."""
        return self.root / identifier

    def _validate_identifier(self, identifier: str) -> Path:
        """Get the storage path of an identifier, refusing anything outside the root.

        Raises:
            RepositoryNotFoundError: If the identifier does not name a direct
                child of the root.
        """
        path = self.path_for(identifier)
        if not is_valid_identifier(identifier) or path.resolve().parent != self.root:
            raise RepositoryNotFoundError(
                f"Invalid repository identifier '{identifier}'", repo_path=str(self.root)
            )
        return path

    @contextlib.asynccontextmanager
    async def _locked(self, identifier: str) -> AsyncIterator[None]:
        """Hold the identifier's lock; the entry is dropped once nobody needs it."""
        lock, users = self._locks.get(identifier, (asyncio.Lock(), 0))
        self._locks[identifier] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._locks[identifier]
            if users == 1:
                del self._locks[identifier]
            else:
                self._locks[identifier] = (lock, users - 1)

    async def acquire(
        self,
        identifier: str,
        source_url: str,
        on_clone: CloneCallback | None = None,
    ) -> RepositoryHandle:
        """Get a ready-to-read repository, cloning it on first use.

        Args:
            identifier: Repository identifier.
            source_url: Location to clone from if no local copy exists.
            on_clone: Awaited just before a clone starts.

        Returns:
            RepositoryHandle for the local copy. ``cloned`` is True only if
            this call performed the clone.

        Raises:
            AcquisitionError: If the source cannot be cloned or the local copy
                cannot be opened.
        """
        dest = self._validate_identifier(identifier)

        async with self._locked(identifier):
            if dest.exists():
                logger.info("Reusing existing repository", repo_id=identifier)
                return await self._open(identifier, dest, source_url)

            if on_clone is not None:
                await on_clone()

            await self._clone(source_url, dest)
            handle = await self._open(identifier, dest, source_url)
            return handle.model_copy(update={"cloned": True})

    async def get(self, identifier: str) -> RepositoryHandle:
        """Open an already materialized repository.

        Args:
            identifier: Repository identifier.

        Returns:
            RepositoryHandle for the local copy.

        Raises:
            RepositoryNotFoundError: If no local copy exists or the identifier
                is invalid.
            AcquisitionError: If the local copy cannot be opened.
        """
        dest = self._validate_identifier(identifier)

        async with self._locked(identifier):
            if not dest.exists():
                raise RepositoryNotFoundError(
                    f"Repository '{identifier}' has not been acquired", repo_path=str(dest)
                )
            return await self._open(identifier, dest, None)

    async def _clone(self, url: str, dest: Path) -> None:
        """Clone into a temporary sibling and move it into place on success."""
        from git import Repo

        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise AcquisitionError(f"Cannot create storage root: {e}", repo_path=str(self.root))

        staging = self.root / f".{dest.name}.{uuid.uuid4().hex[:8]}.partial"
        dest_str = str(dest)
        # guard makes "rename into place" and "give up" mutually exclusive
        guard = threading.Lock()
        abandoned = threading.Event()
        placed = threading.Event()

        logger.info(f"Cloning repository from {url} to {dest_str}")

        def _do_clone() -> None:
            try:
                repo = Repo.clone_from(url=url, to_path=str(staging))
                repo.close()
                with guard:
                    if not abandoned.is_set():
                        staging.rename(dest)
                        placed.set()
            finally:
                if staging.exists():
                    shutil.rmtree(staging, ignore_errors=True)

        future = asyncio.get_event_loop().run_in_executor(None, _do_clone)
        try:
            await asyncio.wait_for(future, timeout=self.clone_timeout)
        except TimeoutError:
            with guard:
                abandoned.set()
            if not placed.is_set():
                raise AcquisitionError(
                    f"Clone operation timed out after {self.clone_timeout}s",
                    repo_path=dest_str,
                )
            logger.info("Clone finished at the deadline, keeping it", repo_path=dest_str)
        except Exception as e:
            raise AcquisitionError(f"Failed to clone repository: {e}", repo_path=dest_str)
        finally:
            # the worker thread outlives a cancelled wait and cleans up after itself
            if future.cancelled():
                with guard:
                    abandoned.set()

        logger.info("Clone complete", repo_path=dest_str)

    async def _open(self, identifier: str, path: Path, source_url: str | None) -> RepositoryHandle:
        path_str = str(path)

        def _do_open() -> dict[str, Any]:
            with open_repo(path_str) as repo:
                head = None if not repo.head.is_valid() else repo.head.commit.hexsha
                branch = None if repo.head.is_detached else repo.head.reference.name
                url = source_url
                if url is None and repo.remotes:
                    url = repo.remotes[0].url
                return {"head": head, "default_branch": branch, "source_url": url}

        try:
            info = await asyncio.get_event_loop().run_in_executor(None, _do_open)
        except AcquisitionError:
            raise
        except Exception as e:
            raise AcquisitionError(f"Failed to open repository: {e}", repo_path=path_str)

        logger.debug(
            "Opened repository",
            repo_id=identifier,
            head=info["head"][:8] if info["head"] else None,
        )

        return RepositoryHandle(identifier=identifier, local_path=path_str, **info)


def open_repo(path: str | Path) -> "Repo":
    """Get a GitPython Repo object for a path.

    The returned object is a context manager that releases the persistent
    git processes GitPython keeps per repository.

    Args:
        path: Path to the repository.

    Returns:
        GitPython Repo instance.

    Raises:
        AcquisitionError: If path is not a valid Git repository.
    """
    from git import InvalidGitRepositoryError, NoSuchPathError, Repo

    path_str = str(path)

    try:
        return Repo(path_str)
    except NoSuchPathError:
        raise AcquisitionError(f"Path does not exist: {path_str}", repo_path=path_str)
    except InvalidGitRepositoryError:
        raise AcquisitionError(f"Not a valid Git repository: {path_str}", repo_path=path_str)
