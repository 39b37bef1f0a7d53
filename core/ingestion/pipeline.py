"""Ingestion session orchestrator.

This module provides the IngestionOrchestrator, which drives one session from
a source URL to a terminal event: it acquires the repository, lists its
branches, then walks the history and emits one commit event per commit with
its file statistics attached. It also serves read-only projections of
repositories that have already been acquired.
"""

import asyncio
import contextlib
import time
from collections.abc import Iterator
from typing import Any

import structlog

from .branches import BranchLister, ReadError
from .diff import StatComputer, StatsError
from .events import EventEmitter, SinkError
from .history import HistoryWalker, WalkError
from .models import (
    CommitPayload,
    CommitRecord,
    CompletePayload,
    EventType,
    FileStat,
    IngestionConfig,
    IngestionReport,
    IngestionState,
    IngestionWarning,
    MessagePayload,
    RepositoryHandle,
    StatusPayload,
)
from .repo import AcquisitionError, RepositoryStore, derive_repo_id, open_repo

logger = structlog.get_logger(__name__)

_DONE = object()


class _Session:
    """Mutable bookkeeping for one run."""

    def __init__(self, emitter: EventEmitter) -> None:
        self.emitter = emitter
        self.state = IngestionState.IDLE
        self.repo_id: str | None = None
        self.commits = 0
        self.warnings: list[IngestionWarning] = []
        self.error: str | None = None
        self.started = time.time()

    def warn(self, message: str, commit: str | None = None) -> IngestionWarning:
        warning = IngestionWarning(stage=self.state, message=message, commit=commit)
        self.warnings.append(warning)
        return warning

    def report(self) -> IngestionReport:
        return IngestionReport(
            repo_id=self.repo_id,
            state=self.state,
            commits_emitted=self.commits,
            events_emitted=self.emitter.events_sent,
            warnings=self.warnings,
            error=self.error,
            duration_ms=int((time.time() - self.started) * 1000),
        )


class IngestionOrchestrator:
    """Composes acquisition, branch listing, history walking and stats.

    Attributes:
        store: Repository store used to materialize repositories.
        branch_lister: Branch lister instance.
        walker: History walker instance.
        stat_computer: Stat computer instance.
        config: Session configuration.
    """

    def __init__(
        self,
        store: RepositoryStore,
        config: IngestionConfig | None = None,
        branch_lister: BranchLister | None = None,
        walker: HistoryWalker | None = None,
        stat_computer: StatComputer | None = None,
    ) -> None:
        """Initialize the IngestionOrchestrator.

        Args:
            store: Repository store used to materialize repositories.
            config: Session configuration. Uses defaults if not provided.
            branch_lister: Branch lister. Creates a new one if not provided.
            walker: History walker. Creates a new one if not provided.
            stat_computer: Stat computer. Created from the config if not provided.
        """
        self.store = store
        self.config = config or IngestionConfig()
        self.branch_lister = branch_lister or BranchLister()
        self.walker = walker or HistoryWalker()
        self.stat_computer = stat_computer or StatComputer(timeout=self.config.stats_timeout_s)

        logger.debug("IngestionOrchestrator initialized", config=self.config.model_dump())

    async def run(self, source_url: str, emitter: EventEmitter) -> IngestionReport:
        """Run one ingestion session and stream its events.

        The session always ends in ``completed`` or ``failed``. Unless the
        consumer disconnected, exactly one ``complete`` or ``error`` event is
        the last event emitted.

        Args:
            source_url: Location of the repository to ingest.
            emitter: Emitter the session's events are sent through.

        Returns:
            IngestionReport describing the outcome.
        """
        session = _Session(emitter)
        log = logger.bind(repo_url=source_url)

        try:
            handle = await self._acquire(session, source_url)
            if handle is not None:
                log = log.bind(repo_id=handle.identifier)
                await self._list_branches(session, handle)
                await self._stream_commits(session, handle)
        except SinkError as e:
            session.state = IngestionState.FAILED
            session.error = str(e)
            log.info("Stream consumer gone, stopping session", commits=session.commits)
        except Exception as e:
            log.exception("Ingestion session failed", error=str(e))
            with contextlib.suppress(SinkError):
                await self._fail(session, f"Unexpected error: {e}")

        report = session.report()
        log.info(
            "Ingestion session finished",
            state=report.state.value,
            commits=report.commits_emitted,
            warnings=len(report.warnings),
            duration_ms=report.duration_ms,
        )
        return report

    async def _acquire(self, session: _Session, source_url: str) -> RepositoryHandle | None:
        session.state = IngestionState.ACQUIRING
        emitter = session.emitter

        try:
            repo_id = derive_repo_id(source_url)
        except AcquisitionError as e:
            await self._fail(session, str(e))
            return None

        session.repo_id = repo_id
        await emitter.send(
            EventType.STATUS,
            StatusPayload(message="Starting repository processing", repo_id=repo_id),
        )

        async def _on_clone() -> None:
            await emitter.send(
                EventType.STATUS,
                StatusPayload(message="Cloning repository", repo_url=source_url),
            )

        try:
            handle = await self.store.acquire(repo_id, source_url, on_clone=_on_clone)
        except AcquisitionError as e:
            logger.warning("Repository acquisition failed", repo_id=repo_id, error=str(e))
            await self._fail(session, e.message)
            return None

        if handle.cloned:
            message = "Repository cloned successfully"
        else:
            message = "Repository already exists, opening existing repository"
        await emitter.send(EventType.STATUS, StatusPayload(message=message, repo_id=repo_id))

        return handle

    async def _list_branches(self, session: _Session, handle: RepositoryHandle) -> None:
        session.state = IngestionState.LISTING_BRANCHES
        emitter = session.emitter

        await emitter.send(EventType.STATUS, StatusPayload(message="Fetching branches"))

        try:
            branches = await asyncio.get_event_loop().run_in_executor(
                None, self.branch_lister.list_branches, handle
            )
        except ReadError as e:
            logger.warning("Branch listing failed", repo_id=handle.identifier, error=str(e))
            warning = session.warn(f"Failed to get branches: {e.message}")
            await emitter.send(EventType.WARNING, MessagePayload(message=warning.message))
            branches = []

        await emitter.send(EventType.BRANCHES, branches)

    async def _stream_commits(self, session: _Session, handle: RepositoryHandle) -> None:
        session.state = IngestionState.STREAMING
        emitter = session.emitter
        loop = asyncio.get_event_loop()

        await emitter.send(EventType.STATUS, StatusPayload(message="Fetching commits history"))

        skipped: list[WalkError] = []
        commits = self.walker.walk(handle, self.config.start_ref, on_error=skipped.append)

        try:
            with open_repo(handle.local_path) as repo:
                while True:
                    try:
                        record = await loop.run_in_executor(None, next, commits, _DONE)
                    except WalkError as e:
                        logger.error("History walk aborted", repo_id=handle.identifier, error=str(e))
                        await self._fail(session, f"Error processing commits: {e.message}")
                        return

                    await self._flush_skipped(session, skipped)
                    if record is _DONE:
                        break

                    stats = await self._compute_stats(session, repo, record)
                    await emitter.send(EventType.COMMIT, CommitPayload.from_record(record, stats))
                    session.commits += 1

                    if self.config.max_commits and session.commits >= self.config.max_commits:
                        logger.info("Commit limit reached", repo_id=handle.identifier)
                        break

                    if self.config.commit_interval_ms:
                        await asyncio.sleep(self.config.commit_interval_ms / 1000)
        finally:
            # a cancelled task can leave the generator running in a worker thread
            with contextlib.suppress(ValueError):
                commits.close()

        session.state = IngestionState.COMPLETED
        await emitter.send(
            EventType.COMPLETE,
            CompletePayload(
                message="Repository analysis complete",
                repo_id=handle.identifier,
                commits=session.commits,
                warnings=[w.message for w in session.warnings],
            ),
        )

    async def _compute_stats(
        self, session: _Session, repo: Any, record: CommitRecord
    ) -> list[FileStat]:
        try:
            return await asyncio.get_event_loop().run_in_executor(
                None, self.stat_computer.compute, repo, record
            )
        except StatsError as e:
            logger.warning("Commit stats unavailable", commit=record.hash, error=str(e))
            warning = session.warn(f"Stats unavailable for {record.hash[:8]}", commit=record.hash)
            await session.emitter.send(EventType.WARNING, MessagePayload(message=warning.message))
            return []

    async def _flush_skipped(self, session: _Session, skipped: list[WalkError]) -> None:
        while skipped:
            error = skipped.pop(0)
            warning = session.warn(f"Skipped unreadable commit {error.commit}", commit=error.commit)
            await session.emitter.send(EventType.WARNING, MessagePayload(message=warning.message))

    async def _fail(self, session: _Session, message: str) -> None:
        session.state = IngestionState.FAILED
        session.error = message
        if session.emitter.writable:
            await session.emitter.send(EventType.ERROR, MessagePayload(message=message))

    # ------------------------------------------------------------------
    # Read-only projections
    # ------------------------------------------------------------------

    async def list_commits(self, repo_id: str, limit: int | None = None) -> list[dict[str, Any]]:
        """Get the commit history of an acquired repository.

        Args:
            repo_id: Repository identifier.
            limit: Maximum number of commits, None for all.

        Returns:
            Commits newest first, as ``{hash, author, email, date, message}``.

        Raises:
            RepositoryNotFoundError: If the repository has not been acquired.
            WalkError: If the history cannot be read.
        """
        handle = await self.store.get(repo_id)

        def _collect() -> list[dict[str, Any]]:
            commits = []
            for record in self._take(self.walker.walk(handle), limit):
                commits.append(record.model_dump(mode="json", exclude={"parents"}))
            return commits

        return await asyncio.get_event_loop().run_in_executor(None, _collect)

    async def list_branches(self, repo_id: str) -> list[str]:
        """Get the sorted local branches of an acquired repository.

        Raises:
            RepositoryNotFoundError: If the repository has not been acquired.
            ReadError: If the references cannot be read.
        """
        handle = await self.store.get(repo_id)
        return await asyncio.get_event_loop().run_in_executor(
            None, self.branch_lister.list_branches, handle
        )

    async def list_modifications(
        self, repo_id: str, limit: int | None = None
    ) -> list[dict[str, Any]]:
        """Get every file modification across the history of a repository.

        Commits whose stats cannot be computed are left out.

        Args:
            repo_id: Repository identifier.
            limit: Maximum number of commits to include, None for all.

        Returns:
            ``{file, additions, deletions, commitHash, message}`` per file per commit.

        Raises:
            RepositoryNotFoundError: If the repository has not been acquired.
            WalkError: If the history cannot be read.
        """
        handle = await self.store.get(repo_id)

        def _collect() -> list[dict[str, Any]]:
            modifications = []
            with open_repo(handle.local_path) as repo:
                for record in self._take(self.walker.walk(handle), limit):
                    try:
                        stats = self.stat_computer.compute(repo, record)
                    except StatsError as e:
                        logger.warning("Skipping commit without stats", commit=record.hash, error=str(e))
                        continue
                    for stat in stats:
                        modifications.append(
                            {
                                **stat.model_dump(),
                                "commitHash": record.hash,
                                "message": record.message,
                            }
                        )
            return modifications

        return await asyncio.get_event_loop().run_in_executor(None, _collect)

    @staticmethod
    def _take(commits: Iterator[CommitRecord], limit: int | None) -> Iterator[CommitRecord]:
        try:
            for index, record in enumerate(commits):
                if limit is not None and index >= limit:
                    break
                yield record
        finally:
            commits.close()
