"""Ingestion module for repository history streaming.

This module provides functionality for materializing source repositories,
walking their commit history, computing per-commit diff statistics, and
streaming the results to a client as ordered, typed events.

Example:
    >>> from core.ingestion import ChannelSink, EventEmitter, IngestionOrchestrator
    >>> from core.ingestion import RepositoryStore
    >>> orchestrator = IngestionOrchestrator(RepositoryStore("repos"))
    >>> sink = ChannelSink()
    >>> async with EventEmitter(sink) as emitter:
    ...     report = await orchestrator.run("https://github.com/owner/repo.git", emitter)
    >>> print(f"Streamed {report.commits_emitted} commits")
"""

from .branches import BranchLister, ReadError
from .diff import StatComputer, StatsError, parse_numstat
from .events import ChannelSink, EventEmitter, EventSink, SinkError, encode_sse
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
    StreamEvent,
)
from .pipeline import IngestionOrchestrator
from .repo import AcquisitionError, RepositoryNotFoundError, RepositoryStore, derive_repo_id

__all__ = [
    # Orchestration
    "IngestionOrchestrator",
    # Models
    "RepositoryHandle",
    "CommitRecord",
    "FileStat",
    "StreamEvent",
    "EventType",
    "StatusPayload",
    "CommitPayload",
    "MessagePayload",
    "CompletePayload",
    "IngestionConfig",
    "IngestionReport",
    "IngestionState",
    "IngestionWarning",
    # Repository store
    "RepositoryStore",
    "AcquisitionError",
    "RepositoryNotFoundError",
    "derive_repo_id",
    # History and stats
    "HistoryWalker",
    "WalkError",
    "StatComputer",
    "StatsError",
    "parse_numstat",
    # Branches
    "BranchLister",
    "ReadError",
    # Events
    "EventEmitter",
    "EventSink",
    "ChannelSink",
    "SinkError",
    "encode_sse",
]
