"""Pydantic models for the ingestion module.

This module defines the data models used for repository ingestion and event
streaming, including repository handles, commit records, per-file diff
statistics, stream events with their wire payloads, and session reports.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class EventType(str, Enum):
    """Type tag of an event pushed to a stream consumer."""

    STATUS = "status"
    BRANCHES = "branches"
    COMMIT = "commit"
    WARNING = "warning"
    ERROR = "error"
    COMPLETE = "complete"

    @property
    def is_terminal(self) -> bool:
        """Whether this event type ends a session."""
        return self in (EventType.ERROR, EventType.COMPLETE)


class IngestionState(str, Enum):
    """States of one ingestion session."""

    IDLE = "idle"
    ACQUIRING = "acquiring"
    LISTING_BRANCHES = "listing_branches"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"


class RepositoryHandle(BaseModel):
    """Reference to a repository materialized on local storage.

    Attributes:
        identifier: Stable repository identifier derived from the source URL.
        source_url: Location the repository was (or would be) cloned from.
        local_path: Absolute path of the local copy.
        head: SHA of the current HEAD commit, None for an unborn HEAD.
        default_branch: Name of the checked-out branch.
        cloned: True only for the acquisition that performed the clone.
    """

    model_config = ConfigDict(extra="forbid")

    identifier: str = Field(..., description="Repository identifier")
    source_url: str | None = Field(None, description="Source location")
    local_path: str = Field(..., description="Absolute path on disk")
    head: str | None = Field(None, description="Current HEAD commit SHA")
    default_branch: str | None = Field(None, description="Checked-out branch")
    cloned: bool = Field(False, description="Whether this acquisition cloned")


class CommitRecord(BaseModel):
    """A single commit read from history.

    Attributes:
        hash: Full hex SHA of the commit.
        author: Author name.
        email: Author email.
        message: Full commit message, newlines preserved.
        date: Author timestamp with its original UTC offset.
        parents: Parent SHAs in recorded order.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    hash: str = Field(..., min_length=40, max_length=64, description="Commit SHA")
    author: str = Field(..., description="Author name")
    email: str = Field(..., description="Author email")
    message: str = Field(..., description="Full commit message")
    date: datetime = Field(..., description="Author timestamp")
    parents: tuple[str, ...] = Field(default_factory=tuple, description="Parent SHAs")

    @property
    def subject(self) -> str:
        """First line of the commit message."""
        return self.message.split("\n", 1)[0]

    @property
    def is_root(self) -> bool:
        return not self.parents

    @property
    def is_merge(self) -> bool:
        return len(self.parents) > 1


class FileStat(BaseModel):
    """Lines added and removed in one file by one commit."""

    model_config = ConfigDict(extra="forbid")

    file: str = Field(..., description="Path of the file")
    additions: int = Field(..., ge=0, description="Added lines")
    deletions: int = Field(..., ge=0, description="Removed lines")


class StreamEvent(BaseModel):
    """A typed event within one ingestion session.

    Attributes:
        type: Event type tag.
        sequence: Position of the event in its session, starting at 0.
        data: JSON-encodable event body.
    """

    model_config = ConfigDict(extra="forbid")

    type: EventType = Field(..., description="Event type")
    sequence: int = Field(..., ge=0, description="Position within the session")
    data: Any = Field(..., description="JSON-encodable body")


# ---------------------------------------------------------------------------
# Wire payloads
# ---------------------------------------------------------------------------


class _WirePayload(BaseModel):
    """Base for payloads serialized with camelCase keys."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class StatusPayload(_WirePayload):
    message: str
    repo_id: str | None = Field(None, alias="repoId")
    repo_url: str | None = Field(None, alias="repoUrl")


class MessagePayload(_WirePayload):
    """Body of ``error`` and ``warning`` events."""

    message: str


class CommitPayload(_WirePayload):
    """Body of a ``commit`` event: the commit plus its file modifications."""

    hash: str
    author: str
    email: str
    message: str
    date: datetime
    modifications: list[FileStat] = Field(default_factory=list)

    @classmethod
    def from_record(cls, record: CommitRecord, stats: list[FileStat]) -> "CommitPayload":
        return cls(
            hash=record.hash,
            author=record.author,
            email=record.email,
            message=record.message,
            date=record.date,
            modifications=stats,
        )


class CompletePayload(_WirePayload):
    message: str
    repo_id: str = Field(..., alias="repoId")
    commits: int = Field(0, ge=0)
    warnings: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Session configuration and results
# ---------------------------------------------------------------------------


class IngestionWarning(BaseModel):
    """A non-fatal problem absorbed during a session.

    Attributes:
        stage: Session stage the problem occurred in.
        message: Human-readable description.
        commit: Commit SHA involved, if any.
    """

    model_config = ConfigDict(extra="forbid")

    stage: IngestionState = Field(..., description="Stage of the session")
    message: str = Field(..., description="Warning message")
    commit: str | None = Field(None, description="Commit SHA involved")


class IngestionReport(BaseModel):
    """Outcome of one ingestion session.

    Attributes:
        repo_id: Repository identifier, None if it could not be derived.
        state: Terminal state of the session.
        commits_emitted: Number of commit events delivered.
        events_emitted: Total number of events delivered.
        warnings: Non-fatal problems encountered.
        error: Message of the fatal error, if the session failed.
        duration_ms: Session duration in milliseconds.
    """

    model_config = ConfigDict(extra="forbid")

    repo_id: str | None = Field(None, description="Repository identifier")
    state: IngestionState = Field(..., description="Terminal state")
    commits_emitted: int = Field(0, ge=0, description="Commit events delivered")
    events_emitted: int = Field(0, ge=0, description="Events delivered")
    warnings: list[IngestionWarning] = Field(default_factory=list, description="Warnings")
    error: str | None = Field(None, description="Fatal error message")
    duration_ms: int = Field(0, ge=0, description="Session duration in ms")

    @property
    def succeeded(self) -> bool:
        return self.state == IngestionState.COMPLETED


class IngestionConfig(BaseModel):
    """Configuration for ingestion sessions.

    Attributes:
        start_ref: Reference to walk history from, None for HEAD.
        stats_timeout_s: Upper bound for computing one commit's stats.
        commit_interval_ms: Pause after each commit event, 0 to disable.
        max_commits: Stop after this many commit events, None for no limit.
    """

    model_config = ConfigDict(extra="forbid")

    start_ref: str | None = Field(None, description="Reference to start from")
    stats_timeout_s: float = Field(30.0, gt=0, description="Per-commit stats bound")
    commit_interval_ms: int = Field(0, ge=0, description="Pause between commits")
    max_commits: int | None = Field(None, ge=1, description="Commit event cap")
