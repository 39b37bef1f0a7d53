"""Pytest configuration and shared fixtures.

This module provides source repositories built on the fly with GitPython,
a repository store rooted in a temporary directory, and a sink that records
the events an ingestion session emits.
"""

import json
from collections.abc import Generator
from pathlib import Path

import pytest
from git import Repo

from core.ingestion.events import EventSink, SinkError
from core.ingestion.repo import RepositoryStore

# Author dates of the sample history, oldest first
DATE_A = "2024-01-01T10:00:00+02:00"
DATE_B = "2024-01-02T10:00:00+00:00"
DATE_D = "2024-01-03T10:00:00+00:00"
DATE_C = "2024-01-04T10:00:00+00:00"


def _dated(date: str) -> dict[str, str]:
    return {"GIT_AUTHOR_DATE": date, "GIT_COMMITTER_DATE": date}


def _commit(repo: Repo, files: dict[str, str], message: str, date: str) -> str:
    """Write files into the working tree and commit them."""
    root = Path(repo.working_tree_dir)
    for name, content in files.items():
        (root / name).write_text(content)
    repo.git.add(*files)
    repo.git.commit("-m", message, env=_dated(date))
    return repo.head.commit.hexsha


def _init_repo(path: Path) -> Repo:
    repo = Repo.init(path, initial_branch="main")
    with repo.config_writer() as config:
        config.set_value("user", "name", "Test User")
        config.set_value("user", "email", "test@example.com")
        config.set_value("commit", "gpgsign", "false")
    return repo


# ---------------------------------------------------------------------------
# Source Repository Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_history(tmp_path: Path) -> Generator[dict[str, str], None, None]:
    """Create a source repository whose history contains a merge.

    Layout (first parent on the left)::

        C (merge of side into main)
        |\\
        B D   D is the root of the unrelated branch "side"
        |
        A

    Author dates increase A < B < D < C, so the log order from main is
    C, D, B, A. Tag "v1.0" points at B.

    Yields:
        Mapping with the repository ``path`` and the SHA of each commit.
    """
    path = tmp_path / "sources" / "sample-repo"
    path.mkdir(parents=True)
    repo = _init_repo(path)

    sha_a = _commit(repo, {"a.txt": "one\ntwo\n"}, "A: add a.txt", DATE_A)
    sha_b = _commit(
        repo,
        {"a.txt": "one\nTWO\nthree\n", "b.txt": "x\n"},
        "B: update a.txt\n\nAlso adds b.txt.",
        DATE_B,
    )

    repo.git.checkout("--orphan", "side")
    repo.git.rm("-rf", "-q", ".")
    sha_d = _commit(repo, {"d.txt": "d1\nd2\nd3\n"}, "D: start side", DATE_D)

    repo.git.checkout("main")
    repo.git.merge("side", "--allow-unrelated-histories", "--no-edit", "-m", "C: merge side", env=_dated(DATE_C))
    sha_c = repo.head.commit.hexsha
    repo.create_tag("v1.0", ref=sha_b)
    repo.close()

    yield {"path": str(path), "A": sha_a, "B": sha_b, "C": sha_c, "D": sha_d}


@pytest.fixture
def empty_source(tmp_path: Path) -> str:
    """Create a source repository without any commits."""
    path = tmp_path / "sources" / "empty-repo"
    path.mkdir(parents=True)
    _init_repo(path).close()
    return str(path)


@pytest.fixture
def store(tmp_path: Path) -> RepositoryStore:
    """Create a repository store rooted in a temporary directory."""
    root = tmp_path / "repos"
    root.mkdir()
    return RepositoryStore(root, clone_timeout=60)


# ---------------------------------------------------------------------------
# Event Sink Fixtures
# ---------------------------------------------------------------------------


class RecordingSink(EventSink):
    """Sink that keeps every chunk and can simulate a client going away.

    Attributes:
        chunks: Chunks written so far.
        fail_after: Number of writes accepted before every write fails.
        closed: Whether close() has been called.
    """

    def __init__(self, fail_after: int | None = None) -> None:
        self.chunks: list[str] = []
        self.fail_after = fail_after
        self.closed = False

    async def write(self, chunk: str) -> None:
        if self.fail_after is not None and len(self.chunks) >= self.fail_after:
            raise SinkError("Consumer disconnected")
        self.chunks.append(chunk)

    async def close(self) -> None:
        self.closed = True

    @property
    def events(self) -> list[tuple[str, object]]:
        return parse_sse("".join(self.chunks))


def parse_sse(body: str) -> list[tuple[str, object]]:
    """Parse an event stream into ``(event type, decoded data)`` pairs."""
    events = []
    for block in body.split("\n\n"):
        if not block.strip():
            continue
        fields = dict(line.split(": ", 1) for line in block.split("\n"))
        events.append((fields["event"], json.loads(fields["data"])))
    return events


@pytest.fixture
def recording_sink() -> RecordingSink:
    """Create a sink that records everything written to it."""
    return RecordingSink()
