"""Streaming ingestion endpoint for the Commitstream API.

This module provides the server-sent event endpoint that clones (or reuses)
a repository and streams its branches and commit history to the client.
"""

import asyncio
from collections.abc import AsyncIterator

import structlog
from fastapi import APIRouter
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from api.dependencies import OrchestratorDep
from core.ingestion.events import ChannelSink, EventEmitter

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["Streaming"])

# Running sessions, referenced until they finish
_sessions: set[asyncio.Task] = set()


class StreamRequest(BaseModel):
    """Request model for starting an ingestion stream.

    Attributes:
        repo_url: Git repository URL (HTTPS, SSH or local path).
    """

    model_config = ConfigDict(populate_by_name=True)

    repo_url: str = Field(..., alias="repoUrl", min_length=1, description="Repository URL")


def _log_session_result(task: asyncio.Task) -> None:
    _sessions.discard(task)
    if task.cancelled():
        logger.info("Ingestion session cancelled")
        return
    if task.exception() is not None:
        logger.error("Ingestion session crashed", error=str(task.exception()))


@router.post(
    "/repo",
    summary="Stream repository history",
    description=(
        "Clone the repository if it is not available locally, then stream "
        "status, branches, commit and terminal events as server-sent events."
    ),
    response_class=StreamingResponse,
)
async def stream_repository(
    request: StreamRequest,
    orchestrator: OrchestratorDep,
) -> StreamingResponse:
    """Start an ingestion session and stream its events.

    The session runs as its own task and writes into a single-slot channel
    that this response drains, so the session never runs ahead of the
    client. When the client disconnects the channel is closed and the
    session stops at its next event.

    Args:
        request: Stream request with the repository URL.
        orchestrator: Orchestrator running the session.

    Returns:
        A ``text/event-stream`` response.
    """
    sink = ChannelSink()
    repo_url = request.repo_url

    async def _run_session() -> None:
        async with EventEmitter(sink) as emitter:
            await orchestrator.run(repo_url, emitter)

    async def _event_stream() -> AsyncIterator[str]:
        task = asyncio.create_task(_run_session())
        _sessions.add(task)
        task.add_done_callback(_log_session_result)
        try:
            async for chunk in sink.chunks():
                yield chunk
        finally:
            sink.disconnect()

    logger.info("Stream requested", repo_url=repo_url)

    return StreamingResponse(
        _event_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
