"""Ordered, flushed delivery of stream events.

This module serializes typed session events and writes them one at a time to
a sink. A write only returns once the consumer has taken the event, which
keeps the producer in lockstep with the client instead of buffering ahead of
it. When the consumer goes away every further write fails with SinkError so
the producer can stop promptly.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from types import TracebackType
from typing import Any

import structlog
from pydantic import BaseModel

from .models import EventType, StreamEvent

logger = structlog.get_logger(__name__)


class SinkError(Exception):
    """Exception raised when an event cannot be delivered.

    Attributes:
        message: Explanation of the error.
        sequence: Sequence number of the undelivered event, if applicable.
    """

    def __init__(self, message: str, sequence: int | None = None) -> None:
        self.message = message
        self.sequence = sequence

        full_message = f"{message} (sequence={sequence})" if sequence is not None else message
        super().__init__(full_message)


def encode_sse(event: StreamEvent) -> str:
    """Frame an event as a server-sent event.

    Args:
        event: The event to frame.

    Returns:
        ``id``, ``event`` and ``data`` lines followed by a blank line.
    """
    body = json.dumps(event.data, separators=(",", ":"), ensure_ascii=False)
    return f"id: {event.sequence}\nevent: {event.type.value}\ndata: {body}\n\n"


class EventSink(ABC):
    """Destination that framed events are written to."""

    @abstractmethod
    async def write(self, chunk: str) -> None:
        """Deliver one chunk, raising SinkError if it cannot be delivered."""

    async def close(self) -> None:
        """Signal that no more chunks will be written."""


class ChannelSink(EventSink):
    """Single-slot channel between a producing task and a response body.

    ``write`` hands a chunk to the consumer iterating ``chunks()`` and waits
    until the consumer has passed it on to the transport. The consumer side
    calls ``disconnect`` when the client goes away, which releases a blocked
    writer and makes every later write raise SinkError.
    """

    _END = object()

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=1)
        self._in_flight: asyncio.Event | None = None
        self._disconnected = False
        self._finished = False

    @property
    def disconnected(self) -> bool:
        return self._disconnected

    async def write(self, chunk: str) -> None:
        if self._disconnected:
            raise SinkError("Consumer disconnected")

        delivered = asyncio.Event()
        await self._queue.put((chunk, delivered))
        if self._disconnected:
            raise SinkError("Consumer disconnected")

        await delivered.wait()
        if self._disconnected:
            raise SinkError("Consumer disconnected before delivery")

    async def close(self) -> None:
        if not self._disconnected:
            await self._queue.put(self._END)

    def disconnect(self) -> None:
        """Mark the consumer as gone and release any waiting writer.

        Safe to call more than once, and a no-op once the stream has been
        fully consumed.
        """
        if self._disconnected or self._finished:
            return

        self._disconnected = True
        if self._in_flight is not None:
            self._in_flight.set()

        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is not self._END:
                item[1].set()

        logger.info("Stream consumer disconnected")

    async def chunks(self) -> AsyncIterator[str]:
        """Yield chunks as they are written, until the sink is closed."""
        try:
            while True:
                item = await self._queue.get()
                if item is self._END:
                    self._finished = True
                    break

                chunk, delivered = item
                self._in_flight = delivered
                yield chunk
                self._in_flight = None
                delivered.set()
        finally:
            self.disconnect()


class EventEmitter:
    """Writes numbered events of one session to a sink, in call order.

    Use as an async context manager: entering opens the session, leaving
    closes the sink. After a terminal event or a delivery failure, ``send``
    refuses further events.

    Attributes:
        sink: Destination of the framed events.
    """

    def __init__(self, sink: EventSink) -> None:
        """Initialize the EventEmitter.

        Args:
            sink: Destination of the framed events.
        """
        self.sink = sink
        self._sequence = 0
        self._terminated = False
        self._failed = False
        self._closed = False

    async def __aenter__(self) -> "EventEmitter":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    @property
    def events_sent(self) -> int:
        return self._sequence

    @property
    def terminated(self) -> bool:
        """Whether a terminal event has been delivered."""
        return self._terminated

    @property
    def writable(self) -> bool:
        """Whether another event may still be sent."""
        return not (self._terminated or self._failed or self._closed)

    async def send(self, event_type: EventType, payload: Any) -> StreamEvent:
        """Serialize and deliver one event.

        Args:
            event_type: Type tag of the event.
            payload: Pydantic payload model, or any JSON-encodable value.

        Returns:
            The delivered event with its sequence number.

        Raises:
            SinkError: If the session is closed or the sink fails.
        """
        if not self.writable:
            raise SinkError("Event stream is closed", sequence=self._sequence)

        if isinstance(payload, BaseModel):
            data = payload.model_dump(mode="json", by_alias=True, exclude_none=True)
        else:
            data = payload

        event = StreamEvent(type=event_type, sequence=self._sequence, data=data)

        try:
            await self.sink.write(encode_sse(event))
        except SinkError:
            self._failed = True
            raise
        except Exception as e:
            self._failed = True
            raise SinkError(f"Failed to write event: {e}", sequence=event.sequence) from e

        self._sequence += 1
        if event_type.is_terminal:
            self._terminated = True

        return event

    async def close(self) -> None:
        """Close the session and its sink."""
        if self._closed:
            return

        self._closed = True
        try:
            await self.sink.close()
        except Exception as e:
            logger.warning("Failed to close event sink", error=str(e))
