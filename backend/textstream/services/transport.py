"""
SSE live transport.

Bridges a drive to one HTTP response. The drive writes increments into a
queue; the response body iterates events() and turns them into SSE frames.
When the client goes away the response stops iterating, the transport is
marked disconnected and further writes raise TransportError, which the
engine treats as "continue with persistence only".
"""

import asyncio
import logging
from typing import AsyncIterator, Optional

from textstream.models.stream import Increment
from textstream.services.errors import TransportError
from textstream.utils.sse import format_sse

logger = logging.getLogger(__name__)

_END = None


class SSETransport:
    """Queue-backed LiveTransport feeding a StreamingResponse."""

    def __init__(self, stream_id: str):
        self.stream_id = stream_id
        self._queue: asyncio.Queue = asyncio.Queue()
        self.disconnected = False
        self.closed = False

    async def send(self, increment: Increment) -> None:
        if self.disconnected:
            raise TransportError("Client disconnected", self.stream_id)
        if self.closed:
            raise TransportError("Transport already closed", self.stream_id)
        await self._queue.put(
            format_sse("delta", {"text": increment.text, "reasoning": increment.reasoning})
        )

    async def close(self, error: Optional[str] = None) -> None:
        if self.closed:
            return
        self.closed = True
        if error:
            await self._queue.put(format_sse("error", {"stream_id": self.stream_id, "error": error}))
        else:
            await self._queue.put(format_sse("done", {"stream_id": self.stream_id}))
        await self._queue.put(_END)

    def disconnect(self) -> None:
        """Mark the remote peer as gone."""
        if not self.disconnected:
            self.disconnected = True
            logger.info(f"Client for stream {self.stream_id} disconnected")

    async def events(self) -> AsyncIterator[str]:
        """SSE frames until the drive closes the transport."""
        try:
            yield format_sse("start", {"stream_id": self.stream_id})
            while True:
                frame = await self._queue.get()
                if frame is _END:
                    return
                yield frame
        finally:
            if not self.closed:
                self.disconnect()
