"""
Stream error taxonomy.

Readers only ever observe StreamStatus; these exceptions are for callers that
drive streams or talk to the store directly.
"""

from typing import Optional

from textstream.models.stream import StreamStatus


class StreamError(Exception):
    """Base exception for stream operations."""

    def __init__(self, message: str, stream_id: Optional[str] = None):
        self.message = message
        self.stream_id = stream_id
        super().__init__(self.message)


class StreamNotFoundError(StreamError):
    """The stream id was never created."""

    def __init__(self, stream_id: str):
        super().__init__(f"Stream {stream_id} not found", stream_id)


class AlreadyDrivenError(StreamError):
    """A second driver tried to attach to a stream that is no longer pending."""

    def __init__(self, stream_id: str, status: StreamStatus):
        self.status = status
        super().__init__(
            f"Stream {stream_id} cannot be driven (status: {status.value})", stream_id
        )


class InvalidTransitionError(StreamError):
    """A status change not allowed by the transition table."""

    def __init__(self, stream_id: str, current: StreamStatus, new: StreamStatus):
        self.current = current
        self.new = new
        super().__init__(
            f"Stream {stream_id}: illegal transition {current.value} -> {new.value}",
            stream_id,
        )


class StreamClosedError(StreamError):
    """A chunk commit was rejected because the drive token no longer holds."""


class StorageError(StreamError):
    """The underlying store failed. Fatal to the current drive."""


class GenerationError(StreamError):
    """The upstream text source reported a failure."""


class TransportError(StreamError):
    """The live transport can no longer deliver writes."""
