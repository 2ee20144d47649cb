"""
Stream Lifecycle Manager.

Owns stream identity and status transitions:
    pending -> streaming -> done | error | timeout

The single-driver rule is enforced by the store's check-and-set on the status
row; the drive token handed out here is the fence every chunk commit is
checked against.
"""

import logging
import secrets
import uuid
from datetime import timedelta

from textstream.models.stream import DriveToken, StreamStatus, can_transition
from textstream.services.chunk_store import ChunkStore
from textstream.services.errors import (
    AlreadyDrivenError,
    InvalidTransitionError,
    StreamNotFoundError,
)
from textstream.utils.time import cutoff

logger = logging.getLogger(__name__)


def generate_stream_id() -> str:
    """Opaque id, safe in URL paths, query strings and storage keys."""
    return uuid.uuid4().hex


class StreamLifecycle:
    """Creates streams and validates every status change."""

    def __init__(self, store: ChunkStore):
        self.store = store

    async def create(self) -> str:
        """Allocate a fresh stream in pending state and return its id."""
        stream_id = generate_stream_id()
        await self.store.create_stream(stream_id)
        logger.info(f"Created stream {stream_id}")
        return stream_id

    async def status(self, stream_id: str) -> StreamStatus:
        """Current status of a stream."""
        current = await self.store.get_status(stream_id)
        if current is None:
            raise StreamNotFoundError(stream_id)
        return current

    async def begin_drive(self, stream_id: str) -> DriveToken:
        """
        Attach the single driver to a pending stream.

        Returns:
            DriveToken authorizing appends for this stream

        Raises:
            StreamNotFoundError: stream was never created
            AlreadyDrivenError: stream is already streaming or terminal
        """
        token = DriveToken(stream_id=stream_id, token=secrets.token_hex(16))
        if await self.store.claim(stream_id, token.token):
            logger.info(f"Stream {stream_id} is now streaming")
            return token

        current = await self.store.get_status(stream_id)
        if current is None:
            raise StreamNotFoundError(stream_id)
        logger.warning(f"Rejected second driver for stream {stream_id} ({current.value})")
        raise AlreadyDrivenError(stream_id, current)

    async def finalize(self, stream_id: str, outcome: StreamStatus) -> StreamStatus:
        """
        Move a streaming stream to a terminal status.

        Idempotent: if the stream is already terminal it is left as it is and
        the existing status is returned, so the first terminal value wins.

        Returns:
            The stream's terminal status after the call

        Raises:
            InvalidTransitionError: outcome is not terminal, or stream is still pending
            StreamNotFoundError: stream was never created
        """
        if not outcome.is_terminal:
            raise InvalidTransitionError(stream_id, StreamStatus.STREAMING, outcome)

        if await self.store.close(stream_id, outcome):
            logger.info(f"Stream {stream_id} finalized as {outcome.value}")
            return outcome

        current = await self.status(stream_id)
        if current.is_terminal:
            logger.debug(
                f"Stream {stream_id} already {current.value}, ignoring finalize({outcome.value})"
            )
            return current
        if not can_transition(current, outcome):
            raise InvalidTransitionError(stream_id, current, outcome)
        # Went pending -> streaming between the two statements
        return await self.finalize(stream_id, outcome)

    async def expire_stale(self, max_age: timedelta) -> int:
        """Time out streams whose driver has been streaming longer than max_age."""
        count = await self.store.expire_streaming(cutoff(max_age))
        if count:
            logger.warning(f"Expired {count} orphaned streaming stream(s)")
        return count
