"""
Reconstruction Reader.

Rebuilds a stream's text and status from its committed chunks. This is the
only read path for observers and the replay path for a driving client that
reconnects mid-stream.
"""

import logging
from typing import List, Optional, Tuple

from textstream.models.stream import ChunkRecord, StreamBody, StreamStatus
from textstream.services.chunk_store import ChunkStore
from textstream.services.errors import StreamNotFoundError

logger = logging.getLogger(__name__)


def find_sequence_gap(chunks: List[ChunkRecord], start: int = 0) -> Optional[int]:
    """Return the first missing sequence number, or None if the run is contiguous."""
    expected = start
    for chunk in chunks:
        if chunk.sequence != expected:
            return expected
        expected += 1
    return None


class StreamReader:
    """Assembles the durable snapshot of a stream."""

    def __init__(self, store: ChunkStore):
        self.store = store

    async def get_body(self, stream_id: str) -> StreamBody:
        """
        Full persisted text and current status of a stream.

        Status and chunks come from the same read transaction.

        Raises:
            StreamNotFoundError: stream was never created
        """
        status, chunks = await self._snapshot(stream_id)
        return StreamBody(
            stream_id=stream_id,
            text="".join(c.text for c in chunks),
            reasoning="".join(c.reasoning for c in chunks),
            status=status,
        )

    async def get_chunks(
        self, stream_id: str, after: Optional[int] = None
    ) -> Tuple[StreamStatus, List[ChunkRecord]]:
        """Status plus the chunks committed after sequence `after` (all if None)."""
        return await self._snapshot(stream_id, after)

    async def _snapshot(
        self, stream_id: str, after: Optional[int] = None
    ) -> Tuple[StreamStatus, List[ChunkRecord]]:
        status, chunks = await self.store.read_snapshot(stream_id, after)
        if status is None:
            raise StreamNotFoundError(stream_id)

        gap = find_sequence_gap(chunks, start=0 if after is None else after + 1)
        if gap is not None:
            logger.warning(f"Stream {stream_id} has a gap in chunk sequence at {gap}")
        return status, chunks
