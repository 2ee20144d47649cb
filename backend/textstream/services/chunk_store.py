"""
Chunk Store.

Durable, append-only record of a stream's chunks plus its status row.
Storage primitives only: status rules live in the lifecycle manager.

Every write that depends on the current status is a single conditional
statement, so the check and the write cannot be separated by a concurrent
caller:
- claim():        UPDATE streams ... WHERE status = 'pending'
- close():        UPDATE streams ... WHERE status = 'streaming'
- append_chunk(): INSERT INTO chunks ... SELECT FROM streams
                  WHERE status = 'streaming' AND drive_token = :token
"""

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import DateTime, func, insert, literal, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from textstream.database import Chunk, Stream
from textstream.models.stream import ChunkRecord, DriveToken, StreamStatus
from textstream.services.errors import StorageError, StreamClosedError
from textstream.utils.time import utcnow

logger = logging.getLogger(__name__)


def _to_record(chunk: Chunk) -> ChunkRecord:
    return ChunkRecord(
        stream_id=chunk.stream_id,
        sequence=chunk.sequence,
        text=chunk.text,
        reasoning=chunk.reasoning,
        created_at=chunk.created_at,
    )


class ChunkStore:
    """Async store for streams and their chunks."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    # ==================== Streams ====================

    async def create_stream(self, stream_id: str) -> None:
        """Insert a new stream row with status pending."""
        try:
            async with self._session_factory() as session:
                session.add(Stream(id=stream_id, status=StreamStatus.PENDING.value))
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to create stream: {e}", stream_id) from e

    async def get_status(self, stream_id: str) -> Optional[StreamStatus]:
        """Read the current status, or None if the stream does not exist."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Stream.status).where(Stream.id == stream_id)
                )
                value = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read stream status: {e}", stream_id) from e
        return StreamStatus(value) if value is not None else None

    async def claim(self, stream_id: str, token: str) -> bool:
        """
        Check-and-set pending -> streaming.

        Returns:
            True if this caller moved the stream to streaming, False otherwise
        """
        stmt = (
            update(Stream)
            .where(Stream.id == stream_id, Stream.status == StreamStatus.PENDING.value)
            .values(
                status=StreamStatus.STREAMING.value,
                drive_token=token,
                started_at=utcnow(),
            )
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to claim stream: {e}", stream_id) from e
        return result.rowcount == 1

    async def close(self, stream_id: str, status: StreamStatus) -> bool:
        """
        Check-and-set streaming -> terminal status.

        Returns:
            True if the row changed, False if it was not streaming
        """
        stmt = (
            update(Stream)
            .where(Stream.id == stream_id, Stream.status == StreamStatus.STREAMING.value)
            .values(status=status.value, finished_at=utcnow())
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to close stream: {e}", stream_id) from e
        return result.rowcount == 1

    async def expire_streaming(self, older_than: datetime) -> int:
        """Move streaming rows started before `older_than` to timeout."""
        stmt = (
            update(Stream)
            .where(
                Stream.status == StreamStatus.STREAMING.value,
                Stream.started_at < older_than,
            )
            .values(status=StreamStatus.TIMEOUT.value, finished_at=utcnow())
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to expire streams: {e}") from e
        return result.rowcount

    # ==================== Chunks ====================

    async def append_chunk(self, token: DriveToken, text: str, reasoning: str = "") -> int:
        """
        Commit one chunk for the stream the token was issued for.

        The sequence number is assigned in the same statement as
        max(sequence) + 1 (first chunk is 0), and the row is only inserted
        while the stream is streaming under this exact drive token.

        Returns:
            The sequence number assigned to the chunk

        Raises:
            StreamClosedError: stream is terminal or the token is stale
            StorageError: the database failed
        """
        next_sequence = (
            select(func.coalesce(func.max(Chunk.sequence), -1) + 1)
            .where(Chunk.stream_id == token.stream_id)
            .scalar_subquery()
        )
        guarded = select(
            literal(token.stream_id),
            next_sequence,
            literal(text),
            literal(reasoning),
            literal(utcnow(), DateTime()),
        ).where(
            Stream.id == token.stream_id,
            Stream.status == StreamStatus.STREAMING.value,
            Stream.drive_token == token.token,
        )
        stmt = insert(Chunk.__table__).from_select(
            ["stream_id", "sequence", "text", "reasoning", "created_at"], guarded
        )

        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                if result.rowcount != 1:
                    await session.rollback()
                    raise StreamClosedError(
                        f"Stream {token.stream_id} is not accepting chunks",
                        token.stream_id,
                    )
                seq_result = await session.execute(
                    select(func.max(Chunk.sequence)).where(
                        Chunk.stream_id == token.stream_id
                    )
                )
                sequence = seq_result.scalar_one()
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to commit chunk: {e}", token.stream_id) from e

        logger.debug(f"Committed chunk {sequence} for stream {token.stream_id}")
        return sequence

    async def list_chunks(
        self, stream_id: str, after: Optional[int] = None
    ) -> List[ChunkRecord]:
        """List committed chunks in sequence order, optionally only those after a sequence."""
        stmt = select(Chunk).where(Chunk.stream_id == stream_id)
        if after is not None:
            stmt = stmt.where(Chunk.sequence > after)
        stmt = stmt.order_by(Chunk.sequence)

        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return [_to_record(c) for c in result.scalars().all()]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list chunks: {e}", stream_id) from e

    async def read_snapshot(
        self, stream_id: str, after: Optional[int] = None
    ) -> Tuple[Optional[StreamStatus], List[ChunkRecord]]:
        """
        Read status and chunks inside one transaction.

        Returns:
            (status, chunks) - status is None if the stream does not exist
        """
        chunk_stmt = select(Chunk).where(Chunk.stream_id == stream_id)
        if after is not None:
            chunk_stmt = chunk_stmt.where(Chunk.sequence > after)
        chunk_stmt = chunk_stmt.order_by(Chunk.sequence)

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    status_result = await session.execute(
                        select(Stream.status).where(Stream.id == stream_id)
                    )
                    value = status_result.scalar_one_or_none()
                    if value is None:
                        return None, []
                    chunk_result = await session.execute(chunk_stmt)
                    chunks = [_to_record(c) for c in chunk_result.scalars().all()]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read stream: {e}", stream_id) from e

        return StreamStatus(value), chunks
