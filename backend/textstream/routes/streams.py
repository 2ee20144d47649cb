"""
Stream routes.
- Create a stream (pending until a driver attaches)
- Read the durable body of a stream (observers, reconnecting drivers)
- Read chunks committed after a sequence (incremental catch-up)
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from textstream.models.response import (
    ChunkListResponse,
    ChunkResponse,
    StreamBodyResponse,
    StreamCreated,
)
from textstream.services.errors import StorageError, StreamNotFoundError
from textstream.services.streams import StreamService, get_stream_service
from textstream.utils.exceptions import raise_not_found, raise_service_unavailable

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/streams", response_model=StreamCreated, status_code=201)
async def create_stream(service: StreamService = Depends(get_stream_service)):
    """POST /api/streams - allocate a new pending stream"""
    try:
        stream_id = await service.lifecycle.create()
    except StorageError as e:
        logger.error(f"Failed to create stream: {e.message}")
        raise_service_unavailable("Stream storage unavailable")
    return StreamCreated(stream_id=stream_id)


@router.get("/streams/{stream_id}", response_model=StreamBodyResponse)
async def get_stream_body(
    stream_id: str,
    service: StreamService = Depends(get_stream_service),
):
    """GET /api/streams/{stream_id} - persisted text, reasoning and status"""
    try:
        body = await service.reader.get_body(stream_id)
    except StreamNotFoundError:
        raise_not_found("Stream", stream_id)
    except StorageError as e:
        logger.error(f"Failed to read stream {stream_id}: {e.message}")
        raise_service_unavailable("Stream storage unavailable")
    return StreamBodyResponse.from_body(body)


@router.get("/streams/{stream_id}/chunks", response_model=ChunkListResponse)
async def get_stream_chunks(
    stream_id: str,
    after: Optional[int] = Query(None, ge=-1, description="Only chunks with a greater sequence"),
    service: StreamService = Depends(get_stream_service),
):
    """GET /api/streams/{stream_id}/chunks?after=N - chunks committed after sequence N"""
    try:
        status, chunks = await service.reader.get_chunks(stream_id, after)
    except StreamNotFoundError:
        raise_not_found("Stream", stream_id)
    except StorageError as e:
        logger.error(f"Failed to read chunks of {stream_id}: {e.message}")
        raise_service_unavailable("Stream storage unavailable")
    return ChunkListResponse(
        stream_id=stream_id,
        status=status,
        chunks=[ChunkResponse.from_record(c) for c in chunks],
    )
