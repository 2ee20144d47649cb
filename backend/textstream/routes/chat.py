"""
Chat routes.

Messages: each prompt gets its own response stream, created before any
generation starts.

POST /api/chat-stream drives a message's stream: the reply is sent to this
client as SSE at token granularity while being persisted in chunks. Only the
first request for a stream drives it; later requests get 409 and should read
GET /api/streams/{id} instead.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from textstream.config import settings
from textstream.database import Message, get_session
from textstream.models.request import ChatStreamRequest, MessageCreate
from textstream.models.response import MessageResponse
from textstream.providers.base import BaseProvider
from textstream.providers.registry import provider_registry
from textstream.services.chat import build_history, get_message_for_stream, provider_generator
from textstream.services.errors import AlreadyDrivenError, StorageError, StreamNotFoundError
from textstream.services.streams import StreamService, get_stream_service
from textstream.services.transport import SSETransport
from textstream.utils.exceptions import (
    raise_bad_request,
    raise_conflict,
    raise_not_found,
    raise_service_unavailable,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def get_chat_provider() -> BaseProvider:
    """Provider used to generate replies; 400 if none is configured."""
    provider = provider_registry.get_provider()
    if provider is None or not provider.is_configured():
        raise_bad_request("No AI provider configured. Check API keys.")
    return provider


@router.post("/messages", response_model=MessageResponse, status_code=201)
async def send_message(
    request: MessageCreate,
    session: AsyncSession = Depends(get_session),
    service: StreamService = Depends(get_stream_service),
):
    """POST /api/messages - store a prompt together with a fresh response stream"""
    try:
        stream_id = await service.lifecycle.create()
    except StorageError as e:
        logger.error(f"Failed to create response stream: {e.message}")
        raise_service_unavailable("Stream storage unavailable")

    message = Message(prompt=request.prompt, response_stream_id=stream_id)
    session.add(message)
    await session.commit()
    await session.refresh(message)
    return MessageResponse.model_validate(message)


@router.get("/messages", response_model=List[MessageResponse])
async def list_messages(session: AsyncSession = Depends(get_session)):
    """GET /api/messages - all prompts, oldest first"""
    result = await session.execute(select(Message).order_by(Message.id))
    return [MessageResponse.model_validate(m) for m in result.scalars().all()]


@router.delete("/messages")
async def clear_messages(session: AsyncSession = Depends(get_session)):
    """DELETE /api/messages - forget the conversation (streams are kept)"""
    result = await session.execute(delete(Message))
    await session.commit()
    return {"deleted": result.rowcount}


@router.post("/chat-stream")
async def chat_stream(
    request: ChatStreamRequest,
    session: AsyncSession = Depends(get_session),
    service: StreamService = Depends(get_stream_service),
    provider: BaseProvider = Depends(get_chat_provider),
):
    """
    POST /api/chat-stream - drive a message's response stream

    Returns SSE stream with events:
    - start: Drive attached {stream_id}
    - delta: Generated increment {text, reasoning}
    - done: Generation finished {stream_id}
    - error: Generation failed or timed out {stream_id, error}
    """
    message = await get_message_for_stream(session, request.stream_id)
    if message is None:
        raise_not_found("Message for stream", request.stream_id)

    history = await build_history(session, service.reader, message)
    generator = provider_generator(provider, history, settings.system_prompt)
    transport = SSETransport(request.stream_id)

    try:
        await service.start_drive(request.stream_id, transport, generator)
    except StreamNotFoundError:
        raise_not_found("Stream", request.stream_id)
    except AlreadyDrivenError as e:
        raise_conflict(f"Stream is already {e.status.value}; read it from /api/streams instead")
    except StorageError as e:
        logger.error(f"Failed to start drive for {request.stream_id}: {e.message}")
        raise_service_unavailable("Stream storage unavailable")

    return StreamingResponse(
        transport.events(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )
