"""
Chat app on top of persistent streams.

Each user message owns one response stream. Driving that stream asks the
configured LLM provider for a reply, with the earlier prompts and their
persisted responses as conversation history.
"""

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from textstream.database import Message
from textstream.providers.base import BaseProvider
from textstream.providers.registry import provider_registry
from textstream.services.engine import AppendFn, Generator
from textstream.services.errors import GenerationError, StreamNotFoundError
from textstream.services.reader import StreamReader

logger = logging.getLogger(__name__)


async def get_message_for_stream(session: AsyncSession, stream_id: str) -> Optional[Message]:
    """Find the user message whose response is carried by this stream."""
    result = await session.execute(
        select(Message).where(Message.response_stream_id == stream_id)
    )
    return result.scalar_one_or_none()


async def build_history(
    session: AsyncSession,
    reader: StreamReader,
    message: Message,
) -> List[dict]:
    """
    Conversation so far, ending with the prompt being answered.

    Earlier responses are read back through the reconstruction reader, so
    answers that are still streaming contribute their persisted prefix.
    """
    result = await session.execute(
        select(Message).where(Message.id <= message.id).order_by(Message.id)
    )
    history: List[dict] = []
    for earlier in result.scalars().all():
        history.append({"role": "user", "content": earlier.prompt})
        if earlier.id == message.id:
            break
        try:
            body = await reader.get_body(earlier.response_stream_id)
        except StreamNotFoundError:
            continue
        if body.text:
            history.append({"role": "assistant", "content": body.text})
    return history


def provider_generator(
    provider: BaseProvider,
    messages: List[dict],
    system_prompt: Optional[str] = None,
) -> Generator:
    """Adapt a provider's chunk stream into a drive generator."""

    async def generate(append: AppendFn) -> None:
        provider_registry.stream_started()
        try:
            async for chunk in provider.stream_chat(messages, system_prompt):
                if chunk.error:
                    raise GenerationError(f"{provider.name}: {chunk.error}")
                if chunk.is_done:
                    break
                await append(chunk.content, chunk.reasoning)
        finally:
            provider_registry.stream_ended()

    return generate
