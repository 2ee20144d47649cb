import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional, Tuple

import httpx
import orjson

from textstream.config import settings

logger = logging.getLogger(__name__)

# Constants
SSE_DATA_PREFIX = "data: "
SSE_DONE_SIGNAL = "data: [DONE]"

# (text delta, reasoning delta) extracted from one SSE payload
DeltaExtractor = Callable[[dict], Tuple[Optional[str], Optional[str]]]


@dataclass
class StreamChunk:
    """Represents a single streaming chunk from a provider"""

    provider: str
    content: str
    reasoning: str = ""
    is_done: bool = False
    error: Optional[str] = None


class BaseProvider(ABC):
    """Abstract base class for AI providers"""

    name: str  # Provider identifier: "anthropic", "openai", ...

    def __init__(self, api_key: str, model: str):
        self.api_key = api_key
        self.model = model
        self._client = None

    @property
    def timeout(self) -> float:
        """Get the configured provider timeout in seconds."""
        return float(settings.provider_timeout)

    @abstractmethod
    async def stream_chat(
        self, messages: list[dict], system_prompt: Optional[str] = None
    ) -> AsyncIterator[StreamChunk]:
        """Stream chat completion responses"""
        pass

    async def cleanup(self):
        """Cleanup HTTP client resources."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def is_configured(self) -> bool:
        """Check if provider has valid API key"""
        return bool(self.api_key)

    def _error_chunk(self, error: Exception) -> StreamChunk:
        """Create an error StreamChunk."""
        return StreamChunk(provider=self.name, content="", is_done=True, error=str(error))

    def _log_json_error(self, error: Exception) -> None:
        """Log JSON parse error at debug level."""
        logger.debug(f"JSON parse error in {self.name}: {error}")

    async def _stream_sse_lines(
        self,
        response: httpx.Response,
        extract_delta: DeltaExtractor,
        done_check: Callable[[dict], bool] | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """
        Process SSE lines from a streaming response.

        Args:
            response: The httpx streaming response
            extract_delta: Function returning (text, reasoning) from parsed JSON data
            done_check: Optional function to check if stream is done from data

        Yields:
            StreamChunk objects with content or completion status
        """
        async for line in response.aiter_lines():
            if not line.startswith(SSE_DATA_PREFIX):
                continue
            if line == SSE_DONE_SIGNAL:
                yield StreamChunk(provider=self.name, content="", is_done=True)
                return

            try:
                data = orjson.loads(line[len(SSE_DATA_PREFIX):])

                # Check if done via data content
                if done_check and done_check(data):
                    yield StreamChunk(provider=self.name, content="", is_done=True)
                    return

                content, reasoning = extract_delta(data)
                if content or reasoning:
                    yield StreamChunk(
                        provider=self.name,
                        content=content or "",
                        reasoning=reasoning or "",
                    )

            except orjson.JSONDecodeError as e:
                self._log_json_error(e)
                continue

        # Connection ended without an explicit done marker
        yield StreamChunk(provider=self.name, content="", is_done=True)


class OpenAIFormatProvider(BaseProvider):
    """Base class for providers using OpenAI-compatible API format.

    Subclasses set `name` and `base_url` class attributes; a base_url passed
    to the constructor overrides the class default.
    """

    name: str = ""  # Override in subclass
    base_url: str = ""  # Override in subclass

    def __init__(self, api_key: Optional[str], model: str, base_url: Optional[str] = None):
        super().__init__(api_key, model)
        if base_url:
            self.base_url = base_url.rstrip("/")
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=self.timeout,
        )

    @staticmethod
    def _extract_delta(data: dict) -> Tuple[Optional[str], Optional[str]]:
        """Text from delta.content, reasoning from delta.reasoning_content / delta.reasoning."""
        choices = data.get("choices") or []
        if not choices:
            return None, None
        delta = choices[0].get("delta") or {}
        reasoning = delta.get("reasoning_content") or delta.get("reasoning")
        return delta.get("content"), reasoning if isinstance(reasoning, str) else None

    async def stream_chat(
        self, messages: list[dict], system_prompt: Optional[str] = None
    ) -> AsyncIterator[StreamChunk]:
        """Stream chat completion using OpenAI API format."""
        try:
            formatted_messages = []
            if system_prompt:
                formatted_messages.append({"role": "system", "content": system_prompt})
            formatted_messages.extend(messages)

            payload = {
                "model": self.model,
                "messages": formatted_messages,
                "stream": True,
            }

            async with self._client.stream(
                "POST", "/chat/completions", json=payload
            ) as response:
                response.raise_for_status()
                async for chunk in self._stream_sse_lines(response, self._extract_delta):
                    yield chunk

        except Exception as e:
            yield self._error_chunk(e)
