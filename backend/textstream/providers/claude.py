import httpx
from typing import AsyncIterator, Optional, Tuple

from textstream.providers.base import BaseProvider, StreamChunk


class ClaudeProvider(BaseProvider):
    name = "anthropic"

    def __init__(self, api_key: str, model: str, thinking_budget: int = 0):
        super().__init__(api_key, model)
        self.thinking_budget = thinking_budget
        self._client = httpx.AsyncClient(
            base_url="https://api.anthropic.com/v1",
            headers={
                "x-api-key": self.api_key,
                "anthropic-version": "2023-06-01",
                "Content-Type": "application/json",
            },
            timeout=self.timeout,
        )

    def _extract_delta(self, data: dict) -> Tuple[Optional[str], Optional[str]]:
        """Text from text_delta, reasoning from thinking_delta."""
        if data.get("type") != "content_block_delta":
            return None, None
        delta = data.get("delta", {})
        if delta.get("type") == "thinking_delta":
            return None, delta.get("thinking")
        return delta.get("text"), None

    def _is_done(self, data: dict) -> bool:
        """Check if Claude stream is done."""
        return data.get("type") == "message_stop"

    async def stream_chat(
        self, messages: list[dict], system_prompt: Optional[str] = None
    ) -> AsyncIterator[StreamChunk]:
        """Stream chat responses from Claude API."""
        try:
            payload = {
                "model": self.model,
                "max_tokens": 4096,
                "messages": [
                    {"role": msg["role"], "content": msg["content"]} for msg in messages
                ],
                "stream": True,
            }
            if system_prompt:
                payload["system"] = system_prompt
            if self.thinking_budget:
                # Extended thinking needs room for both thinking and answer
                payload["thinking"] = {"type": "enabled", "budget_tokens": self.thinking_budget}
                payload["max_tokens"] = self.thinking_budget + 4096

            async with self._client.stream(
                "POST", "/messages", json=payload
            ) as response:
                response.raise_for_status()
                async for chunk in self._stream_sse_lines(
                    response, self._extract_delta, self._is_done
                ):
                    yield chunk

        except Exception as e:
            yield self._error_chunk(e)
