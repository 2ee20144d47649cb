"""Tests for provider SSE parsing and provider selection."""

import httpx
import pytest

from textstream.config import Settings
from textstream.providers.base import OpenAIFormatProvider
from textstream.providers.claude import ClaudeProvider
from textstream.providers.openai import OpenAIProvider
from textstream.providers.openai_compatible import OpenAICompatibleProvider
from textstream.providers.registry import ProviderRegistry, build_provider


def _mock_client(body: str) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=body, headers={"content-type": "text/event-stream"})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://test")


def test_openai_extract_delta():
    extract = OpenAIFormatProvider._extract_delta
    assert extract({"choices": [{"delta": {"content": "Hi"}}]}) == ("Hi", None)
    assert extract({"choices": [{"delta": {"reasoning_content": "hmm"}}]}) == (None, "hmm")
    assert extract({"choices": [{"delta": {"reasoning": "hmm"}}]}) == (None, "hmm")
    assert extract({"choices": []}) == (None, None)


async def test_openai_stream_parses_content_and_reasoning():
    provider = OpenAIProvider("sk-test", "gpt-test")
    await provider.cleanup()
    provider._client = _mock_client(
        'data: {"choices":[{"delta":{"reasoning_content":"Thinking"}}]}\n\n'
        'data: {"choices":[{"delta":{"content":"Hello"}}]}\n\n'
        "data: not json\n\n"
        'data: {"choices":[{"delta":{"content":" there"}}]}\n\n'
        "data: [DONE]\n\n"
    )

    chunks = [c async for c in provider.stream_chat([{"role": "user", "content": "Hi"}])]
    await provider.cleanup()

    assert [(c.content, c.reasoning) for c in chunks[:-1]] == [
        ("", "Thinking"),
        ("Hello", ""),
        (" there", ""),
    ]
    assert chunks[-1].is_done


async def test_claude_stream_parses_thinking_and_text():
    provider = ClaudeProvider("key", "claude-test", thinking_budget=1024)
    await provider.cleanup()
    provider._client = _mock_client(
        'data: {"type":"message_start"}\n\n'
        'data: {"type":"content_block_delta","delta":{"type":"thinking_delta","thinking":"Plan"}}\n\n'
        'data: {"type":"content_block_delta","delta":{"type":"text_delta","text":"Answer"}}\n\n'
        'data: {"type":"message_stop"}\n\n'
    )

    chunks = [c async for c in provider.stream_chat([{"role": "user", "content": "Hi"}])]
    await provider.cleanup()

    assert [(c.content, c.reasoning) for c in chunks if not c.is_done] == [
        ("", "Plan"),
        ("Answer", ""),
    ]
    assert chunks[-1].is_done


async def test_http_error_becomes_error_chunk():
    provider = OpenAIProvider("sk-test", "gpt-test")
    await provider.cleanup()

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="boom")

    provider._client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="https://test"
    )

    chunks = [c async for c in provider.stream_chat([{"role": "user", "content": "Hi"}])]
    await provider.cleanup()

    assert len(chunks) == 1
    assert chunks[0].is_done
    assert chunks[0].error


async def test_build_provider_from_settings():
    assert build_provider(Settings(llm_provider="openai", openai_api_key=None)) is None
    assert build_provider(Settings(llm_provider="unknown")) is None
    assert build_provider(Settings(llm_provider="openai-compatible", llm_base_url=None)) is None

    openai = build_provider(Settings(llm_provider="openai", openai_api_key="sk-test"))
    assert isinstance(openai, OpenAIProvider)
    await openai.cleanup()

    local = build_provider(
        Settings(llm_provider="openai-compatible", llm_base_url="http://localhost:11434/v1/")
    )
    assert isinstance(local, OpenAICompatibleProvider)
    assert local.base_url == "http://localhost:11434/v1"
    assert local.is_configured()
    await local.cleanup()

    claude = build_provider(
        Settings(llm_provider="anthropic", anthropic_api_key="key", llm_reasoning_budget=2048)
    )
    assert isinstance(claude, ClaudeProvider)
    assert claude.thinking_budget == 2048
    await claude.cleanup()


async def test_registry_cleanup_releases_provider():
    registry = ProviderRegistry()
    registry.initialize(Settings(llm_provider="openai", openai_api_key="sk-test"))
    assert registry.get_provider() is not None

    await registry.cleanup()

    assert registry.get_provider() is None
