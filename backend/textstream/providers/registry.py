import asyncio
import logging
from typing import Dict, Optional, Type

from textstream.config import Settings, settings
from textstream.providers.base import BaseProvider
from textstream.providers.claude import ClaudeProvider
from textstream.providers.openai import OpenAIProvider
from textstream.providers.openai_compatible import OpenAICompatibleProvider

logger = logging.getLogger(__name__)


# Mapping of provider types to their classes
PROVIDER_CLASSES: Dict[str, Type[BaseProvider]] = {
    "anthropic": ClaudeProvider,
    "openai": OpenAIProvider,
    "openai-compatible": OpenAICompatibleProvider,
}


def build_provider(config: Settings) -> Optional[BaseProvider]:
    """Create the provider described by settings, or None if it is not usable."""
    provider_type = config.llm_provider
    if provider_type not in PROVIDER_CLASSES:
        logger.warning(f"Unknown provider type '{provider_type}'")
        return None

    if provider_type == "openai-compatible":
        if not config.llm_base_url:
            logger.warning("LLM_BASE_URL is required for openai-compatible providers")
            return None
        return OpenAICompatibleProvider(
            api_key=config.openai_api_key,
            model=config.llm_model,
            base_url=config.llm_base_url,
        )

    if provider_type == "anthropic":
        if not config.anthropic_api_key:
            return None
        return ClaudeProvider(
            config.anthropic_api_key,
            config.llm_model,
            thinking_budget=config.llm_reasoning_budget,
        )

    if not config.openai_api_key:
        return None
    return OpenAIProvider(config.openai_api_key, config.llm_model)


class ProviderRegistry:
    """Holds the LLM provider used to drive chat streams"""

    # Maximum time to wait for active streams during cleanup (seconds)
    CLEANUP_TIMEOUT = 10.0

    def __init__(self):
        self._provider: Optional[BaseProvider] = None
        self._active_streams: int = 0

    def stream_started(self) -> None:
        """Call when a provider stream starts."""
        self._active_streams += 1

    def stream_ended(self) -> None:
        """Call when a provider stream ends."""
        self._active_streams = max(0, self._active_streams - 1)

    def initialize(self, config: Settings = settings) -> None:
        """Build the configured provider"""
        try:
            self._provider = build_provider(config)
        except Exception as e:
            logger.error(f"Error initializing provider '{config.llm_provider}': {e}")
            self._provider = None

        if self._provider:
            logger.info(f"LLM provider ready: {self._provider.name} ({self._provider.model})")
        else:
            logger.warning("No LLM provider configured; chat streams will fail")

    def get_provider(self) -> Optional[BaseProvider]:
        return self._provider

    async def cleanup(self):
        """Cleanup the provider, waiting for active streams to complete."""
        # Wait for active streams to complete (with timeout)
        wait_time = 0.0
        while self._active_streams > 0 and wait_time < self.CLEANUP_TIMEOUT:
            logger.debug(f"Waiting for {self._active_streams} active streams to complete...")
            await asyncio.sleep(0.1)
            wait_time += 0.1

        if self._active_streams > 0:
            logger.warning(
                f"Cleanup timeout: {self._active_streams} streams still active after "
                f"{self.CLEANUP_TIMEOUT}s. Proceeding with cleanup."
            )

        if self._provider:
            try:
                await self._provider.cleanup()
            except Exception as e:
                logger.warning(f"Error cleaning up provider {self._provider.name}: {e}")
        self._provider = None


# Singleton instance
provider_registry = ProviderRegistry()
