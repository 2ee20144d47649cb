from textstream.providers.base import BaseProvider, StreamChunk
from textstream.providers.registry import provider_registry

__all__ = ["BaseProvider", "StreamChunk", "provider_registry"]
