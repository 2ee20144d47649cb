from typing import Optional

from textstream.providers.base import OpenAIFormatProvider


class OpenAICompatibleProvider(OpenAIFormatProvider):
    """Self-hosted servers speaking the OpenAI format (Ollama, LM Studio, vLLM).

    Local servers usually run without auth, so the key is optional and the
    provider counts as configured once it has a base URL.
    """

    name = "openai-compatible"

    def __init__(self, api_key: Optional[str], model: str, base_url: str):
        super().__init__(api_key, model, base_url=base_url)

    def is_configured(self) -> bool:
        return bool(self.base_url)
