from textstream.providers.base import OpenAIFormatProvider


class OpenAIProvider(OpenAIFormatProvider):
    """OpenAI chat completions provider."""

    name = "openai"
    base_url = "https://api.openai.com/v1"
