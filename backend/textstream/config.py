import logging
import os
import sys

from pydantic_settings import BaseSettings
from typing import List, Optional


def setup_logging(level: str = "INFO"):
    """Configure application logging."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    # Set third-party loggers to WARNING to reduce noise
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


# Default database location - data directory next to the package
DATA_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "data")


class Settings(BaseSettings):
    # Storage (defaults to a SQLite file in DATA_DIR)
    database_url: Optional[str] = None

    # Flush policy
    flush_max_chars: int = 400
    flush_boundary_pattern: str = r"[.!?](?=\s)|\n"

    # Drive limits
    drive_timeout: float = 600.0  # seconds before a drive is finalized as timeout
    stream_expiry_minutes: int = 20  # streaming rows older than this are orphaned

    # LLM provider used by the chat endpoint
    llm_provider: str = "openai"  # "openai", "anthropic", "openai-compatible"
    llm_model: str = "gpt-4.1-mini"
    llm_base_url: Optional[str] = None  # Only for openai-compatible servers
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    llm_reasoning_budget: int = 0  # Anthropic extended thinking tokens, 0 disables
    provider_timeout: int = 60
    system_prompt: str = (
        "You are a helpful assistant that can answer questions and help with tasks. "
        "Please provide your response in markdown format. "
        "You are continuing a conversation."
    )

    # Server configuration
    log_level: str = "INFO"
    cors_origins: List[str] = ["*"]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

    def get_database_url(self) -> str:
        """Resolve the SQLAlchemy URL, creating the data directory for the default."""
        if self.database_url:
            return self.database_url
        os.makedirs(DATA_DIR, exist_ok=True)
        return f"sqlite+aiosqlite:///{os.path.join(DATA_DIR, 'streams.db')}"


settings = Settings()

# Initialize logging on import
setup_logging(settings.log_level)

logger = logging.getLogger(__name__)
