"""Application settings."""

import os
from typing import Optional
from pydantic import BaseModel


class Settings(BaseModel):
    """Application configuration settings."""

    # LLM Provider settings
    llm_provider: str = "gemini"  # "gemini", "openai" or "anthropic"
    llm_model: Optional[str] = None  # Override default model for the provider

    # API Keys
    google_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None

    # Generation settings
    temperature: float = 0.7
    max_output_tokens: int = 1000
    generation_timeout_ms: int = 15000
    generation_workers: int = 4

    # Session settings
    db_path: str = "data/sessions.db"
    session_ttl_hours: int = 24
    max_messages: int = 100
    context_window: int = 10
    max_message_length: int = 500
    default_persona: str = "caring"
    session_cache_size: int = 256

    # Logging
    verbose: bool = False

    def __init__(self, **data):
        # Auto-load API keys from environment if not provided
        if "google_api_key" not in data or data["google_api_key"] is None:
            data["google_api_key"] = os.environ.get("GOOGLE_API_KEY")

        if "openai_api_key" not in data or data["openai_api_key"] is None:
            data["openai_api_key"] = os.environ.get("OPENAI_API_KEY")

        if "anthropic_api_key" not in data or data["anthropic_api_key"] is None:
            data["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")

        super().__init__(**data)

    @property
    def session_ttl_ms(self) -> int:
        """Session time-to-live in milliseconds."""
        return self.session_ttl_hours * 60 * 60 * 1000

    def get_llm_api_key(self) -> Optional[str]:
        """Get the API key for the configured LLM provider."""
        if self.llm_provider == "gemini":
            return self.google_api_key
        elif self.llm_provider == "openai":
            return self.openai_api_key
        elif self.llm_provider == "anthropic":
            return self.anthropic_api_key
        return None
