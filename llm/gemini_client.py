"""Google Gemini LLM client implementation."""

import os
import logging
from typing import Optional, List

from .base_client import BaseLLMClient, ChatMessage, LLMResponse

logger = logging.getLogger(__name__)


def safe_get_response_text(response) -> str:
    """Safely extract text from a Gemini response, handling blocked/empty responses."""
    try:
        if hasattr(response, "text") and response.text:
            return response.text.strip()
    except ValueError as e:
        # response.text raises when the candidate was blocked
        logger.warning(f"Could not extract response.text: {e}")

    candidates = getattr(response, "candidates", None) or []
    if candidates:
        content = getattr(candidates[0], "content", None)
        parts = getattr(content, "parts", None) or []
        if parts:
            return (parts[0].text or "").strip()

    return ""


class GeminiClient(BaseLLMClient):
    """Google Gemini client implementation."""

    DEFAULT_MODEL = "gemini-1.5-flash"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        top_p: float = 0.8,
        top_k: int = 40
    ):
        """
        Initialize Gemini client.

        Args:
            api_key: Google API key (falls back to GOOGLE_API_KEY env var)
            model: Model to use (default: gemini-1.5-flash)
            top_p: Nucleus sampling parameter
            top_k: Top-k sampling parameter
        """
        self.api_key = api_key or os.environ.get("GOOGLE_API_KEY")
        self.model = model or self.DEFAULT_MODEL
        self.top_p = top_p
        self.top_k = top_k
        self.genai = None

        if self.api_key:
            import google.generativeai as genai
            genai.configure(api_key=self.api_key)
            self.genai = genai
            logger.info(f"Gemini client initialized with model: {self.model}")
        else:
            logger.warning("No Google API key provided")

    def chat(
        self,
        messages: List[ChatMessage],
        temperature: float = 0.7,
        max_tokens: int = 1000
    ) -> LLMResponse:
        """Send a generate_content request to Gemini."""
        if not self.genai:
            raise RuntimeError("Gemini client not initialized. Check API key.")

        # Gemini takes the system prompt separately and calls the assistant "model"
        system_parts = []
        contents = []
        for msg in messages:
            if msg.role == "system":
                system_parts.append(msg.content)
            else:
                role = "model" if msg.role == "assistant" else "user"
                contents.append({"role": role, "parts": [msg.content]})

        model = self.genai.GenerativeModel(
            self.model,
            system_instruction="\n".join(system_parts) or None
        )

        try:
            response = model.generate_content(
                contents,
                generation_config={
                    "temperature": temperature,
                    "max_output_tokens": max_tokens,
                    "top_p": self.top_p,
                    "top_k": self.top_k,
                }
            )
        except Exception as e:
            logger.error(f"Gemini API error: {e}")
            raise

        finish_reason = None
        candidates = getattr(response, "candidates", None) or []
        if candidates:
            finish_reason = str(getattr(candidates[0], "finish_reason", "")) or None

        return LLMResponse(
            content=safe_get_response_text(response),
            finish_reason=finish_reason
        )

    def get_provider_name(self) -> str:
        """Get the provider name."""
        return "gemini"

    def get_model_name(self) -> str:
        """Get the model name."""
        return self.model
