"""Error taxonomy for the Persona Chat Assistant.

Every error carries a localized ``user_message`` that can be shown to the
end user as-is, while ``str(error)`` keeps the technical detail for logs.
"""

from enum import Enum
from typing import Optional


GENERIC_ERROR_MESSAGE = "予期せぬエラーが発生しました。しばらく待ってから再度お試しください。"
MESSAGE_LENGTH_ERROR_TEMPLATE = "メッセージは1-{max_length}文字で入力してください。"


class GenerationFailureKind(str, Enum):
    """Failure categories reported by the generation collaborator."""
    RATE_LIMIT = "rate_limit"
    INVALID_INPUT = "invalid_input"
    EMPTY_RESPONSE = "empty_response"
    CONTEXT_LENGTH_EXCEEDED = "context_length_exceeded"
    OTHER = "other"


GENERATION_ERROR_MESSAGES = {
    GenerationFailureKind.RATE_LIMIT: "アクセスが集中しています。しばらく待ってから再度お試しください。",
    GenerationFailureKind.INVALID_INPUT: "申し訳ありません。入力内容を確認して、もう一度お試しください。",
    GenerationFailureKind.EMPTY_RESPONSE: "申し訳ありません。正しい応答を生成できませんでした。",
    GenerationFailureKind.CONTEXT_LENGTH_EXCEEDED: "申し訳ありません。メッセージが長すぎます。簡潔な質問に分けてお試しください。",
    GenerationFailureKind.OTHER: GENERIC_ERROR_MESSAGE,
}


class ChatServiceError(Exception):
    """Base class for all errors raised by the chat service."""

    user_message = GENERIC_ERROR_MESSAGE
    retryable = False

    def __init__(self, message: str = "", user_message: Optional[str] = None):
        super().__init__(message or self.user_message)
        if user_message:
            self.user_message = user_message


class ValidationError(ChatServiceError):
    """Malformed or oversized input. Raised before any external call."""

    user_message = "メッセージの形式が正しくありません。"


class GenerationTimeoutError(ChatServiceError):
    """The generation call did not finish before the deadline."""

    user_message = "応答がタイムアウトしました。もう一度お試しください。"
    retryable = True


class GenerationError(ChatServiceError):
    """The generation collaborator failed."""

    def __init__(
        self,
        message: str = "",
        kind: GenerationFailureKind = GenerationFailureKind.OTHER
    ):
        self.kind = kind
        super().__init__(message, user_message=GENERATION_ERROR_MESSAGES[kind])


class EmptyResponseError(GenerationError):
    """The generation collaborator returned no text."""

    def __init__(self, message: str = "Empty response from model"):
        super().__init__(message, kind=GenerationFailureKind.EMPTY_RESPONSE)


class StorageError(ChatServiceError):
    """Session persistence failed. Recovered locally, never shown to users."""


def classify_generation_failure(error: Exception) -> GenerationFailureKind:
    """
    Map a provider exception to a failure kind.

    Providers raise heterogeneous exception types, so the classification
    works on the exception name and message.

    Args:
        error: Exception raised by an LLM client

    Returns:
        Matching GenerationFailureKind
    """
    if isinstance(error, GenerationError):
        return error.kind

    text = f"{type(error).__name__} {error}".lower()

    if "rate limit" in text or "ratelimit" in text or "rate_limit" in text or "429" in text:
        return GenerationFailureKind.RATE_LIMIT
    if "context length" in text or "context_length" in text or "too long" in text or "maximum context" in text:
        return GenerationFailureKind.CONTEXT_LENGTH_EXCEEDED
    if "empty response" in text:
        return GenerationFailureKind.EMPTY_RESPONSE
    if "invalid" in text:
        return GenerationFailureKind.INVALID_INPUT
    return GenerationFailureKind.OTHER
