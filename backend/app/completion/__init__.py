"""External completion service client and failure taxonomy."""

from app.completion.client import (
    CompletionClient,
    CompletionResult,
    CompletionServiceError,
    OpenRouterChatCompletionsClient,
)
from app.completion.error_classifier import (
    ErrorClassification,
    ProviderErrorKind,
    classify_provider_error,
    format_error_message,
)

__all__ = [
    "CompletionClient",
    "CompletionResult",
    "CompletionServiceError",
    "ErrorClassification",
    "OpenRouterChatCompletionsClient",
    "ProviderErrorKind",
    "classify_provider_error",
    "format_error_message",
]
