"""Classification of completion-service failures into a fixed taxonomy."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum


class ProviderErrorKind(str, Enum):
    AUTHENTICATION = "AuthenticationError"
    RATE_LIMIT = "RateLimit"
    TIMEOUT = "Timeout"
    INVALID_MODEL_NAME = "InvalidModelName"
    MODEL_NOT_FOUND = "ModelNotFound"
    MODEL_UNAVAILABLE = "ModelUnavailable"
    INVALID_REQUEST = "InvalidRequest"
    SERVER_ERROR = "ServerError"
    NETWORK_ERROR = "NetworkError"
    UNKNOWN = "Unknown"


@dataclass(slots=True, frozen=True)
class ErrorClassification:
    """Kind, retryability hint, and user-facing guidance for one failure."""

    kind: ProviderErrorKind
    retryable: bool
    guidance: list[str] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class _Rule:
    kind: ProviderErrorKind
    retryable: bool
    guidance: tuple[str, ...]
    matches: Callable[[str, int | None], bool]


def _contains(message: str, *needles: str) -> bool:
    return any(needle in message for needle in needles)


# Most specific first; the first matching rule wins.
_RULES: tuple[_Rule, ...] = (
    _Rule(
        kind=ProviderErrorKind.AUTHENTICATION,
        retryable=False,
        guidance=(
            "Authentication failed: check the completion service API key.",
            "Verify OPENROUTER_API_KEY is set for the backend.",
        ),
        matches=lambda msg, status: status in (401, 403)
        or _contains(msg, "authentication", "unauthorized", "api key"),
    ),
    _Rule(
        kind=ProviderErrorKind.RATE_LIMIT,
        retryable=True,
        guidance=(
            "Rate limit exceeded: wait a few moments and re-run the batch.",
            "Lower BATCH_MAX_CONCURRENCY or raise the provider plan limits.",
        ),
        matches=lambda msg, status: status == 429 or _contains(msg, "rate limit", "too many requests"),
    ),
    _Rule(
        kind=ProviderErrorKind.TIMEOUT,
        retryable=True,
        guidance=(
            "Model timed out: the model may be slow or overloaded.",
            "Try a faster model or shorten the document text.",
        ),
        matches=lambda msg, status: status in (408, 504)
        or _contains(msg, "timeout", "timed out", "deadline exceeded"),
    ),
    _Rule(
        kind=ProviderErrorKind.INVALID_MODEL_NAME,
        retryable=False,
        guidance=(
            "Invalid model identifier: use the 'provider/model-name' format.",
            "Check the identifier against the provider's model list.",
        ),
        matches=lambda msg, status: _contains(msg, "invalid model", "not a valid model"),
    ),
    _Rule(
        kind=ProviderErrorKind.MODEL_NOT_FOUND,
        retryable=False,
        guidance=(
            "Model not found: the identifier does not exist on the provider.",
            "Pick a model that is currently listed by the provider.",
        ),
        matches=lambda msg, status: status == 404
        or _contains(msg, "no endpoints found")
        or ("model" in msg and _contains(msg, "not found", "does not exist")),
    ),
    _Rule(
        kind=ProviderErrorKind.MODEL_UNAVAILABLE,
        retryable=True,
        guidance=(
            "Model temporarily unavailable or overloaded: try again in a few minutes.",
            "Use a different model as an alternative.",
        ),
        matches=lambda msg, status: status == 503 or _contains(msg, "unavailable", "overloaded", "capacity"),
    ),
    _Rule(
        kind=ProviderErrorKind.INVALID_REQUEST,
        retryable=False,
        guidance=(
            "Invalid request: the model may not support the requested parameters (e.g. JSON mode).",
            "Try a different model or remove special parameters.",
        ),
        matches=lambda msg, status: status in (400, 413, 422),
    ),
    _Rule(
        kind=ProviderErrorKind.SERVER_ERROR,
        retryable=True,
        guidance=(
            "Completion service error: the provider is having issues, try again later.",
        ),
        matches=lambda msg, status: status is not None and status >= 500,
    ),
    _Rule(
        kind=ProviderErrorKind.NETWORK_ERROR,
        retryable=True,
        guidance=(
            "Network error: the completion service could not be reached.",
            "Check outbound connectivity from the backend host.",
        ),
        matches=lambda msg, status: _contains(msg, "network", "connection", "fetch failed", "name resolution"),
    ),
)

_UNKNOWN_GUIDANCE = (
    "Unexpected completion failure: check the backend logs for details.",
    "Try a different model; contact support if the issue persists.",
)

_KIND_LABELS: dict[ProviderErrorKind, str] = {
    ProviderErrorKind.AUTHENTICATION: "Authentication Error",
    ProviderErrorKind.RATE_LIMIT: "Rate Limit",
    ProviderErrorKind.TIMEOUT: "Timeout",
    ProviderErrorKind.INVALID_MODEL_NAME: "Invalid Model Name",
    ProviderErrorKind.MODEL_NOT_FOUND: "Model Not Found",
    ProviderErrorKind.MODEL_UNAVAILABLE: "Model Unavailable",
    ProviderErrorKind.INVALID_REQUEST: "Invalid Request",
    ProviderErrorKind.SERVER_ERROR: "Server Error",
    ProviderErrorKind.NETWORK_ERROR: "Network Error",
    ProviderErrorKind.UNKNOWN: "Unknown Error",
}


def classify_provider_error(message: str, status_code: int | None = None) -> ErrorClassification:
    """Map a raw provider failure to the first matching error kind."""

    lowered = (message or "").lower()
    for rule in _RULES:
        if rule.matches(lowered, status_code):
            return ErrorClassification(kind=rule.kind, retryable=rule.retryable, guidance=list(rule.guidance))
    return ErrorClassification(kind=ProviderErrorKind.UNKNOWN, retryable=False, guidance=list(_UNKNOWN_GUIDANCE))


def kind_label(kind: ProviderErrorKind) -> str:
    return _KIND_LABELS[kind]


def format_error_message(classification: ErrorClassification, message: str) -> str:
    """Prefix the raw message with its kind, e.g. `[Rate Limit] 429 - slow down`."""

    return f"[{kind_label(classification.kind)}] {message}"
