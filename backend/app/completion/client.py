"""Chat-completion client for the external model gateway."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Protocol
from urllib import error as urllib_error
from urllib import request as urllib_request


class CompletionServiceError(RuntimeError):
    """Raised when the completion service call fails or returns an unusable body."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(slots=True)
class CompletionResult:
    """Raw text and token usage returned by one completion call."""

    text: str
    tokens_in: int = 0
    tokens_out: int = 0


class CompletionClient(Protocol):
    """Protocol for pluggable completion clients used by the run dispatcher."""

    def complete(
        self,
        *,
        model: str,
        system_prompt: str,
        user_prompt: str,
        json_mode: bool = False,
    ) -> CompletionResult:
        """Return the raw completion text and token usage."""


@dataclass(slots=True)
class OpenRouterChatCompletionsClient:
    """Minimal OpenRouter Chat Completions client using stdlib HTTP."""

    api_key: str
    base_url: str = "https://openrouter.ai/api/v1"
    timeout_seconds: int = 120
    temperature: float = 0.1
    max_tokens: int = 4000
    app_url: str = "http://localhost:3000"
    app_title: str = "Extraction Bench"

    def complete(
        self,
        *,
        model: str,
        system_prompt: str,
        user_prompt: str,
        json_mode: bool = False,
    ) -> CompletionResult:
        """Call the gateway once; no retries."""

        payload: dict[str, Any] = {
            "model": model,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        url = f"{self.base_url.rstrip('/')}/chat/completions"
        req = urllib_request.Request(
            url=url,
            data=json.dumps(payload).encode("utf-8"),
            method="POST",
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
                "HTTP-Referer": self.app_url,
                "X-Title": self.app_title,
            },
        )

        try:
            with urllib_request.urlopen(req, timeout=self.timeout_seconds) as resp:
                raw = resp.read().decode("utf-8")
        except urllib_error.HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="replace")
            raise CompletionServiceError(f"Completion API error: {exc.code} - {detail}", exc.code) from exc
        except urllib_error.URLError as exc:
            if isinstance(exc.reason, TimeoutError):
                raise CompletionServiceError(
                    f"Completion request timed out after {self.timeout_seconds}s"
                ) from exc
            raise CompletionServiceError(f"Network connection failed: {exc.reason}") from exc
        except TimeoutError as exc:
            raise CompletionServiceError(f"Completion request timed out after {self.timeout_seconds}s") from exc
        except OSError as exc:
            raise CompletionServiceError(f"Network connection failed: {exc}") from exc

        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise CompletionServiceError("Completion API returned a non-JSON body") from exc
        if isinstance(decoded, dict) and isinstance(decoded.get("error"), dict):
            error_body = decoded["error"]
            code = error_body.get("code")
            raise CompletionServiceError(
                f"Completion API error: {code} - {error_body.get('message', '')}",
                code if isinstance(code, int) else None,
            )
        try:
            content = decoded["choices"][0]["message"].get("content") or ""
            usage = decoded.get("usage") or {}
            return CompletionResult(
                text=str(content),
                tokens_in=int(usage.get("prompt_tokens") or 0),
                tokens_out=int(usage.get("completion_tokens") or 0),
            )
        except (KeyError, IndexError, TypeError, AttributeError, ValueError) as exc:
            raise CompletionServiceError("Completion API returned an unexpected response shape") from exc
