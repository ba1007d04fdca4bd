"""Run dispatcher: one completion call plus validation per (document, model) pair."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.completion import (
    CompletionClient,
    CompletionServiceError,
    ErrorClassification,
    OpenRouterChatCompletionsClient,
    ProviderErrorKind,
    classify_provider_error,
    format_error_message,
)
from app.config import get_settings
from app.models.base import utc_now
from app.models.batch_job import OUTPUT_SHAPE_SINGLE_OBJECT
from app.models.language_model import LanguageModel
from app.models.run import RUN_STATUS_COMPLETED, RUN_STATUS_FAILED, Run
from app.validation import ValidationDetail, build_guidance, count_null_values, validate_response

logger = logging.getLogger(__name__)

_DOCUMENT_TEXT_HEADER = "Document text:"


@dataclass(slots=True, frozen=True)
class ModelPricing:
    """Catalog entry used for cost accounting and JSON-mode decisions."""

    price_in: float = 0.0
    price_out: float = 0.0
    supports_json_mode: bool = False


@dataclass(slots=True)
class RunResult:
    """Terminal outcome of one dispatched run, independent of persistence."""

    document_id: int
    model: str
    status: str
    raw_response: str | None = None
    payload: Any | None = None
    json_valid: bool = False
    attributes_valid: bool = False
    formats_valid: bool = False
    validation_detail: dict[str, Any] = field(default_factory=dict)
    guidance: list[str] = field(default_factory=list)
    execution_time_ms: int | None = None
    tokens_in: int | None = None
    tokens_out: int | None = None
    cost_in: float | None = None
    cost_out: float | None = None
    null_count: int = 0
    error_message: str | None = None

    @property
    def validation_passed(self) -> bool:
        return self.status == RUN_STATUS_COMPLETED and self.json_valid and self.attributes_valid and self.formats_valid


class RunDispatcher:
    """Executes single runs against the completion service. Holds no DB session."""

    def __init__(
        self,
        client: CompletionClient | None,
        *,
        pricing: dict[str, ModelPricing] | None = None,
        record_stream_policy: str = "all_lines",
        max_guidance: int = 5,
        document_char_limit: int = 20000,
    ) -> None:
        self.client = client
        self.pricing = dict(pricing or {})
        self.record_stream_policy = record_stream_policy
        self.max_guidance = max_guidance
        self.document_char_limit = document_char_limit

    def execute(
        self,
        *,
        document_id: int,
        document_text: str,
        model: str,
        system_prompt: str,
        user_prompt: str,
        schema: dict[str, Any],
        output_shape: str,
    ) -> RunResult:
        """Call the completion service once and validate the response.

        Provider failures are returned as failed results, never raised.
        """

        pricing = self.pricing.get(model, ModelPricing())
        json_mode = output_shape == OUTPUT_SHAPE_SINGLE_OBJECT and pricing.supports_json_mode
        prompt = self.compose_user_prompt(user_prompt, document_text)

        started = perf_counter()
        try:
            if self.client is None:
                raise CompletionServiceError("Completion service API key is not configured", 401)
            completion = self.client.complete(
                model=model,
                system_prompt=system_prompt,
                user_prompt=prompt,
                json_mode=json_mode,
            )
        except CompletionServiceError as exc:
            elapsed_ms = int((perf_counter() - started) * 1000)
            result = self._provider_failure(document_id, model, exc, elapsed_ms)
            logger.warning(
                "batch.run_provider_failed document_id=%s model=%s error_kind=%s elapsed_ms=%d",
                document_id,
                model,
                result.validation_detail.get("error_kind"),
                elapsed_ms,
            )
            return result
        elapsed_ms = int((perf_counter() - started) * 1000)

        outcome = validate_response(
            completion.text,
            schema,
            output_shape,
            record_stream_policy=self.record_stream_policy,
            max_guidance=self.max_guidance,
        )
        return RunResult(
            document_id=document_id,
            model=model,
            status=RUN_STATUS_COMPLETED,
            raw_response=completion.text,
            payload=outcome.payload,
            json_valid=outcome.json_valid,
            attributes_valid=outcome.attributes_valid,
            formats_valid=outcome.formats_valid,
            validation_detail=outcome.detail.to_json(),
            guidance=outcome.guidance,
            execution_time_ms=elapsed_ms,
            tokens_in=completion.tokens_in,
            tokens_out=completion.tokens_out,
            cost_in=completion.tokens_in * pricing.price_in,
            cost_out=completion.tokens_out * pricing.price_out,
            null_count=count_null_values(outcome.payload) if outcome.json_valid else 0,
        )

    def compose_user_prompt(self, user_prompt: str, document_text: str) -> str:
        text = document_text or ""
        if self.document_char_limit > 0 and len(text) > self.document_char_limit:
            text = text[: self.document_char_limit]
        return f"{user_prompt.rstrip()}\n\n{_DOCUMENT_TEXT_HEADER}\n{text}"

    def _provider_failure(
        self,
        document_id: int,
        model: str,
        exc: CompletionServiceError,
        elapsed_ms: int,
    ) -> RunResult:
        classification = classify_provider_error(str(exc), exc.status_code)
        detail = ValidationDetail().to_json()
        detail["error_kind"] = classification.kind.value
        detail["retryable"] = classification.retryable
        return RunResult(
            document_id=document_id,
            model=model,
            status=RUN_STATUS_FAILED,
            validation_detail=detail,
            guidance=build_guidance(
                ValidationDetail(),
                None,
                provider_guidance=classification.guidance,
                max_items=self.max_guidance,
            ),
            execution_time_ms=elapsed_ms,
            error_message=format_error_message(classification, str(exc)),
        )


def unexpected_failure_result(document_id: int, model: str, exc: BaseException) -> RunResult:
    """Build a failed result for an exception raised outside the provider call."""

    classification = ErrorClassification(kind=ProviderErrorKind.UNKNOWN, retryable=False)
    detail = ValidationDetail().to_json()
    detail["error_kind"] = classification.kind.value
    detail["retryable"] = classification.retryable
    return RunResult(
        document_id=document_id,
        model=model,
        status=RUN_STATUS_FAILED,
        validation_detail=detail,
        error_message=format_error_message(classification, str(exc)),
    )


def apply_run_result(run: Run, result: RunResult) -> None:
    """Write a terminal result onto its run row; a run is finalized only once."""

    if run.is_terminal:
        raise ValueError(f"Run {run.id} is already {run.status}")
    run.status = result.status
    run.raw_response = result.raw_response
    run.payload_json = result.payload
    run.json_valid = result.json_valid
    run.attributes_valid = result.attributes_valid
    run.formats_valid = result.formats_valid
    run.validation_passed = result.validation_passed
    run.validation_detail_json = result.validation_detail
    run.guidance_json = result.guidance
    run.execution_time_ms = result.execution_time_ms
    run.tokens_in = result.tokens_in
    run.tokens_out = result.tokens_out
    run.cost_in = result.cost_in
    run.cost_out = result.cost_out
    run.null_count = result.null_count
    run.error_message = result.error_message
    run.completed_at = utc_now()


def load_model_pricing(db: Session, models: list[str]) -> dict[str, ModelPricing]:
    """Read catalog prices for the given identifiers; unknown models cost nothing."""

    if not models:
        return {}
    rows = db.scalars(select(LanguageModel).where(LanguageModel.identifier.in_(models)))
    return {
        row.identifier: ModelPricing(
            price_in=float(row.price_in or 0.0),
            price_out=float(row.price_out or 0.0),
            supports_json_mode=bool(row.supports_json_mode),
        )
        for row in rows
    }


def get_default_dispatcher(db: Session, models: list[str]) -> RunDispatcher:
    """Return the configured dispatcher; without an API key every run fails as unauthenticated."""

    settings = get_settings()
    client: CompletionClient | None = None
    if settings.openrouter_api_key:
        client = OpenRouterChatCompletionsClient(
            api_key=settings.openrouter_api_key,
            base_url=settings.openrouter_base_url,
            timeout_seconds=settings.completion_timeout_seconds,
            temperature=settings.completion_temperature,
            max_tokens=settings.completion_max_tokens,
            app_url=settings.openrouter_app_url,
            app_title=settings.openrouter_app_title,
        )
    return RunDispatcher(
        client,
        pricing=load_model_pricing(db, models),
        record_stream_policy=settings.record_stream_policy,
        max_guidance=settings.guidance_max_items,
        document_char_limit=settings.document_text_char_limit,
    )
