"""Batch analytics response schemas."""

from typing import Literal

from pydantic import BaseModel, ConfigDict


class CommonError(BaseModel):
    """Deduplicated error message with its frequency."""

    message: str
    count: int
    document_ids: list[int]


class ValidationBreakdown(BaseModel):
    """Raw counts behind the validity rates."""

    total_runs: int
    json_valid: int
    attributes_valid: int
    formats_valid: int
    common_guidance: list[str]


class AttributeFailureCounts(BaseModel):
    """Per-model failure counts for one attribute path."""

    missing: int = 0
    type_mismatch: int = 0
    format_violation: int = 0


class ModelAnalytics(BaseModel):
    """Outcome summary for one model across a batch."""

    model: str
    success_count: int
    failure_count: int
    success_rate: float
    json_validity_rate: float
    attribute_validity_rate: float
    format_validity_rate: float
    avg_execution_time_ms: float
    total_cost: float
    avg_null_count: float
    common_errors: list[CommonError]
    attribute_failures: dict[str, AttributeFailureCounts]
    validation_breakdown: ValidationBreakdown


class DocumentResult(BaseModel):
    """Aggregate verdict of all model runs for one document."""

    document_id: int
    filename: str
    models_passed_count: int
    models_total_count: int
    status: Literal["all_passed", "partial", "all_failed"]


class AttributeFailure(BaseModel):
    """Failure counts for one schema path across every run of a batch."""

    attribute_path: str
    missing_count: int
    type_mismatch_count: int
    format_violation_count: int
    total_failures: int
    affected_models: list[str]
    affected_document_ids: list[int]
    universal: bool
    pattern: str | None = None


class FailurePattern(BaseModel):
    """Human-readable insight derived from failure distribution."""

    type: Literal["universal_failure", "model_specific", "document_specific", "type_issue", "format_issue"]
    severity: Literal["high", "medium", "low"]
    message: str
    affected_items: list[str]


class BatchAnalyticsData(BaseModel):
    """Full analytics payload for a batch job."""

    model_config = ConfigDict(protected_namespaces=())

    batch_job_id: int
    model_analytics: list[ModelAnalytics]
    document_results: list[DocumentResult]
    attribute_failures: list[AttributeFailure]
    patterns: list[FailurePattern]
