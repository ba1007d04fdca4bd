"""Batch analytics computed on read from persisted runs.

Output ordering is fully deterministic so that repeated calls on an
unchanged batch return identical payloads.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from time import perf_counter

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.batch_job import BatchJob
from app.models.run import Run
from app.schemas.analytics import (
    AttributeFailure,
    AttributeFailureCounts,
    BatchAnalyticsData,
    CommonError,
    DocumentResult,
    FailurePattern,
    ModelAnalytics,
    ValidationBreakdown,
)
from app.services.batch_jobs import get_batch_job
from app.services.documents import get_documents_by_id
from app.validation import ValidationDetail

logger = logging.getLogger(__name__)

ROOT_PATH_LABEL = "$"
COMMON_ERRORS_LIMIT = 10
COMMON_GUIDANCE_LIMIT = 5
MODEL_WEAKNESS_MIN_ATTRIBUTES = 5
DOCUMENT_WIDE_MIN_RATE = 0.7
TYPE_ISSUE_MIN_COUNT = 3
FORMAT_ISSUE_MIN_COUNT = 3

_SEVERITY_ORDER = {"high": 0, "medium": 1, "low": 2}
_FAILURE_MISSING = "missing"
_FAILURE_TYPE = "type_mismatch"
_FAILURE_FORMAT = "format_violation"


@dataclass(slots=True)
class _AttributeTally:
    missing: int = 0
    type_mismatch: int = 0
    format_violation: int = 0
    models: set[str] = field(default_factory=set)
    document_ids: set[int] = field(default_factory=set)

    @property
    def total(self) -> int:
        return self.missing + self.type_mismatch + self.format_violation


def compute_batch_analytics(db: Session, batch_job_id: int) -> BatchAnalyticsData:
    """Aggregate per-model, per-document, and per-attribute outcomes of a batch."""

    started = perf_counter()
    batch_job = get_batch_job(db, batch_job_id)
    runs = list(
        db.scalars(
            select(Run).where(Run.batch_job_id == batch_job_id).order_by(Run.id.asc())
        ).all()
    )
    terminal_runs = [run for run in runs if run.is_terminal]
    documents = get_documents_by_id(db, list(batch_job.document_ids_json))
    models = list(batch_job.models_json)

    model_analytics = [_model_analytics(model, [run for run in terminal_runs if run.model == model]) for model in models]
    document_results = _document_results(batch_job, terminal_runs, documents)
    attribute_failures = _attribute_failures(terminal_runs, models)
    patterns = _detect_patterns(attribute_failures, model_analytics, len(models), batch_job.total_documents)

    logger.info(
        "batch.analytics_computed batch_job_id=%s runs=%d attributes=%d patterns=%d elapsed_ms=%.2f",
        batch_job_id,
        len(terminal_runs),
        len(attribute_failures),
        len(patterns),
        (perf_counter() - started) * 1000.0,
    )
    return BatchAnalyticsData(
        batch_job_id=batch_job_id,
        model_analytics=model_analytics,
        document_results=document_results,
        attribute_failures=attribute_failures,
        patterns=patterns,
    )


def attribute_path_label(path: str) -> str:
    return path or ROOT_PATH_LABEL


def _model_analytics(model: str, runs: list[Run]) -> ModelAnalytics:
    total = len(runs)
    success_count = sum(1 for run in runs if run.validation_passed)
    json_valid = sum(1 for run in runs if run.json_valid)
    attributes_valid = sum(1 for run in runs if run.attributes_valid)
    formats_valid = sum(1 for run in runs if run.formats_valid)

    execution_times = [run.execution_time_ms for run in runs if run.execution_time_ms is not None]
    null_counts = [run.null_count for run in runs if run.json_valid]

    error_counts: Counter[str] = Counter()
    error_documents: dict[str, set[int]] = defaultdict(set)
    attribute_failures: dict[str, AttributeFailureCounts] = {}
    guidance_counts: Counter[str] = Counter()

    for run in runs:
        guidance_counts.update(run.guidance_json or [])
        if run.validation_passed:
            continue
        messages = [issue.message for issue in ValidationDetail.from_json(run.validation_detail_json).all_issues()]
        if run.error_message:
            messages.append(run.error_message)
        for message in messages:
            error_counts[message] += 1
            error_documents[message].add(run.document_id)
        for kind, issue in _categorized_issues(run):
            counts = attribute_failures.setdefault(attribute_path_label(issue.path), AttributeFailureCounts())
            setattr(counts, kind, getattr(counts, kind) + 1)

    common_errors = [
        CommonError(message=message, count=count, document_ids=sorted(error_documents[message]))
        for message, count in sorted(error_counts.items(), key=lambda item: (-item[1], item[0]))[:COMMON_ERRORS_LIMIT]
    ]
    common_guidance = [
        f"{message} ({count}x)" if count > 1 else message
        for message, count in sorted(guidance_counts.items(), key=lambda item: (-item[1], item[0]))[
            :COMMON_GUIDANCE_LIMIT
        ]
    ]

    return ModelAnalytics(
        model=model,
        success_count=success_count,
        failure_count=total - success_count,
        success_rate=_rate(success_count, total),
        json_validity_rate=_rate(json_valid, total),
        attribute_validity_rate=_rate(attributes_valid, total),
        format_validity_rate=_rate(formats_valid, total),
        avg_execution_time_ms=round(sum(execution_times) / len(execution_times), 2) if execution_times else 0.0,
        total_cost=sum((run.cost_in or 0.0) + (run.cost_out or 0.0) for run in runs),
        avg_null_count=round(sum(null_counts) / len(null_counts), 2) if null_counts else 0.0,
        common_errors=common_errors,
        attribute_failures=dict(sorted(attribute_failures.items())),
        validation_breakdown=ValidationBreakdown(
            total_runs=total,
            json_valid=json_valid,
            attributes_valid=attributes_valid,
            formats_valid=formats_valid,
            common_guidance=common_guidance,
        ),
    )


def _document_results(batch_job: BatchJob, runs: list[Run], documents: dict) -> list[DocumentResult]:
    models_total = len(batch_job.models_json or [])
    passed_by_document: Counter[int] = Counter(run.document_id for run in runs if run.validation_passed)
    results: list[DocumentResult] = []
    for document_id in batch_job.document_ids_json:
        passed = passed_by_document.get(document_id, 0)
        if models_total and passed == models_total:
            status = "all_passed"
        elif passed == 0:
            status = "all_failed"
        else:
            status = "partial"
        document = documents.get(document_id)
        results.append(
            DocumentResult(
                document_id=document_id,
                filename=document.filename if document is not None else "unknown",
                models_passed_count=passed,
                models_total_count=models_total,
                status=status,
            )
        )
    return results


def _attribute_failures(runs: list[Run], models: list[str]) -> list[AttributeFailure]:
    tallies: dict[str, _AttributeTally] = {}
    for run in runs:
        for kind, issue in _categorized_issues(run):
            tally = tallies.setdefault(attribute_path_label(issue.path), _AttributeTally())
            setattr(tally, kind, getattr(tally, kind) + 1)
            tally.models.add(run.model)
            tally.document_ids.add(run.document_id)

    failures: list[AttributeFailure] = []
    for path, tally in tallies.items():
        universal = bool(models) and tally.models == set(models)
        failures.append(
            AttributeFailure(
                attribute_path=path,
                missing_count=tally.missing,
                type_mismatch_count=tally.type_mismatch,
                format_violation_count=tally.format_violation,
                total_failures=tally.total,
                affected_models=[model for model in models if model in tally.models],
                affected_document_ids=sorted(tally.document_ids),
                universal=universal,
                pattern=_attribute_pattern(tally, universal),
            )
        )
    failures.sort(key=lambda failure: (-failure.total_failures, failure.attribute_path))
    return failures


def _attribute_pattern(tally: _AttributeTally, universal: bool) -> str | None:
    if universal:
        return "Fails for every model: the prompt, schema, or source documents are the likely cause."
    if len(tally.models) == 1:
        return f"Only {next(iter(tally.models))} fails here: a model-specific weakness."
    return None


def _detect_patterns(
    attribute_failures: list[AttributeFailure],
    model_analytics: list[ModelAnalytics],
    total_models: int,
    total_documents: int,
) -> list[FailurePattern]:
    patterns: list[FailurePattern] = []

    for failure in attribute_failures:
        if failure.universal:
            patterns.append(
                FailurePattern(
                    type="universal_failure",
                    severity="high",
                    message=(
                        f"All {total_models} models fail on '{failure.attribute_path}': the attribute may be "
                        "vague, incorrectly defined in the schema, or missing from the documents."
                    ),
                    affected_items=[failure.attribute_path],
                )
            )

    for analytics in model_analytics:
        attribute_count = len(analytics.attribute_failures)
        if attribute_count >= MODEL_WEAKNESS_MIN_ATTRIBUTES:
            patterns.append(
                FailurePattern(
                    type="model_specific",
                    severity="medium",
                    message=(
                        f"{analytics.model} struggles with {attribute_count} different attributes "
                        f"({round(analytics.success_rate * 100)}% success rate): improve the prompt or try another model."
                    ),
                    affected_items=[analytics.model],
                )
            )

    for failure in attribute_failures:
        document_count = len(failure.affected_document_ids)
        document_rate = document_count / total_documents if total_documents else 0.0
        if document_rate >= DOCUMENT_WIDE_MIN_RATE and failure.missing_count > failure.type_mismatch_count:
            patterns.append(
                FailurePattern(
                    type="document_specific",
                    severity="high",
                    message=(
                        f"'{failure.attribute_path}' is missing in {round(document_rate * 100)}% of documents "
                        f"({document_count}/{total_documents}): the attribute may not exist in the source documents."
                    ),
                    affected_items=[str(document_id) for document_id in failure.affected_document_ids],
                )
            )

    for failure in attribute_failures:
        if failure.type_mismatch_count > failure.missing_count and failure.type_mismatch_count >= TYPE_ISSUE_MIN_COUNT:
            patterns.append(
                FailurePattern(
                    type="type_issue",
                    severity="medium",
                    message=(
                        f"'{failure.attribute_path}' is often extracted with the wrong type "
                        f"({failure.type_mismatch_count} type errors): state the expected type in the prompt or schema."
                    ),
                    affected_items=[failure.attribute_path],
                )
            )

    for failure in attribute_failures:
        if failure.format_violation_count >= FORMAT_ISSUE_MIN_COUNT:
            patterns.append(
                FailurePattern(
                    type="format_issue",
                    severity="low",
                    message=(
                        f"'{failure.attribute_path}' has {failure.format_violation_count} format violations: "
                        "specify the exact format in the prompt (e.g. YYYY-MM-DD for dates)."
                    ),
                    affected_items=[failure.attribute_path],
                )
            )

    # sort() is stable, so detection order is kept within a severity.
    patterns.sort(key=lambda pattern: _SEVERITY_ORDER[pattern.severity])
    return patterns


def _categorized_issues(run: Run):
    detail = ValidationDetail.from_json(run.validation_detail_json)
    for issue in detail.missing_attributes:
        yield _FAILURE_MISSING, issue
    for issue in detail.type_mismatches:
        yield _FAILURE_TYPE, issue
    for issue in detail.format_violations:
        yield _FAILURE_FORMAT, issue


def _rate(count: int, total: int) -> float:
    return round(count / total, 4) if total else 0.0
