"""Cross-model consensus for one document of a batch."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.run import RUN_STATUS_COMPLETED, Run
from app.schemas.consensus import (
    ConsensusNotApplicable,
    ConsensusRecommendation,
    ConsensusResult,
    FieldAgreement,
)
from app.services.batch_jobs import DocumentNotFoundError, get_batch_job
from app.validation import flatten_leaf_values

logger = logging.getLogger(__name__)

AGREED_THRESHOLD = 0.70
DISPUTED_THRESHOLD = 0.30
MIN_CANDIDATES = 2
HIGH_VARIANCE_VALUES = 5
SIMILARITY_THRESHOLD = 0.8
FAILED_SHARE_WARNING = 0.5
LOW_SCORE_SHARE = 0.6
LOW_CONSENSUS_SHARE = 0.5

REASON_HIGH_VARIANCE = "High variance: many different values extracted"
REASON_FORMATTING = "Formatting differences: values are similar but not identical"
REASON_BINARY = "Binary disagreement: models split into two camps"
REASON_DIFFERENT = "Models extracted different information"


@dataclass(slots=True)
class _Candidate:
    run: Run
    leaves: dict[str, Any]


def compute_consensus(
    db: Session,
    batch_job_id: int,
    document_id: int,
) -> ConsensusResult | ConsensusNotApplicable:
    """Compare the parsed payloads of every model for a document.

    Agreement for a leaf is the share of candidate payloads whose value equals
    the plurality value. Candidates are completed runs with a parsed payload.
    """

    batch_job = get_batch_job(db, batch_job_id)
    if document_id not in (batch_job.document_ids_json or []):
        raise DocumentNotFoundError(f"Document {document_id} is not part of batch job {batch_job_id}")

    runs = db.scalars(
        select(Run)
        .where(
            Run.batch_job_id == batch_job_id,
            Run.document_id == document_id,
            Run.status == RUN_STATUS_COMPLETED,
            Run.json_valid.is_(True),
        )
        .order_by(Run.id.asc())
    ).all()
    candidates = [
        _Candidate(run=run, leaves=flatten_leaf_values(run.payload_json))
        for run in runs
        if run.payload_json is not None
    ]
    if len(candidates) < MIN_CANDIDATES:
        return ConsensusNotApplicable(
            batch_job_id=batch_job_id,
            document_id=document_id,
            successful_runs=len(candidates),
            reason=f"Consensus needs at least {MIN_CANDIDATES} runs with a parsed payload",
        )

    total = len(candidates)
    agreed: list[FieldAgreement] = []
    disputed: list[FieldAgreement] = []
    divergent: list[FieldAgreement] = []
    unique: list[FieldAgreement] = []

    paths = sorted({path for candidate in candidates for path in candidate.leaves})
    for path in paths:
        present = [candidate for candidate in candidates if path in candidate.leaves]
        groups = _group_values(present, path)
        agreeing = groups[0]
        ratio = len(agreeing) / total
        entry = FieldAgreement(
            field=path,
            agreement=round(ratio, 4),
            plurality_value=agreeing[0].leaves[path],
            models_agreeing=[candidate.run.model for candidate in agreeing],
            models_present=[candidate.run.model for candidate in present],
        )
        if len(present) == 1:
            unique.append(entry)
        elif ratio >= AGREED_THRESHOLD:
            agreed.append(entry)
        elif ratio >= DISPUTED_THRESHOLD:
            entry.reason = disagreement_reason([group[0].leaves[path] for group in groups])
            disputed.append(entry)
        else:
            entry.reason = disagreement_reason([group[0].leaves[path] for group in groups])
            divergent.append(entry)

    recommendation = _recommend(candidates, agreed)
    warnings = _warnings(
        candidates,
        expected_runs=len(batch_job.models_json or []),
        agreed=agreed,
        compared_fields=len(paths) - len(unique),
        recommendation=recommendation,
    )
    logger.info(
        "batch.consensus_computed batch_job_id=%s document_id=%s candidates=%d agreed=%d disputed=%d recommended=%s warnings=%d",
        batch_job_id,
        document_id,
        total,
        len(agreed),
        len(disputed),
        recommendation.model,
        len(warnings),
    )
    return ConsensusResult(
        batch_job_id=batch_job_id,
        document_id=document_id,
        models_compared=[candidate.run.model for candidate in candidates],
        agreed=agreed,
        disputed=disputed,
        divergent=divergent,
        unique=unique,
        recommendation=recommendation,
        warnings=warnings,
    )


def disagreement_reason(values: list[Any]) -> str:
    """Explain why distinct values of one field do not agree."""

    if len(values) > HIGH_VARIANCE_VALUES:
        return REASON_HIGH_VARIANCE
    texts = [_display_text(value) for value in values]
    if all(levenshtein_similarity(left, right) > SIMILARITY_THRESHOLD for left in texts for right in texts):
        return REASON_FORMATTING
    if len(values) == 2:
        return REASON_BINARY
    return REASON_DIFFERENT


def levenshtein_similarity(left: str, right: str) -> float:
    """Return 1 minus the edit distance normalised by the longer string."""

    if left == right:
        return 1.0
    if not left or not right:
        return 0.0
    previous = list(range(len(right) + 1))
    for i, left_char in enumerate(left, start=1):
        current = [i]
        for j, right_char in enumerate(right, start=1):
            cost = 0 if left_char == right_char else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return 1 - previous[-1] / max(len(left), len(right))


def _normalise(value: Any) -> Any:
    # 100 and 100.0 are the same JSON number.
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, dict):
        return {key: _normalise(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_normalise(item) for item in value]
    return value


def _canonical(value: Any) -> str:
    return json.dumps(_normalise(value), sort_keys=True, separators=(",", ":"))


def _display_text(value: Any) -> str:
    text = value if isinstance(value, str) else _canonical(value)
    return text.lower().strip()


def _group_values(present: list[_Candidate], path: str) -> list[list[_Candidate]]:
    groups: dict[str, list[_Candidate]] = {}
    for candidate in present:
        groups.setdefault(_canonical(candidate.leaves[path]), []).append(candidate)
    # Stable sort keeps the earliest run's value first on ties.
    return sorted(groups.values(), key=len, reverse=True)


def _recommend(candidates: list[_Candidate], agreed: list[FieldAgreement]) -> ConsensusRecommendation:
    if agreed:
        scores = {
            candidate.run.id: sum(
                1
                for entry in agreed
                if entry.field in candidate.leaves
                and _canonical(candidate.leaves[entry.field]) == _canonical(entry.plurality_value)
            )
            for candidate in candidates
        }
        best = min(
            candidates,
            key=lambda candidate: (-scores[candidate.run.id], _speed_key(candidate.run), candidate.run.id),
        )
        return ConsensusRecommendation(
            model=best.run.model,
            run_id=best.run.id,
            basis="highest_agreement",
            agreement_score=scores[best.run.id],
            execution_time_ms=best.run.execution_time_ms,
        )

    validated = [candidate for candidate in candidates if candidate.run.validation_passed] or candidates
    best = min(validated, key=lambda candidate: (_speed_key(candidate.run), candidate.run.id))
    return ConsensusRecommendation(
        model=best.run.model,
        run_id=best.run.id,
        basis="fastest_validated",
        agreement_score=0,
        execution_time_ms=best.run.execution_time_ms,
    )


def _warnings(
    candidates: list[_Candidate],
    *,
    expected_runs: int,
    agreed: list[FieldAgreement],
    compared_fields: int,
    recommendation: ConsensusRecommendation,
) -> list[str]:
    warnings: list[str] = []
    if expected_runs:
        failed_share = max(expected_runs - len(candidates), 0) / expected_runs
        if failed_share >= FAILED_SHARE_WARNING:
            warnings.append(f"{round(failed_share * 100)}% of models failed to produce a parsed payload")
    if not any(candidate.run.validation_passed for candidate in candidates):
        warnings.append("No model fully validated for this document; consider refining the prompts")
    if not agreed:
        warnings.append("No field reached the agreement threshold; compare the outputs manually")
    elif recommendation.agreement_score / len(agreed) < LOW_SCORE_SHARE:
        warnings.append("Recommended model matches fewer than 60% of the agreed fields")
    if len(candidates) >= 3 and compared_fields and len(agreed) / compared_fields < LOW_CONSENSUS_SHARE:
        warnings.append("Low consensus among models; results may vary significantly")
    return warnings


def _speed_key(run: Run) -> float:
    return float(run.execution_time_ms) if run.execution_time_ms is not None else float("inf")
