"""Cross-model consensus response schemas."""

from typing import Any, Literal

from pydantic import BaseModel, Field


class FieldAgreement(BaseModel):
    """Agreement of one leaf field across model payloads."""

    field: str
    agreement: float
    plurality_value: Any | None = None
    models_agreeing: list[str]
    models_present: list[str]
    reason: str | None = None


class ConsensusRecommendation(BaseModel):
    """Preferred model for a document and why."""

    model: str
    run_id: int
    basis: Literal["highest_agreement", "fastest_validated"]
    agreement_score: int
    execution_time_ms: int | None


class ConsensusResult(BaseModel):
    """Field-level agreement buckets and recommendation for one document."""

    applicable: Literal[True] = True
    batch_job_id: int
    document_id: int
    models_compared: list[str]
    agreed: list[FieldAgreement]
    disputed: list[FieldAgreement]
    divergent: list[FieldAgreement]
    unique: list[FieldAgreement]
    recommendation: ConsensusRecommendation
    warnings: list[str] = Field(default_factory=list)


class ConsensusNotApplicable(BaseModel):
    """Returned when fewer than two runs produced a parsed payload."""

    applicable: Literal[False] = False
    batch_job_id: int
    document_id: int
    successful_runs: int
    reason: str
