"""Batch job request/response schemas."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class BatchJobCreate(BaseModel):
    """Configuration for a new documents x models batch job."""

    owner: str = Field(min_length=1)
    name: str = Field(min_length=1)
    document_ids: list[int] = Field(min_length=1)
    models: list[str] = Field(min_length=1)
    system_prompt: str = Field(min_length=1)
    user_prompt: str = Field(min_length=1)
    output_shape: Literal["single-object", "record-stream"] = "single-object"
    validation_schema: dict[str, Any]


class BatchJobCreated(BaseModel):
    """Identifier of a freshly created batch job."""

    batch_job_id: int
    status: str
    total_documents: int
    total_runs: int


class BatchStartResult(BaseModel):
    """Acknowledgement that background processing was scheduled."""

    batch_job_id: int
    status: str
    total_runs: int


class BatchStatusRead(BaseModel):
    """Pollable progress counters of a batch job."""

    batch_job_id: int
    name: str
    status: str
    total_documents: int
    completed_documents: int
    total_runs: int
    successful_runs: int
    failed_runs: int
    current_document_id: int | None
    error_message: str | None
    created_at: datetime
    updated_at: datetime


class RunRead(BaseModel):
    """Serialized run with its validation verdict."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    batch_job_id: int
    document_id: int
    model: str
    status: str
    raw_response: str | None
    payload_json: Any | None
    json_valid: bool
    attributes_valid: bool
    formats_valid: bool
    validation_passed: bool
    validation_detail_json: dict[str, Any]
    guidance_json: list[str]
    execution_time_ms: int | None
    tokens_in: int | None
    tokens_out: int | None
    cost_in: float | None
    cost_out: float | None
    null_count: int
    error_message: str | None
    created_at: datetime
    completed_at: datetime | None
